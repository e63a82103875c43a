"""
Async handles around a Selenium WebDriver.

A WebDriver is blocking and drives one window at a time, so every call goes
through ``SeleniumBrowser.run``: it holds a per-browser asyncio lock, runs the
call in a worker thread, and each ``SeleniumPage`` switches to its own window
handle before touching the driver.

    SeleniumBrowser  -> engine handle (owns the driver, ``close`` quits it)
    SeleniumContext  -> browsing-context handle (opens tabs)
    SeleniumPage     -> one window handle
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional

from selenium.common.exceptions import NoSuchWindowException, WebDriverException

import logging
logger = logging.getLogger(__name__)


class SeleniumBrowser:
    """Owns one WebDriver process."""

    def __init__(self, driver, browser_type: str):
        self.driver = driver
        self.browser_type = browser_type
        self._lock = asyncio.Lock()
        self._closed = False

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def run(self, fn: Callable, *args, **kwargs) -> Any:
        """Run a blocking driver call in a worker thread, one at a time per driver."""
        async with self._lock:
            return await asyncio.to_thread(fn, *args, **kwargs)

    async def close(self) -> None:
        """Quit the driver and release the browser process. Safe to call twice."""
        async with self._lock:
            if self._closed:
                return
            await asyncio.to_thread(self.driver.quit)
            self._closed = True
        logger.debug(f"Driver quit ({self.browser_type})")

    def capabilities(self) -> Dict[str, Any]:
        return dict(getattr(self.driver, "capabilities", None) or {})


class SeleniumContext:
    """
    The default browsing context of a SeleniumBrowser.

    The window the driver opens at launch is handed out by the first
    ``new_page`` call; later calls open new tabs.
    """

    def __init__(self, browser: SeleniumBrowser, initial_handle: Optional[str] = None):
        self.browser = browser
        self._initial_handle = initial_handle

    async def new_page(self) -> "SeleniumPage":
        if self._initial_handle is not None:
            handle, self._initial_handle = self._initial_handle, None
            return SeleniumPage(self.browser, handle)

        def _open_tab(driver) -> str:
            driver.switch_to.new_window("tab")
            return driver.current_window_handle

        handle = await self.browser.run(_open_tab, self.browser.driver)
        return SeleniumPage(self.browser, handle)

    async def window_handles(self) -> List[str]:
        return await self.browser.run(lambda: list(self.browser.driver.window_handles))


class SeleniumPage:
    """One browser tab, addressed by its WebDriver window handle."""

    def __init__(self, browser: SeleniumBrowser, handle: str):
        self.browser = browser
        self.handle = handle
        self._closed = False

    @property
    def is_closed(self) -> bool:
        return self._closed or self.browser.is_closed

    async def _on_window(self, fn: Callable[[Any], Any]) -> Any:
        if self.is_closed:
            raise NoSuchWindowException(f"target window already closed: {self.handle}")

        def _call():
            driver = self.browser.driver
            driver.switch_to.window(self.handle)
            return fn(driver)

        return await self.browser.run(_call)

    async def url(self) -> str:
        return await self._on_window(lambda d: d.current_url)

    async def title(self) -> str:
        return await self._on_window(lambda d: d.title)

    async def goto(self, url: str, timeout_secs: Optional[float] = None) -> None:
        def _navigate(driver):
            if timeout_secs:
                driver.set_page_load_timeout(timeout_secs)
            driver.get(url)

        await self._on_window(_navigate)

    async def close(self) -> None:
        if self.is_closed:
            return
        try:
            await self._on_window(lambda d: d.close())
        except NoSuchWindowException:
            pass
        self._closed = True

    async def console_messages(self) -> List[Dict[str, Any]]:
        """
        Drain the browser console log for this tab.

        Only Chromium-based drivers expose the log; other engines return [].
        """
        def _drain(driver):
            get_log = getattr(driver, "get_log", None)
            if get_log is None:
                return []
            try:
                return get_log("browser") or []
            except WebDriverException as e:
                logger.debug(f"Console log unavailable: {e}")
                return []

        return await self._on_window(_drain)


__all__ = ["SeleniumBrowser", "SeleniumContext", "SeleniumPage"]
