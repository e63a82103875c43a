"""Launch Selenium-driven browsers for new sessions."""

import asyncio
from enum import Enum
from dataclasses import dataclass
from typing import Optional, Tuple

from selenium import webdriver

from ..constants import DEFAULT_VIEWPORT_HEIGHT, DEFAULT_VIEWPORT_WIDTH
from ..errors import BrowserToolError, ErrorCode, validation_error
from ..sessions.session_manager import LaunchResult
from .handles import SeleniumBrowser, SeleniumContext

import logging
logger = logging.getLogger(__name__)


class BrowserType(str, Enum):
    CHROME = "chrome"
    FIREFOX = "firefox"
    EDGE = "edge"


@dataclass
class LaunchOptions:
    browser_type: str = BrowserType.CHROME.value
    headless: bool = True
    viewport: Tuple[int, int] = (DEFAULT_VIEWPORT_WIDTH, DEFAULT_VIEWPORT_HEIGHT)
    user_agent: Optional[str] = None
    timeout_secs: Optional[float] = None
    proxy: Optional[str] = None


def parse_browser_type(value: Optional[str]) -> BrowserType:
    try:
        return BrowserType((value or BrowserType.CHROME.value).strip().lower())
    except ValueError:
        allowed = ", ".join(b.value for b in BrowserType)
        raise validation_error("browser_type", f"{value!r} is not one of: {allowed}")


def _chromium_options(options_cls, opts: LaunchOptions):
    o = options_cls()
    if opts.headless:
        o.add_argument("--headless=new")
    width, height = opts.viewport
    o.add_argument(f"--window-size={width},{height}")
    o.add_argument("--no-first-run")
    o.add_argument("--no-default-browser-check")
    if opts.user_agent:
        o.add_argument(f"--user-agent={opts.user_agent}")
    if opts.proxy:
        o.add_argument(f"--proxy-server={opts.proxy}")
    o.set_capability("goog:loggingPrefs", {"browser": "ALL"})
    return o


def _firefox_options(opts: LaunchOptions):
    o = webdriver.FirefoxOptions()
    if opts.headless:
        o.add_argument("-headless")
    if opts.user_agent:
        o.set_preference("general.useragent.override", opts.user_agent)
    if opts.proxy:
        logger.warning("Proxy option is not applied for Firefox sessions")
    return o


def _create_driver(browser_type: BrowserType, opts: LaunchOptions):
    """Blocking driver construction; runs in a worker thread."""
    if browser_type is BrowserType.CHROME:
        driver = webdriver.Chrome(options=_chromium_options(webdriver.ChromeOptions, opts))
    elif browser_type is BrowserType.EDGE:
        driver = webdriver.Edge(options=_chromium_options(webdriver.EdgeOptions, opts))
    else:
        driver = webdriver.Firefox(options=_firefox_options(opts))
        width, height = opts.viewport
        try:
            driver.set_window_size(width, height)
        except Exception as e:
            logger.debug(f"Could not set Firefox window size: {e}")
    return driver


async def _quit_quietly(driver) -> None:
    try:
        await asyncio.to_thread(driver.quit)
    except Exception as e:
        logger.warning(f"Could not quit driver after failed launch: {e}")


async def launch(opts: LaunchOptions) -> LaunchResult:
    """
    Start a browser and return its engine and context handles.

    Raises:
        BrowserToolError: VALIDATION_FAILED for an unknown browser type,
            BROWSER_LAUNCH_FAILED for anything that goes wrong while starting.
    """
    browser_type = parse_browser_type(opts.browser_type)

    driver = None
    try:
        create = asyncio.to_thread(_create_driver, browser_type, opts)
        if opts.timeout_secs:
            driver = await asyncio.wait_for(create, timeout=opts.timeout_secs)
        else:
            driver = await create
        initial_handle = await asyncio.to_thread(lambda: driver.current_window_handle)
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.error(f"Failed to launch {browser_type.value}: {type(e).__name__}: {e}")
        if driver is not None:
            await _quit_quietly(driver)
        raise BrowserToolError(
            ErrorCode.BROWSER_LAUNCH_FAILED,
            f"Browser launch failed: {e or type(e).__name__}",
            {"browser_type": browser_type.value},
        ) from e

    browser = SeleniumBrowser(driver, browser_type.value)
    context = SeleniumContext(browser, initial_handle=initial_handle)
    logger.info(f"Launched {browser_type.value} (headless={opts.headless})")

    return LaunchResult(
        browser=browser,
        context=context,
        browser_type=browser_type.value,
        headless=opts.headless,
        viewport=tuple(opts.viewport),
        user_agent=opts.user_agent,
    )


__all__ = ["BrowserType", "LaunchOptions", "parse_browser_type", "launch"]
