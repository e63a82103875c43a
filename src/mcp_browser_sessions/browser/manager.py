"""
BrowserManager: the operations behind the MCP tools.

Owns one SessionManager, one ErrorClassifier and one ConsoleCaptureService.
Tool handlers call into it with plain ids; it resolves sessions and pages,
drives the Selenium handles and turns engine failures into BrowserToolError.
"""

import uuid
import asyncio
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlparse

from ..config import ServerConfig
from ..constants import CONSOLE_DEFAULT_MAX_MESSAGES, RATE_LIMIT_WINDOW_SECS
from ..errors import BrowserToolError, ErrorClassifier, ErrorCode, create_error, page_not_found
from ..services.console_capture import ConsoleCaptureService
from ..sessions import CleanupResult, LaunchResult, Session, SessionManager, SessionManagerConfig
from ..utils.retry import retry_async
from .launcher import LaunchOptions, launch

import logging
logger = logging.getLogger(__name__)


ALLOWED_URL_SCHEMES = ("http", "https")

Launcher = Callable[[LaunchOptions], Awaitable[LaunchResult]]


def validate_url(url: str) -> str:
    """Reject anything that is not an absolute http(s) URL."""
    parsed = urlparse((url or "").strip())
    if parsed.scheme.lower() not in ALLOWED_URL_SCHEMES or not parsed.netloc:
        raise create_error(
            ErrorCode.INVALID_URL,
            f"Invalid URL: {url!r} (only http and https URLs are allowed)",
            {"url": url},
        )
    return parsed.geturl()


class BrowserManager:
    """
    Args:
        config: Server configuration (limits, defaults for new browsers)
        launcher: Coroutine starting a browser; replaced by a fake in tests
        sessions: Pre-built SessionManager (defaults from ``config``)
        classifier: Failure classifier used for engine errors
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        launcher: Launcher = launch,
        sessions: Optional[SessionManager] = None,
        classifier: Optional[ErrorClassifier] = None,
    ):
        self.config = config or ServerConfig()
        self.sessions = sessions or SessionManager(
            SessionManagerConfig(
                max_concurrent_sessions=self.config.max_concurrent_sessions,
                max_sessions_per_minute=self.config.max_sessions_per_minute,
            )
        )
        self.classifier = classifier or ErrorClassifier()
        self.console = ConsoleCaptureService()
        self._launcher = launcher
        self._pending_launches = 0

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _typed(self, error: BaseException) -> BrowserToolError:
        return self.classifier.classify(error)

    def _resolve_page(self, session_id: str, page_id: Optional[str]) -> Tuple[Session, str, Any]:
        session = self.sessions.get_session(session_id)
        if page_id is None:
            page_id = session.pages.get_active_id()
            if page_id is None:
                raise page_not_found("<active>", f"Session {session_id} has no open pages")
        return session, page_id, session.pages.get(page_id)

    async def _open_page(self, session_id: str, session: Session) -> str:
        page = await session.context.new_page()
        page_id = str(uuid.uuid4())
        self.sessions.add_page(session_id, page_id, page)
        return page_id

    def _drop_console(self, session_id: str, page_ids: Iterable[str]) -> None:
        dropped = self.console.stop_session(session_id, page_ids)
        if dropped:
            logger.debug(f"Dropped {dropped} console capture(s) for session {session_id}")

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def launch_browser(
        self,
        browser_type: Optional[str] = None,
        headless: Optional[bool] = None,
        viewport: Optional[Tuple[int, int]] = None,
        user_agent: Optional[str] = None,
        timeout_secs: Optional[float] = None,
        proxy: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Start a browser and register it as a new session with one open page.

        Raises:
            BrowserToolError: RATE_LIMIT_EXCEEDED, CAPACITY_EXCEEDED,
                VALIDATION_FAILED or BROWSER_LAUNCH_FAILED
        """
        self.sessions.check_rate_limit()
        self.sessions.check_capacity(pending=self._pending_launches)

        options = LaunchOptions(
            browser_type=browser_type or self.config.default_browser,
            headless=self.config.headless if headless is None else headless,
            viewport=tuple(viewport) if viewport else self.config.viewport,
            user_agent=user_agent,
            timeout_secs=timeout_secs,
            proxy=proxy,
        )

        self._pending_launches += 1
        try:
            result = await self._launcher(options)
        finally:
            self._pending_launches -= 1

        session_id = self.sessions.create_session(result)
        session = self.sessions.get_session(session_id)
        try:
            page_id = await self._open_page(session_id, session)
        except Exception as e:
            logger.error(f"First page failed for session {session_id}, closing browser: {e}")
            self.sessions.delete_session(session_id)
            try:
                await result.browser.close()
            except Exception as close_err:
                logger.warning(f"Browser close after failed first page also failed: {close_err}")
            raise self._typed(e) from e

        return {
            "session_id": session_id,
            "page_id": page_id,
            "browser_type": result.browser_type,
            "headless": result.headless,
        }

    async def close_browser(self, session_id: str) -> Dict[str, Any]:
        """
        Close a session's browser, then forget the session.

        If the browser refuses to close, the session stays registered and the
        classified engine error is raised.
        """
        session = self.sessions.get_session(session_id)
        if not self.sessions.mark_cleaning(session_id):
            raise create_error(
                ErrorCode.SESSION_EXPIRED,
                f"Session is already being closed: {session_id}",
                {"session_id": session_id},
            )

        try:
            try:
                await session.browser.close()
            except Exception as e:
                logger.error(f"Failed to close browser for session {session_id}: {e}")
                raise self._typed(e) from e
            self._drop_console(session_id, session.pages.get_ids())
            self.sessions.delete_session(session_id)
        finally:
            self.sessions.unmark_cleaning(session_id)

        logger.info(f"Browser session closed: session={session_id}")
        return {"session_id": session_id, "closed": True}

    def list_sessions(self) -> List[Dict[str, Any]]:
        return [info.to_dict() for info in self.sessions.list_sessions()]

    # ------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------

    async def new_page(self, session_id: str) -> Dict[str, Any]:
        session = self.sessions.get_session(session_id)
        try:
            page_id = await self._open_page(session_id, session)
        except Exception as e:
            raise self._typed(e) from e
        self.sessions.update_activity(session_id)
        return {"session_id": session_id, "page_id": page_id, "active_page_id": page_id}

    async def close_page(self, session_id: str, page_id: str) -> Dict[str, Any]:
        page = self.sessions.get_page(session_id, page_id)
        try:
            await page.close()
        except Exception as e:
            raise self._typed(e) from e

        self.sessions.remove_page(session_id, page_id)
        self.console.stop_page(session_id, page_id)
        self.sessions.update_activity(session_id)
        return {
            "session_id": session_id,
            "closed_page_id": page_id,
            "active_page_id": self.sessions.get_active_page_id(session_id),
        }

    def switch_page(self, session_id: str, page_id: str) -> Dict[str, Any]:
        self.sessions.set_active_page_id(session_id, page_id)
        self.sessions.update_activity(session_id)
        return {"session_id": session_id, "active_page_id": page_id}

    async def list_pages(self, session_id: str) -> List[Dict[str, Any]]:
        session = self.sessions.get_session(session_id)
        summaries = await session.pages.get_summaries()
        self.sessions.update_activity(session_id)
        return [s.to_dict() for s in summaries]

    async def navigate(
        self,
        session_id: str,
        url: str,
        page_id: Optional[str] = None,
        timeout_secs: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        Load ``url`` in a page (the active one by default).

        Navigation failures that classify as retryable are retried up to the
        configured number of attempts.
        """
        target = validate_url(url)
        session, page_id, page = self._resolve_page(session_id, page_id)
        timeout = timeout_secs or self.config.navigation_timeout_secs

        outcome = await retry_async(
            lambda: page.goto(target, timeout_secs=timeout),
            retries=max(0, self.config.retry_attempts - 1),
            classifier=self.classifier,
        )
        if outcome.retries_used:
            logger.info(f"Navigation to {target} succeeded after {outcome.retries_used} retries")

        try:
            info = {"url": await page.url(), "title": await page.title()}
        except Exception as e:
            raise self._typed(e) from e

        await self._collect_console(session_id, page_id, page)
        self.sessions.update_activity(session_id)
        return {"session_id": session_id, "page_id": page_id, **info}

    async def page_info(self, session_id: str, page_id: Optional[str] = None) -> Dict[str, Any]:
        session, page_id, page = self._resolve_page(session_id, page_id)
        try:
            url, title = await page.url(), await page.title()
        except Exception as e:
            raise self._typed(e) from e
        self.sessions.update_activity(session_id)
        return {
            "session_id": session_id,
            "page_id": page_id,
            "url": url,
            "title": title,
            "is_active": session.pages.get_active_id() == page_id,
        }

    # ------------------------------------------------------------------
    # Console capture
    # ------------------------------------------------------------------

    async def _collect_console(self, session_id: str, page_id: str, page: Any) -> None:
        if not self.console.is_capturing(session_id, page_id):
            return
        try:
            await self.console.collect(session_id, page_id, page)
        except Exception as e:
            logger.warning(f"Console collection failed for page {page_id}: {e}")

    def start_console_capture(
        self,
        session_id: str,
        page_id: Optional[str] = None,
        types: Optional[List[str]] = None,
        max_messages: int = CONSOLE_DEFAULT_MAX_MESSAGES,
    ) -> Dict[str, Any]:
        _, page_id, _ = self._resolve_page(session_id, page_id)
        self.console.start(session_id, page_id, types=types, max_messages=max_messages)
        self.sessions.update_activity(session_id)
        return {"session_id": session_id, "page_id": page_id, "capturing": True}

    async def get_console_messages(
        self,
        session_id: str,
        page_id: Optional[str] = None,
        clear: bool = False,
    ) -> Dict[str, Any]:
        _, page_id, page = self._resolve_page(session_id, page_id)
        if not self.console.is_capturing(session_id, page_id):
            raise create_error(
                ErrorCode.VALIDATION_FAILED,
                f"Console capture is not enabled for page {page_id}",
                {"session_id": session_id, "page_id": page_id},
            )
        await self._collect_console(session_id, page_id, page)
        messages = self.console.get_messages(session_id, page_id, clear=clear)
        self.sessions.update_activity(session_id)
        return {
            "session_id": session_id,
            "page_id": page_id,
            "count": len(messages),
            "messages": [m.to_dict() for m in messages],
        }

    # ------------------------------------------------------------------
    # Cleanup and shutdown
    # ------------------------------------------------------------------

    async def cleanup_expired_sessions(self, max_age_secs: Optional[float] = None) -> CleanupResult:
        """
        Reclaim idle sessions. Console captures are dropped only for sessions
        the sweep actually removed; a session whose browser refused to close
        keeps them.
        """
        max_age = self.config.session_timeout_secs if max_age_secs is None else max_age_secs
        pages_before = {s.id: s.pages.get_ids() for s in self.sessions.get_all_sessions()}
        result = await self.sessions.cleanup_expired_sessions(max_age)
        for session_id, page_ids in pages_before.items():
            if not self.sessions.has_session(session_id):
                self._drop_console(session_id, page_ids)
        return result

    async def shutdown(self) -> Dict[str, int]:
        """
        Close every session. Failures are counted, not raised.

        Sessions already claimed by a concurrent close or sweep are left to
        that owner and appear in neither count.
        """
        sessions = self.sessions.get_all_sessions()
        if not sessions:
            return {"closed_count": 0, "failed_count": 0}

        logger.info(f"Shutting down {len(sessions)} browser session(s)")
        results = await asyncio.gather(
            *(self._close_for_shutdown(s) for s in sessions),
            return_exceptions=True,
        )
        closed = failed = 0
        for r in results:
            if isinstance(r, BaseException):
                failed += 1
                logger.error(f"Failed to close session during shutdown: {r}")
            elif r:
                closed += 1
        return {"closed_count": closed, "failed_count": failed}

    async def _close_for_shutdown(self, session: Session) -> bool:
        if not self.sessions.mark_cleaning(session.id):
            logger.info(f"Session {session.id} is already being closed, leaving it to its owner")
            return False
        try:
            await session.browser.close()
        finally:
            self._drop_console(session.id, session.pages.get_ids())
            self.sessions.delete_session(session.id)
            self.sessions.unmark_cleaning(session.id)
        return True

    def get_server_status(self) -> Dict[str, Any]:
        status = self.sessions.get_status()
        limiter = self.sessions.rate_limiter.get_status()
        status["rate_limit"] = {
            "allowed": limiter.allowed,
            "remaining": limiter.remaining,
            "reset_ms": limiter.reset_ms,
            "window_secs": RATE_LIMIT_WINDOW_SECS,
        }
        return status


__all__ = ["ALLOWED_URL_SCHEMES", "BrowserManager", "Launcher", "validate_url"]
