"""
Session table: admission control, page delegation and idle reclamation.

The SessionManager is the single owner of every live browser session. Tool
handlers resolve sessions and pages through it and report activity back with
``update_activity``. It never launches or closes browsers on its own except
inside ``cleanup_expired_sessions``; launching is done by the caller after
``check_rate_limit`` and ``check_capacity`` have passed.

Concurrency:
    Everything here runs on one asyncio loop. The only suspension points are
    inside ``cleanup_expired_sessions`` (the cleanup callback and
    ``browser.close()``), so the table is never observed half-updated. The
    ``_cleanup_in_progress`` set keeps two overlapping sweeps, or a sweep and a
    manual close, from closing the same session twice.
"""

import time
import uuid
import datetime
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from ..constants import (
    DEFAULT_MAX_CONCURRENT_SESSIONS,
    DEFAULT_MAX_SESSIONS_PER_MINUTE,
    MS_PER_SECOND,
    RATE_LIMIT_WINDOW_SECS,
)
from ..errors import capacity_exceeded, page_not_found, session_not_found, validation_error
from .page_registry import PageRegistry
from .rate_limiter import RateLimiter

import logging
logger = logging.getLogger(__name__)


# ============================================================================
# Types
# ============================================================================

@dataclass
class SessionMetadata:
    browser_type: str
    launch_time: float
    last_activity: float
    headless: bool
    active_page_id: Optional[str] = None
    viewport: Optional[Tuple[int, int]] = None
    user_agent: Optional[str] = None


@dataclass
class Session:
    """One browser process plus its default browsing context."""

    id: str
    browser: Any
    context: Any
    metadata: SessionMetadata
    pages: PageRegistry = field(default_factory=PageRegistry)


@dataclass(frozen=True)
class SessionInfo:
    id: str
    browser_type: str
    page_count: int
    last_activity: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "browser_type": self.browser_type,
            "page_count": self.page_count,
            "last_activity": _isoformat(self.last_activity),
        }


@dataclass
class LaunchResult:
    """What the launcher hands over to ``create_session``."""

    browser: Any
    context: Any
    browser_type: str
    headless: bool
    viewport: Optional[Tuple[int, int]] = None
    user_agent: Optional[str] = None


@dataclass(frozen=True)
class SessionManagerConfig:
    max_concurrent_sessions: int = DEFAULT_MAX_CONCURRENT_SESSIONS
    max_sessions_per_minute: int = DEFAULT_MAX_SESSIONS_PER_MINUTE


@dataclass(frozen=True)
class CleanupResult:
    cleaned: int


SessionCleanupCallback = Callable[[str, Session], Awaitable[None]]


def _isoformat(ts: float) -> str:
    return datetime.datetime.fromtimestamp(ts, datetime.timezone.utc).isoformat()


def _require_id(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise validation_error(field_name, "must be a non-empty string")
    return value


# ============================================================================
# Session Manager
# ============================================================================

class SessionManager:
    """
    Registry of live sessions.

    Args:
        config: Capacity and rate limits; defaults from ``constants``
        clock: Wall-clock source in seconds, used for activity timestamps
        rate_limiter: Optional pre-built limiter (mainly for tests)
    """

    def __init__(
        self,
        config: Optional[SessionManagerConfig] = None,
        clock: Callable[[], float] = time.time,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self.config = config or SessionManagerConfig()
        if self.config.max_concurrent_sessions < 1:
            raise ValueError("max_concurrent_sessions must be >= 1")
        if self.config.max_sessions_per_minute < 1:
            raise ValueError("max_sessions_per_minute must be >= 1")

        self._clock = clock
        self._sessions: Dict[str, Session] = {}
        self._cleanup_in_progress: set = set()
        self.rate_limiter = rate_limiter or RateLimiter(
            max_requests=self.config.max_sessions_per_minute,
            window_secs=RATE_LIMIT_WINDOW_SECS,
            max_tracked=self.config.max_sessions_per_minute * 2,
        )

    # ------------------------------------------------------------------
    # Capacity and rate limiting
    # ------------------------------------------------------------------

    def check_rate_limit(self) -> None:
        self.rate_limiter.check_limit()

    def check_capacity(self, pending: int = 0) -> None:
        """
        Raise CAPACITY_EXCEEDED when no slot is free.

        ``pending`` counts launches that have passed this check but are not
        registered yet; they occupy a slot too.
        """
        current = len(self._sessions) + max(0, pending)
        maximum = self.config.max_concurrent_sessions
        if current >= maximum:
            logger.warning(f"Session capacity reached: {current}/{maximum}")
            raise capacity_exceeded(current, maximum)

    def get_remaining_capacity(self) -> int:
        return max(0, self.config.max_concurrent_sessions - len(self._sessions))

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def create_session(self, launch: LaunchResult) -> str:
        """
        Register an already-launched browser and return its new session id.

        Callers run ``check_rate_limit`` and ``check_capacity`` *before*
        launching; this method does not repeat them.
        """
        session_id = str(uuid.uuid4())
        now = self._clock()

        metadata = SessionMetadata(
            browser_type=launch.browser_type,
            launch_time=now,
            last_activity=now,
            headless=launch.headless,
            viewport=launch.viewport,
            user_agent=launch.user_agent,
        )
        session = Session(id=session_id, browser=launch.browser, context=launch.context, metadata=metadata)

        def _sync_active(page_id: Optional[str]) -> None:
            metadata.active_page_id = page_id

        session.pages.on_active_changed = _sync_active

        self._sessions[session_id] = session
        logger.info(
            f"Browser session created: session={session_id}, "
            f"browser={launch.browser_type}, headless={launch.headless}"
        )
        return session_id

    def get_session(self, session_id: str) -> Session:
        _require_id(session_id, "session_id")
        session = self._sessions.get(session_id)
        if session is None:
            raise session_not_found(session_id)
        return session

    def has_session(self, session_id: str) -> bool:
        return session_id in self._sessions

    def update_activity(self, session_id: str) -> None:
        """Bump last-activity; silently ignores unknown sessions."""
        session = self._sessions.get(session_id)
        if session is not None:
            session.metadata.last_activity = self._clock()

    def delete_session(self, session_id: str) -> bool:
        """Drop the table entry. Does not close the browser."""
        return self._sessions.pop(session_id, None) is not None

    def get_all_sessions(self) -> List[Session]:
        return list(self._sessions.values())

    def __len__(self) -> int:
        return len(self._sessions)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def list_sessions(self) -> List[SessionInfo]:
        return [
            SessionInfo(
                id=s.id,
                browser_type=s.metadata.browser_type,
                page_count=len(s.pages),
                last_activity=s.metadata.last_activity,
            )
            for s in self._sessions.values()
        ]

    def get_status(self) -> Dict[str, Any]:
        now = self._clock()
        active = len(self._sessions)
        maximum = self.config.max_concurrent_sessions
        sessions = [
            {
                "id": s.id,
                "browser_type": s.metadata.browser_type,
                "page_count": len(s.pages),
                "last_activity": _isoformat(s.metadata.last_activity),
                "idle_ms": int(max(0.0, now - s.metadata.last_activity) * MS_PER_SECOND),
                "headless": s.metadata.headless,
            }
            for s in self._sessions.values()
        ]
        return {
            "active_sessions": active,
            "max_sessions": maximum,
            "available_slots": self.get_remaining_capacity(),
            "utilization_percent": round(active / maximum * 100),
            "sessions": sessions,
        }

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    async def cleanup_expired_sessions(
        self,
        max_age_secs: float,
        on_cleanup: Optional[SessionCleanupCallback] = None,
    ) -> CleanupResult:
        """
        Close and forget every session idle for longer than ``max_age_secs``.

        Sessions already being cleaned elsewhere are skipped for this pass.
        A failing ``on_cleanup`` or ``browser.close()`` is logged and leaves
        that session registered; the remaining sessions are still processed.
        """
        now = self._clock()
        cleaned = 0

        # Snapshot: the table may change while we await below.
        for session_id, session in list(self._sessions.items()):
            if self._sessions.get(session_id) is not session:
                # Removed by a concurrent sweep or close since the snapshot.
                continue
            idle = now - session.metadata.last_activity
            if idle <= max_age_secs:
                continue
            if session_id in self._cleanup_in_progress:
                logger.debug(f"Cleanup already in progress, skipping session {session_id}")
                continue

            self._cleanup_in_progress.add(session_id)
            try:
                if on_cleanup is not None:
                    await on_cleanup(session_id, session)
                await session.browser.close()
                self._sessions.pop(session_id, None)
                cleaned += 1
                logger.info(f"Expired session cleaned up: session={session_id}, idle={idle:.1f}s")
            except Exception as e:
                logger.error(f"Failed to cleanup session {session_id}: {e}")
            finally:
                self._cleanup_in_progress.discard(session_id)

        return CleanupResult(cleaned=cleaned)

    def is_cleaning_up(self, session_id: str) -> bool:
        return session_id in self._cleanup_in_progress

    def mark_cleaning(self, session_id: str) -> bool:
        """
        Claim a session for teardown outside the sweep (e.g. an explicit close).
        Returns False if someone else already holds it.
        """
        if session_id in self._cleanup_in_progress:
            return False
        self._cleanup_in_progress.add(session_id)
        return True

    def unmark_cleaning(self, session_id: str) -> None:
        self._cleanup_in_progress.discard(session_id)

    # ------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------

    def add_page(self, session_id: str, page_id: str, page: Any, set_active: bool = True) -> None:
        session = self.get_session(session_id)
        session.pages.add(page_id, page, set_active=set_active)

    def get_page(self, session_id: str, page_id: str) -> Any:
        _require_id(page_id, "page_id")
        session = self.get_session(session_id)
        return session.pages.get(page_id)

    def has_page(self, session_id: str, page_id: str) -> bool:
        session = self._sessions.get(session_id)
        return session is not None and session.pages.has(page_id)

    def remove_page(self, session_id: str, page_id: str) -> bool:
        session = self.get_session(session_id)
        return session.pages.remove(page_id)

    def get_page_ids(self, session_id: str) -> List[str]:
        return self.get_session(session_id).pages.get_ids()

    def get_active_page_id(self, session_id: str) -> Optional[str]:
        return self.get_session(session_id).pages.get_active_id()

    def set_active_page_id(self, session_id: str, page_id: str) -> None:
        session = self.get_session(session_id)
        if not session.pages.has(page_id):
            raise page_not_found(page_id, f"Cannot set active page, page not found: {page_id}")
        session.pages.set_active(page_id)


__all__ = [
    "SessionMetadata",
    "Session",
    "SessionInfo",
    "LaunchResult",
    "SessionManagerConfig",
    "CleanupResult",
    "SessionCleanupCallback",
    "SessionManager",
]
