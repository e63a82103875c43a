"""Session lifecycle core: rate limiting, page registry, session table, cleanup."""

from .rate_limiter import RateLimiter, RateLimitStatus
from .page_registry import PageEntry, PageRegistry, PageSummary
from .session_manager import (
    CleanupResult,
    LaunchResult,
    Session,
    SessionInfo,
    SessionManager,
    SessionManagerConfig,
    SessionMetadata,
)
from .cleanup import CleanupScheduler, SchedulerState

__all__ = [
    "RateLimiter",
    "RateLimitStatus",
    "PageEntry",
    "PageRegistry",
    "PageSummary",
    "CleanupResult",
    "LaunchResult",
    "Session",
    "SessionInfo",
    "SessionManager",
    "SessionManagerConfig",
    "SessionMetadata",
    "CleanupScheduler",
    "SchedulerState",
]
