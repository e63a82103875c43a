"""Per-session registry of open pages and the active-page pointer."""

import datetime
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..constants import CLOSED_PAGE_TITLE, CLOSED_PAGE_URL
from ..errors import page_not_found

import logging
logger = logging.getLogger(__name__)


@dataclass
class PageEntry:
    id: str
    page: Any
    created_at: datetime.datetime = field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc)
    )


@dataclass(frozen=True)
class PageSummary:
    id: str
    url: str
    title: str
    is_active: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "url": self.url, "title": self.title, "is_active": self.is_active}


class PageRegistry:
    """
    Pages of one session, keyed by page id, in insertion order.

    Invariant: ``active_id`` is None exactly when the registry is empty;
    otherwise it is the id of a registered page. Removing the
    active page promotes the first remaining page.

    Not safe for concurrent mutation on its own; callers go through the
    owning SessionManager.

    Attributes:
        on_page_removed: Optional ``callback(page_id, page)`` fired after a page
            leaves the registry (``remove`` and ``clear``).
        on_active_changed: Optional ``callback(page_id_or_None)`` fired whenever
            the active pointer moves.
    """

    def __init__(self):
        self._pages: Dict[str, PageEntry] = {}
        self._active_id: Optional[str] = None
        self.on_page_removed: Optional[Callable[[str, Any], None]] = None
        self.on_active_changed: Optional[Callable[[Optional[str]], None]] = None

    def __len__(self) -> int:
        return len(self._pages)

    def __contains__(self, page_id: object) -> bool:
        return page_id in self._pages

    def add(self, page_id: str, page: Any, set_active: bool = True) -> None:
        """Register a page. The first page always becomes active."""
        self._pages[page_id] = PageEntry(id=page_id, page=page)
        if set_active or self._active_id is None:
            self._set_active_id(page_id)

    def get(self, page_id: str) -> Any:
        entry = self._pages.get(page_id)
        if entry is None:
            raise page_not_found(page_id)
        return entry.page

    def has(self, page_id: str) -> bool:
        return page_id in self._pages

    def remove(self, page_id: str) -> bool:
        """Remove a page. Returns False if it was not registered."""
        entry = self._pages.pop(page_id, None)
        if entry is None:
            return False

        if self._active_id == page_id:
            self._set_active_id(next(iter(self._pages), None))

        self._notify_removed(page_id, entry.page)
        return True

    def get_active_id(self) -> Optional[str]:
        return self._active_id

    def set_active(self, page_id: str) -> None:
        if page_id not in self._pages:
            raise page_not_found(page_id, f"Cannot set active page, page not found: {page_id}")
        self._set_active_id(page_id)

    def get_ids(self) -> List[str]:
        return list(self._pages)

    def get_all(self) -> List[PageEntry]:
        return list(self._pages.values())

    def clear(self) -> None:
        entries = list(self._pages.items())
        self._pages.clear()
        self._set_active_id(None)
        for page_id, entry in entries:
            self._notify_removed(page_id, entry.page)

    async def get_summaries(self) -> List[PageSummary]:
        """
        Describe every page, including ones whose handle already went away.

        A page that fails to report its URL or title (closed window, dead
        driver) is listed with placeholder values instead of aborting the
        enumeration.
        """
        summaries: List[PageSummary] = []
        for page_id, entry in list(self._pages.items()):
            is_active = page_id == self._active_id
            try:
                url = await entry.page.url()
                title = await entry.page.title()
            except Exception as e:
                logger.debug(f"Page {page_id} unavailable while summarizing: {e}")
                url, title = CLOSED_PAGE_URL, CLOSED_PAGE_TITLE
            summaries.append(PageSummary(id=page_id, url=url, title=title, is_active=is_active))
        return summaries

    def _set_active_id(self, page_id: Optional[str]) -> None:
        self._active_id = page_id
        if self.on_active_changed is not None:
            self.on_active_changed(page_id)

    def _notify_removed(self, page_id: str, page: Any) -> None:
        if self.on_page_removed is None:
            return
        try:
            self.on_page_removed(page_id, page)
        except Exception as e:
            logger.warning(f"on_page_removed callback failed for page {page_id}: {e}")


__all__ = ["PageEntry", "PageSummary", "PageRegistry"]
