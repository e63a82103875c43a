"""
Browser console capture, per page.

One ConsoleCaptureService is created by the BrowserManager at startup and
handed to whoever needs it; there is no module-level instance. Capture state is
keyed by ``"<session_id>:<page_id>"`` and dropped explicitly when the page or
its session goes away.
"""

import datetime
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from ..constants import CONSOLE_DEFAULT_MAX_MESSAGES, CONSOLE_DEFAULT_TYPES

import logging
logger = logging.getLogger(__name__)


# Selenium reports levels, not console method names.
_LEVEL_TO_TYPE = {
    "SEVERE": "error",
    "WARNING": "warning",
    "INFO": "info",
    "DEBUG": "debug",
    "FINE": "debug",
    "LOG": "log",
}


@dataclass
class CapturedMessage:
    type: str
    text: str
    timestamp: str
    source: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "text": self.text, "timestamp": self.timestamp, "source": self.source}


@dataclass
class CaptureState:
    types: Set[str]
    max_messages: int
    messages: List[CapturedMessage] = field(default_factory=list)


def _key(session_id: str, page_id: str) -> str:
    return f"{session_id}:{page_id}"


def _to_message(entry: Dict[str, Any]) -> CapturedMessage:
    level = str(entry.get("level") or "INFO").upper()
    ts = entry.get("timestamp")
    if isinstance(ts, (int, float)):
        stamp = datetime.datetime.fromtimestamp(ts / 1000.0, datetime.timezone.utc).isoformat()
    else:
        stamp = datetime.datetime.now(datetime.timezone.utc).isoformat()
    return CapturedMessage(
        type=_LEVEL_TO_TYPE.get(level, "log"),
        text=str(entry.get("message") or ""),
        timestamp=stamp,
        source=entry.get("source"),
    )


class ConsoleCaptureService:
    """Collects console messages for pages that have capture enabled."""

    def __init__(self):
        self._captures: Dict[str, CaptureState] = {}

    def is_capturing(self, session_id: str, page_id: str) -> bool:
        return _key(session_id, page_id) in self._captures

    def start(
        self,
        session_id: str,
        page_id: str,
        types: Optional[Iterable[str]] = None,
        max_messages: int = CONSOLE_DEFAULT_MAX_MESSAGES,
    ) -> None:
        """Enable (or reconfigure) capture for a page. Existing messages are dropped."""
        self._captures[_key(session_id, page_id)] = CaptureState(
            types={t.lower() for t in (types or CONSOLE_DEFAULT_TYPES)},
            max_messages=max(1, int(max_messages)),
        )
        logger.debug(f"Console capture started: session={session_id}, page={page_id}")

    async def collect(self, session_id: str, page_id: str, page: Any) -> int:
        """
        Pull new console entries from ``page`` into the buffer.
        Returns how many were kept. Pages without capture are ignored.
        """
        state = self._captures.get(_key(session_id, page_id))
        if state is None:
            return 0

        kept = 0
        for entry in await page.console_messages():
            msg = _to_message(entry)
            if msg.type not in state.types:
                continue
            state.messages.append(msg)
            kept += 1

        overflow = len(state.messages) - state.max_messages
        if overflow > 0:
            del state.messages[:overflow]
        return kept

    def get_messages(self, session_id: str, page_id: str, clear: bool = False) -> List[CapturedMessage]:
        state = self._captures.get(_key(session_id, page_id))
        if state is None:
            return []
        messages = list(state.messages)
        if clear:
            state.messages.clear()
        return messages

    def clear(self, session_id: str, page_id: str) -> None:
        state = self._captures.get(_key(session_id, page_id))
        if state is not None:
            state.messages.clear()

    def stop_page(self, session_id: str, page_id: str) -> bool:
        return self._captures.pop(_key(session_id, page_id), None) is not None

    def stop_session(self, session_id: str, page_ids: Iterable[str]) -> int:
        return sum(1 for page_id in list(page_ids) if self.stop_page(session_id, page_id))

    def __len__(self) -> int:
        return len(self._captures)


__all__ = ["CapturedMessage", "CaptureState", "ConsoleCaptureService"]
