# mcp_browser_sessions/decorators/envelope.py

import os
import json
import asyncio
import inspect
import datetime
import functools
import traceback
from typing import Any, Callable, Optional

from ..errors import BrowserToolError, ErrorClassifier, classify

import logging
logger = logging.getLogger(__name__)


__all__ = [
    "tool_envelope",
    "error_payload",
]


def _normalize(value: Any) -> str:
    if value is None:
        return json.dumps({"ok": True})
    if isinstance(value, str):
        return value
    if isinstance(value, bytes):
        return value.decode("utf-8", "replace")
    if isinstance(value, dict) and "ok" not in value:
        value = {"ok": True, **value}
    return json.dumps(value, ensure_ascii=False, default=lambda o: getattr(o, "__dict__", repr(o)))


def error_payload(
    err: BaseException,
    classifier: Optional[ErrorClassifier] = None,
    include_traceback: bool = False,
) -> str:
    """
    Build the JSON error string returned to the MCP client.

    Untyped exceptions are classified first; a traceback is attached only for
    those, and only when ``include_traceback`` is set.
    """
    typed = err if isinstance(err, BrowserToolError) else (classifier.classify(err) if classifier else classify(err))
    payload = {
        "ok": False,
        "summary": typed.to_user_message(),
        "error": {
            "code": typed.code.value,
            "message": typed.message,
            "details": typed.details,
            "retryable": typed.retryable,
        },
        "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
    }
    if include_traceback and typed is not err:
        payload["error"]["traceback"] = "".join(traceback.format_exception(type(err), err, err.__traceback__))
    return json.dumps(payload, ensure_ascii=False, default=repr)


def tool_envelope(func: Callable = None, *, classifier: Optional[ErrorClassifier] = None):
    """
    Decorator for MCP tool functions:
      - Works with both async and sync callables.
      - On success: returns a JSON string (dicts get ``"ok": true`` unless they set it).
      - On error: returns the uniform error JSON built by ``error_payload``.
      - asyncio.CancelledError is re-raised.
    Environment:
      - Set MCP_TOOL_ERRORS_TRACEBACK=1 to include tracebacks for unexpected errors.
    """
    if func is None:
        return functools.partial(tool_envelope, classifier=classifier)

    include_tb = os.getenv("MCP_TOOL_ERRORS_TRACEBACK", "0") in ("1", "true", "True")

    def _fail(err: Exception) -> str:
        if isinstance(err, BrowserToolError):
            logger.info(f"{func.__name__} failed: {err.to_user_message()}")
        else:
            logger.exception(f"{func.__name__} raised an unexpected error")
        return error_payload(err, classifier=classifier, include_traceback=include_tb)

    if inspect.iscoroutinefunction(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                result = await func(*args, **kwargs)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                return _fail(e)
            return _normalize(result)
        return wrapper
    else:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                return _fail(e)
            return _normalize(result)
        return wrapper
