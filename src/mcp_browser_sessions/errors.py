"""
Typed errors and failure classification.

Every failure that reaches a tool caller is a ``BrowserToolError`` carrying a code
from ``ErrorCode``, a message, optional structured details and a ``retryable`` flag.

Failures coming out of Selenium (or anything else) are mapped onto a code by an
ordered list of rules. The rules are scanned top to bottom against
``"<ExceptionType> <message>"`` and the first match wins, so order encodes
precedence: a selector wait that times out is reported as ``ELEMENT_NOT_FOUND``
rather than as a bare ``TIMEOUT_EXCEEDED``.

Usage:
    from mcp_browser_sessions.errors import classify, session_not_found

    try:
        driver.find_element(By.CSS_SELECTOR, ".btn")
    except Exception as e:
        raise classify(e)

    raise session_not_found(session_id)
"""

import re
import datetime
from enum import Enum
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Pattern, Sequence, Union


class ErrorCode(str, Enum):
    # Browser lifecycle
    BROWSER_LAUNCH_FAILED = "BROWSER_LAUNCH_FAILED"
    BROWSER_CLOSED = "BROWSER_CLOSED"

    # Navigation
    PAGE_NAVIGATION_FAILED = "PAGE_NAVIGATION_FAILED"
    PAGE_CRASHED = "PAGE_CRASHED"

    # Elements
    ELEMENT_NOT_FOUND = "ELEMENT_NOT_FOUND"
    ELEMENT_NOT_VISIBLE = "ELEMENT_NOT_VISIBLE"
    ELEMENT_NOT_ENABLED = "ELEMENT_NOT_ENABLED"
    ELEMENT_DETACHED = "ELEMENT_DETACHED"

    # Timeouts
    TIMEOUT_EXCEEDED = "TIMEOUT_EXCEEDED"
    NAVIGATION_TIMEOUT = "NAVIGATION_TIMEOUT"

    # Sessions and pages
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    PAGE_NOT_FOUND = "PAGE_NOT_FOUND"

    # Validation
    VALIDATION_FAILED = "VALIDATION_FAILED"
    INVALID_SELECTOR = "INVALID_SELECTOR"
    INVALID_URL = "INVALID_URL"

    NETWORK_ERROR = "NETWORK_ERROR"

    # Server
    INTERNAL_ERROR = "INTERNAL_ERROR"
    TOOL_NOT_FOUND = "TOOL_NOT_FOUND"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"

    SECURITY_VIOLATION = "SECURITY_VIOLATION"


RETRYABLE_CODES = frozenset({
    ErrorCode.TIMEOUT_EXCEEDED,
    ErrorCode.NAVIGATION_TIMEOUT,
    ErrorCode.PAGE_NAVIGATION_FAILED,
    ErrorCode.ELEMENT_NOT_FOUND,
    ErrorCode.ELEMENT_NOT_VISIBLE,
    ErrorCode.NETWORK_ERROR,
})


def is_retryable(code: ErrorCode) -> bool:
    """Static retryability default for a code."""
    return code in RETRYABLE_CODES


class BrowserToolError(Exception):
    """
    Error raised by the session core and the tool layer.

    Args:
        code: Error category from ``ErrorCode``
        message: Human readable message
        details: Optional structured context (ids, limits, selector, ...)
        retryable: Override of the code's default. Can only turn retryability
            off; asking for ``True`` on a non-retryable code is ignored.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        retryable: Optional[bool] = None,
    ):
        super().__init__(message)
        self.code = ErrorCode(code)
        self.message = message
        self.details = details
        default = is_retryable(self.code)
        self.retryable = default if retryable is None else (default and bool(retryable))
        self.timestamp = datetime.datetime.now(datetime.timezone.utc).isoformat()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
            "retryable": self.retryable,
            "timestamp": self.timestamp,
        }

    def to_user_message(self) -> str:
        hint = " (retryable)" if self.retryable else ""
        return f"[{self.code.value}] {self.message}{hint}"

    def __repr__(self) -> str:
        return f"BrowserToolError({self.code.value!r}, {self.message!r})"


# ============================================================================
# Classification rules
# ============================================================================

@dataclass(frozen=True)
class SubstringRule:
    """Matches when ``needle`` occurs verbatim in the error text."""

    needle: str
    code: ErrorCode

    def matches(self, text: str) -> bool:
        return self.needle in text


@dataclass(frozen=True)
class RegexRule:
    """Matches when ``pattern`` is found anywhere in the error text."""

    pattern: Pattern[str]
    code: ErrorCode

    def matches(self, text: str) -> bool:
        return self.pattern.search(text) is not None


Rule = Union[SubstringRule, RegexRule]


DEFAULT_RULES: Sequence[Rule] = (
    # Element lookups first: a selector wait that times out is an element problem.
    SubstringRule("waiting for selector", ErrorCode.ELEMENT_NOT_FOUND),
    SubstringRule("waiting for locator", ErrorCode.ELEMENT_NOT_FOUND),
    SubstringRule("NoSuchElementException", ErrorCode.ELEMENT_NOT_FOUND),
    SubstringRule("Element not found", ErrorCode.ELEMENT_NOT_FOUND),
    SubstringRule("no such element", ErrorCode.ELEMENT_NOT_FOUND),
    SubstringRule("no element matches", ErrorCode.ELEMENT_NOT_FOUND),
    SubstringRule("strict mode violation", ErrorCode.ELEMENT_NOT_FOUND),
    SubstringRule("ElementNotVisibleException", ErrorCode.ELEMENT_NOT_VISIBLE),
    SubstringRule("element is not visible", ErrorCode.ELEMENT_NOT_VISIBLE),
    SubstringRule("element not interactable", ErrorCode.ELEMENT_NOT_VISIBLE),
    SubstringRule("element is not enabled", ErrorCode.ELEMENT_NOT_ENABLED),
    SubstringRule("StaleElementReferenceException", ErrorCode.ELEMENT_DETACHED),
    SubstringRule("Element is detached", ErrorCode.ELEMENT_DETACHED),

    # Timeouts
    SubstringRule("TimeoutException", ErrorCode.TIMEOUT_EXCEEDED),
    SubstringRule("TimeoutError", ErrorCode.TIMEOUT_EXCEEDED),
    SubstringRule("Timeout", ErrorCode.TIMEOUT_EXCEEDED),
    RegexRule(re.compile(r"exceeded\s+\d+ms", re.IGNORECASE), ErrorCode.TIMEOUT_EXCEEDED),
    RegexRule(re.compile(r"timed out", re.IGNORECASE), ErrorCode.TIMEOUT_EXCEEDED),

    # Navigation
    SubstringRule("Navigation failed", ErrorCode.PAGE_NAVIGATION_FAILED),
    SubstringRule("ERR_CONNECTION_REFUSED", ErrorCode.NETWORK_ERROR),
    SubstringRule("ERR_INTERNET_DISCONNECTED", ErrorCode.NETWORK_ERROR),
    SubstringRule("ERR_NAME_NOT_RESOLVED", ErrorCode.PAGE_NAVIGATION_FAILED),
    SubstringRule("net::ERR_", ErrorCode.PAGE_NAVIGATION_FAILED),
    SubstringRule("neterror", ErrorCode.PAGE_NAVIGATION_FAILED),
    SubstringRule("InvalidArgumentException", ErrorCode.INVALID_URL),

    # Sessions, windows, closed targets
    SubstringRule("Session not found", ErrorCode.SESSION_NOT_FOUND),
    SubstringRule("Page not found", ErrorCode.PAGE_NOT_FOUND),
    SubstringRule("NoSuchWindowException", ErrorCode.PAGE_NOT_FOUND),
    SubstringRule("InvalidSessionIdException", ErrorCode.SESSION_NOT_FOUND),
    SubstringRule("invalid session id", ErrorCode.SESSION_NOT_FOUND),
    SubstringRule("Browser closed", ErrorCode.BROWSER_CLOSED),
    SubstringRule("Target closed", ErrorCode.SESSION_NOT_FOUND),
    SubstringRule("target window already closed", ErrorCode.PAGE_NOT_FOUND),
    SubstringRule("Context destroyed", ErrorCode.SESSION_NOT_FOUND),
    SubstringRule("Frame detached", ErrorCode.ELEMENT_DETACHED),
    SubstringRule("Page crashed", ErrorCode.PAGE_CRASHED),
    SubstringRule("tab crashed", ErrorCode.PAGE_CRASHED),
    SubstringRule("Execution context was destroyed", ErrorCode.PAGE_NAVIGATION_FAILED),

    # Launch
    SubstringRule("SessionNotCreatedException", ErrorCode.BROWSER_LAUNCH_FAILED),
    SubstringRule("Failed to launch", ErrorCode.BROWSER_LAUNCH_FAILED),
    SubstringRule("executable doesn", ErrorCode.BROWSER_LAUNCH_FAILED),
    SubstringRule("NoSuchDriverException", ErrorCode.BROWSER_LAUNCH_FAILED),

    # Selectors
    SubstringRule("InvalidSelectorException", ErrorCode.INVALID_SELECTOR),
    SubstringRule("invalid selector", ErrorCode.INVALID_SELECTOR),
)


class ErrorClassifier:
    """
    Map arbitrary exceptions onto ``BrowserToolError``.

    Args:
        rules: Ordered rule list; first match wins
        retryable_overrides: Per-code retryability overrides for this instance.
            An override can mark a retryable code as non-retryable; it is never
            able to make a non-retryable code retryable.
    """

    def __init__(
        self,
        rules: Iterable[Rule] = DEFAULT_RULES,
        retryable_overrides: Optional[Dict[ErrorCode, bool]] = None,
    ):
        self.rules = tuple(rules)
        self.retryable_overrides = dict(retryable_overrides or {})

    def code_for(self, error: BaseException) -> ErrorCode:
        text = f"{type(error).__name__} {error}"
        for rule in self.rules:
            if rule.matches(text):
                return rule.code
        return ErrorCode.INTERNAL_ERROR

    def retryable_for(self, code: ErrorCode) -> bool:
        default = is_retryable(code)
        override = self.retryable_overrides.get(code)
        if override is None:
            return default
        return default and bool(override)

    def classify(self, error: BaseException) -> BrowserToolError:
        if isinstance(error, BrowserToolError):
            return error
        code = self.code_for(error)
        return BrowserToolError(
            code,
            str(error) or type(error).__name__,
            details={"original_error": type(error).__name__},
            retryable=self.retryable_for(code),
        )


_default_classifier = ErrorClassifier()


def classify(error: BaseException) -> BrowserToolError:
    """Classify with the default rule set."""
    return _default_classifier.classify(error)


# ============================================================================
# Direct constructors
# ============================================================================

def create_error(code: ErrorCode, message: str, details: Optional[Dict[str, Any]] = None) -> BrowserToolError:
    return BrowserToolError(code, message, details)


def session_not_found(session_id: str) -> BrowserToolError:
    return BrowserToolError(
        ErrorCode.SESSION_NOT_FOUND,
        f"Session not found: {session_id}",
        {"session_id": session_id},
    )


def page_not_found(page_id: str, message: Optional[str] = None) -> BrowserToolError:
    return BrowserToolError(
        ErrorCode.PAGE_NOT_FOUND,
        message or f"Page not found: {page_id}",
        {"page_id": page_id},
    )


def element_not_found(selector: str, context: Optional[str] = None) -> BrowserToolError:
    message = f"Element not found: {selector}"
    if context:
        message += f" ({context})"
    return BrowserToolError(
        ErrorCode.ELEMENT_NOT_FOUND,
        message,
        {"selector": selector, "context": context},
    )


def validation_error(field: str, issue: str) -> BrowserToolError:
    return BrowserToolError(
        ErrorCode.VALIDATION_FAILED,
        f"Invalid {field}: {issue}",
        {"field": field, "issue": issue},
    )


def timeout_error(operation: str, timeout_secs: float) -> BrowserToolError:
    timeout_ms = int(round(timeout_secs * 1000))
    return BrowserToolError(
        ErrorCode.TIMEOUT_EXCEEDED,
        f"{operation} timed out after {timeout_ms}ms",
        {"operation": operation, "timeout_ms": timeout_ms},
    )


def security_violation(reason: str) -> BrowserToolError:
    return BrowserToolError(
        ErrorCode.SECURITY_VIOLATION,
        f"Security violation: {reason}",
        {"reason": reason},
        retryable=False,
    )


def capacity_exceeded(current: int, maximum: int) -> BrowserToolError:
    return BrowserToolError(
        ErrorCode.CAPACITY_EXCEEDED,
        f"Maximum concurrent sessions reached ({current}/{maximum}). "
        f"Close an existing session before launching a new one.",
        {"current": current, "max": maximum},
    )


def rate_limit_exceeded(max_requests: int, window_secs: float) -> BrowserToolError:
    return BrowserToolError(
        ErrorCode.RATE_LIMIT_EXCEEDED,
        f"Rate limit exceeded: at most {max_requests} requests per {window_secs:g} seconds",
        {"max_requests": max_requests, "window_secs": window_secs},
    )


__all__ = [
    "ErrorCode",
    "RETRYABLE_CODES",
    "is_retryable",
    "BrowserToolError",
    "SubstringRule",
    "RegexRule",
    "Rule",
    "DEFAULT_RULES",
    "ErrorClassifier",
    "classify",
    "create_error",
    "session_not_found",
    "page_not_found",
    "element_not_found",
    "validation_error",
    "timeout_error",
    "security_violation",
    "capacity_exceeded",
    "rate_limit_exceeded",
]
