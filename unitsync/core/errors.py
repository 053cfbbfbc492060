"""Core exception hierarchy for unitsync.

This module defines the exception classes used throughout unitsync.
All unitsync exceptions inherit from UnitSyncError, enabling both specific
and broad exception handling.

Exception Hierarchy:
    UnitSyncError (base)
    ├── InputUnavailableError - input workbook missing or unreadable (fatal)
    ├── FetchError - page retrieval failed after all engine attempts
    ├── BrowserLaunchError - rendering session could not start (fatal)
    ├── NotFoundError - catalog reports the unit does not exist (terminal)
    ├── HttpStatusError - navigation answered an error status (retried)
    ├── StorageError - corpus / classification log issues
    └── ConfigurationError - config issues
        └── InvalidConfigError

Fetch failures carry an advisory ErrorKind computed by classify_error().
"""

import re
from enum import Enum
from typing import Any, Dict, Optional, Union


class ErrorKind(str, Enum):
    """Advisory classification of a transient fetch failure."""

    TIMEOUT = "timeout"
    NETWORK = "network"
    PARSE = "parse"
    UNKNOWN = "unknown"


class UnitSyncError(Exception):
    """Base exception for all unitsync errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code (e.g., "FETCH_FAILED")
        details: Optional dict with additional context
    """

    error_code: str = "UNITSYNC_ERROR"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        if error_code:
            self.error_code = error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dict for JSON output."""
        return {
            "error": True,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details
        }


class InputUnavailableError(UnitSyncError):
    """Input workbook could not be read. Aborts the run before any fetching."""
    error_code = "INPUT_UNAVAILABLE"

    def __init__(self, path: str, reason: str = "not found"):
        super().__init__(
            f"Input workbook unavailable: {path} ({reason})",
            details={"path": path, "reason": reason}
        )


class FetchError(UnitSyncError):
    """All engine attempts for a URL failed.

    The message keeps the ``FetchFailed:<KIND>:<message>`` shape so the
    classification survives being flattened to text in the error log.
    """
    error_code = "FETCH_FAILED"

    def __init__(self, url: str, kind: ErrorKind, message: str, attempts: int = 1):
        self.url = url
        self.kind = kind
        self.attempts = attempts
        super().__init__(
            f"FetchFailed:{kind.value.upper()}:{message}",
            details={"url": url, "kind": kind.value, "attempts": attempts}
        )


class BrowserLaunchError(UnitSyncError):
    """The headless browser could not be started. Aborts the run."""
    error_code = "BROWSER_LAUNCH_FAILED"

    def __init__(self, reason: str):
        super().__init__(f"Browser launch failed: {reason}", details={"reason": reason})


class NotFoundError(UnitSyncError):
    """The catalog has no page for this unit. Never retried."""
    error_code = "NOT_FOUND"

    def __init__(self, code: str, reason: str = "404 - Unit not found"):
        self.code = code
        self.reason = reason
        super().__init__(
            f"{code}: {reason}",
            details={"code": code, "reason": reason}
        )


class HttpStatusError(UnitSyncError):
    """Navigation returned an error status other than not-found. Retried."""
    error_code = "HTTP_STATUS"

    def __init__(self, url: str, status: int):
        self.status = status
        super().__init__(f"HTTP {status} for {url}", details={"url": url, "status": status})


class StorageError(UnitSyncError):
    """Base class for storage errors."""
    error_code = "STORAGE_ERROR"

    def __init__(self, message: str, path: Optional[str] = None, original_error: Optional[Exception] = None):
        self.original_error = original_error
        super().__init__(message, details={"path": path})


# Configuration Errors
class ConfigurationError(UnitSyncError):
    """Base class for configuration errors."""
    error_code = "CONFIG_ERROR"


class InvalidConfigError(ConfigurationError):
    """Configuration value is invalid."""
    error_code = "INVALID_CONFIG"

    def __init__(self, config_key: str, value: Any, reason: str):
        super().__init__(
            f"Invalid value for '{config_key}': {reason}",
            details={"config_key": config_key, "value": str(value), "reason": reason}
        )


ErrorLike = Union[BaseException, str, None]

_TIMEOUT_MARKERS = ("timed out", "timeout")
_NETWORK_MARKERS = ("net::err", "econn", "socket", "epipe", "connection reset", "connection refused")
_PARSE_MARKERS = ("parse", "json")
_NOT_FOUND_PATTERN = re.compile(r"\b404\b|\bnot found\b", re.IGNORECASE)


def _message_of(error: ErrorLike) -> str:
    if error is None:
        return ""
    if isinstance(error, str):
        return error
    return str(error) or type(error).__name__


def classify_error(error: ErrorLike) -> ErrorKind:
    """Classify a failure by inspecting its message.

    Args:
        error: Exception or raw message text

    Returns:
        ErrorKind; UNKNOWN when nothing recognizable is found
    """
    if isinstance(error, FetchError):
        return error.kind
    msg = _message_of(error).lower()
    if not msg:
        return ErrorKind.UNKNOWN
    if any(marker in msg for marker in _TIMEOUT_MARKERS):
        return ErrorKind.TIMEOUT
    if any(marker in msg for marker in _NETWORK_MARKERS):
        return ErrorKind.NETWORK
    if any(marker in msg for marker in _PARSE_MARKERS):
        return ErrorKind.PARSE
    return ErrorKind.UNKNOWN


def is_not_found(error: ErrorLike) -> bool:
    """Return True when the failure means the resource does not exist.

    Exceptions count only when they are NotFoundError; other failures (a
    FetchError whose message quotes a URL containing "404", say) stay
    transient. Raw text must carry "404" or "not found" as whole words.
    """
    if isinstance(error, BaseException):
        return isinstance(error, NotFoundError)
    return bool(_NOT_FOUND_PATTERN.search(_message_of(error)))


class ErrorClassifier:
    """Process-wide error classifier handed to components through RunContext.

    Wraps the module functions so callers (and tests) can substitute their own
    rules without patching module globals.
    """

    def classify(self, error: ErrorLike) -> ErrorKind:
        return classify_error(error)

    def is_not_found(self, error: ErrorLike) -> bool:
        return is_not_found(error)

    def describe(self, error: ErrorLike) -> str:
        """Short one-line description used in log output."""
        text = " ".join(_message_of(error).split())
        return text[:300]
