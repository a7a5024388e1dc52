from __future__ import annotations

from typing import Any, Mapping

from openai import APIConnectionError, APIStatusError, APITimeoutError, RateLimitError

from .errors import AIScrapeError

_RETRYABLE_STATUS = frozenset({408, 409, 429})


def _header(headers: Any, name: str) -> Any:
    if headers is None:
        return None
    if not isinstance(headers, Mapping):
        try:
            headers = dict(headers)
        except Exception:
            return None
    for key in (name, name.lower(), name.title()):
        if key in headers:
            return headers[key]
    return None


def retry_after_seconds(exc: BaseException) -> float | None:
    """Retry-After hint from the exception or its HTTP response, in seconds."""
    direct = getattr(exc, "retry_after", None)
    if direct is None:
        response = getattr(exc, "response", None)
        direct = _header(getattr(response, "headers", None), "retry-after")
    if direct is None:
        return None
    if isinstance(direct, (list, tuple)):
        direct = direct[0] if direct else None
    try:
        seconds = float(str(direct).strip())
    except (TypeError, ValueError):
        return None
    return seconds if seconds >= 0 else None


def _status_code(exc: BaseException) -> int | None:
    val = getattr(exc, "status_code", None)
    if val is None:
        val = getattr(exc, "http_status", None)
    try:
        return int(val) if val is not None else None
    except (TypeError, ValueError):
        return None


def is_retryable_openai_exception(exc: BaseException) -> tuple[bool, float | None, str | None]:
    """
    Page-extraction service retry policy.

    AIScrapeError wraps the SDK error, so the cause is inspected too.
    Retryable: connection errors, timeouts, HTTP 408/409/429 and 5xx.
    """
    if isinstance(exc, AIScrapeError) and exc.__cause__ is not None:
        exc = exc.__cause__

    hint = retry_after_seconds(exc)

    if isinstance(exc, APITimeoutError):
        return True, hint, "timeout"
    if isinstance(exc, APIConnectionError):
        return True, hint, "connection_error"
    if isinstance(exc, RateLimitError):
        return True, hint, "rate_limited"

    code = _status_code(exc)
    if isinstance(exc, APIStatusError) or code is not None:
        reason = f"http_{code}" if code is not None else "http_status"
        if code in _RETRYABLE_STATUS or (code is not None and code >= 500):
            return True, hint, reason
        return False, None, reason

    return False, None, None
