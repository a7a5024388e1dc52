from __future__ import annotations


class ConfigError(RuntimeError):
    """Raised when configuration is missing or invalid."""


class InvalidInputError(ValueError):
    """Raised when the profile URL or required input is invalid."""


class SessionSetupError(RuntimeError):
    """Raised when the browser session cannot be created."""


class NavigationError(RuntimeError):
    """Raised when a page fails to load (timeout, transport error, non-2xx)."""

    def __init__(self, message: str, *, url: str | None = None, status: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status = status


class BlockedError(NavigationError):
    """Raised when the remote service actively blocks access to a page."""

    def __init__(
        self,
        message: str,
        *,
        url: str | None = None,
        status: int | None = None,
        reason: str | None = None,
    ) -> None:
        super().__init__(message, url=url, status=status)
        self.reason = reason


class AuthenticationError(RuntimeError):
    """Raised when login cannot be completed within its wait budgets."""


class ExtractionWarning(UserWarning):
    """A single field or post failed to parse; the pass continues."""


class FallbackExhaustedError(RuntimeError):
    """Every cascade stage failed. The minimal fallback keeps this internal."""


class AIScrapeError(RuntimeError):
    """Raised when the AI page-extraction service call or its parse fails."""


class ExportError(RuntimeError):
    """Raised when writing an export file fails."""
