"""Custom exceptions for the calendar sync service."""
from typing import Optional


class CalendarError(Exception):
    """Base class for calendar engine errors."""

    pass


class ReauthorizationRequired(CalendarError):
    """Raised when an integration's token cannot be refreshed; the integration is deactivated."""

    def __init__(self, provider: str, integration_id=None, message: Optional[str] = None):
        super().__init__(message or f"{provider} authorization expired. Please reconnect.")
        self.provider = provider
        self.integration_id = integration_id


class ProviderError(CalendarError):
    """Raised for errors returned by an external calendar or meeting provider."""

    def __init__(self, message: str, provider: str = None, status_code: int = None, details: dict = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.details = details


class ProviderNotFoundError(ProviderError):
    """Raised when the provider reports the calendar or item as missing (404/410)."""

    pass


class CursorExpiredError(ProviderError):
    """Raised when a stored continuation token is rejected by the provider."""

    pass


class ProviderRateLimitError(ProviderError):
    """Raised for rate limiting errors (429)."""

    pass


class ProviderServerError(ProviderError):
    """Raised for server-side errors (5xx)."""

    pass


class EventNotFoundError(CalendarError):
    """Raised when a local calendar event does not exist."""

    pass


class IntegrationNotFoundError(CalendarError):
    """Raised when an integration does not exist."""

    pass


class InvalidTransitionError(CalendarError, ValueError):
    """Raised when an appointment status change is not allowed."""

    pass


class UnknownProviderError(CalendarError, KeyError):
    """Raised when no adapter is registered for a provider identifier."""

    pass


def error_for_status(status_code: int, message: str, provider: str = None, details: dict = None) -> ProviderError:
    """Map an HTTP status code onto the provider error taxonomy."""
    if status_code in (404, 410):
        cls = ProviderNotFoundError
    elif status_code == 429:
        cls = ProviderRateLimitError
    elif status_code >= 500:
        cls = ProviderServerError
    else:
        cls = ProviderError
    return cls(message, provider=provider, status_code=status_code, details=details)
