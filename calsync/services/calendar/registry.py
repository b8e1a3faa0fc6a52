# calsync/services/calendar/registry.py
from typing import Dict, Iterator, Optional
import logging

from calsync.exceptions import UnknownProviderError
from calsync.services.calendar.base import CalendarProviderAdapter
from calsync.services.calendar.google_calendar_service import GoogleCalendarService
from calsync.services.calendar.outlook_service import OutlookCalendarService
from calsync.services.calendar.zoom_service import ZoomService

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Calendar adapters keyed by provider identifier, plus the optional meeting service."""

    def __init__(self, adapters: Optional[Dict[str, CalendarProviderAdapter]] = None, meetings=None):
        self._adapters: Dict[str, CalendarProviderAdapter] = dict(adapters or {})
        self.meetings = meetings

    def register(self, adapter: CalendarProviderAdapter) -> None:
        self._adapters[adapter.provider] = adapter

    def get(self, provider: str) -> CalendarProviderAdapter:
        try:
            return self._adapters[provider]
        except KeyError:
            raise UnknownProviderError(f"No calendar adapter registered for '{provider}'")

    def has(self, provider: str) -> bool:
        return provider in self._adapters

    def for_video_provider(self, video_provider: Optional[str]) -> Optional[CalendarProviderAdapter]:
        """Calendar adapter that generates links of this type natively, if any."""
        for adapter in self._adapters.values():
            if video_provider and adapter.native_video_provider == video_provider:
                return adapter
        return None

    def __iter__(self) -> Iterator[CalendarProviderAdapter]:
        return iter(self._adapters.values())


_default_registry: Optional[ProviderRegistry] = None


def build_default_registry() -> ProviderRegistry:
    registry = ProviderRegistry(meetings=ZoomService())
    registry.register(GoogleCalendarService())
    registry.register(OutlookCalendarService())
    logger.info("Calendar provider registry initialised")
    return registry


def get_provider_registry() -> ProviderRegistry:
    """Process-wide registry wired with the real adapters (FastAPI dependency / worker entry)."""
    global _default_registry
    if _default_registry is None:
        _default_registry = build_default_registry()
    return _default_registry
