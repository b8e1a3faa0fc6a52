# calsync/services/calendar/base.py
"""Uniform contract for external calendar providers.

Each provider splits its work in two layers:

* token-level primitives (``fetch_busy``, ``fetch_changes``, ``insert_event``,
  ...) that take a plain access token and never touch the database, so they
  can run in worker threads;
* integration-level operations (``list_busy``, ``list_changes``,
  ``create_event``, ...) that refresh the token through the session and
  apply the shared fallbacks.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy.orm import Session

from calsync.config.settings import get_settings
from calsync.exceptions import CursorExpiredError, ProviderNotFoundError, ReauthorizationRequired
from calsync.models.base import utcnow
from calsync.models.calendar_integration import CalendarIntegration
from calsync.schemas.calendar_events import TimeSlot
from calsync.utils.encryption import decrypt_token, encrypt_token

logger = logging.getLogger(__name__)


@dataclass
class TokenGrant:
    access_token: str
    expires_at: datetime
    refresh_token: Optional[str] = None


@dataclass
class ConnectedAccount:
    """Result of an OAuth code exchange."""

    access_token: str
    refresh_token: Optional[str]
    expires_at: datetime
    email: Optional[str] = None
    user_name: Optional[str] = None
    calendar_id: Optional[str] = None
    calendar_list: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class EventPayload:
    """Outbound event in provider-neutral form."""

    title: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    timezone: str = "UTC"
    all_day: bool = False
    attendees: List[Dict[str, Any]] = field(default_factory=list)
    request_conference: bool = False
    conference_request_id: Optional[str] = None
    properties: Dict[str, str] = field(default_factory=dict)
    cancelled: bool = False


@dataclass
class ProviderEvent:
    """Inbound event translated from a provider's native shape.

    Cancelled items may carry only the id.
    """

    external_id: str
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    title: str = "(No title)"
    description: Optional[str] = None
    location: Optional[str] = None
    timezone: str = "UTC"
    all_day: bool = False
    cancelled: bool = False
    video_link: Optional[str] = None
    attendees: List[Dict[str, Any]] = field(default_factory=list)
    recurrence_rule: Optional[str] = None
    recurring_event_id: Optional[str] = None
    properties: Dict[str, str] = field(default_factory=dict)


@dataclass
class ChangePage:
    """One page of ``list_changes``: raw provider items plus continuation state."""

    items: List[Dict[str, Any]] = field(default_factory=list)
    next_page_token: Optional[str] = None
    next_cursor: Optional[str] = None
    cursor_reset: bool = False

    @property
    def has_more(self) -> bool:
        return self.next_page_token is not None


@dataclass
class CreatedEvent:
    external_id: str
    link: Optional[str] = None
    video_link: Optional[str] = None


class CalendarProviderAdapter(ABC):
    """Base class for Google-, Microsoft- and similar calendar adapters."""

    provider: str = ""
    DEFAULT_CALENDAR_ID: Optional[str] = None
    # video_provider value this calendar generates natively
    native_video_provider: Optional[str] = None

    # ---- token-level primitives -------------------------------------------

    @abstractmethod
    def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        """Exchange a refresh token for a new access token."""

    @abstractmethod
    def fetch_busy(self, access_token: str, calendar_id: Optional[str],
                   start: datetime, end: datetime) -> List[TimeSlot]:
        """Busy intervals of non-cancelled events overlapping [start, end)."""

    @abstractmethod
    def fetch_changes(self, access_token: str, calendar_id: Optional[str],
                      cursor: Optional[str] = None, page_token: Optional[str] = None) -> ChangePage:
        """Raise CursorExpiredError when ``cursor`` is rejected."""

    @abstractmethod
    def insert_event(self, access_token: str, calendar_id: Optional[str],
                     payload: EventPayload) -> CreatedEvent:
        """Raise ProviderNotFoundError when the calendar does not exist."""

    @abstractmethod
    def patch_event(self, access_token: str, calendar_id: Optional[str],
                    external_id: str, payload: EventPayload) -> None:
        pass

    @abstractmethod
    def remove_event(self, access_token: str, calendar_id: Optional[str], external_id: str) -> None:
        """Raise ProviderNotFoundError when the event is already gone."""

    @abstractmethod
    def to_canonical(self, item: Dict[str, Any]) -> ProviderEvent:
        """Raise ValueError/KeyError on a malformed item."""

    # ---- integration-level operations ---------------------------------------

    def calendar_id_for(self, integration: CalendarIntegration) -> Optional[str]:
        return integration.calendar_id or self.DEFAULT_CALENDAR_ID

    def stored_access_token(self, integration: CalendarIntegration) -> Optional[str]:
        """The stored access token while it is outside the refresh buffer, else None"""
        buffer = timedelta(minutes=get_settings().TOKEN_REFRESH_BUFFER_MINUTES)
        expires_at = integration.token_expires_at
        if expires_at is not None and expires_at > utcnow() + buffer:
            return decrypt_token(integration.access_token_encrypted)
        return None

    def stored_refresh_token(self, db: Session, integration: CalendarIntegration) -> str:
        refresh_token = decrypt_token(integration.refresh_token_encrypted)
        if not refresh_token:
            self.deactivate(db, integration, "No refresh token stored")
            raise ReauthorizationRequired(self.provider, integration.id)
        return refresh_token

    def store_grant(self, db: Session, integration: CalendarIntegration, grant: TokenGrant) -> str:
        integration.access_token_encrypted = encrypt_token(grant.access_token)
        integration.token_expires_at = grant.expires_at
        if grant.refresh_token:
            integration.refresh_token_encrypted = encrypt_token(grant.refresh_token)
        db.commit()
        logger.info(f"Refreshed {self.provider} token for integration {integration.id}")
        return grant.access_token

    def ensure_fresh_token(self, db: Session, integration: CalendarIntegration) -> str:
        """Return a usable access token, refreshing it inside the safety buffer.

        A failed refresh deactivates the integration and raises
        ReauthorizationRequired.
        """
        access_token = self.stored_access_token(integration)
        if access_token:
            return access_token

        refresh_token = self.stored_refresh_token(db, integration)
        try:
            grant = self.refresh_access_token(refresh_token)
        except Exception as e:
            logger.error(f"Token refresh failed for {self.provider} integration {integration.id}: {e}")
            self.deactivate(db, integration, f"Token refresh failed: {e}")
            raise ReauthorizationRequired(self.provider, integration.id) from e

        return self.store_grant(db, integration, grant)

    def deactivate(self, db: Session, integration: CalendarIntegration, reason: str) -> None:
        integration.is_active = False
        integration.last_sync_status = "failed"
        integration.last_sync_error = f"Reauthorization required: {reason}"
        db.commit()

    def list_busy(self, db: Session, integration: CalendarIntegration,
                  start: datetime, end: datetime) -> List[TimeSlot]:
        access_token = self.ensure_fresh_token(db, integration)
        return self.fetch_busy(access_token, self.calendar_id_for(integration), start, end)

    def list_changes(self, db: Session, integration: CalendarIntegration,
                     cursor: Optional[str] = None, page_token: Optional[str] = None) -> ChangePage:
        access_token = self.ensure_fresh_token(db, integration)
        calendar_id = self.calendar_id_for(integration)
        try:
            return self.fetch_changes(access_token, calendar_id, cursor, page_token)
        except CursorExpiredError:
            if not cursor:
                raise
            logger.warning(
                f"{self.provider} continuation token expired for integration {integration.id}, "
                f"falling back to a full sync"
            )
            page = self.fetch_changes(access_token, calendar_id, None, None)
            page.cursor_reset = True
            return page

    def create_event(self, db: Session, integration: CalendarIntegration,
                     payload: EventPayload) -> CreatedEvent:
        access_token = self.ensure_fresh_token(db, integration)
        calendar_id = self.calendar_id_for(integration)
        try:
            return self.insert_event(access_token, calendar_id, payload)
        except ProviderNotFoundError:
            if calendar_id == self.DEFAULT_CALENDAR_ID:
                raise
            logger.warning(
                f"{self.provider} calendar {calendar_id} not found, retrying on the default calendar"
            )
            return self.insert_event(access_token, self.DEFAULT_CALENDAR_ID, payload)

    def update_event(self, db: Session, integration: CalendarIntegration,
                     external_id: str, payload: EventPayload) -> None:
        access_token = self.ensure_fresh_token(db, integration)
        self.patch_event(access_token, self.calendar_id_for(integration), external_id, payload)

    def delete_event(self, db: Session, integration: CalendarIntegration, external_id: str) -> bool:
        """Returns False when the event was already gone."""
        access_token = self.ensure_fresh_token(db, integration)
        try:
            self.remove_event(access_token, self.calendar_id_for(integration), external_id)
        except ProviderNotFoundError:
            logger.info(f"{self.provider} event {external_id} already deleted")
            return False
        return True
