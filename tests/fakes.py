"""
In-memory provider doubles shared by the test suite.

FakeCalendarAdapter implements the token-level primitives of
CalendarProviderAdapter over plain Python state, so the integration-level
behaviour (token refresh, fallbacks, idempotent delete) runs unmodified.
"""

import dataclasses
import time
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from calsync.exceptions import CursorExpiredError, ProviderNotFoundError
from calsync.models.base import utcnow
from calsync.models.calendar_integration import CalendarIntegration
from calsync.schemas.calendar_events import TimeSlot
from calsync.services.calendar.base import (
    CalendarProviderAdapter,
    ChangePage,
    CreatedEvent,
    EventPayload,
    ProviderEvent,
    TokenGrant,
)
from calsync.utils.encryption import encrypt_token


class FakeCalendarAdapter(CalendarProviderAdapter):

    def __init__(self, provider: str, native_video_provider: Optional[str] = None,
                 default_calendar_id: Optional[str] = None):
        self.provider = provider
        self.native_video_provider = native_video_provider
        self.DEFAULT_CALENDAR_ID = default_calendar_id
        self.conference_link = f"https://{provider}.example/join/1"

        self.busy: List[TimeSlot] = []
        self.busy_error: Optional[Exception] = None
        self.busy_delay_seconds = 0.0
        self.busy_calls = 0

        self.pages: Dict[Optional[str], ChangePage] = {None: ChangePage()}
        self.expired_cursors = set()
        self.changes_error: Optional[Exception] = None
        self.change_requests: List[tuple] = []

        self.created: List[tuple] = []
        self.patched: List[tuple] = []
        self.removed: List[str] = []
        self.remove_error: Optional[Exception] = None
        self.missing_calendars = set()

        self.refresh_error: Optional[Exception] = None
        self.refresh_delay_seconds = 0.0
        self.refresh_calls = 0

    def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        self.refresh_calls += 1
        if self.refresh_delay_seconds:
            time.sleep(self.refresh_delay_seconds)
        if self.refresh_error:
            raise self.refresh_error
        return TokenGrant(access_token="refreshed-access", expires_at=utcnow() + timedelta(hours=1))

    def fetch_busy(self, access_token, calendar_id, start, end) -> List[TimeSlot]:
        self.busy_calls += 1
        if self.busy_delay_seconds:
            time.sleep(self.busy_delay_seconds)
        if self.busy_error:
            raise self.busy_error
        return [slot for slot in self.busy if slot.overlaps(start, end)]

    def fetch_changes(self, access_token, calendar_id, cursor=None, page_token=None) -> ChangePage:
        self.change_requests.append((cursor, page_token))
        if self.changes_error:
            raise self.changes_error
        if cursor and cursor in self.expired_cursors:
            raise CursorExpiredError("cursor expired", provider=self.provider, status_code=410)
        return dataclasses.replace(self.pages[page_token])

    def insert_event(self, access_token, calendar_id, payload: EventPayload) -> CreatedEvent:
        if calendar_id in self.missing_calendars:
            raise ProviderNotFoundError("calendar not found", provider=self.provider, status_code=404)
        self.created.append((calendar_id, payload))
        external_id = f"{self.provider}-{len(self.created)}"
        return CreatedEvent(
            external_id=external_id,
            video_link=self.conference_link if payload.request_conference else None,
        )

    def patch_event(self, access_token, calendar_id, external_id, payload: EventPayload) -> None:
        self.patched.append((external_id, payload))

    def remove_event(self, access_token, calendar_id, external_id) -> None:
        if self.remove_error:
            raise self.remove_error
        if external_id in self.removed:
            raise ProviderNotFoundError("event gone", provider=self.provider, status_code=410)
        self.removed.append(external_id)

    def to_canonical(self, item: Dict[str, Any]) -> ProviderEvent:
        if item.get("cancelled"):
            return ProviderEvent(external_id=item["id"], cancelled=True)
        return ProviderEvent(
            external_id=item["id"],
            start=datetime.fromisoformat(item["start"]),
            end=datetime.fromisoformat(item["end"]),
            title=item.get("title", "(No title)"),
            description=item.get("description"),
            video_link=item.get("video_link"),
            properties=item.get("properties", {}),
        )


class FakeMeetingService:
    provider = "zoom"
    video_provider = "zoom"

    def __init__(self, configured: bool = True):
        self.configured = configured
        self.created: List[str] = []
        self.updated: List[str] = []
        self.deleted: List[str] = []

    def is_configured(self) -> bool:
        return self.configured

    def create_meeting(self, title, start, end, timezone="UTC") -> CreatedEvent:
        meeting_id = f"zoom-{len(self.created) + 1}"
        self.created.append(meeting_id)
        return CreatedEvent(external_id=meeting_id, video_link=f"https://zoom.example/j/{meeting_id}")

    def update_meeting(self, meeting_id, title=None, start=None, end=None, timezone=None) -> None:
        self.updated.append(meeting_id)

    def delete_meeting(self, meeting_id) -> bool:
        if meeting_id in self.deleted:
            return False
        self.deleted.append(meeting_id)
        return True


def make_integration(
        db,
        company_id,
        provider: str,
        expires_in: timedelta = timedelta(hours=1),
        refresh_token: Optional[str] = "refresh-token",
        sync_token: Optional[str] = None,
        calendar_id: Optional[str] = None,
        is_active: bool = True
) -> CalendarIntegration:
    integration = CalendarIntegration(
        company_id=company_id,
        provider=provider,
        is_active=is_active,
        access_token_encrypted=encrypt_token("stored-access"),
        refresh_token_encrypted=encrypt_token(refresh_token),
        token_expires_at=utcnow() + expires_in,
        calendar_id=calendar_id,
        sync_token=sync_token,
        provider_config={},
    )
    db.add(integration)
    db.commit()
    db.refresh(integration)
    return integration
