"""
Unit tests for the Google Calendar adapter; the discovery client is patched out.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import httplib2
import pytest
from googleapiclient.errors import HttpError

from calsync.exceptions import CursorExpiredError, ProviderNotFoundError
from calsync.services.calendar.base import EventPayload
from calsync.services.calendar.google_calendar_service import GoogleCalendarService, _parse_google_time


def http_error(status: int) -> HttpError:
    return HttpError(httplib2.Response({"status": str(status), "reason": "error"}), b"{}")


def google_item(**overrides):
    item = {
        "id": "g-1",
        "status": "confirmed",
        "summary": "Demo",
        "start": {"dateTime": "2026-03-10T10:00:00-04:00", "timeZone": "America/New_York"},
        "end": {"dateTime": "2026-03-10T10:30:00-04:00", "timeZone": "America/New_York"},
    }
    item.update(overrides)
    return item


class TestParseGoogleTime:

    def test_offset_is_normalised_to_utc(self):
        parsed = _parse_google_time({"dateTime": "2026-03-10T10:00:00-04:00"})

        assert parsed == datetime(2026, 3, 10, 14, 0, tzinfo=timezone.utc)

    def test_all_day_date(self):
        assert _parse_google_time({"date": "2026-03-10"}) == datetime(2026, 3, 10, tzinfo=timezone.utc)

    def test_neither_field_raises(self):
        with pytest.raises(ValueError):
            _parse_google_time({})


class TestToCanonical:

    def test_cancelled_item_carries_only_id(self):
        event = GoogleCalendarService().to_canonical({"id": "g-1", "status": "cancelled"})

        assert event.cancelled is True
        assert event.start is None

    def test_meet_link_and_private_properties(self):
        item = google_item(
            conferenceData={"entryPoints": [{"entryPointType": "video", "uri": "https://meet.example/abc"}]},
            extendedProperties={"private": {"calsync_status": "confirmed"}},
        )

        event = GoogleCalendarService().to_canonical(item)

        assert event.start == datetime(2026, 3, 10, 14, 0, tzinfo=timezone.utc)
        assert event.timezone == "America/New_York"
        assert event.video_link == "https://meet.example/abc"
        assert event.properties == {"calsync_status": "confirmed"}
        assert event.all_day is False


class TestBuildBody:

    def test_conference_request_and_reminders(self):
        payload = EventPayload(
            title="Demo",
            start=datetime(2026, 3, 10, 14, tzinfo=timezone.utc),
            end=datetime(2026, 3, 10, 14, 30, tzinfo=timezone.utc),
            request_conference=True,
            conference_request_id="evt-1",
            properties={"calsync_event_id": "evt-1"},
        )

        body = GoogleCalendarService().build_body(payload)

        assert body["conferenceData"]["createRequest"]["requestId"] == "calsync-meet-evt-1"
        assert [r["minutes"] for r in body["reminders"]["overrides"]] == [30, 10]
        assert body["extendedProperties"] == {"private": {"calsync_event_id": "evt-1"}}

    def test_partial_body_never_requests_conference(self):
        body = GoogleCalendarService().build_body(EventPayload(title="Demo", request_conference=True), partial=True)

        assert body == {"summary": "Demo"}


class TestFetchChanges:

    def _patched_service(self, execute):
        service = MagicMock()
        service.events.return_value.list.return_value.execute = execute
        return patch.object(GoogleCalendarService, "_service", return_value=service)

    def test_sync_token_gone_is_cursor_expiry(self):
        with self._patched_service(MagicMock(side_effect=http_error(410))):
            with pytest.raises(CursorExpiredError):
                GoogleCalendarService().fetch_changes("token", "primary", cursor="stale")

    def test_gone_without_cursor_is_not_found(self):
        with self._patched_service(MagicMock(side_effect=http_error(404))):
            with pytest.raises(ProviderNotFoundError):
                GoogleCalendarService().fetch_changes("token", "missing")

    def test_page_fields(self):
        execute = MagicMock(return_value={"items": [google_item()], "nextSyncToken": "sync-2"})
        with self._patched_service(execute):
            page = GoogleCalendarService().fetch_changes("token", "primary", cursor="sync-1")

        assert page.next_cursor == "sync-2"
        assert page.has_more is False
        assert page.items[0]["id"] == "g-1"


def meet_payload():
    return EventPayload(
        title="Demo",
        start=datetime(2026, 3, 10, 14, tzinfo=timezone.utc),
        end=datetime(2026, 3, 10, 14, 30, tzinfo=timezone.utc),
        request_conference=True,
        conference_request_id="evt-1",
    )


class TestInsertEvent:

    def _patched_service(self, inserted, fetched=None):
        service = MagicMock()
        service.events.return_value.insert.return_value.execute = MagicMock(return_value=inserted)
        service.events.return_value.get.return_value.execute = MagicMock(return_value=fetched)
        return service, patch.object(GoogleCalendarService, "_service", return_value=service)

    def test_pending_meet_link_is_read_back(self):
        pending = {"id": "g-1", "htmlLink": "https://calendar.google.com/event?eid=1",
                   "conferenceData": {"createRequest": {"status": {"statusCode": "pending"}}}}
        ready = dict(pending, conferenceData={
            "entryPoints": [{"entryPointType": "video", "uri": "https://meet.google.com/abc-defg-hij"}],
        })
        service, patched = self._patched_service(pending, ready)
        with patched:
            created = GoogleCalendarService().insert_event("token", None, meet_payload())

        assert created.video_link == "https://meet.google.com/abc-defg-hij"
        assert created.external_id == "g-1"
        service.events.return_value.get.assert_called_once_with(calendarId="primary", eventId="g-1")

    def test_link_in_insert_response_skips_the_read(self):
        inserted = {"id": "g-1", "hangoutLink": "https://meet.google.com/abc-defg-hij"}
        service, patched = self._patched_service(inserted)
        with patched:
            created = GoogleCalendarService().insert_event("token", "primary", meet_payload())

        assert created.video_link == "https://meet.google.com/abc-defg-hij"
        service.events.return_value.get.assert_not_called()

    def test_plain_event_has_no_video_link(self):
        service, patched = self._patched_service({"id": "g-1"})
        with patched:
            created = GoogleCalendarService().insert_event("token", "primary", EventPayload(title="Demo"))

        assert created.video_link is None
        service.events.return_value.get.assert_not_called()


class TestFetchBusy:

    def test_free_and_cancelled_events_do_not_block_time(self):
        service = MagicMock()
        service.events.return_value.list.return_value.execute = MagicMock(return_value={"items": [
            google_item(),
            google_item(id="g-2", transparency="transparent"),
            google_item(id="g-3", status="cancelled"),
        ]})
        with patch.object(GoogleCalendarService, "_service", return_value=service):
            busy = GoogleCalendarService().fetch_busy(
                "token", "primary",
                datetime(2026, 3, 10, tzinfo=timezone.utc),
                datetime(2026, 3, 11, tzinfo=timezone.utc),
            )

        assert len(busy) == 1
        assert busy[0].start == datetime(2026, 3, 10, 14, tzinfo=timezone.utc)
