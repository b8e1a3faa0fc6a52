"""
Unit tests for the Microsoft Graph adapter with requests patched out.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest

from calsync.exceptions import CursorExpiredError, ProviderRateLimitError
from calsync.services.calendar.base import EventPayload
from calsync.services.calendar.outlook_service import (
    EXTENDED_PROPERTY_ID,
    OutlookCalendarService,
    _parse_graph_time,
)

REQUEST = "calsync.services.calendar.outlook_service.requests.request"


def response(status_code: int = 200, payload=None) -> MagicMock:
    mock = MagicMock()
    mock.status_code = status_code
    mock.json.return_value = payload or {}
    mock.text = str(payload)
    return mock


def graph_event(**overrides):
    item = {
        "id": "m-1",
        "subject": "Demo",
        "body": {"contentType": "text", "content": "Agenda"},
        "start": {"dateTime": "2026-03-10T14:00:00.0000000", "timeZone": "UTC"},
        "end": {"dateTime": "2026-03-10T14:30:00.0000000", "timeZone": "UTC"},
        "isAllDay": False,
    }
    item.update(overrides)
    return item


class TestGraphTime:

    def test_seven_digit_fraction_is_parsed_as_utc(self):
        parsed = _parse_graph_time({"dateTime": "2026-03-10T14:00:00.1234567"})

        assert parsed == datetime(2026, 3, 10, 14, 0, 0, 123456, tzinfo=timezone.utc)


class TestToCanonical:

    def test_removed_item_is_cancelled(self):
        event = OutlookCalendarService().to_canonical({"id": "m-1", "@removed": {"reason": "deleted"}})

        assert event.cancelled is True
        assert event.start is None

    def test_regular_item(self):
        item = graph_event(
            onlineMeeting={"joinUrl": "https://teams.example/j/1"},
            singleValueExtendedProperties=[
                {"id": EXTENDED_PROPERTY_ID.format(name="calsync_type"), "value": "callback"},
                {"id": "String {other} Name foo", "value": "ignored"},
            ],
        )

        event = OutlookCalendarService().to_canonical(item)

        assert event.title == "Demo"
        assert event.description == "Agenda"
        assert event.end - event.start == timedelta(minutes=30)
        assert event.video_link == "https://teams.example/j/1"
        assert event.properties == {"calsync_type": "callback"}

    def test_missing_start_raises(self):
        item = graph_event()
        del item["start"]

        with pytest.raises(KeyError):
            OutlookCalendarService().to_canonical(item)


class TestBuildBody:

    def test_full_body_requests_teams_meeting(self):
        payload = EventPayload(
            title="Demo",
            start=datetime(2026, 3, 10, 14, tzinfo=timezone.utc),
            end=datetime(2026, 3, 10, 14, 30, tzinfo=timezone.utc),
            request_conference=True,
            properties={"calsync_event_id": "abc"},
        )

        body = OutlookCalendarService().build_body(payload)

        assert body["isOnlineMeeting"] is True
        assert body["onlineMeetingProvider"] == "teamsForBusiness"
        assert body["reminderMinutesBeforeStart"] == 10
        assert body["start"] == {"dateTime": "2026-03-10T14:00:00", "timeZone": "UTC"}
        assert body["singleValueExtendedProperties"][0]["value"] == "abc"

    def test_partial_body_has_no_reminder_or_meeting(self):
        body = OutlookCalendarService().build_body(EventPayload(title="Renamed"), partial=True)

        assert body == {"subject": "Renamed"}


class TestFetchChanges:

    def test_full_listing_returns_delta_link(self):
        payload = {"value": [graph_event()], "@odata.deltaLink": "https://graph.example/delta?token=1"}
        with patch(REQUEST, return_value=response(200, payload)) as request:
            page = OutlookCalendarService().fetch_changes("token", None)

        assert page.next_cursor == "https://graph.example/delta?token=1"
        assert page.has_more is False
        assert len(page.items) == 1
        assert request.call_args.args[1].endswith("/me/calendar/calendarView/delta")

    def test_next_link_means_more_pages(self):
        payload = {"value": [], "@odata.nextLink": "https://graph.example/next"}
        with patch(REQUEST, return_value=response(200, payload)):
            page = OutlookCalendarService().fetch_changes("token", "cal-1")

        assert page.has_more is True
        assert page.next_page_token == "https://graph.example/next"

    def test_expired_delta_link(self):
        with patch(REQUEST, return_value=response(410, {"error": "syncStateNotFound"})):
            with pytest.raises(CursorExpiredError):
                OutlookCalendarService().fetch_changes("token", None, cursor="https://graph.example/delta?token=0")

    def test_rate_limit_is_not_a_cursor_error(self):
        with patch(REQUEST, return_value=response(429, {"error": "throttled"})):
            with pytest.raises(ProviderRateLimitError):
                OutlookCalendarService().fetch_changes("token", None, cursor="https://graph.example/delta?token=0")


class TestFetchBusy:

    def test_free_cancelled_and_declined_events_are_skipped(self):
        payload = {"value": [
            graph_event(id="busy"),
            graph_event(id="free", showAs="free"),
            graph_event(id="cancelled", isCancelled=True),
            graph_event(id="declined", responseStatus={"response": "declined"}),
        ]}
        with patch(REQUEST, return_value=response(200, payload)):
            busy = OutlookCalendarService().fetch_busy(
                "token", None,
                datetime(2026, 3, 10, tzinfo=timezone.utc), datetime(2026, 3, 11, tzinfo=timezone.utc)
            )

        assert len(busy) == 1
        assert busy[0].start == datetime(2026, 3, 10, 14, tzinfo=timezone.utc)
