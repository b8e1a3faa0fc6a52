"""
Unit tests for the CalendarEvent external-id and metadata accessors.
"""

from datetime import datetime, timedelta, timezone

from calsync.models.calendar_event import CalendarEvent, ExternalIds


def make_event(**overrides) -> CalendarEvent:
    start = datetime(2026, 3, 10, 14, 0, tzinfo=timezone.utc)
    fields = dict(title="Demo", start_time=start, end_time=start + timedelta(minutes=30),
                  external_id_map={}, event_metadata={})
    fields.update(overrides)
    return CalendarEvent(**fields)


class TestExternalIds:

    def test_empty_values_are_dropped(self):
        ids = ExternalIds({"google_calendar": "g-1", "microsoft_outlook": None, "zoom": ""})

        assert ids.to_dict() == {"google_calendar": "g-1"}

    def test_with_id_returns_a_new_map(self):
        ids = ExternalIds({"google_calendar": "g-1"})

        updated = ids.with_id("zoom", "z-1")

        assert ids.get("zoom") is None
        assert updated.get("zoom") == "z-1"
        assert updated == ExternalIds({"google_calendar": "g-1", "zoom": "z-1"})


class TestCalendarEventAccessors:

    def test_set_external_id_reassigns_the_column(self):
        event = make_event(external_id_map={"google_calendar": "g-1"})
        before = event.external_id_map

        event.set_external_id("microsoft_outlook", "m-1")

        assert event.external_id_map is not before
        assert event.external_ids.get("google_calendar") == "g-1"
        assert event.external_ids.get("microsoft_outlook") == "m-1"

    def test_external_ids_tolerates_null_column(self):
        event = make_event(external_id_map=None)

        assert event.external_ids.get("google_calendar") is None

    def test_update_metadata_merges(self):
        event = make_event(event_metadata={"sync_targets": ["google_calendar"]})

        event.update_metadata(no_show_count=1)

        assert event.event_metadata == {"sync_targets": ["google_calendar"], "no_show_count": 1}
