"""
Unit tests for provider event descriptions.
"""

from datetime import datetime, timedelta, timezone

from calsync.models.calendar_event import CalendarEvent
from calsync.services.calendar.description import FOOTER, build_event_description


def make_event(**overrides) -> CalendarEvent:
    start = datetime(2026, 3, 10, 14, 0, tzinfo=timezone.utc)
    fields = dict(
        title="Demo call",
        start_time=start,
        end_time=start + timedelta(minutes=30),
        event_type="follow_up",
        confirmation_status="unconfirmed",
    )
    fields.update(overrides)
    return CalendarEvent(**fields)


class TestBuildEventDescription:

    def test_header_and_footer(self):
        text = build_event_description(make_event())

        lines = text.splitlines()
        assert lines[0] == "[FOLLOW UP]"
        assert lines[-1] == FOOTER

    def test_foreign_video_link_is_written_out(self):
        event = make_event(video_provider="google_meet", video_link="https://meet.example/abc")

        text = build_event_description(event, native_video_provider="microsoft_teams")

        assert "Google Meet Meeting: https://meet.example/abc" in text

    def test_native_video_link_is_left_to_the_provider(self):
        event = make_event(video_provider="google_meet", video_link="https://meet.example/abc")

        text = build_event_description(event, native_video_provider="google_meet")

        assert "https://meet.example/abc" not in text

    def test_contact_details_and_confirmation(self):
        event = make_event(
            contact_name="Ana",
            contact_phone="+15550100",
            contact_email="ana@example.com",
            agent_name="Sam",
            confirmation_status="confirmed",
            notes="Bring the contract",
            description="Quarterly review",
        )

        text = build_event_description(event)

        for expected in ("Contact: Ana", "Phone: +15550100", "Email: ana@example.com", "Agent: Sam",
                         "Confirmation: confirmed", "Notes: Bring the contract", "Quarterly review"):
            assert expected in text

    def test_unconfirmed_status_is_omitted(self):
        assert "Confirmation" not in build_event_description(make_event())
