"""
Appointment lifecycle against fake calendars: push order, rescheduling,
cancellation and no-show retries.
"""

from datetime import datetime, timedelta, timezone

import pytest

from calsync.exceptions import EventNotFoundError, InvalidTransitionError
from calsync.schemas.calendar_events import CampaignCalendarConfig, CreateEventRequest, UpdateEventRequest
from calsync.services.appointment.appointment_service import AppointmentService
from tests.fakes import make_integration

T1 = datetime(2027, 3, 9, 15, 0, tzinfo=timezone.utc)


def request(**overrides) -> CreateEventRequest:
    values = dict(
        title="Demo call",
        start_time=T1,
        end_time=T1 + timedelta(minutes=30),
        timezone="America/New_York",
        contact_name="Ana",
        contact_phone="+15550100",
    )
    values.update(overrides)
    return CreateEventRequest(**values)


@pytest.fixture
def service(registry):
    return AppointmentService(registry)


@pytest.fixture
def connected(db, company_id):
    return (
        make_integration(db, company_id, "google_calendar"),
        make_integration(db, company_id, "microsoft_outlook"),
    )


class TestCreateAppointment:

    def test_native_link_is_generated_first_and_shared(self, db, company_id, service, connected, google, outlook):
        event = service.create_appointment(db, company_id, request(video_provider="google_meet"))

        assert event.video_link == google.conference_link
        assert google.created[0][1].request_conference is True
        outlook_payload = outlook.created[0][1]
        assert outlook_payload.request_conference is False
        assert f"Google Meet Meeting: {google.conference_link}" in outlook_payload.description
        assert event.external_ids.get("google_calendar") == "google_calendar-1"
        assert event.external_ids.get("microsoft_outlook") == "microsoft_outlook-1"
        assert event.sync_status == "synced"
        assert event.integration_id == connected[0].id

    def test_teams_event_is_created_on_outlook_first(self, db, company_id, service, connected, google, outlook):
        event = service.create_appointment(db, company_id, request(video_provider="microsoft_teams"))

        assert event.video_link == outlook.conference_link
        assert event.integration_id == connected[1].id
        assert outlook.conference_link in google.created[0][1].description

    def test_zoom_meeting_precedes_every_calendar(self, db, company_id, service, connected, google, outlook,
                                                  meetings):
        event = service.create_appointment(db, company_id, request(video_provider="zoom"))

        assert meetings.created == ["zoom-1"]
        assert event.video_link == "https://zoom.example/j/zoom-1"
        assert event.external_ids.get("zoom") == "zoom-1"
        for adapter in (google, outlook):
            payload = adapter.created[0][1]
            assert payload.request_conference is False
            assert "Zoom Meeting: https://zoom.example/j/zoom-1" in payload.description

    def test_properties_identify_the_local_event(self, db, company_id, service, connected, google):
        event = service.create_appointment(db, company_id, request(event_type="follow_up"))

        properties = google.created[0][1].properties
        assert properties["calsync_event_id"] == str(event.id)
        assert properties["calsync_type"] == "follow_up"
        assert properties["calsync_status"] == "scheduled"

    def test_sync_targets_limit_the_calendars(self, db, company_id, service, connected, google, outlook):
        event = service.create_appointment(db, company_id, request(sync_to_microsoft=False))

        assert len(google.created) == 1
        assert outlook.created == []
        assert event.event_metadata["sync_targets"] == ["google_calendar"]

    def test_no_integrations_still_stores_the_event(self, db, company_id, service):
        event = service.create_appointment(db, company_id, request())

        assert event.id is not None
        assert event.sync_status == "synced"
        assert event.external_ids.to_dict() == {}

    def test_configured_calendar_missing_falls_back_to_default(self, db, company_id, service, google):
        make_integration(db, company_id, "google_calendar", calendar_id="team")
        google.missing_calendars = {"team"}

        event = service.create_appointment(db, company_id, request())

        assert google.created[0][0] == "primary"
        assert event.sync_status == "synced"

    def test_push_failure_is_recorded_and_retry_completes(self, db, company_id, service, connected, google,
                                                          outlook):
        outlook.missing_calendars = {None}

        event = service.create_appointment(db, company_id, request())

        assert event.sync_status == "error"
        assert "microsoft_outlook" in event.sync_error
        assert event.external_ids.get("google_calendar") == "google_calendar-1"

        outlook.missing_calendars = set()
        event = service.retry_push(db, event.id)

        assert event.sync_status == "synced"
        assert event.sync_error is None
        assert len(google.created) == 1
        assert len(google.patched) == 1
        assert event.external_ids.get("microsoft_outlook") == "microsoft_outlook-1"


class TestReschedule:

    def test_original_start_is_kept_across_reschedules(self, db, company_id, service, connected, google):
        event = service.create_appointment(db, company_id, request())
        t2, t3 = T1 + timedelta(days=1), T1 + timedelta(days=2)

        service.reschedule_appointment(db, event.id, t2, t2 + timedelta(minutes=30))
        event = service.reschedule_appointment(db, event.id, t3, t3 + timedelta(minutes=30), "Client asked")

        assert event.status == "rescheduled"
        assert event.rescheduled_count == 2
        assert event.original_start_time == T1
        assert event.start_time == t3
        assert event.rescheduled_reason == "Client asked"
        assert [external_id for external_id, _ in google.patched] == ["google_calendar-1"] * 2
        assert google.patched[-1][1].start == t3

    def test_end_before_start_is_rejected(self, db, company_id, service):
        event = service.create_appointment(db, company_id, request())

        with pytest.raises(ValueError):
            service.reschedule_appointment(db, event.id, T1 + timedelta(hours=2), T1 + timedelta(hours=1))

    def test_update_without_time_change_keeps_status(self, db, company_id, service):
        event = service.create_appointment(db, company_id, request())

        event = service.update_appointment(db, event.id, UpdateEventRequest(title="Renamed"))

        assert event.title == "Renamed"
        assert event.status == "scheduled"
        assert event.rescheduled_count == 0

    def test_zoom_meeting_follows_the_new_time(self, db, company_id, service, meetings):
        event = service.create_appointment(db, company_id, request(video_provider="zoom"))

        service.reschedule_appointment(db, event.id, T1 + timedelta(days=1), T1 + timedelta(days=1, minutes=30))

        assert meetings.updated == ["zoom-1"]


class TestCancel:

    def test_cancel_removes_provider_copies_once(self, db, company_id, service, connected, google, outlook):
        event = service.create_appointment(db, company_id, request())

        event = service.cancel_appointment(db, event.id, "Client cancelled")
        again = service.cancel_appointment(db, event.id)

        assert again.status == "cancelled"
        assert again.cancelled_at is not None
        assert again.cancellation_reason == "Client cancelled"
        assert google.removed == ["google_calendar-1"]
        assert outlook.removed == ["microsoft_outlook-1"]
        assert again.external_ids.get("google_calendar") == "google_calendar-1"

    def test_already_deleted_provider_copy_is_not_an_error(self, db, company_id, service, connected, google):
        event = service.create_appointment(db, company_id, request())
        service.cancel_appointment(db, event.id)

        event = service.retry_push(db, event.id)

        assert event.sync_status == "synced"

    def test_cancel_deletes_zoom_meeting(self, db, company_id, service, meetings):
        event = service.create_appointment(db, company_id, request(video_provider="zoom"))

        service.cancel_appointment(db, event.id)

        assert meetings.deleted == ["zoom-1"]

    def test_cancelled_event_cannot_be_confirmed(self, db, company_id, service):
        event = service.create_appointment(db, company_id, request())
        service.cancel_appointment(db, event.id)

        with pytest.raises(InvalidTransitionError):
            service.confirm_appointment(db, event.id)

    def test_unknown_event(self, db, service):
        import uuid

        with pytest.raises(EventNotFoundError):
            service.cancel_appointment(db, uuid.uuid4())


class TestConfirmAndNoShow:

    def test_confirm(self, db, company_id, service):
        event = service.create_appointment(db, company_id, request())

        event = service.confirm_appointment(db, event.id)

        assert event.status == "confirmed"
        assert event.confirmation_status == "confirmed"
        assert event.confirmation_attempts == 1

    def test_no_show_retry_is_linked_both_ways(self, db, company_id, service):
        event = service.create_appointment(db, company_id, request())
        retry_date = datetime(2027, 3, 10, 18, 0, tzinfo=timezone.utc)

        original, retry = service.mark_no_show(db, event.id, schedule_retry=True, retry_date=retry_date)

        assert original.status == "no_show"
        assert original.event_metadata["no_show_count"] == 1
        assert original.event_metadata["retry_event_id"] == str(retry.id)
        assert retry.retry_of_event_id == original.id
        assert retry.event_type == "no_show_retry"
        # 10:00 America/New_York on the retry date
        assert retry.start_time == datetime(2027, 3, 10, 15, 0, tzinfo=timezone.utc)
        assert retry.end_time - retry.start_time == timedelta(minutes=15)
        assert retry.title == "No-Show Retry: Ana"
        assert "Demo call" in retry.description

    def test_no_show_without_retry(self, db, company_id, service):
        event = service.create_appointment(db, company_id, request())

        original, retry = service.mark_no_show(db, event.id)

        assert retry is None
        assert "retry_event_id" not in original.event_metadata

    def test_campaign_can_disable_auto_retry(self, db, company_id, service):
        event = service.create_appointment(db, company_id, request())

        _, retry = service.handle_no_show(db, event.id, CampaignCalendarConfig(no_show_auto_retry=False))

        assert retry is None

    def test_no_show_is_terminal(self, db, company_id, service):
        event = service.create_appointment(db, company_id, request())
        service.mark_no_show(db, event.id)

        with pytest.raises(InvalidTransitionError):
            service.reschedule_appointment(db, event.id, T1 + timedelta(days=1), T1 + timedelta(days=1, hours=1))


class TestAgentScheduling:

    def test_follow_up(self, db, company_id, service):
        event = service.create_follow_up(db, company_id, "Ana", T1, "Asked for pricing", agent_name="Sam")

        assert event.title == "Follow-up: Ana"
        assert event.event_type == "follow_up"
        assert event.source == "ai_agent"
        assert event.end_time - event.start_time == timedelta(minutes=15)
        assert event.created_by_feature == "follow_up"

    def test_voicemail_callback(self, db, company_id, service):
        event = service.create_callback(db, company_id, "Ana", T1, "voicemail")

        assert event.event_type == "voicemail_followup"
        assert event.description == "Voicemail left - follow-up call"
        assert event.end_time - event.start_time == timedelta(minutes=10)

    def test_callback_with_free_text_reason(self, db, company_id, service):
        event = service.create_callback(db, company_id, "Ana", T1, "wants to talk to a manager")

        assert event.event_type == "callback"
        assert event.description == "wants to talk to a manager"
