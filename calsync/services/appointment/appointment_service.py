# calsync/services/appointment/appointment_service.py
"""Appointment lifecycle: local state transitions plus propagation to provider calendars"""
from datetime import datetime, time, timedelta
from typing import Dict, List, Optional, Tuple
from uuid import UUID
from zoneinfo import ZoneInfo
import logging

from sqlalchemy.orm import Session

from calsync.config.settings import get_settings
from calsync.exceptions import EventNotFoundError, InvalidTransitionError
from calsync.models.base import utcnow
from calsync.models.calendar_event import CalendarEvent
from calsync.models.calendar_integration import CalendarIntegration
from calsync.schemas.calendar_events import (
    CampaignCalendarConfig,
    ConfirmationStatus,
    CreateEventRequest,
    EventSource,
    EventStatus,
    EventType,
    SyncStatus,
    UpdateEventRequest,
    VideoProvider,
    as_utc,
)
from calsync.services.calendar.base import CalendarProviderAdapter, EventPayload
from calsync.services.calendar.description import build_event_description
from calsync.services.calendar.integration_service import IntegrationService
from calsync.services.calendar.registry import ProviderRegistry

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    EventStatus.SCHEDULED.value: {
        EventStatus.CONFIRMED.value, EventStatus.RESCHEDULED.value, EventStatus.CANCELLED.value,
        EventStatus.NO_SHOW.value, EventStatus.COMPLETED.value, EventStatus.PENDING_CONFIRMATION.value,
    },
    EventStatus.PENDING_CONFIRMATION.value: {
        EventStatus.SCHEDULED.value, EventStatus.CONFIRMED.value, EventStatus.RESCHEDULED.value,
        EventStatus.CANCELLED.value, EventStatus.NO_SHOW.value, EventStatus.COMPLETED.value,
    },
    EventStatus.RESCHEDULED.value: {
        EventStatus.CONFIRMED.value, EventStatus.RESCHEDULED.value, EventStatus.CANCELLED.value,
        EventStatus.NO_SHOW.value, EventStatus.COMPLETED.value,
    },
    EventStatus.CONFIRMED.value: {
        EventStatus.CONFIRMED.value, EventStatus.RESCHEDULED.value, EventStatus.CANCELLED.value,
        EventStatus.NO_SHOW.value, EventStatus.COMPLETED.value,
    },
    # Terminal: a retry or a new booking is a new event
    EventStatus.CANCELLED.value: set(),
    EventStatus.NO_SHOW.value: set(),
    EventStatus.COMPLETED.value: set(),
}

TERMINAL_STATUSES = {status for status, allowed in ALLOWED_TRANSITIONS.items() if not allowed}

CALLBACK_REASON_LABELS = {
    "for_callback": "Contact requested callback",
    "voicemail": "Voicemail left - follow-up call",
    "no_answer": "No answer - retry call",
    "requested": "Callback requested during call",
}

FOLLOW_UP_MINUTES = 15
CALLBACK_MINUTES = 10
NO_SHOW_RETRY_MINUTES = 15
NO_SHOW_RETRY_HOUR = time(10, 0)


def _value(v):
    return v.value if hasattr(v, "value") else v


class AppointmentService:
    """Owns CalendarEvent status transitions and decides how they reach provider calendars"""

    def __init__(self, registry: ProviderRegistry):
        self.registry = registry

    # ---- reads ---------------------------------------------------------------

    @staticmethod
    def get_event(db: Session, event_id: UUID) -> CalendarEvent:
        event = db.get(CalendarEvent, event_id)
        if not event:
            raise EventNotFoundError(f"Calendar event {event_id} not found")
        return event

    # ---- transitions -----------------------------------------------------------

    @staticmethod
    def check_transition(current: str, new: str) -> None:
        if current == new and new in (EventStatus.CANCELLED.value, EventStatus.CONFIRMED.value,
                                      EventStatus.RESCHEDULED.value):
            return
        if new not in ALLOWED_TRANSITIONS.get(current, set()):
            raise InvalidTransitionError(f"Cannot move appointment from '{current}' to '{new}'")

    def create_appointment(self, db: Session, company_id: UUID, request: CreateEventRequest) -> CalendarEvent:
        """Insert the appointment, then push it to the selected calendars"""
        targets = []
        if request.sync_to_google:
            targets.append("google_calendar")
        if request.sync_to_microsoft:
            targets.append("microsoft_outlook")

        metadata = dict(request.metadata)
        metadata["sync_targets"] = targets

        event = CalendarEvent(
            company_id=company_id,
            title=request.title,
            description=request.description,
            location=request.location,
            start_time=as_utc(request.start_time),
            end_time=as_utc(request.end_time),
            timezone=request.timezone,
            all_day=request.all_day,
            event_type=_value(request.event_type),
            status=_value(request.status),
            source=_value(request.source),
            video_provider=_value(request.video_provider),
            video_link=request.video_link,
            contact_id=request.contact_id,
            contact_name=request.contact_name,
            contact_phone=request.contact_phone,
            contact_email=request.contact_email,
            agent_run_id=request.agent_run_id,
            call_log_id=request.call_log_id,
            agent_name=request.agent_name,
            ai_notes=request.ai_notes,
            notes=request.notes,
            confirmation_status=_value(request.confirmation_status),
            created_by_feature=request.created_by_feature,
            attendees=[a.model_dump() for a in request.attendees],
            retry_of_event_id=request.retry_of_event_id,
            external_id_map={},
            event_metadata=metadata,
            sync_status=SyncStatus.PENDING_PUSH.value,
        )
        db.add(event)
        db.commit()
        db.refresh(event)
        logger.info(f"Created calendar event {event.id} ({event.event_type}) for company {company_id}")

        self.push_event(db, event)
        return event

    def update_appointment(self, db: Session, event_id: UUID, changes: UpdateEventRequest) -> CalendarEvent:
        event = self.get_event(db, event_id)
        fields = changes.model_dump(exclude_unset=True)
        new_status = _value(fields.pop("status", None))
        cancelling = new_status == EventStatus.CANCELLED.value

        if new_status:
            self.check_transition(event.status, new_status)

        start = fields.pop("start_time", None)
        end = fields.pop("end_time", None)
        new_start = as_utc(start) if start else event.start_time
        new_end = as_utc(end) if end else event.end_time
        if new_end <= new_start:
            raise ValueError("end_time must be after start_time")

        time_changed = new_start != event.start_time or new_end != event.end_time
        if time_changed:
            if not cancelling:
                self.check_transition(event.status, EventStatus.RESCHEDULED.value)
            self._apply_reschedule(event, new_start, new_end, fields.pop("rescheduled_reason", None), cancelling)

        if new_status and not (time_changed and not cancelling):
            event.status = new_status

        for name, value in fields.items():
            setattr(event, name, _value(value))

        if cancelling:
            event.cancelled_at = event.cancelled_at or utcnow()

        event.sync_status = SyncStatus.PENDING_PUSH.value
        db.commit()
        db.refresh(event)

        if event.status == EventStatus.CANCELLED.value:
            self._propagate_cancel(db, event)
        else:
            self.push_event(db, event, create_missing=False)
        return event

    @staticmethod
    def _apply_reschedule(event: CalendarEvent, start: datetime, end: datetime,
                          reason: Optional[str], cancelling: bool) -> None:
        if event.original_start_time is None:
            event.original_start_time = event.start_time
        event.rescheduled_count = (event.rescheduled_count or 0) + 1
        event.start_time = start
        event.end_time = end
        event.rescheduled_reason = reason or "Rescheduled by user"
        if not cancelling:
            event.status = EventStatus.RESCHEDULED.value

    def reschedule_appointment(self, db: Session, event_id: UUID, new_start: datetime,
                               new_end: datetime, reason: Optional[str] = None) -> CalendarEvent:
        return self.update_appointment(db, event_id, UpdateEventRequest(
            start_time=new_start,
            end_time=new_end,
            rescheduled_reason=reason or "Rescheduled by user",
        ))

    def confirm_appointment(self, db: Session, event_id: UUID) -> CalendarEvent:
        event = self.get_event(db, event_id)
        self.check_transition(event.status, EventStatus.CONFIRMED.value)
        event.confirmation_attempts = (event.confirmation_attempts or 0) + 1
        event.last_confirmation_at = utcnow()
        return self.update_appointment(db, event_id, UpdateEventRequest(
            status=EventStatus.CONFIRMED,
            confirmation_status=ConfirmationStatus.CONFIRMED,
        ))

    def cancel_appointment(self, db: Session, event_id: UUID, reason: Optional[str] = None) -> CalendarEvent:
        """Idempotent: cancelling an already-cancelled appointment is a no-op"""
        event = self.get_event(db, event_id)
        if event.status == EventStatus.CANCELLED.value:
            return event
        self.check_transition(event.status, EventStatus.CANCELLED.value)
        event.cancellation_reason = reason
        return self.update_appointment(db, event_id, UpdateEventRequest(status=EventStatus.CANCELLED))

    def mark_no_show(
            self,
            db: Session,
            event_id: UUID,
            schedule_retry: bool = False,
            retry_date: Optional[datetime] = None,
            retry_notes: Optional[str] = None
    ) -> Tuple[CalendarEvent, Optional[CalendarEvent]]:
        event = self.update_appointment(db, event_id, UpdateEventRequest(
            status=EventStatus.NO_SHOW,
            confirmation_status=ConfirmationStatus.NO_RESPONSE,
        ))
        event.update_metadata(
            no_show_count=(event.event_metadata or {}).get("no_show_count", 0) + 1,
            last_no_show_at=utcnow().isoformat(),
        )
        db.commit()

        retry_event = None
        if schedule_retry:
            retry_event = self._create_no_show_retry(db, event, retry_date, retry_notes)
        return event, retry_event

    def _create_no_show_retry(self, db: Session, original: CalendarEvent,
                              retry_date: Optional[datetime], notes: Optional[str]) -> CalendarEvent:
        tz = ZoneInfo(original.timezone or "UTC")
        retry_day = retry_date or utcnow() + timedelta(hours=get_settings().NO_SHOW_RETRY_DELAY_HOURS)
        retry_day = as_utc(retry_day).astimezone(tz).date()
        start = datetime.combine(retry_day, NO_SHOW_RETRY_HOUR, tzinfo=tz)

        retry_event = self.create_appointment(db, original.company_id, CreateEventRequest(
            title=f"No-Show Retry: {original.contact_name or 'Unknown'}",
            description=f"Retry call after no-show. Original event: {original.title}",
            start_time=start,
            end_time=start + timedelta(minutes=NO_SHOW_RETRY_MINUTES),
            timezone=original.timezone or "UTC",
            event_type=EventType.NO_SHOW_RETRY,
            source=EventSource.AI_AGENT,
            contact_id=original.contact_id,
            contact_name=original.contact_name,
            contact_phone=original.contact_phone,
            contact_email=original.contact_email,
            agent_run_id=original.agent_run_id,
            agent_name=original.agent_name,
            notes=notes or f"Auto-scheduled retry after no-show for: {original.title}",
            created_by_feature="appointment_confirmation",
            retry_of_event_id=original.id,
        ))

        original.update_metadata(retry_event_id=str(retry_event.id))
        db.commit()
        logger.info(f"Scheduled no-show retry {retry_event.id} for event {original.id}")
        return retry_event

    def handle_no_show(self, db: Session, event_id: UUID,
                       config: Optional[CampaignCalendarConfig] = None) -> Tuple[CalendarEvent, Optional[CalendarEvent]]:
        """Campaign-aware no-show: the campaign decides whether and when to retry"""
        config = config or CampaignCalendarConfig()
        delay = config.no_show_retry_delay_hours
        return self.mark_no_show(
            db,
            event_id,
            schedule_retry=config.no_show_auto_retry,
            retry_date=utcnow() + timedelta(hours=delay),
            retry_notes=f"Auto-retry after no-show (delay: {delay}h)",
        )

    # ---- agent-driven creation -------------------------------------------------

    def create_follow_up(
            self,
            db: Session,
            company_id: UUID,
            contact_name: str,
            follow_up_at: datetime,
            reason: str,
            agent_name: Optional[str] = None,
            contact_id: Optional[UUID] = None,
            contact_phone: Optional[str] = None,
            contact_email: Optional[str] = None,
            agent_run_id: Optional[UUID] = None,
            call_log_id: Optional[UUID] = None,
            notes: Optional[str] = None,
            event_type: EventType = EventType.FOLLOW_UP,
            is_premium: bool = False
    ) -> CalendarEvent:
        return self.create_appointment(db, company_id, CreateEventRequest(
            title=f"Follow-up: {contact_name}",
            description=f"Reason: {reason}",
            start_time=follow_up_at,
            end_time=follow_up_at + timedelta(minutes=FOLLOW_UP_MINUTES),
            event_type=event_type,
            source=EventSource.AI_AGENT,
            contact_id=contact_id,
            contact_name=contact_name,
            contact_phone=contact_phone,
            contact_email=contact_email,
            agent_run_id=agent_run_id,
            call_log_id=call_log_id,
            agent_name=agent_name,
            ai_notes=reason,
            notes=notes,
            created_by_feature="smart_followup" if is_premium else "follow_up",
        ))

    def create_callback(
            self,
            db: Session,
            company_id: UUID,
            contact_name: str,
            callback_at: datetime,
            reason: str,
            agent_name: Optional[str] = None,
            contact_id: Optional[UUID] = None,
            contact_phone: Optional[str] = None,
            agent_run_id: Optional[UUID] = None,
            call_log_id: Optional[UUID] = None,
            notes: Optional[str] = None
    ) -> CalendarEvent:
        label = CALLBACK_REASON_LABELS.get(reason, reason)
        return self.create_appointment(db, company_id, CreateEventRequest(
            title=f"Callback: {contact_name}",
            description=label,
            start_time=callback_at,
            end_time=callback_at + timedelta(minutes=CALLBACK_MINUTES),
            event_type=EventType.VOICEMAIL_FOLLOWUP if reason == "voicemail" else EventType.CALLBACK,
            source=EventSource.AI_AGENT,
            contact_id=contact_id,
            contact_name=contact_name,
            contact_phone=contact_phone,
            agent_run_id=agent_run_id,
            call_log_id=call_log_id,
            agent_name=agent_name,
            ai_notes=label,
            notes=notes,
            created_by_feature="callback_scheduling",
        ))

    # ---- propagation -----------------------------------------------------------

    @staticmethod
    def _properties(event: CalendarEvent) -> Dict[str, str]:
        return {
            "calsync_event_id": str(event.id),
            "calsync_type": event.event_type,
            "calsync_status": event.status,
            "calsync_contact_id": str(event.contact_id) if event.contact_id else "",
            "calsync_source": event.source,
        }

    def build_payload(self, event: CalendarEvent, adapter: CalendarProviderAdapter,
                      request_conference: bool = False) -> EventPayload:
        return EventPayload(
            title=event.title,
            description=build_event_description(event, adapter.native_video_provider),
            location=event.location,
            start=event.start_time,
            end=event.end_time,
            timezone=event.timezone or "UTC",
            all_day=event.all_day,
            attendees=list(event.attendees or []),
            request_conference=request_conference,
            conference_request_id=str(event.id),
            properties=self._properties(event),
        )

    def _targets(self, db: Session, event: CalendarEvent) -> List[Tuple[CalendarIntegration, CalendarProviderAdapter]]:
        """Active calendar integrations for the event, the native link generator first"""
        allowed = (event.event_metadata or {}).get("sync_targets")
        targets = []
        for integration in IntegrationService.get_active_integrations(db, event.company_id):
            if allowed is not None and integration.provider not in allowed:
                continue
            if not self.registry.has(integration.provider):
                continue
            targets.append((integration, self.registry.get(integration.provider)))

        link_source = self.registry.for_video_provider(event.video_provider)
        targets.sort(key=lambda t: 0 if t[1] is link_source else 1)
        return targets

    def _ensure_meeting_link(self, db: Session, event: CalendarEvent, errors: List[str]) -> None:
        """Dedicated meeting services create their link before any calendar sees the event"""
        meetings = self.registry.meetings
        if event.video_provider != VideoProvider.ZOOM.value or event.video_link or meetings is None:
            return
        try:
            meeting = meetings.create_meeting(event.title, event.start_time, event.end_time, event.timezone)
        except Exception as e:
            logger.error(f"Zoom meeting creation failed for event {event.id}: {e}")
            errors.append(f"zoom: {e}")
            return
        event.video_link = meeting.video_link
        event.set_external_id(meetings.provider, meeting.external_id)
        db.commit()

    def push_event(self, db: Session, event: CalendarEvent, create_missing: bool = True) -> CalendarEvent:
        """Create or update the event on every target calendar.

        Links are created in dependency order: a dedicated meeting service
        first, otherwise the calendar that generates the link natively, then
        the remaining calendars with the link in their description. Failures
        are recorded on the event as ``sync_status = error``.
        """
        errors: List[str] = []
        if create_missing:
            self._ensure_meeting_link(db, event, errors)
        else:
            self._update_meeting(event, errors)

        for integration, adapter in self._targets(db, event):
            external_id = event.external_ids.get(adapter.provider)
            try:
                if external_id:
                    adapter.update_event(db, integration, external_id, self.build_payload(event, adapter))
                elif create_missing:
                    wants_native_link = (
                        event.video_provider is not None
                        and event.video_provider == adapter.native_video_provider
                        and not event.video_link
                    )
                    created = adapter.create_event(
                        db, integration, self.build_payload(event, adapter, request_conference=wants_native_link)
                    )
                    event.set_external_id(adapter.provider, created.external_id)
                    if wants_native_link and created.video_link:
                        event.video_link = created.video_link
                    if event.integration_id is None:
                        event.integration_id = integration.id
                    db.commit()
            except Exception as e:
                logger.error(f"Failed to push event {event.id} to {adapter.provider}: {e}")
                errors.append(f"{adapter.provider}: {e}")

        return self._record_push_result(db, event, errors)

    def _update_meeting(self, event: CalendarEvent, errors: List[str]) -> None:
        meetings = self.registry.meetings
        meeting_id = event.external_ids.get("zoom")
        if meetings is None or not meeting_id or event.video_provider != VideoProvider.ZOOM.value:
            return
        try:
            meetings.update_meeting(meeting_id, event.title, event.start_time, event.end_time, event.timezone)
        except Exception as e:
            logger.error(f"Zoom meeting update failed for event {event.id}: {e}")
            errors.append(f"zoom: {e}")

    def _propagate_cancel(self, db: Session, event: CalendarEvent) -> CalendarEvent:
        errors: List[str] = []
        for integration, adapter in self._targets(db, event):
            external_id = event.external_ids.get(adapter.provider)
            if not external_id:
                continue
            try:
                adapter.delete_event(db, integration, external_id)
            except Exception as e:
                logger.error(f"Failed to cancel event {event.id} on {adapter.provider}: {e}")
                errors.append(f"{adapter.provider}: {e}")

        meeting_id = event.external_ids.get("zoom")
        if meeting_id and self.registry.meetings is not None:
            try:
                self.registry.meetings.delete_meeting(meeting_id)
            except Exception as e:
                logger.error(f"Failed to delete Zoom meeting {meeting_id}: {e}")
                errors.append(f"zoom: {e}")

        return self._record_push_result(db, event, errors)

    @staticmethod
    def _record_push_result(db: Session, event: CalendarEvent, errors: List[str]) -> CalendarEvent:
        if errors:
            event.sync_status = SyncStatus.ERROR.value
            event.sync_error = "; ".join(errors)
        else:
            event.sync_status = SyncStatus.SYNCED.value
            event.sync_error = None
            event.last_synced_at = utcnow()
        db.commit()
        db.refresh(event)
        return event

    def retry_push(self, db: Session, event_id: UUID) -> CalendarEvent:
        """Re-run propagation for an event left in pending_push/error"""
        event = self.get_event(db, event_id)
        if event.status == EventStatus.CANCELLED.value:
            return self._propagate_cancel(db, event)
        return self.push_event(db, event)
