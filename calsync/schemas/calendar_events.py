# calsync/schemas/calendar_events.py
from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Optional, Dict, Any, List
from datetime import datetime, timezone, date as Date
from enum import Enum
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


class CalendarProvider(str, Enum):
    GOOGLE_CALENDAR = "google_calendar"
    MICROSOFT_OUTLOOK = "microsoft_outlook"
    ZOOM = "zoom"


class VideoProvider(str, Enum):
    GOOGLE_MEET = "google_meet"
    ZOOM = "zoom"
    MICROSOFT_TEAMS = "microsoft_teams"


class EventStatus(str, Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    NO_SHOW = "no_show"
    CANCELLED = "cancelled"
    RESCHEDULED = "rescheduled"
    PENDING_CONFIRMATION = "pending_confirmation"


class EventType(str, Enum):
    CALL = "call"
    FOLLOW_UP = "follow_up"
    NO_SHOW_RETRY = "no_show_retry"
    MEETING = "meeting"
    APPOINTMENT = "appointment"
    CALLBACK = "callback"
    VOICEMAIL_FOLLOWUP = "voicemail_followup"


class EventSource(str, Enum):
    MANUAL = "manual"
    CAMPAIGN = "campaign"
    GOOGLE_CALENDAR = "google_calendar"
    MICROSOFT_OUTLOOK = "microsoft_outlook"
    AI_AGENT = "ai_agent"
    FOLLOW_UP_QUEUE = "follow_up_queue"
    WEBHOOK = "webhook"


class ConfirmationStatus(str, Enum):
    UNCONFIRMED = "unconfirmed"
    CONFIRMED = "confirmed"
    DECLINED = "declined"
    TENTATIVE = "tentative"
    NO_RESPONSE = "no_response"


class SyncStatus(str, Enum):
    SYNCED = "synced"
    PENDING_PUSH = "pending_push"
    ERROR = "error"


class SyncType(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"


class SyncDirection(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class SyncRunStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


# Statuses that occupy time on the company calendar
BUSY_STATUSES = (
    EventStatus.SCHEDULED.value,
    EventStatus.CONFIRMED.value,
    EventStatus.RESCHEDULED.value,
    EventStatus.PENDING_CONFIRMATION.value,
)

# Providers that hold calendars (as opposed to meeting-only services)
CALENDAR_PROVIDERS = (
    CalendarProvider.GOOGLE_CALENDAR.value,
    CalendarProvider.MICROSOFT_OUTLOOK.value,
)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class TimeSlot(BaseModel):
    """Immutable interval used for both busy and bookable time"""
    model_config = ConfigDict(frozen=True)

    start: datetime = Field(..., description="Interval start (UTC)")
    end: datetime = Field(..., description="Interval end (UTC)")

    @field_validator("start", "end")
    @classmethod
    def normalize_utc(cls, v: datetime) -> datetime:
        return as_utc(v)

    @property
    def duration_minutes(self) -> float:
        return (self.end - self.start).total_seconds() / 60

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return self.start < end and self.end > start


class ScheduleOverrides(BaseModel):
    """Per-call overrides that win over stored company settings"""
    slot_duration_minutes: Optional[int] = Field(None, gt=0)
    working_hours_start: Optional[str] = Field(None, description="HH:MM")
    working_hours_end: Optional[str] = Field(None, description="HH:MM")
    working_days: Optional[List[str]] = None
    exclude_holidays: Optional[bool] = None
    timezone: Optional[str] = None

    @field_validator("working_hours_start", "working_hours_end")
    @classmethod
    def validate_time(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        try:
            datetime.strptime(v, "%H:%M")
        except ValueError:
            raise ValueError("Time must be in HH:MM format")
        return v

    @field_validator("working_days")
    @classmethod
    def lower_days(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return [d.lower() for d in v] if v is not None else v

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v}")
        return v


class WorkingSchedule(BaseModel):
    """Effective schedule after merging overrides, stored settings and defaults"""
    working_hours_start: str
    working_hours_end: str
    working_days: List[str]
    exclude_holidays: bool
    timezone: str
    slot_duration_minutes: int


class AvailabilityResult(BaseModel):
    date: Date
    available_slots: List[TimeSlot] = Field(default_factory=list)
    busy_slots: List[TimeSlot] = Field(default_factory=list)
    is_working_day: bool
    is_holiday: bool
    timezone: str = "America/New_York"


class SlotCheckRequest(BaseModel):
    start_time: datetime
    end_time: datetime

    @model_validator(mode="after")
    def end_after_start(self) -> "SlotCheckRequest":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class SlotCheckResult(BaseModel):
    available: bool
    conflicts: List["CalendarEventOut"] = Field(default_factory=list)
    external_conflicts: List[TimeSlot] = Field(default_factory=list)


class Attendee(BaseModel):
    email: str
    name: Optional[str] = None
    response_status: Optional[str] = None
    organizer: bool = False


class CreateEventRequest(BaseModel):
    """Appointment creation payload"""
    title: str = Field(..., min_length=1)
    start_time: datetime
    end_time: datetime
    description: Optional[str] = None
    location: Optional[str] = None
    timezone: str = "UTC"
    all_day: bool = False
    event_type: EventType = EventType.MEETING
    status: EventStatus = EventStatus.SCHEDULED
    source: EventSource = EventSource.MANUAL
    video_provider: Optional[VideoProvider] = None
    video_link: Optional[str] = None
    contact_id: Optional[UUID] = None
    contact_name: Optional[str] = None
    contact_phone: Optional[str] = None
    contact_email: Optional[str] = None
    agent_run_id: Optional[UUID] = None
    call_log_id: Optional[UUID] = None
    agent_name: Optional[str] = None
    ai_notes: Optional[str] = None
    notes: Optional[str] = None
    confirmation_status: ConfirmationStatus = ConfirmationStatus.UNCONFIRMED
    created_by_feature: Optional[str] = None
    attendees: List[Attendee] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    retry_of_event_id: Optional[UUID] = None
    sync_to_google: bool = True
    sync_to_microsoft: bool = True

    @model_validator(mode="after")
    def end_after_start(self) -> "CreateEventRequest":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class UpdateEventRequest(BaseModel):
    """Partial update; only fields that are set are applied"""
    title: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    timezone: Optional[str] = None
    status: Optional[EventStatus] = None
    confirmation_status: Optional[ConfirmationStatus] = None
    notes: Optional[str] = None
    rescheduled_reason: Optional[str] = None
    video_provider: Optional[VideoProvider] = None
    video_link: Optional[str] = None


class EventActionRequest(BaseModel):
    """Body of PUT /events/{id}"""
    action: str = Field("update", pattern="^(update|confirm|cancel|no_show|reschedule)$")
    reason: Optional[str] = None
    new_start_time: Optional[datetime] = None
    new_end_time: Optional[datetime] = None
    schedule_retry: bool = False
    retry_date: Optional[datetime] = None
    retry_notes: Optional[str] = None
    updates: Optional[UpdateEventRequest] = None


class CampaignCalendarConfig(BaseModel):
    """Subset of a campaign's calendar step used by the lifecycle manager"""
    no_show_auto_retry: bool = True
    no_show_retry_delay_hours: int = Field(24, ge=0)
    default_meeting_duration: int = Field(30, gt=0)
    preferred_video_provider: Optional[VideoProvider] = None


class CalendarEventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    company_id: UUID
    integration_id: Optional[UUID] = None
    title: str
    description: Optional[str] = None
    location: Optional[str] = None
    start_time: datetime
    end_time: datetime
    timezone: str
    all_day: bool
    event_type: str
    status: str
    source: str
    confirmation_status: str
    video_provider: Optional[str] = None
    video_link: Optional[str] = None
    contact_id: Optional[UUID] = None
    contact_name: Optional[str] = None
    original_start_time: Optional[datetime] = None
    rescheduled_count: int = 0
    rescheduled_reason: Optional[str] = None
    sync_status: str
    sync_error: Optional[str] = None
    retry_of_event_id: Optional[UUID] = None
    external_ids: Dict[str, str] = Field(default_factory=dict, validation_alias="external_id_map")


class IntegrationStatus(BaseModel):
    provider: CalendarProvider
    connected: bool
    email: Optional[str] = None
    user_name: Optional[str] = None
    last_synced: Optional[datetime] = None
    last_sync_status: Optional[str] = None
    integration_id: Optional[UUID] = None


class SyncResult(BaseModel):
    integration_id: Optional[UUID] = None
    provider: Optional[str] = None
    success: bool
    sync_type: Optional[SyncType] = None
    created: int = 0
    updated: int = 0
    deleted: int = 0
    skipped: int = 0
    error: Optional[str] = None


SlotCheckResult.model_rebuild()
