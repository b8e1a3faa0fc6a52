# calsync/schemas/__init__.py
from .calendar_events import (
    CalendarProvider,
    VideoProvider,
    EventStatus,
    EventType,
    EventSource,
    ConfirmationStatus,
    SyncStatus,
    SyncType,
    TimeSlot,
    ScheduleOverrides,
    WorkingSchedule,
    AvailabilityResult,
    SlotCheckRequest,
    SlotCheckResult,
    CreateEventRequest,
    UpdateEventRequest,
    EventActionRequest,
    CampaignCalendarConfig,
    CalendarEventOut,
    IntegrationStatus,
    SyncResult
)
