# calsync/models/__init__.py
from .base import Base
from .calendar_integration import CalendarIntegration
from .calendar_event import CalendarEvent, ExternalIds
from .schedule_settings import CompanyScheduleSettings
from .sync_log import CalendarSyncLog

__all__ = [
    "Base",
    "CalendarIntegration",
    "CalendarEvent",
    "ExternalIds",
    "CompanyScheduleSettings",
    "CalendarSyncLog",
]
