# calsync/services/availability/schedule_settings_service.py
from datetime import date, datetime, time
from typing import Optional, Tuple
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from calsync.config.settings import get_settings
from calsync.models.schedule_settings import CompanyScheduleSettings
from calsync.schemas.calendar_events import ScheduleOverrides, WorkingSchedule

DEFAULT_WORKING_HOURS_START = "09:00"
DEFAULT_WORKING_HOURS_END = "18:00"
DEFAULT_WORKING_DAYS = ["monday", "tuesday", "wednesday", "thursday", "friday"]
DEFAULT_EXCLUDE_HOLIDAYS = False

WEEKDAY_NAMES = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


def _first_set(*values):
    for value in values:
        if value is not None:
            return value
    return None


def _parse_time(value: str) -> time:
    return datetime.strptime(value, "%H:%M").time()


class ScheduleSettingsService:
    """Resolves a company's working schedule: overrides > stored settings > defaults"""

    @staticmethod
    def get_stored(db: Session, company_id: UUID) -> Optional[CompanyScheduleSettings]:
        return db.query(CompanyScheduleSettings).filter(
            CompanyScheduleSettings.company_id == company_id
        ).first()

    @staticmethod
    def resolve(
            db: Session,
            company_id: UUID,
            overrides: Optional[ScheduleOverrides] = None
    ) -> WorkingSchedule:
        settings = get_settings()
        stored = ScheduleSettingsService.get_stored(db, company_id)
        overrides = overrides or ScheduleOverrides()

        def pick(field: str, default):
            stored_value = getattr(stored, field, None) if stored else None
            return _first_set(getattr(overrides, field, None), stored_value, default)

        return WorkingSchedule(
            working_hours_start=pick("working_hours_start", DEFAULT_WORKING_HOURS_START),
            working_hours_end=pick("working_hours_end", DEFAULT_WORKING_HOURS_END),
            working_days=[d.lower() for d in pick("working_days", DEFAULT_WORKING_DAYS)],
            exclude_holidays=pick("exclude_holidays", DEFAULT_EXCLUDE_HOLIDAYS),
            timezone=pick("timezone", settings.DEFAULT_TIMEZONE),
            slot_duration_minutes=_first_set(
                overrides.slot_duration_minutes, settings.DEFAULT_SLOT_DURATION_MINUTES
            ),
        )

    @staticmethod
    def weekday_name(day: date) -> str:
        return WEEKDAY_NAMES[day.weekday()]

    @staticmethod
    def working_window(schedule: WorkingSchedule, day: date) -> Tuple[datetime, datetime]:
        """Working-hours start/end on ``day`` as aware datetimes in the schedule's timezone."""
        tz = ZoneInfo(schedule.timezone)
        start = datetime.combine(day, _parse_time(schedule.working_hours_start), tzinfo=tz)
        end = datetime.combine(day, _parse_time(schedule.working_hours_end), tzinfo=tz)
        return start, end
