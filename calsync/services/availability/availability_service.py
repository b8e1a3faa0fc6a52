# calsync/services/availability/availability_service.py
from datetime import date, datetime, timedelta
from typing import Optional
from uuid import UUID
from zoneinfo import ZoneInfo
import logging

from sqlalchemy.orm import Session

from calsync.config.settings import get_settings
from calsync.schemas.calendar_events import AvailabilityResult, ScheduleOverrides, TimeSlot, as_utc
from calsync.services.availability.busy_slots_service import BusySlotService
from calsync.services.availability.free_slots import compute_free_slots
from calsync.services.availability.holidays import is_us_holiday
from calsync.services.availability.schedule_settings_service import ScheduleSettingsService

logger = logging.getLogger(__name__)


class AvailabilityService:
    """Per-date bookable time for a company"""

    def __init__(self, busy_slots: BusySlotService):
        self.busy_slots = busy_slots

    async def get_availability(
            self,
            db: Session,
            company_id: UUID,
            day: date,
            overrides: Optional[ScheduleOverrides] = None
    ) -> AvailabilityResult:
        """
        Free slots for ``day``:
        1. Resolve the working schedule (overrides > stored > defaults)
        2. Non-working days and excluded holidays return empty without a busy fetch
        3. Otherwise subtract busy time from the working window
        """
        schedule = ScheduleSettingsService.resolve(db, company_id, overrides)

        is_working_day = ScheduleSettingsService.weekday_name(day) in schedule.working_days
        is_holiday = schedule.exclude_holidays and is_us_holiday(day)

        if not is_working_day or is_holiday:
            return AvailabilityResult(
                date=day,
                is_working_day=is_working_day,
                is_holiday=is_holiday,
                timezone=schedule.timezone,
            )

        work_start, work_end = ScheduleSettingsService.working_window(schedule, day)
        busy = await self.busy_slots.get_busy_slots(db, company_id, work_start, work_end)
        available = compute_free_slots(work_start, work_end, busy, schedule.slot_duration_minutes)

        return AvailabilityResult(
            date=day,
            available_slots=available,
            busy_slots=busy,
            is_working_day=True,
            is_holiday=False,
            timezone=schedule.timezone,
        )

    async def find_next_available_slot(
            self,
            db: Session,
            company_id: UUID,
            after: datetime,
            duration_minutes: Optional[int] = None,
            max_days_to_search: Optional[int] = None,
            overrides: Optional[ScheduleOverrides] = None
    ) -> Optional[TimeSlot]:
        """First free slot starting at or after ``after`` within the search bound, else None"""
        settings = get_settings()
        max_days = settings.DEFAULT_MAX_DAYS_TO_SEARCH if max_days_to_search is None else max_days_to_search
        overrides = overrides or ScheduleOverrides()
        if duration_minutes is None:
            duration_minutes = overrides.slot_duration_minutes or settings.DEFAULT_SLOT_DURATION_MINUTES
        if duration_minutes <= 0:
            raise ValueError("duration_minutes must be positive")
        overrides = overrides.model_copy(update={"slot_duration_minutes": duration_minutes})
        after = as_utc(after)

        schedule = ScheduleSettingsService.resolve(db, company_id, overrides)
        first_day = after.astimezone(ZoneInfo(schedule.timezone)).date()

        for offset in range(max_days):
            day = first_day + timedelta(days=offset)
            result = await self.get_availability(db, company_id, day, overrides)
            for slot in result.available_slots:
                if slot.start >= after:
                    return slot

        logger.info(f"No free slot for company {company_id} within {max_days} days after {after}")
        return None
