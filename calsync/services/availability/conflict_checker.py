# calsync/services/availability/conflict_checker.py
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from calsync.schemas.calendar_events import CalendarEventOut, SlotCheckResult, TimeSlot
from calsync.services.availability.busy_slots_service import BusySlotService, dedupe_slots


class ConflictChecker:
    """Point-in-time overlap test used right before a booking is committed"""

    def __init__(self, busy_slots: BusySlotService):
        self.busy_slots = busy_slots

    async def is_slot_available(
            self,
            db: Session,
            company_id: UUID,
            start: datetime,
            end: datetime,
            exclude_event_id: Optional[UUID] = None
    ) -> SlotCheckResult:
        proposed = TimeSlot(start=start, end=end)
        local_events = self.busy_slots.get_local_busy_events(db, company_id, proposed.start, proposed.end)

        # Mirrors of local events on provider calendars are not separate conflicts
        local_intervals = {(e.start_time, e.end_time) for e in local_events}
        conflicts = [e for e in local_events if e.id != exclude_event_id]

        external = await self.busy_slots.get_external_busy_slots(db, company_id, proposed.start, proposed.end)
        external_conflicts = [
            slot for slot in dedupe_slots(external)
            if slot.overlaps(proposed.start, proposed.end) and (slot.start, slot.end) not in local_intervals
        ]

        return SlotCheckResult(
            available=not conflicts and not external_conflicts,
            conflicts=[CalendarEventOut.model_validate(e) for e in conflicts],
            external_conflicts=external_conflicts,
        )
