# calsync/services/appointment/appointment_query_service.py
"""Read model over calendar events for dashboards and notifications"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from calsync.models.calendar_event import CalendarEvent
from calsync.schemas.calendar_events import as_utc

DEFAULT_EVENT_LIMIT = 500


class AppointmentQueryService:

    @staticmethod
    def get_calendar_events(
            db: Session,
            company_id: UUID,
            start_date: Optional[datetime] = None,
            end_date: Optional[datetime] = None,
            event_type: Optional[str] = None,
            status: Optional[str] = None,
            source: Optional[str] = None,
            contact_id: Optional[UUID] = None,
            limit: int = DEFAULT_EVENT_LIMIT
    ) -> List[CalendarEvent]:
        query = db.query(CalendarEvent).filter(CalendarEvent.company_id == company_id)

        if start_date:
            query = query.filter(CalendarEvent.start_time >= as_utc(start_date))
        if end_date:
            query = query.filter(CalendarEvent.start_time <= as_utc(end_date))
        if event_type:
            query = query.filter(CalendarEvent.event_type == event_type)
        if status:
            query = query.filter(CalendarEvent.status == status)
        if source:
            query = query.filter(CalendarEvent.source == source)
        if contact_id:
            query = query.filter(CalendarEvent.contact_id == contact_id)

        return query.order_by(CalendarEvent.start_time.asc()).limit(limit).all()

    @staticmethod
    def find_by_external_id(db: Session, company_id: UUID, provider: str, external_id: str) -> Optional[CalendarEvent]:
        return db.query(CalendarEvent).filter(
            CalendarEvent.company_id == company_id,
            CalendarEvent.external_id_map[provider].as_string() == external_id
        ).first()
