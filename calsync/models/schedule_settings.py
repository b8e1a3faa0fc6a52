# calsync/models/schedule_settings.py
from sqlalchemy import Column, String, Boolean, JSON, Uuid
from calsync.models.base import Base, UTCDateTime, utcnow
import uuid


class CompanyScheduleSettings(Base):
    """Per-company working-hours policy. Every field is optional; defaults fill the gaps."""
    __tablename__ = "company_schedule_settings"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid(as_uuid=True), nullable=False, unique=True)

    working_hours_start = Column(String(5))  # "HH:MM"
    working_hours_end = Column(String(5))
    working_days = Column(JSON)  # ["monday", ...]
    exclude_holidays = Column(Boolean)
    timezone = Column(String(64))

    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)
