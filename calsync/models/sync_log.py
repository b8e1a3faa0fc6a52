# calsync/models/sync_log.py
from sqlalchemy import Column, String, Integer, Text, JSON, ForeignKey, Uuid
from calsync.models.base import Base, UTCDateTime, utcnow
import uuid


class CalendarSyncLog(Base):
    __tablename__ = "calendar_sync_log"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    integration_id = Column(Uuid(as_uuid=True), ForeignKey("calendar_integrations.id", ondelete="CASCADE"), nullable=False, index=True)

    sync_type = Column(String(20), nullable=False)  # full, incremental
    sync_direction = Column(String(20), nullable=False, default="inbound")
    status = Column(String(20), nullable=False, default="running")  # running, completed, failed

    events_created = Column(Integer, default=0)
    events_updated = Column(Integer, default=0)
    events_deleted = Column(Integer, default=0)
    errors = Column(JSON, default=list)  # skipped records
    error_message = Column(Text)

    started_at = Column(UTCDateTime, default=utcnow)
    completed_at = Column(UTCDateTime)
