# calsync/models/calendar_event.py
from typing import Dict, Optional

from sqlalchemy import Column, String, Integer, Text, Boolean, ForeignKey, JSON, Uuid, Index
from calsync.models.base import Base, UTCDateTime, utcnow
import uuid


class ExternalIds:
    """Provider-keyed map of the ids an appointment has on external providers."""

    def __init__(self, ids: Optional[Dict[str, str]] = None):
        self._ids = {k: v for k, v in (ids or {}).items() if v}

    def get(self, provider: str) -> Optional[str]:
        return self._ids.get(provider)

    def with_id(self, provider: str, external_id: str) -> "ExternalIds":
        ids = dict(self._ids)
        ids[provider] = external_id
        return ExternalIds(ids)

    def to_dict(self) -> Dict[str, str]:
        return dict(self._ids)

    def __eq__(self, other):
        return isinstance(other, ExternalIds) and other._ids == self._ids

    def __repr__(self):
        return f"ExternalIds({self._ids!r})"


class CalendarEvent(Base):
    """Canonical appointment record; never hard-deleted."""
    __tablename__ = "calendar_events"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid(as_uuid=True), nullable=False)
    # NULL means locally authored and not yet pushed
    integration_id = Column(Uuid(as_uuid=True), ForeignKey("calendar_integrations.id", ondelete="SET NULL"), nullable=True)

    # Core event data
    title = Column(String(500), nullable=False)
    description = Column(Text)
    location = Column(String(500))

    # Timing
    start_time = Column(UTCDateTime, nullable=False)
    end_time = Column(UTCDateTime, nullable=False)
    timezone = Column(String(64), default="UTC")
    all_day = Column(Boolean, default=False, nullable=False)

    event_type = Column(String(30), default="meeting", nullable=False)
    status = Column(String(30), default="scheduled", nullable=False)
    source = Column(String(30), default="manual", nullable=False)

    # Video conferencing
    video_provider = Column(String(30))  # google_meet, zoom, microsoft_teams
    video_link = Column(Text)

    # Contact and campaign references (external collaborators)
    contact_id = Column(Uuid(as_uuid=True))
    contact_name = Column(String(200))
    contact_phone = Column(String(40))
    contact_email = Column(String(320))
    agent_run_id = Column(Uuid(as_uuid=True))
    call_log_id = Column(Uuid(as_uuid=True))
    agent_name = Column(String(200))
    ai_notes = Column(Text)
    notes = Column(Text)
    created_by_feature = Column(String(50))

    # Confirmation tracking
    confirmation_status = Column(String(20), default="unconfirmed", nullable=False)
    confirmation_attempts = Column(Integer, default=0)
    last_confirmation_at = Column(UTCDateTime)

    # Reschedule lineage
    original_start_time = Column(UTCDateTime)
    rescheduled_count = Column(Integer, default=0, nullable=False)
    rescheduled_reason = Column(Text)

    # No-show retry lineage
    retry_of_event_id = Column(Uuid(as_uuid=True), ForeignKey("calendar_events.id"), nullable=True)

    cancelled_at = Column(UTCDateTime)
    cancellation_reason = Column(Text)

    # Recurrence as reported by the provider (read-only here)
    recurrence_rule = Column(Text)
    recurring_event_id = Column(String(500))

    attendees = Column(JSON, default=list)

    # Provider-keyed external ids, use the external_ids accessors
    external_id_map = Column("external_ids", JSON, default=dict, nullable=False)

    # Sync state
    sync_status = Column(String(20), default="pending_push", nullable=False)  # pending_push, synced, error
    sync_error = Column(Text)
    last_synced_at = Column(UTCDateTime)

    event_metadata = Column("metadata", JSON, default=dict)

    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_cal_events_company_time", "company_id", "start_time", "end_time"),
        Index("idx_cal_events_status", "status"),
        Index("idx_cal_events_contact", "contact_id"),
    )

    @property
    def external_ids(self) -> ExternalIds:
        return ExternalIds(self.external_id_map)

    def set_external_id(self, provider: str, external_id: str) -> None:
        # Reassign so the JSON column is flagged dirty
        self.external_id_map = self.external_ids.with_id(provider, external_id).to_dict()

    def update_metadata(self, **values) -> None:
        merged = dict(self.event_metadata or {})
        merged.update(values)
        self.event_metadata = merged

    def __repr__(self):
        return f"<CalendarEvent(id={self.id}, title={self.title!r}, status={self.status})>"
