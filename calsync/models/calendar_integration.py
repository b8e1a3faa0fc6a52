# calsync/models/calendar_integration.py
from sqlalchemy import Column, String, Boolean, LargeBinary, Text, JSON, Uuid, Index
from calsync.models.base import Base, UTCDateTime, utcnow
import uuid


class CalendarIntegration(Base):
    __tablename__ = "calendar_integrations"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid(as_uuid=True), nullable=False, index=True)

    provider = Column(String(50), nullable=False)  # 'google_calendar', 'microsoft_outlook', 'zoom'
    is_active = Column(Boolean, default=True, nullable=False)

    # OAuth tokens, Fernet-encrypted
    access_token_encrypted = Column(LargeBinary)
    refresh_token_encrypted = Column(LargeBinary)
    token_expires_at = Column(UTCDateTime)

    # Provider account
    provider_email = Column(String(320))
    provider_user_name = Column(String(200))
    calendar_id = Column(String(500))  # provider-side calendar; None means the account default

    # Opaque continuation token: Google nextSyncToken or Graph deltaLink
    sync_token = Column(Text)
    last_synced_at = Column(UTCDateTime)
    last_sync_status = Column(String(20))  # 'completed', 'failed'
    last_sync_error = Column(Text)

    provider_config = Column(JSON, default=dict)  # calendar_list, scopes, etc.

    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_cal_integrations_company_provider", "company_id", "provider"),
    )

    def __repr__(self):
        return f"<CalendarIntegration(id={self.id}, provider={self.provider}, active={self.is_active})>"
