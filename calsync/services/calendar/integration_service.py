# calsync/services/calendar/integration_service.py
"""Company <-> provider connections"""
from typing import List, Optional
from uuid import UUID
import logging

from sqlalchemy.orm import Session

from calsync.exceptions import IntegrationNotFoundError
from calsync.models.calendar_integration import CalendarIntegration
from calsync.schemas.calendar_events import CALENDAR_PROVIDERS, CalendarProvider, IntegrationStatus
from calsync.utils.encryption import encrypt_token

logger = logging.getLogger(__name__)


class IntegrationService:

    @staticmethod
    def get_integration(db: Session, integration_id: UUID) -> CalendarIntegration:
        integration = db.get(CalendarIntegration, integration_id)
        if not integration:
            raise IntegrationNotFoundError(f"Integration {integration_id} not found")
        return integration

    @staticmethod
    def get_active_integrations(db: Session, company_id: UUID) -> List[CalendarIntegration]:
        """At most one active calendar integration per provider, the most recently updated wins"""
        rows = db.query(CalendarIntegration).filter(
            CalendarIntegration.company_id == company_id,
            CalendarIntegration.is_active.is_(True),
            CalendarIntegration.provider.in_(CALENDAR_PROVIDERS)
        ).order_by(CalendarIntegration.updated_at.desc()).all()

        by_provider = {}
        for row in rows:
            by_provider.setdefault(row.provider, row)
        return list(by_provider.values())

    @staticmethod
    def get_active_company_ids(db: Session) -> List[UUID]:
        rows = db.query(CalendarIntegration.company_id).filter(
            CalendarIntegration.is_active.is_(True),
            CalendarIntegration.provider.in_(CALENDAR_PROVIDERS)
        ).distinct().all()
        return [row[0] for row in rows]

    @staticmethod
    def _latest(db: Session, company_id: UUID, provider: str) -> Optional[CalendarIntegration]:
        return db.query(CalendarIntegration).filter(
            CalendarIntegration.company_id == company_id,
            CalendarIntegration.provider == provider
        ).order_by(CalendarIntegration.updated_at.desc()).first()

    @staticmethod
    def save_connection(db: Session, company_id: UUID, provider: str, account) -> CalendarIntegration:
        """Upsert the company's integration for ``provider`` from an OAuth exchange result.

        An existing row (active or not) is reused and reactivated, so a
        reconnect never leaves two rows competing for the same provider.
        """
        integration = IntegrationService._latest(db, company_id, provider)
        if integration is None:
            integration = CalendarIntegration(company_id=company_id, provider=provider)
            db.add(integration)

        integration.is_active = True
        integration.access_token_encrypted = encrypt_token(account.access_token)
        if account.refresh_token:
            integration.refresh_token_encrypted = encrypt_token(account.refresh_token)
        integration.token_expires_at = account.expires_at
        integration.provider_email = account.email
        integration.provider_user_name = account.user_name
        integration.calendar_id = account.calendar_id
        integration.sync_token = None
        integration.last_sync_error = None
        integration.provider_config = {'calendar_list': account.calendar_list}

        db.commit()
        db.refresh(integration)
        logger.info(f"Saved {provider} integration {integration.id} for company {company_id}")
        return integration

    @staticmethod
    def disconnect(db: Session, company_id: UUID, provider: str) -> bool:
        integrations = db.query(CalendarIntegration).filter(
            CalendarIntegration.company_id == company_id,
            CalendarIntegration.provider == provider,
            CalendarIntegration.is_active.is_(True)
        ).all()
        if not integrations:
            return False

        for integration in integrations:
            integration.is_active = False
            integration.sync_token = None
        db.commit()
        logger.info(f"Disconnected {provider} for company {company_id}")
        return True

    @staticmethod
    def select_calendar(db: Session, integration_id: UUID, calendar_id: str) -> CalendarIntegration:
        integration = IntegrationService.get_integration(db, integration_id)
        integration.calendar_id = calendar_id
        # A different calendar invalidates the cursor
        integration.sync_token = None
        db.commit()
        db.refresh(integration)
        return integration

    @staticmethod
    def get_statuses(db: Session, company_id: UUID, meetings=None) -> List[IntegrationStatus]:
        active = {i.provider: i for i in IntegrationService.get_active_integrations(db, company_id)}
        statuses = []
        for provider in CALENDAR_PROVIDERS:
            integration = active.get(provider)
            statuses.append(IntegrationStatus(
                provider=provider,
                connected=integration is not None,
                email=integration.provider_email if integration else None,
                user_name=integration.provider_user_name if integration else None,
                last_synced=integration.last_synced_at if integration else None,
                last_sync_status=integration.last_sync_status if integration else None,
                integration_id=integration.id if integration else None,
            ))

        statuses.append(IntegrationStatus(
            provider=CalendarProvider.ZOOM,
            connected=bool(meetings and meetings.is_configured()),
        ))
        return statuses
