# calsync/services/availability/busy_slots_service.py
import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
from uuid import UUID
import logging

from sqlalchemy.orm import Session

from calsync.config.settings import get_settings
from calsync.exceptions import ReauthorizationRequired
from calsync.models.calendar_event import CalendarEvent
from calsync.models.calendar_integration import CalendarIntegration
from calsync.schemas.calendar_events import BUSY_STATUSES, TimeSlot
from calsync.services.calendar.base import CalendarProviderAdapter, TokenGrant
from calsync.services.calendar.integration_service import IntegrationService
from calsync.services.calendar.registry import ProviderRegistry

logger = logging.getLogger(__name__)


def dedupe_slots(slots: List[TimeSlot]) -> List[TimeSlot]:
    """Drop exact (start, end) duplicates and sort by start."""
    unique = {(slot.start, slot.end): slot for slot in slots}
    return [unique[key] for key in sorted(unique)]


@dataclass
class ProviderCall:
    """One provider's share of a busy-slot lookup; the refresh outcome is persisted after the fetch"""
    integration: CalendarIntegration
    adapter: CalendarProviderAdapter
    calendar_id: Optional[str]
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    grant: Optional[TokenGrant] = None
    refresh_error: Optional[Exception] = None


class BusySlotService:
    """Merges busy time from the local store and every active calendar integration"""

    def __init__(self, registry: ProviderRegistry):
        self.registry = registry

    @staticmethod
    def get_local_busy_events(db: Session, company_id: UUID, start: datetime, end: datetime) -> List[CalendarEvent]:
        return db.query(CalendarEvent).filter(
            CalendarEvent.company_id == company_id,
            CalendarEvent.status.in_(BUSY_STATUSES),
            CalendarEvent.start_time < end,
            CalendarEvent.end_time > start
        ).order_by(CalendarEvent.start_time).all()

    def _prepare_provider_calls(self, db: Session, company_id: UUID) -> List[ProviderCall]:
        """Resolve adapter, stored tokens and calendar id per integration on the session's thread"""
        calls = []
        for integration in IntegrationService.get_active_integrations(db, company_id):
            if not self.registry.has(integration.provider):
                logger.warning(f"No adapter for provider {integration.provider}, skipping")
                continue
            adapter = self.registry.get(integration.provider)
            try:
                access_token = adapter.stored_access_token(integration)
                refresh_token = None if access_token else adapter.stored_refresh_token(db, integration)
            except ReauthorizationRequired as e:
                logger.warning(f"Skipping {integration.provider} busy slots for company {company_id}: {e}")
                continue
            except Exception as e:
                db.rollback()
                logger.error(f"Could not read {integration.provider} tokens for integration {integration.id}: {e}")
                continue
            calls.append(ProviderCall(
                integration=integration,
                adapter=adapter,
                calendar_id=adapter.calendar_id_for(integration),
                access_token=access_token,
                refresh_token=refresh_token,
            ))
        return calls

    @staticmethod
    async def _refresh_and_fetch(call: ProviderCall, start: datetime, end: datetime) -> List[TimeSlot]:
        access_token = call.access_token
        if access_token is None:
            try:
                call.grant = await asyncio.to_thread(call.adapter.refresh_access_token, call.refresh_token)
            except Exception as e:
                call.refresh_error = e
                raise
            access_token = call.grant.access_token
        return await asyncio.to_thread(call.adapter.fetch_busy, access_token, call.calendar_id, start, end)

    async def _fetch_provider(self, call: ProviderCall, start: datetime, end: datetime) -> List[TimeSlot]:
        provider = call.adapter.provider
        timeout = get_settings().BUSY_SLOT_FETCH_TIMEOUT_SECONDS
        try:
            return await asyncio.wait_for(self._refresh_and_fetch(call, start, end), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"{provider} busy-slot fetch timed out after {timeout}s")
        except Exception as e:
            logger.error(f"{provider} busy-slot fetch failed: {e}")
        return []

    @staticmethod
    def _store_refresh_outcome(db: Session, call: ProviderCall) -> None:
        integration = call.integration
        try:
            if call.refresh_error is not None:
                call.adapter.deactivate(db, integration, f"Token refresh failed: {call.refresh_error}")
            elif call.grant is not None:
                call.adapter.store_grant(db, integration, call.grant)
        except Exception as e:
            db.rollback()
            logger.error(f"Could not store token state for integration {integration.id}: {e}")

    async def get_external_busy_slots(self, db: Session, company_id: UUID,
                                      start: datetime, end: datetime) -> List[TimeSlot]:
        """Provider busy time only; one failing provider contributes nothing"""
        calls = self._prepare_provider_calls(db, company_id)
        results = await asyncio.gather(*[self._fetch_provider(call, start, end) for call in calls])
        for call in calls:
            self._store_refresh_outcome(db, call)
        return [slot for slots in results for slot in slots]

    async def get_busy_slots(self, db: Session, company_id: UUID, start: datetime, end: datetime) -> List[TimeSlot]:
        local = [
            TimeSlot(start=event.start_time, end=event.end_time)
            for event in self.get_local_busy_events(db, company_id, start, end)
        ]
        external = await self.get_external_busy_slots(db, company_id, start, end)

        busy = dedupe_slots(local + external)
        logger.debug(f"Company {company_id}: {len(busy)} busy slots between {start} and {end}")
        return busy
