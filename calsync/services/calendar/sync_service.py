# calsync/services/calendar/sync_service.py
"""Pulls provider calendars into calendar_events"""
from typing import Dict, List
from uuid import UUID
import logging

from sqlalchemy.orm import Session

from calsync.exceptions import InvalidTransitionError
from calsync.models.base import utcnow
from calsync.models.calendar_event import CalendarEvent
from calsync.models.calendar_integration import CalendarIntegration
from calsync.models.sync_log import CalendarSyncLog
from calsync.schemas.calendar_events import (
    EventStatus,
    EventType,
    SyncDirection,
    SyncResult,
    SyncRunStatus,
    SyncStatus,
    SyncType,
)
from calsync.services.appointment.appointment_query_service import AppointmentQueryService
from calsync.services.appointment.appointment_service import TERMINAL_STATUSES, AppointmentService
from calsync.services.calendar.base import CalendarProviderAdapter, ProviderEvent
from calsync.services.calendar.description import FOOTER
from calsync.services.calendar.integration_service import IntegrationService
from calsync.services.calendar.registry import ProviderRegistry

logger = logging.getLogger(__name__)

_EVENT_TYPES = {t.value for t in EventType}
_EVENT_STATUSES = {s.value for s in EventStatus}


class SyncService:

    def __init__(self, registry: ProviderRegistry):
        self.registry = registry

    def run_sync(self, db: Session, integration_id: UUID) -> SyncResult:
        """Full or incremental inbound sync of one integration.

        The continuation token is replaced only when the provider returned a
        new one; a failed run leaves it untouched so the next run resumes
        from the same point.
        """
        integration = IntegrationService.get_integration(db, integration_id)
        if not integration.is_active:
            return SyncResult(integration_id=integration.id, provider=integration.provider,
                              success=False, error="Integration is not active")

        adapter = self.registry.get(integration.provider)
        cursor = integration.sync_token
        sync_type = SyncType.INCREMENTAL if cursor else SyncType.FULL

        log = CalendarSyncLog(
            company_id=integration.company_id,
            integration_id=integration.id,
            sync_type=sync_type.value,
            sync_direction=SyncDirection.INBOUND.value,
            status=SyncRunStatus.RUNNING.value,
            errors=[],
        )
        db.add(log)
        db.commit()

        counts = {"created": 0, "updated": 0, "deleted": 0, "skipped": 0}
        skipped: List[Dict[str, str]] = []
        new_cursor = None
        cursor_reset = False

        try:
            page_token = None
            while True:
                page = adapter.list_changes(db, integration, cursor=cursor, page_token=page_token)
                if page.cursor_reset:
                    cursor, cursor_reset = None, True
                    sync_type = SyncType.FULL

                for item in page.items:
                    try:
                        self._apply_item(db, integration, adapter, item, counts)
                    except (KeyError, ValueError, TypeError) as e:
                        counts["skipped"] += 1
                        skipped.append({"id": str(item.get("id")), "error": str(e)})
                        logger.warning(f"Skipping malformed {integration.provider} item {item.get('id')}: {e}")
                db.commit()

                if page.next_cursor:
                    new_cursor = page.next_cursor
                if not page.has_more:
                    break
                page_token = page.next_page_token

        except Exception as e:
            db.rollback()
            logger.error(f"Sync failed for {integration.provider} integration {integration.id}: {e}")
            log.status = SyncRunStatus.FAILED.value
            log.error_message = str(e)
            log.errors = skipped
            log.completed_at = utcnow()
            integration.last_sync_status = SyncRunStatus.FAILED.value
            integration.last_sync_error = str(e)
            db.commit()
            return SyncResult(integration_id=integration.id, provider=integration.provider, success=False,
                              sync_type=sync_type, error=str(e), **counts)

        if new_cursor:
            integration.sync_token = new_cursor
            integration.last_synced_at = utcnow()
        elif cursor_reset:
            # The rejected cursor must not be replayed
            integration.sync_token = None
        integration.last_sync_status = SyncRunStatus.COMPLETED.value
        integration.last_sync_error = None

        log.sync_type = sync_type.value
        log.status = SyncRunStatus.COMPLETED.value
        log.events_created = counts["created"]
        log.events_updated = counts["updated"]
        log.events_deleted = counts["deleted"]
        log.errors = skipped
        log.completed_at = utcnow()
        db.commit()

        logger.info(
            f"{sync_type.value} sync of {integration.provider} integration {integration.id}: "
            f"{counts['created']} created, {counts['updated']} updated, {counts['deleted']} cancelled, "
            f"{counts['skipped']} skipped"
        )
        return SyncResult(integration_id=integration.id, provider=integration.provider, success=True,
                          sync_type=sync_type, **counts)

    def run_sync_all(self, db: Session, company_id: UUID) -> List[SyncResult]:
        """One independent run per active integration"""
        results = []
        for integration in IntegrationService.get_active_integrations(db, company_id):
            try:
                results.append(self.run_sync(db, integration.id))
            except Exception as e:
                db.rollback()
                logger.error(f"Sync of integration {integration.id} aborted: {e}")
                results.append(SyncResult(integration_id=integration.id, provider=integration.provider,
                                          success=False, error=str(e)))
        return results

    def _apply_item(self, db: Session, integration: CalendarIntegration, adapter: CalendarProviderAdapter,
                    item: Dict, counts: Dict[str, int]) -> None:
        remote = adapter.to_canonical(item)
        existing = AppointmentQueryService.find_by_external_id(
            db, integration.company_id, adapter.provider, remote.external_id
        )
        now = utcnow()

        if remote.cancelled:
            if existing:
                if existing.status not in TERMINAL_STATUSES:
                    existing.status = EventStatus.CANCELLED.value
                    existing.cancelled_at = now
                existing.sync_status = SyncStatus.SYNCED.value
                existing.last_synced_at = now
                counts["deleted"] += 1
            return

        if remote.start is None or remote.end is None:
            raise ValueError("event has no start or end")
        if remote.end < remote.start:
            raise ValueError("event ends before it starts")

        if existing:
            self._copy_remote_fields(existing, remote, adapter)
            # A cancelled record whose provider delete is still pending keeps its error state for retry_push
            if existing.status != EventStatus.CANCELLED.value or existing.sync_status == SyncStatus.SYNCED.value:
                existing.sync_status = SyncStatus.SYNCED.value
            existing.last_synced_at = now
            counts["updated"] += 1
            return

        event = CalendarEvent(
            company_id=integration.company_id,
            integration_id=integration.id,
            source=adapter.provider,
            event_type=EventType.MEETING.value,
            status=EventStatus.SCHEDULED.value,
            external_id_map={adapter.provider: remote.external_id},
            event_metadata={},
            sync_status=SyncStatus.SYNCED.value,
            last_synced_at=now,
        )
        self._copy_remote_fields(event, remote, adapter)
        db.add(event)
        counts["created"] += 1

    @staticmethod
    def _copy_remote_fields(event: CalendarEvent, remote: ProviderEvent, adapter: CalendarProviderAdapter) -> None:
        event.title = remote.title
        # Descriptions we generated ourselves are not fed back into the local record
        if remote.description is None or FOOTER not in remote.description:
            event.description = remote.description
        event.location = remote.location
        event.start_time = remote.start
        event.end_time = remote.end
        event.timezone = remote.timezone
        event.all_day = remote.all_day
        event.attendees = remote.attendees
        event.recurrence_rule = remote.recurrence_rule
        event.recurring_event_id = remote.recurring_event_id
        if remote.video_link:
            event.video_link = remote.video_link
            event.video_provider = event.video_provider or adapter.native_video_provider

        remote_type = remote.properties.get("calsync_type")
        if remote_type in _EVENT_TYPES:
            event.event_type = remote_type
        remote_status = remote.properties.get("calsync_status")
        if remote_status in _EVENT_STATUSES and remote_status != event.status:
            try:
                AppointmentService.check_transition(event.status, remote_status)
            except InvalidTransitionError:
                logger.info(f"Ignoring remote status {remote_status} for {event.status} event {event.id}")
                return
            event.status = remote_status
            if remote_status == EventStatus.CANCELLED.value:
                event.cancelled_at = event.cancelled_at or utcnow()
