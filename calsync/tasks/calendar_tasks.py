# calsync/tasks/calendar_tasks.py
"""Background calendar sync and push tasks"""
import logging
from uuid import UUID

from calsync.config.celery_config import celery_app
from calsync.config.database import get_db
from calsync.exceptions import EventNotFoundError, IntegrationNotFoundError, ReauthorizationRequired
from calsync.schemas.calendar_events import SyncStatus
from calsync.services.appointment.appointment_service import AppointmentService
from calsync.services.calendar.integration_service import IntegrationService
from calsync.services.calendar.registry import get_provider_registry
from calsync.services.calendar.sync_service import SyncService

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=3)
def sync_calendar_integration(self, integration_id: str):
    """Pull changes for one integration"""
    db = next(get_db())
    try:
        result = SyncService(get_provider_registry()).run_sync(db, UUID(integration_id))
    except IntegrationNotFoundError:
        logger.error(f"Integration {integration_id} not found")
        return {"status": "failed", "reason": "integration_not_found"}
    finally:
        db.close()

    if result.success:
        return result.model_dump(mode="json")

    db = next(get_db())
    try:
        integration = IntegrationService.get_integration(db, UUID(integration_id))
        needs_reauth = not integration.is_active
    finally:
        db.close()

    # A revoked grant will not heal by retrying
    if needs_reauth:
        logger.warning(f"Integration {integration_id} needs re-authorization, not retrying")
        return result.model_dump(mode="json")

    logger.error(f"Calendar sync failed for integration {integration_id}: {result.error}")
    raise self.retry(countdown=60 * (self.request.retries + 1))


@celery_app.task(bind=True, max_retries=3)
def sync_company_calendars(self, company_id: str):
    """Pull changes for every active integration of a company"""
    try:
        db = next(get_db())
        try:
            results = SyncService(get_provider_registry()).run_sync_all(db, UUID(company_id))
        finally:
            db.close()

        failed = [r for r in results if not r.success]
        logger.info(f"Company {company_id} sync: {len(results) - len(failed)} ok, {len(failed)} failed")
        return {"status": "completed", "results": [r.model_dump(mode="json") for r in results]}

    except Exception as exc:
        logger.error(f"Company sync failed for {company_id}: {exc}")
        raise self.retry(countdown=60 * (self.request.retries + 1))


@celery_app.task
def sync_all_companies():
    """Periodic fan-out: one sync_company_calendars task per company with an active integration"""
    db = next(get_db())
    try:
        company_ids = IntegrationService.get_active_company_ids(db)
    finally:
        db.close()

    for company_id in company_ids:
        sync_company_calendars.delay(str(company_id))

    logger.info(f"Queued calendar sync for {len(company_ids)} companies")
    return {"status": "queued", "companies": len(company_ids)}


@celery_app.task(bind=True, max_retries=3)
def push_appointment_to_calendars(self, event_id: str):
    """Re-push an appointment whose earlier propagation failed"""
    try:
        db = next(get_db())
        try:
            event = AppointmentService(get_provider_registry()).retry_push(db, UUID(event_id))
            sync_status, sync_error = event.sync_status, event.sync_error
        finally:
            db.close()
    except EventNotFoundError:
        logger.error(f"Event {event_id} not found")
        return {"status": "failed", "reason": "event_not_found"}
    except ReauthorizationRequired as e:
        logger.warning(f"Push of event {event_id} needs re-authorization of {e.provider}")
        return {"status": "failed", "reason": "reauthorization_required"}
    except Exception as exc:
        logger.error(f"Push failed for event {event_id}: {exc}")
        raise self.retry(countdown=60 * (self.request.retries + 1))

    if sync_status == SyncStatus.ERROR.value:
        logger.warning(f"Push of event {event_id} incomplete: {sync_error}")
        raise self.retry(countdown=60 * (self.request.retries + 1))

    return {"status": sync_status, "event_id": event_id}
