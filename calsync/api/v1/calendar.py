# calsync/api/v1/calendar.py
from datetime import date, datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from calsync.config.database import get_db
from calsync.schemas.calendar_events import (
    AvailabilityResult,
    CalendarEventOut,
    CalendarProvider,
    CreateEventRequest,
    EventActionRequest,
    ScheduleOverrides,
    SlotCheckRequest,
    SlotCheckResult,
    SyncResult,
)
from calsync.services.appointment.appointment_query_service import AppointmentQueryService
from calsync.services.appointment.appointment_service import AppointmentService
from calsync.services.availability.availability_service import AvailabilityService
from calsync.services.availability.busy_slots_service import BusySlotService
from calsync.services.availability.conflict_checker import ConflictChecker
from calsync.services.calendar.integration_service import IntegrationService
from calsync.services.calendar.registry import ProviderRegistry, get_provider_registry
from calsync.services.calendar.sync_service import SyncService
from calsync.tasks.calendar_tasks import sync_calendar_integration

router = APIRouter(tags=["calendar"])


def _split_days(value: Optional[str]):
    if value is None:
        return None
    return [d.strip() for d in value.split(",") if d.strip()]


# ========== OAUTH ==========
@router.post("/google/authorize/{company_id}")
async def initiate_google_auth(company_id: UUID, registry: ProviderRegistry = Depends(get_provider_registry)):
    """Returns authorization URL for the company admin to visit"""
    service = registry.get(CalendarProvider.GOOGLE_CALENDAR.value)
    return {"authorization_url": service.generate_authorization_url(str(company_id))}


@router.get("/google/callback")
async def google_callback(
        code: str,
        state: str,  # company_id
        db: Session = Depends(get_db),
        registry: ProviderRegistry = Depends(get_provider_registry)
):
    """Google redirects here after authorization"""
    service = registry.get(CalendarProvider.GOOGLE_CALENDAR.value)
    integration = service.handle_oauth_callback(code, state, db)
    sync_calendar_integration.delay(str(integration.id))

    return {
        "success": True,
        "integration_id": str(integration.id),
        "calendars": (integration.provider_config or {}).get("calendar_list", [])
    }


@router.post("/outlook/authorize/{company_id}")
async def initiate_outlook_auth(company_id: UUID, registry: ProviderRegistry = Depends(get_provider_registry)):
    """Returns authorization URL for the company admin to visit"""
    service = registry.get(CalendarProvider.MICROSOFT_OUTLOOK.value)
    return {"authorization_url": await service.generate_authorization_url(str(company_id))}


@router.get("/outlook/callback")
async def outlook_callback(
        code: str,
        state: str,  # company_id
        db: Session = Depends(get_db),
        registry: ProviderRegistry = Depends(get_provider_registry)
):
    """Microsoft redirects here after authorization"""
    service = registry.get(CalendarProvider.MICROSOFT_OUTLOOK.value)
    integration = await service.handle_oauth_callback(code, state, db)
    sync_calendar_integration.delay(str(integration.id))

    return {
        "success": True,
        "integration_id": str(integration.id),
        "calendars": (integration.provider_config or {}).get("calendar_list", [])
    }


# ========== INTEGRATIONS ==========
@router.patch("/integrations/{integration_id}/select-calendar")
async def select_calendar(
        integration_id: UUID,
        calendar_id: str = Query(...),
        db: Session = Depends(get_db)
):
    """Switch the provider-side calendar; the next sync is a full one"""
    integration = IntegrationService.select_calendar(db, integration_id, calendar_id)
    return {"success": True, "integration_id": str(integration.id), "calendar_id": integration.calendar_id}


@router.post("/integrations/{integration_id}/sync", response_model=SyncResult)
async def sync_integration(
        integration_id: UUID,
        db: Session = Depends(get_db),
        registry: ProviderRegistry = Depends(get_provider_registry)
):
    return SyncService(registry).run_sync(db, integration_id)


@router.get("/{company_id}/integrations")
async def list_integrations(
        company_id: UUID,
        db: Session = Depends(get_db),
        registry: ProviderRegistry = Depends(get_provider_registry)
):
    """Connection status per provider, including the environment-configured meeting service"""
    return {"integrations": IntegrationService.get_statuses(db, company_id, meetings=registry.meetings)}


@router.delete("/{company_id}/integrations/{provider}")
async def disconnect_integration(
        company_id: UUID,
        provider: CalendarProvider,
        db: Session = Depends(get_db)
):
    if not IntegrationService.disconnect(db, company_id, provider.value):
        raise HTTPException(status_code=404, detail=f"No {provider.value} integration found")
    return {"success": True}


@router.post("/{company_id}/sync")
async def sync_company(
        company_id: UUID,
        db: Session = Depends(get_db),
        registry: ProviderRegistry = Depends(get_provider_registry)
):
    results = SyncService(registry).run_sync_all(db, company_id)
    return {"results": results}


# ========== AVAILABILITY ==========
@router.get("/{company_id}/availability", response_model=AvailabilityResult)
async def get_availability(
        company_id: UUID,
        date: date = Query(..., description="Date in YYYY-MM-DD format"),
        slot_duration: Optional[int] = Query(None, gt=0),
        working_hours_start: Optional[str] = Query(None, description="HH:MM"),
        working_hours_end: Optional[str] = Query(None, description="HH:MM"),
        working_days: Optional[str] = Query(None, description="Comma-separated weekday names"),
        exclude_holidays: Optional[bool] = None,
        timezone: Optional[str] = None,
        db: Session = Depends(get_db),
        registry: ProviderRegistry = Depends(get_provider_registry)
):
    overrides = ScheduleOverrides(
        slot_duration_minutes=slot_duration,
        working_hours_start=working_hours_start,
        working_hours_end=working_hours_end,
        working_days=_split_days(working_days),
        exclude_holidays=exclude_holidays,
        timezone=timezone,
    )
    service = AvailabilityService(BusySlotService(registry))
    return await service.get_availability(db, company_id, date, overrides)


@router.get("/{company_id}/next-available")
async def get_next_available_slot(
        company_id: UUID,
        after: Optional[datetime] = None,
        duration: Optional[int] = Query(None, gt=0),
        max_days: Optional[int] = Query(None, gt=0, le=90),
        db: Session = Depends(get_db),
        registry: ProviderRegistry = Depends(get_provider_registry)
):
    """
    Get the next available appointment slot
    Useful for "earliest available" feature
    """
    service = AvailabilityService(BusySlotService(registry))
    slot = await service.find_next_available_slot(
        db, company_id, after or datetime.now().astimezone(), duration_minutes=duration, max_days_to_search=max_days
    )
    if slot is None:
        return {"available": False, "slot": None}
    return {"available": True, "slot": slot}


@router.post("/{company_id}/check-slot", response_model=SlotCheckResult)
async def check_slot(
        company_id: UUID,
        request: SlotCheckRequest,
        db: Session = Depends(get_db),
        registry: ProviderRegistry = Depends(get_provider_registry)
):
    checker = ConflictChecker(BusySlotService(registry))
    return await checker.is_slot_available(db, company_id, request.start_time, request.end_time)


# ========== EVENTS ==========
@router.get("/{company_id}/events")
async def list_events(
        company_id: UUID,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        event_type: Optional[str] = None,
        status: Optional[str] = None,
        source: Optional[str] = None,
        contact_id: Optional[UUID] = None,
        limit: int = Query(500, gt=0, le=1000),
        db: Session = Depends(get_db)
):
    events = AppointmentQueryService.get_calendar_events(
        db, company_id, start_date=start_date, end_date=end_date, event_type=event_type,
        status=status, source=source, contact_id=contact_id, limit=limit
    )
    return {"total": len(events), "events": [CalendarEventOut.model_validate(e) for e in events]}


@router.post("/{company_id}/events", response_model=CalendarEventOut, status_code=201)
async def create_event(
        company_id: UUID,
        request: CreateEventRequest,
        check_conflicts: bool = Query(False),
        db: Session = Depends(get_db),
        registry: ProviderRegistry = Depends(get_provider_registry)
):
    if check_conflicts:
        checker = ConflictChecker(BusySlotService(registry))
        result = await checker.is_slot_available(db, company_id, request.start_time, request.end_time)
        if not result.available:
            raise HTTPException(status_code=409, detail=result.model_dump(mode="json"))

    return AppointmentService(registry).create_appointment(db, company_id, request)


@router.put("/events/{event_id}")
async def update_event(
        event_id: UUID,
        request: EventActionRequest,
        db: Session = Depends(get_db),
        registry: ProviderRegistry = Depends(get_provider_registry)
):
    """Apply a lifecycle action: update, confirm, cancel, no_show or reschedule"""
    service = AppointmentService(registry)
    retry_event = None

    if request.action == "update":
        if request.updates is None:
            raise HTTPException(status_code=400, detail="'updates' is required for action 'update'")
        event = service.update_appointment(db, event_id, request.updates)
    elif request.action == "confirm":
        event = service.confirm_appointment(db, event_id)
    elif request.action == "cancel":
        event = service.cancel_appointment(db, event_id, request.reason)
    elif request.action == "no_show":
        event, retry_event = service.mark_no_show(
            db, event_id, schedule_retry=request.schedule_retry,
            retry_date=request.retry_date, retry_notes=request.retry_notes
        )
    else:
        if not request.new_start_time or not request.new_end_time:
            raise HTTPException(status_code=400, detail="new_start_time and new_end_time are required")
        event = service.reschedule_appointment(
            db, event_id, request.new_start_time, request.new_end_time, request.reason
        )

    response = {"event": CalendarEventOut.model_validate(event)}
    if retry_event is not None:
        response["retry_event"] = CalendarEventOut.model_validate(retry_event)
    return response


@router.delete("/events/{event_id}", response_model=CalendarEventOut)
async def delete_event(
        event_id: UUID,
        reason: Optional[str] = None,
        db: Session = Depends(get_db),
        registry: ProviderRegistry = Depends(get_provider_registry)
):
    """Soft delete: the event is cancelled locally and removed from provider calendars"""
    return AppointmentService(registry).cancel_appointment(db, event_id, reason)
