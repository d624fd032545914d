"""
Hardware API Router
Endpoints used by the pill dispenser, authenticated with the shared device key
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

import models
from models import DoseStatus
from api.deps import get_db, get_clock, verify_device_key, services
from api.schemas.dose import (
    DeviceDoseAction,
    HardwareDoseItem,
    HardwareDoseList,
    HardwareActionResponse,
)
from services.dose_service import format_dosage
from services.errors import ValidationFailed
from tools.clock import Clock


router = APIRouter(
    prefix="/hardware",
    tags=["hardware"],
    dependencies=[Depends(verify_device_key)],
)

device_router = APIRouter(
    prefix="/device",
    tags=["hardware"],
    dependencies=[Depends(verify_device_key)],
)


def to_hardware_item(dose: models.DoseLog) -> HardwareDoseItem:
    plan = dose.medication_plan
    return HardwareDoseItem(
        id=str(dose.id),
        medication_plan_id=dose.medication_plan_id,
        medicine_name=plan.medication_name if plan else "Unknown",
        dosage=format_dosage(plan),
        scheduled_at=dose.scheduled_at,
        scheduled_time=dose.scheduled_at.strftime("%H:%M"),
        status=dose.status,
        slot=dose.slot_index,
    )


def _resolve_device_id(query_value: Optional[str], body: Optional[DeviceDoseAction]) -> str:
    device_id = query_value or (body.device_id if body else None)
    if not device_id or not device_id.strip():
        raise ValidationFailed("deviceId is required")
    return device_id


# ==================== READS ====================

@router.get("/upcoming", response_model=HardwareDoseList)
async def get_upcoming(
    device_id: str = Query(..., alias="deviceId", description="Hardware device identifier"),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db)
):
    """
    Doses from 30 minutes ago to 24 hours ahead

    Expired dispenses are reverted, overdue doses are marked missed and
    missing occurrences are created before the list is returned.
    """
    dose_service = services.get_dose_service()

    doses = await dose_service.get_upcoming(device_id, clock.now(), db=db)
    return HardwareDoseList(data=[to_hardware_item(d) for d in doses])


@router.get("/taken", response_model=HardwareDoseList)
async def get_taken(
    device_id: str = Query(..., alias="deviceId", description="Hardware device identifier"),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db)
):
    """
    Doses taken in the last 7 days
    """
    dose_service = services.get_dose_service()

    doses = await dose_service.get_device_history(
        device_id, (DoseStatus.TAKEN,), clock.now(), db=db
    )
    return HardwareDoseList(data=[to_hardware_item(d) for d in doses])


@router.get("/missed", response_model=HardwareDoseList)
async def get_missed(
    device_id: str = Query(..., alias="deviceId", description="Hardware device identifier"),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db)
):
    """
    Doses missed or skipped in the last 7 days
    """
    dose_service = services.get_dose_service()

    doses = await dose_service.get_device_history(
        device_id, (DoseStatus.MISSED, DoseStatus.SKIPPED), clock.now(), db=db
    )
    return HardwareDoseList(data=[to_hardware_item(d) for d in doses])


# ==================== CONFIRMATIONS ====================

async def _device_mark(
    dose_id: str,
    target: DoseStatus,
    device_id: Optional[str],
    action: Optional[DeviceDoseAction],
    clock: Clock,
    db: Session
) -> HardwareActionResponse:
    dose_service = services.get_dose_service()

    dose = await dose_service.device_mark(
        _resolve_device_id(device_id, action),
        dose_id,
        target,
        clock.now(),
        reason=action.reason if action else None,
        db=db
    )
    return HardwareActionResponse(ok=True, dose=to_hardware_item(dose))


@router.patch("/doses/{dose_id}/mark-dispensed", response_model=HardwareActionResponse)
async def mark_dispensed(
    dose_id: str,
    action: Optional[DeviceDoseAction] = None,
    device_id: Optional[str] = Query(None, alias="deviceId"),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db)
):
    """
    The dispenser released the dose; it must be confirmed within 5 minutes
    """
    return await _device_mark(dose_id, DoseStatus.DISPENSED, device_id, action, clock, db)


@router.patch("/doses/{dose_id}/mark-taken", response_model=HardwareActionResponse)
async def mark_taken(
    dose_id: str,
    action: Optional[DeviceDoseAction] = None,
    device_id: Optional[str] = Query(None, alias="deviceId"),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db)
):
    """
    The patient picked up the dose
    """
    return await _device_mark(dose_id, DoseStatus.TAKEN, device_id, action, clock, db)


@router.patch("/doses/{dose_id}/mark-skipped", response_model=HardwareActionResponse)
async def mark_skipped(
    dose_id: str,
    action: Optional[DeviceDoseAction] = None,
    device_id: Optional[str] = Query(None, alias="deviceId"),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db)
):
    """
    The patient skipped the dose on the device
    """
    return await _device_mark(dose_id, DoseStatus.SKIPPED, device_id, action, clock, db)


# ==================== DEVICE PROFILE ====================

@device_router.get("/{device_id}/profile")
async def get_device_profile(
    device_id: str,
    db: Session = Depends(get_db)
):
    """
    Read-only device and patient profile for the dispenser display
    """
    patient_service = services.get_patient_service()
    return await patient_service.get_device_profile(device_id, db=db)
