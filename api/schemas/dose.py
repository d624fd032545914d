"""
Dose Schemas
Pydantic models for schedules, dose logs and the hardware API
"""

from typing import Optional, List
from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict

from models import DoseStatus


# ==================== REQUEST SCHEMAS ====================

class MarkMissedRequest(BaseModel):
    """Optional reason attached to a missed dose"""
    reason: Optional[str] = Field(None, max_length=500)


class DeviceDoseAction(BaseModel):
    """Body of a device confirmation; deviceId may also come as a query param"""
    device_id: Optional[str] = Field(None, alias="deviceId")
    reason: Optional[str] = Field(None, max_length=500)

    model_config = ConfigDict(populate_by_name=True)


# ==================== RESPONSE SCHEMAS ====================

class DoseLogResponse(BaseModel):
    """Persisted dose log"""
    id: int
    patient_id: int
    device_id: int
    medication_plan_id: int
    slot_index: int
    scheduled_at: datetime
    status: DoseStatus
    dispensed_at: Optional[datetime] = None
    taken_at: Optional[datetime] = None
    missed_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class DoseActionResponse(BaseModel):
    message: str
    dose: DoseLogResponse


class ScheduleItem(BaseModel):
    """
    One entry of today's schedule.

    `id` is a DoseLog id, a "{planId}_{epochMs}" key for a projected dose
    without a log yet, or "pending_{planId}" for an unscheduled medicine.
    """
    id: str
    medication_plan_id: int
    medication_name: str
    medication_strength: Optional[str] = None
    medication_form: Optional[str] = None
    dosage_per_intake: float
    slot: int
    scheduled_at: datetime
    status: DoseStatus
    taken_at: Optional[datetime] = None
    dispensed_at: Optional[datetime] = None
    is_pending_medicine: bool = False


class HardwareDoseItem(BaseModel):
    """Dose as seen by the dispenser"""
    id: str
    medication_plan_id: int
    medicine_name: str
    dosage: str
    scheduled_at: datetime
    scheduled_time: str
    status: DoseStatus
    slot: int


class HardwareDoseList(BaseModel):
    data: List[HardwareDoseItem]


class HardwareActionResponse(BaseModel):
    ok: bool = True
    dose: HardwareDoseItem
