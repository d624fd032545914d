"""
Dashboard Schemas
Pydantic models for profile, adherence and overview endpoints
"""

from typing import Optional, List, Dict
from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict

from api.schemas.auth import UserResponse
from api.schemas.dose import DoseLogResponse


# ==================== PROFILE ====================

class Illness(BaseModel):
    name: str
    status: str = "ongoing"


class DeviceLinkRequest(BaseModel):
    """Schema for registering or linking a dispenser"""
    device_id: str = Field(..., min_length=1, max_length=100)
    timezone: Optional[str] = Field(None, max_length=50)
    slot_count: Optional[int] = Field(None, ge=1, le=32)


class DeviceResponse(BaseModel):
    id: int
    device_id: str
    name: Optional[str] = None
    slot_count: int
    timezone: Optional[str] = None
    battery_level: Optional[int] = None
    wifi_strength: Optional[int] = None
    wifi_connected: Optional[bool] = None
    last_status: Optional[str] = None
    last_heartbeat_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class DeviceLinkResponse(BaseModel):
    message: str
    device: DeviceResponse


class CaretakerRequest(BaseModel):
    email: str = Field(..., min_length=3)
    relation: Optional[str] = Field(None, max_length=100)


class CaretakerLinkResponse(BaseModel):
    user_id: int
    relation: Optional[str] = None
    approved: bool
    requested_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class DoctorRequest(BaseModel):
    email: str = Field(..., min_length=3)


class PatientProfile(BaseModel):
    id: int
    illnesses: List[Illness] = []
    allergies: List[str] = []
    other_notes: Optional[str] = None
    device: Optional[DeviceResponse] = None
    caretakers: List[CaretakerLinkResponse] = []
    doctors: List[UserResponse] = []

    model_config = ConfigDict(from_attributes=True)


class ProfileUpdate(BaseModel):
    """Schema for updating contact details and the medical profile"""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    phone: Optional[str] = Field(None, max_length=20)
    allergies: Optional[List[str]] = None
    illnesses: Optional[List[str]] = None
    other_notes: Optional[str] = None


class ProfileResponse(BaseModel):
    user: UserResponse
    patient: Optional[PatientProfile] = None


# ==================== ADHERENCE ====================

class AdherenceResponse(BaseModel):
    """Missed includes skipped doses"""
    taken: int
    missed: int
    skipped: int
    rate: float
    taken_percent: int


class SummaryResponse(BaseModel):
    active_medicines: int
    doses_taken: int
    doses_missed: int
    doses_skipped: int


class HistorySummary(BaseModel):
    total_taken: int
    total_missed: int
    total_skipped: int
    adherence_rate: int
    current_streak: int


class TrendDay(BaseModel):
    day: str
    date: str
    taken: int
    total: int


class MedicineAdherence(BaseModel):
    medication_plan_id: int
    medication_name: str
    medication_strength: Optional[str] = None
    medication_form: Optional[str] = None
    taken: int
    total: int
    adherence_rate: int


class HistoryResponse(BaseModel):
    summary: HistorySummary
    weekly_trend: List[TrendDay]
    by_medicine: List[MedicineAdherence]
    recent_logs: List[DoseLogResponse]


# ==================== OVERVIEWS ====================

class RefillAlert(BaseModel):
    id: str
    name: str
    patient: str
    remaining: int
    severity: str


class ActivityItem(BaseModel):
    id: str
    time: datetime
    text: str


class OverviewScheduleItem(BaseModel):
    id: str
    patient: str
    time: datetime
    med: str
    status: str


class CarePatientRow(BaseModel):
    id: str
    name: str
    adherence: int
    status: str
    alerts: int
    next_dose_time: Optional[datetime] = None
    next_dose_medicine: Optional[str] = None


class DoctorPatientRow(BaseModel):
    id: str
    name: str
    diagnosis: str
    adherence: int
    next_dose_time: Optional[datetime] = None
    next_dose_medicine: Optional[str] = None


class ClinicalTask(BaseModel):
    id: str
    patient: str
    task: str
    due: str
    priority: str


class OverviewSummary(BaseModel):
    patient_count: int
    doses_today: int
    pending_today: int
    avg_adherence: int


class CaretakerOverview(BaseModel):
    patients: List[CarePatientRow]
    schedule: List[OverviewScheduleItem]
    refill_alerts: List[RefillAlert]
    activity: List[ActivityItem]
    summary: OverviewSummary


class DoctorOverview(BaseModel):
    patients: List[DoctorPatientRow]
    clinical_tasks: List[ClinicalTask]
    refill_alerts: List[RefillAlert]
    activity: List[ActivityItem]
    summary: OverviewSummary


class DeviceCounts(BaseModel):
    total: int
    online: int


class AdminOverview(BaseModel):
    users: Dict[str, int]
    devices: DeviceCounts
    patients: List[CarePatientRow]
    refill_alerts: List[RefillAlert]
    activity: List[ActivityItem]
    summary: OverviewSummary
