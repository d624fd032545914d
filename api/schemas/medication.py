"""
Medication Schemas
Pydantic models for medication-plan requests and responses
"""

import re
from typing import Annotated, Optional, List
from datetime import datetime
from pydantic import AfterValidator, BaseModel, Field, ConfigDict, field_validator


TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def _check_times(times: List[str]) -> List[str]:
    for value in times:
        if not TIME_PATTERN.match(value):
            raise ValueError(f"time must be HH:MM, got {value!r}")
    # Ordered set: keep first occurrence
    return list(dict.fromkeys(times))


def _check_days(days: List[int]) -> List[int]:
    for day in days:
        if day < 1 or day > 7:
            raise ValueError("days_of_week values must be between 1 (Monday) and 7 (Sunday)")
    return sorted(set(days))


def _check_dosage(value: float) -> float:
    if value < 0.25 or not float(value * 4).is_integer():
        raise ValueError("dosage_per_intake must be a positive multiple of 0.25")
    return value


TimeList = Annotated[List[str], AfterValidator(_check_times)]
DayList = Annotated[List[int], AfterValidator(_check_days)]
Dosage = Annotated[float, AfterValidator(_check_dosage)]


# ==================== REQUEST SCHEMAS ====================

class StockInput(BaseModel):
    """Initial stock loaded into a slot"""
    remaining: int = Field(default=0, ge=0)
    total_loaded: int = Field(default=0, ge=0)


class MedicationCreate(BaseModel):
    """Schema for adding a medication plan"""
    medication_name: str = Field(..., min_length=1, max_length=255)
    medication_strength: Optional[str] = Field(None, max_length=50)
    medication_form: Optional[str] = Field(None, max_length=50)
    dosage_per_intake: Dosage
    slot_index: int
    times: TimeList
    days_of_week: DayList
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    stock: Optional[StockInput] = None


class MedicationUpdate(BaseModel):
    """Schema for partially updating a medication plan"""
    medication_name: Optional[str] = Field(None, min_length=1, max_length=255)
    medication_strength: Optional[str] = Field(None, max_length=50)
    medication_form: Optional[str] = Field(None, max_length=50)
    dosage_per_intake: Optional[Dosage] = None
    slot_index: Optional[int] = None
    times: Optional[TimeList] = None
    days_of_week: Optional[DayList] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    active: Optional[bool] = None
    stock_remaining: Optional[int] = Field(None, ge=0)

    @field_validator(
        "medication_name", "dosage_per_intake", "slot_index", "times",
        "days_of_week", "start_date", "active", "stock_remaining"
    )
    @classmethod
    def not_null(cls, v, info):
        # Omit a field to leave it unchanged; only optional columns may be cleared
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v


class RefillRequest(BaseModel):
    """Units added to a slot"""
    amount: int


# ==================== RESPONSE SCHEMAS ====================

class StockResponse(BaseModel):
    total_loaded: int = 0
    remaining: int = 0
    last_refilled_at: Optional[datetime] = None


class MedicationResponse(BaseModel):
    """Schema for medication-plan response"""
    id: int
    patient_id: int
    device_id: int
    slot_index: int
    medication_name: str
    medication_strength: Optional[str] = None
    medication_form: Optional[str] = None
    dosage_per_intake: float
    times: List[str] = []
    days_of_week: List[int] = []
    active: bool = True
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    stock: StockResponse
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class MedicationEnvelope(BaseModel):
    """Create/update/refill response"""
    message: str
    medication_plan: MedicationResponse
