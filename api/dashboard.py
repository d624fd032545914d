"""
Dashboard API Router
Endpoints for the patient, caretaker, doctor and admin dashboards
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

import models
from api.deps import get_db, get_clock, get_current_user, services
from api.schemas.auth import UserResponse
from api.schemas.dashboard import (
    AdherenceResponse,
    SummaryResponse,
    HistoryResponse,
    ProfileResponse,
    ProfileUpdate,
    PatientProfile,
    DeviceLinkRequest,
    DeviceLinkResponse,
    DeviceResponse,
    CaretakerRequest,
    CaretakerLinkResponse,
    DoctorRequest,
    CaretakerOverview,
    DoctorOverview,
    AdminOverview,
)
from api.schemas.dose import (
    ScheduleItem,
    DoseActionResponse,
    DoseLogResponse,
    MarkMissedRequest,
)
from api.schemas.medication import (
    MedicationCreate,
    MedicationUpdate,
    MedicationResponse,
    MedicationEnvelope,
    RefillRequest,
)
from tools.clock import Clock
from tools.reconciler import ScheduleEntry


router = APIRouter(prefix="/dashboard", tags=["dashboard"])


def to_schedule_item(entry: ScheduleEntry) -> ScheduleItem:
    plan = entry.plan
    return ScheduleItem(
        id=entry.id,
        medication_plan_id=plan.id,
        medication_name=plan.medication_name,
        medication_strength=plan.medication_strength,
        medication_form=plan.medication_form,
        dosage_per_intake=plan.dosage_per_intake,
        slot=plan.slot_index,
        scheduled_at=entry.scheduled_at,
        status=entry.status,
        taken_at=entry.taken_at,
        dispensed_at=entry.dispensed_at,
        is_pending_medicine=entry.is_pending_medicine,
    )


def to_profile(user: models.User) -> ProfileResponse:
    patient = user.patient
    return ProfileResponse(
        user=UserResponse.model_validate(user),
        patient=PatientProfile.model_validate(patient) if patient else None,
    )


# ==================== MEDICINES ====================

@router.get("/medicines", response_model=List[MedicationResponse])
async def get_medicines(
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    List the caller's medication plans, active and inactive
    """
    medication_service = services.get_medication_service()
    return await medication_service.list_medicines(user.id, db=db)


@router.post("/medicines", response_model=MedicationEnvelope, status_code=status.HTTP_201_CREATED)
async def add_medicine(
    medication_data: MedicationCreate,
    user: models.User = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db)
):
    """
    Add a medication plan to a dispenser slot

    - **slot_index**: 1-based slot, unique among active plans
    - **times**: "HH:MM" intake times
    - **days_of_week**: 1=Monday .. 7=Sunday; empty leaves the medicine unscheduled
    """
    medication_service = services.get_medication_service()
    stock = medication_data.stock

    plan = await medication_service.add_medicine(
        user_id=user.id,
        medication_name=medication_data.medication_name,
        dosage_per_intake=medication_data.dosage_per_intake,
        slot_index=medication_data.slot_index,
        times=medication_data.times,
        days_of_week=medication_data.days_of_week,
        medication_strength=medication_data.medication_strength,
        medication_form=medication_data.medication_form,
        start_date=medication_data.start_date,
        end_date=medication_data.end_date,
        stock_remaining=stock.remaining if stock else None,
        stock_total_loaded=stock.total_loaded if stock else None,
        now=clock.now(),
        db=db
    )
    return MedicationEnvelope(
        message="Medicine added successfully",
        medication_plan=MedicationResponse.model_validate(plan),
    )


@router.patch("/medicines/{medication_id}", response_model=MedicationEnvelope)
async def update_medicine(
    medication_id: int,
    medication_data: MedicationUpdate,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Partially update a medication plan; set active=false to retire it
    """
    medication_service = services.get_medication_service()

    plan = await medication_service.update_medicine(
        user.id,
        medication_id,
        medication_data.model_dump(exclude_unset=True),
        db=db
    )
    return MedicationEnvelope(
        message="Medication updated successfully",
        medication_plan=MedicationResponse.model_validate(plan),
    )


@router.patch("/medications/{medication_id}/refill", response_model=MedicationEnvelope)
async def refill_medication(
    medication_id: int,
    refill_data: RefillRequest,
    user: models.User = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db)
):
    """
    Add units to a slot's stock
    """
    medication_service = services.get_medication_service()

    plan = await medication_service.refill(
        user.id, medication_id, refill_data.amount, now=clock.now(), db=db
    )
    return MedicationEnvelope(
        message="Medication refilled successfully",
        medication_plan=MedicationResponse.model_validate(plan),
    )


# ==================== SCHEDULE & DOSES ====================

@router.get("/schedule", response_model=List[ScheduleItem])
async def get_schedule_today(
    user: models.User = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db)
):
    """
    Today's doses, earliest first, unscheduled medicines last
    """
    dose_service = services.get_dose_service()

    entries = await dose_service.get_schedule_today(user.id, clock.now(), db=db)
    return [to_schedule_item(entry) for entry in entries]


@router.patch("/doses/{dose_id}/mark-taken", response_model=DoseActionResponse)
async def mark_dose_taken(
    dose_id: str,
    user: models.User = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db)
):
    """
    Confirm a dose as taken; accepts a dose id or a "{planId}_{epochMs}" key
    """
    dose_service = services.get_dose_service()

    dose = await dose_service.mark_taken(user.id, dose_id, clock.now(), db=db)
    return DoseActionResponse(
        message="Dose marked as taken",
        dose=DoseLogResponse.model_validate(dose),
    )


@router.patch("/doses/{dose_id}/mark-missed", response_model=DoseActionResponse)
async def mark_dose_missed(
    dose_id: str,
    missed_data: Optional[MarkMissedRequest] = None,
    user: models.User = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db)
):
    """
    Report a dose as missed
    """
    dose_service = services.get_dose_service()

    dose = await dose_service.mark_missed(
        user.id,
        dose_id,
        clock.now(),
        reason=missed_data.reason if missed_data else None,
        db=db
    )
    return DoseActionResponse(
        message="Dose marked as missed",
        dose=DoseLogResponse.model_validate(dose),
    )


# ==================== ADHERENCE ====================

@router.get("/adherence", response_model=AdherenceResponse)
async def get_adherence(
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    All-time adherence rate
    """
    adherence_service = services.get_adherence_service()
    return await adherence_service.get_adherence(user.id, db=db)


@router.get("/summary", response_model=SummaryResponse)
async def get_summary(
    user: models.User = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db)
):
    """
    Today's counters
    """
    adherence_service = services.get_adherence_service()
    return await adherence_service.get_summary(user.id, clock.now(), db=db)


@router.get("/history", response_model=HistoryResponse)
async def get_history(
    user: models.User = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db)
):
    """
    Streak, weekly trend, per-medicine breakdown and recent logs
    """
    adherence_service = services.get_adherence_service()
    return await adherence_service.get_history(user.id, clock.now(), db=db)


# ==================== PROFILE & CARE TEAM ====================

@router.get("/profile", response_model=ProfileResponse)
async def get_profile(
    user: models.User = Depends(get_current_user)
):
    """
    Caller's account and, for patients, the medical profile
    """
    return to_profile(user)


@router.patch("/profile", response_model=ProfileResponse)
async def update_profile(
    profile_data: ProfileUpdate,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Update contact details and the medical profile
    """
    patient_service = services.get_patient_service()

    user = await patient_service.update_profile(
        user,
        name=profile_data.name,
        phone=profile_data.phone,
        allergies=profile_data.allergies,
        illnesses=profile_data.illnesses,
        other_notes=profile_data.other_notes,
        db=db
    )
    return to_profile(user)


@router.post("/device", response_model=DeviceLinkResponse)
async def link_device(
    device_data: DeviceLinkRequest,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Register a dispenser (or reuse an existing one) and link it to the caller
    """
    patient_service = services.get_patient_service()

    device = await patient_service.link_device(
        user,
        device_data.device_id,
        timezone=device_data.timezone,
        slot_count=device_data.slot_count,
        db=db
    )
    return DeviceLinkResponse(
        message="Device linked successfully",
        device=DeviceResponse.model_validate(device),
    )


@router.post("/caretakers", response_model=CaretakerLinkResponse, status_code=status.HTTP_201_CREATED)
async def add_caretaker(
    caretaker_data: CaretakerRequest,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Invite a caretaker by email; access starts once approved
    """
    patient_service = services.get_patient_service()
    return await patient_service.add_caretaker(
        user, caretaker_data.email, relation=caretaker_data.relation, db=db
    )


@router.patch("/caretakers/{caretaker_user_id}/approve", response_model=CaretakerLinkResponse)
async def approve_caretaker(
    caretaker_user_id: int,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Approve a pending caretaker
    """
    patient_service = services.get_patient_service()
    return await patient_service.approve_caretaker(user, caretaker_user_id, db=db)


@router.post("/doctors", response_model=ProfileResponse, status_code=status.HTTP_201_CREATED)
async def add_doctor(
    doctor_data: DoctorRequest,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Add a doctor to the caller's care team
    """
    patient_service = services.get_patient_service()

    await patient_service.add_doctor(user, doctor_data.email, db=db)
    db.refresh(user)
    return to_profile(user)


# ==================== OVERVIEWS ====================

@router.get("/caretaker/overview", response_model=CaretakerOverview)
async def get_caretaker_overview(
    user: models.User = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db)
):
    """
    Patients who approved the caller as caretaker
    """
    overview_service = services.get_overview_service()
    return await overview_service.caretaker_overview(user, clock.now(), db=db)


@router.get("/doctor/overview", response_model=DoctorOverview)
async def get_doctor_overview(
    user: models.User = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db)
):
    """
    Patients listing the caller as doctor, with clinical tasks
    """
    overview_service = services.get_overview_service()
    return await overview_service.doctor_overview(user, clock.now(), db=db)


@router.get("/admin/overview", response_model=AdminOverview)
async def get_admin_overview(
    user: models.User = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db)
):
    """
    System-wide counts and every patient
    """
    overview_service = services.get_overview_service()
    return await overview_service.admin_overview(user, clock.now(), db=db)
