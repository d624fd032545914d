"""
Medication Service
Business logic for medication plans and dispenser slots
"""

import logging
from typing import Dict, List, Optional, Any
from datetime import datetime
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError

from database import get_db_context
import models
from services.errors import NotFoundError, ValidationFailed, ConflictError
from services.patient_service import patient_service


logger = logging.getLogger(__name__)

SLOT_TAKEN_MESSAGE = "Slot already assigned to another active medicine"

UPDATABLE_FIELDS = (
    "medication_name",
    "medication_strength",
    "medication_form",
    "dosage_per_intake",
    "times",
    "days_of_week",
    "start_date",
    "end_date",
)

SLOT_INDEX_NAME = "uq_medication_plans_active_slot"


def is_slot_conflict(error: IntegrityError) -> bool:
    """True when the active-slot unique index rejected the write"""
    # PostgreSQL names the index, SQLite lists its columns
    message = str(error.orig)
    return SLOT_INDEX_NAME in message or "medication_plans.slot_index" in message


class MedicationService:
    """
    Service for medication-plan operations
    """

    def _require_device(self, patient: models.Patient, session: Session) -> models.Device:
        if not patient.device_id:
            raise ValidationFailed("Patient device not configured")
        device = session.query(models.Device).filter(
            models.Device.id == patient.device_id
        ).first()
        if not device:
            raise ValidationFailed("Patient device not found")
        return device

    def _check_slot_range(self, slot_index: int, device: models.Device) -> None:
        slot_count = device.slot_count or 0
        if slot_index < 1 or slot_index > slot_count:
            raise ValidationFailed(f"slot_index must be between 1 and {slot_count}")

    def _check_slot_free(
        self,
        session: Session,
        patient_id: int,
        slot_index: int,
        exclude_plan_id: Optional[int] = None
    ) -> None:
        query = session.query(models.MedicationPlan).filter(
            models.MedicationPlan.patient_id == patient_id,
            models.MedicationPlan.slot_index == slot_index,
            models.MedicationPlan.active.is_(True)
        )
        if exclude_plan_id is not None:
            query = query.filter(models.MedicationPlan.id != exclude_plan_id)
        if query.first():
            raise ConflictError(SLOT_TAKEN_MESSAGE)

    def _commit_plan(self, session: Session, plan: models.MedicationPlan) -> None:
        # The partial unique index catches races the pre-check cannot see
        try:
            session.commit()
        except IntegrityError as e:
            session.rollback()
            if not is_slot_conflict(e):
                raise
            raise ConflictError(SLOT_TAKEN_MESSAGE)
        session.refresh(plan)

    async def list_medicines(
        self,
        user_id: int,
        db: Optional[Session] = None
    ) -> List[models.MedicationPlan]:
        """All plans of the caller's patient, active and inactive"""
        def _list(session: Session) -> List[models.MedicationPlan]:
            patient = patient_service.require_by_user(user_id, session)
            return session.query(models.MedicationPlan).filter(
                models.MedicationPlan.patient_id == patient.id
            ).order_by(models.MedicationPlan.slot_index, models.MedicationPlan.id).all()

        if db:
            return _list(db)

        with get_db_context() as session:
            return _list(session)

    async def add_medicine(
        self,
        user_id: int,
        medication_name: str,
        dosage_per_intake: float,
        slot_index: int,
        times: List[str],
        days_of_week: List[int],
        medication_strength: Optional[str] = None,
        medication_form: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        stock_remaining: Optional[int] = None,
        stock_total_loaded: Optional[int] = None,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> models.MedicationPlan:
        """
        Create an active medication plan in a dispenser slot.

        Args:
            user_id: Caller (patient user) ID
            medication_name: Drug name
            dosage_per_intake: Units per intake, quarter-unit granularity
            slot_index: 1-based dispenser slot
            times: "HH:MM" intake times
            days_of_week: 1=Monday .. 7=Sunday; empty leaves the plan unscheduled
            start_date: First valid day, defaults to now
            end_date: Last valid day, open-ended when None
            db: Database session

        Returns:
            Created MedicationPlan

        Raises:
            NotFoundError: caller has no patient profile
            ValidationFailed: no device, or slot outside 1..slot_count
            ConflictError: slot already used by another active plan
        """
        def _add(session: Session) -> models.MedicationPlan:
            patient = patient_service.require_by_user(user_id, session)
            device = self._require_device(patient, session)
            self._check_slot_range(slot_index, device)
            self._check_slot_free(session, patient.id, slot_index)

            remaining = stock_remaining or 0
            plan = models.MedicationPlan(
                patient_id=patient.id,
                device_id=device.id,
                slot_index=slot_index,
                medication_name=medication_name,
                medication_strength=medication_strength,
                medication_form=medication_form or "tablet",
                dosage_per_intake=dosage_per_intake,
                times=list(times),
                days_of_week=list(days_of_week),
                start_date=start_date or now or datetime.now(),
                end_date=end_date,
                active=True,
                stock_remaining=remaining,
                stock_total_loaded=max(stock_total_loaded or 0, remaining),
            )
            session.add(plan)
            self._commit_plan(session, plan)

            logger.info(
                f"Added medication plan {plan.id} ({plan.medication_name}) "
                f"in slot {plan.slot_index} for patient {patient.id}"
            )
            return plan

        if db:
            return _add(db)

        with get_db_context() as session:
            return _add(session)

    async def update_medicine(
        self,
        user_id: int,
        plan_id: int,
        updates: Dict[str, Any],
        db: Optional[Session] = None
    ) -> models.MedicationPlan:
        """
        Partially update a plan of the caller's patient.

        Recognised keys are the plan fields plus `slot_index`, `active` and
        `stock_remaining`. Reactivating or moving a plan re-checks the slot.
        """
        def _update(session: Session) -> models.MedicationPlan:
            patient = patient_service.require_by_user(user_id, session)
            plan = session.query(models.MedicationPlan).filter(
                models.MedicationPlan.id == plan_id,
                models.MedicationPlan.patient_id == patient.id
            ).first()
            if not plan:
                raise NotFoundError("Medication not found")

            next_slot = updates.get("slot_index")
            if next_slot is None:
                next_slot = plan.slot_index
            else:
                device = self._require_device(patient, session)
                self._check_slot_range(next_slot, device)

            next_active = updates.get("active")
            if next_active is None:
                next_active = plan.active

            if next_active:
                self._check_slot_free(session, patient.id, next_slot, exclude_plan_id=plan.id)

            for field in UPDATABLE_FIELDS:
                if field in updates:
                    value = updates[field]
                    if field in ("times", "days_of_week") and value is not None:
                        value = list(value)
                    setattr(plan, field, value)

            plan.slot_index = next_slot
            plan.active = bool(next_active)

            if updates.get("stock_remaining") is not None:
                remaining = int(updates["stock_remaining"])
                plan.stock_remaining = remaining
                plan.stock_total_loaded = max(plan.stock_total_loaded or 0, remaining)

            self._commit_plan(session, plan)
            logger.info(f"Updated medication plan {plan.id}")
            return plan

        if db:
            return _update(db)

        with get_db_context() as session:
            return _update(session)

    async def refill(
        self,
        user_id: int,
        plan_id: int,
        amount: int,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> models.MedicationPlan:
        """Add `amount` units to both remaining and total loaded stock"""
        def _refill(session: Session) -> models.MedicationPlan:
            if amount is None or amount <= 0:
                raise ValidationFailed("Invalid refill amount")

            patient = patient_service.require_by_user(user_id, session)
            plan = session.query(models.MedicationPlan).filter(
                models.MedicationPlan.id == plan_id,
                models.MedicationPlan.patient_id == patient.id
            ).first()
            if not plan:
                raise NotFoundError("Medication not found")

            plan.stock_remaining = (plan.stock_remaining or 0) + amount
            plan.stock_total_loaded = (plan.stock_total_loaded or 0) + amount
            plan.stock_last_refilled_at = now or datetime.now()
            session.commit()
            session.refresh(plan)

            logger.info(f"Refilled plan {plan.id} by {amount}, remaining {plan.stock_remaining}")
            return plan

        if db:
            return _refill(db)

        with get_db_context() as session:
            return _refill(session)

    def active_plans(self, session: Session, patient_ids: List[int]) -> List[models.MedicationPlan]:
        if not patient_ids:
            return []
        return session.query(models.MedicationPlan).filter(
            models.MedicationPlan.patient_id.in_(patient_ids),
            models.MedicationPlan.active.is_(True)
        ).order_by(models.MedicationPlan.id).all()


# Singleton instance
medication_service = MedicationService()
