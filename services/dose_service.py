"""
Dose Service
Schedule views, read-time reconciliation and dose confirmations
"""

import logging
from typing import List, Optional, Tuple
from datetime import date, datetime, timedelta
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError

from database import get_db_context
import models
from models import DoseStatus
from services.errors import NotFoundError, ValidationFailed, ConflictError
from services.patient_service import patient_service
from services.medication_service import medication_service
from tools import dose_lifecycle
from tools.dose_keys import parse_dose_key, InvalidDoseKey, PersistedDoseKey, VirtualDoseKey, DoseKey
from tools.dose_lifecycle import DoseTransitionError
from tools.reconciler import ScheduleEntry, build_day_schedule, index_by_natural_key
from tools.recurrence import project_plans


logger = logging.getLogger(__name__)

DEVICE_HISTORY_DAYS = 7


def day_bounds(day: date) -> Tuple[datetime, datetime]:
    start = datetime.combine(day, datetime.min.time())
    return start, start + timedelta(days=1)


def format_dosage(plan: Optional[models.MedicationPlan]) -> str:
    """Dosage label such as '1 x 500mg', or '0.5 unit' without a strength"""
    if plan is None:
        return ""
    amount = plan.dosage_per_intake
    if amount is not None and float(amount).is_integer():
        amount = int(amount)
    if plan.medication_strength:
        return f"{amount} x {plan.medication_strength}"
    return f"{amount} unit"


class DoseService:
    """
    Service for dose schedule and confirmation operations
    """

    # ==================== LOOKUPS ====================

    def logs_for_patients(
        self,
        session: Session,
        patient_ids: List[int],
        since: Optional[datetime] = None,
        until: Optional[datetime] = None
    ) -> List[models.DoseLog]:
        if not patient_ids:
            return []
        query = session.query(models.DoseLog).filter(
            models.DoseLog.patient_id.in_(patient_ids)
        )
        if since is not None:
            query = query.filter(models.DoseLog.scheduled_at >= since)
        if until is not None:
            query = query.filter(models.DoseLog.scheduled_at < until)
        return query.order_by(models.DoseLog.scheduled_at, models.DoseLog.id).all()

    def schedule_for_patients(
        self,
        session: Session,
        patient_ids: List[int],
        now: datetime
    ) -> List[ScheduleEntry]:
        """Today's projected schedule for several patients, merged with logs"""
        start, end = day_bounds(now.date())
        plans = medication_service.active_plans(session, patient_ids)
        logs = self.logs_for_patients(session, patient_ids, since=start, until=end)
        return build_day_schedule(plans, logs, now.date(), now=now)

    # ==================== PATIENT VIEW ====================

    async def get_schedule_today(
        self,
        user_id: int,
        now: datetime,
        db: Optional[Session] = None
    ) -> List[ScheduleEntry]:
        """
        Today's schedule for the caller's patient.

        Projected occurrences without a DoseLog are returned as transient
        pending entries and are not persisted.
        """
        def _get(session: Session) -> List[ScheduleEntry]:
            patient = patient_service.require_by_user(user_id, session)
            return self.schedule_for_patients(session, [patient.id], now)

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    # ==================== DEVICE VIEW ====================

    def _apply_auto_transitions(self, session: Session, device: models.Device, now: datetime) -> Tuple[int, int]:
        # Retry decay must run first so demoted doses are seen by the grace pass
        reverted = session.query(models.DoseLog).filter(
            models.DoseLog.device_id == device.id,
            models.DoseLog.status == DoseStatus.DISPENSED,
            models.DoseLog.dispensed_at.isnot(None),
            models.DoseLog.dispensed_at <= dose_lifecycle.retry_cutoff(now)
        ).update(
            {models.DoseLog.status: DoseStatus.PENDING, models.DoseLog.dispensed_at: None},
            synchronize_session=False
        )

        missed = session.query(models.DoseLog).filter(
            models.DoseLog.device_id == device.id,
            models.DoseLog.status.in_(dose_lifecycle.UNRESOLVED_STATUSES),
            models.DoseLog.scheduled_at <= dose_lifecycle.grace_cutoff(now)
        ).update(
            {
                models.DoseLog.status: DoseStatus.MISSED,
                models.DoseLog.missed_reason: dose_lifecycle.AUTO_MISSED_REASON,
            },
            synchronize_session=False
        )

        # Bulk updates bypass the identity map
        session.expire_all()
        return reverted, missed

    def _materialize(
        self,
        session: Session,
        plan: models.MedicationPlan,
        scheduled_at: datetime,
        now: Optional[datetime] = None
    ) -> models.DoseLog:
        """
        Persist a pending DoseLog for (plan, scheduled_at).

        A unique-constraint violation means another writer got there first,
        so the existing row is re-read and returned instead.
        """
        dose = models.DoseLog(
            patient_id=plan.patient_id,
            device_id=plan.device_id,
            medication_plan_id=plan.id,
            slot_index=plan.slot_index,
            scheduled_at=scheduled_at,
            status=DoseStatus.PENDING,
        )
        if now is not None:
            dose_lifecycle.apply_time_transitions(dose, now)

        try:
            with session.begin_nested():
                session.add(dose)
                session.flush()
        except IntegrityError:
            logger.info(f"Dose for plan {plan.id} at {scheduled_at} already exists, re-reading")
            dose = self._find_by_natural_key(session, plan.id, scheduled_at)
            if dose is None:
                raise
        return dose

    def _find_by_natural_key(
        self,
        session: Session,
        plan_id: int,
        scheduled_at: datetime
    ) -> Optional[models.DoseLog]:
        return session.query(models.DoseLog).filter(
            models.DoseLog.medication_plan_id == plan_id,
            models.DoseLog.scheduled_at == scheduled_at
        ).first()

    async def get_upcoming(
        self,
        device_id: str,
        now: datetime,
        db: Optional[Session] = None
    ) -> List[models.DoseLog]:
        """
        Reconciled doses for a dispenser in [now - grace, now + horizon].

        Applies the time-based auto-transitions, then persists any occurrence
        projected for today or tomorrow that falls in the window and has no
        DoseLog yet. Runs as one transaction.

        Args:
            device_id: Hardware device identifier
            now: Current local time
            db: Database session

        Returns:
            DoseLogs ordered by scheduled_at, ties by insertion order
        """
        def _get(session: Session) -> List[models.DoseLog]:
            device = patient_service.require_device(device_id, session)
            try:
                reverted, missed = self._apply_auto_transitions(session, device, now)
                if reverted or missed:
                    logger.info(
                        f"Device {device.device_id}: {reverted} dispensed dose(s) reverted, "
                        f"{missed} dose(s) auto-missed"
                    )

                window_start, window_end = dose_lifecycle.upcoming_window(now)
                doses = session.query(models.DoseLog).filter(
                    models.DoseLog.device_id == device.id,
                    models.DoseLog.scheduled_at >= window_start,
                    models.DoseLog.scheduled_at <= window_end
                ).order_by(models.DoseLog.id).all()
                existing = index_by_natural_key(doses)

                plans = session.query(models.MedicationPlan).filter(
                    models.MedicationPlan.device_id == device.id,
                    models.MedicationPlan.active.is_(True)
                ).order_by(models.MedicationPlan.id).all()

                days = [now.date(), now.date() + timedelta(days=1)]
                created = 0
                for plan, scheduled_at in project_plans(plans, days):
                    if not (window_start <= scheduled_at <= window_end):
                        continue
                    if (plan.id, scheduled_at) in existing:
                        continue
                    dose = self._materialize(session, plan, scheduled_at, now)
                    existing[(plan.id, scheduled_at)] = dose
                    doses.append(dose)
                    created += 1

                session.commit()
            except Exception:
                session.rollback()
                raise

            if created:
                logger.info(f"Device {device.device_id}: materialized {created} upcoming dose(s)")

            # Stable sort keeps insertion (id) order for equal timestamps
            return sorted(doses, key=lambda d: d.scheduled_at)

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    async def get_device_history(
        self,
        device_id: str,
        statuses: Tuple[DoseStatus, ...],
        now: datetime,
        db: Optional[Session] = None
    ) -> List[models.DoseLog]:
        """Device doses with the given statuses over the last week"""
        def _get(session: Session) -> List[models.DoseLog]:
            device = patient_service.require_device(device_id, session)
            since = now - timedelta(days=DEVICE_HISTORY_DAYS)
            return session.query(models.DoseLog).filter(
                models.DoseLog.device_id == device.id,
                models.DoseLog.status.in_(statuses),
                models.DoseLog.scheduled_at >= since
            ).order_by(models.DoseLog.scheduled_at, models.DoseLog.id).all()

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    # ==================== CONFIRMATIONS ====================

    def resolve_dose(
        self,
        session: Session,
        key: DoseKey,
        patient: Optional[models.Patient] = None,
        device: Optional[models.Device] = None
    ) -> models.DoseLog:
        """
        Find the DoseLog a key refers to, creating it for a virtual key.

        Lookups are scoped to the patient or the device when given.
        """
        if isinstance(key, PersistedDoseKey):
            query = session.query(models.DoseLog).filter(models.DoseLog.id == key.id)
            if patient is not None:
                query = query.filter(models.DoseLog.patient_id == patient.id)
            if device is not None:
                query = query.filter(models.DoseLog.device_id == device.id)
            dose = query.first()
            if not dose:
                raise NotFoundError("Dose not found")
            return dose

        if isinstance(key, VirtualDoseKey):
            query = session.query(models.MedicationPlan).filter(
                models.MedicationPlan.id == key.plan_id
            )
            if patient is not None:
                query = query.filter(models.MedicationPlan.patient_id == patient.id)
            if device is not None:
                query = query.filter(models.MedicationPlan.device_id == device.id)
            plan = query.first()
            if not plan:
                raise NotFoundError("Medication not found")

            dose = self._find_by_natural_key(session, plan.id, key.scheduled_at)
            if dose is None:
                dose = self._materialize(session, plan, key.scheduled_at)
                logger.info(f"Materialized dose {dose.id} for plan {plan.id} at {key.scheduled_at}")
            return dose

        raise ValidationFailed("Invalid doseId")

    def _mark(
        self,
        session: Session,
        raw_key: str,
        target: DoseStatus,
        now: datetime,
        patient: Optional[models.Patient] = None,
        device: Optional[models.Device] = None,
        reason: Optional[str] = None
    ) -> models.DoseLog:
        try:
            key = parse_dose_key(raw_key)
        except InvalidDoseKey as e:
            raise ValidationFailed(str(e))

        try:
            dose = self.resolve_dose(session, key, patient=patient, device=device)
            changed = dose_lifecycle.transition(dose, target, now, reason=reason)
            session.commit()
        except DoseTransitionError as e:
            session.rollback()
            raise ConflictError(str(e))
        except Exception:
            session.rollback()
            raise

        session.refresh(dose)
        if changed:
            logger.info(f"Dose {dose.id} marked {target.value}")
        return dose

    async def mark_taken(
        self,
        user_id: int,
        dose_id: str,
        now: datetime,
        db: Optional[Session] = None
    ) -> models.DoseLog:
        """Patient confirms a dose as taken"""
        def _mark(session: Session) -> models.DoseLog:
            patient = patient_service.require_by_user(user_id, session)
            return self._mark(session, dose_id, DoseStatus.TAKEN, now, patient=patient)

        if db:
            return _mark(db)

        with get_db_context() as session:
            return _mark(session)

    async def mark_missed(
        self,
        user_id: int,
        dose_id: str,
        now: datetime,
        reason: Optional[str] = None,
        db: Optional[Session] = None
    ) -> models.DoseLog:
        """Patient reports a dose as missed"""
        def _mark(session: Session) -> models.DoseLog:
            patient = patient_service.require_by_user(user_id, session)
            return self._mark(session, dose_id, DoseStatus.MISSED, now, patient=patient, reason=reason)

        if db:
            return _mark(db)

        with get_db_context() as session:
            return _mark(session)

    async def device_mark(
        self,
        device_id: str,
        dose_id: str,
        target: DoseStatus,
        now: datetime,
        reason: Optional[str] = None,
        db: Optional[Session] = None
    ) -> models.DoseLog:
        """Dispenser reports dispensed, taken or skipped for one of its doses"""
        if target not in (DoseStatus.DISPENSED, DoseStatus.TAKEN, DoseStatus.SKIPPED):
            raise ValidationFailed(f"Devices cannot mark doses {target.value}")

        def _mark(session: Session) -> models.DoseLog:
            device = patient_service.require_device(device_id, session)
            return self._mark(session, dose_id, target, now, device=device, reason=reason)

        if db:
            return _mark(db)

        with get_db_context() as session:
            return _mark(session)


# Singleton instance
dose_service = DoseService()
