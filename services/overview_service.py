"""
Overview Service
Role-specific dashboards composed from schedules, logs and stock levels
"""

import logging
from typing import Dict, List, Optional, Any
from collections import defaultdict
from datetime import datetime, timedelta
from sqlalchemy.orm import Session
from sqlalchemy import func

from config import dose_config
from database import get_db_context
import models
from models import DoseStatus, UserRole
from services.errors import PermissionDenied
from services.dose_service import dose_service, day_bounds
from services.medication_service import medication_service
from tools import adherence_stats
from tools.reconciler import ScheduleEntry, next_pending


logger = logging.getLogger(__name__)

ON_TRACK = "On Track"
NEEDS_ATTENTION = "Needs Attention"


def _activity_verb(status: DoseStatus) -> str:
    status = DoseStatus(status)
    if status == DoseStatus.TAKEN:
        return "took"
    if status in adherence_stats.MISSED_STATUSES:
        return "missed"
    return status.value


class OverviewService:
    """
    Service composing caretaker, doctor and admin overviews
    """

    # ==================== BUILDING BLOCKS ====================

    def _patients_for(self, session: Session, user: models.User) -> List[models.Patient]:
        query = session.query(models.Patient)
        if user.role == UserRole.CARETAKER:
            query = query.join(models.CaretakerLink).filter(
                models.CaretakerLink.user_id == user.id,
                models.CaretakerLink.approved.is_(True)
            )
        elif user.role == UserRole.DOCTOR:
            query = query.join(
                models.patient_doctors,
                models.patient_doctors.c.patient_id == models.Patient.id
            ).filter(models.patient_doctors.c.user_id == user.id)
        return query.order_by(models.Patient.id).all()

    def _collect(self, session: Session, patients: List[models.Patient], now: datetime) -> Dict[str, Any]:
        """Data shared by every overview for a set of patients"""
        patient_ids = [p.id for p in patients]
        names = {p.id: p.display_name for p in patients}

        since = now - timedelta(days=dose_config.OVERVIEW_ADHERENCE_DAYS)
        recent_logs = dose_service.logs_for_patients(session, patient_ids, since=since)
        recent_logs.sort(key=lambda log: log.scheduled_at, reverse=True)

        logs_by_patient: Dict[int, List[models.DoseLog]] = defaultdict(list)
        for log in recent_logs:
            logs_by_patient[log.patient_id].append(log)

        schedule = dose_service.schedule_for_patients(session, patient_ids, now)
        plans = medication_service.active_plans(session, patient_ids)

        return {
            "patients": patients,
            "names": names,
            "recent_logs": recent_logs,
            "logs_by_patient": logs_by_patient,
            "schedule": schedule,
            "plans": plans,
        }

    def _patient_rate(self, logs: List[models.DoseLog]) -> adherence_stats.AdherenceRate:
        return adherence_stats.adherence_rate(logs)

    def _next_dose(self, schedule: List[ScheduleEntry], patient_id: int) -> Dict[str, Any]:
        entry = next_pending(schedule, patient_id=patient_id)
        return {
            "next_dose_time": entry.scheduled_at if entry else None,
            "next_dose_medicine": entry.plan.medication_name if entry else None,
        }

    def _refill_alerts(self, plans: List[models.MedicationPlan], names: Dict[int, str]) -> List[Dict[str, Any]]:
        alerts = []
        for plan in plans:
            if not adherence_stats.needs_refill(plan):
                continue
            remaining = plan.stock_remaining or 0
            alerts.append({
                "id": str(plan.id),
                "name": plan.display_name,
                "patient": names.get(plan.patient_id, "Patient"),
                "remaining": remaining,
                "severity": adherence_stats.refill_severity(remaining),
            })
        return alerts

    def _activity(self, recent_logs: List[models.DoseLog], names: Dict[int, str]) -> List[Dict[str, Any]]:
        activity = []
        for log in recent_logs[:dose_config.OVERVIEW_ACTIVITY_LIMIT]:
            medicine = log.medication_plan.medication_name if log.medication_plan else "medicine"
            patient = names.get(log.patient_id, "Patient")
            activity.append({
                "id": str(log.id),
                "time": log.scheduled_at,
                "text": f"{patient} {_activity_verb(log.status)} {medicine}",
            })
        return activity

    def _schedule_rows(self, schedule: List[ScheduleEntry], names: Dict[int, str]) -> List[Dict[str, Any]]:
        return [
            {
                "id": entry.id,
                "patient": names.get(entry.patient_id, "Patient"),
                "time": entry.scheduled_at,
                "med": entry.plan.medication_name,
                "status": entry.status.value,
            }
            for entry in schedule[:dose_config.OVERVIEW_SCHEDULE_LIMIT]
        ]

    def _care_rows(self, data: Dict[str, Any]) -> List[Dict[str, Any]]:
        rows = []
        for patient in data["patients"]:
            rate = self._patient_rate(data["logs_by_patient"].get(patient.id, []))
            row = {
                "id": str(patient.id),
                "name": data["names"][patient.id],
                "adherence": rate.taken_percent,
                "status": ON_TRACK if rate.taken_percent >= dose_config.ON_TRACK_THRESHOLD else NEEDS_ATTENTION,
                "alerts": 1 if rate.missed > 0 else 0,
            }
            row.update(self._next_dose(data["schedule"], patient.id))
            rows.append(row)
        return rows

    def _summary(self, rows: List[Dict[str, Any]], schedule: List[ScheduleEntry]) -> Dict[str, Any]:
        rates = [row["adherence"] for row in rows]
        return {
            "patient_count": len(rows),
            "doses_today": len(schedule),
            "pending_today": sum(1 for e in schedule if e.status == DoseStatus.PENDING),
            "avg_adherence": adherence_stats.round_half_up(sum(rates) / len(rates)) if rates else 0,
        }

    # ==================== OVERVIEWS ====================

    async def caretaker_overview(
        self,
        user: models.User,
        now: datetime,
        db: Optional[Session] = None
    ) -> Dict[str, Any]:
        """
        Overview for a caretaker across patients that approved them.

        Args:
            user: Caretaker user
            now: Current local time
            db: Database session

        Returns:
            Dictionary with patients, schedule, refill_alerts, activity and summary
        """
        if user.role != UserRole.CARETAKER:
            raise PermissionDenied("Caretaker access required")

        def _build(session: Session) -> Dict[str, Any]:
            patients = self._patients_for(session, user)
            data = self._collect(session, patients, now)
            rows = self._care_rows(data)
            return {
                "patients": rows,
                "schedule": self._schedule_rows(data["schedule"], data["names"]),
                "refill_alerts": self._refill_alerts(data["plans"], data["names"]),
                "activity": self._activity(data["recent_logs"], data["names"]),
                "summary": self._summary(rows, data["schedule"]),
            }

        if db:
            return _build(db)

        with get_db_context() as session:
            return _build(session)

    async def doctor_overview(
        self,
        user: models.User,
        now: datetime,
        db: Optional[Session] = None
    ) -> Dict[str, Any]:
        """Overview for a doctor across patients listing them, with clinical tasks"""
        if user.role != UserRole.DOCTOR:
            raise PermissionDenied("Doctor access required")

        def _build(session: Session) -> Dict[str, Any]:
            patients = self._patients_for(session, user)
            data = self._collect(session, patients, now)
            today_start, _ = day_bounds(now.date())

            rows = []
            for patient in patients:
                rate = self._patient_rate(data["logs_by_patient"].get(patient.id, []))
                row = {
                    "id": str(patient.id),
                    "name": data["names"][patient.id],
                    "diagnosis": patient.primary_diagnosis,
                    "adherence": rate.taken_percent,
                }
                row.update(self._next_dose(data["schedule"], patient.id))
                rows.append(row)

            tasks = []
            for log in data["recent_logs"]:
                if DoseStatus(log.status) not in adherence_stats.MISSED_STATUSES:
                    continue
                is_today = log.scheduled_at >= today_start
                medicine = log.medication_plan.medication_name if log.medication_plan else "medicine"
                tasks.append({
                    "id": str(log.id),
                    "patient": data["names"].get(log.patient_id, "Patient"),
                    "task": f"Review missed dose for {medicine}",
                    "due": "Today" if is_today else "Upcoming",
                    "priority": "high" if is_today else "medium",
                })
                if len(tasks) >= dose_config.CLINICAL_TASK_LIMIT:
                    break

            return {
                "patients": rows,
                "clinical_tasks": tasks,
                "refill_alerts": self._refill_alerts(data["plans"], data["names"]),
                "activity": self._activity(data["recent_logs"], data["names"]),
                "summary": self._summary(rows, data["schedule"]),
            }

        if db:
            return _build(db)

        with get_db_context() as session:
            return _build(session)

    async def admin_overview(
        self,
        user: models.User,
        now: datetime,
        db: Optional[Session] = None
    ) -> Dict[str, Any]:
        """System-wide overview: every patient plus user and device counts"""
        if user.role != UserRole.ADMIN:
            raise PermissionDenied("Admin access required")

        def _build(session: Session) -> Dict[str, Any]:
            patients = self._patients_for(session, user)
            data = self._collect(session, patients, now)
            rows = self._care_rows(data)

            role_counts = dict(
                session.query(models.User.role, func.count(models.User.id))
                .group_by(models.User.role)
                .all()
            )
            devices_total = session.query(models.Device).count()
            devices_online = session.query(models.Device).filter(
                models.Device.last_status == "online"
            ).count()

            return {
                "users": {role.value: role_counts.get(role, 0) for role in UserRole},
                "devices": {"total": devices_total, "online": devices_online},
                "patients": rows,
                "refill_alerts": self._refill_alerts(data["plans"], data["names"]),
                "activity": self._activity(data["recent_logs"], data["names"]),
                "summary": self._summary(rows, data["schedule"]),
            }

        if db:
            return _build(db)

        with get_db_context() as session:
            return _build(session)


# Singleton instance
overview_service = OverviewService()
