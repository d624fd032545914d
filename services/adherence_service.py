"""
Adherence Service
Read-side adherence figures for the patient dashboard
"""

import logging
from typing import Dict, Optional, Any
from datetime import datetime
from sqlalchemy.orm import Session

from config import dose_config
from database import get_db_context
import models
from models import DoseStatus
from services.patient_service import patient_service
from services.medication_service import medication_service
from services.dose_service import dose_service, day_bounds
from tools import adherence_stats


logger = logging.getLogger(__name__)


class AdherenceService:
    """
    Service for adherence tracking and analysis
    """

    async def get_adherence(
        self,
        user_id: int,
        db: Optional[Session] = None
    ) -> Dict[str, Any]:
        """All-time adherence rate of the caller's patient"""
        def _get(session: Session) -> Dict[str, Any]:
            patient = patient_service.require_by_user(user_id, session)
            logs = dose_service.logs_for_patients(session, [patient.id])
            return adherence_stats.adherence_rate(logs).to_dict()

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    async def get_summary(
        self,
        user_id: int,
        now: datetime,
        db: Optional[Session] = None
    ) -> Dict[str, Any]:
        """
        Today's counters for the caller's patient

        Returns:
            Dictionary with active_medicines, doses_taken, doses_missed and
            doses_skipped. doses_missed includes skipped doses.
        """
        def _get(session: Session) -> Dict[str, Any]:
            patient = patient_service.require_by_user(user_id, session)
            active = session.query(models.MedicationPlan).filter(
                models.MedicationPlan.patient_id == patient.id,
                models.MedicationPlan.active.is_(True)
            ).count()

            start, end = day_bounds(now.date())
            logs = dose_service.logs_for_patients(session, [patient.id], since=start, until=end)
            counts = adherence_stats.count_statuses(logs)

            return {
                "active_medicines": active,
                "doses_taken": counts[DoseStatus.TAKEN],
                "doses_missed": counts[DoseStatus.MISSED] + counts[DoseStatus.SKIPPED],
                "doses_skipped": counts[DoseStatus.SKIPPED],
            }

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    async def get_history(
        self,
        user_id: int,
        now: datetime,
        db: Optional[Session] = None
    ) -> Dict[str, Any]:
        """
        Full adherence history of the caller's patient

        Args:
            user_id: Caller (patient user) ID
            now: Current local time, anchors streak, trend and recent window
            db: Database session

        Returns:
            Dictionary with summary, weekly_trend, by_medicine and recent_logs
        """
        def _get(session: Session) -> Dict[str, Any]:
            patient = patient_service.require_by_user(user_id, session)
            logs = dose_service.logs_for_patients(session, [patient.id])
            plans = medication_service.active_plans(session, [patient.id])
            today = now.date()

            rate = adherence_stats.adherence_rate(logs)
            return {
                "summary": {
                    "total_taken": rate.taken,
                    "total_missed": rate.missed,
                    "total_skipped": rate.skipped,
                    "adherence_rate": rate.taken_percent,
                    "current_streak": adherence_stats.current_streak(
                        logs, today, dose_config.STREAK_LOOKBACK_DAYS
                    ),
                },
                "weekly_trend": adherence_stats.weekly_trend(logs, today),
                "by_medicine": adherence_stats.by_medicine(plans, logs),
                "recent_logs": adherence_stats.recent_activity(
                    logs,
                    today,
                    dose_config.RECENT_ACTIVITY_DAYS,
                    dose_config.RECENT_ACTIVITY_LIMIT,
                ),
            }

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)


# Singleton instance
adherence_service = AdherenceService()
