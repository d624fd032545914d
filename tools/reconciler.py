"""
Dose Reconciler Tool
Merges projected occurrences with persisted dose logs
"""

from typing import Dict, Iterable, List, Optional, Tuple
from dataclasses import dataclass
from datetime import date, datetime

from models import DoseStatus
from tools.dose_keys import virtual_dose_id, pending_medicine_id
from tools.recurrence import RecurrenceRule


NaturalKey = Tuple[int, datetime]


@dataclass
class ScheduleEntry:
    """One row of a day's schedule, backed by a DoseLog or synthesized"""
    plan: object
    scheduled_at: datetime
    dose: Optional[object] = None
    is_pending_medicine: bool = False

    @property
    def id(self) -> str:
        if self.is_pending_medicine:
            return pending_medicine_id(self.plan.id)
        if self.dose is not None and self.dose.id is not None:
            return str(self.dose.id)
        return virtual_dose_id(self.plan.id, self.scheduled_at)

    @property
    def is_virtual(self) -> bool:
        return self.dose is None or self.dose.id is None

    @property
    def status(self) -> DoseStatus:
        if self.dose is not None and self.dose.status is not None:
            return DoseStatus(self.dose.status)
        return DoseStatus.PENDING

    @property
    def patient_id(self) -> int:
        return self.plan.patient_id

    @property
    def taken_at(self) -> Optional[datetime]:
        return self.dose.taken_at if self.dose is not None else None

    @property
    def dispensed_at(self) -> Optional[datetime]:
        return self.dose.dispensed_at if self.dose is not None else None


def index_by_natural_key(doses: Iterable) -> Dict[NaturalKey, object]:
    return {(d.medication_plan_id, d.scheduled_at): d for d in doses}


def build_day_schedule(
    plans: Iterable,
    doses: Iterable,
    day: date,
    now: Optional[datetime] = None,
) -> List[ScheduleEntry]:
    """
    Today's schedule view for a set of plans.

    Each projected occurrence uses the persisted DoseLog with the same
    (plan, scheduled_at) if there is one, otherwise a transient pending
    entry. Unscheduled plans get a single pending entry and sort last.
    """
    existing = index_by_natural_key(doses)
    placeholder_at = now or datetime.combine(day, datetime.min.time())

    scheduled: List[ScheduleEntry] = []
    unscheduled: List[ScheduleEntry] = []

    for plan in plans:
        rule = RecurrenceRule.from_plan(plan)
        if rule.is_unscheduled:
            unscheduled.append(ScheduleEntry(
                plan=plan,
                scheduled_at=placeholder_at,
                is_pending_medicine=True,
            ))
            continue

        for scheduled_at in rule.project_day(day):
            scheduled.append(ScheduleEntry(
                plan=plan,
                scheduled_at=scheduled_at,
                dose=existing.get((plan.id, scheduled_at)),
            ))

    # sorted() is stable, so equal timestamps keep plan order
    return sorted(scheduled, key=lambda e: e.scheduled_at) + unscheduled


def next_pending(entries: Iterable[ScheduleEntry], patient_id: Optional[int] = None) -> Optional[ScheduleEntry]:
    """First pending, scheduled entry (optionally for one patient)"""
    for entry in entries:
        if entry.is_pending_medicine:
            continue
        if patient_id is not None and entry.patient_id != patient_id:
            continue
        if entry.status == DoseStatus.PENDING:
            return entry
    return None
