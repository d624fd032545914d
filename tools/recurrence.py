"""
Recurrence Projector Tool
Expands a medication plan's weekly recurrence into concrete dose timestamps
"""

import logging
from typing import List, Optional, Tuple, Iterable
from dataclasses import dataclass, field
from datetime import datetime, date, time


logger = logging.getLogger(__name__)


def adjusted_weekday(day: date) -> int:
    """Weekday as stored on plans: Monday=1 .. Sunday=7"""
    return day.isoweekday()


def parse_time_of_day(value) -> Optional[Tuple[int, int]]:
    """
    Parse an "HH:MM" string into (hour, minute).

    Returns None for anything that is not a valid wall-clock time, so callers
    can skip bad entries instead of failing the whole projection.
    """
    if not isinstance(value, str):
        return None
    parts = value.strip().split(":")
    if len(parts) < 2:
        return None
    try:
        hour, minute = int(parts[0]), int(parts[1])
    except ValueError:
        return None
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        return None
    return hour, minute


def normalize_days(days: Optional[Iterable]) -> List[int]:
    """Coerce stored day values to ints in 1..7, dropping garbage"""
    result = []
    for d in days or []:
        try:
            n = int(d)
        except (TypeError, ValueError):
            continue
        if 1 <= n <= 7 and n not in result:
            result.append(n)
    return result


def _as_date(value) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    return value


@dataclass
class RecurrenceRule:
    """Weekly recurrence of a medication plan"""
    times: List[str] = field(default_factory=list)
    days_of_week: List[int] = field(default_factory=list)
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @classmethod
    def from_plan(cls, plan) -> "RecurrenceRule":
        return cls(
            times=list(plan.times or []),
            days_of_week=normalize_days(plan.days_of_week),
            start_date=_as_date(plan.start_date),
            end_date=_as_date(plan.end_date),
        )

    @property
    def is_unscheduled(self) -> bool:
        """Plans without times or days are shown as pending, never projected"""
        return not self.times or not self.days_of_week

    def is_valid_on(self, day: date) -> bool:
        if self.start_date and day < self.start_date:
            return False
        if self.end_date and day > self.end_date:
            return False
        return True

    def project_day(self, day: date) -> List[datetime]:
        """Exact timestamps at which a dose is due on `day`, ascending"""
        if self.is_unscheduled:
            return []
        if adjusted_weekday(day) not in self.days_of_week:
            return []
        if not self.is_valid_on(day):
            return []

        occurrences = set()
        for value in self.times:
            parsed = parse_time_of_day(value)
            if parsed is None:
                logger.debug(f"Skipping unparseable dose time {value!r}")
                continue
            occurrences.add(datetime.combine(day, time(parsed[0], parsed[1])))

        return sorted(occurrences)


@dataclass(frozen=True)
class DoseOccurrence:
    """One projected (plan, timestamp) pair"""
    medication_plan_id: int
    scheduled_at: datetime


def project_plan(plan, day: date) -> List[DoseOccurrence]:
    """Project a single plan for one calendar day"""
    rule = RecurrenceRule.from_plan(plan)
    return [DoseOccurrence(plan.id, at) for at in rule.project_day(day)]


def project_plans(plans, days: Iterable[date]) -> List[Tuple[object, datetime]]:
    """Project many plans over several days as (plan, scheduled_at) pairs"""
    days = list(days)
    pairs = []
    for plan in plans:
        rule = RecurrenceRule.from_plan(plan)
        for day in days:
            for at in rule.project_day(day):
                pairs.append((plan, at))
    return pairs
