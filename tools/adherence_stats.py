"""
Adherence Statistics Tool
Pure read-side arithmetic over dose logs
"""

import math
from typing import Any, Dict, Iterable, List
from collections import defaultdict
from dataclasses import dataclass, asdict
from datetime import date, datetime, timedelta

from config import dose_config
from models import DoseStatus


# Doses counted against adherence. Skipped doses are treated as not taken.
MISSED_STATUSES = (DoseStatus.MISSED, DoseStatus.SKIPPED)


def _status(log) -> DoseStatus:
    return DoseStatus(log.status)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def percent(part: int, whole: int) -> int:
    """Integer percentage, 0 when there is nothing to divide by"""
    if whole <= 0:
        return 0
    return round_half_up(part / whole * 100)


@dataclass
class AdherenceRate:
    taken: int
    missed: int
    skipped: int
    rate: float
    taken_percent: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def count_statuses(logs: Iterable) -> Dict[DoseStatus, int]:
    counts: Dict[DoseStatus, int] = defaultdict(int)
    for log in logs:
        counts[_status(log)] += 1
    return counts


def adherence_rate(logs: Iterable) -> AdherenceRate:
    """
    taken / (taken + missed) * 100, where missed includes skipped.

    `rate` keeps two decimals, `taken_percent` is rounded half up.
    """
    counts = count_statuses(logs)
    taken = counts[DoseStatus.TAKEN]
    skipped = counts[DoseStatus.SKIPPED]
    missed = counts[DoseStatus.MISSED] + skipped
    resolved = taken + missed

    rate = (taken / resolved * 100) if resolved > 0 else 0.0
    return AdherenceRate(
        taken=taken,
        missed=missed,
        skipped=skipped,
        rate=round(rate, 2),
        taken_percent=round_half_up(rate),
    )


def group_by_day(logs: Iterable) -> Dict[date, List]:
    days: Dict[date, List] = defaultdict(list)
    for log in logs:
        days[log.scheduled_at.date()].append(log)
    return days


def current_streak(
    logs: Iterable,
    today: date,
    lookback_days: int = dose_config.STREAK_LOOKBACK_DAYS,
) -> int:
    """
    Consecutive days, counting back from today, on which every dose was taken.

    A day with no logs or with any non-taken log ends the streak.
    """
    by_day = group_by_day(logs)
    streak = 0
    for offset in range(lookback_days):
        day_logs = by_day.get(today - timedelta(days=offset), [])
        if not day_logs:
            break
        if any(_status(log) != DoseStatus.TAKEN for log in day_logs):
            break
        streak += 1
    return streak


def weekly_trend(logs: Iterable, today: date) -> List[Dict[str, Any]]:
    """Taken vs total for the last 7 days, oldest first"""
    by_day = group_by_day(logs)
    trend = []
    for offset in range(6, -1, -1):
        day = today - timedelta(days=offset)
        day_logs = by_day.get(day, [])
        trend.append({
            "day": day.strftime("%a"),
            "date": day.isoformat(),
            "taken": sum(1 for log in day_logs if _status(log) == DoseStatus.TAKEN),
            "total": len(day_logs),
        })
    return trend


def by_medicine(plans: Iterable, logs: Iterable) -> List[Dict[str, Any]]:
    """Per-plan taken/total/rate; rate is taken over all logs of the plan"""
    logs_by_plan: Dict[int, List] = defaultdict(list)
    for log in logs:
        logs_by_plan[log.medication_plan_id].append(log)

    breakdown = []
    for plan in plans:
        plan_logs = logs_by_plan.get(plan.id, [])
        taken = sum(1 for log in plan_logs if _status(log) == DoseStatus.TAKEN)
        total = len(plan_logs)
        breakdown.append({
            "medication_plan_id": plan.id,
            "medication_name": plan.medication_name,
            "medication_strength": plan.medication_strength,
            "medication_form": plan.medication_form,
            "taken": taken,
            "total": total,
            "adherence_rate": percent(taken, total),
        })
    return breakdown


def recent_activity(
    logs: Iterable,
    today: date,
    days: int = dose_config.RECENT_ACTIVITY_DAYS,
    limit: int = dose_config.RECENT_ACTIVITY_LIMIT,
) -> List:
    """Logs from the last `days` days, newest first, capped at `limit`"""
    since = datetime.combine(today - timedelta(days=days), datetime.min.time())
    recent = [log for log in logs if log.scheduled_at >= since]
    recent.sort(key=lambda log: log.scheduled_at, reverse=True)
    return recent[:limit]


def refill_severity(remaining: int) -> str:
    return "high" if remaining <= dose_config.REFILL_HIGH_SEVERITY else "medium"


def needs_refill(plan) -> bool:
    return (plan.stock_remaining or 0) <= dose_config.REFILL_THRESHOLD
