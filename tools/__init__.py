"""
Tools Package
Pure scheduling and statistics helpers for DoseRight
"""

from .clock import (
    Clock,
    SystemClock,
    FixedClock,
    system_clock
)

from .recurrence import (
    RecurrenceRule,
    DoseOccurrence,
    adjusted_weekday,
    parse_time_of_day,
    project_plan,
    project_plans
)

from .dose_keys import (
    DoseKey,
    PersistedDoseKey,
    VirtualDoseKey,
    InvalidDoseKey,
    parse_dose_key,
    virtual_dose_id
)

from .dose_lifecycle import (
    DoseTransitionError,
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
    apply_time_transitions,
    transition
)

from .reconciler import (
    ScheduleEntry,
    build_day_schedule,
    next_pending
)

from .adherence_stats import (
    AdherenceRate,
    adherence_rate,
    current_streak,
    weekly_trend,
    by_medicine,
    recent_activity
)

__all__ = [
    # Clock
    "Clock",
    "SystemClock",
    "FixedClock",
    "system_clock",

    # Recurrence
    "RecurrenceRule",
    "DoseOccurrence",
    "adjusted_weekday",
    "parse_time_of_day",
    "project_plan",
    "project_plans",

    # Dose keys
    "DoseKey",
    "PersistedDoseKey",
    "VirtualDoseKey",
    "InvalidDoseKey",
    "parse_dose_key",
    "virtual_dose_id",

    # Lifecycle
    "DoseTransitionError",
    "ALLOWED_TRANSITIONS",
    "TERMINAL_STATUSES",
    "apply_time_transitions",
    "transition",

    # Reconciler
    "ScheduleEntry",
    "build_day_schedule",
    "next_pending",

    # Adherence statistics
    "AdherenceRate",
    "adherence_rate",
    "current_streak",
    "weekly_trend",
    "by_medicine",
    "recent_activity"
]
