"""
Dose Keys
Identifiers for doses that may or may not be persisted yet
"""

from typing import Union
from dataclasses import dataclass
from datetime import datetime


PENDING_PREFIX = "pending_"


class InvalidDoseKey(ValueError):
    """Raised when a dose id is neither a row id nor a planId_epochMs key"""


@dataclass(frozen=True)
class PersistedDoseKey:
    """A DoseLog row id"""
    id: int

    def __str__(self) -> str:
        return str(self.id)


@dataclass(frozen=True)
class VirtualDoseKey:
    """A projected occurrence addressed by its natural key"""
    plan_id: int
    scheduled_at: datetime

    def __str__(self) -> str:
        return virtual_dose_id(self.plan_id, self.scheduled_at)


DoseKey = Union[PersistedDoseKey, VirtualDoseKey]


def to_epoch_ms(value: datetime) -> int:
    return int(round(value.timestamp() * 1000))


def from_epoch_ms(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000)


def virtual_dose_id(plan_id: int, scheduled_at: datetime) -> str:
    return f"{plan_id}_{to_epoch_ms(scheduled_at)}"


def pending_medicine_id(plan_id: int) -> str:
    return f"{PENDING_PREFIX}{plan_id}"


def parse_dose_key(raw: str) -> DoseKey:
    """
    Parse a dose id from a URL.

    "42"              -> PersistedDoseKey(42)
    "7_1792573200000" -> VirtualDoseKey(7, <local datetime>)
    """
    raw = (raw or "").strip()
    if not raw:
        raise InvalidDoseKey("Invalid doseId")

    if "_" not in raw:
        if not raw.isdigit():
            raise InvalidDoseKey("Invalid doseId")
        return PersistedDoseKey(int(raw))

    plan_part, _, time_part = raw.partition("_")
    if not plan_part.isdigit() or not time_part.isdigit():
        raise InvalidDoseKey("Invalid doseId")

    try:
        scheduled_at = from_epoch_ms(int(time_part))
    except (OverflowError, OSError, ValueError):
        raise InvalidDoseKey("Invalid scheduled time")

    return VirtualDoseKey(int(plan_part), scheduled_at)
