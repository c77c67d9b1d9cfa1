"""
Static time-slot catalog.

The catalog is configuration, not runtime data. ``CapacityPoolService``
materializes it into the ``time_slots`` table so reservations have a row to
lock per (pool, day, time).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import time
from typing import Dict, FrozenSet, List, Optional, Tuple

from .config import settings
from .enums import AgeCategory, DayOfWeek, PoolName

GROUP_TRAINING_DAYS = (DayOfWeek.TUESDAY, DayOfWeek.FRIDAY)
GROUP_TRAINING_TIMES = (time(16, 30), time(17, 45), time(19, 0), time(20, 15))

SHARED_TRAINING_DAYS = (DayOfWeek.MONDAY, DayOfWeek.WEDNESDAY, DayOfWeek.THURSDAY)
SHARED_TRAINING_TIMES = (time(15, 0), time(16, 15), time(17, 30), time(18, 45), time(20, 0))

SUNDAY_ICE_DAYS = (DayOfWeek.SUNDAY,)
SUNDAY_ICE_TIMES = (time(7, 30), time(8, 30))

SUNDAY_ELIGIBILITY: Dict[time, FrozenSet[str]] = {
    time(7, 30): frozenset({AgeCategory.M7.value, AgeCategory.M9.value, AgeCategory.M11.value}),
    time(8, 30): frozenset(
        {
            AgeCategory.M13.value,
            AgeCategory.M13_ELITE.value,
            AgeCategory.M15.value,
            AgeCategory.M15_ELITE.value,
        }
    ),
}


@dataclass(frozen=True)
class SlotDefinition:
    pool: PoolName
    day_of_week: DayOfWeek
    start_time: time
    end_time: time
    position: int
    capacity: int
    eligible_categories: Optional[FrozenSet[str]] = field(default=None)


def _end_of(start: time, minutes: int = 60) -> time:
    total = start.hour * 60 + start.minute + minutes
    return time((total // 60) % 24, total % 60)


def _pool_definitions(
    pool: PoolName,
    days: Tuple[DayOfWeek, ...],
    times: Tuple[time, ...],
    capacity: int,
    eligibility: Optional[Dict[time, FrozenSet[str]]] = None,
) -> List[SlotDefinition]:
    definitions = []
    for day in days:
        for position, start in enumerate(times):
            definitions.append(
                SlotDefinition(
                    pool=pool,
                    day_of_week=day,
                    start_time=start,
                    end_time=_end_of(start),
                    position=position,
                    capacity=capacity,
                    eligible_categories=(eligibility or {}).get(start),
                )
            )
    return definitions


def build_catalog() -> List[SlotDefinition]:
    """Return every slot definition for all pools using current settings."""
    return (
        _pool_definitions(
            PoolName.GROUP, GROUP_TRAINING_DAYS, GROUP_TRAINING_TIMES, settings.group_slot_capacity
        )
        + _pool_definitions(
            PoolName.SHARED,
            SHARED_TRAINING_DAYS,
            SHARED_TRAINING_TIMES,
            settings.shared_slot_capacity,
        )
        + _pool_definitions(
            PoolName.SUNDAY,
            SUNDAY_ICE_DAYS,
            SUNDAY_ICE_TIMES,
            settings.sunday_slot_capacity,
            SUNDAY_ELIGIBILITY,
        )
    )


def _parse_clock(value: str, period: Optional[str]) -> time:
    if ":" in value:
        hours_str, minutes_str = value.split(":")[:2]
    else:
        hours_str, minutes_str = value, "0"
    hours, minutes = int(hours_str), int(minutes_str)
    if period is not None:
        if not 1 <= hours <= 12:
            raise ValueError(f"Invalid 12-hour clock value: {value}")
        hours = hours % 12 + (12 if period == "PM" else 0)
    return time(hours, minutes)


def parse_slot_time(value: str) -> time:
    """
    Parse a slot start time.

    Accepts "HH:MM" (24h), "h:MM AM/PM" and window labels such as "3-4pm",
    whose start takes the end's AM/PM unless that would put it after the end.
    Raises ValueError for anything else; malformed slot references are
    programming errors, not booking rejections.
    """
    cleaned = value.strip().upper().replace(" ", "")
    period = cleaned[-2:] if cleaned.endswith(("AM", "PM")) else None
    body = cleaned[:-2] if period else cleaned
    if not body:
        raise ValueError(f"Invalid slot time: {value!r}")

    if "-" in body:
        start_str, end_str = body.split("-", 1)
        end = _parse_clock(end_str, period)
        start = _parse_clock(start_str, period)
        if period is not None and start > end:
            start = time((start.hour + 12) % 24, start.minute)
        return start
    return _parse_clock(body, period)


def _twelve_hour(value: time) -> str:
    hour = value.hour % 12 or 12
    return f"{hour}" if value.minute == 0 else f"{hour}:{value.minute:02d}"


def window_label(start: time, minutes: int = 60) -> str:
    """Human label for a session window, e.g. 15:00 -> "3-4pm"."""
    end = _end_of(start, minutes)
    end_period = "am" if end.hour < 12 else "pm"
    start_period = "am" if start.hour < 12 else "pm"
    prefix = _twelve_hour(start) + ("" if start_period == end_period else start_period)
    return f"{prefix}-{_twelve_hour(end)}{end_period}"
