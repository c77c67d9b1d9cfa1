# backend/icetime/core/enums.py
"""
Core enums for the IceTime booking engine.

Values are the strings persisted in the database and exchanged over the API.
"""

from datetime import date
from enum import Enum


class ProgramType(str, Enum):
    """Bookable training programs."""

    GROUP = "group"
    PRIVATE = "private"
    SEMI_PRIVATE = "semi_private"
    SUNDAY = "sunday"


class PoolName(str, Enum):
    """
    Capacity domains.

    GROUP and SUNDAY are fixed-capacity pools. SHARED is the single exclusive
    pool that private and semi-private programs compete for.
    """

    GROUP = "group"
    SHARED = "shared"
    SUNDAY = "sunday"


PROGRAM_POOLS = {
    ProgramType.GROUP: PoolName.GROUP,
    ProgramType.PRIVATE: PoolName.SHARED,
    ProgramType.SEMI_PRIVATE: PoolName.SHARED,
    ProgramType.SUNDAY: PoolName.SUNDAY,
}


class DayOfWeek(str, Enum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def from_date(cls, value: date) -> "DayOfWeek":
        return list(cls)[value.weekday()]

    @classmethod
    def parse(cls, value: str) -> "DayOfWeek":
        """Accept full names or three-letter abbreviations in any case."""
        cleaned = value.strip().lower()
        for day in cls:
            if cleaned == day.value or (len(cleaned) >= 3 and day.value.startswith(cleaned)):
                return day
        raise ValueError(f"Unknown day of week: {value!r}")

    @property
    def index(self) -> int:
        return list(DayOfWeek).index(self)


class AgeCategory(str, Enum):
    M7 = "M7"
    M9 = "M9"
    M11 = "M11"
    M13 = "M13"
    M13_ELITE = "M13 Elite"
    M15 = "M15"
    M15_ELITE = "M15 Elite"
    M18 = "M18"
    JUNIOR = "Junior"
