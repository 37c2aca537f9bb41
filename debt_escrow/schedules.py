"""
Schedule Module

Maps schedule granularities to fixed intervals. A month is always 30 days
and a year 365 days; there is no calendar arithmetic.
"""

from datetime import timedelta
from enum import Enum
from typing import Dict, Union

from .errors import InvalidScheduleError


HOUR = timedelta(hours=1)
DAY = timedelta(days=1)
WEEK = timedelta(days=7)
MONTH = timedelta(days=30)
YEAR = timedelta(days=365)


class Schedule(Enum):
    """Accrual and payment cadences"""
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    FORTNIGHTLY = "fortnightly"
    MONTHLY = "monthly"
    QUADANNUALLY = "quadannually"    # 4 times a year
    TRIANNUALLY = "triannually"      # 3 times a year
    BIANNUALLY = "biannually"        # twice a year
    ANNUALLY = "annually"
    BIENNIALLY = "biennially"        # every 2 years
    TRIENNIALLY = "triennially"      # every 3 years
    QUADRENNIALLY = "quadrennially"  # every 4 years


_INTERVALS: Dict[Schedule, timedelta] = {
    Schedule.HOURLY: HOUR,
    Schedule.DAILY: DAY,
    Schedule.WEEKLY: WEEK,
    Schedule.FORTNIGHTLY: 2 * WEEK,
    Schedule.MONTHLY: MONTH,
    Schedule.QUADANNUALLY: YEAR / 4,
    Schedule.TRIANNUALLY: YEAR / 3,
    Schedule.BIANNUALLY: YEAR / 2,
    Schedule.ANNUALLY: YEAR,
    Schedule.BIENNIALLY: 2 * YEAR,
    Schedule.TRIENNIALLY: 3 * YEAR,
    Schedule.QUADRENNIALLY: 4 * YEAR,
}

# Adding a Schedule member without an interval must fail at import
_missing = set(Schedule) - set(_INTERVALS)
if _missing:
    raise RuntimeError(f"Schedules without an interval: {sorted(s.value for s in _missing)}")


def parse_schedule(value: Union[Schedule, str]) -> Schedule:
    """Coerce a tag or its string value to a Schedule"""
    if isinstance(value, Schedule):
        return value
    if isinstance(value, str):
        try:
            return Schedule(value.lower())
        except ValueError:
            pass
    raise InvalidScheduleError(f"Unknown schedule: {value!r}")


def schedule_interval(schedule: Union[Schedule, str]) -> timedelta:
    """
    Get the fixed interval for a schedule.

    Raises:
        InvalidScheduleError: for anything outside the Schedule enumeration
    """
    return _INTERVALS[parse_schedule(schedule)]
