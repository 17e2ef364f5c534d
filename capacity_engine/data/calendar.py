"""
Working calendar: weekday counting with holiday and absence coverage.

A day's working fraction is 1.0 for a free weekday and 0.0 for weekends.
Holidays and approved absences subtract the share of the standard day they
cover; overlapping coverage is summed and the result clamped at zero.
"""
import logging
from typing import Any, Optional, Tuple

import numpy as np
import pandas as pd

from capacity_engine.config import (
    config,
    APPROVED_ABSENCE_STATUSES,
    PERIOD_ALIASES,
    PERIOD_FULL_DAY,
    PERIOD_MORNING,
    PERIOD_AFTERNOON,
)
from capacity_engine.data.schema import (
    InvalidDateRangeError,
    month_bounds,
    normalise_id,
    normalise_table,
    require_day,
    validate_range,
)

logger = logging.getLogger(__name__)


# =============================================================================
# DAY SHAPE
# =============================================================================

def clock_to_hours(value: Any) -> Optional[float]:
    """'HH:MM' (or 'HH:MM:SS') as hours since midnight; None when missing or malformed."""
    if value is None:
        return None
    if not isinstance(value, str) and pd.api.types.is_scalar(value) and pd.isna(value):
        return None
    text = str(value).strip()
    if not text:
        return None
    parts = text.split(":")
    try:
        hours = int(parts[0])
        minutes = int(parts[1]) if len(parts) > 1 else 0
    except ValueError:
        return None
    return hours + minutes / 60.0


def _working_hours_between(start: float, end: float) -> float:
    """Clock hours between two times of day, minus the lunch break."""
    if end <= start:
        return 0.0
    lunch_start = clock_to_hours(config.lunch_start)
    lunch_end = clock_to_hours(config.lunch_end)
    lunch = max(0.0, min(end, lunch_end) - max(start, lunch_start))
    return (end - start) - lunch


def standard_day_hours() -> float:
    return _working_hours_between(
        clock_to_hours(config.workday_start), clock_to_hours(config.workday_end)
    )


def normalise_period(value: Any) -> str:
    """Map a period label onto integral / manha / tarde. Unknown labels mean the whole day."""
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return PERIOD_FULL_DAY
    key = str(value).strip().lower().replace(" ", "_")
    return PERIOD_ALIASES.get(key, PERIOD_FULL_DAY)


def _period_window(period: str) -> Tuple[float, float]:
    day_start = clock_to_hours(config.workday_start)
    day_end = clock_to_hours(config.workday_end)
    if period == PERIOD_MORNING:
        return day_start, clock_to_hours(config.lunch_start)
    if period == PERIOD_AFTERNOON:
        return clock_to_hours(config.lunch_end), day_end
    return day_start, day_end


def covered_fraction(period: Any = None, end_time: Any = None, is_last_day: bool = False) -> float:
    """
    Share of a standard working day taken by a holiday or absence.

    Whole-day coverage is 1.0 and a morning or afternoon is a fixed half day.
    On the last day of a range with an explicit end time, the coverage is the
    working time elapsed from the start of the period up to that time.
    """
    period = normalise_period(period)
    cutoff = clock_to_hours(end_time) if is_last_day else None
    if cutoff is None:
        return 1.0 if period == PERIOD_FULL_DAY else config.half_day_fraction

    window_start, window_end = _period_window(period)
    covered = _working_hours_between(window_start, min(cutoff, window_end))
    return float(min(max(covered / standard_day_hours(), 0.0), 1.0))


# =============================================================================
# EXCLUSIONS
# =============================================================================

def exclusion_frame(holidays: Any = None,
                    absences: Any = None,
                    collaborator_id: Any = None) -> pd.DataFrame:
    """
    Holidays plus the collaborator's approved absences as one frame with
    start_date, end_date, period and end_time.

    Raises:
        InvalidDateRangeError: a record ends before it starts.
    """
    frames = []

    holidays_df = normalise_table(holidays, "holidays")
    if len(holidays_df) > 0:
        frames.append(pd.DataFrame({
            "start_date": holidays_df["date"],
            "end_date": holidays_df["end_date"],
            "period": holidays_df["period"],
            "end_time": holidays_df["end_time"],
        }))

    absences_df = normalise_table(absences, "absences")
    collaborator_id = normalise_id(collaborator_id)
    if len(absences_df) > 0 and collaborator_id is not None:
        status = absences_df["status"].astype(str).str.strip().str.lower()
        mine = absences_df[
            (absences_df["collaborator_id"] == collaborator_id)
            & status.isin(APPROVED_ABSENCE_STATUSES)
        ]
        if len(mine) > 0:
            frames.append(mine[["start_date", "end_date", "period", "end_time"]])

    if not frames:
        return pd.DataFrame(columns=["start_date", "end_date", "period", "end_time"])

    df = pd.concat(frames, ignore_index=True)
    df = df[df["start_date"].notna()].copy()
    df["end_date"] = df["end_date"].fillna(df["start_date"])

    backwards = df["end_date"] < df["start_date"]
    if backwards.any():
        first = df[backwards].iloc[0]
        raise InvalidDateRangeError(
            f"Calendar entry ends {first['end_date'].date()} before it starts {first['start_date'].date()}"
        )
    return df.reset_index(drop=True)


# =============================================================================
# WORKING FRACTIONS
# =============================================================================

def working_fractions(start_date: Any,
                      end_date: Any,
                      holidays: Any = None,
                      absences: Any = None,
                      collaborator_id: Any = None) -> pd.Series:
    """
    Working fraction for every calendar day in [start_date, end_date].

    Returns a float Series indexed by day.
    """
    start, end = validate_range(start_date, end_date)
    days = pd.date_range(start, end, freq="D")
    weekday = pd.Series(np.where(days.dayofweek < 5, 1.0, 0.0), index=days)
    covered = pd.Series(0.0, index=days)

    exclusions = exclusion_frame(holidays, absences, collaborator_id)
    if len(exclusions) > 0:
        logger.debug("Applying %d calendar exclusions to %s..%s", len(exclusions), start.date(), end.date())
    for _, row in exclusions.iterrows():
        lo = max(row["start_date"], start)
        hi = min(row["end_date"], end)
        if lo > hi:
            continue
        covered.loc[lo:hi] += covered_fraction(row["period"])
        if lo <= row["end_date"] <= hi:
            last = covered_fraction(row["period"], row["end_time"], is_last_day=True)
            covered.loc[row["end_date"]] += last - covered_fraction(row["period"])

    return (weekday - covered).clip(lower=0.0, upper=1.0)


def working_fraction(date: Any,
                     holidays: Any = None,
                     absences: Any = None,
                     collaborator_id: Any = None) -> float:
    """Working fraction of a single day, in [0.0, 1.0]."""
    day = require_day(date)
    return float(working_fractions(day, day, holidays, absences, collaborator_id).iloc[0])


def working_days_in_range(start_date: Any, end_date: Any, holidays: Any = None) -> float:
    """Working days in an inclusive range, holidays only."""
    return float(working_fractions(start_date, end_date, holidays).sum())


def working_days_in_month(month: Any, holidays: Any = None) -> float:
    """Working days in a 'YYYY-MM' month, holidays only."""
    start, end = month_bounds(month)
    return working_days_in_range(start, end, holidays)


def first_working_day(start_date: Any, fractions: pd.Series) -> Optional[pd.Timestamp]:
    """First day on or after start_date with any working capacity in a fractions series."""
    later = fractions.loc[require_day(start_date):]
    later = later[later > 0]
    if len(later) == 0:
        return None
    return later.index[0]
