"""Day-by-day allocation simulation for a single collaborator."""
import logging
from dataclasses import replace
from typing import Any, Dict, Optional

import pandas as pd

from capacity_engine.config import CapacityPolicy
from capacity_engine.data.collaborators import as_collaborator, resolve_daily_hours
from capacity_engine.data.schema import validate_range
from capacity_engine.metrics.allocation import allocate_days, remaining_work

logger = logging.getLogger(__name__)


_DAILY_COLUMNS = [
    "date",
    "planned_hours",
    "continuous_hours",
    "buffer_hours",
    "capacity",
    "is_overloaded",
    "occupancy_rate",
]


def simulate(collaborator: Any,
             start_date: Any,
             end_date: Any,
             tasks: Any,
             projects: Any,
             project_members: Any,
             timesheet_entries: Any,
             holidays: Any = None,
             absences: Any = None,
             daily_capacity: Optional[float] = None,
             policy: Optional[CapacityPolicy] = None) -> pd.DataFrame:
    """
    Project a collaborator's day-by-day allocation over [start_date, end_date].

    Remaining hours are those not yet logged by the end of the range. Task
    windows starting before ``start_date`` are clipped to it, so work that is
    still open is spread over the days ahead.

    Returns one row per calendar day: planned, continuous and buffer hours,
    the day's capacity, an overload flag and occupancy (percent of capacity,
    0 on days without capacity). Days with no capacity and no planned hours
    carry all zeros.

    ``daily_capacity`` overrides the collaborator's own daily hours.

    Raises:
        InvalidDateRangeError: end_date earlier than start_date
    """
    policy = policy or CapacityPolicy()
    start, end = validate_range(start_date, end_date)
    person = as_collaborator(collaborator, policy.default_daily_hours)
    if daily_capacity is not None:
        person = replace(person, daily_available_hours=resolve_daily_hours(daily_capacity, policy.default_daily_hours))

    work = remaining_work(
        person.collaborator_id, tasks, projects, project_members, timesheet_entries,
        until=end, window=(start, end), policy=policy,
    )
    daily, _ = allocate_days(
        work, start, end, person.daily_available_hours, policy,
        holidays=holidays, absences=absences,
        collaborator_id=person.collaborator_id, floor=start,
    )

    committed = daily["planned_hours"] + daily["continuous_hours"]
    result = pd.DataFrame({
        "date": daily.index,
        "planned_hours": daily["planned_hours"].values,
        "continuous_hours": daily["continuous_hours"].values,
        "buffer_hours": (daily["capacity"] - committed).clip(lower=0.0).values,
        "capacity": daily["capacity"].values,
        "is_overloaded": (committed > daily["capacity"] + 1e-9).values,
        "occupancy_rate": (committed / daily["capacity"].where(daily["capacity"] > 0) * 100).fillna(0.0).values,
    })

    overloaded = int(result["is_overloaded"].sum())
    if overloaded:
        logger.debug("Collaborator %s overloaded on %d of %d days",
                     person.collaborator_id, overloaded, len(result))
    return result[_DAILY_COLUMNS]


def summarise_daily(daily: pd.DataFrame) -> Dict[str, float]:
    """Totals and overload counts of a simulated range."""
    if len(daily) == 0:
        return {}

    capacity = float(daily["capacity"].sum())
    committed = float(daily["planned_hours"].sum() + daily["continuous_hours"].sum())
    return {
        "days": len(daily),
        "working_days": int((daily["capacity"] > 0).sum()),
        "capacity": capacity,
        "planned_hours": float(daily["planned_hours"].sum()),
        "continuous_hours": float(daily["continuous_hours"].sum()),
        "buffer_hours": float(daily["buffer_hours"].sum()),
        "overloaded_days": int(daily["is_overloaded"].sum()),
        "peak_occupancy": float(daily["occupancy_rate"].max()),
        "occupancy_rate": committed / capacity * 100 if capacity > 0 else 0.0,
    }
