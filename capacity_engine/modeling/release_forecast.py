"""
Release forecast: when a collaborator's planned backlog clears.

Two projections walk the calendar forward from an explicit ``today``:
ideal applies every working hour to the backlog, realistic only the share
left after the continuous reserve. Both walks stop at the policy horizon.
"""
import logging
import math
from dataclasses import dataclass
from typing import Any, Iterable, Optional

import pandas as pd

from capacity_engine.config import CapacityPolicy, TIER_PLANNED
from capacity_engine.data.calendar import working_fractions
from capacity_engine.data.collaborators import as_collaborator, collaborators_from_table
from capacity_engine.data.schema import require_day
from capacity_engine.metrics.allocation import remaining_work

logger = logging.getLogger(__name__)

EPSILON = 1e-9


@dataclass
class ReleaseForecast:
    """Backlog clearance dates. None means no backlog, or not reached within the horizon."""
    ideal: Optional[pd.Timestamp]
    realistic: Optional[pd.Timestamp]
    is_saturated: bool
    backlog_hours: float


def compute_backlog_hours(work: pd.DataFrame) -> float:
    """Remaining hours across all open planned tasks."""
    if len(work) == 0:
        return 0.0
    return float(work.loc[work["tier"] == TIER_PLANNED, "remaining_hours"].sum())


def _horizon_days(start: pd.Timestamp, horizon_days: int) -> pd.DatetimeIndex:
    return pd.date_range(start, periods=horizon_days, freq="D")


def _first_crossing(cumulative: pd.Series, target: float) -> Optional[pd.Timestamp]:
    """First day the running total reaches target."""
    reached = cumulative[cumulative >= target - EPSILON]
    if len(reached) == 0:
        return None
    return reached.index[0]


def forecast_release(collaborator: Any,
                     tasks: Any,
                     projects: Any,
                     project_members: Any,
                     timesheet_entries: Any,
                     holidays: Any = None,
                     absences: Any = None,
                     today: Any = None,
                     policy: Optional[CapacityPolicy] = None) -> ReleaseForecast:
    """
    Forecast when the collaborator's planned backlog is cleared.

    The backlog is every open planned task's remaining hours, with no month
    boundary. Capacity per day is the collaborator's daily hours times the
    day's working fraction, so holidays and absences contribute nothing.

    Args:
        today: first day of the walk (required)

    Returns:
        ReleaseForecast; ``is_saturated`` is set when the realistic walk does
        not clear the backlog within ``policy.forecast_horizon_days``.
    """
    policy = policy or CapacityPolicy()
    start = require_day(today, "today")
    person = as_collaborator(collaborator, policy.default_daily_hours)

    work = remaining_work(
        person.collaborator_id, tasks, projects, project_members, timesheet_entries,
        policy=policy,
    )
    backlog = compute_backlog_hours(work)
    if backlog <= EPSILON:
        return ReleaseForecast(ideal=None, realistic=None, is_saturated=False, backlog_hours=0.0)

    days = _horizon_days(start, policy.forecast_horizon_days)
    capacity = working_fractions(
        days[0], days[-1], holidays, absences, person.collaborator_id
    ) * person.daily_available_hours

    ideal = _first_crossing(capacity.cumsum(), backlog)
    realistic = _first_crossing((capacity * (1.0 - policy.reserve_share)).cumsum(), backlog)

    if realistic is None:
        logger.info("Backlog of %.1fh for collaborator %s not cleared within %d days",
                    backlog, person.collaborator_id, policy.forecast_horizon_days)

    return ReleaseForecast(
        ideal=ideal,
        realistic=realistic,
        is_saturated=realistic is None,
        backlog_hours=backlog,
    )


def estimate_project_deadline(start_date: Any,
                              sold_hours: float,
                              team: Iterable[Any],
                              holidays: Any = None,
                              policy: Optional[CapacityPolicy] = None) -> Optional[pd.Timestamp]:
    """
    Delivery date for a project of ``sold_hours`` worked by ``team``.

    Needs ceil(sold_hours / team daily hours) working days, counted from the
    day after ``start_date`` with holidays taken out. Returns None for an
    empty team, no hours, or a date beyond the forecast horizon.
    """
    policy = policy or CapacityPolicy()
    start = require_day(start_date, "start date")

    members = [m for m in collaborators_from_table(team, policy.default_daily_hours) if m.active]
    team_daily = sum(m.daily_available_hours for m in members)
    if team_daily <= 0 or sold_hours is None or sold_hours <= 0:
        return None

    needed_days = math.ceil(sold_hours / team_daily)
    days = _horizon_days(start + pd.Timedelta(days=1), policy.forecast_horizon_days)
    fractions = working_fractions(days[0], days[-1], holidays)

    deadline = _first_crossing(fractions.cumsum(), needed_days)
    if deadline is None:
        logger.info("%d working days needed from %s exceed the %d day horizon",
                    needed_days, start.date(), policy.forecast_horizon_days)
    return deadline
