"""
Availability API.

Plain-data entry points over the calendar, allocation, capacity, simulation
and forecast packs. Inputs may be DataFrames or lists of records; outputs are
dicts and lists with 'YYYY-MM-DD' dates and hours rounded to two decimals.
"""
import logging
from typing import Any, Dict, List, Optional

import pandas as pd

from capacity_engine.config import CapacityPolicy, STATUS_OVERLOADED
from capacity_engine.data.calendar import working_days_in_month, working_days_in_range
from capacity_engine.data.collaborators import as_collaborator, collaborators_from_table
from capacity_engine.data.schema import month_bounds, normalise_id, normalise_table, validate_range
from capacity_engine.metrics.allocation import aggregate, is_open_status
from capacity_engine.metrics.capacity import calculate
from capacity_engine.modeling.daily_allocation import simulate
from capacity_engine.modeling.release_forecast import forecast_release

logger = logging.getLogger(__name__)

HOURS_DECIMALS = 2

TEAM_COLUMNS = [
    "collaborator_id",
    "name",
    "daily_available_hours",
    "target_hours",
    "planned_hours",
    "continuous_hours",
    "balance",
    "occupancy_rate",
    "status",
    "worked_hours",
]


def _round(value: float) -> float:
    return round(float(value), HOURS_DECIMALS)


def _format_day(value: Optional[pd.Timestamp]) -> Optional[str]:
    if value is None or pd.isna(value):
        return None
    return pd.Timestamp(value).strftime("%Y-%m-%d")


def _round_items(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [{**item, "hours": _round(item["hours"])} for item in items]


def worked_hours_in_month(collaborator_id: Any, month: str, timesheet_entries: Any) -> float:
    """Timesheet hours the collaborator logged in the month."""
    month_start, month_end = month_bounds(month)
    entries = normalise_table(timesheet_entries, "timesheets")
    mine = entries[
        (entries["collaborator_id"] == normalise_id(collaborator_id))
        & (entries["date"] >= month_start)
        & (entries["date"] <= month_end)
    ]
    return float(mine["total_hours"].fillna(0.0).clip(lower=0.0).sum())


# =============================================================================
# SINGLE COLLABORATOR
# =============================================================================

def get_user_monthly_availability(collaborator: Any,
                                  month: str,
                                  projects: Any,
                                  project_members: Any,
                                  timesheet_entries: Any,
                                  tasks: Any,
                                  holidays: Any = None,
                                  absences: Any = None,
                                  today: Any = None,
                                  policy: Optional[CapacityPolicy] = None) -> Dict[str, Any]:
    """
    Monthly occupancy of a collaborator.

    Returns occupancy_rate, planned_hours, continuous_hours, balance, status,
    breakdown {planned, continuous} of {id, name, hours} items, plus
    target_hours and worked_hours.
    """
    policy = policy or CapacityPolicy()
    person = as_collaborator(collaborator, policy.default_daily_hours)

    allocation = aggregate(
        person, month, tasks, projects, project_members, timesheet_entries,
        holidays=holidays, absences=absences, today=today, policy=policy,
    )
    capacity = calculate(
        allocation.planned_hours, allocation.continuous_hours, person, month,
        holidays=holidays, absences=absences, policy=policy,
    )

    return {
        "occupancy_rate": _round(capacity.occupancy_rate),
        "planned_hours": _round(allocation.planned_hours),
        "continuous_hours": _round(allocation.continuous_hours),
        "balance": _round(capacity.balance),
        "status": capacity.status,
        "breakdown": {
            "planned": _round_items(allocation.breakdown["planned"]),
            "continuous": _round_items(allocation.breakdown["continuous"]),
        },
        "target_hours": _round(capacity.target_hours),
        "worked_hours": _round(worked_hours_in_month(person.collaborator_id, month, timesheet_entries)),
    }


def calculate_individual_release_date(collaborator: Any,
                                      projects: Any,
                                      project_members: Any,
                                      timesheet_entries: Any,
                                      tasks: Any,
                                      holidays: Any = None,
                                      absences: Any = None,
                                      today: Any = None,
                                      policy: Optional[CapacityPolicy] = None) -> Dict[str, Any]:
    """
    Ideal and realistic backlog clearance dates.

    ``today`` defaults to the current date; pass it explicitly for
    reproducible results.
    """
    if today is None:
        today = pd.Timestamp.today().normalize()

    forecast = forecast_release(
        collaborator, tasks, projects, project_members, timesheet_entries,
        holidays=holidays, absences=absences, today=today, policy=policy,
    )
    return {
        "ideal": _format_day(forecast.ideal),
        "realistic": _format_day(forecast.realistic),
        "is_saturated": forecast.is_saturated,
    }


def simulate_user_daily_allocation(collaborator_id: Any,
                                   start_date: Any,
                                   end_date: Any,
                                   projects: Any,
                                   tasks: Any,
                                   project_members: Any,
                                   timesheet_entries: Any,
                                   holidays: Any = None,
                                   daily_capacity: Optional[float] = None,
                                   absences: Any = None,
                                   policy: Optional[CapacityPolicy] = None) -> List[Dict[str, Any]]:
    """One allocation record per calendar day in [start_date, end_date]."""
    daily = simulate(
        collaborator_id, start_date, end_date, tasks, projects, project_members, timesheet_entries,
        holidays=holidays, absences=absences, daily_capacity=daily_capacity, policy=policy,
    )
    return [
        {
            "date": _format_day(row.date),
            "planned_hours": _round(row.planned_hours),
            "continuous_hours": _round(row.continuous_hours),
            "buffer_hours": _round(row.buffer_hours),
            "capacity": _round(row.capacity),
            "is_overloaded": bool(row.is_overloaded),
            "occupancy_rate": _round(row.occupancy_rate),
        }
        for row in daily.itertuples(index=False)
    ]


def get_working_days_in_month(month: str, holidays: Any = None) -> float:
    """Working days in a 'YYYY-MM' month after holidays."""
    return working_days_in_month(month, holidays)


def get_working_days_in_range(start_date: Any, end_date: Any, holidays: Any = None) -> float:
    """Working days in an inclusive range after holidays."""
    return working_days_in_range(start_date, end_date, holidays)


# =============================================================================
# TEAM ROLLUPS
# =============================================================================

def compute_team_availability(collaborators: Any,
                              month: str,
                              projects: Any,
                              project_members: Any,
                              timesheet_entries: Any,
                              tasks: Any,
                              holidays: Any = None,
                              absences: Any = None,
                              today: Any = None,
                              policy: Optional[CapacityPolicy] = None) -> pd.DataFrame:
    """
    Monthly availability for every active collaborator.

    Returns DataFrame with one row per collaborator: target, planned,
    continuous, balance, occupancy, status and worked hours.
    """
    policy = policy or CapacityPolicy()
    team = [c for c in collaborators_from_table(collaborators, policy.default_daily_hours) if c.active]
    if len(team) == 0:
        return pd.DataFrame(columns=TEAM_COLUMNS)

    rows = []
    for person in team:
        result = get_user_monthly_availability(
            person, month, projects, project_members, timesheet_entries, tasks,
            holidays=holidays, absences=absences, today=today, policy=policy,
        )
        rows.append({
            "collaborator_id": person.collaborator_id,
            "name": person.name,
            "daily_available_hours": person.daily_available_hours,
            "target_hours": result["target_hours"],
            "planned_hours": result["planned_hours"],
            "continuous_hours": result["continuous_hours"],
            "balance": result["balance"],
            "occupancy_rate": result["occupancy_rate"],
            "status": result["status"],
            "worked_hours": result["worked_hours"],
        })

    logger.debug("Computed %s availability for %d collaborators", month, len(rows))
    return pd.DataFrame(rows, columns=TEAM_COLUMNS)


def get_overloaded_collaborators(team: pd.DataFrame) -> pd.DataFrame:
    """
    Get collaborators whose occupancy is above the high threshold.
    """
    if len(team) == 0:
        return team
    return team[team["status"] == STATUS_OVERLOADED].sort_values("occupancy_rate", ascending=False)


def get_collaborators_with_balance(team: pd.DataFrame, min_balance: float = 8.0) -> pd.DataFrame:
    """
    Get collaborators with at least ``min_balance`` free hours.
    """
    if len(team) == 0:
        return team
    return team[team["balance"] >= min_balance].sort_values("balance", ascending=False)


# =============================================================================
# ABSENCE CONFLICTS
# =============================================================================

def find_absence_conflicts(collaborator_id: Any,
                           start_date: Any,
                           end_date: Any,
                           tasks: Any) -> pd.DataFrame:
    """
    Open tasks led by the collaborator that overlap a proposed absence.

    A task's window runs from its scheduled start (or its delivery date when
    unscheduled) to its estimated delivery. Tasks without a delivery date
    never conflict.

    Raises:
        InvalidDateRangeError: end_date earlier than start_date
    """
    start, end = validate_range(start_date, end_date)
    collaborator_id = normalise_id(collaborator_id)
    tasks_df = normalise_table(tasks, "tasks")

    mine = tasks_df[
        (tasks_df["developer_id"] == collaborator_id)
        & tasks_df["status"].map(is_open_status).astype(bool)
        & tasks_df["estimated_delivery"].notna()
    ].copy()

    mine["window_start"] = mine["scheduled_start"].fillna(mine["estimated_delivery"])
    mine["window_end"] = mine["estimated_delivery"]
    overlapping = mine[(mine["window_start"] <= end) & (mine["window_end"] >= start)]

    return overlapping[["task_id", "title", "project_id", "window_start", "window_end"]].reset_index(drop=True)
