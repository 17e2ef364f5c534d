"""
Allocation metrics pack.

Single source of truth for: open workload, remaining hours, planned vs
continuous tiers, and how remaining hours land on calendar days.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

import numpy as np
import pandas as pd

from capacity_engine.config import (
    CapacityPolicy,
    DONE_STATUSES,
    PROJECT_TYPE_ALIASES,
    TIER_PLANNED,
    TIER_CONTINUOUS,
)
from capacity_engine.data.calendar import first_working_day, working_fractions
from capacity_engine.data.collaborators import as_collaborator
from capacity_engine.data.schema import (
    is_active_flag,
    month_bounds,
    normalise_id,
    normalise_table,
    to_day,
)

logger = logging.getLogger(__name__)

EPSILON = 1e-9

# Calendar slack past the latest task deadline, for hours pushed off a window
SPILLOVER_DAYS = 31

WORK_COLUMNS = [
    "task_id",
    "title",
    "project_id",
    "project_name",
    "tier",
    "estimated_hours",
    "logged_hours",
    "remaining_hours",
    "start",
    "end",
]


# =============================================================================
# TASK SELECTION
# =============================================================================

def is_open_status(status: Any) -> bool:
    """Tasks without a status are open; terminal statuses close them."""
    if status is None or (not isinstance(status, str) and pd.isna(status)):
        return True
    return str(status).strip().casefold() not in DONE_STATUSES


def collaborator_task_mask(tasks_df: pd.DataFrame, collaborator_id: str) -> pd.Series:
    """True where the collaborator is the primary or a secondary assignee."""
    primary = tasks_df["developer_id"] == collaborator_id
    secondary = tasks_df["collaborator_ids"].map(lambda ids: collaborator_id in ids)
    return (primary | secondary.astype(bool)).astype(bool)


def member_project_ids(project_members: Any,
                       collaborator_id: str,
                       window_start: Optional[pd.Timestamp] = None,
                       window_end: Optional[pd.Timestamp] = None) -> Optional[Set[str]]:
    """
    Projects the collaborator is a member of during the window.

    Returns None when no membership table was supplied (no filtering).
    """
    if project_members is None:
        return None
    members = normalise_table(project_members, "project_members")
    mine = members[members["collaborator_id"] == collaborator_id]
    if window_start is not None and window_end is not None:
        starts_ok = mine["start_date"].isna() | (mine["start_date"] <= window_end)
        ends_ok = mine["end_date"].isna() | (mine["end_date"] >= window_start)
        mine = mine[starts_ok & ends_ok]
    return set(mine["project_id"].dropna())


def _explicit_tier(value: Any) -> Optional[str]:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return None
    return PROJECT_TYPE_ALIASES.get(str(value).strip().lower())


def classify_projects(projects_df: pd.DataFrame, tasks_df: pd.DataFrame) -> pd.Series:
    """
    Tier per project id.

    An explicit project_type wins. Otherwise a project is planned when it has
    an estimated delivery or any of its tasks carries a delivery date, and
    continuous when neither does.
    """
    projects_df = projects_df.drop_duplicates(subset=["project_id"])
    explicit = projects_df["project_type"].map(_explicit_tier)

    dated = set(tasks_df.loc[tasks_df["estimated_delivery"].notna(), "project_id"].dropna())
    committed = projects_df["estimated_delivery"].notna() | projects_df["project_id"].isin(dated)
    inferred = pd.Series(
        np.where(committed, TIER_PLANNED, TIER_CONTINUOUS), index=projects_df.index
    )

    tiers = explicit.where(explicit.notna(), inferred)
    return pd.Series(tiers.values, index=projects_df["project_id"].values)


# =============================================================================
# REMAINING WORK
# =============================================================================

def logged_hours_by_task(timesheet_entries: Any,
                         collaborator_id: str,
                         until: Optional[pd.Timestamp] = None) -> pd.Series:
    """Hours the collaborator logged per task, optionally up to a day (inclusive)."""
    entries = normalise_table(timesheet_entries, "timesheets")
    mine = entries[(entries["collaborator_id"] == collaborator_id) & entries["task_id"].notna()]
    if until is not None:
        mine = mine[mine["date"] <= until]
    hours = mine["total_hours"].fillna(0.0).clip(lower=0.0)
    return hours.groupby(mine["task_id"]).sum()


def _assignee_counts(work: pd.DataFrame) -> List[int]:
    counts = []
    for developer_id, collaborator_ids in zip(work["developer_id"], work["collaborator_ids"]):
        people = {i for i in (developer_id,) + tuple(collaborator_ids) if i}
        counts.append(max(1, len(people)))
    return counts


def remaining_work(collaborator_id: Any,
                   tasks: Any,
                   projects: Any,
                   project_members: Any,
                   timesheet_entries: Any,
                   until: Optional[pd.Timestamp] = None,
                   window: Optional[Tuple[pd.Timestamp, pd.Timestamp]] = None,
                   policy: Optional[CapacityPolicy] = None) -> pd.DataFrame:
    """
    Open tasks assigned to a collaborator with their remaining hours and tier.

    Remaining hours are estimated hours minus the collaborator's logged hours
    on the task, never below zero. Tasks on inactive projects, or on projects
    the collaborator is not a member of during ``window``, are left out.
    """
    policy = policy or CapacityPolicy()
    collaborator_id = normalise_id(collaborator_id)
    tasks_df = normalise_table(tasks, "tasks")
    projects_df = normalise_table(projects, "projects").drop_duplicates(subset=["project_id"])

    mask = collaborator_task_mask(tasks_df, collaborator_id) & tasks_df["status"].map(is_open_status).astype(bool)
    work = tasks_df[mask & tasks_df["task_id"].notna()].drop_duplicates(subset=["task_id"])

    inactive = set(projects_df.loc[~projects_df["active"].map(is_active_flag).astype(bool), "project_id"])
    work = work[~work["project_id"].isin(inactive)]

    window_start, window_end = window if window else (None, None)
    allowed = member_project_ids(project_members, collaborator_id, window_start, window_end)
    if allowed is not None:
        work = work[work["project_id"].isin(allowed)]

    if len(work) == 0:
        return pd.DataFrame(columns=WORK_COLUMNS)
    work = work.copy()

    tiers = classify_projects(projects_df, tasks_df)
    own_tier = pd.Series(
        np.where(work["estimated_delivery"].notna(), TIER_PLANNED, TIER_CONTINUOUS), index=work.index
    )
    work["tier"] = work["project_id"].map(tiers)
    work["tier"] = work["tier"].where(work["tier"].notna(), own_tier)

    names = projects_df.set_index("project_id")["name"]
    work["project_name"] = work["project_id"].map(names).fillna(work["project_id"])
    work["title"] = work["title"].fillna(work["task_id"])

    if (work["estimated_hours"] < 0).any():
        logger.warning("Clamping negative estimates to zero for collaborator %s", collaborator_id)
    estimated = work["estimated_hours"].fillna(0.0).clip(lower=0.0)
    if policy.split_shared_estimates:
        estimated = estimated / pd.Series(_assignee_counts(work), index=work.index)

    logged = work["task_id"].map(logged_hours_by_task(timesheet_entries, collaborator_id, until)).fillna(0.0)

    work["estimated_hours"] = estimated
    work["logged_hours"] = logged.astype(float)
    work["remaining_hours"] = (estimated - work["logged_hours"]).clip(lower=0.0)
    work["start"] = work["scheduled_start"].fillna(work["actual_start"])
    work["end"] = work["estimated_delivery"]

    return work[WORK_COLUMNS].reset_index(drop=True)


# =============================================================================
# DAY SPREADING
# =============================================================================

def task_windows(work: pd.DataFrame,
                 fallback: pd.Timestamp,
                 floor: Optional[pd.Timestamp] = None) -> Tuple[pd.Series, pd.Series]:
    """
    Effective [start, end] per task.

    Missing starts use ``fallback``; starts before ``floor`` move up to it.
    Missing or earlier ends collapse onto the start day.
    """
    starts = pd.to_datetime(work["start"]).fillna(fallback)
    if floor is not None:
        starts = starts.where(starts >= floor, floor)
    ends = pd.to_datetime(work["end"]).fillna(starts)
    ends = ends.where(ends >= starts, starts)
    return starts, ends


def spread_task_hours(work: pd.DataFrame,
                      starts: pd.Series,
                      ends: pd.Series,
                      fractions: pd.Series) -> pd.DataFrame:
    """
    Spread each task's remaining hours evenly over the working days of its
    window, weighted by each day's working fraction.

    Returns a frame indexed like ``fractions`` with one column per task id.
    Hours with no working time in their window land on the first working day
    on or after the window start.
    """
    columns = {}
    for task_id, hours, start, end in zip(work["task_id"], work["remaining_hours"], starts, ends):
        daily = pd.Series(0.0, index=fractions.index)
        if hours > EPSILON:
            window = fractions.loc[start:end]
            total = window.sum()
            if total > EPSILON:
                daily.loc[window.index] = window / total * hours
            else:
                day = first_working_day(start, fractions)
                if day is None:
                    day = start
                logger.debug("Task %s has no working time in %s..%s, placing %.1fh on %s",
                             task_id, start.date(), end.date(), hours, day.date())
                daily.loc[day] += hours
        columns[task_id] = daily
    return pd.DataFrame(columns, index=fractions.index)


def reserve_hours(planned_daily: pd.Series,
                  capacity_daily: pd.Series,
                  has_continuous: bool,
                  reserve_share: float) -> pd.Series:
    """Continuous reserve per day: a share of capacity on days without planned hours."""
    if not has_continuous:
        return pd.Series(0.0, index=capacity_daily.index)
    return (capacity_daily * reserve_share).where(planned_daily <= EPSILON, 0.0)


def allocate_days(work: pd.DataFrame,
                  window_start: pd.Timestamp,
                  window_end: pd.Timestamp,
                  daily_hours: float,
                  policy: CapacityPolicy,
                  holidays: Any = None,
                  absences: Any = None,
                  collaborator_id: Any = None,
                  floor: Optional[pd.Timestamp] = None) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Day-level planned and continuous hours over [window_start, window_end].

    Returns:
        daily: indexed by day with working_fraction, capacity, planned_hours,
            continuous_hours
        planned_by_task: planned hours per day per task id
    """
    planned = work[work["tier"] == TIER_PLANNED]
    starts, ends = task_windows(planned, fallback=floor if floor is not None else window_start, floor=floor)

    cal_start = min([window_start] + list(starts))
    cal_end = max([window_end] + list(ends)) + pd.Timedelta(days=SPILLOVER_DAYS)
    fractions = working_fractions(cal_start, cal_end, holidays, absences, collaborator_id)

    planned_by_task = spread_task_hours(planned, starts, ends, fractions).loc[window_start:window_end]
    window_fractions = fractions.loc[window_start:window_end]
    capacity = window_fractions * daily_hours
    planned_daily = planned_by_task.sum(axis=1).astype(float)
    has_continuous = bool((work["tier"] == TIER_CONTINUOUS).any())
    continuous_daily = reserve_hours(planned_daily, capacity, has_continuous, policy.reserve_share)

    daily = pd.DataFrame({
        "working_fraction": window_fractions,
        "capacity": capacity,
        "planned_hours": planned_daily,
        "continuous_hours": continuous_daily,
    })
    return daily, planned_by_task


# =============================================================================
# MONTHLY AGGREGATION
# =============================================================================

@dataclass
class AllocationSummary:
    """Planned and continuous hours of a collaborator for one month."""
    planned_hours: float
    continuous_hours: float
    breakdown: Dict[str, List[Dict[str, Any]]]
    daily: pd.DataFrame = field(repr=False)
    work: pd.DataFrame = field(repr=False)


def _breakdown_items(rows: Iterable[Tuple[Any, Any, float]]) -> List[Dict[str, Any]]:
    """Sum hours per project into {id, name, hours} items, largest first."""
    totals: Dict[Any, Dict[str, Any]] = {}
    for project_id, name, hours in rows:
        if project_id not in totals:
            totals[project_id] = {"id": project_id, "name": name, "hours": 0.0}
        totals[project_id]["hours"] += float(hours)
    items = [item for item in totals.values() if item["hours"] > EPSILON]
    return sorted(items, key=lambda item: item["hours"], reverse=True)


def _planned_breakdown(work: pd.DataFrame, planned_by_task: pd.DataFrame) -> List[Dict[str, Any]]:
    planned = work[work["tier"] == TIER_PLANNED]
    hours = planned_by_task.sum(axis=0)
    return _breakdown_items(
        (row.project_id, row.project_name, hours.get(row.task_id, 0.0))
        for row in planned.itertuples(index=False)
    )


def _continuous_breakdown(work: pd.DataFrame, continuous_hours: float) -> List[Dict[str, Any]]:
    """Attribute the reserve to continuous sources in proportion to their remaining hours."""
    continuous = work[work["tier"] == TIER_CONTINUOUS]
    if len(continuous) == 0 or continuous_hours <= EPSILON:
        return []
    weights = continuous["remaining_hours"].astype(float)
    if weights.sum() <= EPSILON:
        weights = pd.Series(1.0, index=continuous.index)
    shares = weights / weights.sum() * continuous_hours
    return _breakdown_items(zip(continuous["project_id"], continuous["project_name"], shares))


def aggregate(collaborator: Any,
              month: str,
              tasks: Any,
              projects: Any,
              project_members: Any,
              timesheet_entries: Any,
              holidays: Any = None,
              absences: Any = None,
              today: Any = None,
              policy: Optional[CapacityPolicy] = None) -> AllocationSummary:
    """
    Split a collaborator's month into planned and continuous hours.

    Planned hours are the month's share of each planned task's remaining
    hours, spread over the task's working days. Continuous hours are the
    reserve share of capacity on days with no planned hours, and only when at
    least one continuous task is open.

    Args:
        collaborator: Collaborator, record or id
        month: 'YYYY-MM'
        today: optional day; remaining hours are not placed before it
    """
    policy = policy or CapacityPolicy()
    person = as_collaborator(collaborator, policy.default_daily_hours)
    month_start, month_end = month_bounds(month)

    work = remaining_work(
        person.collaborator_id, tasks, projects, project_members, timesheet_entries,
        until=month_end, window=(month_start, month_end), policy=policy,
    )
    daily, planned_by_task = allocate_days(
        work, month_start, month_end, person.daily_available_hours, policy,
        holidays=holidays, absences=absences,
        collaborator_id=person.collaborator_id, floor=to_day(today),
    )

    planned_hours = float(daily["planned_hours"].sum())
    continuous_hours = float(daily["continuous_hours"].sum())
    logger.debug("Collaborator %s %s: planned %.1fh, continuous %.1fh over %d open tasks",
                 person.collaborator_id, month, planned_hours, continuous_hours, len(work))

    return AllocationSummary(
        planned_hours=planned_hours,
        continuous_hours=continuous_hours,
        breakdown={
            "planned": _planned_breakdown(work, planned_by_task),
            "continuous": _continuous_breakdown(work, continuous_hours),
        },
        daily=daily,
        work=work,
    )
