"""
Tests for remaining work, tiers and monthly aggregation.
"""
import pytest
import pandas as pd
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from capacity_engine.config import CapacityPolicy, TIER_PLANNED, TIER_CONTINUOUS
from capacity_engine.data.collaborators import Collaborator
from capacity_engine.metrics.allocation import (
    aggregate,
    classify_projects,
    is_open_status,
    logged_hours_by_task,
    remaining_work,
)
from capacity_engine.data.schema import normalise_table


def _make_projects():
    return [
        {"id": "p1", "name": "Projeto A", "estimatedDelivery": "2025-10-31"},
        {"id": "p2", "name": "Sustentação", "estimatedDelivery": None},
    ]


def _make_task(task_id, project_id="p1", developer_id="1", hours=40.0,
               start="2025-09-08", end="2025-09-12", status="In Progress", **extra):
    return {
        "id": task_id,
        "projectId": project_id,
        "title": f"Task {task_id}",
        "developerId": developer_id,
        "collaboratorIds": extra.pop("collaborator_ids", []),
        "estimatedHours": hours,
        "scheduledStart": start,
        "estimatedDelivery": end,
        "status": status,
        **extra,
    }


def _make_entry(task_id, hours, date="2025-09-05", collaborator_id="1"):
    return {"userId": collaborator_id, "taskId": task_id, "date": date, "totalHours": hours}


def _aggregate(tasks, timesheets=None, members=None, projects=None, **kwargs):
    return aggregate(
        Collaborator("1", daily_available_hours=8.0),
        "2025-09",
        tasks,
        projects if projects is not None else _make_projects(),
        members,
        timesheets or [],
        **kwargs,
    )


class TestTaskSelection:
    """Tests for which tasks count towards a collaborator."""

    def test_open_status(self):
        """Done-like statuses close a task; anything else is open."""
        assert is_open_status("Done") is False
        assert is_open_status("concluído") is False
        assert is_open_status("In Progress") is True
        assert is_open_status(None) is True

    def test_done_tasks_excluded(self):
        """Terminal tasks contribute nothing."""
        work = remaining_work("1", [_make_task("t1", status="Done")], _make_projects(), None, [])

        assert len(work) == 0

    def test_secondary_assignee_included(self):
        """Secondary collaborators carry the task too."""
        tasks = [_make_task("t1", developer_id="2", collaborator_ids=["1"])]

        work = remaining_work("1", tasks, _make_projects(), None, [])

        assert work["task_id"].tolist() == ["t1"]

    def test_other_collaborators_tasks_excluded(self):
        """Tasks assigned elsewhere are ignored."""
        work = remaining_work("1", [_make_task("t1", developer_id="2")], _make_projects(), None, [])

        assert len(work) == 0

    def test_membership_filters_projects(self):
        """Only projects the collaborator belongs to count."""
        tasks = [_make_task("t1"), _make_task("t2", project_id="p2", end=None)]
        members = [{"id_projeto": "p1", "id_colaborador": "1"}]

        work = remaining_work("1", tasks, _make_projects(), members, [])

        assert work["task_id"].tolist() == ["t1"]

    def test_expired_membership_excluded(self):
        """A membership that ended before the window does not count."""
        members = [{"project_id": "p1", "collaborator_id": "1", "end_date": "2025-08-31"}]
        window = (pd.Timestamp("2025-09-01"), pd.Timestamp("2025-09-30"))

        work = remaining_work("1", [_make_task("t1")], _make_projects(), members, [], window=window)

        assert len(work) == 0

    def test_empty_membership_filters_everything(self):
        """An explicit empty membership table leaves no work."""
        members = pd.DataFrame(columns=["project_id", "collaborator_id"])

        work = remaining_work("1", [_make_task("t1")], _make_projects(), members, [])

        assert len(work) == 0

    def test_inactive_project_excluded(self):
        """Tasks on inactive projects are ignored."""
        projects = [{"id": "p1", "name": "A", "estimatedDelivery": "2025-10-31", "active": False}]

        work = remaining_work("1", [_make_task("t1")], projects, None, [])

        assert len(work) == 0


class TestRemainingHours:
    """Tests for remaining-hour arithmetic."""

    def test_logged_hours_subtracted(self):
        """Remaining is estimate minus the collaborator's logged hours."""
        timesheets = [_make_entry("t1", 10), _make_entry("t1", 5), _make_entry("t1", 7, collaborator_id="2")]

        work = remaining_work("1", [_make_task("t1")], _make_projects(), None, timesheets)

        assert work.loc[0, "logged_hours"] == 15
        assert work.loc[0, "remaining_hours"] == 25

    def test_remaining_never_negative(self):
        """Overrun tasks have zero remaining hours."""
        work = remaining_work("1", [_make_task("t1", hours=10)], _make_projects(), None, [_make_entry("t1", 12)])

        assert work.loc[0, "remaining_hours"] == 0

    def test_negative_and_missing_estimates_clamped(self):
        """Bad estimates count as zero."""
        tasks = [_make_task("t1", hours=-5), _make_task("t2", hours=None), _make_task("t3", hours="abc")]

        work = remaining_work("1", tasks, _make_projects(), None, [])

        assert work["remaining_hours"].tolist() == [0.0, 0.0, 0.0]

    def test_logged_until_cutoff(self):
        """Entries after the cutoff are not yet logged."""
        timesheets = [_make_entry("t1", 4, date="2025-09-05"), _make_entry("t1", 6, date="2025-10-02")]

        logged = logged_hours_by_task(timesheets, "1", until=pd.Timestamp("2025-09-30"))

        assert logged["t1"] == 4

    def test_split_shared_estimates(self):
        """The split policy divides estimates across assignees."""
        tasks = [_make_task("t1", collaborator_ids=["2"])]
        policy = CapacityPolicy(split_shared_estimates=True)

        work = remaining_work("1", tasks, _make_projects(), None, [], policy=policy)

        assert work.loc[0, "remaining_hours"] == 20


class TestClassifyProjects:
    """Tests for planned vs continuous tiers."""

    def test_delivery_date_means_planned(self):
        """Projects with a delivery date are planned, the rest continuous."""
        projects = normalise_table(_make_projects(), "projects")
        tasks = normalise_table([], "tasks")

        tiers = classify_projects(projects, tasks)

        assert tiers["p1"] == TIER_PLANNED
        assert tiers["p2"] == TIER_CONTINUOUS

    def test_explicit_type_wins(self):
        """An explicit project type overrides the inference."""
        projects = normalise_table(
            [{"id": "p1", "estimatedDelivery": "2025-10-31", "projectType": "Contínuo"}], "projects"
        )

        tiers = classify_projects(projects, normalise_table([], "tasks"))

        assert tiers["p1"] == TIER_CONTINUOUS

    def test_dated_tasks_make_project_planned(self):
        """A project without dates is planned when its tasks carry deliveries."""
        projects = normalise_table([{"id": "p3"}], "projects")
        tasks = normalise_table([_make_task("t1", project_id="p3")], "tasks")

        tiers = classify_projects(projects, tasks)

        assert tiers["p3"] == TIER_PLANNED


class TestAggregate:
    """Tests for monthly aggregation."""

    def test_no_tasks(self):
        """Zero tasks yields zero in both tiers."""
        result = _aggregate([])

        assert result.planned_hours == 0
        assert result.continuous_hours == 0
        assert result.breakdown == {"planned": [], "continuous": []}

    def test_planned_task_inside_month(self):
        """A task inside the month contributes all remaining hours."""
        result = _aggregate([_make_task("t1")])

        assert result.planned_hours == pytest.approx(40)
        assert result.breakdown["planned"] == [{"id": "p1", "name": "Projeto A", "hours": pytest.approx(40)}]

    def test_planned_task_spanning_months(self):
        """Only the month's working days of a task count."""
        # Mon 29 Sep to Fri 3 Oct: two of five working days in September
        result = _aggregate([_make_task("t1", start="2025-09-29", end="2025-10-03")])

        assert result.planned_hours == pytest.approx(16)

    def test_continuous_reserve_without_planned(self):
        """With only continuous work, the reserve is half the capacity."""
        result = _aggregate([_make_task("t2", project_id="p2", hours=20, start=None, end=None)])

        assert result.planned_hours == 0
        assert result.continuous_hours == pytest.approx(0.5 * 8 * 22)
        assert result.breakdown["continuous"][0]["id"] == "p2"

    def test_planned_preempts_continuous(self):
        """Days with planned hours carry no continuous reserve."""
        tasks = [_make_task("t1"), _make_task("t2", project_id="p2", hours=20, start=None, end=None)]

        result = _aggregate(tasks)

        assert result.planned_hours == pytest.approx(40)
        assert result.continuous_hours == pytest.approx(4 * 17)

    def test_absence_removes_reserve_days(self):
        """Absent days carry no reserve."""
        tasks = [_make_task("t2", project_id="p2", hours=20, start=None, end=None)]
        absences = [{"collaborator_id": "1", "start_date": "2025-09-15", "end_date": "2025-09-19", "status": "aprovada_gestao"}]

        result = _aggregate(tasks, absences=absences)

        assert result.continuous_hours == pytest.approx(4 * 17)

    def test_today_floor_moves_hours_forward(self):
        """Remaining hours are not placed before today."""
        result = _aggregate([_make_task("t1")], today="2025-09-10")

        assert result.planned_hours == pytest.approx(40)
        assert result.daily.loc[pd.Timestamp("2025-09-08"), "planned_hours"] == 0
        assert result.daily.loc[pd.Timestamp("2025-09-10"), "planned_hours"] == pytest.approx(40 / 3)

    def test_weekend_only_window_moves_to_monday(self):
        """Hours with no working day in their window land on the next one."""
        result = _aggregate([_make_task("t1", hours=6, start="2025-09-06", end="2025-09-07")])

        assert result.daily.loc[pd.Timestamp("2025-09-08"), "planned_hours"] == pytest.approx(6)

    def test_idempotent(self):
        """Identical inputs give identical outputs."""
        tasks = [_make_task("t1"), _make_task("t2", project_id="p2", hours=20, start=None, end=None)]

        first = _aggregate(tasks)
        second = _aggregate(tasks)

        assert first.planned_hours == second.planned_hours
        assert first.continuous_hours == second.continuous_hours
        assert first.breakdown == second.breakdown
