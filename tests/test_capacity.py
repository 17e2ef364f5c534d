"""
Tests for capacity metrics and collaborator capacity fallback.
"""
import pytest
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from capacity_engine.config import (
    CapacityPolicy,
    STATUS_NORMAL,
    STATUS_HIGH,
    STATUS_OVERLOADED,
)
from capacity_engine.data.collaborators import Collaborator, as_collaborator, resolve_daily_hours
from capacity_engine.metrics.capacity import (
    calculate,
    classify_occupancy,
    compute_occupancy,
    compute_target_hours,
)


def _make_collaborator(hours=8.0):
    return Collaborator("1", name="Ana", daily_available_hours=hours)


def _make_absence(start, end, status="aprovada_rh"):
    return {"collaborator_id": "1", "start_date": start, "end_date": end, "status": status}


class TestTargetHours:
    """Tests for monthly target hours."""

    def test_full_month(self):
        """22 working days at 8 hours."""
        assert compute_target_hours(_make_collaborator(), "2025-09") == pytest.approx(176)

    def test_part_time(self):
        """Daily capacity scales the target."""
        assert compute_target_hours(_make_collaborator(6), "2025-09") == pytest.approx(132)

    def test_holiday_reduces_target(self):
        """A weekday holiday removes a day."""
        holidays = [{"date": "2025-09-08"}]

        assert compute_target_hours(_make_collaborator(), "2025-09", holidays) == pytest.approx(168)

    def test_approved_absence_reduces_target(self):
        """A week of approved absence removes five days."""
        absences = [_make_absence("2025-09-15", "2025-09-19")]

        assert compute_target_hours(_make_collaborator(), "2025-09", absences=absences) == pytest.approx(136)

    def test_suggested_absence_keeps_target(self):
        """Absences pending approval do not count."""
        absences = [_make_absence("2025-09-15", "2025-09-19", status="sugestao")]

        assert compute_target_hours(_make_collaborator(), "2025-09", absences=absences) == pytest.approx(176)


class TestOccupancy:
    """Tests for occupancy and status tiers."""

    def test_zero_target(self):
        """No target means zero occupancy."""
        assert compute_occupancy(10, 5, 0) == 0

    def test_status_tiers(self):
        """Default thresholds split Normal, Alto and Sobrecarregado."""
        policy = CapacityPolicy(comfortable_threshold=80, high_threshold=100)

        assert classify_occupancy(0, policy) == STATUS_NORMAL
        assert classify_occupancy(79.9, policy) == STATUS_NORMAL
        assert classify_occupancy(80, policy) == STATUS_HIGH
        assert classify_occupancy(100, policy) == STATUS_HIGH
        assert classify_occupancy(100.1, policy) == STATUS_OVERLOADED

    def test_custom_thresholds(self):
        """Thresholds are policy, not constants."""
        policy = CapacityPolicy(comfortable_threshold=50, high_threshold=70)

        assert classify_occupancy(60, policy) == STATUS_HIGH
        assert classify_occupancy(75, policy) == STATUS_OVERLOADED

    def test_invalid_policy(self):
        """Inverted thresholds and out-of-range reserves are rejected."""
        with pytest.raises(ValueError):
            CapacityPolicy(comfortable_threshold=90, high_threshold=80)
        with pytest.raises(ValueError):
            CapacityPolicy(reserve_share=1.5)


class TestCalculate:
    """Tests for the capacity calculator."""

    def test_idle_month(self):
        """No work is Normal with the whole target free."""
        result = calculate(0, 0, _make_collaborator(), "2025-09")

        assert result.occupancy_rate == 0
        assert result.balance == pytest.approx(176)
        assert result.status == STATUS_NORMAL

    def test_half_reserve(self):
        """The default reserve alone is half occupancy."""
        result = calculate(0, 88, _make_collaborator(), "2025-09")

        assert result.occupancy_rate == pytest.approx(50)
        assert result.balance == pytest.approx(88)

    def test_full_month(self):
        """Exactly full is Alto with no balance."""
        result = calculate(176, 0, _make_collaborator(), "2025-09")

        assert result.occupancy_rate == pytest.approx(100)
        assert result.balance == 0
        assert result.status == STATUS_HIGH

    def test_overloaded(self):
        """Balance never goes negative."""
        result = calculate(200, 10, _make_collaborator(), "2025-09")

        assert result.occupancy_rate == pytest.approx(210 / 176 * 100)
        assert result.balance == 0
        assert result.status == STATUS_OVERLOADED

    def test_idempotent(self):
        """Identical inputs give the same summary."""
        absences = [_make_absence("2025-09-08", "2025-09-10")]

        first = calculate(120, 30, _make_collaborator(), "2025-09", absences=absences)
        second = calculate(120, 30, _make_collaborator(), "2025-09", absences=absences)

        assert first == second

    def test_malformed_month(self):
        """Only YYYY-MM months are accepted."""
        with pytest.raises(ValueError):
            calculate(0, 0, _make_collaborator(), "Sep")

    def test_absent_whole_month(self):
        """A month fully absent has no target and zero occupancy."""
        absences = [_make_absence("2025-09-01", "2025-09-30")]

        result = calculate(10, 0, _make_collaborator(), "2025-09", absences=absences)

        assert result.target_hours == 0
        assert result.occupancy_rate == 0
        assert result.balance == 0


class TestCollaboratorCapacity:
    """Tests for daily capacity fallback."""

    def test_fallback_values(self):
        """Missing, malformed and non-positive capacity fall back to 8 hours."""
        assert resolve_daily_hours(None, 8) == 8
        assert resolve_daily_hours("abc", 8) == 8
        assert resolve_daily_hours(-3, 8) == 8
        assert resolve_daily_hours(float("nan"), 8) == 8
        assert resolve_daily_hours(6, 8) == 6

    def test_record_aliases(self):
        """Upstream records map onto the value type."""
        person = as_collaborator({"id": 7.0, "NomeColaborador": "Bia", "dailyAvailableHours": "6"}, 8)

        assert person.collaborator_id == "7"
        assert person.name == "Bia"
        assert person.daily_available_hours == 6

    def test_bare_id(self):
        """A bare id gets the fallback capacity."""
        person = as_collaborator(3, 8)

        assert person.collaborator_id == "3"
        assert person.daily_available_hours == 8

    def test_missing_id_raises(self):
        """Records without an id are rejected."""
        with pytest.raises(ValueError):
            as_collaborator({"name": "Sem id"})
