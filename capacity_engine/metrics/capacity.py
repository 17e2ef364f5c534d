"""
Capacity metrics pack.

Single source of truth for: monthly target hours, occupancy, balance, status.
"""
import logging
from dataclasses import dataclass
from typing import Any, Optional

from capacity_engine.config import (
    CapacityPolicy,
    STATUS_NORMAL,
    STATUS_HIGH,
    STATUS_OVERLOADED,
)
from capacity_engine.data.calendar import working_fractions
from capacity_engine.data.collaborators import as_collaborator
from capacity_engine.data.schema import month_bounds

logger = logging.getLogger(__name__)


@dataclass
class CapacitySummary:
    """Occupancy of a collaborator against the month's target hours."""
    target_hours: float
    occupancy_rate: float
    balance: float
    status: str


def compute_target_hours(collaborator: Any,
                         month: str,
                         holidays: Any = None,
                         absences: Any = None,
                         policy: Optional[CapacityPolicy] = None) -> float:
    """
    Hours the collaborator can work in a month.

    Daily capacity times the month's working days, where holidays and the
    collaborator's approved absences take away the share of each day they
    cover.
    """
    policy = policy or CapacityPolicy()
    person = as_collaborator(collaborator, policy.default_daily_hours)
    month_start, month_end = month_bounds(month)
    fractions = working_fractions(month_start, month_end, holidays, absences, person.collaborator_id)
    return float(person.daily_available_hours * fractions.sum())


def compute_occupancy(planned_hours: float, continuous_hours: float, target_hours: float) -> float:
    """Committed hours as a percentage of target; 0 when there is no target."""
    if target_hours <= 0:
        return 0.0
    return float((planned_hours + continuous_hours) / target_hours * 100)


def classify_occupancy(occupancy_rate: float, policy: Optional[CapacityPolicy] = None) -> str:
    """Normal below the comfortable threshold, Alto up to the high threshold, Sobrecarregado above."""
    policy = policy or CapacityPolicy()
    if occupancy_rate < policy.comfortable_threshold:
        return STATUS_NORMAL
    if occupancy_rate <= policy.high_threshold:
        return STATUS_HIGH
    return STATUS_OVERLOADED


def calculate(planned_hours: float,
              continuous_hours: float,
              collaborator: Any,
              month: str,
              holidays: Any = None,
              absences: Any = None,
              policy: Optional[CapacityPolicy] = None) -> CapacitySummary:
    """
    Occupancy, balance and status for a month.

    Balance is what remains of the target after planned and continuous hours,
    floored at zero.
    """
    policy = policy or CapacityPolicy()
    planned_hours = max(0.0, float(planned_hours))
    continuous_hours = max(0.0, float(continuous_hours))

    target = compute_target_hours(collaborator, month, holidays, absences, policy)
    occupancy = compute_occupancy(planned_hours, continuous_hours, target)
    balance = max(0.0, target - planned_hours - continuous_hours)
    status = classify_occupancy(occupancy, policy)

    if target <= 0:
        logger.debug("No working time in %s; occupancy reported as 0", month)

    return CapacitySummary(
        target_hours=target,
        occupancy_rate=occupancy,
        balance=balance,
        status=status,
    )
