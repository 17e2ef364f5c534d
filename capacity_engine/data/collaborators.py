"""
Collaborator value type and capacity fallback.
"""
import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional

import numpy as np
import pandas as pd

from capacity_engine.config import config
from capacity_engine.data.schema import apply_column_aliases, is_active_flag, normalise_id, to_float

logger = logging.getLogger(__name__)


def resolve_daily_hours(value: Any, fallback: Optional[float] = None) -> float:
    """Daily capacity in hours; missing, malformed or non-positive values fall back."""
    if fallback is None:
        fallback = config.default_daily_hours
    try:
        hours = float(value)
    except (TypeError, ValueError):
        logger.debug("Unusable daily capacity %r, using %.1fh", value, fallback)
        return float(fallback)
    if np.isnan(hours) or hours <= 0:
        logger.debug("Unusable daily capacity %r, using %.1fh", value, fallback)
        return float(fallback)
    return hours


@dataclass(frozen=True)
class Collaborator:
    """Read-only capacity profile of a collaborator."""
    collaborator_id: str
    name: str = ""
    daily_available_hours: float = 8.0
    monthly_available_hours: Optional[float] = None
    active: bool = True

    @classmethod
    def from_record(cls, record: Mapping[str, Any], fallback_hours: Optional[float] = None) -> "Collaborator":
        """Build from a mapping or Series using canonical or upstream field names."""
        row = apply_column_aliases(pd.DataFrame([dict(record)]), "collaborators").iloc[0]
        collaborator_id = normalise_id(row.get("collaborator_id"))
        if collaborator_id is None:
            raise ValueError("Collaborator record has no identifier")

        monthly = to_float(row.get("monthly_available_hours"))
        name = row.get("name")
        return cls(
            collaborator_id=collaborator_id,
            name="" if name is None or pd.isna(name) else str(name),
            daily_available_hours=resolve_daily_hours(row.get("daily_available_hours"), fallback_hours),
            monthly_available_hours=None if np.isnan(monthly) else monthly,
            active=is_active_flag(row.get("active")),
        )


def as_collaborator(value: Any, fallback_hours: Optional[float] = None) -> Collaborator:
    """Accept a Collaborator, a record or a bare id."""
    if isinstance(value, Collaborator):
        return value
    if isinstance(value, (Mapping, pd.Series)):
        return Collaborator.from_record(value, fallback_hours)
    collaborator_id = normalise_id(value)
    if collaborator_id is None:
        raise ValueError(f"Invalid collaborator: {value!r}")
    return Collaborator(
        collaborator_id=collaborator_id,
        daily_available_hours=resolve_daily_hours(None, fallback_hours),
    )


def collaborators_from_table(data: Any, fallback_hours: Optional[float] = None) -> List[Collaborator]:
    """Collaborators from a DataFrame or iterable of records."""
    if data is None:
        return []
    if isinstance(data, pd.DataFrame):
        records: Iterable = data.to_dict("records")
    else:
        records = data
    return [as_collaborator(record, fallback_hours) for record in records]
