"""
Schema validation, column alias mapping and type coercion for snapshot tables.
"""
import re

import pandas as pd
import numpy as np
from typing import Any, Dict, List, Optional, Tuple

from capacity_engine.config import REQUIRED_COLUMNS, OPTIONAL_COLUMNS, COLUMN_ALIASES


class SchemaValidationError(Exception):
    """Raised when required columns are missing."""
    pass


class InvalidDateRangeError(ValueError):
    """Raised when a range ends before it starts."""
    pass


MONTH_PATTERN = re.compile(r"^\d{4}-\d{2}$")
# A day, optionally followed by a time part
DAY_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}([T ].*)?$")

ID_COLUMNS = ["collaborator_id", "project_id", "task_id", "developer_id", "entry_id", "holiday_id", "absence_id"]
NUMERIC_COLUMNS = [
    "estimated_hours",
    "total_hours",
    "allocation_percentage",
    "daily_available_hours",
    "monthly_available_hours",
]
DATE_COLUMNS = [
    "date",
    "start_date",
    "end_date",
    "estimated_delivery",
    "scheduled_start",
    "actual_start",
    "actual_delivery",
]


def validate_required_columns(df: pd.DataFrame, table_name: str) -> Tuple[bool, List[str]]:
    """
    Validate that required columns exist in dataframe.
    Returns (is_valid, missing_columns).
    """
    if table_name not in REQUIRED_COLUMNS:
        return True, []

    required = REQUIRED_COLUMNS[table_name]
    missing = [col for col in required if col not in df.columns]

    return len(missing) == 0, missing


def check_optional_columns(df: pd.DataFrame, table_name: str) -> List[str]:
    """
    Check which optional columns are missing.
    Returns list of missing optional columns.
    """
    if table_name not in OPTIONAL_COLUMNS:
        return []

    optional = OPTIONAL_COLUMNS[table_name]
    missing = [col for col in optional if col not in df.columns]

    return missing


def validate_schema(df: pd.DataFrame, table_name: str, strict: bool = True) -> Dict:
    """
    Full schema validation.

    Args:
        df: DataFrame to validate
        table_name: Name of table for column requirements lookup
        strict: If True, raise error on missing required columns

    Returns:
        Dict with validation results
    """
    is_valid, missing_required = validate_required_columns(df, table_name)
    missing_optional = check_optional_columns(df, table_name)

    result = {
        "is_valid": is_valid,
        "missing_required": missing_required,
        "missing_optional": missing_optional,
        "total_columns": len(df.columns),
        "total_rows": len(df),
    }

    if strict and not is_valid:
        raise SchemaValidationError(
            f"Missing required columns in {table_name}: {missing_required}"
        )

    return result


def apply_column_aliases(df: pd.DataFrame, table_name: str) -> pd.DataFrame:
    """Rename upstream field names to canonical columns, keeping existing canonical ones."""
    aliases = COLUMN_ALIASES.get(table_name, {})
    renames = {
        src: dst for src, dst in aliases.items()
        if src in df.columns and dst not in df.columns
    }
    return df.rename(columns=renames)


def normalise_id(value: Any) -> Optional[str]:
    """Canonical string form of an identifier (12, 12.0 and '12' compare equal)."""
    if value is None:
        return None
    if not isinstance(value, str) and pd.api.types.is_scalar(value) and pd.isna(value):
        return None
    if isinstance(value, (float, np.floating)) and float(value).is_integer():
        return str(int(value))
    text = str(value).strip()
    if not text or text.lower() in ("nan", "none"):
        return None
    return text


def normalise_id_list(value: Any) -> Tuple[str, ...]:
    """Secondary assignees as a tuple of ids; accepts lists or comma separated text."""
    if value is None:
        return ()
    if isinstance(value, str):
        items = value.strip("[]").replace("'", "").replace('"', "").split(",")
    elif isinstance(value, (list, tuple, set, np.ndarray, pd.Series)):
        items = list(value)
    elif pd.isna(value):
        return ()
    else:
        items = [value]
    ids = (normalise_id(item) for item in items)
    return tuple(i for i in ids if i)


def ensure_column_types(df: pd.DataFrame) -> pd.DataFrame:
    """Ensure consistent column types."""
    df = df.copy()

    for col in ID_COLUMNS:
        if col in df.columns:
            df[col] = df[col].map(normalise_id).astype(object)

    if "collaborator_ids" in df.columns:
        df["collaborator_ids"] = df["collaborator_ids"].map(normalise_id_list).astype(object)

    for col in NUMERIC_COLUMNS:
        if col in df.columns:
            df[col] = pd.to_numeric(df[col], errors="coerce").astype(float)

    for col in DATE_COLUMNS:
        if col in df.columns:
            df[col] = pd.to_datetime(df[col], errors="coerce").dt.normalize()

    return df


def empty_table(table_name: str) -> pd.DataFrame:
    """Zero-row frame carrying every canonical column of a table."""
    columns = REQUIRED_COLUMNS.get(table_name, []) + OPTIONAL_COLUMNS.get(table_name, [])
    return ensure_column_types(pd.DataFrame(columns=columns))


def normalise_table(data: Any, table_name: str) -> pd.DataFrame:
    """
    Turn a DataFrame, an iterable of mappings or None into a canonical table.

    Alias columns are renamed, required columns validated (strict), missing
    optional columns added as nulls and types coerced. Malformed values become
    nulls rather than errors.
    """
    if data is None:
        return empty_table(table_name)
    if isinstance(data, pd.DataFrame):
        df = data.copy()
    else:
        df = pd.DataFrame(list(data))
    if len(df) == 0:
        return empty_table(table_name)

    df = apply_column_aliases(df, table_name)
    validate_schema(df, table_name, strict=True)

    for col in OPTIONAL_COLUMNS.get(table_name, []):
        if col not in df.columns:
            df[col] = None

    return ensure_column_types(df).reset_index(drop=True)


def to_day(value: Any) -> Optional[pd.Timestamp]:
    """Parse a calendar day ('YYYY-MM-DD', date or Timestamp); None when missing."""
    if value is None:
        return None
    if isinstance(value, str):
        text = value.strip()
        if not DAY_PATTERN.match(text):
            return None
        ts = pd.to_datetime(text[:10], format="%Y-%m-%d", errors="coerce")
    else:
        ts = pd.to_datetime(value, errors="coerce")
    if pd.isna(ts):
        return None
    return pd.Timestamp(ts).normalize()


def require_day(value: Any, label: str = "date") -> pd.Timestamp:
    """Like to_day, but a missing or malformed value is an error."""
    day = to_day(value)
    if day is None:
        raise ValueError(f"Invalid {label}: {value!r}")
    return day


def validate_range(start: Any, end: Any) -> Tuple[pd.Timestamp, pd.Timestamp]:
    """Parse an inclusive day range, rejecting an end earlier than the start."""
    start_day = require_day(start, "start date")
    end_day = require_day(end, "end date")
    if end_day < start_day:
        raise InvalidDateRangeError(
            f"End date {end_day.date()} is earlier than start date {start_day.date()}"
        )
    return start_day, end_day


def find_reversed_ranges(df: pd.DataFrame, start_col: str, end_col: str = "end_date") -> pd.DataFrame:
    """Rows whose end day is earlier than their start day, regardless of status."""
    if start_col not in df.columns or end_col not in df.columns:
        return df.iloc[0:0]
    start = pd.to_datetime(df[start_col], errors="coerce")
    end = pd.to_datetime(df[end_col], errors="coerce")
    return df[end.notna() & start.notna() & (end < start)]


def month_bounds(month: Any) -> Tuple[pd.Timestamp, pd.Timestamp]:
    """First and last day of a 'YYYY-MM' month."""
    if isinstance(month, pd.Period):
        period = month.asfreq("M")
        return period.start_time.normalize(), period.end_time.normalize()
    text = str(month).strip()
    if not MONTH_PATTERN.match(text):
        raise ValueError(f"Invalid month {month!r}, expected YYYY-MM")
    try:
        period = pd.Period(text, freq="M")
    except (ValueError, TypeError) as exc:
        raise ValueError(f"Invalid month {month!r}, expected YYYY-MM") from exc
    return period.start_time.normalize(), period.end_time.normalize()


def is_active_flag(value: Any) -> bool:
    """Only an explicit false-like value deactivates a record."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip().lower() not in ("false", "0", "no", "n", "inativo")
    if pd.api.types.is_scalar(value) and pd.isna(value):
        return True
    return bool(value)


def to_float(value: Any) -> float:
    """Float or NaN for anything unparseable."""
    try:
        return float(value)
    except (TypeError, ValueError):
        return np.nan
