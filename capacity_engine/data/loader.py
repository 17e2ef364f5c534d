"""
Snapshot loading utilities.
"""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import pandas as pd

from capacity_engine.config import config, TABLE_FILES
from capacity_engine.data.schema import empty_table, normalise_table

logger = logging.getLogger(__name__)


def _load_file(filepath: Path) -> Optional[pd.DataFrame]:
    """Load a single file (parquet or csv)."""
    parquet_path = filepath.with_suffix(".parquet")
    csv_path = filepath.with_suffix(".csv")

    if parquet_path.exists():
        df = pd.read_parquet(parquet_path)
    elif csv_path.exists():
        # ids stay as text; a numeric parse would turn "007" into 7
        df = pd.read_csv(csv_path, dtype=str, keep_default_na=True)
    else:
        return None

    return df


def load_table(table_name: str,
               snapshot_dir: Optional[Path] = None,
               required: bool = False) -> pd.DataFrame:
    """
    Load and normalise one snapshot table.

    A missing file yields an empty canonical table, or FileNotFoundError when
    ``required`` is set.
    """
    if table_name not in TABLE_FILES:
        raise KeyError(f"Unknown table: {table_name}")

    snapshot_dir = Path(snapshot_dir) if snapshot_dir is not None else config.snapshot_dir
    df = _load_file(snapshot_dir / TABLE_FILES[table_name])
    if df is None:
        if required:
            raise FileNotFoundError(f"Could not find {TABLE_FILES[table_name]} in {snapshot_dir}")
        logger.debug("No %s table in %s, using an empty one", table_name, snapshot_dir)
        return empty_table(table_name)

    return normalise_table(df, table_name)


@dataclass
class Snapshot:
    """Read-only copy of every input table for one engine run."""
    collaborators: pd.DataFrame = field(default_factory=lambda: empty_table("collaborators"))
    projects: pd.DataFrame = field(default_factory=lambda: empty_table("projects"))
    project_members: pd.DataFrame = field(default_factory=lambda: empty_table("project_members"))
    tasks: pd.DataFrame = field(default_factory=lambda: empty_table("tasks"))
    timesheets: pd.DataFrame = field(default_factory=lambda: empty_table("timesheets"))
    holidays: pd.DataFrame = field(default_factory=lambda: empty_table("holidays"))
    absences: pd.DataFrame = field(default_factory=lambda: empty_table("absences"))

    def row_counts(self) -> Dict[str, int]:
        return {name: len(getattr(self, name)) for name in TABLE_FILES}


def load_snapshot(snapshot_dir: Optional[Path] = None) -> Snapshot:
    """Load all snapshot tables. Collaborators, projects and tasks must exist."""
    required = {"collaborators", "projects", "tasks"}
    tables = {
        name: load_table(name, snapshot_dir, required=name in required)
        for name in TABLE_FILES
    }
    snapshot = Snapshot(**tables)
    logger.info("Loaded snapshot: %s", snapshot.row_counts())
    return snapshot


def get_data_status(snapshot_dir: Optional[Path] = None) -> Dict[str, Any]:
    """Get status of all snapshot files."""
    snapshot_dir = Path(snapshot_dir) if snapshot_dir is not None else config.snapshot_dir
    status = {}

    for key, filename in TABLE_FILES.items():
        parquet_path = snapshot_dir / f"{filename}.parquet"
        csv_path = snapshot_dir / f"{filename}.csv"
        status[key] = {
            "parquet_exists": parquet_path.exists(),
            "csv_exists": csv_path.exists(),
        }

    return status
