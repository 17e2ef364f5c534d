"""
Tests for snapshot loading.
"""
import pytest
import pandas as pd
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from capacity_engine.data.loader import get_data_status, load_snapshot, load_table
from capacity_engine.data.schema import SchemaValidationError


def _write_snapshot(directory: Path, include_tasks: bool = True):
    pd.DataFrame({
        "ID_Colaborador": ["007", "8"],
        "NomeColaborador": ["Ana", "Bruno"],
        "daily_available_hours": ["8", ""],
    }).to_csv(directory / "collaborators.csv", index=False)
    pd.DataFrame({
        "project_id": ["p1"],
        "name": ["Portal"],
        "estimated_delivery": ["2025-10-31"],
    }).to_csv(directory / "projects.csv", index=False)
    if include_tasks:
        pd.DataFrame({
            "id": ["t1"],
            "projectId": ["p1"],
            "developerId": ["007"],
            "estimatedHours": ["40"],
            "scheduledStart": ["2025-09-08"],
            "estimatedDelivery": ["2025-09-12"],
        }).to_csv(directory / "tasks.csv", index=False)


class TestLoadSnapshot:
    """Tests for loading a snapshot directory."""

    def test_loads_and_normalises(self, tmp_path):
        """CSV tables are aliased and typed; ids keep leading zeros."""
        _write_snapshot(tmp_path)

        snapshot = load_snapshot(tmp_path)

        assert snapshot.collaborators["collaborator_id"].tolist() == ["007", "8"]
        assert snapshot.tasks.loc[0, "estimated_hours"] == 40
        assert snapshot.tasks.loc[0, "estimated_delivery"] == pd.Timestamp("2025-09-12")
        assert snapshot.row_counts()["tasks"] == 1

    def test_optional_tables_empty(self, tmp_path):
        """Missing optional tables load as empty canonical tables."""
        _write_snapshot(tmp_path)

        snapshot = load_snapshot(tmp_path)

        assert len(snapshot.holidays) == 0
        assert "date" in snapshot.holidays.columns
        assert len(snapshot.absences) == 0

    def test_missing_required_table(self, tmp_path):
        """Collaborators, projects and tasks must exist."""
        _write_snapshot(tmp_path, include_tasks=False)

        with pytest.raises(FileNotFoundError):
            load_snapshot(tmp_path)

    def test_missing_required_column(self, tmp_path):
        """A table without its required columns is rejected."""
        pd.DataFrame({"name": ["Feriado"]}).to_csv(tmp_path / "holidays.csv", index=False)

        with pytest.raises(SchemaValidationError):
            load_table("holidays", tmp_path)

    def test_unknown_table(self, tmp_path):
        """Only known tables can be loaded."""
        with pytest.raises(KeyError):
            load_table("invoices", tmp_path)


class TestDataStatus:
    """Tests for file status reporting."""

    def test_status(self, tmp_path):
        """Existing files are reported per format."""
        _write_snapshot(tmp_path)

        status = get_data_status(tmp_path)

        assert status["tasks"]["csv_exists"] is True
        assert status["tasks"]["parquet_exists"] is False
        assert status["holidays"]["csv_exists"] is False
