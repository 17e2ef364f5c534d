#!/usr/bin/env python
"""
Validate snapshot tables against schema requirements.

Usage:
    python scripts/validate_inputs.py
    python scripts/validate_inputs.py --data-dir /path/to/data
"""
import argparse
import sys
from pathlib import Path

# Add repo root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from capacity_engine.config import config, TABLE_FILES
from capacity_engine.data.loader import _load_file
from capacity_engine.data.schema import (
    SchemaValidationError,
    apply_column_aliases,
    find_reversed_ranges,
    normalise_table,
    validate_schema,
)

REQUIRED_TABLES = ["collaborators", "projects", "tasks"]


def validate_file(filepath: Path, table_name: str) -> dict:
    """Validate a single snapshot file."""
    result = {
        "exists": False,
        "format": None,
        "rows": 0,
        "columns": 0,
        "valid": False,
        "missing_required": [],
        "missing_optional": [],
        "errors": []
    }

    if filepath.with_suffix(".parquet").exists():
        result["format"] = "parquet"
    elif filepath.with_suffix(".csv").exists():
        result["format"] = "csv"
    else:
        result["errors"].append(f"File not found: {filepath}.(parquet|csv)")
        return result
    result["exists"] = True

    try:
        df = _load_file(filepath)
    except (OSError, ValueError) as e:
        result["errors"].append(f"Failed to load: {e}")
        return result

    result["rows"] = len(df)
    result["columns"] = len(df.columns)

    df = apply_column_aliases(df, table_name)
    schema_result = validate_schema(df, table_name, strict=False)
    result["valid"] = schema_result["is_valid"]
    result["missing_required"] = schema_result["missing_required"]
    result["missing_optional"] = schema_result["missing_optional"]

    # Calendar ranges must not run backwards
    if result["valid"] and table_name in ("holidays", "absences") and len(df) > 0:
        try:
            table = normalise_table(df, table_name)
        except SchemaValidationError as e:
            result["valid"] = False
            result["errors"].append(str(e))
            return result
        start_col = "date" if table_name == "holidays" else "start_date"
        reversed_rows = find_reversed_ranges(table, start_col)
        if len(reversed_rows) > 0:
            result["valid"] = False
            result["errors"].append(
                f"{len(reversed_rows)} row(s) end before they start"
            )

    return result


def main():
    parser = argparse.ArgumentParser(description="Validate snapshot tables")
    parser.add_argument(
        "--data-dir",
        type=str,
        default=None,
        help="Override data directory"
    )

    args = parser.parse_args()

    data_dir = Path(args.data_dir) if args.data_dir else config.data_dir
    snapshot_dir = data_dir / "snapshot"

    print("=" * 60)
    print("Snapshot Validation")
    print("=" * 60)
    print(f"Source directory: {snapshot_dir}")
    print()

    all_valid = True

    for table_key, filename in TABLE_FILES.items():
        filepath = snapshot_dir / filename

        print(f"Validating: {table_key}")
        print("-" * 40)

        result = validate_file(filepath, table_key)

        if result["exists"]:
            print(f"  ✓ Found: {filename}.{result['format']}")
            print(f"    Rows: {result['rows']:,}")
            print(f"    Columns: {result['columns']}")

            if result["valid"]:
                print("  ✓ Schema valid")
            else:
                print("  ✗ Schema invalid")
                if result["missing_required"]:
                    print(f"    Missing required: {result['missing_required']}")
                all_valid = False

            if result["missing_optional"]:
                print(f"  ⚠ Missing optional: {result['missing_optional']}")

            for err in result["errors"]:
                print(f"  ✗ Error: {err}")
        else:
            print(f"  ✗ Not found: {filename}")
            if table_key in REQUIRED_TABLES:
                all_valid = False
                print("    (REQUIRED)")
            else:
                print("    (optional)")

        print()

    print("=" * 60)
    if all_valid:
        print("✓ All validations passed")
        sys.exit(0)
    else:
        print("✗ Validation failed - see errors above")
        sys.exit(1)


if __name__ == "__main__":
    main()
