#!/usr/bin/env python
"""
Build the team availability table and release forecasts for a month.

Usage:
    python scripts/build_availability.py --month 2025-09 --today 2025-09-08
    python scripts/build_availability.py --month 2025-09 --data-dir /path/to/data --output team.csv
"""
import argparse
import logging
import sys
from pathlib import Path

# Add repo root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from capacity_engine.config import config, FORMAT_HOURS, FORMAT_PERCENT
from capacity_engine.availability import (
    calculate_individual_release_date,
    compute_team_availability,
    get_collaborators_with_balance,
    get_overloaded_collaborators,
)
from capacity_engine.data.loader import load_snapshot
from capacity_engine.data.schema import InvalidDateRangeError, SchemaValidationError


def main():
    parser = argparse.ArgumentParser(description="Build team availability")
    parser.add_argument(
        "--month",
        type=str,
        required=True,
        help="Month to analyse (YYYY-MM)"
    )
    parser.add_argument(
        "--today",
        type=str,
        default=None,
        help="Reference day for remaining work and forecasts (YYYY-MM-DD)"
    )
    parser.add_argument(
        "--data-dir",
        type=str,
        default=None,
        help="Override data directory"
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Write the team table to this CSV file"
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Verbose output"
    )

    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    data_dir = Path(args.data_dir) if args.data_dir else config.data_dir
    snapshot_dir = data_dir / "snapshot"

    print("Building availability...")
    print(f"  Source: {snapshot_dir}")
    print(f"  Month:  {args.month}")
    print()

    try:
        snapshot = load_snapshot(snapshot_dir)
    except (FileNotFoundError, SchemaValidationError) as e:
        print(f"ERROR: {e}")
        print("Run scripts/validate_inputs.py for details")
        sys.exit(1)

    for name, count in snapshot.row_counts().items():
        print(f"  {name}: {count:,} rows")
    print()

    try:
        team = compute_team_availability(
            snapshot.collaborators, args.month,
            snapshot.projects, snapshot.project_members, snapshot.timesheets, snapshot.tasks,
            holidays=snapshot.holidays, absences=snapshot.absences, today=args.today,
        )
    except (ValueError, InvalidDateRangeError) as e:
        print(f"ERROR computing availability: {e}")
        sys.exit(1)

    print("=" * 78)
    print(f"{'Collaborator':<24}{'Target':>10}{'Planned':>10}{'Cont.':>10}{'Balance':>10}{'Occ.':>8}  Status")
    print("-" * 78)
    for row in team.itertuples(index=False):
        label = row.name or row.collaborator_id
        print(
            f"{label[:23]:<24}"
            f"{FORMAT_HOURS.format(row.target_hours):>10}"
            f"{FORMAT_HOURS.format(row.planned_hours):>10}"
            f"{FORMAT_HOURS.format(row.continuous_hours):>10}"
            f"{FORMAT_HOURS.format(row.balance):>10}"
            f"{FORMAT_PERCENT.format(row.occupancy_rate):>8}  {row.status}"
        )
    print("=" * 78)
    print()

    overloaded = get_overloaded_collaborators(team)
    free = get_collaborators_with_balance(team)
    print(f"Overloaded: {len(overloaded)}    With balance: {len(free)}")
    print()

    print("Release forecast:")
    for row in team.itertuples(index=False):
        forecast = calculate_individual_release_date(
            row.collaborator_id,
            snapshot.projects, snapshot.project_members, snapshot.timesheets, snapshot.tasks,
            holidays=snapshot.holidays, absences=snapshot.absences, today=args.today,
        )
        label = row.name or row.collaborator_id
        flag = "  (saturated)" if forecast["is_saturated"] else ""
        print(f"  {label}: ideal {forecast['ideal'] or '-'}, realistic {forecast['realistic'] or '-'}{flag}")

    if args.output:
        team.to_csv(args.output, index=False)
        print()
        print(f"✓ Wrote {len(team):,} rows to {args.output}")


if __name__ == "__main__":
    main()
