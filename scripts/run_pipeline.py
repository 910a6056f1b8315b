#!/usr/bin/env python3
"""
Run the buyer intelligence pipeline.

This script orchestrates:
1. Loading a registry's raw retirement export (JSON or CSV)
2. Resolving records into deduplicated, tagged buyer profiles
3. Validating against schemas
4. Saving buyers to Parquet and the filtered view to CSV
"""

import argparse
import sys
from pathlib import Path

import pandas as pd

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from buyer_intel_data.pipeline import run_pipeline
from buyer_intel_data.query import DATE_RANGES, SORT_COLUMNS, VIEW_MODES


DEFAULT_EXPORTS = {
    "verra": "verra_retirements",
    "car": "climate_action_reserve_retirements",
}


def find_registry_export(raw_dir: Path, prefix: str) -> Path | None:
    """
    Find the most recent JSON or CSV export with the given prefix.

    Parameters
    ----------
    raw_dir : Path
        Directory containing raw registry exports.
    prefix : str
        Prefix to match (e.g., 'verra_retirements').

    Returns
    -------
    Path | None
        Path to the most recent matching file, or None if not found.
    """
    matching_files = [
        path
        for pattern in (f"{prefix}*.json", f"{prefix}*.csv")
        for path in raw_dir.glob(pattern)
    ]

    if not matching_files:
        return None

    # Sort by modification time, return newest
    return max(matching_files, key=lambda p: p.stat().st_mtime)


def main(argv: list[str] | None = None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Resolve carbon credit retirements into ranked buyer profiles"
    )
    parser.add_argument(
        "--registry",
        choices=sorted(DEFAULT_EXPORTS),
        default="verra",
        help="Registry to process",
    )
    parser.add_argument(
        "--date-range",
        default="all",
        help=(
            "Date filter: 'all', '12m', '24m' or a 4-digit year "
            f"(presets: {', '.join(option['value'] for option in DATE_RANGES)})"
        ),
    )
    parser.add_argument(
        "--raw-dir",
        type=Path,
        default=Path(__file__).parent.parent / "raw",
        help="Directory containing raw registry exports",
    )
    parser.add_argument(
        "--records",
        type=Path,
        help="Path to a specific registry export (overrides auto-detection)",
    )
    parser.add_argument(
        "--output-dir",
        "-o",
        type=Path,
        default=Path(__file__).parent.parent / "output",
        help="Directory to save output files",
    )
    parser.add_argument("--search", default="", help="Filter buyers by name or project type")
    parser.add_argument(
        "--view",
        choices=VIEW_MODES,
        default="focus",
        help="'focus' shows key accounts only, 'all' shows every buyer",
    )
    parser.add_argument(
        "--sort", choices=sorted(SORT_COLUMNS), default="total_volume", help="Sort column"
    )
    parser.add_argument("--direction", choices=("asc", "desc"), default="desc")
    parser.add_argument(
        "--reference-date",
        type=pd.Timestamp,
        help="Treat this date as today (default: now)",
    )
    parser.add_argument(
        "--skip-validation",
        action="store_true",
        help="Skip schema validation",
    )

    args = parser.parse_args(argv)

    records_path = args.records
    if records_path is None:
        records_path = find_registry_export(args.raw_dir, DEFAULT_EXPORTS[args.registry])
        if records_path is None:
            print(f"ERROR: No {args.registry} export found in {args.raw_dir}")
            print("Specify --records path")
            return 1
        print(f"Auto-detected records: {records_path}")
    elif not records_path.exists():
        print(f"ERROR: Records file not found: {records_path}")
        return 1

    try:
        view = run_pipeline(
            records_path=records_path,
            registry=args.registry,
            date_range=args.date_range,
            output_dir=args.output_dir,
            search=args.search,
            view_mode=args.view,
            sort_key=args.sort,
            direction=args.direction,
            reference_date=args.reference_date,
            validate_output=not args.skip_validation,
        )

        print("\n" + "=" * 60)
        print("Top Buyers")
        print("=" * 60)
        for _, buyer in view.head(10).iterrows():
            tags = ", ".join(buyer["tags"]) or "-"
            print(
                f"  {buyer['name'][:40]:<40} {buyer['total_volume']:>12,} tCO2e "
                f"{buyer['retirement_count']:>4} events  [{tags}]"
            )

        print(f"\nOutput files saved to: {args.output_dir.absolute()}")

        return 0

    except Exception as e:
        print(f"ERROR: Pipeline failed: {e}")
        import traceback

        traceback.print_exc()
        return 1


if __name__ == "__main__":
    exit(main())
