"""
Buyer intelligence pipeline.

Turns raw registry retirement records into tagged buyer profiles, and wraps
that pure transformation with file loading, validation and export.
"""

import json
import typing
from pathlib import Path

import pandas as pd

from .buyers import aggregate_buyers, get_record_accessor, profiles_to_frame
from .common import set_registry, validate
from .models import buyer_schema, retirement_facts_schema
from .query import (
    export_csv,
    export_filename,
    filter_buyers,
    sort_buyers,
    summarize_buyers,
)
from .records import classify_record, validate_date_range
from .tagging import add_qualification, add_tags, round_total_volume


def load_registry_records(path: Path) -> list[dict]:
    """
    Load raw retirement records from a JSON or CSV export.

    JSON files may hold a list of records or an object with a 'retirements'
    list (the Climate Action Reserve export shape).

    Parameters
    ----------
    path : Path
        Path to the registry export.

    Returns
    -------
    list[dict]
        Raw records in file order.
    """
    path = Path(path)
    if path.suffix.lower() == ".csv":
        return pd.read_csv(path, dtype=str, keep_default_na=False).to_dict(orient="records")

    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("retirements") or []
    return list(data)


def build_buyers(
    records: typing.Iterable[typing.Mapping],
    registry: str,
    date_range: str = "all",
    reference_date: pd.Timestamp | None = None,
) -> pd.DataFrame:
    """
    Build tagged buyer profiles for one registry and date filter.

    Parameters
    ----------
    records : typing.Iterable[typing.Mapping]
        Raw records of the registry.
    registry : str
        Registry identifier ('verra' or 'car').
    date_range : str
        Date filter ('all', '12m', '24m' or a 4-digit year).
    reference_date : pd.Timestamp, optional
        Reference instant for trailing windows and the Active tag (defaults
        to now).

    Returns
    -------
    pd.DataFrame
        One row per buyer, in order of first appearance.
    """
    if reference_date is None:
        reference_date = pd.Timestamp.now()

    profiles = aggregate_buyers(records, registry, date_range, reference_date)
    return (
        profiles_to_frame(profiles, registry)
        .pipe(add_tags, reference_date=reference_date)
        .pipe(add_qualification)
        .pipe(round_total_volume)
    )


def classify_records(
    records: typing.Iterable[typing.Mapping],
    registry: str,
    date_range: str = "all",
    reference_date: pd.Timestamp | None = None,
) -> pd.DataFrame:
    """
    Build a per-record facts frame showing how each record was classified.

    Parameters
    ----------
    records : typing.Iterable[typing.Mapping]
        Raw records of the registry.
    registry : str
        Registry identifier ('verra' or 'car').
    date_range : str
        Date filter ('all', '12m', '24m' or a 4-digit year).
    reference_date : pd.Timestamp, optional
        Reference instant for trailing windows (defaults to now).

    Returns
    -------
    pd.DataFrame
        One row per raw record with its verdict and extracted facts.
    """
    accessor = get_record_accessor(registry)
    validate_date_range(date_range)
    if reference_date is None:
        reference_date = pd.Timestamp.now()

    rows = []
    for record in records:
        facts = classify_record(record, accessor, date_range, reference_date)
        rows.append(
            {
                "verdict": facts.verdict,
                "buyer_name": facts.buyer_name,
                "buyer_id": facts.buyer_id,
                "quantity": facts.quantity,
                "retirement_date": facts.retirement_date,
                "retired_at": facts.retired_at,
                "project_name": facts.project.name,
                "project_id": facts.project.id,
                "project_type": facts.project.type,
            }
        )

    columns = list(retirement_facts_schema.columns)
    columns.remove("registry")
    facts_df = pd.DataFrame(rows, columns=columns)
    facts_df["retired_at"] = pd.to_datetime(facts_df["retired_at"])
    return facts_df.pipe(set_registry, registry)


class BuyerCache:
    """
    Memoizes buyer profiles per (registry, date range).

    Holds the read-only record collections of both registries; results are
    computed on first request and reused until `clear` is called.
    """

    def __init__(
        self,
        records_by_registry: typing.Mapping[str, typing.Sequence[typing.Mapping]],
        reference_date: pd.Timestamp | None = None,
    ):
        self._records = dict(records_by_registry)
        self._reference_date = (
            pd.Timestamp.now() if reference_date is None else pd.Timestamp(reference_date)
        )
        self._cache: dict[tuple[str, str], pd.DataFrame] = {}

    def get(self, registry: str, date_range: str = "all") -> pd.DataFrame:
        key = (registry, date_range)
        if key not in self._cache:
            self._cache[key] = build_buyers(
                self._records.get(registry, []),
                registry,
                date_range,
                self._reference_date,
            )
        # Cached frames are never handed out directly, list cells included
        frame = self._cache[key].copy()
        for column in ("project_types", "tags"):
            frame[column] = frame[column].map(list)
        return frame

    def clear(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)


def run_pipeline(
    records_path: Path,
    registry: str,
    date_range: str = "all",
    output_dir: Path | None = None,
    search: str = "",
    view_mode: str = "focus",
    sort_key: str = "total_volume",
    direction: str = "desc",
    reference_date: pd.Timestamp | None = None,
    validate_output: bool = True,
) -> pd.DataFrame:
    """
    Run the full buyer intelligence pipeline for one registry export.

    Parameters
    ----------
    records_path : Path
        Path to the registry's JSON or CSV retirement export.
    registry : str
        Registry identifier ('verra' or 'car').
    date_range : str
        Date filter ('all', '12m', '24m' or a 4-digit year).
    output_dir : Path, optional
        Directory to save the buyers Parquet file and the CSV export.
    search : str
        Free-text search applied to the exported view.
    view_mode : str
        'focus' for qualified buyers only, 'all' for every buyer.
    sort_key : str
        'total_volume', 'retirement_count' or 'latest_date'.
    direction : str
        'asc' or 'desc'.
    reference_date : pd.Timestamp, optional
        Reference instant (defaults to now).
    validate_output : bool
        Whether to validate output against schemas.

    Returns
    -------
    pd.DataFrame
        Filtered and sorted buyer view.
    """
    get_record_accessor(registry)
    validate_date_range(date_range)
    if reference_date is None:
        reference_date = pd.Timestamp.now()

    print("=" * 60)
    print(f"Buyer Intelligence Pipeline ({registry}, {date_range})")
    print("=" * 60)

    print(f"\nLoading records from: {records_path}")
    records = load_registry_records(records_path)
    print(f"  Loaded {len(records):,} retirement records")

    print("\n" + "-" * 40)
    print("Classifying records...")
    facts = classify_records(records, registry, date_range, reference_date)
    print("  Verdict breakdown:")
    for verdict, count in facts["verdict"].value_counts().items():
        print(f"    {verdict}: {count:,}")

    print("\n" + "-" * 40)
    print("Aggregating buyers...")
    buyers = build_buyers(records, registry, date_range, reference_date)
    print(f"  Total buyers: {len(buyers):,}")

    if validate_output:
        print("\n" + "-" * 40)
        print("Validating output...")
        try:
            facts = facts.pipe(validate, schema=retirement_facts_schema)
            print("  ✓ Retirement facts validated successfully")
        except Exception as e:
            print(f"  ✗ Retirement facts validation failed: {e}")

        try:
            buyers = buyers.pipe(validate, schema=buyer_schema)
            print("  ✓ Buyers validated successfully")
        except Exception as e:
            print(f"  ✗ Buyer validation failed: {e}")

    view = buyers.pipe(filter_buyers, search=search, view_mode=view_mode).pipe(
        sort_buyers, key=sort_key, direction=direction
    )
    stats = summarize_buyers(view)
    print(f"\nView ({view_mode}, sorted by {sort_key} {direction}):")
    print(f"  Buyers: {stats['buyers']:,}")
    print(f"  Qualified: {stats['qualified']:,}")
    print(f"  Total volume: {stats['total_volume_millions']}M tCO2e")

    if output_dir:
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        buyers_output = output_dir / f"buyers-{registry}-{date_range}.parquet"
        csv_output = output_dir / export_filename(registry, date_range, reference_date)

        print("\n" + "-" * 40)
        print(f"Saving buyers to: {buyers_output}")
        buyers.to_parquet(buyers_output, index=False)

        print(f"Exporting view to: {csv_output}")
        export_csv(view, registry=registry, date_range=date_range, path=csv_output)

    print("\n" + "=" * 60)
    print("Pipeline complete!")
    print("=" * 60)

    return view
