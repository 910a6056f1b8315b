"""
View layer over buyer profiles: search, sort, pagination and CSV export.
"""

import csv
import math
import typing
from pathlib import Path

import pandas as pd
import pandas_flavor as pf

from .common import parse_date


PER_PAGE = 10

DATE_RANGES = [
    {"value": "all", "label": "All Time"},
    {"value": "12m", "label": "Last 12 Months"},
    {"value": "24m", "label": "Last 24 Months"},
    {"value": "2025", "label": "2025"},
    {"value": "2024", "label": "2024"},
    {"value": "2023", "label": "2023"},
]

REGISTRY_LABELS = {
    "verra": "Verra",
    "car": "Climate Action Reserve",
}

VIEW_MODES = ("focus", "all")

# Sort keys exposed to callers, mapped to the column actually compared
SORT_COLUMNS = {
    "total_volume": "total_volume",
    "retirement_count": "retirement_count",
    "latest_date": "latest_transaction_at",
}

CSV_HEADERS = {
    "name": "Company Name",
    "total_volume": "Total Volume (tCO2e)",
    "retirement_count": "Retirement Events",
    "last_activity": "Last Activity",
    "latest_project_name": "Recent Project",
    "latest_project_id": "Project ID",
    "project_types": "Project Types",
    "tags": "Tags",
    "registry": "Registry",
    "date_filter": "Date Filter",
}

CSV_BOM = "\ufeff"


def date_range_label(date_range: str) -> str:
    for option in DATE_RANGES:
        if option["value"] == date_range:
            return option["label"]
    return date_range


def format_full_date(value) -> str:
    """Format a date for display, e.g. 'Oct 27, 2025', or 'N/A' when unparseable."""
    if isinstance(value, pd.Timestamp):
        parsed = value
    elif value is None or isinstance(value, str):
        parsed = parse_date(value)
    else:
        parsed = None if pd.isna(value) else pd.Timestamp(value)
    if parsed is None:
        return "N/A"
    return f"{parsed:%b} {parsed.day}, {parsed.year}"


@pf.register_dataframe_method
def filter_buyers(buyers: pd.DataFrame, *, search: str = "", view_mode: str = "focus") -> pd.DataFrame:
    """
    Filter buyers by free-text search and qualification mode.

    Parameters
    ----------
    buyers : pd.DataFrame
        Tagged buyer profiles.
    search : str
        Case-insensitive substring matched against the buyer name or any of
        its displayed project types. Empty matches everything.
    view_mode : str
        'focus' keeps qualified buyers only (Key Accounts), 'all' keeps all.

    Returns
    -------
    pd.DataFrame
        Matching buyers, in their original order.
    """
    if view_mode not in VIEW_MODES:
        raise ValueError(f"Unknown view mode {view_mode!r}; expected one of {VIEW_MODES}")

    mask = pd.Series(True, index=buyers.index)
    if search:
        needle = search.lower()
        name_match = buyers["name"].str.lower().str.contains(needle, regex=False)
        type_match = buyers["project_types"].map(
            lambda types: any(needle in project_type.lower() for project_type in types)
        )
        mask &= name_match | type_match.astype(bool)
    if view_mode == "focus":
        mask &= buyers["is_qualified"].astype(bool)
    return buyers[mask]


@pf.register_dataframe_method
def sort_buyers(
    buyers: pd.DataFrame, *, key: str = "total_volume", direction: str = "desc"
) -> pd.DataFrame:
    """
    Sort buyers by volume, event count or latest activity.

    The sort is stable, so buyers with equal values keep their input order.
    Unparseable latest dates sort as the epoch.
    """
    if key not in SORT_COLUMNS:
        raise ValueError(f"Unknown sort key {key!r}; expected one of {sorted(SORT_COLUMNS)}")
    if direction not in ("asc", "desc"):
        raise ValueError(f"Unknown sort direction {direction!r}; expected 'asc' or 'desc'")

    values = buyers[SORT_COLUMNS[key]]
    if key == "latest_date":
        values = pd.to_datetime(values).fillna(pd.Timestamp(0))
    order = values.sort_values(ascending=direction == "asc", kind="mergesort").index
    return buyers.loc[order]


def toggle_sort(current: typing.Mapping[str, str], key: str) -> dict[str, str]:
    """Clicking the active column flips desc to asc; anything else sorts desc."""
    if current.get("key") == key and current.get("dir") == "desc":
        return {"key": key, "dir": "asc"}
    return {"key": key, "dir": "desc"}


def total_pages(buyers: pd.DataFrame, per_page: int = PER_PAGE) -> int:
    return math.ceil(len(buyers) / per_page) or 1


@pf.register_dataframe_method
def paginate(buyers: pd.DataFrame, *, page: int = 1, per_page: int = PER_PAGE) -> pd.DataFrame:
    """Return the rows of a 1-based page."""
    start = (page - 1) * per_page
    return buyers.iloc[start:start + per_page]


def summarize_buyers(buyers: pd.DataFrame) -> dict:
    """Header statistics for the current buyer view."""
    total_volume = int(buyers["total_volume"].sum()) if len(buyers) else 0
    return {
        "buyers": len(buyers),
        "total_volume": total_volume,
        "total_volume_millions": round(total_volume / 1_000_000, 1),
        "qualified": int(buyers["is_qualified"].sum()) if len(buyers) else 0,
    }


def export_filename(registry: str, date_range: str, today: pd.Timestamp | None = None) -> str:
    if today is None:
        today = pd.Timestamp.now()
    return f"buyer-intelligence-{registry}-{date_range}-{pd.Timestamp(today):%Y-%m-%d}.csv"


def build_export_frame(buyers: pd.DataFrame, *, registry: str, date_range: str) -> pd.DataFrame:
    """Shape buyers into the spreadsheet layout used by the CSV export."""
    export = pd.DataFrame(
        {
            "name": buyers["name"],
            "total_volume": buyers["total_volume"],
            "retirement_count": buyers["retirement_count"],
            "last_activity": buyers["latest_date"].map(format_full_date),
            "latest_project_name": buyers["latest_project_name"].fillna("N/A"),
            "latest_project_id": buyers["latest_project_id"].fillna("N/A"),
            "project_types": buyers["project_types"].map(", ".join),
            "tags": buyers["tags"].map(", ".join),
        },
        columns=list(CSV_HEADERS)[:-2],
    )
    export["registry"] = REGISTRY_LABELS.get(registry, registry)
    export["date_filter"] = date_range_label(date_range)
    return export.rename(columns=CSV_HEADERS)


def export_csv(
    buyers: pd.DataFrame,
    *,
    registry: str,
    date_range: str,
    path: Path | None = None,
) -> str:
    """
    Serialize buyers to CSV for spreadsheet tools.

    Parameters
    ----------
    buyers : pd.DataFrame
        Buyers to export (already filtered and sorted, not paginated).
    registry : str
        Registry identifier, written as its display label.
    date_range : str
        Active date filter, written as its display label.
    path : Path, optional
        File to write. The returned text is written as-is.

    Returns
    -------
    str
        CSV text with a leading byte-order mark; text fields are double-quoted
        with embedded quotes doubled.
    """
    export = build_export_frame(buyers, registry=registry, date_range=date_range)
    content = CSV_BOM + export.to_csv(
        index=False, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n"
    )
    if path is not None:
        Path(path).write_text(content, encoding="utf-8")
    return content
