"""
Business rules that tag buyer profiles and flag sales-qualified leads.
"""

import math

import pandas as pd
import pandas_flavor as pf

from .common import parse_date


SALES_RULES = {
    "MIN_VOLUME": 1000,
    "MIN_EVENTS": 2,
    "RECENT_YEARS": 1,  # Active if last retired this year or last year
}

REPEAT_BUYER_MIN_EVENTS = 3
HIGH_VOLUME_MIN = 50000

REPEAT_BUYER = "Repeat Buyer"
HIGH_VOLUME = "High Volume"
ACTIVE = "Active"


def compute_tags(
    retirement_count: int,
    total_volume: float,
    latest_date,
    reference_date: pd.Timestamp,
) -> list[str]:
    """
    Return every tag that applies to a buyer.

    Parameters
    ----------
    retirement_count : int
        Number of retirement events.
    total_volume : float
        Total retired volume (tCO2e).
    latest_date : str | pd.Timestamp | None
        Date of the most recent retirement; unparseable counts as year 0.
    reference_date : pd.Timestamp
        Instant that defines the current year.

    Returns
    -------
    list[str]
        Applicable tags in display order.
    """
    tags = []
    if latest_date is None or isinstance(latest_date, str):
        latest = parse_date(latest_date)
    else:
        latest = None if pd.isna(latest_date) else pd.Timestamp(latest_date)
    latest_year = latest.year if latest is not None else 0

    if retirement_count >= REPEAT_BUYER_MIN_EVENTS:
        tags.append(REPEAT_BUYER)
    if total_volume >= HIGH_VOLUME_MIN:
        tags.append(HIGH_VOLUME)
    if latest_year >= pd.Timestamp(reference_date).year - SALES_RULES["RECENT_YEARS"]:
        tags.append(ACTIVE)
    return tags


def is_qualified(total_volume: float, retirement_count: int) -> bool:
    """A buyer is a key account on volume or on repeat activity."""
    return total_volume >= SALES_RULES["MIN_VOLUME"] or retirement_count >= SALES_RULES["MIN_EVENTS"]


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@pf.register_dataframe_method
def add_tags(buyers: pd.DataFrame, *, reference_date: pd.Timestamp) -> pd.DataFrame:
    """
    Add a 'tags' column computed from each buyer's aggregate fields.

    Parameters
    ----------
    buyers : pd.DataFrame
        Buyer profiles with 'retirement_count', 'total_volume' and
        'latest_transaction_at' columns.
    reference_date : pd.Timestamp
        Instant that defines the current year for the Active tag.

    Returns
    -------
    pd.DataFrame
        DataFrame with a 'tags' column of string lists.
    """
    buyers["tags"] = pd.Series(
        [
            compute_tags(count, volume, latest, reference_date)
            for count, volume, latest in zip(
                buyers["retirement_count"],
                buyers["total_volume"],
                buyers["latest_transaction_at"],
            )
        ],
        index=buyers.index,
        dtype=object,
    )
    return buyers


@pf.register_dataframe_method
def add_qualification(buyers: pd.DataFrame) -> pd.DataFrame:
    """Add the boolean 'is_qualified' column used by the Key Accounts view."""
    buyers["is_qualified"] = pd.Series(
        [
            is_qualified(volume, count)
            for volume, count in zip(buyers["total_volume"], buyers["retirement_count"])
        ],
        index=buyers.index,
        dtype=bool,
    )
    return buyers


@pf.register_dataframe_method
def round_total_volume(buyers: pd.DataFrame) -> pd.DataFrame:
    """Round total volumes to whole tonnes, halves rounding up."""
    buyers["total_volume"] = buyers["total_volume"].map(round_half_up).astype("int64")
    return buyers
