"""
Common utilities for processing carbon credit retirement data.

Text repair, sentinel handling and value parsing shared by every registry.
"""

import math
import numbers
import re
import typing

import pandas as pd
import pandas_flavor as pf
import pandera as pa


# Values that carry no information once trimmed and lowercased
MISSING_SENTINELS = frozenset({"", "none", "null", "n/a", "nan", "0"})

# Mis-decoded byte sequences seen in registry exports, mapped to the intended text.
# The first four are literal escape sequences left behind by a JSON round trip.
ENCODING_FIXES = (
    (r"\u221a\u00a3", "ã"),
    (r"\u221a\u00b0", "á"),
    (r"\u221a\u00df", "ç"),
    (r"\u201a\u00c4\u00ec", "í"),
    ("√©", "é"),
    ("√†", "à"),
    ("√£", "ã"),
    ("√≠", "í"),
    ("√≥", "ó"),
    ("√∫", "ú"),
    ("√±", "ñ"),
    ("‚Äì", "–"),
    ("‚Äô", "'"),
    ("‚Äú", '"'),
    ("‚Äù", '"'),
    ("¬†", " "),
    ("Ã©", "é"),
    ("Ã¡", "á"),
    ("Ã³", "ó"),
    ("Ã±", "ñ"),
)

YEAR_PATTERN = re.compile(r"^\d{4}$")
LEADING_INT_PATTERN = re.compile(r"^\s*([+-]?\d+)")


def is_missing(value: typing.Any) -> bool:
    """
    Check whether a raw value is absent or a junk sentinel.

    Parameters
    ----------
    value : typing.Any
        Raw field value (string, number or None).

    Returns
    -------
    bool
        True for None and for values whose trimmed, lowercased text is one of
        '', 'none', 'null', 'n/a', 'nan' or '0', and for numeric zero (0.0).
    """
    if value is None:
        return True
    if isinstance(value, numbers.Number) and not isinstance(value, bool) and value == 0:
        return True
    return str(value).strip().lower() in MISSING_SENTINELS


def _apply_encoding_fixes(text: str) -> str:
    for broken, fixed in ENCODING_FIXES:
        text = text.replace(broken, fixed)
    return text.replace('"', "").strip()


def fix_encoding(text: str | None) -> str:
    """
    Repair mojibake, drop straight double quotes and trim whitespace.

    Every replacement shortens the text, so repeating the pass until nothing
    changes terminates and makes the result stable under re-application.

    Parameters
    ----------
    text : str | None
        Text to repair.

    Returns
    -------
    str
        Repaired text ('' for None).
    """
    if text is None:
        return ""
    current = str(text)
    while True:
        repaired = _apply_encoding_fixes(current)
        if repaired == current:
            return repaired
        current = repaired


def first_present(record: typing.Mapping, fields: typing.Iterable[str], default=None):
    """Return the first value among `fields` in `record` that is not missing."""
    for field in fields:
        value = record.get(field)
        if not is_missing(value):
            return value
    return default


def normalize_volume(value: typing.Any) -> float:
    """
    Convert a raw quantity to a number.

    Numbers pass through (non-finite becomes 0). Strings lose their comma
    grouping separators and are read as a leading integer, defaulting to 0.
    """
    if isinstance(value, bool):
        return 0
    if isinstance(value, numbers.Number):
        return value if math.isfinite(value) else 0
    if isinstance(value, str):
        match = LEADING_INT_PATTERN.match(value.replace(",", ""))
        return int(match.group(1)) if match else 0
    return 0


def parse_date(value: typing.Any) -> pd.Timestamp | None:
    """
    Parse a raw date value into a naive timestamp.

    Parameters
    ----------
    value : typing.Any
        Raw date value, e.g. '2025-01-10', '10/27/2025' or a bare year '2024'.

    Returns
    -------
    pd.Timestamp | None
        Parsed timestamp, January 1 for bare years, or None when missing or
        unparseable.
    """
    if is_missing(value):
        return None
    text = str(value).strip()
    if YEAR_PATTERN.match(text):
        return pd.Timestamp(year=int(text), month=1, day=1)
    try:
        parsed = pd.to_datetime(text, errors="coerce")
    except (ValueError, TypeError, OverflowError):
        return None
    if pd.isna(parsed):
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.tz_convert("UTC").tz_localize(None)
    return parsed


@pf.register_dataframe_method
def set_registry(df: pd.DataFrame, registry_name: str) -> pd.DataFrame:
    """
    Set the registry name for each record in the DataFrame.

    Parameters
    ----------
    df : pd.DataFrame
        Input DataFrame.
    registry_name : str
        Name of the registry to set.

    Returns
    -------
    pd.DataFrame
        DataFrame with a 'registry' column set to the specified registry name.
    """
    df["registry"] = registry_name
    return df


@pf.register_dataframe_method
def validate(df: pd.DataFrame, schema: pa.DataFrameSchema) -> pd.DataFrame:
    """
    Validate the DataFrame against a given Pandera schema.

    Parameters
    ----------
    df : pd.DataFrame
        Input DataFrame.
    schema : pa.DataFrameSchema
        Pandera schema to validate against.

    Returns
    -------
    pd.DataFrame
        Validated DataFrame with columns in schema order.
    """
    results = schema.validate(df)
    return results[list(schema.columns.keys())]
