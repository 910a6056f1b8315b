"""
Per-record processing: buyer identity extraction and record classification.

Registry modules subclass `RecordAccessor` to describe where their raw fields
live; everything in here is registry-agnostic once given an accessor.
"""

import re
import typing

import pandas as pd

from .common import first_present, fix_encoding, is_missing, normalize_volume, parse_date


# Phrases that introduce the purchasing entity in free-text retirement notes,
# in priority order. Captures run up to the next comma, period or semicolon.
BUYER_PATTERNS = (
    re.compile(r"on behalf of\s+([^.,;]+)", re.IGNORECASE),
    re.compile(r"retired for\s+([^.,;]+)", re.IGNORECASE),
    re.compile(r"beneficiary:\s*([^.,;]+)", re.IGNORECASE),
    re.compile(r"in the name of\s+([^.,;]+)", re.IGNORECASE),
    re.compile(r"for the benefit of\s+([^.,;]+)", re.IGNORECASE),
    re.compile(r"retirement by\s+([^.,;]+)", re.IGNORECASE),
)

# Noise filter - buyer names containing any of these are junk entries
NOISE_FILTER = ("no owner", "anonymous", "anonymously", "contributing towards", "confidential")

MIN_BUYER_NAME_LENGTH = 2

UNKNOWN_PROJECT_NAME = "Unknown Project"
UNKNOWN_PROJECT_ID = "N/A"
UNKNOWN_PROJECT_TYPE = "Unknown"

DATE_RANGE_PATTERN = re.compile(r"^\d{4}$")
TRAILING_WINDOWS = {"12m": 12, "24m": 24}


class ProjectDescriptor(typing.NamedTuple):
    name: str
    id: str
    type: str


class RecordFacts(typing.NamedTuple):
    """Everything the aggregator needs to know about one raw record."""

    verdict: str
    buyer_name: str
    quantity: float
    retirement_date: str
    retired_at: pd.Timestamp | None
    project: ProjectDescriptor

    @property
    def buyer_id(self) -> str:
        return buyer_identity(self.buyer_name)


class RecordAccessor:
    """
    Registry-specific view of a raw retirement record.

    Subclasses set the field-name candidates for their registry and say which
    text the buyer name is searched in and which field it falls back to.
    """

    registry_name: str = ""

    volume_fields: tuple[str, ...] = ()
    date_fields: tuple[str, ...] = (
        "retirement_date",
        "Retirement/Cancellation Date",
        "status_effective",
        "Status Effective",
    )
    project_name_fields: tuple[str, ...] = ("project_name", "Name", "Project Name")
    project_id_fields: tuple[str, ...] = ("project_id", "ID", "Project ID")
    project_type_fields: tuple[str, ...] = ("project_type", "Project Type")

    def identity_source_text(self, record: typing.Mapping) -> str:
        raise NotImplementedError

    def fallback_name(self, record: typing.Mapping) -> typing.Any:
        raise NotImplementedError

    def volume(self, record: typing.Mapping) -> float:
        return normalize_volume(first_present(record, self.volume_fields))

    def date_string(self, record: typing.Mapping) -> str:
        value = first_present(record, self.date_fields)
        return "" if value is None else str(value).strip()

    def project(self, record: typing.Mapping) -> ProjectDescriptor:
        return extract_project(record, self)

    def buyer_name(self, record: typing.Mapping) -> str:
        """
        Derive the buyer display name for a record.

        Searches the registry's free text for a buyer phrase first, then falls
        back to the registry's beneficiary/holder field. Returns '' when
        neither yields anything.
        """
        extracted = extract_buyer(self.identity_source_text(record))
        if extracted is not None:
            return extracted
        fallback = self.fallback_name(record)
        if not is_missing(fallback):
            return fix_encoding(str(fallback))
        return ""


def extract_buyer(text: str) -> str | None:
    """
    Extract a buyer name from free text.

    Parameters
    ----------
    text : str
        Free text, possibly several raw fields joined together.

    Returns
    -------
    str | None
        The encoding-fixed capture of the first pattern that matches with a
        capture that is non-missing and non-empty once repaired, or None when
        no pattern produces a name.
    """
    if is_missing(text):
        return None
    for pattern in BUYER_PATTERNS:
        match = pattern.search(text)
        if match:
            extracted = match.group(1).strip()
            if is_missing(extracted):
                continue
            # A capture of only quotes or mojibake spaces repairs to nothing
            fixed = fix_encoding(extracted)
            if fixed:
                return fixed
    return None


def buyer_identity(name: str) -> str:
    """Deduplication key for a buyer name."""
    return name.strip().lower()


def is_invalid_buyer(name: str) -> bool:
    if is_missing(name):
        return True
    return len(name.strip()) < MIN_BUYER_NAME_LENGTH


def is_noise_buyer(name: str) -> bool:
    if not name:
        return True
    lower = name.lower()
    return any(noise in lower for noise in NOISE_FILTER)


def extract_date(record: typing.Mapping, accessor: RecordAccessor) -> pd.Timestamp | None:
    """Parse the first present date field of a record, or None."""
    return parse_date(accessor.date_string(record))


def clean_project_type(project_type: typing.Any) -> str:
    """Drop qualifier suffixes such as '-VCS' or '(ARR)' from a project type label."""
    return re.split(r"[-(]", str(project_type), maxsplit=1)[0].strip()


def extract_project(record: typing.Mapping, accessor: RecordAccessor) -> ProjectDescriptor:
    name = first_present(record, accessor.project_name_fields, UNKNOWN_PROJECT_NAME)
    project_id = first_present(record, accessor.project_id_fields, UNKNOWN_PROJECT_ID)
    project_type = first_present(record, accessor.project_type_fields, UNKNOWN_PROJECT_TYPE)
    return ProjectDescriptor(
        name=str(name),
        id=str(project_id),
        type=clean_project_type(project_type),
    )


def validate_date_range(date_range: str) -> str:
    """Raise ValueError unless `date_range` is 'all', '12m', '24m' or a 4-digit year."""
    if date_range == "all" or date_range in TRAILING_WINDOWS or DATE_RANGE_PATTERN.match(date_range):
        return date_range
    raise ValueError(
        f"Unknown date range {date_range!r}; expected 'all', '12m', '24m' or a 4-digit year"
    )


def is_within_date_range(
    retired_at: pd.Timestamp | None, date_range: str, reference_date: pd.Timestamp
) -> bool:
    """
    Check whether a retirement date falls inside the requested window.

    Parameters
    ----------
    retired_at : pd.Timestamp | None
        Parsed retirement date of the record, None when absent.
    date_range : str
        'all', '12m', '24m' or a 4-digit year.
    reference_date : pd.Timestamp
        Instant the trailing windows are measured back from.

    Returns
    -------
    bool
        True when the record is admitted. Records without a date are only
        admitted under 'all'.
    """
    if date_range == "all":
        return True
    if retired_at is None:
        return False
    if date_range in TRAILING_WINDOWS:
        cutoff = pd.Timestamp(reference_date).normalize() - pd.DateOffset(
            months=TRAILING_WINDOWS[date_range]
        )
        return retired_at >= cutoff
    if DATE_RANGE_PATTERN.match(date_range):
        return retired_at.year == int(date_range)
    return True


def classify_record(
    record: typing.Mapping,
    accessor: RecordAccessor,
    date_range: str = "all",
    reference_date: pd.Timestamp | None = None,
) -> RecordFacts:
    """
    Derive the aggregation facts and the filter verdict for one raw record.

    Parameters
    ----------
    record : typing.Mapping
        Raw registry record.
    accessor : RecordAccessor
        Accessor for the record's registry.
    date_range : str
        Active date filter.
    reference_date : pd.Timestamp, optional
        Reference instant for trailing windows (defaults to now).

    Returns
    -------
    RecordFacts
        Facts with verdict 'out_of_range', 'invalid', 'noise' or 'valid'.
        Only 'valid' records contribute to a buyer profile.
    """
    if reference_date is None:
        reference_date = pd.Timestamp.now()

    retirement_date = accessor.date_string(record)
    retired_at = parse_date(retirement_date)
    quantity = accessor.volume(record)
    project = accessor.project(record)

    if not is_within_date_range(retired_at, date_range, reference_date):
        return RecordFacts("out_of_range", "", quantity, retirement_date, retired_at, project)

    name = accessor.buyer_name(record)
    if is_invalid_buyer(name):
        verdict = "invalid"
    elif is_noise_buyer(name):
        verdict = "noise"
    else:
        verdict = "valid"
    return RecordFacts(verdict, name, quantity, retirement_date, retired_at, project)
