"""
Buyer aggregation: folds a registry's retirement records into one profile
per distinct buyer identity.
"""

import dataclasses
import typing

import pandas as pd

from . import car, verra
from .records import ProjectDescriptor, RecordAccessor, classify_record, validate_date_range


RECORD_ACCESSORS: dict[str, RecordAccessor] = {
    verra.REGISTRY_NAME: verra.VerraRecordAccessor(),
    car.REGISTRY_NAME: car.CarRecordAccessor(),
}

MAX_DISPLAY_PROJECT_TYPES = 3

BUYER_COLUMNS = [
    "buyer_id",
    "name",
    "registry",
    "total_volume",
    "retirement_count",
    "latest_date",
    "latest_transaction_at",
    "latest_project_name",
    "latest_project_id",
    "latest_project_type",
    "project_types",
]


def get_record_accessor(registry: str) -> RecordAccessor:
    """Return the record accessor for a registry identifier ('verra' or 'car')."""
    try:
        return RECORD_ACCESSORS[registry]
    except KeyError:
        raise ValueError(
            f"Unknown registry {registry!r}; expected one of {sorted(RECORD_ACCESSORS)}"
        ) from None


class OrderedSet:
    """Insertion-ordered, duplicate-free collection of strings."""

    def __init__(self, items: typing.Iterable[str] = ()):
        self._items = dict.fromkeys(items)

    def add(self, item: str) -> None:
        self._items.setdefault(item, None)

    def __contains__(self, item) -> bool:
        return item in self._items

    def __iter__(self):
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other) -> bool:
        if isinstance(other, OrderedSet):
            return list(self) == list(other)
        return NotImplemented

    def __repr__(self) -> str:
        return f"OrderedSet({list(self)!r})"


@dataclasses.dataclass
class BuyerProfile:
    name: str
    latest_date: str
    latest_project: ProjectDescriptor
    latest_transaction_at: pd.Timestamp | None = None
    total_volume: float = 0
    retirement_count: int = 0
    project_types: OrderedSet = dataclasses.field(default_factory=OrderedSet)


def aggregate_buyers(
    records: typing.Iterable[typing.Mapping],
    registry: str,
    date_range: str = "all",
    reference_date: pd.Timestamp | None = None,
) -> dict[str, BuyerProfile]:
    """
    Fold raw retirement records into one profile per buyer identity.

    Parameters
    ----------
    records : typing.Iterable[typing.Mapping]
        Raw records of a single registry, in input order.
    registry : str
        Registry identifier ('verra' or 'car').
    date_range : str
        Active date filter ('all', '12m', '24m' or a 4-digit year).
    reference_date : pd.Timestamp, optional
        Reference instant for trailing windows (defaults to now).

    Returns
    -------
    dict[str, BuyerProfile]
        Profiles keyed by buyer identity, in order of first appearance.
    """
    accessor = get_record_accessor(registry)
    validate_date_range(date_range)
    if reference_date is None:
        reference_date = pd.Timestamp.now()

    profiles: dict[str, BuyerProfile] = {}
    for record in records:
        facts = classify_record(record, accessor, date_range, reference_date)
        if facts.verdict != "valid":
            continue

        key = facts.buyer_id
        profile = profiles.get(key)
        if profile is None:
            profile = profiles[key] = BuyerProfile(
                name=facts.buyer_name,
                latest_date=facts.retirement_date,
                latest_project=facts.project,
            )

        profile.total_volume += facts.quantity
        profile.retirement_count += 1
        profile.project_types.add(facts.project.type)

        # Latest date and project move together; ties keep the earlier record
        if facts.retired_at is not None and (
            profile.latest_transaction_at is None
            or facts.retired_at > profile.latest_transaction_at
        ):
            profile.latest_date = facts.retirement_date
            profile.latest_transaction_at = facts.retired_at
            profile.latest_project = facts.project

    return profiles


def profiles_to_frame(profiles: typing.Mapping[str, BuyerProfile], registry: str) -> pd.DataFrame:
    """
    Convert buyer profiles to a DataFrame, one row per buyer.

    Volumes are left unrounded so tagging sees the exact totals; project
    types are truncated to the first three observed.
    """
    rows = [
        {
            "buyer_id": key,
            "name": profile.name,
            "registry": registry,
            "total_volume": profile.total_volume,
            "retirement_count": profile.retirement_count,
            "latest_date": profile.latest_date,
            "latest_transaction_at": profile.latest_transaction_at,
            "latest_project_name": profile.latest_project.name,
            "latest_project_id": profile.latest_project.id,
            "latest_project_type": profile.latest_project.type,
            "project_types": list(profile.project_types)[:MAX_DISPLAY_PROJECT_TYPES],
        }
        for key, profile in profiles.items()
    ]
    buyers = pd.DataFrame(rows, columns=BUYER_COLUMNS)
    buyers["total_volume"] = buyers["total_volume"].astype(float)
    buyers["latest_transaction_at"] = pd.to_datetime(buyers["latest_transaction_at"])
    return buyers
