"""
Climate Action Reserve (CAR) registry record accessor.

CAR retirements carry the buyer, when stated at all, in the retirement reason
details; otherwise the account holder that retired the credits is used.
"""

import typing

from .common import first_present
from .records import RecordAccessor


# Registry identifier
REGISTRY_NAME = "car"

VOLUME_FIELDS = ("quantity_tonnes", "Quantity of Offset Credits")
DETAILS_FIELDS = ("retirement_details", "Retirement Reason Details")
ACCOUNT_HOLDER_FIELDS = ("account_holder", "Account Holder")


class CarRecordAccessor(RecordAccessor):
    registry_name = REGISTRY_NAME
    volume_fields = VOLUME_FIELDS

    def identity_source_text(self, record: typing.Mapping) -> str:
        return str(first_present(record, DETAILS_FIELDS, ""))

    def fallback_name(self, record: typing.Mapping) -> typing.Any:
        return first_present(record, ACCOUNT_HOLDER_FIELDS)
