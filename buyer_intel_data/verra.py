"""
Verra (VCS) registry record accessor.

Verra retirement exports name the buyer in a beneficiary column and often
repeat it, with more detail, in the free-text retirement details.
"""

import typing

from .common import first_present
from .records import RecordAccessor


# Registry identifier
REGISTRY_NAME = "verra"

# Field-name candidates, snake_case API exports first, then CSV download headers
VOLUME_FIELDS = ("quantity_issued", "Quantity Issued")
DETAILS_FIELDS = ("retirement_details", "Retirement Details")
BENEFICIARY_FIELDS = ("retirement_beneficiary", "Retirement Beneficiary")


class VerraRecordAccessor(RecordAccessor):
    registry_name = REGISTRY_NAME
    volume_fields = VOLUME_FIELDS

    def identity_source_text(self, record: typing.Mapping) -> str:
        # Beneficiary and details are searched together for a better hit rate
        beneficiary = first_present(record, BENEFICIARY_FIELDS, "")
        details = first_present(record, DETAILS_FIELDS, "")
        return f"{beneficiary} {details}"

    def fallback_name(self, record: typing.Mapping) -> typing.Any:
        return first_present(record, BENEFICIARY_FIELDS)
