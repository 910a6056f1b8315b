"""
Pandera schemas for validating retirement facts and buyer profiles.
"""

import typing

import pandera as pa


RegistryType = typing.Literal[
    'verra',
    'car',
]

VerdictType = typing.Literal[
    'out_of_range',
    'invalid',
    'noise',
    'valid',
]

REGISTRIES = typing.get_args(RegistryType)
VERDICTS = typing.get_args(VerdictType)


# One row per raw retirement record, with the verdict that decided its fate
retirement_facts_schema = pa.DataFrameSchema(
    {
        'registry': pa.Column(pa.String, pa.Check.isin(REGISTRIES), nullable=False, coerce=True),
        'verdict': pa.Column(pa.String, pa.Check.isin(VERDICTS), nullable=False, coerce=True),
        'buyer_name': pa.Column(pa.String, nullable=True, coerce=True),
        'buyer_id': pa.Column(pa.String, nullable=True, coerce=True),
        'quantity': pa.Column(pa.Float, nullable=False, coerce=True),
        'retirement_date': pa.Column(pa.String, nullable=True, coerce=True),
        'retired_at': pa.Column(pa.DateTime, nullable=True, coerce=True),
        'project_name': pa.Column(pa.String, nullable=True, coerce=True),
        'project_id': pa.Column(pa.String, nullable=True, coerce=True),
        'project_type': pa.Column(pa.String, nullable=True, coerce=True),
    }
)


buyer_schema = pa.DataFrameSchema(
    {
        'buyer_id': pa.Column(pa.String, nullable=False, unique=True, coerce=True),
        'name': pa.Column(pa.String, pa.Check.str_length(min_value=2), nullable=False, coerce=True),
        'registry': pa.Column(pa.String, pa.Check.isin(REGISTRIES), nullable=False, coerce=True),
        'total_volume': pa.Column(pa.Int, nullable=False, coerce=True),
        'retirement_count': pa.Column(
            pa.Int, pa.Check.greater_than_or_equal_to(1), nullable=False, coerce=True
        ),
        'latest_date': pa.Column(pa.String, nullable=True, coerce=True),
        'latest_transaction_at': pa.Column(pa.DateTime, nullable=True, coerce=True),
        'latest_project_name': pa.Column(pa.String, nullable=False, coerce=True),
        'latest_project_id': pa.Column(pa.String, nullable=False, coerce=True),
        'latest_project_type': pa.Column(pa.String, nullable=False, coerce=True),
        'project_types': pa.Column(
            pa.Object, pa.Check(lambda s: s.map(len) <= 3), nullable=False
        ),  # List of up to 3 strings
        'tags': pa.Column(pa.Object, nullable=False),  # List of strings
        'is_qualified': pa.Column(pa.Bool, nullable=False, coerce=True),
    }
)
