"""
Shared schema types.
"""
from decimal import Decimal
from typing import Annotated
from pydantic import BeforeValidator


def _reject_float(value):
    """Money travels as decimal strings or integers, never binary floats."""
    if isinstance(value, float):
        raise ValueError("monetary amounts must be sent as decimal strings or integers")
    return value


MoneyAmount = Annotated[Decimal, BeforeValidator(_reject_float)]
