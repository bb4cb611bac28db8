# precast_pricing/services/price_line.py
'''
What the publisher is asked to store: a price the caller supplies, or a
price the calculator computes. Branching happens on the type, not on a
missing field.
'''
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Union

from precast_pricing.services.cost_breakdown_service import CostBreakdown


@dataclass(frozen=True)
class SuppliedPrice:
    amount: Decimal
    adjustment: Decimal = Decimal("0")


@dataclass(frozen=True)
class ComputedPrice:
    # a breakdown the caller already holds for the same piece/zone/date; None = compute now
    breakdown: Optional[CostBreakdown] = None
    adjustment: Decimal = Decimal("0")


PriceLine = Union[SuppliedPrice, ComputedPrice]
