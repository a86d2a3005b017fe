"""
Immutable running-total reducer over funding instruments.

Each application returns a new ``FundingState``; the amount still due is
always derived from the recorded applications, never tracked separately.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Optional, Tuple

from ..core.enums import FundingSource
from .pricing_policy import ZERO, round_money


@dataclass(frozen=True)
class FundingApplication:
    source: FundingSource
    amount: Decimal
    reference: Optional[str] = None


@dataclass(frozen=True)
class FundingState:
    amount_to_collect: Decimal
    applications: Tuple[FundingApplication, ...] = ()

    @classmethod
    def start(cls, amount_to_collect: Decimal) -> "FundingState":
        return cls(amount_to_collect=round_money(amount_to_collect))

    @property
    def applied_total(self) -> Decimal:
        return sum((app.amount for app in self.applications), ZERO)

    @property
    def remaining(self) -> Decimal:
        return max(self.amount_to_collect - self.applied_total, ZERO)

    @property
    def is_covered(self) -> bool:
        return self.remaining <= ZERO

    def applied(self, source: FundingSource) -> Decimal:
        return sum((app.amount for app in self.applications if app.source == source), ZERO)

    def capacity(self, available: Decimal) -> Decimal:
        """How much of ``available`` this state can still absorb."""
        return min(round_money(max(available, ZERO)), self.remaining)

    def apply(
        self, source: FundingSource, amount: Decimal, reference: Optional[str] = None
    ) -> "FundingState":
        applied = self.capacity(amount)
        if applied <= ZERO:
            return self
        return replace(
            self,
            applications=self.applications + (FundingApplication(source, applied, reference),),
        )

    def without(self, source: FundingSource) -> "FundingState":
        """Drop a source's applications, e.g. a gift card hold voided after the card charge."""
        return replace(
            self, applications=tuple(app for app in self.applications if app.source != source)
        )

    def settle_remaining(self, source: FundingSource, reference: Optional[str] = None) -> "FundingState":
        """Attribute whatever is still due to the final instrument (gateway or cash)."""
        return self.apply(source, self.remaining, reference)
