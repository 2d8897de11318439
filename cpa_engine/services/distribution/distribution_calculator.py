"""
Distribution calculator.

Maps an upline to flat, level-indexed payouts. Amounts come from the payout
table only; the event amount never scales them.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from cpa_engine.config.constants import TRANSACTION_ID_PREFIX
from cpa_engine.schemas.config import HierarchySettings, LevelPayoutTable
from cpa_engine.services.hierarchy.hierarchy_resolver import UplineEntry


@dataclass(frozen=True)
class PendingDistribution:
    """Payout computed for one ancestor, not yet persisted."""

    participant_id: int
    level: int
    amount: Decimal
    currency: str


def transaction_id(event_id: int, participant_id: int) -> str:
    """Deterministic transaction identifier, unique per (event, participant)."""
    return f"{TRANSACTION_ID_PREFIX}_{event_id}_{participant_id}"


class DistributionCalculator:
    """Per-level payout computation."""

    def calculate(
        self,
        upline: Iterable[UplineEntry],
        payout_table: LevelPayoutTable,
        hierarchy: HierarchySettings,
    ) -> list[PendingDistribution]:
        """
        Compute distributions for an upline.

        Levels without a table entry, with a non-positive amount or beyond
        max_hierarchy_levels are skipped. Remaining distributions below
        minimum_amount are dropped.

        Args:
            upline: Ancestors (level 2 and above)
            payout_table: Flat amount per level
            hierarchy: Max levels, minimum payout and currency

        Returns:
            Distributions ordered like the upline
        """
        pending = []
        for entry in upline:
            if entry.level > hierarchy.max_hierarchy_levels:
                continue
            amount = payout_table.amount_for(entry.level)
            if amount is None or amount <= 0:
                continue
            pending.append(
                PendingDistribution(
                    participant_id=entry.participant_id,
                    level=entry.level,
                    amount=amount,
                    currency=hierarchy.currency,
                )
            )

        return [d for d in pending if d.amount >= hierarchy.minimum_amount]

    @staticmethod
    def total(distributions: Iterable[PendingDistribution]) -> Decimal:
        return sum((d.amount for d in distributions), Decimal("0"))
