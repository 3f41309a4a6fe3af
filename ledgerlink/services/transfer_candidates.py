"""Candidate pair generation for transfer detection.

Pure functions over already-loaded transactions; nothing here touches the
database, so the same code runs for previews and real runs.
"""

from __future__ import annotations

from bisect import bisect_left, bisect_right
from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any
from uuid import UUID

from ledgerlink.models import Transaction


@dataclass(frozen=True)
class CandidateParams:
    """Tolerances and pool filters for one generation pass."""

    amount_tolerance: Decimal = Decimal("0.50")
    date_tolerance_days: int = 3
    exclude_locked: bool = True
    # A pair qualifies when at least one side is on one of these accounts.
    account_ids: frozenset[UUID] | None = None
    # Reserved elsewhere (pending transfers, open review items).
    excluded_ids: frozenset[UUID] = frozenset()


@dataclass
class TransferCandidate:
    """A debit/credit pair that could be the two halves of one transfer."""

    from_transaction_id: UUID
    to_transaction_id: UUID
    amount_diff: Decimal
    date_diff_days: int
    score: int = 0
    breakdown: dict[str, Any] = field(default_factory=dict)
    debit_description: str | None = field(default=None, repr=False, compare=False)
    credit_description: str | None = field(default=None, repr=False, compare=False)

    @property
    def pair(self) -> tuple[UUID, UUID]:
        return (self.from_transaction_id, self.to_transaction_id)

    @property
    def pair_key(self) -> tuple[str, str]:
        return (str(self.from_transaction_id), str(self.to_transaction_id))


def eligible_pool(transactions: Iterable[Transaction], params: CandidateParams) -> list[Transaction]:
    """Drop zero amounts and anything linked, locked or reserved."""
    return [
        txn
        for txn in transactions
        if txn.amount != 0
        and txn.linked_transaction_id is None
        and not (params.exclude_locked and txn.is_locked)
        and txn.id not in params.excluded_ids
    ]


def generate_candidates(
    transactions: Iterable[Transaction],
    params: CandidateParams,
) -> list[TransferCandidate]:
    """Propose every opposite-sign, cross-account pair within tolerance.

    The debit (negative amount) is always the ``from`` side. Both sides must
    carry the same currency. Returns an empty list when the pool spans fewer
    than two accounts. Output order is stable: by (from id, to id).
    """
    pool = eligible_pool(transactions, params)
    if len({txn.account_id for txn in pool}) < 2:
        return []

    debits = [txn for txn in pool if txn.is_debit]
    credits = sorted((txn for txn in pool if txn.is_credit), key=lambda t: (t.amount, str(t.id)))
    credit_amounts = [txn.amount for txn in credits]
    tolerance = params.amount_tolerance
    filtered = params.account_ids

    candidates: list[TransferCandidate] = []
    for debit in debits:
        target = -debit.amount
        lo = bisect_left(credit_amounts, target - tolerance)
        hi = bisect_right(credit_amounts, target + tolerance)
        for credit in credits[lo:hi]:
            if credit.account_id == debit.account_id:
                continue
            if (credit.currency or "").upper() != (debit.currency or "").upper():
                continue
            date_diff = abs((credit.txn_date - debit.txn_date).days)
            if date_diff > params.date_tolerance_days:
                continue
            if filtered and debit.account_id not in filtered and credit.account_id not in filtered:
                continue
            candidates.append(
                TransferCandidate(
                    from_transaction_id=debit.id,
                    to_transaction_id=credit.id,
                    amount_diff=abs(credit.amount - target),
                    date_diff_days=date_diff,
                    debit_description=debit.description,
                    credit_description=credit.description,
                )
            )

    candidates.sort(key=lambda c: c.pair_key)
    return candidates
