"""Transactions that one workflow holds and the others must leave alone.

A pending transfer holds the sides it has found; an open review item holds
both of its transactions. Detection, the pending-transfer sweep and review
confirmation all consult these sets before claiming a transaction.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ledgerlink.models import MatchDecision, MatchDecisionStatus, PendingTransfer, PendingTransferStatus


async def reserved_transaction_ids(db: AsyncSession, *, user_id: UUID) -> set[UUID]:
    """Transactions held by a pending, partial or matched transfer."""
    result = await db.execute(
        select(PendingTransfer.from_transaction_id, PendingTransfer.to_transaction_id)
        .where(PendingTransfer.user_id == user_id)
        .where(PendingTransfer.status != PendingTransferStatus.CANCELLED)
    )
    reserved: set[UUID] = set()
    for row in result.all():
        reserved.update(value for value in row if value is not None)
    return reserved


async def open_review_transaction_ids(db: AsyncSession, *, user_id: UUID) -> set[UUID]:
    """Transactions already waiting in the review queue."""
    result = await db.execute(
        select(MatchDecision.from_transaction_id, MatchDecision.to_transaction_id)
        .where(MatchDecision.user_id == user_id)
        .where(MatchDecision.status == MatchDecisionStatus.PENDING_REVIEW)
    )
    claimed: set[UUID] = set()
    for row in result.all():
        claimed.update(row)
    return claimed
