"""Review queue for proposed transfer pairs."""

from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ledgerlink.logger import get_logger
from ledgerlink.models import MatchDecision, MatchDecisionStatus
from ledgerlink.models.base import utcnow
from ledgerlink.services.errors import ConflictError, NotFoundError, ValidationError
from ledgerlink.services.reservations import reserved_transaction_ids
from ledgerlink.services.transaction_store import LinkOutcome, TransactionStore

logger = get_logger(__name__)


async def get_decision(
    db: AsyncSession,
    decision_id: UUID,
    *,
    user_id: UUID,
    for_update: bool = False,
) -> MatchDecision:
    query = select(MatchDecision).where(MatchDecision.id == decision_id).where(MatchDecision.user_id == user_id)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    decision = result.scalar_one_or_none()
    if decision is None:
        raise NotFoundError("Match decision not found")
    return decision


async def list_decisions(
    db: AsyncSession,
    *,
    user_id: UUID,
    status: MatchDecisionStatus | None = None,
    transaction_id: UUID | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[MatchDecision], int]:
    """Highest score first, as the review queue shows them."""
    query = select(MatchDecision).where(MatchDecision.user_id == user_id)
    if status is not None:
        query = query.where(MatchDecision.status == status)
    if transaction_id is not None:
        query = query.where(
            or_(
                MatchDecision.from_transaction_id == transaction_id,
                MatchDecision.to_transaction_id == transaction_id,
            )
        )

    count_result = await db.execute(select(func.count()).select_from(query.subquery()))
    total = count_result.scalar_one()

    result = await db.execute(
        query.order_by(MatchDecision.score.desc(), MatchDecision.created_at, MatchDecision.id)
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars()), total


async def decision_stats(db: AsyncSession, *, user_id: UUID) -> dict[str, int]:
    result = await db.execute(
        select(MatchDecision.status, func.count())
        .where(MatchDecision.user_id == user_id)
        .group_by(MatchDecision.status)
    )
    stats = {status.value: 0 for status in MatchDecisionStatus}
    for status, count in result.all():
        stats[status.value] = count
    stats["total"] = sum(stats.values())
    return stats


async def confirm_decision(db: AsyncSession, decision_id: UUID, *, user_id: UUID) -> MatchDecision:
    """Link the pair and mark the decision confirmed.

    Confirming an already linked decision returns it unchanged. Raises
    ConflictError when either transaction is no longer free: linked
    elsewhere, locked since the decision was made (unless the proposing run
    included locked transactions), or held by a pending transfer.
    """
    decision = await get_decision(db, decision_id, user_id=user_id, for_update=True)

    if decision.status.is_linked:
        return decision
    if decision.status == MatchDecisionStatus.REJECTED:
        raise ValidationError("A rejected match cannot be confirmed")

    pair = (decision.from_transaction_id, decision.to_transaction_id)
    store = TransactionStore(db, user_id=user_id)
    if not await store.are_linked_together(*pair):
        held = await reserved_transaction_ids(db, user_id=user_id)
        if held.intersection(pair):
            logger.warning("Confirm refused, transaction held by a pending transfer", decision_id=str(decision.id))
            raise ConflictError("One of the transactions is reserved by a pending transfer")

        outcome = await store.link_if_unlinked(*pair, allow_locked=decision.include_locked)
        if outcome == LinkOutcome.CONFLICT:
            logger.warning("Confirm failed, transaction no longer free", decision_id=str(decision.id))
            raise ConflictError("One of the transactions is no longer free (linked or locked)")

    decision.status = MatchDecisionStatus.CONFIRMED
    decision.decided_by = str(user_id)
    decision.decided_at = utcnow()
    decision.version += 1
    await db.flush()
    logger.info("Match decision confirmed", decision_id=str(decision.id), score=decision.score)
    return decision


async def reject_decision(
    db: AsyncSession,
    decision_id: UUID,
    *,
    user_id: UUID,
    reason: str | None = None,
) -> MatchDecision:
    """Mark the pair as not a transfer. Both transactions stay unlinked."""
    decision = await get_decision(db, decision_id, user_id=user_id, for_update=True)

    if decision.status == MatchDecisionStatus.REJECTED:
        return decision
    if decision.status.is_linked:
        raise ValidationError(f"A {decision.status.value} match cannot be rejected")

    decision.status = MatchDecisionStatus.REJECTED
    decision.reject_reason = reason
    decision.decided_by = str(user_id)
    decision.decided_at = utcnow()
    decision.version += 1
    await db.flush()
    logger.info("Match decision rejected", decision_id=str(decision.id), reason=reason)
    return decision
