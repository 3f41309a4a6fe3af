"""Pending transfer ledger: declared transfers and their opportunistic matching."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ledgerlink.config import settings
from ledgerlink.logger import get_logger, log_exception
from ledgerlink.models import BankAccount, PendingTransfer, PendingTransferStatus, Transaction
from ledgerlink.models.base import utcnow
from ledgerlink.schemas.pending_transfers import PendingTransferCreate, PendingTransferUpdate
from ledgerlink.services.errors import AmbiguousMatchError, NotFoundError, ValidationError
from ledgerlink.services.reservations import open_review_transaction_ids, reserved_transaction_ids
from ledgerlink.services.transaction_store import LinkOutcome, TransactionStore

logger = get_logger(__name__)

OPEN_STATUSES = (PendingTransferStatus.PENDING, PendingTransferStatus.PARTIAL)
FROM_SIDE = "from"
TO_SIDE = "to"


@dataclass(frozen=True)
class AmbiguousSide:
    pending_transfer_id: UUID
    side: str
    candidate_ids: list[UUID]


@dataclass
class PendingMatchReport:
    """What one matching sweep did to the open pending transfers."""

    matched: list[UUID] = field(default_factory=list)
    partial: list[UUID] = field(default_factory=list)
    ambiguous: list[AmbiguousSide] = field(default_factory=list)
    conflicts: list[UUID] = field(default_factory=list)


def _transition(entry: PendingTransfer, target: PendingTransferStatus) -> None:
    if entry.status == target:
        return
    if not entry.status.can_transition_to(target):
        raise ValidationError(f"Cannot move pending transfer from {entry.status.value} to {target.value}")
    logger.info(
        "Pending transfer status changed",
        pending_transfer_id=str(entry.id),
        from_status=entry.status.value,
        to_status=target.value,
    )
    entry.status = target


async def _load_owned_accounts(
    db: AsyncSession, account_ids: list[UUID], *, user_id: UUID
) -> dict[UUID, BankAccount]:
    result = await db.execute(
        select(BankAccount).where(BankAccount.id.in_(account_ids)).where(BankAccount.user_id == user_id)
    )
    return {account.id: account for account in result.scalars()}


async def create_pending_transfer(
    db: AsyncSession,
    *,
    user_id: UUID,
    data: PendingTransferCreate,
) -> PendingTransfer:
    """Declare a transfer. Starts in ``pending``."""
    if data.from_account_id == data.to_account_id:
        raise ValidationError("from_account_id and to_account_id must differ")
    if data.amount <= 0:
        raise ValidationError("amount must be greater than zero")

    tolerance_days = (
        data.match_tolerance_days
        if data.match_tolerance_days is not None
        else settings.pending_transfer_tolerance_days
    )
    tolerance_amount = (
        data.match_tolerance_amount
        if data.match_tolerance_amount is not None
        else settings.pending_transfer_tolerance_amount
    )
    if tolerance_days < 0 or tolerance_amount < 0:
        raise ValidationError("match tolerances must not be negative")

    accounts = await _load_owned_accounts(db, [data.from_account_id, data.to_account_id], user_id=user_id)
    from_account = accounts.get(data.from_account_id)
    to_account = accounts.get(data.to_account_id)
    if from_account is None or to_account is None:
        raise ValidationError("Both accounts must exist and belong to the user")
    if from_account.currency.upper() != to_account.currency.upper():
        raise ValidationError(
            f"Accounts use different currencies ({from_account.currency} vs {to_account.currency})"
        )

    entry = PendingTransfer(
        user_id=user_id,
        created_by=user_id,
        from_account_id=data.from_account_id,
        to_account_id=data.to_account_id,
        amount=data.amount,
        transfer_date=data.transfer_date,
        description=data.description,
        notes=data.notes,
        status=PendingTransferStatus.PENDING,
        match_tolerance_days=tolerance_days,
        match_tolerance_amount=tolerance_amount,
    )
    db.add(entry)
    await db.flush()
    await db.refresh(entry)
    logger.info(
        "Pending transfer created",
        pending_transfer_id=str(entry.id),
        amount=str(entry.amount),
        transfer_date=entry.transfer_date.isoformat(),
    )
    return entry


async def get_pending_transfer(
    db: AsyncSession,
    transfer_id: UUID,
    *,
    user_id: UUID,
    for_update: bool = False,
) -> PendingTransfer:
    query = (
        select(PendingTransfer)
        .where(PendingTransfer.id == transfer_id)
        .where(PendingTransfer.user_id == user_id)
    )
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    entry = result.scalar_one_or_none()
    if entry is None:
        raise NotFoundError("Pending transfer not found")
    return entry


async def list_pending_transfers(
    db: AsyncSession,
    *,
    user_id: UUID,
    status: PendingTransferStatus | None = None,
    account_id: UUID | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[PendingTransfer], int]:
    """Newest transfer date first. Returns (page, total)."""
    query = select(PendingTransfer).where(PendingTransfer.user_id == user_id)
    if status is not None:
        query = query.where(PendingTransfer.status == status)
    if account_id is not None:
        query = query.where(
            or_(PendingTransfer.from_account_id == account_id, PendingTransfer.to_account_id == account_id)
        )

    count_result = await db.execute(select(func.count()).select_from(query.subquery()))
    total = count_result.scalar_one()

    result = await db.execute(
        query.order_by(PendingTransfer.transfer_date.desc(), PendingTransfer.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars()), total


async def pending_transfer_summary(db: AsyncSession, *, user_id: UUID) -> dict[str, int]:
    result = await db.execute(
        select(PendingTransfer.status, func.count())
        .where(PendingTransfer.user_id == user_id)
        .group_by(PendingTransfer.status)
    )
    counts = {status.value: 0 for status in PendingTransferStatus}
    for status, count in result.all():
        counts[status.value] = count
    counts["awaiting_match"] = counts["pending"] + counts["partial"]
    return counts


async def update_pending_transfer(
    db: AsyncSession,
    transfer_id: UUID,
    *,
    user_id: UUID,
    data: PendingTransferUpdate,
) -> PendingTransfer:
    entry = await get_pending_transfer(db, transfer_id, user_id=user_id, for_update=True)
    if not entry.status.is_open:
        raise NotFoundError(f"Pending transfer is {entry.status.value} and can no longer be edited")

    changes = data.model_dump(exclude_unset=True)
    matching_fields = {"amount", "transfer_date", "match_tolerance_days", "match_tolerance_amount"}
    if matching_fields & changes.keys() and entry.status != PendingTransferStatus.PENDING:
        raise ValidationError("Amount, date and tolerances can only change while the transfer is pending")
    for name in ("amount", "transfer_date", "match_tolerance_days", "match_tolerance_amount"):
        if name in changes and changes[name] is None:
            raise ValidationError(f"{name} cannot be cleared")

    for name, value in changes.items():
        setattr(entry, name, value)

    await db.flush()
    await db.refresh(entry)
    return entry


async def cancel_pending_transfer(db: AsyncSession, transfer_id: UUID, *, user_id: UUID) -> PendingTransfer:
    """Cancel an open transfer. Any half-matched transaction is released."""
    entry = await get_pending_transfer(db, transfer_id, user_id=user_id, for_update=True)
    if not entry.status.is_open:
        raise NotFoundError(f"Pending transfer is {entry.status.value} and cannot be cancelled")

    _transition(entry, PendingTransferStatus.CANCELLED)
    entry.from_transaction_id = None
    entry.to_transaction_id = None
    await db.flush()
    await db.refresh(entry)
    return entry


async def delete_pending_transfer(db: AsyncSession, transfer_id: UUID, *, user_id: UUID) -> None:
    entry = await get_pending_transfer(db, transfer_id, user_id=user_id, for_update=True)
    if entry.status not in (PendingTransferStatus.PENDING, PendingTransferStatus.CANCELLED):
        raise NotFoundError(f"Pending transfer is {entry.status.value} and cannot be deleted")

    await db.execute(delete(PendingTransfer).where(PendingTransfer.id == entry.id))
    await db.flush()
    logger.info("Pending transfer deleted", pending_transfer_id=str(transfer_id))


async def find_side_transaction(
    db: AsyncSession,
    entry: PendingTransfer,
    side: str,
    *,
    reserved: set[UUID],
) -> Transaction | None:
    """Best unlinked transaction for one side of the transfer, if any.

    The ``from`` side looks for a debit on the source account and the ``to``
    side for a credit on the destination account. Best means closest date,
    then closest amount. Raises AmbiguousMatchError when several candidates
    tie for best.
    """
    tolerance = Decimal(entry.match_tolerance_amount)
    low, high = entry.amount - tolerance, entry.amount + tolerance
    window = timedelta(days=entry.match_tolerance_days)

    query = (
        select(Transaction)
        .where(Transaction.txn_date.between(entry.transfer_date - window, entry.transfer_date + window))
        .where(Transaction.linked_transaction_id.is_(None))
        .where(Transaction.is_locked.is_(False))
    )
    if side == FROM_SIDE:
        query = query.where(Transaction.account_id == entry.from_account_id).where(
            Transaction.amount.between(-high, -low)
        )
    else:
        query = query.where(Transaction.account_id == entry.to_account_id).where(
            Transaction.amount.between(low, high)
        )

    result = await db.execute(query)
    # The amount band can straddle zero when the tolerance exceeds the amount.
    found = [
        txn
        for txn in result.scalars()
        if txn.id not in reserved and (txn.is_debit if side == FROM_SIDE else txn.is_credit)
    ]
    if not found:
        return None

    def rank(txn: Transaction) -> tuple[int, Decimal]:
        return (abs((txn.txn_date - entry.transfer_date).days), abs(abs(txn.amount) - entry.amount))

    found.sort(key=lambda txn: (rank(txn), str(txn.id)))
    best = [txn for txn in found if rank(txn) == rank(found[0])]
    if len(best) > 1:
        raise AmbiguousMatchError(
            f"{len(best)} equally good {side} transactions for pending transfer {entry.id}",
            side=side,
            candidate_ids=[str(txn.id) for txn in best],
        )
    return best[0]


async def _match_entry(
    db: AsyncSession,
    store: TransactionStore,
    entry: PendingTransfer,
    *,
    reserved: set[UUID],
    report: PendingMatchReport,
) -> None:
    found: dict[str, UUID | None] = {
        FROM_SIDE: entry.from_transaction_id,
        TO_SIDE: entry.to_transaction_id,
    }
    for side, current in list(found.items()):
        if current is not None:
            continue
        try:
            txn = await find_side_transaction(db, entry, side, reserved=reserved)
        except AmbiguousMatchError as exc:
            log_exception(
                logger,
                exc,
                "Pending transfer side is ambiguous, leaving unmatched",
                level="warning",
                include_traceback=False,
                pending_transfer_id=str(entry.id),
                side=side,
                candidate_ids=exc.candidate_ids,
            )
            report.ambiguous.append(
                AmbiguousSide(
                    pending_transfer_id=entry.id,
                    side=side,
                    candidate_ids=[UUID(value) for value in exc.candidate_ids],
                )
            )
            continue
        if txn is not None:
            found[side] = txn.id

    from_id, to_id = found[FROM_SIDE], found[TO_SIDE]
    if from_id is not None and to_id is not None:
        outcome = await store.link_if_unlinked(from_id, to_id)
        if outcome == LinkOutcome.CONFLICT:
            logger.warning(
                "Pending transfer link conflicted, keeping status",
                pending_transfer_id=str(entry.id),
                status=entry.status.value,
            )
            report.conflicts.append(entry.id)
            return
        _transition(entry, PendingTransferStatus.MATCHED)
        entry.from_transaction_id = from_id
        entry.to_transaction_id = to_id
        entry.matched_at = utcnow()
        reserved.update((from_id, to_id))
        report.matched.append(entry.id)
    elif (from_id, to_id) != (entry.from_transaction_id, entry.to_transaction_id):
        _transition(entry, PendingTransferStatus.PARTIAL)
        entry.from_transaction_id = from_id
        entry.to_transaction_id = to_id
        reserved.update(value for value in (from_id, to_id) if value is not None)
        report.partial.append(entry.id)
    else:
        return

    await db.flush()


async def match_pending_transfers(
    db: AsyncSession,
    *,
    user_id: UUID,
    account_ids: list[UUID] | None = None,
) -> PendingMatchReport:
    """Try to complete every open pending transfer from imported transactions.

    Entries are processed oldest transfer date first so results do not depend
    on insertion order. Ambiguous sides and link conflicts are reported, never
    raised.
    """
    query = (
        select(PendingTransfer)
        .where(PendingTransfer.user_id == user_id)
        .where(PendingTransfer.status.in_(OPEN_STATUSES))
    )
    if account_ids:
        query = query.where(
            or_(
                PendingTransfer.from_account_id.in_(account_ids),
                PendingTransfer.to_account_id.in_(account_ids),
            )
        )
    query = query.order_by(PendingTransfer.transfer_date, PendingTransfer.created_at, PendingTransfer.id)

    result = await db.execute(query)
    entries = list(result.scalars())
    report = PendingMatchReport()
    if not entries:
        return report

    # Transactions in an open review item stay with the reviewer.
    reserved = await reserved_transaction_ids(db, user_id=user_id)
    reserved |= await open_review_transaction_ids(db, user_id=user_id)
    store = TransactionStore(db, user_id=user_id)
    for entry in entries:
        await _match_entry(db, store, entry, reserved=reserved, report=report)

    logger.info(
        "Pending transfer sweep finished",
        open_entries=len(entries),
        matched=len(report.matched),
        partial=len(report.partial),
        ambiguous=len(report.ambiguous),
        conflicts=len(report.conflicts),
    )
    return report
