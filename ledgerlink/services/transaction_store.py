"""Read access to transactions and the atomic link write.

The engine never updates transactions except through ``link_if_unlinked``,
which pairs two rows in a single conditional UPDATE. The UPDATE only touches
rows that are still unlinked (and unlocked), and it must touch both of them
or the savepoint is rolled back. Together with the unique index on
``linked_transaction_id`` this keeps links one-to-one across concurrent runs
without any in-process locking.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy import Uuid, case, literal, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ledgerlink.config import settings
from ledgerlink.logger import get_logger
from ledgerlink.models import BankAccount, Transaction
from ledgerlink.services.errors import ValidationError

logger = get_logger(__name__)


class LinkOutcome(str, enum.Enum):
    LINKED = "linked"
    CONFLICT = "conflict"


@dataclass(frozen=True)
class TransactionFilter:
    """Which transactions to pull for a run.

    Either a date window or an explicit list of ids must be given. When
    ``transaction_ids`` is set the window is ignored.
    """

    date_from: date | None = None
    date_to: date | None = None
    account_ids: tuple[UUID, ...] | None = None
    transaction_ids: tuple[UUID, ...] | None = None
    exclude_linked: bool = True
    exclude_locked: bool = True


class _IncompleteLink(Exception):
    """Raised inside the savepoint to roll back a one-sided link."""


class TransactionStore:
    """User-scoped view over the transactions table."""

    def __init__(self, db: AsyncSession, *, user_id: UUID, max_rows: int | None = None) -> None:
        self.db = db
        self.user_id = user_id
        self.max_rows = max_rows or settings.transfer_max_window_size

    def _owned_accounts(self):
        return select(BankAccount.id).where(BankAccount.user_id == self.user_id)

    async def fetch(self, txn_filter: TransactionFilter) -> list[Transaction]:
        """Return matching transactions on the user's active accounts, oldest first."""
        query = (
            select(Transaction)
            .join(BankAccount, BankAccount.id == Transaction.account_id)
            .where(BankAccount.user_id == self.user_id)
            .where(BankAccount.is_active.is_(True))
            .where(Transaction.amount != 0)
        )

        if txn_filter.transaction_ids is not None:
            if not txn_filter.transaction_ids:
                return []
            query = query.where(Transaction.id.in_(txn_filter.transaction_ids))
        else:
            if txn_filter.date_from is None or txn_filter.date_to is None:
                raise ValidationError("date_from and date_to are required without transaction_ids")
            if txn_filter.date_from > txn_filter.date_to:
                raise ValidationError("date_from must not be after date_to")
            query = query.where(Transaction.txn_date.between(txn_filter.date_from, txn_filter.date_to))

        if txn_filter.account_ids:
            query = query.where(Transaction.account_id.in_(txn_filter.account_ids))
        if txn_filter.exclude_linked:
            query = query.where(Transaction.linked_transaction_id.is_(None))
        if txn_filter.exclude_locked:
            query = query.where(Transaction.is_locked.is_(False))

        query = query.order_by(Transaction.txn_date, Transaction.id).limit(self.max_rows + 1)
        result = await self.db.execute(query)
        rows = list(result.scalars())
        if len(rows) > self.max_rows:
            raise ValidationError(
                f"More than {self.max_rows} transactions in range; narrow the date window or accounts"
            )
        return rows

    async def get_many(self, transaction_ids: list[UUID]) -> dict[UUID, Transaction]:
        if not transaction_ids:
            return {}
        result = await self.db.execute(
            select(Transaction)
            .where(Transaction.id.in_(transaction_ids))
            .where(Transaction.account_id.in_(self._owned_accounts()))
            .execution_options(populate_existing=True)
        )
        return {txn.id: txn for txn in result.scalars()}

    async def are_linked_together(self, first_id: UUID, second_id: UUID) -> bool:
        rows = await self.get_many([first_id, second_id])
        first, second = rows.get(first_id), rows.get(second_id)
        if first is None or second is None:
            return False
        return first.linked_transaction_id == second_id and second.linked_transaction_id == first_id

    async def link_if_unlinked(
        self,
        first_id: UUID,
        second_id: UUID,
        *,
        allow_locked: bool = False,
    ) -> LinkOutcome:
        """Point the two transactions at each other if both are still free.

        Returns CONFLICT, leaving both rows untouched, when either one is
        already linked, locked (unless ``allow_locked``), missing, or owned by
        another user.
        """
        if first_id == second_id:
            raise ValidationError("A transaction cannot be linked to itself")

        stmt = (
            update(Transaction)
            .where(Transaction.id.in_((first_id, second_id)))
            .where(Transaction.linked_transaction_id.is_(None))
            .where(Transaction.account_id.in_(self._owned_accounts()))
            .values(
                linked_transaction_id=case(
                    (Transaction.id == first_id, literal(second_id, Uuid(as_uuid=True))),
                    else_=literal(first_id, Uuid(as_uuid=True)),
                )
            )
            .execution_options(synchronize_session=False)
        )
        if not allow_locked:
            stmt = stmt.where(Transaction.is_locked.is_(False))

        try:
            async with self.db.begin_nested():
                result = await self.db.execute(stmt)
                if result.rowcount != 2:
                    raise _IncompleteLink(result.rowcount)
        except _IncompleteLink as exc:
            logger.info(
                "Link skipped, transaction no longer free",
                first_id=str(first_id),
                second_id=str(second_id),
                rows_updated=exc.args[0],
            )
            return LinkOutcome.CONFLICT
        except IntegrityError as exc:
            logger.warning(
                "Link rejected by unique index",
                first_id=str(first_id),
                second_id=str(second_id),
                error=str(exc.orig),
            )
            return LinkOutcome.CONFLICT

        # Bring any loaded instances in line with the UPDATE.
        await self.get_many([first_id, second_id])
        return LinkOutcome.LINKED
