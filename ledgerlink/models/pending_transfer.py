"""Manually declared transfers awaiting their statement lines."""

from __future__ import annotations

import enum
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from ledgerlink.database import Base
from ledgerlink.models.base import Money, TimestampMixin, UserOwnedMixin, UUIDMixin


class PendingTransferStatus(str, enum.Enum):
    """Lifecycle of a pending transfer."""

    PENDING = "pending"
    PARTIAL = "partial"
    MATCHED = "matched"
    CANCELLED = "cancelled"

    @property
    def is_open(self) -> bool:
        return self in (PendingTransferStatus.PENDING, PendingTransferStatus.PARTIAL)

    def can_transition_to(self, target: PendingTransferStatus) -> bool:
        return target in PENDING_TRANSFER_TRANSITIONS[self]


PENDING_TRANSFER_TRANSITIONS: dict[PendingTransferStatus, frozenset[PendingTransferStatus]] = {
    PendingTransferStatus.PENDING: frozenset(
        {
            PendingTransferStatus.PARTIAL,
            PendingTransferStatus.MATCHED,
            PendingTransferStatus.CANCELLED,
        }
    ),
    PendingTransferStatus.PARTIAL: frozenset(
        {PendingTransferStatus.MATCHED, PendingTransferStatus.CANCELLED}
    ),
    PendingTransferStatus.MATCHED: frozenset(),
    PendingTransferStatus.CANCELLED: frozenset(),
}

# Status must agree with which transaction ids are filled in.
STATUS_CONSISTENCY_SQL = (
    "(status = 'matched' AND from_transaction_id IS NOT NULL"
    " AND to_transaction_id IS NOT NULL AND matched_at IS NOT NULL)"
    " OR (status = 'partial' AND matched_at IS NULL"
    " AND ((from_transaction_id IS NOT NULL AND to_transaction_id IS NULL)"
    " OR (from_transaction_id IS NULL AND to_transaction_id IS NOT NULL)))"
    " OR (status IN ('pending', 'cancelled') AND from_transaction_id IS NULL"
    " AND to_transaction_id IS NULL AND matched_at IS NULL)"
)


class PendingTransfer(Base, UUIDMixin, UserOwnedMixin, TimestampMixin):
    """
    A transfer the user told us about before the statements arrived.

    Each detection run tries to find the debit on ``from_account_id`` and the
    credit on ``to_account_id``. Once both are found the two transactions are
    linked and the entry is matched.
    """

    __tablename__ = "pending_transfers"
    __table_args__ = (
        CheckConstraint("from_account_id <> to_account_id", name="ck_pending_transfers_distinct_accounts"),
        CheckConstraint("amount > 0", name="ck_pending_transfers_positive_amount"),
        CheckConstraint("match_tolerance_days >= 0", name="ck_pending_transfers_tolerance_days"),
        CheckConstraint("match_tolerance_amount >= 0", name="ck_pending_transfers_tolerance_amount"),
        CheckConstraint(STATUS_CONSISTENCY_SQL, name="ck_pending_transfers_status_consistency"),
        Index("ix_pending_transfers_from_account_status", "from_account_id", "status"),
        Index("ix_pending_transfers_to_account_status", "to_account_id", "status"),
        Index("ix_pending_transfers_date_status", "transfer_date", "status"),
    )

    created_by: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    from_account_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("bank_accounts.id", ondelete="CASCADE"), nullable=False
    )
    to_account_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("bank_accounts.id", ondelete="CASCADE"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    transfer_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[PendingTransferStatus] = mapped_column(
        Enum(
            PendingTransferStatus,
            name="pending_transfer_status_enum",
            values_callable=lambda obj: [e.value for e in obj],
        ),
        nullable=False,
        default=PendingTransferStatus.PENDING,
    )
    from_transaction_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("transactions.id"), nullable=True
    )
    to_transaction_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("transactions.id"), nullable=True
    )
    match_tolerance_days: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    match_tolerance_amount: Mapped[Decimal] = mapped_column(
        Money, nullable=False, default=Decimal("0.50")
    )
    matched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<PendingTransfer {self.transfer_date} {self.amount} ({self.status.value})>"
