"""Persisted outcomes of transfer detection runs."""

from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from ledgerlink.database import Base
from ledgerlink.models.base import Money, TimestampMixin, UserOwnedMixin, UUIDMixin

SYSTEM_DECIDER = "system"


class MatchDecisionStatus(str, enum.Enum):
    """Outcome of a proposed transfer pair."""

    AUTO_LINKED = "auto_linked"
    PENDING_REVIEW = "pending_review"
    REJECTED = "rejected"
    CONFIRMED = "confirmed"

    @property
    def is_linked(self) -> bool:
        return self in (MatchDecisionStatus.AUTO_LINKED, MatchDecisionStatus.CONFIRMED)


class MatchDecision(Base, UUIDMixin, UserOwnedMixin, TimestampMixin):
    """A proposed debit/credit pairing and what happened to it."""

    __tablename__ = "match_decisions"
    __table_args__ = (
        UniqueConstraint(
            "from_transaction_id",
            "to_transaction_id",
            name="uq_match_decisions_pair",
        ),
        Index("ix_match_decisions_user_status", "user_id", "status"),
    )

    from_transaction_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("transactions.id", ondelete="CASCADE"), nullable=False
    )
    to_transaction_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("transactions.id", ondelete="CASCADE"), nullable=False
    )
    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Component scores are 0-100 percentages, not money.
    score_breakdown: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    amount_diff: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0.00"))
    date_diff_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[MatchDecisionStatus] = mapped_column(
        Enum(
            MatchDecisionStatus,
            name="match_decision_status_enum",
            values_callable=lambda obj: [e.value for e in obj],
        ),
        nullable=False,
        default=MatchDecisionStatus.PENDING_REVIEW,
    )
    # "system" for auto-links, otherwise the reviewing user's id
    decided_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    link_conflict: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # Set when the proposing run included locked transactions; confirm may then link them.
    include_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reject_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    def __repr__(self) -> str:
        return f"<MatchDecision {self.from_transaction_id}->{self.to_transaction_id} {self.score} ({self.status.value})>"
