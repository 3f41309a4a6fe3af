"""Bank and credit-card accounts that statements are imported into."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledgerlink.database import Base
from ledgerlink.models.base import TimestampMixin, UserOwnedMixin, UUIDMixin

if TYPE_CHECKING:
    from ledgerlink.models.transaction import Transaction


class BankAccount(Base, UUIDMixin, UserOwnedMixin, TimestampMixin):
    """A real-world account (chequing, savings, credit card, line of credit)."""

    __tablename__ = "bank_accounts"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    institution: Mapped[str | None] = mapped_column(String(255), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="CAD")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    transactions: Mapped[list[Transaction]] = relationship("Transaction", back_populates="account")

    def __repr__(self) -> str:
        return f"<BankAccount {self.name} ({self.currency})>"
