"""Test data factories using factory_boy pattern.

Usage:
    # Simple creation (transient, never touches the DB)
    txn = TransactionFactory.build(account_id=account.id, amount=Decimal("-500.00"))

    # Create and flush to DB (transaction not committed)
    account = await BankAccountFactory.create_async(db, user_id=user_id, name="Chequing")
"""

from datetime import UTC, date, datetime
from decimal import Decimal
from typing import TypeVar
from uuid import UUID, uuid4

import factory
from sqlalchemy.ext.asyncio import AsyncSession

from ledgerlink.models import (
    BankAccount,
    MatchDecision,
    MatchDecisionStatus,
    PendingTransfer,
    PendingTransferStatus,
    Transaction,
    User,
)

T = TypeVar("T")


class AsyncFactoryMixin:
    """Mixin providing async database persistence for factories.

    Subclasses override _build_kwargs() when they need required fields injected.
    """

    @classmethod
    def _build_kwargs(cls, *args, **kwargs) -> dict:
        return kwargs

    @classmethod
    async def create_async(cls, db: AsyncSession, *args, **kwargs) -> T:
        """Create and flush to database (transaction not committed)."""
        build_kwargs = cls._build_kwargs(*args, **kwargs)
        instance = cls.build(**build_kwargs)
        db.add(instance)
        await db.flush()
        await db.refresh(instance)
        return instance


class UserFactory(factory.Factory, AsyncFactoryMixin):
    class Meta:
        model = User

    id = factory.LazyFunction(uuid4)
    email = factory.Sequence(lambda n: f"user{n}-{uuid4().hex[:8]}@example.com")
    display_name = factory.Sequence(lambda n: f"User {n}")
    created_at = factory.LazyFunction(lambda: datetime.now(UTC))
    updated_at = factory.LazyFunction(lambda: datetime.now(UTC))


class BankAccountFactory(factory.Factory, AsyncFactoryMixin):
    class Meta:
        model = BankAccount

    id = factory.LazyFunction(uuid4)
    name = factory.Sequence(lambda n: f"Account {n}")
    institution = "Test Bank"
    currency = "CAD"
    is_active = True
    created_at = factory.LazyFunction(lambda: datetime.now(UTC))
    updated_at = factory.LazyFunction(lambda: datetime.now(UTC))

    @classmethod
    def _build_kwargs(cls, user_id: UUID, **kwargs) -> dict:
        return {"user_id": user_id, **kwargs}


class TransactionFactory(factory.Factory, AsyncFactoryMixin):
    class Meta:
        model = Transaction

    id = factory.LazyFunction(uuid4)
    txn_date = date(2025, 3, 1)
    amount = Decimal("-100.00")
    description = factory.Sequence(lambda n: f"POS PURCHASE {n}")
    currency = "CAD"
    is_locked = False
    linked_transaction_id = None
    created_at = factory.LazyFunction(lambda: datetime.now(UTC))
    updated_at = factory.LazyFunction(lambda: datetime.now(UTC))

    @classmethod
    def _build_kwargs(cls, account_id: UUID, **kwargs) -> dict:
        return {"account_id": account_id, **kwargs}


class PendingTransferFactory(factory.Factory, AsyncFactoryMixin):
    class Meta:
        model = PendingTransfer

    id = factory.LazyFunction(uuid4)
    amount = Decimal("1000.00")
    transfer_date = date(2025, 4, 10)
    description = "Move to savings"
    status = PendingTransferStatus.PENDING
    match_tolerance_days = 5
    match_tolerance_amount = Decimal("1.00")
    created_at = factory.LazyFunction(lambda: datetime.now(UTC))
    updated_at = factory.LazyFunction(lambda: datetime.now(UTC))

    @classmethod
    def _build_kwargs(cls, user_id: UUID, from_account_id: UUID, to_account_id: UUID, **kwargs) -> dict:
        return {
            "user_id": user_id,
            "created_by": user_id,
            "from_account_id": from_account_id,
            "to_account_id": to_account_id,
            **kwargs,
        }


class MatchDecisionFactory(factory.Factory, AsyncFactoryMixin):
    class Meta:
        model = MatchDecision

    id = factory.LazyFunction(uuid4)
    score = 80
    score_breakdown = factory.LazyFunction(lambda: {"amount": 100.0, "date": 66.67, "description": 70.0})
    amount_diff = Decimal("0.00")
    date_diff_days = 1
    status = MatchDecisionStatus.PENDING_REVIEW
    link_conflict = False
    include_locked = False
    version = 1
    created_at = factory.LazyFunction(lambda: datetime.now(UTC))
    updated_at = factory.LazyFunction(lambda: datetime.now(UTC))

    @classmethod
    def _build_kwargs(cls, user_id: UUID, from_transaction_id: UUID, to_transaction_id: UUID, **kwargs) -> dict:
        return {
            "user_id": user_id,
            "from_transaction_id": from_transaction_id,
            "to_transaction_id": to_transaction_id,
            **kwargs,
        }
