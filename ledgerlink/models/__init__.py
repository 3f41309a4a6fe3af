"""SQLAlchemy models package."""

from ledgerlink.models.account import BankAccount
from ledgerlink.models.match_decision import SYSTEM_DECIDER, MatchDecision, MatchDecisionStatus
from ledgerlink.models.pending_transfer import (
    PENDING_TRANSFER_TRANSITIONS,
    PendingTransfer,
    PendingTransferStatus,
)
from ledgerlink.models.transaction import Transaction
from ledgerlink.models.user import User

__all__ = [
    "PENDING_TRANSFER_TRANSITIONS",
    "SYSTEM_DECIDER",
    "BankAccount",
    "MatchDecision",
    "MatchDecisionStatus",
    "PendingTransfer",
    "PendingTransferStatus",
    "Transaction",
    "User",
]
