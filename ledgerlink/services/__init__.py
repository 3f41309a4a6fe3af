"""Services package."""

from ledgerlink.services.errors import (
    AmbiguousMatchError,
    ConflictError,
    NotFoundError,
    TransferEngineError,
    ValidationError,
)
from ledgerlink.services.pending_transfers import (
    PendingMatchReport,
    cancel_pending_transfer,
    create_pending_transfer,
    delete_pending_transfer,
    get_pending_transfer,
    list_pending_transfers,
    match_pending_transfers,
    pending_transfer_summary,
    update_pending_transfer,
)
from ledgerlink.services.transaction_store import LinkOutcome, TransactionFilter, TransactionStore
from ledgerlink.services.transfer_candidates import CandidateParams, TransferCandidate, generate_candidates
from ledgerlink.services.transfer_matching import (
    DetectionResult,
    DetectionSummary,
    GreedyResolver,
    MatchResolver,
    run_transfer_detection,
)
from ledgerlink.services.transfer_review import (
    confirm_decision,
    decision_stats,
    get_decision,
    list_decisions,
    reject_decision,
)
from ledgerlink.services.transfer_scoring import DetectionConfig, load_detection_config, score_candidates

__all__ = [
    "AmbiguousMatchError",
    "CandidateParams",
    "ConflictError",
    "DetectionConfig",
    "DetectionResult",
    "DetectionSummary",
    "GreedyResolver",
    "LinkOutcome",
    "MatchResolver",
    "NotFoundError",
    "PendingMatchReport",
    "TransactionFilter",
    "TransactionStore",
    "TransferCandidate",
    "TransferEngineError",
    "ValidationError",
    "cancel_pending_transfer",
    "confirm_decision",
    "create_pending_transfer",
    "decision_stats",
    "delete_pending_transfer",
    "generate_candidates",
    "get_decision",
    "get_pending_transfer",
    "list_decisions",
    "list_pending_transfers",
    "load_detection_config",
    "match_pending_transfers",
    "pending_transfer_summary",
    "reject_decision",
    "run_transfer_detection",
    "score_candidates",
    "update_pending_transfer",
]
