"""Pydantic schemas package."""

from ledgerlink.schemas.base import BaseResponse, ListResponse
from ledgerlink.schemas.pending_transfers import (
    AmbiguousSideResponse,
    PendingTransferCreate,
    PendingTransferListResponse,
    PendingTransferMatchRequest,
    PendingTransferMatchResponse,
    PendingTransferResponse,
    PendingTransferSummaryResponse,
    PendingTransferUpdate,
)
from ledgerlink.schemas.transfers import (
    DecisionStatsResponse,
    DetectionFilter,
    DetectionSummaryResponse,
    MatchDecisionListResponse,
    MatchDecisionResponse,
    RejectDecisionRequest,
    TransferDetectionRequest,
    TransferDetectionResponse,
)

__all__ = [
    "AmbiguousSideResponse",
    "BaseResponse",
    "DecisionStatsResponse",
    "DetectionFilter",
    "DetectionSummaryResponse",
    "ListResponse",
    "MatchDecisionListResponse",
    "MatchDecisionResponse",
    "PendingTransferCreate",
    "PendingTransferListResponse",
    "PendingTransferMatchRequest",
    "PendingTransferMatchResponse",
    "PendingTransferResponse",
    "PendingTransferSummaryResponse",
    "PendingTransferUpdate",
    "RejectDecisionRequest",
    "TransferDetectionRequest",
    "TransferDetectionResponse",
]
