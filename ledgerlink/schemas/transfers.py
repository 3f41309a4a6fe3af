"""Pydantic schemas for transfer detection and review."""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from ledgerlink.models.match_decision import MatchDecisionStatus
from ledgerlink.schemas.base import BaseResponse, ListResponse


class DetectionFilter(BaseModel):
    """Date window (inclusive) and optional account restriction."""

    date_from: date
    date_to: date
    account_ids: list[UUID] | None = None

    @model_validator(mode="after")
    def window_ordered(self) -> "DetectionFilter":
        if self.date_from > self.date_to:
            raise ValueError("date_from must not be after date_to")
        return self


class TransferDetectionRequest(BaseModel):
    """Request body to run transfer detection.

    Either ``filter`` or ``transaction_ids`` must be given. Tolerances and
    threshold left unset use the configured defaults.
    """

    filter: DetectionFilter | None = None
    transaction_ids: list[UUID] | None = None
    auto_link_threshold: Annotated[int | None, Field(None, ge=0, le=100)] = None
    date_tolerance_days: Annotated[int | None, Field(None, ge=0, le=60)] = None
    amount_tolerance: Annotated[Decimal | None, Field(None, ge=0)] = None
    dry_run: bool = False
    exclude_locked: bool = True

    @model_validator(mode="after")
    def has_scope(self) -> "TransferDetectionRequest":
        if self.filter is None and not self.transaction_ids:
            raise ValueError("Provide filter or transaction_ids")
        return self


class MatchDecisionResponse(BaseResponse):
    # id and timestamps are empty for dry-run previews
    id: UUID | None = None
    from_transaction_id: UUID
    to_transaction_id: UUID
    score: int
    score_breakdown: dict[str, Any]
    amount_diff: Decimal
    date_diff_days: int
    status: MatchDecisionStatus
    decided_by: str | None = None
    decided_at: datetime | None = None
    link_conflict: bool = False
    include_locked: bool = False
    reject_reason: str | None = None
    version: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


MatchDecisionListResponse = ListResponse[MatchDecisionResponse]


class DetectionSummaryResponse(BaseResponse):
    auto_linked: int
    pending_review: int
    rejected_conflicts: int
    candidates: int
    analyzed: int
    pending_transfers_matched: int
    pending_transfers_partial: int
    pending_transfers_ambiguous: int


class TransferDetectionResponse(BaseResponse):
    summary: DetectionSummaryResponse
    decisions: list[MatchDecisionResponse]


class RejectDecisionRequest(BaseModel):
    reason: Annotated[str | None, Field(None, max_length=1000)] = None


class DecisionStatsResponse(BaseModel):
    """Counts per decision status."""

    pending_review: int
    auto_linked: int
    confirmed: int
    rejected: int
    total: int
