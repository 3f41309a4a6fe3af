"""Pydantic schemas for pending transfers."""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from ledgerlink.models.pending_transfer import PendingTransferStatus
from ledgerlink.schemas.base import BaseResponse, ListResponse


class PendingTransferCreate(BaseModel):
    """Schema for declaring a transfer before it shows up on statements."""

    from_account_id: UUID
    to_account_id: UUID
    amount: Annotated[Decimal, Field(gt=0, max_digits=18, decimal_places=2)]
    transfer_date: date
    description: Annotated[str | None, Field(None, max_length=500)] = None
    notes: str | None = None
    # Omitted tolerances fall back to the configured defaults.
    match_tolerance_days: Annotated[int | None, Field(None, ge=0, le=60)] = None
    match_tolerance_amount: Annotated[Decimal | None, Field(None, ge=0, max_digits=18, decimal_places=2)] = None

    @model_validator(mode="after")
    def accounts_differ(self) -> "PendingTransferCreate":
        if self.from_account_id == self.to_account_id:
            raise ValueError("from_account_id and to_account_id must differ")
        return self


class PendingTransferUpdate(BaseModel):
    """Partial update. Amount, date and tolerances are only editable while pending."""

    description: Annotated[str | None, Field(None, max_length=500)] = None
    notes: str | None = None
    amount: Annotated[Decimal | None, Field(None, gt=0, max_digits=18, decimal_places=2)] = None
    transfer_date: date | None = None
    match_tolerance_days: Annotated[int | None, Field(None, ge=0, le=60)] = None
    match_tolerance_amount: Annotated[Decimal | None, Field(None, ge=0, max_digits=18, decimal_places=2)] = None


class PendingTransferResponse(BaseResponse):
    id: UUID
    user_id: UUID
    created_by: UUID
    from_account_id: UUID
    to_account_id: UUID
    amount: Decimal
    transfer_date: date
    description: str | None
    notes: str | None
    status: PendingTransferStatus
    from_transaction_id: UUID | None
    to_transaction_id: UUID | None
    match_tolerance_days: int
    match_tolerance_amount: Decimal
    matched_at: datetime | None
    created_at: datetime
    updated_at: datetime


PendingTransferListResponse = ListResponse[PendingTransferResponse]


class PendingTransferSummaryResponse(BaseModel):
    """Counts shown above the pending transfers list."""

    awaiting_match: int
    pending: int
    partial: int
    matched: int
    cancelled: int


class PendingTransferMatchRequest(BaseModel):
    """Limit an on-demand matching sweep to some accounts."""

    account_ids: list[UUID] | None = None


class AmbiguousSideResponse(BaseModel):
    pending_transfer_id: UUID
    side: str
    candidate_ids: list[UUID]


class PendingTransferMatchResponse(BaseModel):
    matched: list[UUID]
    partial: list[UUID]
    ambiguous: list[AmbiguousSideResponse]
    conflicts: list[UUID]
