"""Pending transfer API router."""

from uuid import UUID

from fastapi import APIRouter, Query, Response, status

from ledgerlink.deps import CurrentUserId, DbSession
from ledgerlink.models import PendingTransferStatus
from ledgerlink.schemas import (
    AmbiguousSideResponse,
    PendingTransferCreate,
    PendingTransferListResponse,
    PendingTransferMatchRequest,
    PendingTransferMatchResponse,
    PendingTransferResponse,
    PendingTransferSummaryResponse,
    PendingTransferUpdate,
)
from ledgerlink.services import (
    TransferEngineError,
    cancel_pending_transfer,
    create_pending_transfer,
    delete_pending_transfer,
    get_pending_transfer,
    list_pending_transfers,
    match_pending_transfers,
    pending_transfer_summary,
    update_pending_transfer,
)
from ledgerlink.utils import raise_for_engine_error

router = APIRouter(prefix="/pending-transfers", tags=["pending-transfers"])


@router.post("", response_model=PendingTransferResponse, status_code=status.HTTP_201_CREATED)
async def create_transfer(
    payload: PendingTransferCreate,
    db: DbSession,
    user_id: CurrentUserId,
) -> PendingTransferResponse:
    """Declare a transfer that has not reached the statements yet."""
    try:
        entry = await create_pending_transfer(db, user_id=user_id, data=payload)
    except TransferEngineError as exc:
        await db.rollback()
        raise_for_engine_error(exc)
    await db.commit()
    return PendingTransferResponse.model_validate(entry)


@router.get("", response_model=PendingTransferListResponse)
async def list_transfers(
    db: DbSession,
    user_id: CurrentUserId,
    status_filter: PendingTransferStatus | None = Query(None, alias="status"),
    account_id: UUID | None = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
) -> PendingTransferListResponse:
    entries, total = await list_pending_transfers(
        db,
        user_id=user_id,
        status=status_filter,
        account_id=account_id,
        limit=limit,
        offset=offset,
    )
    return PendingTransferListResponse(
        items=[PendingTransferResponse.model_validate(entry) for entry in entries],
        total=total,
    )


@router.get("/summary", response_model=PendingTransferSummaryResponse)
async def get_summary(db: DbSession, user_id: CurrentUserId) -> PendingTransferSummaryResponse:
    counts = await pending_transfer_summary(db, user_id=user_id)
    return PendingTransferSummaryResponse(**counts)


@router.post("/match", response_model=PendingTransferMatchResponse)
async def match_transfers(
    db: DbSession,
    user_id: CurrentUserId,
    payload: PendingTransferMatchRequest | None = None,
) -> PendingTransferMatchResponse:
    """Sweep open pending transfers against imported transactions."""
    account_ids = payload.account_ids if payload else None
    report = await match_pending_transfers(db, user_id=user_id, account_ids=account_ids)
    await db.commit()
    return PendingTransferMatchResponse(
        matched=report.matched,
        partial=report.partial,
        ambiguous=[
            AmbiguousSideResponse(
                pending_transfer_id=side.pending_transfer_id,
                side=side.side,
                candidate_ids=side.candidate_ids,
            )
            for side in report.ambiguous
        ],
        conflicts=report.conflicts,
    )


@router.get("/{transfer_id}", response_model=PendingTransferResponse)
async def get_transfer(
    transfer_id: UUID,
    db: DbSession,
    user_id: CurrentUserId,
) -> PendingTransferResponse:
    try:
        entry = await get_pending_transfer(db, transfer_id, user_id=user_id)
    except TransferEngineError as exc:
        raise_for_engine_error(exc)
    return PendingTransferResponse.model_validate(entry)


@router.patch("/{transfer_id}", response_model=PendingTransferResponse)
async def update_transfer(
    transfer_id: UUID,
    payload: PendingTransferUpdate,
    db: DbSession,
    user_id: CurrentUserId,
) -> PendingTransferResponse:
    try:
        entry = await update_pending_transfer(db, transfer_id, user_id=user_id, data=payload)
    except TransferEngineError as exc:
        await db.rollback()
        raise_for_engine_error(exc)
    await db.commit()
    return PendingTransferResponse.model_validate(entry)


@router.post("/{transfer_id}/cancel", response_model=PendingTransferResponse)
async def cancel_transfer(
    transfer_id: UUID,
    db: DbSession,
    user_id: CurrentUserId,
) -> PendingTransferResponse:
    try:
        entry = await cancel_pending_transfer(db, transfer_id, user_id=user_id)
    except TransferEngineError as exc:
        await db.rollback()
        raise_for_engine_error(exc)
    await db.commit()
    return PendingTransferResponse.model_validate(entry)


@router.delete("/{transfer_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_transfer(
    transfer_id: UUID,
    db: DbSession,
    user_id: CurrentUserId,
) -> Response:
    """Only pending or cancelled transfers can be deleted."""
    try:
        await delete_pending_transfer(db, transfer_id, user_id=user_id)
    except TransferEngineError as exc:
        await db.rollback()
        raise_for_engine_error(exc)
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
