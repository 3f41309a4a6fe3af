"""Transfer detection and review API router."""

from uuid import UUID

from fastapi import APIRouter, Query

from ledgerlink.deps import CurrentUserId, DbSession
from ledgerlink.models import MatchDecisionStatus
from ledgerlink.schemas import (
    DecisionStatsResponse,
    DetectionSummaryResponse,
    MatchDecisionListResponse,
    MatchDecisionResponse,
    RejectDecisionRequest,
    TransferDetectionRequest,
    TransferDetectionResponse,
)
from ledgerlink.services import (
    TransferEngineError,
    confirm_decision,
    decision_stats,
    get_decision,
    list_decisions,
    reject_decision,
    run_transfer_detection,
)
from ledgerlink.utils import raise_for_engine_error

router = APIRouter(prefix="/transfers", tags=["transfers"])


@router.post("/detect", response_model=TransferDetectionResponse)
async def detect_transfers(
    payload: TransferDetectionRequest,
    db: DbSession,
    user_id: CurrentUserId,
) -> TransferDetectionResponse:
    """Run transfer detection over a date window or an explicit set of transactions.

    With ``dry_run`` nothing is written and every proposed pair comes back as
    ``pending_review``.
    """
    try:
        result = await run_transfer_detection(db, user_id=user_id, request=payload)
    except TransferEngineError as exc:
        await db.rollback()
        raise_for_engine_error(exc)
    await db.commit()

    return TransferDetectionResponse(
        summary=DetectionSummaryResponse.model_validate(result.summary),
        decisions=[MatchDecisionResponse.model_validate(decision) for decision in result.decisions],
    )


@router.get("/decisions", response_model=MatchDecisionListResponse)
async def list_match_decisions(
    db: DbSession,
    user_id: CurrentUserId,
    status: MatchDecisionStatus | None = None,
    transaction_id: UUID | None = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
) -> MatchDecisionListResponse:
    """Review queue, highest score first."""
    decisions, total = await list_decisions(
        db,
        user_id=user_id,
        status=status,
        transaction_id=transaction_id,
        limit=limit,
        offset=offset,
    )
    return MatchDecisionListResponse(
        items=[MatchDecisionResponse.model_validate(decision) for decision in decisions],
        total=total,
    )


@router.get("/decisions/stats", response_model=DecisionStatsResponse)
async def get_decision_stats(db: DbSession, user_id: CurrentUserId) -> DecisionStatsResponse:
    stats = await decision_stats(db, user_id=user_id)
    return DecisionStatsResponse(**stats)


@router.get("/decisions/{decision_id}", response_model=MatchDecisionResponse)
async def get_match_decision(
    decision_id: UUID,
    db: DbSession,
    user_id: CurrentUserId,
) -> MatchDecisionResponse:
    try:
        decision = await get_decision(db, decision_id, user_id=user_id)
    except TransferEngineError as exc:
        raise_for_engine_error(exc)
    return MatchDecisionResponse.model_validate(decision)


@router.post("/decisions/{decision_id}/confirm", response_model=MatchDecisionResponse)
async def confirm_match_decision(
    decision_id: UUID,
    db: DbSession,
    user_id: CurrentUserId,
) -> MatchDecisionResponse:
    """Link the pair. Confirming twice is a no-op."""
    try:
        decision = await confirm_decision(db, decision_id, user_id=user_id)
    except TransferEngineError as exc:
        await db.rollback()
        raise_for_engine_error(exc)
    await db.commit()
    return MatchDecisionResponse.model_validate(decision)


@router.post("/decisions/{decision_id}/reject", response_model=MatchDecisionResponse)
async def reject_match_decision(
    decision_id: UUID,
    db: DbSession,
    user_id: CurrentUserId,
    payload: RejectDecisionRequest | None = None,
) -> MatchDecisionResponse:
    """Mark the pair as not a transfer; it will not be proposed again."""
    reason = payload.reason if payload else None
    try:
        decision = await reject_decision(db, decision_id, user_id=user_id, reason=reason)
    except TransferEngineError as exc:
        await db.rollback()
        raise_for_engine_error(exc)
    await db.commit()
    return MatchDecisionResponse.model_validate(decision)
