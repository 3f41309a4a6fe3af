"""Transfer detection runs.

A run matches open pending transfers first, then pulls the transaction
window, proposes candidate pairs, scores them and resolves them to a
one-to-one assignment. Each accepted pair becomes a MatchDecision, committed
on its own so a crash part-way through keeps everything decided so far.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Protocol
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ledgerlink.logger import async_log_timing, bound_context, get_logger, log_timing
from ledgerlink.models import SYSTEM_DECIDER, MatchDecision, MatchDecisionStatus
from ledgerlink.models.base import utcnow
from ledgerlink.schemas.transfers import TransferDetectionRequest
from ledgerlink.services.pending_transfers import match_pending_transfers
from ledgerlink.services.reservations import open_review_transaction_ids, reserved_transaction_ids
from ledgerlink.services.transaction_store import LinkOutcome, TransactionFilter, TransactionStore
from ledgerlink.services.transfer_candidates import CandidateParams, TransferCandidate, generate_candidates
from ledgerlink.services.transfer_scoring import load_detection_config, score_candidates

logger = get_logger(__name__)


class MatchResolver(Protocol):
    """Turns scored candidates into pairs that share no transaction."""

    def resolve(self, candidates: Sequence[TransferCandidate]) -> list[TransferCandidate]: ...


def ranking_key(candidate: TransferCandidate) -> tuple[int, int, Decimal, tuple[str, str]]:
    """Best first: higher score, then closer date, then closer amount, then pair ids."""
    return (-candidate.score, candidate.date_diff_days, candidate.amount_diff, candidate.pair_key)


class GreedyResolver:
    """Accept candidates in ranking order unless a transaction is already claimed.

    This is not an optimal weighted bipartite matching. Near-ties between
    competing pairs are rare in real statements, and any other strategy with
    the same ``resolve`` signature can be passed to ``run_transfer_detection``.
    """

    def resolve(self, candidates: Sequence[TransferCandidate]) -> list[TransferCandidate]:
        claimed: set[UUID] = set()
        accepted: list[TransferCandidate] = []
        for candidate in sorted(candidates, key=ranking_key):
            if candidate.from_transaction_id in claimed or candidate.to_transaction_id in claimed:
                continue
            claimed.update(candidate.pair)
            accepted.append(candidate)
        return accepted


@dataclass
class DetectionSummary:
    auto_linked: int = 0
    pending_review: int = 0
    rejected_conflicts: int = 0
    candidates: int = 0
    analyzed: int = 0
    pending_transfers_matched: int = 0
    pending_transfers_partial: int = 0
    pending_transfers_ambiguous: int = 0


@dataclass
class DetectionResult:
    summary: DetectionSummary
    decisions: list[MatchDecision] = field(default_factory=list)


async def decided_pairs(db: AsyncSession, candidates: Sequence[TransferCandidate]) -> set[tuple[UUID, UUID]]:
    """Pairs that already carry a decision of any status."""
    if not candidates:
        return set()
    from_ids = {candidate.from_transaction_id for candidate in candidates}
    result = await db.execute(
        select(MatchDecision.from_transaction_id, MatchDecision.to_transaction_id).where(
            MatchDecision.from_transaction_id.in_(from_ids)
        )
    )
    return {(from_id, to_id) for from_id, to_id in result.all()}


def _new_decision(candidate: TransferCandidate, *, user_id: UUID, include_locked: bool = False) -> MatchDecision:
    return MatchDecision(
        user_id=user_id,
        from_transaction_id=candidate.from_transaction_id,
        to_transaction_id=candidate.to_transaction_id,
        score=candidate.score,
        score_breakdown=dict(candidate.breakdown),
        amount_diff=candidate.amount_diff,
        date_diff_days=candidate.date_diff_days,
        status=MatchDecisionStatus.PENDING_REVIEW,
        link_conflict=False,
        include_locked=include_locked,
        version=1,
    )


async def _persist_decision(
    db: AsyncSession,
    store: TransactionStore,
    candidate: TransferCandidate,
    *,
    user_id: UUID,
    auto_link: bool,
    include_locked: bool,
    summary: DetectionSummary,
) -> MatchDecision | None:
    decision = _new_decision(candidate, user_id=user_id, include_locked=include_locked)
    try:
        async with db.begin_nested():
            db.add(decision)
            await db.flush()
    except IntegrityError:
        # Another run recorded this pair between our read and our insert.
        logger.warning(
            "Decision already recorded for pair, skipping",
            from_transaction_id=str(candidate.from_transaction_id),
            to_transaction_id=str(candidate.to_transaction_id),
        )
        summary.rejected_conflicts += 1
        return None

    if auto_link:
        outcome = await store.link_if_unlinked(
            candidate.from_transaction_id, candidate.to_transaction_id, allow_locked=include_locked
        )
        if outcome == LinkOutcome.LINKED:
            decision.status = MatchDecisionStatus.AUTO_LINKED
            decision.decided_by = SYSTEM_DECIDER
            decision.decided_at = utcnow()
        else:
            decision.link_conflict = True
            summary.rejected_conflicts += 1
            logger.warning(
                "Auto-link lost to a concurrent writer, queued for review",
                decision_id=str(decision.id),
                score=candidate.score,
            )

    if decision.status == MatchDecisionStatus.AUTO_LINKED:
        summary.auto_linked += 1
    else:
        summary.pending_review += 1

    await db.flush()
    await db.commit()
    return decision


async def run_transfer_detection(
    db: AsyncSession,
    *,
    user_id: UUID,
    request: TransferDetectionRequest,
    resolver: MatchResolver | None = None,
) -> DetectionResult:
    """Detect inter-account transfers for one user.

    Safe to re-run over the same window: linked transactions, transactions
    already in the review queue and pairs that already have a decision are
    never proposed again.
    """
    config = load_detection_config()
    threshold = (
        request.auto_link_threshold if request.auto_link_threshold is not None else config.auto_link_threshold
    )
    date_tolerance = (
        request.date_tolerance_days if request.date_tolerance_days is not None else config.date_tolerance_days
    )
    amount_tolerance = request.amount_tolerance if request.amount_tolerance is not None else config.amount_tolerance
    account_ids = request.filter.account_ids if request.filter else None
    resolver = resolver or GreedyResolver()

    summary = DetectionSummary()
    result = DetectionResult(summary=summary)

    with bound_context(detection_run_id=str(uuid4()), user_id=str(user_id)):
        async with async_log_timing("detect_transfers", logger=logger, dry_run=request.dry_run) as timing:
            if not request.dry_run:
                report = await match_pending_transfers(db, user_id=user_id, account_ids=account_ids)
                await db.commit()
                summary.pending_transfers_matched = len(report.matched)
                summary.pending_transfers_partial = len(report.partial)
                summary.pending_transfers_ambiguous = len(report.ambiguous)

            store = TransactionStore(db, user_id=user_id)
            txn_filter = TransactionFilter(
                date_from=request.filter.date_from if request.filter else None,
                date_to=request.filter.date_to if request.filter else None,
                transaction_ids=tuple(request.transaction_ids) if request.transaction_ids else None,
                exclude_locked=request.exclude_locked,
            )
            transactions = await store.fetch(txn_filter)
            summary.analyzed = len(transactions)

            excluded = await reserved_transaction_ids(db, user_id=user_id)
            excluded |= await open_review_transaction_ids(db, user_id=user_id)
            params = CandidateParams(
                amount_tolerance=amount_tolerance,
                date_tolerance_days=date_tolerance,
                exclude_locked=request.exclude_locked,
                account_ids=frozenset(account_ids) if account_ids else None,
                excluded_ids=frozenset(excluded),
            )
            with log_timing("generate_candidates", logger=logger, level="debug", pool=len(transactions)) as gen:
                candidates = generate_candidates(transactions, params)
                gen["candidates"] = len(candidates)
            already_decided = await decided_pairs(db, candidates)
            candidates = [candidate for candidate in candidates if candidate.pair not in already_decided]
            summary.candidates = len(candidates)

            with log_timing("score_candidates", logger=logger, level="debug", candidates=len(candidates)):
                score_candidates(
                    candidates,
                    config,
                    amount_tolerance=amount_tolerance,
                    date_tolerance_days=date_tolerance,
                )
            for candidate in candidates:
                candidate.breakdown["auto_link_eligible"] = candidate.score >= threshold

            for candidate in resolver.resolve(candidates):
                if request.dry_run:
                    result.decisions.append(
                        _new_decision(candidate, user_id=user_id, include_locked=not request.exclude_locked)
                    )
                    summary.pending_review += 1
                    continue
                decision = await _persist_decision(
                    db,
                    store,
                    candidate,
                    user_id=user_id,
                    auto_link=candidate.score >= threshold,
                    include_locked=not request.exclude_locked,
                    summary=summary,
                )
                if decision is not None:
                    result.decisions.append(decision)

            timing.update(
                analyzed=summary.analyzed,
                candidates=summary.candidates,
                auto_linked=summary.auto_linked,
                pending_review=summary.pending_review,
                rejected_conflicts=summary.rejected_conflicts,
            )

    return result

