"""API tests for /transfers.

Data the API must see is seeded through ``committed_session``; the app reads
it through its own sessions.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from ledgerlink.models import BankAccount, MatchDecision, MatchDecisionStatus, Transaction


async def _seed_pair(session: AsyncSession, user_id, *, credit_amount: str = "500.00", credit_day: int = 1):
    chequing = BankAccount(user_id=user_id, name="Chequing", currency="CAD")
    savings = BankAccount(user_id=user_id, name="Savings", currency="CAD")
    session.add_all([chequing, savings])
    await session.flush()
    debit = Transaction(
        account_id=chequing.id,
        txn_date=date(2025, 3, 1),
        amount=Decimal("-500.00"),
        description="WWW TFR 000123",
        currency="CAD",
    )
    credit = Transaction(
        account_id=savings.id,
        txn_date=date(2025, 3, credit_day),
        amount=Decimal(credit_amount),
        description="FROM CHEQUING",
        currency="CAD",
    )
    session.add_all([debit, credit])
    await session.commit()
    return debit, credit


async def _seed_decision(session: AsyncSession, user_id, **kwargs):
    debit, credit = await _seed_pair(session, user_id)
    decision = MatchDecision(
        user_id=user_id,
        from_transaction_id=debit.id,
        to_transaction_id=credit.id,
        score=kwargs.pop("score", 80),
        score_breakdown={"amount": 100.0, "date": 100.0, "description": 70.0},
        amount_diff=Decimal("0.00"),
        date_diff_days=0,
        status=kwargs.pop("status", MatchDecisionStatus.PENDING_REVIEW),
        link_conflict=False,
        version=1,
    )
    session.add(decision)
    await session.commit()
    return decision


MARCH = {"filter": {"date_from": "2025-03-01", "date_to": "2025-03-31"}}


@pytest.mark.asyncio
async def test_requires_authentication(public_client: AsyncClient) -> None:
    response = await public_client.post("/transfers/detect", json=MARCH)
    assert response.status_code == 401

    response = await public_client.get("/transfers/decisions")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_token_for_unknown_user_is_rejected(public_client: AsyncClient) -> None:
    from ledgerlink.security import create_access_token

    token = create_access_token(data={"sub": str(uuid4())})
    response = await public_client.get("/transfers/decisions", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_detect_auto_links_exact_pair(client: AsyncClient, committed_session: AsyncSession, test_user) -> None:
    debit, credit = await _seed_pair(committed_session, test_user.id)

    response = await client.post("/transfers/detect", json=MARCH)

    assert response.status_code == 200
    body = response.json()
    assert body["summary"]["auto_linked"] == 1
    assert body["summary"]["pending_review"] == 0
    decision = body["decisions"][0]
    assert decision["from_transaction_id"] == str(debit.id)
    assert decision["to_transaction_id"] == str(credit.id)
    assert decision["status"] == "auto_linked"
    assert decision["decided_by"] == "system"

    again = await client.post("/transfers/detect", json=MARCH)
    assert again.json()["decisions"] == []


@pytest.mark.asyncio
async def test_detect_dry_run(client: AsyncClient, committed_session: AsyncSession, test_user) -> None:
    await _seed_pair(committed_session, test_user.id)

    response = await client.post("/transfers/detect", json={**MARCH, "dry_run": True})

    assert response.status_code == 200
    decision = response.json()["decisions"][0]
    assert decision["id"] is None
    assert decision["status"] == "pending_review"
    assert decision["score_breakdown"]["auto_link_eligible"] is True

    listed = await client.get("/transfers/decisions")
    assert listed.json()["total"] == 0


@pytest.mark.asyncio
async def test_detect_validation(client: AsyncClient) -> None:
    response = await client.post("/transfers/detect", json={})
    assert response.status_code == 422

    response = await client.post(
        "/transfers/detect",
        json={"filter": {"date_from": "2025-03-31", "date_to": "2025-03-01"}},
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_review_flow(client: AsyncClient, committed_session: AsyncSession, test_user) -> None:
    await _seed_pair(committed_session, test_user.id, credit_amount="499.60", credit_day=4)

    detect = await client.post("/transfers/detect", json=MARCH)
    assert detect.status_code == 200
    assert detect.json()["summary"]["pending_review"] == 1
    decision_id = detect.json()["decisions"][0]["id"]

    queue = await client.get("/transfers/decisions", params={"status": "pending_review"})
    assert [item["id"] for item in queue.json()["items"]] == [decision_id]

    fetched = await client.get(f"/transfers/decisions/{decision_id}")
    assert fetched.status_code == 200
    assert fetched.json()["version"] == 1

    confirmed = await client.post(f"/transfers/decisions/{decision_id}/confirm")
    assert confirmed.status_code == 200
    assert confirmed.json()["status"] == "confirmed"
    assert confirmed.json()["version"] == 2

    repeat = await client.post(f"/transfers/decisions/{decision_id}/confirm")
    assert repeat.status_code == 200
    assert repeat.json()["version"] == 2

    reject = await client.post(f"/transfers/decisions/{decision_id}/reject", json={"reason": "oops"})
    assert reject.status_code == 400

    stats = await client.get("/transfers/decisions/stats")
    assert stats.json() == {"pending_review": 0, "auto_linked": 0, "confirmed": 1, "rejected": 0, "total": 1}


@pytest.mark.asyncio
async def test_reject_without_body(client: AsyncClient, committed_session: AsyncSession, test_user) -> None:
    decision = await _seed_decision(committed_session, test_user.id)

    response = await client.post(f"/transfers/decisions/{decision.id}/reject")

    assert response.status_code == 200
    assert response.json()["status"] == "rejected"
    assert response.json()["reject_reason"] is None

    confirm = await client.post(f"/transfers/decisions/{decision.id}/confirm")
    assert confirm.status_code == 400


@pytest.mark.asyncio
async def test_unknown_decision_is_404(client: AsyncClient) -> None:
    missing = uuid4()
    assert (await client.get(f"/transfers/decisions/{missing}")).status_code == 404
    assert (await client.post(f"/transfers/decisions/{missing}/confirm")).status_code == 404
    assert (await client.post(f"/transfers/decisions/{missing}/reject")).status_code == 404


@pytest.mark.asyncio
async def test_other_users_decisions_are_hidden(
    client: AsyncClient, committed_session: AsyncSession, test_user
) -> None:
    decision = await _seed_decision(committed_session, uuid4())

    assert (await client.get(f"/transfers/decisions/{decision.id}")).status_code == 404
    assert (await client.get("/transfers/decisions")).json()["total"] == 0
