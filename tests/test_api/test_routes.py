"""HTTP-level tests: headers to identity, domain errors to status codes, full flows."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from conftest import ADMIN_ID, CLIENT_ID, LAWYER_A
from legal_marketplace.api.deps import get_db_session
from legal_marketplace.main import create_app

CLIENT = {"X-User-Id": CLIENT_ID, "X-User-Role": "CLIENT"}
LAWYER = {"X-User-Id": LAWYER_A, "X-User-Role": "LAWYER"}
ADMIN = {"X-User-Id": ADMIN_ID, "X-User-Role": "ADMIN"}

CASE_BODY = {
    "title": "Tenancy dispute with landlord",
    "description": "Landlord is withholding the security deposit after move-out.",
    "area_of_law": "PROPERTY_LAW",
    "service_type": "COURT_REPRESENTATION",
    "budget_min": 30_000,
    "budget_max": 60_000,
}


@pytest.fixture
def idempotency_store(monkeypatch) -> AsyncMock:
    claim = AsyncMock(return_value=True)
    monkeypatch.setattr("legal_marketplace.api.deps.claim_idempotency", claim)
    monkeypatch.setattr("legal_marketplace.api.deps.release_idempotency", AsyncMock())
    return claim


@pytest.fixture
async def client(session, idempotency_store):
    app = create_app()

    async def _session_override():
        yield session

    app.dependency_overrides[get_db_session] = _session_override
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


async def _assigned_case(client: AsyncClient) -> str:
    """Drive a case through post, bid and acceptance; return its id."""
    case = (await client.post("/api/v1/cases", json=CASE_BODY, headers=CLIENT)).json()
    await client.post(f"/api/v1/cases/{case['id']}/post", headers=CLIENT)
    bid = (
        await client.post(
            "/api/v1/bids",
            json={
                "case_id": case["id"],
                "proposed_fee": 45_000,
                "estimated_timeline": "4 weeks",
                "proposal_text": "I have handled many deposit cases.",
            },
            headers=LAWYER,
        )
    ).json()
    resp = await client.post(f"/api/v1/bids/{bid['id']}/accept", headers=CLIENT)
    assert resp.status_code == 200
    return case["id"]


class TestIdentity:
    async def test_missing_user_header(self, client) -> None:
        resp = await client.get("/api/v1/cases")

        assert resp.status_code == 403
        assert resp.json()["error"] == "FORBIDDEN"

    async def test_unknown_role(self, client) -> None:
        resp = await client.get("/api/v1/cases", headers={"X-User-Id": "x", "X-User-Role": "ROOT"})

        assert resp.status_code == 403

    async def test_request_id_echoed(self, client) -> None:
        resp = await client.get("/api/v1/cases", headers={**CLIENT, "X-Request-ID": "req-42"})

        assert resp.status_code == 200
        assert resp.headers["X-Request-ID"] == "req-42"

    async def test_admin_only_endpoint(self, client) -> None:
        resp = await client.get(
            "/api/v1/events", params={"after": "2020-01-01T00:00:00"}, headers=CLIENT
        )

        assert resp.status_code == 403


class TestErrorMapping:
    async def test_not_found(self, client) -> None:
        resp = await client.get(
            "/api/v1/cases/00000000-0000-0000-0000-000000000000", headers=CLIENT
        )

        assert resp.status_code == 404
        assert resp.json()["error"] == "CASE_NOT_FOUND"

    async def test_body_validation(self, client) -> None:
        resp = await client.post(
            "/api/v1/cases", json={**CASE_BODY, "budget_min": 90_000}, headers=CLIENT
        )

        assert resp.status_code == 422

    async def test_invalid_transition_is_conflict(self, client) -> None:
        case_id = await _assigned_case(client)
        await client.post(f"/api/v1/escrow/{case_id}", json={"lawyer_id": LAWYER_A}, headers=CLIENT)

        resp = await client.post(f"/api/v1/escrow/{case_id}/confirm", headers=CLIENT)

        assert resp.status_code == 409
        assert resp.json()["error"] == "INVALID_STATE_TRANSITION"

    async def test_insufficient_funds(self, client) -> None:
        resp = await client.post(
            "/api/v1/payouts",
            json={
                "amount": 5_000,
                "method": "BANK_TRANSFER",
                "account_details": {"account_name": "A. Lawyer", "account_number": "PK00TEST"},
            },
            headers=LAWYER,
        )

        assert resp.status_code == 402
        assert resp.json()["error"] == "INSUFFICIENT_FUNDS"

    async def test_duplicate_idempotency_key(self, client, idempotency_store) -> None:
        case_id = await _assigned_case(client)
        await client.post(f"/api/v1/escrow/{case_id}", json={"lawyer_id": LAWYER_A}, headers=CLIENT)
        idempotency_store.return_value = False

        resp = await client.post(
            f"/api/v1/escrow/{case_id}/fund",
            json={"transaction_id": "txn-1"},
            headers={**CLIENT, "Idempotency-Key": "fund-1"},
        )

        assert resp.status_code == 409
        assert resp.json()["error"] == "DUPLICATE_OPERATION"
        idempotency_store.assert_awaited_once_with("escrow_fund", "fund-1")


class TestEscrowFlow:
    async def test_bid_to_release(self, client) -> None:
        case_id = await _assigned_case(client)

        created = await client.post(
            f"/api/v1/escrow/{case_id}", json={"lawyer_id": LAWYER_A}, headers=CLIENT
        )
        assert created.status_code == 201
        assert created.json()["status"] == "PENDING_PAYMENT"
        assert created.json()["escrow_amount"] == 22_500

        funded = await client.post(
            f"/api/v1/escrow/{case_id}/fund",
            json={"transaction_id": "txn-1"},
            headers={**CLIENT, "Idempotency-Key": "fund-1"},
        )
        assert funded.status_code == 200
        body = funded.json()
        assert body["status"] == "FUNDED"
        assert body["transaction_id"] == "txn-1"
        assert "dispute_reason" not in body

        await client.post(f"/api/v1/escrow/{case_id}/confirm", headers=LAWYER)
        released = await client.post(f"/api/v1/escrow/{case_id}/confirm", headers=CLIENT)

        assert released.json()["status"] == "RELEASED"
        assert released.json()["release_amount"] == 22_500
        case = (await client.get(f"/api/v1/cases/{case_id}", headers=CLIENT)).json()
        assert case["status"] == "COMPLETED"

        earnings = (await client.get("/api/v1/earnings", headers=LAWYER)).json()
        assert [e["amount"] for e in earnings] == [22_500]

    async def test_double_confirmation_is_validation_error(self, client) -> None:
        case_id = await _assigned_case(client)
        await client.post(f"/api/v1/escrow/{case_id}", json={"lawyer_id": LAWYER_A}, headers=CLIENT)
        await client.post(
            f"/api/v1/escrow/{case_id}/fund", json={"transaction_id": "txn-1"}, headers=CLIENT
        )
        await client.post(f"/api/v1/escrow/{case_id}/confirm", headers=LAWYER)

        resp = await client.post(f"/api/v1/escrow/{case_id}/confirm", headers=LAWYER)

        assert resp.status_code == 422
        assert resp.json()["error"] == "CONFIRMATION_ALREADY_RECORDED"

    async def test_dispute_and_admin_split(self, client) -> None:
        case_id = await _assigned_case(client)
        await client.post(f"/api/v1/escrow/{case_id}", json={"lawyer_id": LAWYER_A}, headers=CLIENT)
        await client.post(
            f"/api/v1/escrow/{case_id}/fund", json={"transaction_id": "txn-1"}, headers=CLIENT
        )

        disputed = await client.post(
            f"/api/v1/escrow/{case_id}/dispute",
            json={"reason": "Hearing was missed without notice"},
            headers=CLIENT,
        )
        assert disputed.json()["status"] == "DISPUTED"
        assert disputed.json()["disputed_by"] == CLIENT_ID

        bad_split = await client.post(
            f"/api/v1/escrow/{case_id}/resolve",
            json={"client_percent": 50, "lawyer_percent": 40},
            headers=ADMIN,
        )
        assert bad_split.status_code == 422

        resolved = await client.post(
            f"/api/v1/escrow/{case_id}/resolve",
            json={"client_percent": 40, "lawyer_percent": 60},
            headers=ADMIN,
        )
        assert resolved.status_code == 200
        assert resolved.json()["release_amount"] == 13_500
        assert resolved.json()["refund_amount"] == 9_000

    async def test_status_and_events(self, client) -> None:
        case_id = await _assigned_case(client)
        await client.post(f"/api/v1/escrow/{case_id}", json={"lawyer_id": LAWYER_A}, headers=CLIENT)

        status = (await client.get(f"/api/v1/escrow/{case_id}/status", headers=CLIENT)).json()
        events = (await client.get(f"/api/v1/escrow/{case_id}/events", headers=CLIENT)).json()

        assert status["status"] == "PENDING_PAYMENT"
        assert status["allowed_events"] == ["payment_confirmed"]
        assert [e["event_type"] for e in events] == ["ESCROW_CREATED"]
        assert events[0]["metadata"]["escrow_amount"] == 22_500


class TestAvailabilityRoutes:
    async def test_schedule_and_slots(self, client) -> None:
        schedule = {
            "weekly_schedule": {
                "0": {"enabled": True, "slots": [{"start_time": "09:00", "end_time": "10:30"}]}
            },
            "consultation_duration": 30,
            "buffer_time": 15,
        }
        put = await client.put("/api/v1/availability", json=schedule, headers=LAWYER)
        assert put.status_code == 200

        slots = await client.get(
            f"/api/v1/availability/{LAWYER_A}/slots", params={"date": "2030-01-14"}, headers=CLIENT
        )

        assert slots.status_code == 200
        assert [s["start_time"] for s in slots.json()] == ["09:00", "09:45"]


class TestHealth:
    @pytest.fixture
    def stores(self, monkeypatch, session) -> AsyncMock:
        redis = AsyncMock()
        monkeypatch.setattr("legal_marketplace.api.routes.health._get_engine", lambda: session.bind)
        monkeypatch.setattr("legal_marketplace.api.routes.health.get_redis", lambda: redis)
        return redis

    async def test_all_healthy(self, client, stores) -> None:
        resp = await client.get("/health")

        body = resp.json()
        assert resp.status_code == 200
        assert body["status"] == "ok"
        assert body["database"] == "healthy"
        assert body["currency"] == "PKR"

    async def test_redis_down_only_degrades(self, client, stores) -> None:
        stores.ping.side_effect = ConnectionError("refused")

        body = (await client.get("/health")).json()

        assert body["status"] == "degraded"
        assert body["redis"].startswith("unhealthy")
