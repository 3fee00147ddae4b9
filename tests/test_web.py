"""
Tests for the referral HTTP API.
"""
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from aqua.utils.security import issue_session_token
from aqua.web.app import app, get_referral_manager
from config.settings import ReferralSettings

WALLET = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"
INTERNAL_HEADERS = {"X-Internal-Key": "test-internal-key"}


def auth(user_id: str) -> dict:
    return {"Authorization": f"Bearer {issue_session_token(user_id)}"}


@pytest_asyncio.fixture(name="client")
async def client_fixture(manager):
    app.dependency_overrides[get_referral_manager] = lambda: manager

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/api/referral/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "aqua-referrals", "enabled": True}


@pytest.mark.asyncio
async def test_code_requires_auth(client):
    missing = await client.get("/api/referral/code")
    garbage = await client.get("/api/referral/code", headers={"Authorization": "Bearer nope"})

    assert missing.status_code in (401, 403)
    assert garbage.status_code == 401


@pytest.mark.asyncio
async def test_code_returns_share_link(client):
    response = await client.get("/api/referral/code", headers=auth("alice"))

    body = response.json()
    assert response.status_code == 200
    assert body["success"] is True
    code = body["data"]["referral_code"]
    assert body["data"]["is_new"] is True
    assert body["data"]["share_percent"] == 50
    assert body["data"]["share_link"].endswith(f"?ref={code}")


@pytest.mark.asyncio
async def test_apply_and_repeat(client):
    code = (await client.get("/api/referral/code", headers=auth("alice"))).json()["data"]["referral_code"]

    first = await client.post("/api/referral/apply", json={"code": code}, headers=auth("bob"))
    second = await client.post("/api/referral/apply", json={"code": code}, headers=auth("bob"))

    assert first.json() == {"success": True, "data": {"referrer_id": "alice"}}
    assert second.status_code == 400
    assert second.json()["error"] == {
        "code": 5001,
        "reason": "already_referred",
        "message": "You have already been referred",
    }


@pytest.mark.asyncio
async def test_fee_accrual_requires_internal_key(client):
    response = await client.post(
        "/api/internal/referral/fees",
        json={"source_user_id": "bob", "fee_amount": "0.02", "operation_type": "trade"},
        headers={"X-Internal-Key": "wrong"},
    )

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_fee_accrual_and_claim(client, executor):
    code = (await client.get("/api/referral/code", headers=auth("alice"))).json()["data"]["referral_code"]
    await client.post("/api/referral/apply", json={"code": code}, headers=auth("bob"))

    accrual = await client.post(
        "/api/internal/referral/fees",
        json={"source_user_id": "bob", "fee_amount": "0.04", "operation_type": "trade"},
        headers=INTERNAL_HEADERS,
    )
    assert accrual.json()["data"]["credited"] is True
    assert Decimal(accrual.json()["data"]["new_pending"]) == Decimal("0.02")

    stats = (await client.get("/api/referral/stats", headers=auth("alice"))).json()["data"]
    assert stats["can_claim"] is True
    assert stats["referral_count"] == 1

    claim = await client.post("/api/referral/claim", json={"destination_wallet": WALLET}, headers=auth("alice"))
    data = claim.json()["data"]
    assert claim.status_code == 200
    assert Decimal(data["amount"]) == Decimal("0.02")
    assert data["amount_formatted"] == "0.020000 SOL"
    assert data["tx_signature"].startswith("sig-")
    assert len(executor.transfers) == 1

    again = await client.post("/api/referral/claim", json={"destination_wallet": WALLET}, headers=auth("alice"))
    assert again.status_code == 400
    assert again.json()["error"]["code"] == 5004

    history = (await client.get("/api/referral/claims", headers=auth("alice"))).json()["data"]["claims"]
    assert [c["status"] for c in history] == ["success"]


@pytest.mark.asyncio
async def test_fee_from_user_without_referrer(client):
    response = await client.post(
        "/api/internal/referral/fees",
        json={"source_user_id": "loner", "fee_amount": "0.04", "operation_type": "trade"},
        headers=INTERNAL_HEADERS,
    )

    assert response.json() == {"success": True, "data": {"credited": False}}


@pytest.mark.asyncio
async def test_claim_rejects_bad_wallet(client):
    response = await client.post(
        "/api/referral/claim", json={"destination_wallet": "short"}, headers=auth("alice")
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == 5004
    assert response.json()["error"]["reason"] == "invalid_wallet"


@pytest.mark.asyncio
async def test_claim_cooldown_code(client, manager, clock):
    await manager.get_or_create_account("alice")
    await manager.add_referral_earnings("alice", Decimal("0.5"), "bob", "trade")
    assert (await manager.process_claim("alice", WALLET)).success
    await manager.add_referral_earnings("alice", Decimal("0.5"), "bob", "trade")

    response = await client.post("/api/referral/claim", json={"destination_wallet": WALLET}, headers=auth("alice"))

    assert response.status_code == 400
    assert response.json()["error"]["code"] == 5003
    assert response.json()["error"]["message"] == "Cooldown active. Try again in 1h 0m."


@pytest.mark.asyncio
async def test_claim_when_disabled(client, make_manager):
    app.dependency_overrides[get_referral_manager] = lambda: make_manager(
        settings=ReferralSettings(enabled=False)
    )

    response = await client.post("/api/referral/claim", json={"destination_wallet": WALLET}, headers=auth("alice"))

    assert response.status_code == 503
    assert response.json()["error"]["code"] == 5005


@pytest.mark.asyncio
async def test_disabled_gate_wins_over_wallet_check(client, make_manager):
    app.dependency_overrides[get_referral_manager] = lambda: make_manager(
        settings=ReferralSettings(enabled=False)
    )

    response = await client.post(
        "/api/referral/claim", json={"destination_wallet": "short"}, headers=auth("alice")
    )

    assert response.status_code == 503
    assert response.json()["error"]["code"] == 5005
