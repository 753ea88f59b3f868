from __future__ import annotations

import json
from decimal import Decimal

from conftest import auth_headers, fund, internal_headers, verify

from creator_ledger.core.config import settings
from creator_ledger.core.security import sign_webhook_payload

API = settings.API_V1_STR


def _revenue_body(**overrides) -> dict:
    body = {
        "creator_id": "c1",
        "source_type": "tip",
        "amount": "40.00",
        "currency": "USD",
        "external_reference_id": "tip-1",
    }
    body.update(overrides)
    return body


def _fund_and_verify(client) -> None:
    r = client.post(f"{API}/revenue/events", json=_revenue_body(), headers=internal_headers())
    assert r.status_code == 200
    r = client.post(
        f"{API}/verification/begin",
        json={"external_account_id": "acct_1"},
        headers=auth_headers("c1"),
    )
    assert r.status_code == 200
    r = client.post(
        f"{API}/verification/result",
        json={"creator_id": "c1", "result": "verified"},
        headers=internal_headers(),
    )
    assert r.status_code == 200


def test_health_check(client):
    r = client.get(f"{API}/utils/health-check/")
    assert r.status_code == 200
    assert r.json() is True


def test_creator_routes_require_token(client, db):
    r = client.get(f"{API}/revenue/balance")
    assert r.status_code in (401, 403)

    r = client.get(f"{API}/revenue/balance", headers={"Authorization": "Bearer nonsense"})
    assert r.status_code == 401
    assert r.json()["code"] == 401000


def test_internal_routes_require_internal_token(client, db):
    r = client.post(f"{API}/revenue/events", json=_revenue_body())
    assert r.status_code == 401

    r = client.post(
        f"{API}/revenue/events", json=_revenue_body(), headers={"X-Internal-Token": "wrong"}
    )
    assert r.status_code == 401


def test_record_revenue_is_idempotent(client, db):
    r = client.post(f"{API}/revenue/events", json=_revenue_body(), headers=internal_headers())
    assert r.status_code == 200
    first = r.json()["data"]
    assert first["duplicate"] is False

    r = client.post(f"{API}/revenue/events", json=_revenue_body(), headers=internal_headers())
    assert r.status_code == 200
    second = r.json()["data"]
    assert second["duplicate"] is True
    assert second["event"]["id"] == first["event"]["id"]

    r = client.get(f"{API}/revenue/balance", headers=auth_headers("c1"))
    data = r.json()["data"]
    assert Decimal(data["total_earned"]) == Decimal("40.00")
    assert Decimal(data["available"]) == Decimal("40.00")

    r = client.get(f"{API}/revenue/events", headers=auth_headers("c1"))
    assert r.json()["data"]["count"] == 1


def test_balance_of_unknown_creator_is_zero(client, db):
    r = client.get(f"{API}/revenue/balance", headers=auth_headers("nobody"))
    assert r.status_code == 200
    data = r.json()["data"]
    assert Decimal(data["available"]) == Decimal("0")
    assert data["currency"] == settings.DEFAULT_CURRENCY


def test_revenue_validation_errors(client, db):
    r = client.post(
        f"{API}/revenue/events", json=_revenue_body(amount="-5.00"), headers=internal_headers()
    )
    assert r.status_code == 422
    assert r.json()["code"] == 422000

    r = client.post(
        f"{API}/revenue/events", json=_revenue_body(amount="1.005"), headers=internal_headers()
    )
    assert r.status_code == 422


def test_currency_mismatch_is_rejected(client, db):
    client.post(f"{API}/revenue/events", json=_revenue_body(), headers=internal_headers())
    r = client.post(
        f"{API}/revenue/events",
        json=_revenue_body(currency="EUR", external_reference_id="tip-2"),
        headers=internal_headers(),
    )
    assert r.status_code == 400
    assert r.json()["code"] == 400104


def test_verification_flow_and_eligibility(client, db):
    fund(db, "c1", "40.00")

    r = client.get(f"{API}/verification/eligibility", headers=auth_headers("c1"))
    data = r.json()["data"]
    assert data["eligible"] is False
    assert data["verification_state"] == "unset"
    assert "verification_required" in data["reasons"]

    r = client.post(
        f"{API}/verification/begin",
        json={"external_account_id": "acct_1"},
        headers=auth_headers("c1"),
    )
    assert r.json()["data"]["verification_state"] == "pending"

    r = client.post(
        f"{API}/verification/result",
        json={"creator_id": "c1", "result": "verified"},
        headers=internal_headers(),
    )
    assert r.json()["data"]["verification_state"] == "verified"

    r = client.get(f"{API}/verification/eligibility", headers=auth_headers("c1"))
    data = r.json()["data"]
    assert data["eligible"] is True
    assert data["reasons"] == []
    assert data["max_pending_payouts"] == settings.MAX_CONCURRENT_PENDING_PAYOUTS


def test_verification_result_without_pending_is_conflict(client, db):
    r = client.post(
        f"{API}/verification/result",
        json={"creator_id": "c1", "result": "verified"},
        headers=internal_headers(),
    )
    assert r.status_code == 409
    assert r.json()["code"] == 409102


def test_payout_requires_verification(client, db):
    fund(db, "c1", "40.00")
    r = client.post(
        f"{API}/payouts/request", json={"amount": "30.00"}, headers=auth_headers("c1")
    )
    assert r.status_code == 403
    assert r.json()["code"] == 403101


def test_payout_request_list_and_detail(client, db):
    _fund_and_verify(client)

    r = client.post(
        f"{API}/payouts/request", json={"amount": "30.00"}, headers=auth_headers("c1")
    )
    assert r.status_code == 200
    payout = r.json()["data"]
    assert payout["status"] == "submitted"
    assert payout["external_payout_id"] == f"mock_po_{payout['id']}"

    r = client.get(f"{API}/revenue/balance", headers=auth_headers("c1"))
    data = r.json()["data"]
    assert Decimal(data["available"]) == Decimal("10.00")
    assert Decimal(data["reserved"]) == Decimal("30.00")

    r = client.get(f"{API}/payouts/list?status=submitted", headers=auth_headers("c1"))
    assert r.json()["data"]["count"] == 1
    r = client.get(f"{API}/payouts/list?status=paid", headers=auth_headers("c1"))
    assert r.json()["data"]["count"] == 0

    r = client.get(f"{API}/payouts/{payout['id']}", headers=auth_headers("c1"))
    detail = r.json()["data"]
    assert [h["to_status"] for h in detail["history"]] == ["requested", "submitted"]

    # another creator cannot see it
    r = client.get(f"{API}/payouts/{payout['id']}", headers=auth_headers("c2"))
    assert r.status_code == 404
    assert r.json()["code"] == 404101


def test_payout_insufficient_balance(client, db):
    _fund_and_verify(client)
    r = client.post(
        f"{API}/payouts/request", json={"amount": "50.00"}, headers=auth_headers("c1")
    )
    assert r.status_code == 400
    assert r.json()["code"] == 402101


def _webhook(client, body: dict, headers: dict | None = None):
    return client.post(
        f"{API}/webhooks/processor",
        content=json.dumps(body).encode(),
        headers={"Content-Type": "application/json", **(headers or {})},
    )


def test_webhook_marks_payout_paid(client, db):
    _fund_and_verify(client)
    payout = client.post(
        f"{API}/payouts/request", json={"amount": "30.00"}, headers=auth_headers("c1")
    ).json()["data"]

    body = {"event_id": "evt_1", "payout_id": payout["external_payout_id"], "status": "paid"}
    r = _webhook(client, body)
    assert r.status_code == 200
    ack = r.json()["data"]
    assert ack == {"outcome": "applied", "payout_id": payout["id"], "payout_status": "paid"}

    r = _webhook(client, body)
    assert r.json()["data"]["outcome"] == "duplicate"

    r = client.get(f"{API}/revenue/balance", headers=auth_headers("c1"))
    data = r.json()["data"]
    assert Decimal(data["total_paid_out"]) == Decimal("30.00")
    assert Decimal(data["available"]) == Decimal("10.00")


def test_webhook_for_unknown_payout_is_conflict(client, db):
    r = _webhook(client, {"event_id": "evt_1", "payout_id": "po_missing", "status": "paid"})
    assert r.status_code == 409
    assert r.json()["code"] == 409104
    assert r.json()["data"]["outcome"] == "unknown_payout"


def test_webhook_invalid_payload(client, db):
    r = _webhook(client, {"event_id": "evt_1"})
    assert r.status_code == 400
    assert r.json()["code"] == 400105


def test_webhook_signature(client, db, monkeypatch):
    monkeypatch.setattr(settings, "PROCESSOR_WEBHOOK_SECRET", "whsec_test")
    body = {"event_id": "evt_1", "payout_id": "po_missing", "status": "paid"}
    raw = json.dumps(body).encode()

    r = _webhook(client, body)
    assert r.status_code == 401
    assert r.json()["code"] == 401101

    r = _webhook(client, body, {"X-Processor-Signature": "0" * 64})
    assert r.status_code == 401

    signature = sign_webhook_payload(raw, "whsec_test")
    r = _webhook(client, body, {"X-Processor-Signature": signature})
    # signature accepted; payout is simply not known yet
    assert r.status_code == 409


def test_webhook_without_secret_outside_local(client, db, monkeypatch):
    monkeypatch.setattr(settings, "ENVIRONMENT", "production")
    r = _webhook(client, {"event_id": "evt_1", "payout_id": "po_1", "status": "paid"})
    assert r.status_code == 401


def test_stale_payouts_endpoint(client, db):
    _fund_and_verify(client)
    client.post(f"{API}/payouts/request", json={"amount": "30.00"}, headers=auth_headers("c1"))

    r = client.get(f"{API}/ops/stale-payouts", headers=internal_headers())
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["count"] == 0
    assert data["older_than_hours"] == settings.STALE_PAYOUT_AFTER_HOURS
    assert data["requested_older_than_minutes"] == settings.STALE_REQUESTED_AFTER_MINUTES

    r = client.get(f"{API}/ops/stale-payouts")
    assert r.status_code == 401
