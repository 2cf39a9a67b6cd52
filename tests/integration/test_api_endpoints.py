"""API endpoint integration tests.

Tests the FastAPI endpoints for fees, payments, webhooks and permits.
"""

import json
from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from httpx import AsyncClient

from fee_engine.models.enums import GatewayCategory

from .conftest import signed, today

pytestmark = pytest.mark.asyncio

CARD = {
    "type": "card",
    "card_number": "4242424242424242",
    "exp_month": 12,
    "exp_year": 2030,
    "cvc": "123",
    "cardholder_name": "Juan Dela Cruz",
}
DECLINED = {**CARD, "card_number": "4000000000000002"}
GCASH = {"type": "wallet", "wallet": "gcash", "phone_number": "09171234567"}


def _payment(target_id, amount, method=CARD, target_type="fee") -> dict:
    return {
        "target_id": str(target_id),
        "target_type": target_type,
        "amount": amount,
        "method": method,
    }


class TestHealthEndpoints:
    """Test health check endpoints."""

    async def test_health_check(self, client: AsyncClient):
        """Health endpoint reports database and listener state."""
        response = await client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "healthy"
        assert data["callback_listener"] == "running"

    async def test_readiness_check(self, client: AsyncClient):
        response = await client.get("/ready")
        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    async def test_liveness_check(self, client: AsyncClient):
        response = await client.get("/live")
        assert response.status_code == 200
        assert response.json()["status"] == "alive"


class TestFeeEndpoints:
    """Test fee read and waiver endpoints."""

    async def test_get_fee_with_ledger(self, client: AsyncClient, api_fee):
        """GET /api/v1/fees/{id} includes the live late fee."""
        fee = await api_fee("1000.00", days_until_due=-10)

        response = await client.get(f"/api/v1/fees/{fee.id}")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "unpaid"
        assert data["ledger"]["display_status"] == "overdue"
        assert Decimal(data["ledger"]["late_fee"]) == Decimal("100")
        assert Decimal(data["ledger"]["total_due"]) == Decimal("1100")

    async def test_get_unknown_fee(self, client: AsyncClient):
        response = await client.get(f"/api/v1/fees/{uuid4()}")
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    async def test_list_overdue(self, client: AsyncClient, api_fee):
        household_id = uuid4()
        overdue = await api_fee("1000.00", days_until_due=-40, household_id=household_id)
        await api_fee("1000.00", household_id=household_id)

        response = await client.get(
            "/api/v1/fees", params={"household_id": str(household_id), "status": "overdue"}
        )
        assert response.status_code == 200

        data = response.json()
        assert data["total"] == 1
        assert data["items"][0]["id"] == str(overdue.id)

    async def test_list_rejects_unknown_status(self, client: AsyncClient):
        response = await client.get("/api/v1/fees", params={"status": "late"})
        assert response.status_code == 422

    async def test_statistics(self, client: AsyncClient, api_fee):
        household_id = uuid4()
        await api_fee("10000.00", days_until_due=-40, household_id=household_id)

        response = await client.get(
            "/api/v1/fees/statistics", params={"household_id": str(household_id)}
        )
        assert response.status_code == 200

        data = response.json()
        assert data["overdue_count"] == 1
        assert Decimal(data["total_outstanding"]) == Decimal("10400")

    async def test_waive(self, client: AsyncClient, api_fee):
        fee = await api_fee()

        response = await client.post(
            f"/api/v1/fees/{fee.id}/waive", json={"reason": "Hardship approved by board"}
        )
        assert response.status_code == 200
        assert response.json()["status"] == "waived"

        again = await client.post(
            f"/api/v1/fees/{fee.id}/waive", json={"reason": "Hardship approved by board"}
        )
        assert again.status_code == 409
        assert again.json()["code"] == "FEE_NOT_WAIVABLE"

    async def test_waive_short_reason(self, client: AsyncClient, api_fee):
        fee = await api_fee()

        response = await client.post(f"/api/v1/fees/{fee.id}/waive", json={"reason": "no"})
        assert response.status_code == 422
        assert response.json()["code"] == "VALIDATION_ERROR"

    async def test_record_office_payment(self, client: AsyncClient, api_fee):
        """POST /api/v1/fees/{id}/payments records cash and issues a receipt."""
        fee = await api_fee("1000.00", days_until_due=-10)

        response = await client.post(
            f"/api/v1/fees/{fee.id}/payments",
            json={"amount": "1100.00", "method": "cash", "reference": "OR-2024-0042"},
        )
        assert response.status_code == 201

        data = response.json()
        assert data["status"] == "succeeded"
        assert data["fee_status"] == "paid"
        assert data["gateway_transaction_id"] == "OR-2024-0042"
        assert data["receipt_number"].startswith("RCPT-")

        receipt = await client.get(f"/api/v1/payments/{data['attempt_id']}/receipt")
        assert receipt.status_code == 200
        assert Decimal(receipt.json()["late_fee_amount"]) == Decimal("100.00")

        fee_response = await client.get(f"/api/v1/fees/{fee.id}")
        assert fee_response.json()["status"] == "paid"

    async def test_record_payment_while_gateway_payment_pending(self, client: AsyncClient, api_fee):
        fee = await api_fee()
        pending = await client.post("/api/v1/payments", json=_payment(fee.id, "1000.00", GCASH))
        assert pending.status_code == 201

        response = await client.post(
            f"/api/v1/fees/{fee.id}/payments", json={"amount": "1000.00", "method": "check"}
        )
        assert response.status_code == 409
        assert response.json()["code"] == "PAYMENT_IN_PROGRESS"

    async def test_record_payment_validation(self, client: AsyncClient, api_fee):
        fee = await api_fee("1000.00")

        unknown_method = await client.post(
            f"/api/v1/fees/{fee.id}/payments", json={"amount": "100.00", "method": "crypto"}
        )
        assert unknown_method.status_code == 422

        too_much = await client.post(
            f"/api/v1/fees/{fee.id}/payments", json={"amount": "1500.00", "method": "cash"}
        )
        assert too_much.status_code == 422
        assert too_much.json()["code"] == "VALIDATION_ERROR"

        future = await client.post(
            f"/api/v1/fees/{fee.id}/payments",
            json={
                "amount": "100.00",
                "method": "cash",
                "paid_on": (today() + timedelta(days=1)).isoformat(),
            },
        )
        assert future.status_code == 422


class TestPaymentEndpoints:
    """Test payment submission, status and receipts."""

    async def test_card_payment_and_receipt(self, client: AsyncClient, api_fee):
        """POST /api/v1/payments settles a card payment and issues a receipt."""
        fee = await api_fee("1000.00", days_until_due=-10)

        response = await client.post("/api/v1/payments", json=_payment(fee.id, "1100.00"))
        assert response.status_code == 201

        data = response.json()
        assert data["status"] == "succeeded"
        assert data["fee_status"] == "paid"
        assert data["receipt_number"].startswith("RCPT-")

        receipt = await client.get(f"/api/v1/payments/{data['attempt_id']}/receipt")
        assert receipt.status_code == 200

        body = receipt.json()
        assert Decimal(body["late_fee_amount"]) == Decimal("100")
        assert Decimal(body["base_amount"]) == Decimal("1000")
        assert "Total Paid: PHP 1,100.00" in body["share_text"]

    async def test_declined_card(self, client: AsyncClient, api_fee):
        fee = await api_fee()

        response = await client.post("/api/v1/payments", json=_payment(fee.id, "1000.00", DECLINED))
        assert response.status_code == 201

        data = response.json()
        assert data["status"] == "failed"
        assert data["failure_reason"] == "Your card was declined."

        receipt = await client.get(f"/api/v1/payments/{data['attempt_id']}/receipt")
        assert receipt.status_code == 404

        fee_response = await client.get(f"/api/v1/fees/{fee.id}")
        assert fee_response.json()["status"] == "unpaid"

    async def test_pending_wallet_blocks_card(self, client: AsyncClient, api_fee):
        fee = await api_fee()

        pending = await client.post("/api/v1/payments", json=_payment(fee.id, "1000.00", GCASH))
        assert pending.status_code == 201
        assert pending.json()["status"] == "pending"
        assert pending.json()["redirect_url"]

        blocked = await client.post("/api/v1/payments", json=_payment(fee.id, "1000.00"))
        assert blocked.status_code == 409

        error = blocked.json()
        assert error["code"] == "PAYMENT_IN_PROGRESS"
        assert error["context"]["attempt_id"] == pending.json()["attempt_id"]

    async def test_below_wallet_minimum(self, client: AsyncClient, api_fee):
        fee = await api_fee()
        maya = {"type": "wallet", "wallet": "paymaya"}

        response = await client.post("/api/v1/payments", json=_payment(fee.id, "50.00", maya))
        assert response.status_code == 422

        error = response.json()
        assert error["code"] == "VALIDATION_ERROR"
        assert error["context"]["errors"] == ["Minimum amount for paymaya wallet is PHP 100.00"]

    async def test_unknown_method_type(self, client: AsyncClient, api_fee):
        fee = await api_fee()

        response = await client.post(
            "/api/v1/payments", json=_payment(fee.id, "100.00", {"type": "cash"})
        )
        assert response.status_code == 422

    async def test_unknown_fee(self, client: AsyncClient):
        response = await client.post("/api/v1/payments", json=_payment(uuid4(), "100.00"))
        assert response.status_code == 404

    async def test_idempotency_key_header(self, client: AsyncClient, api_fee):
        fee = await api_fee()
        headers = {"Idempotency-Key": "checkout-123"}

        first = await client.post("/api/v1/payments", json=_payment(fee.id, "1000.00"), headers=headers)
        second = await client.post("/api/v1/payments", json=_payment(fee.id, "1000.00"), headers=headers)

        assert first.status_code == second.status_code == 201
        assert second.json()["attempt_id"] == first.json()["attempt_id"]
        assert second.json()["was_duplicate"] is True

    async def test_refresh_and_status(self, client: AsyncClient, api_fee, gateways):
        fee = await api_fee()
        pending = (await client.post("/api/v1/payments", json=_payment(fee.id, "1000.00", GCASH))).json()

        status = await client.get(f"/api/v1/payments/{pending['attempt_id']}")
        assert status.json()["status"] == "pending"

        gateways[GatewayCategory.WALLET].simulate_success(pending["intent_id"])
        refreshed = await client.post(f"/api/v1/payments/{pending['attempt_id']}/refresh")
        assert refreshed.status_code == 200
        assert refreshed.json()["status"] == "succeeded"

    async def test_unknown_attempt(self, client: AsyncClient):
        response = await client.get(f"/api/v1/payments/{uuid4()}")
        assert response.status_code == 404


class TestWebhookEndpoints:
    """Test signed gateway callbacks."""

    async def test_signed_callback_completes_payment(self, app, client: AsyncClient, api_fee, gateways):
        """A verified webhook is queued, processed and settles the fee."""
        fee = await api_fee()
        pending = (await client.post("/api/v1/payments", json=_payment(fee.id, "1000.00", GCASH))).json()
        callback = gateways[GatewayCategory.WALLET].simulate_success(pending["intent_id"])
        body = json.dumps(
            {
                "intent_id": pending["intent_id"],
                "status": "succeeded",
                "transaction_id": callback.gateway_transaction_id,
            }
        ).encode()

        response = await client.post("/api/v1/webhooks/wallet", content=body, headers=signed(body))
        assert response.status_code == 202
        assert response.json() == {"received": True, "intent_id": pending["intent_id"]}

        await app.state.callback_listener.join()

        status = (await client.get(f"/api/v1/payments/{pending['attempt_id']}")).json()
        assert status["status"] == "succeeded"
        assert status["gateway_transaction_id"] == callback.gateway_transaction_id
        assert status["receipt_number"]

    async def test_bad_signature(self, client: AsyncClient):
        body = b'{"intent_id": "pi_wallet_1", "status": "succeeded"}'

        response = await client.post(
            "/api/v1/webhooks/wallet",
            content=body,
            headers={"Content-Type": "application/json", "X-Signature": "0" * 64},
        )
        assert response.status_code == 401

    async def test_missing_signature(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/webhooks/wallet", content=b'{"intent_id": "pi_wallet_1", "status": "failed"}'
        )
        assert response.status_code == 401

    async def test_invalid_json(self, client: AsyncClient):
        body = b"not json"

        response = await client.post("/api/v1/webhooks/card", content=body, headers=signed(body))
        assert response.status_code == 400

    async def test_incomplete_payload(self, client: AsyncClient):
        body = json.dumps({"intent_id": "pi_card_1", "status": "pending"}).encode()

        response = await client.post("/api/v1/webhooks/card", content=body, headers=signed(body))
        assert response.status_code == 422

    async def test_unknown_category(self, client: AsyncClient):
        body = json.dumps({"intent_id": "pi_1", "status": "succeeded"}).encode()

        response = await client.post("/api/v1/webhooks/cash", content=body, headers=signed(body))
        assert response.status_code == 422

    async def test_unknown_intent_is_acknowledged(self, app, client: AsyncClient):
        """Callbacks for unknown intents are accepted and logged as failures."""
        body = json.dumps({"intent_id": "pi_wallet_unknown", "status": "succeeded"}).encode()

        response = await client.post("/api/v1/webhooks/wallet", content=body, headers=signed(body))
        assert response.status_code == 202

        await app.state.callback_listener.join()
        assert app.state.callback_listener.failed == 1


class TestPermitEndpoints:
    """Test road fee billing, payment and worker passes."""

    async def test_road_fee_payment_activates_permit(self, client: AsyncClient, make_permit):
        permit, _ = await make_permit(road_fee_amount="500.00", with_road_fee=False)

        created = await client.post(f"/api/v1/permits/{permit.id}/road-fee", json={})
        assert created.status_code == 201

        road_fee = created.json()
        assert road_fee["fee_type"] == "construction_road_fee"
        assert road_fee["due_date"] == (today() + timedelta(days=7)).isoformat()

        paid = await client.post(
            "/api/v1/payments", json=_payment(permit.id, "500.00", target_type="permit")
        )
        assert paid.status_code == 201
        assert paid.json()["fee_id"] == road_fee["id"]
        assert paid.json()["permit_activated"] is True

        stats = (await client.get("/api/v1/permits/statistics")).json()
        assert stats["counts_by_status"] == {"in_progress": 1}
        assert Decimal(stats["paid_road_fees"]) == Decimal("500")

    async def test_worker_pass(self, client: AsyncClient, make_permit):
        permit, _ = await make_permit()
        payload = {
            "worker_name": "Pedro Santos",
            "valid_from": today().isoformat(),
            "valid_until": (today() + timedelta(days=30)).isoformat(),
        }

        response = await client.post(f"/api/v1/permits/{permit.id}/worker-passes", json=payload)
        assert response.status_code == 201
        assert response.json()["status"] == "scheduled"

    async def test_worker_pass_for_pending_permit(self, client: AsyncClient, make_permit):
        permit, _ = await make_permit(status="pending", with_road_fee=False)
        payload = {
            "worker_name": "Pedro Santos",
            "valid_from": today().isoformat(),
            "valid_until": today().isoformat(),
        }

        response = await client.post(f"/api/v1/permits/{permit.id}/worker-passes", json=payload)
        assert response.status_code == 409
        assert response.json()["code"] == "WORKER_PASS_NOT_ALLOWED"
