"""
Integration tests for payment endpoints, including the upgrade path from an
exhausted free quota to premium.
"""

import hashlib
import hmac
import json

import pytest

USER = "user-1"
ORDER_ID = "order_test_1"
WEBHOOK_SECRET = "test-webhook-secret"


def create_order(client, plan_type="basic"):
    return client.post(
        "/api/payment/create-order",
        json={"userId": USER, "planType": plan_type, "userDetails": {"name": "Asha"}},
    )


def verify(client, sign_payment, payment_id="pay_1", signature=None, user_id=USER):
    return client.post(
        "/api/payment/verify",
        json={
            "userId": user_id,
            "paymentData": {
                "razorpay_order_id": ORDER_ID,
                "razorpay_payment_id": payment_id,
                "razorpay_signature": signature or sign_payment(ORDER_ID, payment_id),
            },
        },
    )


@pytest.mark.integration
class TestPlansAndOrders:
    def test_plans(self, client):
        response = client.get("/api/payment/plans")

        assert response.status_code == 200
        plans = {plan["id"]: plan for plan in response.json()["plans"]}
        assert plans["premium"]["questions"] == 20

    def test_create_order(self, client):
        response = create_order(client)

        assert response.status_code == 200
        order = response.json()["order"]
        assert order["id"] == ORDER_ID
        assert order["amount"] == 19900
        assert order["key"] == "rzp_test_key"

    def test_invalid_plan(self, client):
        response = create_order(client, plan_type="gold")

        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_PLAN"

    def test_missing_fields(self, client):
        response = client.post("/api/payment/create-order", json={"userId": USER})

        assert response.status_code == 400


@pytest.mark.integration
class TestVerify:
    """Tests for POST /api/payment/verify."""

    def test_verify_upgrades_user(self, client, sign_payment):
        create_order(client)

        response = verify(client, sign_payment)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["alreadyProcessed"] is False
        assert data["order"]["status"] == "paid"
        assert data["userState"]["is_premium"] is True
        assert data["userState"]["total_questions"] == 5

    def test_premium_user_passes_gate(self, client, sign_payment):
        for i in range(10):
            client.post("/api/chat/message", json={"userId": USER, "sessionId": "s1", "message": f"q {i}"})
        blocked = client.post("/api/chat/message", json={"userId": USER, "sessionId": "s1", "message": "more"})
        assert blocked.status_code == 402

        create_order(client)
        verify(client, sign_payment)

        response = client.post("/api/chat/message", json={"userId": USER, "sessionId": "s1", "message": "more"})
        assert response.status_code == 200
        assert response.json()["userState"]["isPremium"] is True

    def test_bad_signature(self, client, sign_payment):
        create_order(client)

        response = verify(client, sign_payment, signature="0" * 64)

        assert response.status_code == 400
        assert response.json()["error"] == "SIGNATURE_MISMATCH"
        assert client.get(f"/api/user/{USER}").json()["userState"]["is_premium"] is False

    def test_double_verify(self, client, sign_payment):
        create_order(client)
        verify(client, sign_payment)

        response = verify(client, sign_payment)

        assert response.status_code == 200
        assert response.json()["alreadyProcessed"] is True
        assert response.json()["userState"]["total_questions"] == 5

    def test_replaying_older_verify_keeps_newer_plan(self, client, sign_payment, mock_gateway):
        mock_gateway.create_order.side_effect = [
            {"id": "order_A", "amount": 19900, "currency": "INR", "receipt": "receipt_A"},
            {"id": "order_B", "amount": 39900, "currency": "INR", "receipt": "receipt_B"},
        ]

        def verify_order(order_id, payment_id):
            return client.post(
                "/api/payment/verify",
                json={
                    "userId": USER,
                    "paymentData": {
                        "razorpay_order_id": order_id,
                        "razorpay_payment_id": payment_id,
                        "razorpay_signature": sign_payment(order_id, payment_id),
                    },
                },
            )

        create_order(client, "basic")
        verify_order("order_A", "pay_A")
        create_order(client, "premium")
        verify_order("order_B", "pay_B")

        response = verify_order("order_A", "pay_A")

        assert response.status_code == 200
        data = response.json()
        assert data["alreadyProcessed"] is True
        assert data["userState"]["plan_type"] == "premium"
        assert data["userState"]["total_questions"] == 20
        assert data["userState"]["payment_id"] == "pay_B"

    def test_unknown_order(self, client, sign_payment):
        response = verify(client, sign_payment)

        assert response.status_code == 404
        assert response.json()["error"] == "ORDER_NOT_FOUND"

    def test_missing_payment_data(self, client):
        response = client.post("/api/payment/verify", json={"userId": USER})

        assert response.status_code == 400


@pytest.mark.integration
class TestFailureStatusHistory:
    def test_failure_then_status(self, client):
        create_order(client)

        response = client.post(
            "/api/payment/failure",
            json={"orderId": ORDER_ID, "errorData": {"description": "card declined"}},
        )

        assert response.status_code == 200
        assert response.json()["success"] is False
        status = client.get(f"/api/payment/status/{ORDER_ID}").json()["status"]
        assert status["order"]["status"] == "failed"

    def test_failure_unknown_order(self, client):
        response = client.post("/api/payment/failure", json={"orderId": "order_missing"})

        assert response.status_code == 200

    def test_status_unknown_order(self, client):
        assert client.get("/api/payment/status/order_missing").status_code == 404

    def test_history(self, client, sign_payment):
        create_order(client)
        verify(client, sign_payment)

        payments = client.get(f"/api/payment/history/{USER}").json()["payments"]

        assert len(payments) == 1
        assert payments[0]["amount"] == 199


@pytest.mark.integration
class TestWebhook:
    """Tests for POST /api/payment/webhook."""

    def _post(self, client, body: bytes, signature: str):
        return client.post(
            "/api/payment/webhook",
            content=body,
            headers={"Content-Type": "application/json", "X-Razorpay-Signature": signature},
        )

    def test_valid_webhook(self, client):
        body = json.dumps({"event": "payment.captured", "payload": {}}).encode()
        signature = hmac.new(WEBHOOK_SECRET.encode(), body, hashlib.sha256).hexdigest()

        response = self._post(client, body, signature)

        assert response.status_code == 200
        assert response.json() == {"success": True}

    def test_unknown_event_acknowledged(self, client):
        body = json.dumps({"event": "refund.created"}).encode()
        signature = hmac.new(WEBHOOK_SECRET.encode(), body, hashlib.sha256).hexdigest()

        assert self._post(client, body, signature).status_code == 200

    def test_invalid_signature(self, client):
        response = self._post(client, b'{"event": "order.paid"}', "bad")

        assert response.status_code == 400
        assert response.json()["success"] is False
