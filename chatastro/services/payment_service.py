"""
Payment Service

Plan catalogue, gateway order creation, signature verification and webhook
handling. Order and payment records are kept in keyed stores; granting the
purchased entitlement is the caller's job (see ConversationEngine.apply_payment).

Order lifecycle:
    created -> paid
    created -> failed -> paid   (a failed order can still be verified)
"""
from __future__ import annotations

import hashlib
import hmac
from typing import Any, Dict, List, Optional

from chatastro.config import Settings
from chatastro.exceptions import (
    InvalidPlanError,
    OrderAlreadyPaidError,
    OrderNotFoundError,
    SignatureMismatchError,
    ValidationError,
)
from chatastro.logger import logger
from chatastro.services.payment_gateway import PaymentGateway
from chatastro.stores.memory import InMemoryStore, KeyValueStore
from chatastro.utils.models import (
    Order,
    OrderStatus,
    Payment,
    Plan,
    VerificationResult,
    now_ms,
    utcnow,
)

PLANS: Dict[str, Plan] = {
    "basic": Plan(id="basic", name="Basic Plan", questions=5, price=199),
    "standard": Plan(id="standard", name="Standard Plan", questions=10, price=299),
    "premium": Plan(id="premium", name="Premium Plan", questions=20, price=399),
    "report": Plan(id="report", name="Full Report", questions=0, price=999),
}

CURRENCY = "INR"
CHECKOUT_NAME = "ChatAstro"
CHECKOUT_THEME_COLOR = "#4a148c"

KNOWN_WEBHOOK_EVENTS = ("payment.captured", "payment.failed", "order.paid")


def sign(secret: str, message: str) -> str:
    """Hex HMAC-SHA256 of `message` keyed by `secret`."""
    return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()


def payment_signature(secret: str, order_id: str, payment_id: str) -> str:
    return sign(secret, f"{order_id}|{payment_id}")


class PaymentService:
    def __init__(
        self,
        settings: Settings,
        gateway: Optional[PaymentGateway] = None,
        orders: Optional[KeyValueStore] = None,
        payments: Optional[KeyValueStore] = None,
    ):
        self.settings = settings
        self.gateway = gateway or PaymentGateway(settings)
        self.orders = orders if orders is not None else InMemoryStore("orders")
        self.payments = payments if payments is not None else InMemoryStore("payments")

    # Plans

    def get_plan(self, plan_type: str) -> Optional[Plan]:
        return PLANS.get(plan_type)

    def get_all_plans(self) -> List[Plan]:
        return list(PLANS.values())

    # Orders

    async def create_order(self, user_id: str, plan_type: str, user_details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Create a gateway order for `plan_type` and store it locally.

        Returns:
            Checkout options for the client-side payment widget

        Raises:
            ValidationError: user_id missing
            InvalidPlanError: unknown plan type
            ExternalServiceError: the gateway rejected or failed the request
        """
        if not user_id:
            raise ValidationError("userId is required", field="userId")
        plan = self.get_plan(plan_type)
        if plan is None:
            raise InvalidPlanError(plan_type, valid_plans=list(PLANS))

        user_details = user_details or {}
        gateway_order = await self.gateway.create_order(
            amount=plan.price * 100,
            currency=CURRENCY,
            receipt=f"receipt_{now_ms()}",
            notes={
                "userId": user_id,
                "planType": plan_type,
                "userName": user_details.get("name") or "User",
                "userMobile": user_details.get("mobile") or "",
            },
        )

        order = Order(
            id=gateway_order["id"],
            user_id=user_id,
            plan_type=plan_type,
            plan=plan,
            amount=gateway_order.get("amount", plan.price * 100),
            currency=gateway_order.get("currency", CURRENCY),
            receipt=gateway_order.get("receipt"),
            user_details=user_details,
        )
        self.orders.set(order.id, order)
        logger.info("order_created", order_id=order.id, user_id=user_id, plan_type=plan_type, amount=order.amount)

        return {
            "id": order.id,
            "amount": order.amount,
            "currency": order.currency,
            "key": self.gateway.key_id,
            "name": CHECKOUT_NAME,
            "description": f"{plan.questions} Questions - {plan_type} Plan",
            "prefill": {
                "name": user_details.get("name", ""),
                "email": user_details.get("email", ""),
                "contact": user_details.get("mobile", ""),
            },
            "theme": {"color": CHECKOUT_THEME_COLOR},
        }

    def get_order(self, order_id: str) -> Order:
        order = self.orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    # Verification

    def verify_payment(
        self,
        order_id: str,
        payment_id: str,
        signature: str,
        user_id: Optional[str] = None,
    ) -> VerificationResult:
        """
        Verify the gateway's checkout signature and record the payment.

        Verifying the same order/payment pair twice returns the stored records
        with newly_paid=False.

        Raises:
            ValidationError: a field is missing or the order belongs to another user
            OrderNotFoundError: order_id is unknown
            SignatureMismatchError: the signature does not match
            OrderAlreadyPaidError: the order was paid by a different payment
        """
        missing = [
            name
            for name, value in (
                ("razorpay_order_id", order_id),
                ("razorpay_payment_id", payment_id),
                ("razorpay_signature", signature),
            )
            if not value
        ]
        if missing:
            raise ValidationError("Missing payment verification data", details={"missing_fields": missing})

        order = self.get_order(order_id)
        if user_id and user_id != order.user_id:
            raise ValidationError("Order does not belong to this user", field="userId")

        expected = payment_signature(self.settings.razorpay_key_secret, order_id, payment_id)
        if not hmac.compare_digest(expected, signature):
            logger.warning(
                "security_payment_signature_mismatch",
                order_id=order_id,
                payment_id=payment_id,
                user_id=order.user_id,
            )
            raise SignatureMismatchError(order_id=order_id)

        if order.status == OrderStatus.paid:
            if order.payment_id != payment_id:
                logger.warning(
                    "security_order_paid_twice",
                    order_id=order_id,
                    payment_id=payment_id,
                    existing_payment_id=order.payment_id,
                )
                raise OrderAlreadyPaidError(order_id)
            logger.info("payment_already_verified", order_id=order_id, payment_id=payment_id)
            return VerificationResult(payment=self.payments.get(payment_id), order=order, newly_paid=False)

        now = utcnow()
        payment = Payment(
            id=payment_id,
            order_id=order_id,
            user_id=order.user_id,
            plan_type=order.plan_type,
            plan=order.plan,
            amount=order.amount,
            currency=order.currency,
            created_at=now,
            verified_at=now,
        )
        self.payments.set(payment_id, payment)

        order = order.model_copy(update={"status": OrderStatus.paid, "payment_id": payment_id})
        self.orders.set(order_id, order)

        logger.info("payment_verified", order_id=order_id, payment_id=payment_id, user_id=order.user_id)
        return VerificationResult(payment=payment, order=order, newly_paid=True)

    def handle_failure(self, order_id: str, error_info: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Mark an order failed. Unknown orders are logged and ignored."""
        error_info = error_info or {}
        order = self.orders.get(order_id) if order_id else None
        if order is None:
            logger.warning("payment_failure_unknown_order", order_id=order_id)
        elif order.status == OrderStatus.paid:
            logger.warning("payment_failure_for_paid_order", order_id=order_id)
        else:
            order = order.model_copy(update={
                "status": OrderStatus.failed,
                "error": error_info,
                "failed_at": utcnow(),
            })
            self.orders.set(order_id, order)

        logger.info(
            "payment_failed",
            order_id=order_id,
            error=error_info.get("description") or "Unknown error",
        )
        return {"message": "Payment failed. Please try again.", "error": error_info}

    # Queries

    def get_payment_status(self, order_id: str) -> Dict[str, Any]:
        order = self.get_order(order_id)
        payment = self.payments.get(order.payment_id) if order.payment_id else None
        return {
            "order": {
                "id": order.id,
                "amount": order.amount,
                "status": order.status.value,
                "created_at": order.created_at,
            },
            "payment": {
                "id": payment.id,
                "status": payment.status,
                "verified_at": payment.verified_at,
            } if payment else None,
        }

    def get_user_payments(self, user_id: str) -> List[Dict[str, Any]]:
        """User's captured payments, newest first, amounts in rupees."""
        payments = [p for p in self.payments.values() if p.user_id == user_id]
        payments.sort(key=lambda p: p.created_at, reverse=True)
        return [
            {
                "id": p.id,
                "order_id": p.order_id,
                "amount": p.amount / 100,
                "plan_type": p.plan_type,
                "plan_name": p.plan.name,
                "questions": p.plan.questions,
                "status": p.status,
                "created_at": p.created_at,
            }
            for p in payments
        ]

    # Webhooks

    def validate_webhook(self, raw_body: bytes, signature: Optional[str]) -> bool:
        secret = self.settings.razorpay_webhook_secret
        if not secret:
            logger.warning("webhook_secret_not_configured")
            return False
        if not signature:
            return False
        if isinstance(raw_body, str):
            raw_body = raw_body.encode("utf-8")
        computed = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
        valid = hmac.compare_digest(computed, signature)
        if not valid:
            logger.warning("security_webhook_signature_mismatch")
        return valid

    def process_webhook(self, event: Dict[str, Any]) -> Dict[str, Any]:
        event_type = event.get("event")
        if event_type in KNOWN_WEBHOOK_EVENTS:
            logger.info("webhook_received", event_type=event_type)
        else:
            logger.info("webhook_ignored", event_type=event_type)
        return {"success": True}

    def stats(self) -> Dict[str, int]:
        return {"orders": len(self.orders), "payments": len(self.payments)}
