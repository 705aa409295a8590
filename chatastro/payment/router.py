from __future__ import annotations

import json

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse

from chatastro.dependencies import Services, get_services
from chatastro.exceptions import ValidationError
from chatastro.logger import logger
from chatastro.utils.models import CreateOrderRequest, PaymentFailureRequest, VerifyPaymentRequest

router = APIRouter(prefix="/api/payment", tags=["payment"])


@router.get("/plans", summary="List purchasable plans")
async def get_plans(services: Services = Depends(get_services)) -> dict:
    return {
        "success": True,
        "plans": [plan.model_dump() for plan in services.payments.get_all_plans()],
    }


@router.post("/create-order", summary="Create a payment order")
async def create_order(payload: CreateOrderRequest, services: Services = Depends(get_services)) -> dict:
    if not payload.user_id or not payload.plan_type:
        raise ValidationError("Missing required fields: userId and planType are required")

    order = await services.payments.create_order(payload.user_id, payload.plan_type, payload.user_details)
    return {
        "success": True,
        "order": order,
        "message": "Payment order created successfully",
    }


@router.post(
    "/verify",
    summary="Verify a completed payment",
    description="""
Checks the gateway signature (HMAC-SHA256 of `order_id|payment_id`) and, on
success, upgrades the user to the purchased plan. Re-sending the same payment
is harmless: the stored result is returned and nothing is granted twice.
    """,
)
async def verify_payment(payload: VerifyPaymentRequest, services: Services = Depends(get_services)) -> dict:
    if payload.payment_data is None or not payload.user_id:
        raise ValidationError("Missing payment data or user ID")

    data = payload.payment_data
    result = services.payments.verify_payment(
        data.razorpay_order_id,
        data.razorpay_payment_id,
        data.razorpay_signature,
        user_id=payload.user_id,
    )
    if result.newly_paid:
        usage = await services.engine.apply_payment(payload.user_id, result.order, result.payment)
    else:
        usage = services.engine.ledger.get(payload.user_id)

    return {
        "success": True,
        "payment": result.payment.model_dump(),
        "order": result.order.model_dump(),
        "userState": usage.model_dump(exclude={"user_id"}),
        "alreadyProcessed": not result.newly_paid,
        "message": "Payment verified successfully",
    }


@router.post("/failure", summary="Report a failed payment")
async def payment_failure(payload: PaymentFailureRequest, services: Services = Depends(get_services)) -> dict:
    if not payload.order_id:
        raise ValidationError("Order ID is required", field="orderId")

    result = services.payments.handle_failure(payload.order_id, payload.error_data)
    return {"success": False, **result}


@router.get("/status/{order_id}", summary="Get order and payment status")
async def payment_status(order_id: str, services: Services = Depends(get_services)) -> dict:
    return {"success": True, "status": services.payments.get_payment_status(order_id)}


@router.get("/history/{user_id}", summary="Get a user's payment history")
async def payment_history(user_id: str, services: Services = Depends(get_services)) -> dict:
    return {"success": True, "payments": services.payments.get_user_payments(user_id)}


@router.post("/webhook", summary="Gateway webhook receiver")
async def payment_webhook(
    request: Request,
    services: Services = Depends(get_services),
    x_razorpay_signature: str = Header(default=""),
):
    raw_body = await request.body()
    if not services.payments.validate_webhook(raw_body, x_razorpay_signature):
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": "Invalid webhook signature"},
        )

    try:
        event = json.loads(raw_body)
    except ValueError:
        logger.warning("webhook_invalid_json")
        raise ValidationError("Webhook body is not valid JSON") from None

    return services.payments.process_webhook(event)
