from __future__ import annotations

from typing import Any, Dict

import httpx

from chatastro.config import Settings
from chatastro.exceptions import ExternalServiceError
from chatastro.logger import logger


class PaymentGateway:
    """Razorpay Orders API over REST (basic auth with key id / key secret)."""

    def __init__(self, settings: Settings):
        self.settings = settings

    @property
    def key_id(self) -> str:
        return self.settings.razorpay_key_id

    async def create_order(
        self,
        amount: int,
        currency: str,
        receipt: str,
        notes: Dict[str, Any],
    ) -> Dict[str, Any]:
        """
        Create a gateway order.

        Args:
            amount: Amount in minor units (paise)
            currency: ISO currency code
            receipt: Merchant receipt reference
            notes: Free-form metadata stored with the order

        Returns:
            The gateway's order object (contains at least id, amount, currency)
        """
        payload = {"amount": amount, "currency": currency, "receipt": receipt, "notes": notes}
        url = f"{self.settings.razorpay_base_url.rstrip('/')}/orders"
        auth = (self.settings.razorpay_key_id, self.settings.razorpay_key_secret)

        logger.info("gateway_order_request", amount=amount, currency=currency, receipt=receipt)
        try:
            async with httpx.AsyncClient(timeout=self.settings.api_timeout_seconds) as client:
                resp = await client.post(url, json=payload, auth=auth)
                resp.raise_for_status()
            order = resp.json()
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "gateway_order_error",
                error=str(exc),
                key_id_present=bool(self.settings.razorpay_key_id),
                key_secret_present=bool(self.settings.razorpay_key_secret),
            )
            raise ExternalServiceError("Razorpay", "Failed to create payment order", str(exc)) from exc

        if not isinstance(order, dict) or not order.get("id"):
            raise ExternalServiceError("Razorpay", "Malformed order response")

        logger.info("gateway_order_created", order_id=order["id"])
        return order
