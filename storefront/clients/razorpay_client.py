"""
HTTP client for the Razorpay payment gateway.

This module creates gateway orders through the Razorpay REST API using the
key id / key secret pair as HTTP basic auth.
"""
import logging
from typing import Any, Dict, Optional

import httpx

from ..errors import ConfigMissing, GatewayError, InvalidPayload
from ..payments import RazorpayConfig

logger = logging.getLogger(__name__)

TIMEOUT = 10.0  # seconds


async def create_order(
    config: RazorpayConfig,
    amount: Optional[int],
    currency: str = "INR",
    receipt: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    """
    Create an order on the gateway.

    Args:
        config: Gateway configuration
        amount: Amount in the smallest currency unit (paise for INR)
        currency: ISO currency code
        receipt: Optional merchant receipt reference
        transport: Optional httpx transport (used by tests)

    Returns:
        The gateway order object as returned by Razorpay

    Raises:
        ConfigMissing: if the gateway keys are not configured
        InvalidPayload: if the amount is missing or not positive
        GatewayError: if the gateway is unreachable or rejects the request
    """
    if not config.configured:
        logger.warning("RAZORPAY_KEY_ID/RAZORPAY_KEY_SECRET are not set")
        raise ConfigMissing("Razorpay is not configured on the server")
    if not amount or amount <= 0:
        raise InvalidPayload("Invalid amount", code="INVALID_AMOUNT")

    payload: Dict[str, Any] = {"amount": amount, "currency": currency}
    if receipt:
        payload["receipt"] = receipt

    try:
        async with httpx.AsyncClient(
            base_url=config.api_url,
            auth=(config.key_id, config.key_secret),
            timeout=TIMEOUT,
            transport=transport,
        ) as client:
            response = await client.post("/orders", json=payload)
            response.raise_for_status()
            order = response.json()
    except httpx.HTTPStatusError as e:
        logger.error(f"Razorpay create-order rejected: HTTP {e.response.status_code} {e.response.text}")
        raise GatewayError("Failed to create order")
    except httpx.HTTPError as e:
        logger.error(f"Razorpay create-order error: {e}")
        raise GatewayError("Failed to create order")

    logger.info(f"Razorpay order {order.get('id')} created for {amount} {currency}")
    return order
