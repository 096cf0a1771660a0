"""
Payment gateway configuration and callback signature verification.

The gateway signs ``order_id|payment_id`` with HMAC-SHA256 using the shared
key secret; a callback is genuine when our own digest matches the signature it
carries.
"""
import hashlib
import hmac
from typing import Optional

from fastapi import Depends
from pydantic import BaseModel

from .config import Settings, get_settings
from .errors import ConfigMissing, MissingFields


class RazorpayConfig(BaseModel):
    """Gateway credentials. ``configured`` is False when either key is missing."""
    key_id: Optional[str] = None
    key_secret: Optional[str] = None
    api_url: str = "https://api.razorpay.com/v1"

    @property
    def configured(self) -> bool:
        return bool(self.key_id and self.key_secret)

    @property
    def masked_key_id(self) -> str:
        if not self.key_id:
            return ""
        return self.key_id[:6] + "***" if len(self.key_id) > 6 else self.key_id

    @classmethod
    def from_settings(cls, settings: Settings) -> "RazorpayConfig":
        return cls(
            key_id=settings.RAZORPAY_KEY_ID or None,
            key_secret=settings.RAZORPAY_KEY_SECRET or None,
            api_url=settings.RAZORPAY_API_URL,
        )


def get_razorpay_config(settings: Settings = Depends(get_settings)) -> RazorpayConfig:
    """FastAPI dependency returning the gateway configuration."""
    return RazorpayConfig.from_settings(settings)


def compute_signature(order_id: str, payment_id: str, secret: str) -> str:
    """Lowercase hex HMAC-SHA256 of ``order_id|payment_id`` keyed with ``secret``."""
    message = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_payment_signature(
    order_id: Optional[str],
    payment_id: Optional[str],
    signature: Optional[str],
    config: RazorpayConfig,
) -> bool:
    """
    Check a payment callback signature.

    Args:
        order_id: Gateway order id
        payment_id: Gateway payment id
        signature: Signature claimed by the callback
        config: Gateway configuration holding the key secret

    Returns:
        True if the signature matches, False otherwise

    Raises:
        MissingFields: if any of the three identifiers is empty
        ConfigMissing: if the key secret is not provisioned
    """
    if not order_id or not payment_id or not signature:
        raise MissingFields("Missing payment verification fields")
    if not config.key_secret:
        raise ConfigMissing("Razorpay is not configured on the server")

    expected = compute_signature(order_id, payment_id, config.key_secret)
    return hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8"))
