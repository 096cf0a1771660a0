import asyncio
import hashlib
import hmac
import json

import httpx
import pytest

from storefront.clients import razorpay_client
from storefront.errors import ConfigMissing, GatewayError, InvalidPayload, MissingFields
from storefront.payments import RazorpayConfig, compute_signature, verify_payment_signature

from .conftest import RAZORPAY_SECRET

SECRET = "S3cr3t-key"


def expected_signature(order_id, payment_id, secret=SECRET):
    return hmac.new(secret.encode(), f"{order_id}|{payment_id}".encode(), hashlib.sha256).hexdigest()


@pytest.fixture
def config():
    return RazorpayConfig(key_id="rzp_test_abc", key_secret=SECRET)


def test_compute_signature_is_lowercase_hex_hmac():
    signature = compute_signature("O1", "P1", SECRET)
    assert signature == expected_signature("O1", "P1")
    assert signature == signature.lower()
    assert len(signature) == 64


def test_accepts_gateway_signature(config):
    assert verify_payment_signature("O1", "P1", expected_signature("O1", "P1"), config) is True


def test_rejects_every_single_character_mutation(config):
    good = expected_signature("O1", "P1")
    for i, char in enumerate(good):
        replacement = "0" if char != "0" else "1"
        mutated = good[:i] + replacement + good[i + 1:]
        assert verify_payment_signature("O1", "P1", mutated, config) is False


def test_rejects_signature_for_other_payment(config):
    assert verify_payment_signature("O1", "P2", expected_signature("O1", "P1"), config) is False


def test_uppercase_signature_is_a_mismatch(config):
    assert verify_payment_signature("O1", "P1", expected_signature("O1", "P1").upper(), config) is False


def test_missing_secret_raises_config_missing():
    with pytest.raises(ConfigMissing):
        verify_payment_signature("O1", "P1", "deadbeef", RazorpayConfig(key_id="rzp_test_abc"))


@pytest.mark.parametrize("order_id,payment_id,signature", [
    ("", "P1", "sig"),
    ("O1", None, "sig"),
    ("O1", "P1", ""),
])
def test_missing_fields(config, order_id, payment_id, signature):
    with pytest.raises(MissingFields):
        verify_payment_signature(order_id, payment_id, signature, config)


def test_missing_fields_checked_before_config():
    with pytest.raises(MissingFields):
        verify_payment_signature(None, "P1", "sig", RazorpayConfig())


def test_config_masks_key_id():
    assert RazorpayConfig(key_id="rzp_test_abc", key_secret="x").masked_key_id == "rzp_te***"
    assert RazorpayConfig(key_id="rzp_test_abc").configured is False


# ---- HTTP surface ---------------------------------------------------------

def test_verify_endpoint_valid(gateway_client):
    body = {
        "razorpay_order_id": "order_123",
        "razorpay_payment_id": "pay_456",
        "razorpay_signature": expected_signature("order_123", "pay_456", RAZORPAY_SECRET),
    }
    response = gateway_client.post("/api/payments/razorpay/verify", json=body)
    assert response.status_code == 200
    assert response.json() == {"valid": True}


def test_verify_endpoint_invalid_signature(gateway_client):
    body = {
        "razorpay_order_id": "order_123",
        "razorpay_payment_id": "pay_456",
        "razorpay_signature": "0" * 64,
    }
    response = gateway_client.post("/api/payments/razorpay/verify", json=body)
    assert response.status_code == 400
    assert response.json()["valid"] is False
    assert response.json()["code"] == "INVALID_SIGNATURE"


def test_verify_endpoint_missing_fields(gateway_client):
    response = gateway_client.post("/api/payments/razorpay/verify", json={"razorpay_order_id": "order_123"})
    assert response.status_code == 400
    assert response.json()["valid"] is False
    assert response.json()["code"] == "MISSING_FIELDS"


def test_verify_endpoint_unconfigured(client):
    body = {
        "razorpay_order_id": "order_123",
        "razorpay_payment_id": "pay_456",
        "razorpay_signature": "0" * 64,
    }
    response = client.post("/api/payments/razorpay/verify", json=body)
    assert response.status_code == 500
    assert response.json()["code"] == "CONFIG_MISSING"
    assert "valid" not in response.json()


def test_gateway_health_unconfigured(client):
    assert client.get("/api/payments/razorpay/health").json() == {"configured": False}


def test_gateway_health_configured(gateway_client):
    assert gateway_client.get("/api/payments/razorpay/health").json() == {"configured": True}


def test_verify_endpoint_non_string_ids(gateway_client):
    body = {
        "razorpay_order_id": 123,
        "razorpay_payment_id": "pay_456",
        "razorpay_signature": expected_signature("123", "pay_456", RAZORPAY_SECRET),
    }
    response = gateway_client.post("/api/payments/razorpay/verify", json=body)
    assert response.status_code == 200
    assert response.json() == {"valid": True}

    body["razorpay_signature"] = ["not", "a", "signature"]
    response = gateway_client.post("/api/payments/razorpay/verify", json=body)
    assert response.status_code == 400
    assert response.json()["valid"] is False
    assert response.json()["code"] == "INVALID_SIGNATURE"


def test_create_order_unconfigured(client):
    response = client.post("/api/payments/razorpay/create-order", json={"amount": 5000})
    assert response.status_code == 500
    assert response.json()["code"] == "CONFIG_MISSING"


@pytest.mark.parametrize("amount", [None, 0, -100])
def test_create_order_invalid_amount(gateway_client, amount):
    response = gateway_client.post("/api/payments/razorpay/create-order", json={"amount": amount})
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid amount"


def test_create_order_returns_gateway_order(gateway_client, monkeypatch):
    calls = []

    async def fake_create_order(config, amount, currency="INR", receipt=None):
        calls.append((config.key_id, amount, currency, receipt))
        return {"id": "order_Gw1", "amount": amount, "currency": currency, "status": "created"}

    monkeypatch.setattr(razorpay_client, "create_order", fake_create_order)
    response = gateway_client.post(
        "/api/payments/razorpay/create-order", json={"amount": 11550, "receipt": "rcpt-1"}
    )
    assert response.status_code == 200
    assert response.json()["id"] == "order_Gw1"
    assert calls == [("rzp_test_1234567890", 11550, "INR", "rcpt-1")]


# ---- Gateway client -------------------------------------------------------

def test_client_posts_order_with_basic_auth(config):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "order_X", "amount": 500, "currency": "INR"})

    order = asyncio.run(razorpay_client.create_order(
        config, amount=500, receipt="r1", transport=httpx.MockTransport(handler)
    ))
    assert order["id"] == "order_X"
    assert seen["url"] == "https://api.razorpay.com/v1/orders"
    assert seen["auth"].startswith("Basic ")
    assert seen["body"] == {"amount": 500, "currency": "INR", "receipt": "r1"}


def test_client_maps_gateway_rejection(config):
    transport = httpx.MockTransport(lambda request: httpx.Response(401, json={"error": "bad key"}))
    with pytest.raises(GatewayError):
        asyncio.run(razorpay_client.create_order(config, amount=500, transport=transport))


def test_client_rejects_bad_amount_without_calling_gateway(config):
    def handler(request):
        raise AssertionError("gateway must not be called")

    with pytest.raises(InvalidPayload):
        asyncio.run(razorpay_client.create_order(config, amount=0, transport=httpx.MockTransport(handler)))
