"""
Webpay Plus client against a mocked HTTP transport
"""
import json
from datetime import datetime

import httpx
import pytest

from sorykpass.services import GatewayError, WebpayPlusGateway
from sorykpass.services.payment_gateway import (
    INTEGRATION_API_KEY,
    INTEGRATION_COMMERCE_CODE,
    TRANSACTIONS_PATH,
)


def make_gateway(handler, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return WebpayPlusGateway(environment="integration", client=client, **kwargs)


@pytest.mark.asyncio
async def test_create_posts_transaction():
    seen = {}

    def handler(request: httpx.Request):
        seen["method"] = request.method
        seen["url"] = str(request.url)
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"token": "01ab", "url": "https://webpay3gint.transbank.cl/webpayserver/initTransaction"})

    gateway = make_gateway(handler)
    transaction = await gateway.create("SP2405011200001234", "sess-abc-1234", 21200, "http://api.test/api/v1/payment/return")
    await gateway.close()

    assert transaction.token == "01ab"
    assert transaction.url.endswith("/initTransaction")

    assert seen["method"] == "POST"
    assert seen["url"] == f"https://webpay3gint.transbank.cl{TRANSACTIONS_PATH}"
    assert seen["headers"]["Tbk-Api-Key-Id"] == INTEGRATION_COMMERCE_CODE
    assert seen["headers"]["Tbk-Api-Key-Secret"] == INTEGRATION_API_KEY
    assert seen["body"] == {
        "buy_order": "SP2405011200001234",
        "session_id": "sess-abc-1234",
        "amount": 21200,
        "return_url": "http://api.test/api/v1/payment/return",
    }


@pytest.mark.asyncio
async def test_commit_parses_authorization():
    def handler(request: httpx.Request):
        assert request.method == "PUT"
        assert request.url.path == f"{TRANSACTIONS_PATH}/01ab"
        return httpx.Response(200, json={
            "vci": "TSY",
            "amount": 21200,
            "status": "AUTHORIZED",
            "buy_order": "SP2405011200001234",
            "authorization_code": "1213",
            "payment_type_code": "VN",
            "response_code": 0,
            "transaction_date": "2024-05-01T15:30:00.000Z",
        })

    gateway = make_gateway(handler)
    response = await gateway.commit("01ab")

    assert response.is_approved
    assert response.authorization_code == "1213"
    assert response.transaction_date == datetime(2024, 5, 1, 15, 30, 0)
    assert response.amount == 21200


@pytest.mark.asyncio
async def test_commit_rejection_is_not_approved():
    def handler(request):
        return httpx.Response(200, json={"status": "FAILED", "response_code": -1})

    response = await make_gateway(handler).commit("01ab")

    assert not response.is_approved
    assert response.response_code == -1
    assert response.transaction_date is None


@pytest.mark.asyncio
@pytest.mark.parametrize("response", [
    httpx.Response(500, text="boom"),
    httpx.Response(422, json={"error_message": "Invalid value for parameter: amount"}),
    httpx.Response(200, text="<html>maintenance</html>"),
    httpx.Response(200, json=["not", "an", "object"]),
    httpx.Response(200, json={"url": "https://webpay"}),
])
async def test_bad_create_responses_raise(response):
    gateway = make_gateway(lambda request: response)

    with pytest.raises(GatewayError):
        await gateway.create("SP1", "sess-1", 1000, "http://api.test/return")


@pytest.mark.asyncio
async def test_http_status_is_kept_on_error():
    gateway = make_gateway(lambda request: httpx.Response(503, text="unavailable"))

    with pytest.raises(GatewayError) as exc_info:
        await gateway.commit("01ab")
    assert exc_info.value.status_code == 503


@pytest.mark.asyncio
async def test_commit_without_response_code_raises():
    gateway = make_gateway(lambda request: httpx.Response(200, json={"status": "AUTHORIZED"}))

    with pytest.raises(GatewayError):
        await gateway.commit("01ab")


@pytest.mark.asyncio
async def test_transport_error_raises_gateway_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(GatewayError):
        await make_gateway(handler).commit("01ab")


@pytest.mark.asyncio
@pytest.mark.parametrize("buy_order,session_id,amount", [
    ("X" * 27, "sess", 1000),
    ("", "sess", 1000),
    ("SP1", "s" * 62, 1000),
    ("SP1", "sess", 0),
])
async def test_create_validates_before_calling(buy_order, session_id, amount):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"token": "t", "url": "u"})

    with pytest.raises(GatewayError):
        await make_gateway(handler).create(buy_order, session_id, amount, "http://api.test/return")
    assert calls == []


def test_production_requires_credentials(monkeypatch):
    from sorykpass.core.config import settings

    monkeypatch.setattr(settings, "TRANSBANK_COMMERCE_CODE", None)
    monkeypatch.setattr(settings, "TRANSBANK_API_KEY", None)

    with pytest.raises(ValueError):
        WebpayPlusGateway(environment="production")

    gateway = WebpayPlusGateway(commerce_code="597000000001", api_key="secret", environment="production")
    assert gateway.base_url == "https://webpay3g.transbank.cl"
