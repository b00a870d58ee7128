"""Gateway client request shape and failure mapping."""

import json

import httpx
import pytest

from conftest import GATEWAY_BASE
from paybridge.common.errors import GatewayError, ProtocolError
from paybridge.services.checkout.gateway_client import GatewayClient
from paybridge.services.checkout.schemas import MerchantUrls, PaymentOrderRequest


def order_request(**overrides) -> PaymentOrderRequest:
    values = {
        "order_id": "TX-1700000000000-abcd1234",
        "amount_minor_units": 4999,
        "customer_name": "Asha",
        "customer_mobile": "9876543210",
        "expire_after_seconds": 1200,
        "callback_urls": MerchantUrls(
            redirect_url="https://pay.example.net/api/phonepay/status?txnId=TX-1",
            cancel_url="https://pay.example.net/api/phonepay/payment-failed",
            notify_url="https://pay.example.net/api/phonepay/notify",
        ),
        "message": "Payment for order TX-1",
        "udf": {"udf1": "Asha", "udf2": "9876543210"},
    }
    values.update(overrides)
    return PaymentOrderRequest(**values)


def client_for(handler) -> GatewayClient:
    return GatewayClient(base_url=GATEWAY_BASE, transport=httpx.MockTransport(handler), service_name="test")


@pytest.mark.asyncio
async def test_create_order_sends_bearer_header_and_payload(gateway_stub, gateway):
    result = await gateway.create_order(order_request(), "tok")

    request = [r for r in gateway_stub.requests if r.url.path.endswith("/checkout/v2/pay")][0]
    assert request.headers["authorization"] == "O-Bearer tok"
    body = json.loads(request.content)
    assert body["merchantOrderId"] == "TX-1700000000000-abcd1234"
    assert body["amount"] == 4999
    assert body["expireAfter"] == 1200
    assert body["metaInfo"] == {"udf1": "Asha", "udf2": "9876543210", "udf3": "", "udf4": "", "udf5": ""}
    assert body["paymentFlow"]["type"] == "PG_CHECKOUT"
    assert body["paymentFlow"]["merchantUrls"]["notifyUrl"].endswith("/api/phonepay/notify")
    assert "paymentModeConfig" not in body["paymentFlow"]
    assert body["userInfo"] == {"name": "Asha", "mobileNumber": "9876543210"}
    assert result.redirect_url.startswith("https://mercury.test/")
    assert result.gateway_order_id == "OMO-TX-1700000000000-abcd1234"


@pytest.mark.asyncio
async def test_payment_modes_and_user_info_are_optional(gateway_stub, gateway):
    await gateway.create_order(
        order_request(enabled_payment_modes=[{"type": "UPI_QR"}], include_user_info=False), "tok"
    )

    body = gateway_stub.create_calls[0]
    assert body["paymentFlow"]["paymentModeConfig"] == {"enabledPaymentModes": [{"type": "UPI_QR"}]}
    assert "userInfo" not in body


@pytest.mark.asyncio
async def test_non_2xx_becomes_gateway_error_with_body(gateway_stub, gateway):
    gateway_stub.create_response = (400, {"code": "BAD_REQUEST", "message": "amount too low"})

    with pytest.raises(GatewayError) as exc_info:
        await gateway.create_order(order_request(), "tok")

    assert exc_info.value.status == 400
    assert exc_info.value.body == {"code": "BAD_REQUEST", "message": "amount too low"}


@pytest.mark.asyncio
async def test_missing_redirect_url_is_a_protocol_error(gateway_stub, gateway):
    gateway_stub.create_response = (200, {"orderId": "OMO1", "state": "PENDING"})

    with pytest.raises(ProtocolError, match="Missing redirectUrl"):
        await gateway.create_order(order_request(), "tok")


@pytest.mark.asyncio
async def test_timeout_becomes_gateway_error_without_status():
    def slow(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(GatewayError) as exc_info:
        await client_for(slow).create_order(order_request(), "tok")
    assert exc_info.value.status is None


@pytest.mark.asyncio
async def test_get_order_status_parses_state_and_payments(gateway_stub, gateway):
    gateway_stub.set_status("CHECKOUT-1", "COMPLETED", amount=4999)

    status = await gateway.get_order_status("CHECKOUT-1", "tok")

    request = gateway_stub.gateway_calls[-1]
    assert request.method == "GET"
    assert request.url.path == "/apis/pg/checkout/v2/order/CHECKOUT-1/status"
    assert request.headers["authorization"] == "O-Bearer tok"
    assert status.state == "COMPLETED"
    assert status.amount == 4999
    assert status.first_payment.transaction_id == "T-CHECKOUT-1"


@pytest.mark.asyncio
async def test_unknown_order_status_is_gateway_error(gateway):
    with pytest.raises(GatewayError) as exc_info:
        await gateway.get_order_status("NOPE", "tok")
    assert exc_info.value.status == 404
