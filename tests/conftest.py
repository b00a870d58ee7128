"""Shared fixtures: in-memory payment store and a scripted fake gateway."""

import json
import time

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from paybridge.common.db import Base
from paybridge.services.checkout.credentials import CredentialCache
from paybridge.services.checkout.flows import RequestContext
from paybridge.services.checkout.gateway_client import GatewayClient
from paybridge.services.checkout.models import PaymentRecord  # noqa: F401  (registers the table)
from paybridge.services.checkout.service import SessionCoordinator
from paybridge.services.checkout.store import PaymentRecordStore

GATEWAY_BASE = "https://gateway.test/apis/pg"
IDENTITY_BASE = "https://gateway.test/apis/identity-manager"


class GatewayStub:
    """Answers identity, create-order and order-status calls from scripted state."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.token_responses: list[tuple[int, dict | str]] = []
        self.tokens_issued = 0
        self.create_response: tuple[int, dict] | None = None
        self.statuses: dict[str, dict] = {}
        self.transport = httpx.MockTransport(self.handle)

    @property
    def token_calls(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith("/v1/oauth/token")]

    @property
    def gateway_calls(self) -> list[httpx.Request]:
        return [r for r in self.requests if "/checkout/v2/" in r.url.path]

    @property
    def create_calls(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests if r.url.path.endswith("/checkout/v2/pay")]

    def set_status(self, order_id: str, state: str, amount: int = 4999, **extra) -> None:
        body = {"orderId": f"OMO-{order_id}", "state": state, "amount": amount, "metaInfo": {}, "paymentDetails": []}
        if state == "COMPLETED":
            body["paymentDetails"] = [
                {"transactionId": f"T-{order_id}", "providerReferenceId": "UTR123", "paymentMode": "UPI_QR"}
            ]
        body.update(extra)
        self.statuses[order_id] = body

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.endswith("/v1/oauth/token"):
            if self.token_responses:
                status, body = self.token_responses.pop(0)
                if isinstance(body, str):
                    return httpx.Response(status, text=body)
                return httpx.Response(status, json=body)
            self.tokens_issued += 1
            return httpx.Response(
                200,
                json={"access_token": f"token-{self.tokens_issued}", "expires_at": int(time.time()) + 3600},
            )
        if path.endswith("/checkout/v2/pay"):
            if self.create_response is not None:
                status, body = self.create_response
                return httpx.Response(status, json=body)
            order = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "orderId": f"OMO-{order['merchantOrderId']}",
                    "state": "PENDING",
                    "expireAt": 1893456000000,
                    "redirectUrl": f"https://mercury.test/transact?token={order['merchantOrderId']}",
                },
            )
        if "/checkout/v2/order/" in path and path.endswith("/status"):
            order_id = path.split("/")[-2]
            if order_id in self.statuses:
                return httpx.Response(200, json=self.statuses[order_id])
            return httpx.Response(404, json={"code": "ORDER_NOT_FOUND", "message": "Order not found"})
        return httpx.Response(404, json={"message": "unknown route"})


@pytest.fixture
def gateway_stub() -> GatewayStub:
    return GatewayStub()


@pytest.fixture
def session_factory():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def store(session_factory) -> PaymentRecordStore:
    return PaymentRecordStore(session_factory, service_name="test")


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def credentials(gateway_stub, sleeps) -> CredentialCache:
    async def fake_sleep(delay: float) -> None:
        sleeps.append(delay)

    return CredentialCache(
        client_id="MERCHANT-CLIENT",
        client_secret="s3cret",
        client_version="1",
        identity_url=IDENTITY_BASE,
        transport=gateway_stub.transport,
        sleep=fake_sleep,
        service_name="test",
    )


@pytest.fixture
def gateway(gateway_stub) -> GatewayClient:
    return GatewayClient(base_url=GATEWAY_BASE, transport=gateway_stub.transport, service_name="test")


@pytest.fixture
def coordinator(credentials, gateway, store) -> SessionCoordinator:
    return SessionCoordinator(credentials=credentials, gateway=gateway, store=store, service_name="test")


@pytest.fixture
def ctx() -> RequestContext:
    return RequestContext(base_url="https://pay.example.net")
