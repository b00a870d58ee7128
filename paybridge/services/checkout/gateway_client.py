"""Stateless facade over the gateway's hosted-checkout HTTP contract.

Every call opens its own `httpx.AsyncClient` with a bounded timeout, sends the
`O-Bearer` authorization header and maps transport or non-2xx failures to
`GatewayError`. No retries and no caching happen at this layer.
"""

from time import perf_counter
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import ValidationError as PydanticValidationError

from paybridge.common.config import CommonSettings, settings
from paybridge.common.errors import GatewayError, ProtocolError
from paybridge.common.logging import logger
from paybridge.common.metrics import gateway_latency_seconds, gateway_requests_total
from paybridge.services.checkout.schemas import CreateOrderResult, OrderStatus, PaymentOrderRequest


def _body(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text


class GatewayClient:
    """create-order and get-order-status against `{base_url}/checkout/v2`."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
        service_name: str = settings.service_name,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.service_name = service_name
        self._transport = transport

    @classmethod
    def from_settings(cls, cfg: CommonSettings = settings, **overrides: Any) -> "GatewayClient":
        kwargs: dict[str, Any] = {
            "base_url": cfg.phonepe_base_url,
            "timeout": cfg.http_timeout_seconds,
            "service_name": cfg.service_name,
        }
        kwargs.update(overrides)
        return cls(**kwargs)

    @staticmethod
    def _headers(token: str) -> dict[str, str]:
        return {"Content-Type": "application/json", "Authorization": f"O-Bearer {token}"}

    async def _send(self, operation: str, method: str, url: str, token: str, **kwargs: Any) -> httpx.Response:
        started = perf_counter()
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.request(method, url, headers=self._headers(token), **kwargs)
        except httpx.TimeoutException as exc:
            gateway_requests_total.labels(service=self.service_name, operation=operation, outcome="timeout").inc()
            logger.error("gateway %s timed out url=%s", operation, url)
            raise GatewayError(f"Gateway {operation} timed out", status=None, body=str(exc)) from exc
        except httpx.HTTPError as exc:
            gateway_requests_total.labels(service=self.service_name, operation=operation, outcome="unreachable").inc()
            logger.error("gateway %s unreachable url=%s error=%s", operation, url, exc)
            raise GatewayError(f"Gateway {operation} failed: {exc}", status=None, body=str(exc)) from exc
        finally:
            gateway_latency_seconds.labels(service=self.service_name, operation=operation).observe(
                max(0.0, perf_counter() - started)
            )

        if resp.status_code >= 400 or resp.status_code < 200:
            body = _body(resp)
            gateway_requests_total.labels(service=self.service_name, operation=operation, outcome="rejected").inc()
            logger.error("gateway %s rejected status=%s body=%s", operation, resp.status_code, body)
            raise GatewayError(f"Gateway {operation} returned {resp.status_code}", status=resp.status_code, body=body)
        gateway_requests_total.labels(service=self.service_name, operation=operation, outcome="ok").inc()
        return resp

    async def create_order(self, request: PaymentOrderRequest, token: str) -> CreateOrderResult:
        """Create a hosted-checkout order and return its redirect URL."""

        payload = request.to_gateway_payload()
        logger.info(
            "creating gateway order order_id=%s amount=%s expire_after=%s",
            request.order_id,
            request.amount_minor_units,
            request.expire_after_seconds,
        )
        resp = await self._send("create_order", "POST", f"{self.base_url}/checkout/v2/pay", token, json=payload)
        body = _body(resp)
        if not isinstance(body, dict) or not body.get("redirectUrl"):
            raise ProtocolError("Invalid response from gateway: Missing redirectUrl", details=body)
        try:
            return CreateOrderResult.model_validate(body)
        except PydanticValidationError as exc:
            raise ProtocolError("Invalid response from gateway: malformed order", details=body) from exc

    async def get_order_status(self, order_id: str, token: str) -> OrderStatus:
        """Fetch the current state of one order by merchant or gateway order id."""

        url = f"{self.base_url}/checkout/v2/order/{quote(order_id, safe='')}/status"
        resp = await self._send("order_status", "GET", url, token)
        body = _body(resp)
        if not isinstance(body, dict):
            raise ProtocolError("Invalid status response from gateway", details=body)
        try:
            status = OrderStatus.model_validate(body)
        except PydanticValidationError as exc:
            raise ProtocolError("Invalid status response from gateway", details=body) from exc
        logger.info("gateway order status order_id=%s state=%s", order_id, status.state)
        return status
