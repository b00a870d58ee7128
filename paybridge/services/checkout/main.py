"""HTTP surface for the checkout bridge.

Routes map merchant and gateway requests onto `SessionCoordinator`
operations and shape each result for its flow (JSON, HTML or redirect).
"""

import json
from contextlib import asynccontextmanager
from time import perf_counter
from typing import Any
from urllib.parse import parse_qsl, urlencode
from uuid import uuid4

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response

from paybridge.common.config import settings
from paybridge.common.db import Base, SessionLocal, engine
from paybridge.common.errors import GatewayError, NotFoundError, PayBridgeError, ValidationError
from paybridge.common.logging import configure_logging, logger, trace_id_ctx
from paybridge.common.metrics import http_request_duration_seconds, http_requests_total, metrics_response
from paybridge.common.startup import log_startup_config
from paybridge.common.tracing import instrument_app, setup_tracing
from paybridge.services.checkout.credentials import CredentialCache
from paybridge.services.checkout.flows import (
    API_PREFIX,
    PROFILES,
    Flow,
    MerchantParams,
    RequestContext,
    ResponseStyle,
    resolve_style,
)
from paybridge.services.checkout.gateway_client import GatewayClient
from paybridge.services.checkout.pages import checkout_iframe_page, error_page, payment_error_page, redirect_page
from paybridge.services.checkout.service import SessionCoordinator, SessionResult, StatusView
from paybridge.services.checkout.store import PaymentRecordStore

configure_logging()
tracing_enabled = setup_tracing(settings.service_name, settings.otel_exporter_otlp_endpoint)
log_startup_config(
    settings,
    [
        "database_url",
        "phonepe_base_url",
        "phonepe_identity_url",
        "phonepe_client_version",
        "phonepe_client_secret",
        "http_timeout_seconds",
        "enforce_monotonic_status",
    ],
)
coordinator = SessionCoordinator(
    credentials=CredentialCache.from_settings(),
    gateway=GatewayClient.from_settings(),
    store=PaymentRecordStore(SessionLocal),
    enforce_monotonic_status=settings.enforce_monotonic_status,
)


def get_coordinator() -> SessionCoordinator:
    return coordinator


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Create the payment table for local SQLite runs; production uses Alembic."""

    if settings.auto_create_schema:
        Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(title="PayBridge Checkout", lifespan=lifespan)
instrument_app(app, tracing_enabled)
router = APIRouter(prefix=API_PREFIX)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    """Record request count and latency for every HTTP call."""

    start = perf_counter()
    route = request.url.path
    method = request.method
    status_code = 500
    trace_id_ctx.set(request.headers.get("x-correlation-id") or str(uuid4()))
    try:
        response = await call_next(request)
        status_code = response.status_code
        route_obj = request.scope.get("route")
        if route_obj is not None and getattr(route_obj, "path", None):
            route = route_obj.path
        return response
    finally:
        elapsed = max(0.0, perf_counter() - start)
        http_request_duration_seconds.labels(
            service=settings.service_name,
            route=route,
            method=method,
        ).observe(elapsed)
        http_requests_total.labels(
            service=settings.service_name,
            route=route,
            method=method,
            status_code=str(status_code),
        ).inc()


def request_context(request: Request) -> RequestContext:
    host = request.headers.get("host") or request.url.netloc
    return RequestContext(base_url=f"{request.url.scheme}://{host}")


def wants_json(request: Request) -> bool:
    return "application/json" in request.headers.get("accept", "")


async def read_body(request: Request) -> dict[str, Any]:
    """JSON or form-encoded body as a dict; anything else reads as empty."""

    raw = await request.body()
    if not raw:
        return {}
    content_type = request.headers.get("content-type", "")
    if "application/x-www-form-urlencoded" in content_type:
        return dict(parse_qsl(raw.decode("utf-8", errors="replace"), keep_blank_values=True))
    try:
        data = json.loads(raw)
    except ValueError:
        logger.warning("request body is not valid JSON path=%s", request.url.path)
        return {}
    return data if isinstance(data, dict) else {}


def render_session(result: SessionResult) -> Response:
    if result.style is ResponseStyle.HTML_IFRAME:
        return HTMLResponse(checkout_iframe_page(result.redirect_url, settings.phonepe_client_id, result.payload))
    if result.style is ResponseStyle.HTML_REDIRECT:
        return HTMLResponse(redirect_page(result.redirect_url))
    if result.style is ResponseStyle.HTTP_REDIRECT:
        return RedirectResponse(result.redirect_url, status_code=302)
    return JSONResponse(result.payload)


def render_failure(flow: Flow, style: ResponseStyle, exc: PayBridgeError) -> Response:
    profile = PROFILES[flow]
    status_code = 400 if isinstance(exc, ValidationError) else 500
    if isinstance(exc, ValidationError):
        payload = exc.to_payload()
    else:
        payload = {"success": False, "message": profile.failure_message, "details": exc.details or exc.message}

    if style is ResponseStyle.JSON or (style is ResponseStyle.HTTP_REDIRECT and status_code == 400):
        return JSONResponse(payload, status_code=status_code)
    if style is ResponseStyle.HTTP_REDIRECT:
        query = urlencode({"status": "failed", "details": exc.message or profile.failure_message})
        return RedirectResponse(f"{profile.failure_page}?{query}", status_code=302)
    heading = "Invalid payment request" if status_code == 400 else "Payment Processing Error"
    return HTMLResponse(error_page(heading, exc.message), status_code=status_code)


async def run_session(
    coordinator: SessionCoordinator, flow: Flow, data: dict[str, Any], request: Request
) -> Response:
    accepts_json = wants_json(request)
    params = MerchantParams()
    try:
        params = MerchantParams.from_mapping(data)
        result = await coordinator.create_session(flow, params, request_context(request), wants_json=accepts_json)
    except PayBridgeError as exc:
        logger.error("order creation failed flow=%s error=%s details=%s", flow.value, exc.message, exc.details)
        return render_failure(flow, resolve_style(PROFILES[flow], params, accepts_json), exc)
    return render_session(result)


@router.post("/create-order")
async def create_order(request: Request, coordinator: SessionCoordinator = Depends(get_coordinator)):
    """Standard order: iframe page by default, JSON when `redirectMode` is not IFRAME."""

    return await run_session(coordinator, Flow.STANDARD, await read_body(request), request)


@router.post("/create-order-token")
async def create_order_token(request: Request, coordinator: SessionCoordinator = Depends(get_coordinator)):
    return await run_session(coordinator, Flow.TOKEN, await read_body(request), request)


@router.post("/create-unique-order")
async def create_unique_order(request: Request, coordinator: SessionCoordinator = Depends(get_coordinator)):
    return await run_session(coordinator, Flow.UNIQUE, await read_body(request), request)


@router.get("/create-order-get")
async def create_order_get(request: Request, coordinator: SessionCoordinator = Depends(get_coordinator)):
    """Shareable-link order creation; redirects straight to the hosted page."""

    return await run_session(coordinator, Flow.MULTI, dict(request.query_params), request)


@router.post("/checkout-payment")
async def checkout_payment(request: Request, coordinator: SessionCoordinator = Depends(get_coordinator)):
    return await run_session(coordinator, Flow.CHECKOUT, await read_body(request), request)


@router.get("/process-payment")
async def process_payment(request: Request, coordinator: SessionCoordinator = Depends(get_coordinator)):
    """URL-driven order: HTML auto-redirect for browsers, JSON for API callers."""

    return await run_session(coordinator, Flow.URL, dict(request.query_params), request)


@router.get("/status")
async def get_status(
    txnId: str | None = None,
    coordinator: SessionCoordinator = Depends(get_coordinator),
):
    try:
        target = await coordinator.check_status(txnId, StatusView.STANDARD)
    except ValidationError as exc:
        return JSONResponse(exc.to_payload(), status_code=400)
    return RedirectResponse(target, status_code=302)


@router.get("/unique-status")
async def unique_status(txnId: str | None = None, coordinator: SessionCoordinator = Depends(get_coordinator)):
    return RedirectResponse(await coordinator.check_status(txnId, StatusView.UNIQUE), status_code=302)


@router.get("/multi-status")
async def multi_status(txnId: str | None = None, coordinator: SessionCoordinator = Depends(get_coordinator)):
    return RedirectResponse(await coordinator.check_status(txnId, StatusView.MULTI), status_code=302)


@router.get("/order-status/{merchantOrderId}")
async def order_status(merchantOrderId: str, coordinator: SessionCoordinator = Depends(get_coordinator)):
    try:
        status = await coordinator.order_status(merchantOrderId)
    except PayBridgeError as exc:
        if isinstance(exc, ValidationError):
            status_code = 400
        elif isinstance(exc, NotFoundError) or (isinstance(exc, GatewayError) and exc.status == 404):
            status_code = 404
        else:
            status_code = 500
        payload = {"success": False, "message": "Error checking order status", "details": exc.details or exc.message}
        return JSONResponse(payload, status_code=status_code)
    return {"success": True, "data": status.snapshot()}


@router.get("/payment-status")
async def payment_status(
    txnId: str | None = None,
    clientDomain: str | None = None,
    coordinator: SessionCoordinator = Depends(get_coordinator),
):
    """Browser return from the hosted page: reconcile and send the shopper on."""

    return RedirectResponse(await coordinator.reconcile(txnId, clientDomain), status_code=302)


@router.get("/payment-cancelled")
async def payment_cancelled(txnId: str | None = None, coordinator: SessionCoordinator = Depends(get_coordinator)):
    return RedirectResponse(await coordinator.cancel(txnId), status_code=302)


@router.get("/payment-failed")
async def payment_failed(
    code: str | None = None,
    merchantOrderId: str | None = None,
    transactionId: str | None = None,
    coordinator: SessionCoordinator = Depends(get_coordinator),
):
    return RedirectResponse(coordinator.payment_failed(code, merchantOrderId, transactionId), status_code=302)


@router.get("/payment-error", response_class=HTMLResponse)
async def payment_error(reason: str | None = None, txnId: str | None = None):
    return payment_error_page(reason, txnId)


@router.post("/notify")
async def notify(request: Request, coordinator: SessionCoordinator = Depends(get_coordinator)):
    """Gateway webhook. Always acknowledged with 200 so the gateway stops retrying."""

    payload = await read_body(request)
    outcome = await coordinator.apply_webhook(payload)
    logger.info("webhook acknowledged outcome=%s order_id=%s", outcome.outcome, outcome.order_id)
    return {"status": "RECEIVED"}


app.include_router(router)


@app.get("/metrics")
def metrics():
    """Prometheus scrape endpoint."""

    return metrics_response()


@app.get("/health")
def health():
    """Container health probe endpoint."""

    return {"ok": True}
