"""Payment-session lifecycle coordinator.

Creates gateway orders for every checkout flow and reconciles gateway state
(browser return, cancellation, webhook push) against the local payment record,
then decides where the shopper's browser goes next.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any
from urllib.parse import urlencode

from pydantic import ValidationError as PydanticValidationError

from paybridge.common.config import settings
from paybridge.common.errors import (
    DuplicateKeyError,
    GatewayError,
    PayBridgeError,
    StoreError,
    ValidationError,
)
from paybridge.common.logging import logger, order_id_ctx
from paybridge.common.metrics import orders_created_total, reconciliations_total, webhook_deliveries_total
from paybridge.common.state_machine import CANCELLED, SUCCESS
from paybridge.services.checkout.credentials import CredentialCache
from paybridge.services.checkout.flows import (
    PROFILES,
    Flow,
    FlowProfile,
    MerchantParams,
    RequestContext,
    ResponseStyle,
    new_order_id,
    parse_amount,
    resolve_payment_modes,
    resolve_style,
    to_minor_units,
)
from paybridge.services.checkout.gateway_client import GatewayClient
from paybridge.services.checkout.models import PaymentRecord
from paybridge.services.checkout.outcome import (
    UNKNOWN_DOMAIN,
    backfill_status,
    error_redirect,
    map_order_status,
    map_webhook_code,
    outcome_redirect,
    reconcile_status,
    status_page_redirect,
)
from paybridge.services.checkout.schemas import (
    CreateOrderResult,
    OrderStatus,
    PaymentDetails,
    PaymentOrderRequest,
    WebhookPayload,
    utc_now_iso,
)
from paybridge.services.checkout.store import PaymentRecordStore


def _field_errors(exc: PydanticValidationError) -> list[str]:
    return [f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()]


class StatusView(str, Enum):
    """Browser return pages that only display gateway state."""

    STANDARD = "/"
    UNIQUE = "/upp"
    MULTI = "/multipayment"


@dataclass(frozen=True)
class PersistOutcome:
    ok: bool
    error: str | None = None


@dataclass
class SessionResult:
    flow: Flow
    style: ResponseStyle
    order_id: str
    redirect_url: str
    payload: dict[str, Any] = field(default_factory=dict)
    persisted: PersistOutcome | None = None


@dataclass(frozen=True)
class WebhookOutcome:
    outcome: str
    order_id: str | None = None
    status: str | None = None


class SessionCoordinator:
    """Owns record creation and every status transition of a payment record."""

    def __init__(
        self,
        credentials: CredentialCache,
        gateway: GatewayClient,
        store: PaymentRecordStore,
        enforce_monotonic_status: bool = True,
        service_name: str = settings.service_name,
    ) -> None:
        self.credentials = credentials
        self.gateway = gateway
        self.store = store
        self.enforce_monotonic_status = enforce_monotonic_status
        self.service_name = service_name

    # -- order creation -------------------------------------------------

    async def create_session(
        self,
        flow: Flow,
        params: MerchantParams,
        ctx: RequestContext,
        wants_json: bool = False,
    ) -> SessionResult:
        """Validate, persist (best effort), create the gateway order, shape the result.

        Validation, configuration, auth and gateway errors propagate to the
        caller; persistence errors never do.
        """

        profile = PROFILES[flow]
        style = resolve_style(profile, params, wants_json)

        if profile.requires_domain and not params.domain:
            raise ValidationError("Domain name is required")
        amount = parse_amount(params.amount, profile)
        payment_modes = resolve_payment_modes(profile, params.enabled_payment_modes)

        order_id = (params.merchant_order_id if profile.accepts_order_id else None) or new_order_id(
            profile.prefix, profile.suffix_style
        )
        order_id_ctx.set(order_id)
        name = params.name or profile.default_name
        mobile = params.mobile or profile.default_mobile

        try:
            request = self._build_request(profile, order_id, amount, params, name, mobile, payment_modes, ctx)
        except PydanticValidationError as exc:
            raise ValidationError("Invalid payment request", details=_field_errors(exc)) from exc

        persisted = None
        if profile.persists_record:
            persisted = self._attempt_persist(profile, order_id, amount, params, name, mobile)

        try:
            token = await self.credentials.get_token()
            result = await self.gateway.create_order(request, token)
        except PayBridgeError:
            orders_created_total.labels(service=self.service_name, flow=flow.value, outcome="failed").inc()
            raise
        orders_created_total.labels(service=self.service_name, flow=flow.value, outcome="created").inc()
        logger.info("gateway order created flow=%s order_id=%s state=%s", flow.value, order_id, result.state)

        return SessionResult(
            flow=flow,
            style=style,
            order_id=order_id,
            redirect_url=result.redirect_url,
            payload=self._success_payload(profile, style, order_id, amount, params, request, result),
            persisted=persisted,
        )

    def _attempt_persist(
        self,
        profile: FlowProfile,
        order_id: str,
        amount: Decimal,
        params: MerchantParams,
        name: str,
        mobile: str,
    ) -> PersistOutcome:
        """Write the pending record before the gateway call.

        The outcome is only logged: payment initiation proceeds even when the
        store is unavailable.
        """

        try:
            details = PaymentDetails(
                name=name,
                mobile=mobile,
                source=profile.udf3_tag,
                merchant_fields=params.extra or None,
                created_at=utc_now_iso(),
                query_params={
                    "domain": params.domain,
                    "amount": str(params.amount),
                    "merchantOrderId": params.merchant_order_id if profile.accepts_order_id else order_id,
                },
            )
        except PydanticValidationError as exc:
            logger.warning("pending record details rejected, continuing order_id=%s error=%s", order_id, exc)
            return PersistOutcome(ok=False, error="invalid payment details")
        try:
            self.store.create(order_id, params.domain, amount, details)
        except StoreError as exc:
            logger.warning("pending record not persisted, continuing order_id=%s error=%s", order_id, exc.message)
            return PersistOutcome(ok=False, error=exc.message)
        return PersistOutcome(ok=True)

    @staticmethod
    def _build_request(
        profile: FlowProfile,
        order_id: str,
        amount: Decimal,
        params: MerchantParams,
        name: str,
        mobile: str,
        payment_modes: list[dict[str, Any]] | None,
        ctx: RequestContext,
    ) -> PaymentOrderRequest:
        if profile.requires_domain:
            udf = {"udf1": params.domain, "udf2": name, "udf3": profile.udf3_tag}
            message = f"Payment for {params.domain}"
        else:
            udf = {"udf1": name, "udf2": mobile}
            if profile.flow is Flow.STANDARD:
                udf["udf3"] = (params.redirect_mode or "IFRAME").upper()
            elif profile.udf3_tag:
                udf["udf3"] = profile.udf3_tag
            message = {
                Flow.UNIQUE: f"Unique Payment {order_id}",
                Flow.MULTI: f"Multi Payment {order_id}",
            }.get(profile.flow, f"Payment for order {order_id}")
        return PaymentOrderRequest(
            order_id=order_id,
            amount_minor_units=to_minor_units(amount),
            customer_name=name,
            customer_mobile=mobile,
            expire_after_seconds=profile.expire_after_seconds,
            callback_urls=ctx.merchant_urls(profile, order_id, params.domain),
            message=message,
            udf=udf,
            enabled_payment_modes=payment_modes,
            include_user_info=profile.include_user_info,
        )

    @staticmethod
    def _success_payload(
        profile: FlowProfile,
        style: ResponseStyle,
        order_id: str,
        amount: Decimal,
        params: MerchantParams,
        request: PaymentOrderRequest,
        result: CreateOrderResult,
    ) -> dict[str, Any]:
        if profile.flow is Flow.TOKEN:
            return {"success": True, "tokenUrl": result.redirect_url, "merchantOrderId": order_id}
        if profile.flow is Flow.CHECKOUT:
            return {"success": True, "redirectUrl": result.redirect_url, "orderId": order_id}
        if profile.flow is Flow.URL:
            return {
                "success": True,
                "orderId": order_id,
                "paymentUrl": result.redirect_url,
                "amount": float(amount),
                "domain": params.domain,
                "state": result.state or "CREATED",
                "message": "Payment link generated successfully",
            }
        if profile.flow is Flow.STANDARD and style is ResponseStyle.JSON:
            return {
                "success": True,
                "redirectUrl": result.redirect_url,
                "orderId": result.gateway_order_id,
                "merchantOrderId": order_id,
                "state": result.state,
                "expireAt": result.expire_at,
            }
        if profile.flow is Flow.STANDARD:
            return {
                "redirectUrl": result.redirect_url,
                "transactionId": order_id,
                "amount": request.amount_minor_units,
                "failureUrl": profile.cancel_path,
            }
        return {"success": True, "redirectUrl": result.redirect_url, "merchantOrderId": order_id}

    # -- reconciliation -------------------------------------------------

    def _apply_status(self, record: PaymentRecord, new_status: str, fields: dict[str, Any]) -> PaymentRecord:
        """Request `new_status`; the store re-checks the policy against the locked row.

        A kept status still stores the new detail fields for audit.
        """

        return self.store.update_status(
            record.order_id,
            new_status,
            {**fields, "status": new_status},
            enforce_monotonic=self.enforce_monotonic_status,
        )

    def _load_existing(self, order_id: str) -> PaymentRecord | None:
        """Require-existing policy: a missing record is reported, never invented."""

        return self.store.find_by_order_id(order_id)

    def _load_or_backfill(
        self,
        order_id: str,
        status: OrderStatus,
        client_domain: str | None,
        initial_status: str | None = None,
        origin: str = "callback",
    ) -> PaymentRecord | None:
        """Upsert-on-reconcile policy: synthesize the record from gateway data when absent."""

        record = self.store.find_by_order_id(order_id)
        if record is not None:
            return record

        domain = client_domain or status.meta_info.get("udf1") or UNKNOWN_DOMAIN
        amount = Decimal(status.amount) / 100
        logger.warning("backfilling payment record order_id=%s domain=%s origin=%s", order_id, domain, origin)
        details = PaymentDetails(
            phonepe_response=status.snapshot(),
            created_at=utc_now_iso(),
            created_from_callback=True if origin == "callback" else None,
            created_from_cancellation=True if origin == "cancellation" else None,
            query_params={"domain": domain, "amount": str(amount), "merchantOrderId": order_id},
        )
        try:
            return self.store.create(
                order_id,
                domain,
                amount,
                details,
                status=initial_status or backfill_status(status.state),
            )
        except DuplicateKeyError:
            # Lost a race with a concurrent backfill of the same order.
            return self.store.find_by_order_id(order_id)
        except StoreError as exc:
            logger.error("backfill failed order_id=%s error=%s", order_id, exc.message)
            return None

    async def _fetch_status(self, order_id: str) -> OrderStatus:
        token = await self.credentials.get_token()
        return await self.gateway.get_order_status(order_id, token)

    async def reconcile(self, order_id: str | None, client_domain: str | None = None) -> str:
        """Bring the record in line with the gateway and return the shopper's redirect.

        Never raises: every failure becomes an error-page redirect.
        """

        if not order_id:
            return error_redirect("missing_transaction_id")
        order_id_ctx.set(order_id)
        try:
            status = await self._fetch_status(order_id)
            record = self._load_or_backfill(order_id, status, client_domain)
            if record is None:
                return error_redirect("record_not_found", order_id)

            new_status = reconcile_status(status.state)
            fields: dict[str, Any] = {"phonepe_response": status.snapshot(), "last_updated": utc_now_iso()}
            payment = status.first_payment
            if new_status == SUCCESS and payment is not None:
                fields["transaction_id"] = payment.transaction_id or ""
                fields["provider_reference_id"] = payment.provider_reference_id or ""
                fields["payment_mode"] = payment.payment_mode or ""
            record = self._apply_status(record, new_status, fields)
        except Exception as exc:
            reason = exc.message if isinstance(exc, PayBridgeError) else str(exc)
            logger.exception("reconcile failed order_id=%s", order_id)
            reconciliations_total.labels(service=self.service_name, path="return", status="error").inc()
            return error_redirect(reason, order_id)

        reconciliations_total.labels(service=self.service_name, path="return", status=record.status).inc()
        return outcome_redirect(client_domain or record.domain_name, record.status, order_id)

    async def cancel(self, order_id: str | None) -> str:
        """Shopper abandoned the hosted page: mark the order cancelled and send them to the cart."""

        if not order_id:
            return error_redirect("missing_transaction_id")
        order_id_ctx.set(order_id)
        try:
            record = self._load_existing(order_id)
            if record is None:
                logger.warning("no payment record for cancelled order order_id=%s", order_id)
                try:
                    status = await self._fetch_status(order_id)
                except PayBridgeError as exc:
                    logger.error("cannot backfill cancelled order order_id=%s error=%s", order_id, exc.message)
                else:
                    record = self._load_or_backfill(
                        order_id, status, None, initial_status=CANCELLED, origin="cancellation"
                    )
            if record is None:
                return error_redirect("cancelled_payment_not_found", order_id)
            if record.status != CANCELLED:
                record = self._apply_status(record, CANCELLED, {"last_updated": utc_now_iso()})
        except Exception as exc:
            reason = exc.message if isinstance(exc, PayBridgeError) else str(exc)
            logger.exception("cancel handling failed order_id=%s", order_id)
            return error_redirect(reason, order_id)

        reconciliations_total.labels(service=self.service_name, path="cancel", status=record.status).inc()
        return outcome_redirect(record.domain_name, record.status, order_id)

    async def apply_webhook(self, payload: dict[str, Any]) -> WebhookOutcome:
        """Apply a gateway push to an existing record.

        Unknown orders are not backfilled. Never raises; the HTTP layer always
        acknowledges.
        """

        try:
            webhook = WebhookPayload.model_validate(payload)
        except PydanticValidationError as exc:
            logger.warning("webhook payload rejected error=%s", exc)
            return self._webhook_outcome("invalid")

        order_id = webhook.order_id
        if not order_id:
            logger.warning("webhook without merchant order id ignored")
            return self._webhook_outcome("ignored")
        order_id_ctx.set(order_id)
        new_status = map_webhook_code(webhook.status_code)
        try:
            record = self._load_existing(order_id)
            if record is None:
                logger.warning("webhook for unknown order ignored order_id=%s code=%s", order_id, webhook.status_code)
                return self._webhook_outcome("unknown_order", order_id)
            record = self._apply_status(
                record, new_status, {"webhook_data": payload, "last_updated": utc_now_iso()}
            )
        except Exception:
            logger.exception("webhook processing failed order_id=%s", order_id)
            return self._webhook_outcome("error", order_id)
        logger.info("webhook applied order_id=%s status=%s", order_id, record.status)
        reconciliations_total.labels(service=self.service_name, path="webhook", status=record.status).inc()
        return self._webhook_outcome("applied", order_id, record.status)

    def _webhook_outcome(self, outcome: str, order_id: str | None = None, status: str | None = None) -> WebhookOutcome:
        webhook_deliveries_total.labels(service=self.service_name, outcome=outcome).inc()
        return WebhookOutcome(outcome=outcome, order_id=order_id, status=status)

    # -- display-only status views -------------------------------------

    async def check_status(self, order_id: str | None, view: StatusView) -> str:
        """Redirect for the standard, unique and multi return pages; no record is touched."""

        if not order_id:
            if view is StatusView.STANDARD:
                raise ValidationError("Transaction ID is required")
            return f"{view.value}?status=failed&details=Missing%20transaction%20ID"
        order_id_ctx.set(order_id)
        try:
            status = await self._fetch_status(order_id)
        except PayBridgeError as exc:
            logger.error("status check failed order_id=%s view=%s error=%s", order_id, view.name, exc.message)
            if view is StatusView.STANDARD:
                return "/?" + urlencode({"status": "error", "message": exc.message})
            detail = exc.message
            if isinstance(exc, GatewayError) and isinstance(exc.body, dict) and exc.body.get("message"):
                detail = exc.body["message"]
            return f"{view.value}?" + urlencode({"status": "failed", "details": detail})

        if view is StatusView.STANDARD:
            state = {"COMPLETED": "success", "FAILED": "failed"}.get(status.state, "pending")
            return "/?" + urlencode({"status": state, "txnId": order_id})
        return status_page_redirect(view.value, map_order_status(status))

    async def order_status(self, order_id: str | None) -> OrderStatus:
        if not order_id:
            raise ValidationError("Merchant Order ID is required")
        return await self._fetch_status(order_id)

    @staticmethod
    def payment_failed(code: str | None, merchant_order_id: str | None, transaction_id: str | None) -> str:
        logger.error(
            "payment failed code=%s merchant_order_id=%s transaction_id=%s",
            code,
            merchant_order_id,
            transaction_id,
        )
        return "/?" + urlencode({"status": "failed", "code": code or "unknown"})

