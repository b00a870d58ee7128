"""Gateway wire shapes, merchant input and the structured payment-details bag."""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Models serialized with the gateway's camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


ALL_PAYMENT_MODES: list[dict[str, Any]] = [
    {"type": "UPI_INTENT"},
    {"type": "UPI_COLLECT"},
    {"type": "UPI_QR"},
    {"type": "NET_BANKING"},
    {"type": "CARD", "cardTypes": ["DEBIT_CARD", "CREDIT_CARD"]},
]
UPI_AND_CARD_MODES: list[dict[str, Any]] = [mode for mode in ALL_PAYMENT_MODES if mode["type"] != "NET_BANKING"]


class MerchantUrls(CamelModel):
    redirect_url: str
    cancel_url: str
    notify_url: str


class PaymentOrderRequest(BaseModel):
    """One create-order call, built fresh per request."""

    order_id: str = Field(min_length=1)
    amount_minor_units: int = Field(gt=0)
    customer_name: str
    customer_mobile: str
    expire_after_seconds: int = Field(gt=0)
    callback_urls: MerchantUrls
    message: str
    udf: dict[str, str] = Field(default_factory=dict)
    enabled_payment_modes: list[dict[str, Any]] | None = None
    include_user_info: bool = True

    def to_gateway_payload(self) -> dict[str, Any]:
        """Body for `POST /checkout/v2/pay`."""

        payment_flow: dict[str, Any] = {
            "type": "PG_CHECKOUT",
            "message": self.message,
            "merchantUrls": self.callback_urls.model_dump(by_alias=True),
        }
        if self.enabled_payment_modes is not None:
            payment_flow["paymentModeConfig"] = {"enabledPaymentModes": self.enabled_payment_modes}
        payload: dict[str, Any] = {
            "merchantOrderId": self.order_id,
            "amount": self.amount_minor_units,
            "expireAfter": self.expire_after_seconds,
            "metaInfo": {f"udf{i}": self.udf.get(f"udf{i}", "") for i in range(1, 6)},
            "paymentFlow": payment_flow,
        }
        if self.include_user_info:
            payload["userInfo"] = {"name": self.customer_name, "mobileNumber": self.customer_mobile}
        return payload


class CreateOrderResult(CamelModel):
    """Fields of a successful create-order response that the bridge relies on."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    redirect_url: str
    gateway_order_id: str | None = Field(default=None, alias="orderId")
    state: str | None = None
    expire_at: int | None = None


class GatewayPaymentDetail(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    transaction_id: str | None = None
    provider_reference_id: str | None = None
    payment_mode: str | None = None


class OrderStatus(CamelModel):
    """Response of `GET /checkout/v2/order/{id}/status`."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    state: str = "UNKNOWN"
    amount: int = 0
    payment_details: list[GatewayPaymentDetail] = Field(default_factory=list)
    error_code: str | None = None
    message: str | None = None
    meta_info: dict[str, Any] = Field(default_factory=dict)

    @property
    def first_payment(self) -> GatewayPaymentDetail | None:
        return self.payment_details[0] if self.payment_details else None

    @property
    def amount_major_units(self) -> float:
        return self.amount / 100

    def snapshot(self) -> dict[str, Any]:
        """Raw-shaped copy kept on the payment record for audit."""

        return self.model_dump(by_alias=True, exclude_none=True)


class PaymentDetails(CamelModel):
    """Audit bag attached to a payment record.

    Each sub-payload has its own field; updates name the field they write.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    name: str | None = None
    mobile: str | None = None
    source: str | None = None
    query_params: dict[str, Any] | None = None
    merchant_fields: dict[str, Any] | None = None
    phonepe_response: dict[str, Any] | None = None
    webhook_data: dict[str, Any] | None = None
    transaction_id: str | None = None
    provider_reference_id: str | None = None
    payment_mode: str | None = None
    status: str | None = None
    created_from_callback: bool | None = None
    created_from_cancellation: bool | None = None
    created_at: str | None = None
    last_updated: str | None = None

    def merged(self, fields: dict[str, Any]) -> "PaymentDetails":
        """Return a validated copy with `fields` (snake or camel names) overlaid."""

        current = self.model_dump(exclude_none=True)
        return PaymentDetails.model_validate({**current, **fields})

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class WebhookPayload(BaseModel):
    """Gateway push notification; fields may sit at the top level or under `data`."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    merchant_order_id: str | None = Field(default=None, alias="merchantOrderId")
    code: str | None = None
    data: dict[str, Any] | None = None

    @property
    def order_id(self) -> str | None:
        return self.merchant_order_id or (self.data or {}).get("merchantOrderId")

    @property
    def status_code(self) -> str | None:
        return self.code or (self.data or {}).get("state")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
