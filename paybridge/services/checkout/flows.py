"""Order-creation flow profiles and merchant input parsing.

The merchant-facing entry points differ only in the values captured here;
the coordinator runs one code path for all of them.
"""

import secrets
import string
import time
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Mapping
from urllib.parse import urlencode

from paybridge.common.errors import ValidationError
from paybridge.services.checkout.schemas import ALL_PAYMENT_MODES, UPI_AND_CARD_MODES, MerchantUrls

API_PREFIX = "/api/phonepay"
BASE36 = string.digits + string.ascii_lowercase


class Flow(str, Enum):
    STANDARD = "standard"
    TOKEN = "token"
    UNIQUE = "unique"
    MULTI = "multi"
    CHECKOUT = "checkout"
    URL = "url"


class ResponseStyle(str, Enum):
    HTML_IFRAME = "html-iframe"
    HTML_REDIRECT = "html-redirect"
    JSON = "json"
    HTTP_REDIRECT = "http-redirect"


class SuffixStyle(str, Enum):
    HEX = "hex"
    BASE36 = "base36"


@dataclass(frozen=True)
class FlowProfile:
    flow: Flow
    prefix: str
    suffix_style: SuffixStyle
    expire_after_seconds: int
    status_path: str
    cancel_path: str
    cancel_carries_order_id: bool
    default_style: ResponseStyle
    failure_message: str
    requires_domain: bool = False
    persists_record: bool = False
    accepts_order_id: bool = False
    udf3_tag: str | None = None
    payment_modes: list[dict[str, Any]] | None = None
    include_user_info: bool = True
    default_name: str = "Customer"
    default_mobile: str = ""
    default_amount: str | None = None
    failure_page: str | None = None


PROFILES: dict[Flow, FlowProfile] = {
    Flow.STANDARD: FlowProfile(
        flow=Flow.STANDARD,
        prefix="TX",
        suffix_style=SuffixStyle.HEX,
        expire_after_seconds=1200,
        status_path=f"{API_PREFIX}/status",
        cancel_path=f"{API_PREFIX}/payment-failed",
        cancel_carries_order_id=False,
        default_style=ResponseStyle.HTML_IFRAME,
        failure_message="Error creating order",
    ),
    Flow.TOKEN: FlowProfile(
        flow=Flow.TOKEN,
        prefix="TX",
        suffix_style=SuffixStyle.HEX,
        expire_after_seconds=1200,
        status_path=f"{API_PREFIX}/status",
        cancel_path=f"{API_PREFIX}/payment-failed",
        cancel_carries_order_id=False,
        default_style=ResponseStyle.JSON,
        failure_message="Error creating order",
        include_user_info=False,
    ),
    Flow.UNIQUE: FlowProfile(
        flow=Flow.UNIQUE,
        prefix="UNIQUE",
        suffix_style=SuffixStyle.BASE36,
        expire_after_seconds=1800,
        status_path=f"{API_PREFIX}/unique-status",
        cancel_path="/upp?" + urlencode({"status": "failed", "details": "Payment was cancelled"}),
        cancel_carries_order_id=False,
        default_style=ResponseStyle.JSON,
        failure_message="Error creating unique order",
        udf3_tag="UNIQUE_PAYMENT",
        payment_modes=UPI_AND_CARD_MODES,
        include_user_info=False,
        default_name="Guest",
        default_mobile="9999999999",
        default_amount="1",
    ),
    Flow.MULTI: FlowProfile(
        flow=Flow.MULTI,
        prefix="MULTI",
        suffix_style=SuffixStyle.BASE36,
        expire_after_seconds=1800,
        status_path=f"{API_PREFIX}/multi-status",
        cancel_path="/multipayment?" + urlencode({"status": "failed", "details": "Payment was cancelled"}),
        cancel_carries_order_id=False,
        default_style=ResponseStyle.HTTP_REDIRECT,
        failure_message="Failed to create payment",
        udf3_tag="MULTI_PAYMENT",
        payment_modes=UPI_AND_CARD_MODES,
        default_name="Guest",
        default_mobile="9999999999",
        default_amount="1",
        failure_page="/multipayment",
    ),
    Flow.CHECKOUT: FlowProfile(
        flow=Flow.CHECKOUT,
        prefix="CHECKOUT",
        suffix_style=SuffixStyle.HEX,
        expire_after_seconds=1800,
        status_path=f"{API_PREFIX}/payment-status",
        cancel_path=f"{API_PREFIX}/payment-cancelled",
        cancel_carries_order_id=True,
        default_style=ResponseStyle.JSON,
        failure_message="Failed to process checkout payment",
        requires_domain=True,
        persists_record=True,
        udf3_tag="CHECKOUT_PAYMENT",
        payment_modes=ALL_PAYMENT_MODES,
    ),
    Flow.URL: FlowProfile(
        flow=Flow.URL,
        prefix="URL",
        suffix_style=SuffixStyle.HEX,
        expire_after_seconds=1800,
        status_path=f"{API_PREFIX}/payment-status",
        cancel_path=f"{API_PREFIX}/payment-cancelled",
        cancel_carries_order_id=True,
        default_style=ResponseStyle.HTML_REDIRECT,
        failure_message="Failed to process payment request",
        requires_domain=True,
        persists_record=True,
        accepts_order_id=True,
        udf3_tag="URL_PAYMENT",
        payment_modes=ALL_PAYMENT_MODES,
    ),
}


def new_order_id(prefix: str, suffix_style: SuffixStyle = SuffixStyle.HEX) -> str:
    """`<PREFIX>-<epochMillis>-<random>`; unique in practice, not guaranteed."""

    if suffix_style is SuffixStyle.HEX:
        suffix = secrets.token_hex(4)
    else:
        suffix = "".join(secrets.choice(BASE36) for _ in range(6))
    return f"{prefix}-{int(time.time() * 1000)}-{suffix}"


def to_minor_units(amount: Decimal) -> int:
    """Rupees to paisa, rounding half up to the nearest paisa."""

    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass
class MerchantParams:
    """Loosely-typed merchant input as received from a body or query string."""

    name: str | None = None
    mobile: str | None = None
    amount: Any = None
    domain: str | None = None
    merchant_order_id: str | None = None
    redirect_mode: str | None = None
    enabled_payment_modes: Any = None
    response_type: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    KNOWN_KEYS = (
        "name",
        "mobile",
        "mobileNumber",
        "amount",
        "domain",
        "merchantOrderId",
        "redirectMode",
        "enabledPaymentModes",
        "responseType",
    )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "MerchantParams":
        """Normalize body or query input; numbers in text fields become strings."""

        domain = data.get("domain")
        if domain is not None and not isinstance(domain, str):
            raise ValidationError("Domain name must be a string", details=f"Received domain: {domain!r}")
        return cls(
            name=_text(data, "name"),
            mobile=_text(data, "mobile") or _text(data, "mobileNumber"),
            amount=data.get("amount"),
            domain=(domain or "").strip() or None,
            merchant_order_id=_text(data, "merchantOrderId"),
            redirect_mode=_text(data, "redirectMode"),
            enabled_payment_modes=data.get("enabledPaymentModes"),
            response_type=_text(data, "responseType"),
            extra={k: v for k, v in data.items() if k not in cls.KNOWN_KEYS},
        )


def _text(data: Mapping[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        value = str(value)
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string or number", details=f"Received {key}: {value!r}")
    return value.strip() or None


def parse_amount(raw: Any, profile: FlowProfile) -> Decimal:
    """Amount in major units; must be a finite number whose paisa value is positive."""

    if raw is None or raw == "":
        raw = profile.default_amount
    invalid = (
        ValidationError("Valid payment amount is required")
        if profile.requires_domain
        else ValidationError("Invalid amount. Must be a number greater than 0", details=f"Received amount: {raw}")
    )
    if raw is None or isinstance(raw, bool):
        raise invalid
    try:
        amount = Decimal(str(raw).strip())
    except InvalidOperation as exc:
        raise invalid from exc
    if not amount.is_finite() or amount <= 0 or to_minor_units(amount) <= 0:
        raise invalid
    return amount


def resolve_payment_modes(profile: FlowProfile, requested: Any) -> list[dict[str, Any]] | None:
    if profile.flow is Flow.STANDARD:
        if not requested:
            return None
        if requested == "all":
            return ALL_PAYMENT_MODES
        if isinstance(requested, list):
            return requested
        raise ValidationError("enabledPaymentModes must be 'all' or a list of payment modes")
    return profile.payment_modes


def resolve_style(profile: FlowProfile, params: MerchantParams, wants_json: bool = False) -> ResponseStyle:
    if profile.flow is Flow.STANDARD:
        mode = (params.redirect_mode or "IFRAME").upper()
        return ResponseStyle.HTML_IFRAME if mode == "IFRAME" else ResponseStyle.JSON
    if profile.flow is Flow.URL:
        response_type = params.response_type or ("json" if wants_json else "html")
        return ResponseStyle.JSON if response_type == "json" else ResponseStyle.HTML_REDIRECT
    return profile.default_style


@dataclass(frozen=True)
class RequestContext:
    """Scheme and host of the inbound request, e.g. `https://pay.example.com`."""

    base_url: str

    def merchant_urls(self, profile: FlowProfile, order_id: str, domain: str | None = None) -> MerchantUrls:
        base = self.base_url.rstrip("/")
        redirect_params = {"txnId": order_id}
        if profile.flow is Flow.URL and domain:
            redirect_params["clientDomain"] = domain
        cancel_url = f"{base}{profile.cancel_path}"
        if profile.cancel_carries_order_id:
            cancel_url += "?" + urlencode({"txnId": order_id})
        return MerchantUrls(
            redirect_url=f"{base}{profile.status_path}?{urlencode(redirect_params)}",
            cancel_url=cancel_url,
            notify_url=f"{base}{API_PREFIX}/notify",
        )
