"""Flow profiles, order ids, amounts and callback URLs."""

import re
from decimal import Decimal

import pytest

from paybridge.common.errors import ValidationError
from paybridge.services.checkout.flows import (
    PROFILES,
    Flow,
    MerchantParams,
    RequestContext,
    ResponseStyle,
    SuffixStyle,
    new_order_id,
    parse_amount,
    resolve_payment_modes,
    resolve_style,
    to_minor_units,
)
from paybridge.services.checkout.schemas import ALL_PAYMENT_MODES


@pytest.mark.parametrize(
    "amount, minor",
    [("49.99", 4999), ("1", 100), ("0.1", 10), ("10.005", 1001), ("0.005", 1), ("1234.5", 123450)],
)
def test_minor_units_round_half_up(amount, minor):
    assert to_minor_units(Decimal(amount)) == minor


def test_order_id_shapes():
    assert re.fullmatch(r"CHECKOUT-\d{13}-[0-9a-f]{8}", new_order_id("CHECKOUT"))
    assert re.fullmatch(r"UNIQUE-\d{13}-[0-9a-z]{6}", new_order_id("UNIQUE", SuffixStyle.BASE36))


@pytest.mark.parametrize("flow", [Flow.CHECKOUT, Flow.UNIQUE])
def test_order_ids_are_unique_in_a_burst(flow):
    profile = PROFILES[flow]
    ids = {new_order_id(profile.prefix, profile.suffix_style) for _ in range(10_000)}
    assert len(ids) == 10_000


@pytest.mark.parametrize("raw", [None, "", "abc", "0", "-5", "NaN", "Infinity", "0.001", True])
def test_invalid_amounts_rejected(raw):
    with pytest.raises(ValidationError):
        parse_amount(raw, PROFILES[Flow.CHECKOUT])


def test_amount_messages_differ_by_flow():
    with pytest.raises(ValidationError) as standard:
        parse_amount("abc", PROFILES[Flow.STANDARD])
    assert standard.value.message == "Invalid amount. Must be a number greater than 0"
    assert standard.value.details == "Received amount: abc"

    with pytest.raises(ValidationError) as checkout:
        parse_amount("abc", PROFILES[Flow.CHECKOUT])
    assert checkout.value.message == "Valid payment amount is required"


def test_unique_and_multi_default_to_one_rupee():
    assert parse_amount(None, PROFILES[Flow.UNIQUE]) == Decimal("1")
    assert parse_amount("", PROFILES[Flow.MULTI]) == Decimal("1")


def test_params_accept_mobile_aliases_and_keep_extra_fields():
    params = MerchantParams.from_mapping({"mobileNumber": "98", "amount": "5", "cartId": "c-7", "domain": " x.com "})
    assert params.mobile == "98"
    assert params.domain == "x.com"
    assert params.extra == {"cartId": "c-7"}


def test_standard_payment_modes():
    profile = PROFILES[Flow.STANDARD]
    assert resolve_payment_modes(profile, None) is None
    assert resolve_payment_modes(profile, "all") == ALL_PAYMENT_MODES
    assert resolve_payment_modes(profile, [{"type": "UPI_QR"}]) == [{"type": "UPI_QR"}]
    with pytest.raises(ValidationError):
        resolve_payment_modes(profile, "cards")


def test_response_styles():
    standard = PROFILES[Flow.STANDARD]
    assert resolve_style(standard, MerchantParams()) is ResponseStyle.HTML_IFRAME
    assert resolve_style(standard, MerchantParams(redirect_mode="REDIRECT")) is ResponseStyle.JSON

    url = PROFILES[Flow.URL]
    assert resolve_style(url, MerchantParams()) is ResponseStyle.HTML_REDIRECT
    assert resolve_style(url, MerchantParams(), wants_json=True) is ResponseStyle.JSON
    assert resolve_style(url, MerchantParams(response_type="json")) is ResponseStyle.JSON
    assert resolve_style(PROFILES[Flow.MULTI], MerchantParams()) is ResponseStyle.HTTP_REDIRECT


def test_checkout_callback_urls_carry_order_id():
    ctx = RequestContext(base_url="https://pay.example.net/")
    urls = ctx.merchant_urls(PROFILES[Flow.CHECKOUT], "CHECKOUT-1", "shop.example.com")

    assert urls.redirect_url == "https://pay.example.net/api/phonepay/payment-status?txnId=CHECKOUT-1"
    assert urls.cancel_url == "https://pay.example.net/api/phonepay/payment-cancelled?txnId=CHECKOUT-1"
    assert urls.notify_url == "https://pay.example.net/api/phonepay/notify"


def test_url_flow_redirect_carries_client_domain():
    ctx = RequestContext(base_url="https://pay.example.net")
    urls = ctx.merchant_urls(PROFILES[Flow.URL], "URL-1", "shop.example.com")
    assert urls.redirect_url.endswith("/payment-status?txnId=URL-1&clientDomain=shop.example.com")


def test_unique_cancel_url_points_at_result_page():
    ctx = RequestContext(base_url="https://pay.example.net")
    urls = ctx.merchant_urls(PROFILES[Flow.UNIQUE], "UNIQUE-1")
    assert urls.redirect_url == "https://pay.example.net/api/phonepay/unique-status?txnId=UNIQUE-1"
    assert urls.cancel_url == "https://pay.example.net/upp?status=failed&details=Payment+was+cancelled"


def test_numeric_text_fields_are_read_as_strings():
    params = MerchantParams.from_mapping({"mobile": 9876543210, "name": 42, "merchantOrderId": 1001})

    assert params.mobile == "9876543210"
    assert params.name == "42"
    assert params.merchant_order_id == "1001"


def test_non_string_domain_rejected():
    with pytest.raises(ValidationError, match="Domain name must be a string"):
        MerchantParams.from_mapping({"domain": 123, "amount": "1"})


def test_structured_value_in_text_field_rejected():
    with pytest.raises(ValidationError):
        MerchantParams.from_mapping({"name": {"first": "Asha"}})
