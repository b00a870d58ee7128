"""Gateway state to local status mapping and redirect targets."""

from paybridge.services.checkout.outcome import (
    backfill_status,
    error_redirect,
    map_order_status,
    map_state,
    map_webhook_code,
    outcome_redirect,
    reconcile_status,
    status_page_redirect,
)
from paybridge.services.checkout.schemas import OrderStatus


def test_reconcile_treats_unfinished_orders_as_cancelled():
    assert reconcile_status("COMPLETED") == "success"
    assert reconcile_status("FAILED") == "failed"
    assert reconcile_status("PENDING") == "cancelled"
    assert reconcile_status(None) == "cancelled"


def test_backfill_keeps_unfinished_orders_pending():
    assert backfill_status("COMPLETED") == "success"
    assert backfill_status("FAILED") == "failed"
    assert backfill_status("PENDING") == "pending"


def test_webhook_codes():
    assert map_webhook_code("PAYMENT_SUCCESS") == "success"
    assert map_webhook_code("PAYMENT_ERROR") == "failed"
    assert map_webhook_code("PAYMENT_CANCELLED") == "cancelled"
    assert map_webhook_code("SOMETHING_NEW") == "pending"
    assert map_webhook_code(None) == "pending"


def test_display_mapping_for_completed_order():
    status = OrderStatus.model_validate(
        {"state": "COMPLETED", "amount": 4999, "paymentDetails": [{"transactionId": "T1"}]}
    )

    outcome = map_order_status(status)

    assert outcome.local_status == "success"
    assert outcome.human_details == "Transaction ID: T1, Amount: ₹49.99"


def test_display_mapping_for_pending_and_failed():
    assert map_state("PENDING").human_details == "Your payment is being processed"
    failed = map_state("FAILED", error_code="ZM", message="Declined by bank")
    assert failed.local_status == "failed"
    assert failed.human_details == "Declined by bank (Code: ZM)"
    assert map_state("EXPIRED").human_details == "Payment EXPIRED"


def test_external_domain_redirects_to_thankyou_or_cart():
    assert outcome_redirect("shop.example.com", "success", "C1") == "https://shop.example.com/thankyou"
    assert outcome_redirect("shop.example.com", "cancelled", "C1") == "https://shop.example.com/cart"
    assert outcome_redirect("https://shop.example.com/", "failed", "C1") == "https://shop.example.com/cart"


def test_bare_domain_stays_same_origin():
    assert outcome_redirect("localhost", "success", "C1") == "/?status=success&txnId=C1"
    assert outcome_redirect("localhost", "cancelled", "C1") == "/?status=failed&txnId=C1"


def test_error_and_status_page_redirects():
    assert error_redirect("missing_transaction_id") == "/api/phonepay/payment-error?reason=missing_transaction_id"
    assert error_redirect("boom", "C1") == "/api/phonepay/payment-error?reason=boom&txnId=C1"
    target = status_page_redirect("/upp", map_state("PENDING"))
    assert target == "/upp?status=pending&details=Your+payment+is+being+processed"
