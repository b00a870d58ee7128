"""Payment record store against an in-memory database."""

import time
from decimal import Decimal

import pytest

from paybridge.common.errors import DuplicateKeyError, NotFoundError
from paybridge.services.checkout.schemas import PaymentDetails


def test_create_and_find(store):
    store.create("CHECKOUT-1", "shop.example.com", Decimal("49.99"), PaymentDetails(name="Asha", source="CHECKOUT_PAYMENT"))

    record = store.find_by_order_id("CHECKOUT-1")

    assert record.status == "pending"
    assert record.amount == Decimal("49.99")
    assert record.domain_name == "shop.example.com"
    assert record.payment_details == {"name": "Asha", "source": "CHECKOUT_PAYMENT"}


def test_find_missing_returns_none(store):
    assert store.find_by_order_id("NOPE") is None


def test_duplicate_order_id_rejected(store):
    store.create("CHECKOUT-1", "shop.example.com", Decimal("1"))

    with pytest.raises(DuplicateKeyError):
        store.create("CHECKOUT-1", "other.example.com", Decimal("2"))


def test_update_missing_record_is_not_found(store):
    with pytest.raises(NotFoundError):
        store.update_status("NOPE", "success")


def test_update_merges_named_detail_fields(store):
    store.create("CHECKOUT-1", "shop.example.com", Decimal("1"), PaymentDetails(name="Asha"))

    store.update_status("CHECKOUT-1", "failed", {"webhook_data": {"code": "PAYMENT_ERROR"}})
    record = store.update_status("CHECKOUT-1", "failed", {"transaction_id": "T1"})

    assert record.status == "failed"
    assert record.payment_details == {
        "name": "Asha",
        "webhookData": {"code": "PAYMENT_ERROR"},
        "transactionId": "T1",
    }
    assert store.find_by_order_id("CHECKOUT-1").details.webhook_data == {"code": "PAYMENT_ERROR"}


def test_unknown_detail_field_rejected(store):
    store.create("CHECKOUT-1", "shop.example.com", Decimal("1"))

    with pytest.raises(ValueError):
        store.update_status("CHECKOUT-1", "success", {"paymentDetails.webhookData": {}})
    assert store.find_by_order_id("CHECKOUT-1").status == "pending"


def test_unknown_status_rejected(store):
    store.create("CHECKOUT-1", "shop.example.com", Decimal("1"))

    with pytest.raises(ValueError):
        store.update_status("CHECKOUT-1", "refunded")


def test_update_refreshes_updated_at(store):
    created = store.create("CHECKOUT-1", "shop.example.com", Decimal("1"))
    time.sleep(0.01)

    updated = store.update_status("CHECKOUT-1", "success")

    assert updated.updated_at > created.updated_at


def test_guarded_update_rechecks_the_stored_status(store):
    store.create("CHECKOUT-1", "shop.example.com", Decimal("1"))
    store.update_status("CHECKOUT-1", "success")

    record = store.update_status(
        "CHECKOUT-1", "cancelled", {"status": "cancelled", "last_updated": "now"}, enforce_monotonic=True
    )

    assert record.status == "success"
    assert record.details.status == "success"
    assert record.details.last_updated == "now"
    assert store.find_by_order_id("CHECKOUT-1").status == "success"


def test_unguarded_update_is_last_write_wins(store):
    store.create("CHECKOUT-1", "shop.example.com", Decimal("1"), status="success")

    assert store.update_status("CHECKOUT-1", "failed").status == "failed"
