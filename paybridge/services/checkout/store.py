"""Payment record store adapter.

A thin typed layer over the SQLAlchemy session factory. Each call is one
short transaction touching a single record; there is no cross-record
transaction.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.attributes import set_committed_value

from paybridge.common.config import settings
from paybridge.common.errors import DuplicateKeyError, InvalidTransitionError, NotFoundError, StoreError
from paybridge.common.logging import logger
from paybridge.common.metrics import store_failures_total
from paybridge.common.state_machine import PENDING, STATUSES, validate_transition
from paybridge.services.checkout.models import PaymentRecord
from paybridge.services.checkout.schemas import PaymentDetails

UPDATE_ATTEMPTS = 3


class PaymentRecordStore:
    """create / find-by-order-id / update-status against `payment_records`."""

    def __init__(self, session_factory, service_name: str = settings.service_name) -> None:
        self.session_factory = session_factory
        self.service_name = service_name

    def _fail(self, operation: str, order_id: str, exc: Exception) -> StoreError:
        store_failures_total.labels(service=self.service_name, operation=operation).inc()
        logger.error("store %s failed order_id=%s error=%s", operation, order_id, exc)
        return StoreError(f"Payment store {operation} failed", details=str(exc))

    def create(
        self,
        order_id: str,
        domain_name: str,
        amount: Decimal,
        details: PaymentDetails | None = None,
        status: str = PENDING,
    ) -> PaymentRecord:
        """Insert a new record; raises `DuplicateKeyError` when the order id exists."""

        if status not in STATUSES:
            raise ValueError(f"unknown status {status!r}")
        now = datetime.now(timezone.utc)
        record = PaymentRecord(
            order_id=order_id,
            domain_name=domain_name,
            amount=amount,
            status=status,
            payment_details=(details or PaymentDetails()).to_storage(),
            created_at=now,
            updated_at=now,
        )
        try:
            with self.session_factory() as db:
                db.add(record)
                db.commit()
        except IntegrityError as exc:
            raise DuplicateKeyError(f"Payment with orderId {order_id} already exists") from exc
        except SQLAlchemyError as exc:
            raise self._fail("create", order_id, exc) from exc
        return record

    def find_by_order_id(self, order_id: str) -> PaymentRecord | None:
        try:
            with self.session_factory() as db:
                return db.get(PaymentRecord, order_id)
        except SQLAlchemyError as exc:
            raise self._fail("find", order_id, exc) from exc

    def update_status(
        self,
        order_id: str,
        new_status: str,
        extra_fields: dict[str, Any] | None = None,
        enforce_monotonic: bool = False,
    ) -> PaymentRecord:
        """Set status, merge named `PaymentDetails` fields, refresh `updated_at`.

        With `enforce_monotonic` the transition is checked against the row as
        read under lock; a rejected transition keeps the stored status but
        still merges the detail fields. The write is conditional on the status
        read, so a concurrent writer forces a re-read instead of being
        overwritten. Unknown detail fields raise `ValueError`.
        """

        if new_status not in STATUSES:
            raise ValueError(f"unknown status {new_status!r}")
        try:
            for _ in range(UPDATE_ATTEMPTS):
                with self.session_factory() as db:
                    record = db.get(PaymentRecord, order_id, with_for_update=True)
                    if record is None:
                        raise NotFoundError(f"Payment with orderId {order_id} not found")
                    from_status = record.status
                    target = self._target_status(order_id, from_status, new_status, enforce_monotonic)
                    fields = dict(extra_fields or {})
                    if "status" in fields:
                        fields["status"] = target
                    payment_details = record.payment_details
                    if fields:
                        try:
                            payment_details = record.details.merged(fields).to_storage()
                        except PydanticValidationError as exc:
                            raise ValueError(f"invalid payment detail fields: {sorted(fields)}") from exc

                    values = {
                        "status": target,
                        "payment_details": payment_details,
                        "updated_at": datetime.now(timezone.utc),
                    }
                    result = db.execute(
                        update(PaymentRecord)
                        .where(PaymentRecord.order_id == order_id, PaymentRecord.status == from_status)
                        .values(**values)
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount == 1:
                        db.commit()
                        for key, value in values.items():
                            set_committed_value(record, key, value)
                        return record
                    db.rollback()
                logger.warning("concurrent status write, retrying order_id=%s from=%s", order_id, from_status)
        except SQLAlchemyError as exc:
            raise self._fail("update", order_id, exc) from exc
        raise self._fail("update", order_id, RuntimeError("status kept changing under concurrent writers"))

    @staticmethod
    def _target_status(order_id: str, current: str, requested: str, enforce_monotonic: bool) -> str:
        if not enforce_monotonic:
            return requested
        try:
            validate_transition(current, requested)
        except InvalidTransitionError as exc:
            logger.warning(
                "status change rejected order_id=%s current=%s requested=%s reason=%s",
                order_id,
                current,
                requested,
                exc,
            )
            return current
        return requested
