"""Payment record persistence model.

One row per merchant order; `payment_details` holds the serialized
`PaymentDetails` bag with camelCase keys.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, DateTime, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from paybridge.common.db import Base
from paybridge.common.state_machine import PENDING
from paybridge.services.checkout.schemas import PaymentDetails


class PaymentRecord(Base):
    """Local bookkeeping for one gateway order."""

    __tablename__ = "payment_records"

    order_id: Mapped[str] = mapped_column(String, primary_key=True)
    domain_name: Mapped[str] = mapped_column(String)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    status: Mapped[str] = mapped_column(String, index=True, default=PENDING)
    payment_details: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    @property
    def details(self) -> PaymentDetails:
        return PaymentDetails.model_validate(self.payment_details or {})
