"""Transaction record persisted after reconciliation.

One row per tracking id; a repeated commit replaces the row.
"""

from datetime import datetime

from sqlalchemy import JSON, DateTime, Float, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from pesaflow.common.db import Base


class TransactionRecord(Base):
    """Committed gateway status for one payment attempt."""

    __tablename__ = "transaction_records"

    order_tracking_id: Mapped[str] = mapped_column(String, primary_key=True)
    merchant_reference: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    status_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    payment_status_description: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    payment_method: Mapped[str | None] = mapped_column(String, nullable=True)
    confirmation_code: Mapped[str | None] = mapped_column(String, nullable=True)
    payment_account: Mapped[str | None] = mapped_column(String, nullable=True)
    amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    currency: Mapped[str | None] = mapped_column(String(3), nullable=True)
    source: Mapped[str] = mapped_column(String)
    payload: Mapped[dict] = mapped_column(JSON)
    committed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    def to_dict(self) -> dict:
        return {
            "order_tracking_id": self.order_tracking_id,
            "merchant_reference": self.merchant_reference,
            "status_code": self.status_code,
            "payment_status_description": self.payment_status_description,
            "payment_method": self.payment_method,
            "confirmation_code": self.confirmation_code,
            "payment_account": self.payment_account,
            "amount": self.amount,
            "currency": self.currency,
            "source": self.source,
            "payload": self.payload,
            "committed_at": self.committed_at.isoformat() if self.committed_at else None,
        }
