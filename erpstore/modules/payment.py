"""
Sales payments (``payments`` table).

Store-normalized attributes: ``created_at``, ``updated_at`` and
``payment_date`` are kept in UTC at whole-second precision.
"""

from __future__ import annotations

from datetime import datetime
from enum import IntEnum
from typing import Optional

from pydantic import Field

from erpstore.domain.codec import RecordReader, RecordWriter, read_base, write_base
from erpstore.domain.models import BaseEntity, utcnow
from erpstore.domain.values import DynamicRecord

TABLE = "payments"


class PaymentMethod(IntEnum):
    CASH = 0
    BANK_TRANSFER = 1
    CREDIT_CARD = 2
    ONLINE_PAYMENT = 3
    OTHER = 4


class PaymentStatus(IntEnum):
    PENDING = 0
    COMPLETED = 1
    FAILED = 2
    REFUNDED = 3
    CANCELLED = 4


class Payment(BaseEntity):
    customer_id: str = ""
    invoice_id: str = ""
    payment_number: str = ""
    amount: float = 0.0
    payment_date: datetime = Field(default_factory=utcnow)
    method: PaymentMethod = PaymentMethod.CASH
    payment_status: PaymentStatus = PaymentStatus.PENDING
    transaction_id: Optional[str] = Field(None, description="External gateway reference.")
    notes: Optional[str] = None
    currency: str = "VND"


class PaymentCodec:
    def encode(self, payment: Payment) -> DynamicRecord:
        return (
            write_base(RecordWriter(), payment)
            .put_string("customer_id", payment.customer_id)
            .put_string("invoice_id", payment.invoice_id)
            .put_string("payment_number", payment.payment_number)
            .put_float("amount", payment.amount)
            .put_timestamp("payment_date", payment.payment_date)
            .put_enum("method", payment.method)
            .put_enum("payment_status", payment.payment_status)
            .put_optional_string("transaction_id", payment.transaction_id)
            .put_optional_string("notes", payment.notes)
            .put_string("currency", payment.currency)
            .build()
        )

    def decode(self, record: DynamicRecord) -> Payment:
        reader = RecordReader(record)
        return reader.build(
            Payment,
            **read_base(reader),
            customer_id=reader.string("customer_id"),
            invoice_id=reader.string("invoice_id"),
            payment_number=reader.string("payment_number"),
            amount=reader.floating("amount"),
            payment_date=reader.timestamp("payment_date"),
            method=reader.enum("method", PaymentMethod),
            payment_status=reader.enum("payment_status", PaymentStatus),
            transaction_id=reader.string("transaction_id"),
            notes=reader.string("notes"),
            currency=reader.string("currency"),
        )

    def default(self) -> Payment:
        return Payment()


__all__ = ["TABLE", "Payment", "PaymentCodec", "PaymentMethod", "PaymentStatus"]
