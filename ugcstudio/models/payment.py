"""
Payment: one row per processed payment-provider event.
external_event_id is globally unique and is the de-dup boundary of the webhook flow.
account_id is nullable: the event may not resolve to an account (manual reconciliation).
"""
import enum
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, Integer, String

from ugcstudio.db.base import Base, JSONType


class PaymentKind(str, enum.Enum):
    SUBSCRIPTION = "subscription"
    ONE_OFF = "one_off"
    REFUND = "refund"


class PaymentStatus(str, enum.Enum):
    PAID = "paid"
    REFUNDED = "refunded"
    UNRECONCILED = "unreconciled"  # refund whose account could not be resolved


class Payment(Base):
    __tablename__ = "payments"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    external_event_id = Column(String, unique=True, nullable=False)
    external_object_kind = Column(String, nullable=False)  # provider event type
    account_id = Column(String, nullable=True, index=True)
    provider_customer_id = Column(String, nullable=True)
    amount_minor_units = Column(Integer, nullable=False, default=0)
    currency = Column(String, nullable=False, default="usd")
    kind = Column(String, nullable=False)        # PaymentKind value
    status = Column(String, nullable=False)      # PaymentStatus value
    credits_granted = Column(Integer, nullable=False, default=0)  # negative for refunds
    refunded_payment_id = Column(String, nullable=True)
    payment_metadata = Column("metadata", JSONType, nullable=False, default=dict)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )
