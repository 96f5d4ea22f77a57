"""
Append-only credit ledger. Rows are never updated or deleted; corrections are new rows.

external_event_id is unique when present: it is the second line of defense against
double grants for a payment event (the first is payments.external_event_id).
video_request_id is unique when present: one consumption row per video request.
"""
import enum
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String

from ugcstudio.db.base import Base


class LedgerSource(str, enum.Enum):
    SUBSCRIPTION_GRANT = "subscription_grant"
    TOPUP_PURCHASE = "topup_purchase"
    REFUND = "refund"
    MANUAL_ADJUSTMENT = "manual_adjustment"
    ADMIN_GRANT = "admin_grant"
    CONSUMPTION = "consumption"


class LedgerEntry(Base):
    __tablename__ = "credit_ledger"
    __table_args__ = (CheckConstraint("amount <> 0", name="ck_ledger_amount_nonzero"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    account_id = Column(String, nullable=False, index=True)
    amount = Column(Integer, nullable=False)  # signed credits
    source_kind = Column(String, nullable=False)  # LedgerSource value
    external_event_id = Column(String, nullable=True, unique=True)
    linked_payment_id = Column(String, nullable=True, index=True)
    video_request_id = Column(String, nullable=True, unique=True)
    note = Column(String, nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )
