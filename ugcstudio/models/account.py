"""
Account: identity holding exactly one credit balance.
The balance is never stored here: it is always SUM(credit_ledger.amount).
"""
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, String

from ugcstudio.db.base import Base


class Account(Base):
    __tablename__ = "accounts"

    id = Column(String, primary_key=True)  # identity provider subject
    email = Column(String, nullable=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    deactivated_at = Column(DateTime(timezone=True), nullable=True)
