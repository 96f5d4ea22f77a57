from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String

from ugcstudio.db.base import Base


class ProviderCustomer(Base):
    """Payment provider customer id -> account."""

    __tablename__ = "provider_customers"

    provider_customer_id = Column(String, primary_key=True)
    account_id = Column(String, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
