from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String

from ugcstudio.db.base import Base


class IdempotencyKey(Base):
    """Durable witness that (scope, key) was fully processed; result_ref points at the outcome."""

    __tablename__ = "idempotency_keys"

    scope = Column(String, primary_key=True)  # batch_create; webhooks dedupe on payments.external_event_id
    key = Column(String, primary_key=True)
    result_ref = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
