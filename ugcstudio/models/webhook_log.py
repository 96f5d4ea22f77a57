from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, Integer, String, Text

from ugcstudio.db.base import Base, JSONType


class WebhookLogEntry(Base):
    """Append-only record of every inbound/outbound webhook exchange."""

    __tablename__ = "webhook_logs"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    direction = Column(String, nullable=False)  # inbound, outbound
    provider = Column(String, nullable=False)   # stripe, mock, automation
    event_type = Column(String, nullable=True)
    idempotency_key = Column(String, nullable=True, index=True)
    status_code = Column(Integer, nullable=True)
    payload = Column(JSONType, nullable=True)
    response = Column(JSONType, nullable=True)
    error = Column(Text, nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )
