import logging
from typing import Any, Callable

from sqlalchemy.orm import Session

from ugcstudio.db.session import SessionLocal
from ugcstudio.models.webhook_log import WebhookLogEntry

logger = logging.getLogger(__name__)

INBOUND = "inbound"
OUTBOUND = "outbound"


class WebhookLogService:
    """
    Append-only webhook audit trail.

    Writes go through their own session, never the caller's: the log is written
    after the financial commit and a log failure must not undo that commit.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal) -> None:
        self.session_factory = session_factory

    def log(
        self,
        direction: str,
        provider: str,
        event_type: str | None,
        idempotency_key: str | None,
        status_code: int | None,
        payload: Any = None,
        response: Any = None,
        error: str | None = None,
    ) -> WebhookLogEntry | None:
        """Best-effort: returns None (and reports) if the entry could not be stored."""
        db = self.session_factory()
        try:
            entry = WebhookLogEntry(
                direction=direction,
                provider=provider,
                event_type=event_type,
                idempotency_key=idempotency_key,
                status_code=status_code,
                payload=payload,
                response=response,
                error=error,
            )
            db.add(entry)
            db.commit()
            db.refresh(entry)
            return entry
        except Exception:
            db.rollback()
            logger.exception(
                "webhook_log_write_failed",
                extra={"event_type": event_type, "idempotency_key": idempotency_key},
            )
            return None
        finally:
            db.close()

    def search(
        self,
        db: Session,
        direction: str | None = None,
        provider: str | None = None,
        event_type: str | None = None,
        idempotency_key: str | None = None,
        limit: int = 50,
    ) -> list[WebhookLogEntry]:
        query = db.query(WebhookLogEntry)
        if direction:
            query = query.filter(WebhookLogEntry.direction == direction)
        if provider:
            query = query.filter(WebhookLogEntry.provider == provider)
        if event_type:
            query = query.filter(WebhookLogEntry.event_type == event_type)
        if idempotency_key:
            query = query.filter(WebhookLogEntry.idempotency_key == idempotency_key)
        return query.order_by(WebhookLogEntry.created_at.desc()).limit(limit).all()

    @staticmethod
    def get(db: Session, entry_id: str) -> WebhookLogEntry | None:
        return db.query(WebhookLogEntry).filter(WebhookLogEntry.id == entry_id).one_or_none()
