"""
Celery task: send a committed batch to the video automation workflow.

Runs outside the request and outside the credit transaction. Retries are bounded
and happen inside AutomationClient; the task itself is never re-queued.
"""
import logging

from ugcstudio.core.celery_app import celery_app
from ugcstudio.core.errors import NotFound
from ugcstudio.db.session import SessionLocal
from ugcstudio.services.dispatch.client import AutomationClient
from ugcstudio.services.dispatch.service import DispatchService

logger = logging.getLogger(__name__)


@celery_app.task(name="ugcstudio.workers.tasks.dispatch_batch.dispatch_batch")
def dispatch_batch(batch_id: str) -> dict:
    db = SessionLocal()
    client = AutomationClient()
    try:
        result = DispatchService(db, client=client).dispatch(batch_id)
        return {"batch_id": batch_id, "success": result.success, "attempts": result.attempts}
    except NotFound as exc:
        logger.error("dispatch_batch_missing", extra={"batch_id": batch_id, "error": exc.message})
        return {"batch_id": batch_id, "success": False, "attempts": 0}
    finally:
        client.close()
        db.close()
