import logging

from sqlalchemy.orm import Session

from ugcstudio.core.config import settings
from ugcstudio.core.errors import DispatchFailure, NotFound
from ugcstudio.models.brief import BrandingAsset, UgcBrief
from ugcstudio.models.video_request import VideoRequestBatch
from ugcstudio.services.dispatch.client import AutomationClient, DispatchResult
from ugcstudio.services.dispatch.payload import build_payload
from ugcstudio.services.storage.signer import AssetUrlSigner

logger = logging.getLogger(__name__)


class DispatchService:
    """Builds the automation payload for a committed batch and sends it."""

    def __init__(
        self,
        db: Session,
        client: AutomationClient | None = None,
        signer: AssetUrlSigner | None = None,
    ):
        self.db = db
        self.client = client or AutomationClient()
        self.signer = signer or AssetUrlSigner()

    def dispatch(self, batch_id: str) -> DispatchResult:
        batch = (
            self.db.query(VideoRequestBatch)
            .filter(VideoRequestBatch.batch_id == batch_id)
            .one_or_none()
        )
        if batch is None:
            raise NotFound(f"Batch {batch_id} not found")
        brief = self.db.query(UgcBrief).filter(UgcBrief.id == batch.brief_id).one_or_none()
        if brief is None:
            raise NotFound(f"Brief {batch.brief_id} not found")
        asset_ids = list(batch.asset_ids or [])
        assets = (
            self.db.query(BrandingAsset).filter(BrandingAsset.id.in_(asset_ids)).all()
            if asset_ids
            else []
        )

        payload = build_payload(batch, brief, assets, self.signer, settings.automation_callback_url)
        result = self.client.send(payload, batch.idempotency_key)
        if result.success:
            logger.info("batch_dispatched", extra={"batch_id": batch_id, "attempt": result.attempts})
        else:
            # Credits stay consumed; recovery is a support process
            logger.error(
                "dispatch_failed",
                extra={
                    "batch_id": batch_id,
                    "attempt": result.attempts,
                    "error": result.error,
                    "error_code": DispatchFailure.code,
                },
            )
        return result


def enqueue_dispatch(batch_id: str) -> None:
    """Queue the automation call. A broker failure is logged, never raised to the caller."""
    try:
        from ugcstudio.workers.tasks.dispatch_batch import dispatch_batch

        dispatch_batch.delay(batch_id)
    except Exception:
        logger.exception("dispatch_enqueue_failed", extra={"batch_id": batch_id})
