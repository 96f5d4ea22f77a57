from fastapi import APIRouter, Depends, Header, Response, status
from sqlalchemy.orm import Session

from ugcstudio.api.deps import get_active_account
from ugcstudio.db.session import get_db
from ugcstudio.models.account import Account
from ugcstudio.schemas.batches import BatchCreate, BatchOut
from ugcstudio.services.batches.service import BatchService
from ugcstudio.services.idempotency import InFlightClaims

router = APIRouter(tags=["batches"])


def get_inflight_claims() -> InFlightClaims | None:
    return InFlightClaims()


@router.post("/video-batches", response_model=BatchOut, status_code=status.HTTP_201_CREATED)
def create_video_batch(
    body: BatchCreate,
    response: Response,
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    account: Account = Depends(get_active_account),
    db: Session = Depends(get_db),
    inflight: InFlightClaims | None = Depends(get_inflight_claims),
):
    """
    Create ``video_count`` video requests paid with one credit each.
    A repeated Idempotency-Key answers with the original batch (200).
    """
    service = BatchService(db, inflight=inflight)
    result = service.create_batch(
        account.id,
        body.video_count,
        idempotency_key,
        custom_instructions=body.custom_instructions,
        brief_id=body.brief_id,
        asset_ids=body.branding_asset_refs or None,
    )
    if result.replayed:
        response.status_code = status.HTTP_200_OK
    return result.to_dict()
