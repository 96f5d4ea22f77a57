"""
Inbound payment-provider webhook.

The raw body is read before any parsing so the signature check sees exactly the
bytes the provider signed. The handler always answers with ``{ok: ...}``; the
status code tells the provider whether to redeliver.
"""
from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ugcstudio.db.session import get_db
from ugcstudio.services.payments.service import PaymentWebhookService
from ugcstudio.services.payments.signature import get_signature_verifier

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/payments")
async def payment_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None, alias="Stripe-Signature"),
    db: Session = Depends(get_db),
):
    raw_body = await request.body()
    service = PaymentWebhookService(db, verifier=get_signature_verifier())
    result = await run_in_threadpool(service.handle, raw_body, stripe_signature)
    return JSONResponse(status_code=result.status_code, content=result.body)
