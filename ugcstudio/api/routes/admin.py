"""
Admin API: credit corrections, account deactivation, webhook log browsing and replay.
All routes require the X-Admin-Key header.
"""
import json

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ugcstudio.api.deps import require_admin
from ugcstudio.core.errors import MalformedInput, NotFound
from ugcstudio.db.session import get_db
from ugcstudio.models.credit_ledger import LedgerSource
from ugcstudio.schemas.admin import CreditAdjustment, CreditAdjustmentOut, WebhookLogOut
from ugcstudio.services.accounts.service import AccountService
from ugcstudio.services.audit.service import INBOUND, WebhookLogService
from ugcstudio.services.ledger.service import LedgerService
from ugcstudio.services.payments.service import PaymentWebhookService

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


# ---------- Credits ----------
@router.post("/credits/adjust", response_model=CreditAdjustmentOut)
def adjust_credits(body: CreditAdjustment, db: Session = Depends(get_db)):
    if body.amount == 0:
        raise MalformedInput("amount must be non-zero")
    source = LedgerSource(body.source)
    if source == LedgerSource.ADMIN_GRANT and body.amount < 0:
        raise MalformedInput("admin_grant must be positive; use manual_adjustment to debit")
    ledger = LedgerService(db)
    try:
        entry = ledger.adjust(
            body.account_id,
            body.amount,
            source,
            note=body.note,
            external_event_id=body.external_event_id,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    return {
        "applied": entry is not None,
        "entry_id": entry.id if entry else None,
        "balance": ledger.get_balance(body.account_id),
    }


# ---------- Accounts ----------
@router.post("/accounts/{account_id}/deactivate")
def deactivate_account(account_id: str, db: Session = Depends(get_db)):
    svc = AccountService(db)
    account = svc.get(account_id)
    if account is None:
        raise NotFound(f"Account {account_id} not found")
    svc.deactivate(account)
    return {"account_id": account.id, "is_active": account.is_active}


# ---------- Webhook logs ----------
@router.get("/webhook-logs", response_model=list[WebhookLogOut])
def list_webhook_logs(
    direction: str | None = None,
    provider: str | None = None,
    event_type: str | None = None,
    idempotency_key: str | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    entries = WebhookLogService().search(
        db,
        direction=direction,
        provider=provider,
        event_type=event_type,
        idempotency_key=idempotency_key,
        limit=limit,
    )
    return [WebhookLogOut.model_validate(e) for e in entries]


@router.post("/webhook-logs/{entry_id}/replay")
def replay_webhook(entry_id: str, db: Session = Depends(get_db)):
    """Re-run a stored inbound payment event. Already-processed events answer idempotent."""
    entry = WebhookLogService.get(db, entry_id)
    if entry is None or entry.direction != INBOUND:
        raise NotFound(f"Inbound webhook log {entry_id} not found")
    raw_body = json.dumps(entry.payload or {}).encode("utf-8")
    # The stored payload was verified on first delivery
    result = PaymentWebhookService(db, verifier=None, provider=entry.provider).handle(raw_body)
    return {"status_code": result.status_code, "outcome": result.outcome, "response": result.body}
