from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ugcstudio.api.deps import get_current_account
from ugcstudio.db.session import get_db
from ugcstudio.models.account import Account
from ugcstudio.schemas.credits import BalanceOut, LedgerEntryOut
from ugcstudio.services.ledger.service import LedgerService

router = APIRouter(prefix="/credits", tags=["credits"])


@router.get("", response_model=BalanceOut)
def get_credits(account: Account = Depends(get_current_account), db: Session = Depends(get_db)):
    ledger = LedgerService(db)
    return {
        "account_id": account.id,
        "balance": ledger.get_balance(account.id),
        "recent": [LedgerEntryOut.model_validate(e) for e in ledger.list_entries(account.id, limit=10)],
    }


@router.get("/ledger", response_model=list[LedgerEntryOut])
def get_ledger(
    limit: int = Query(default=30, ge=1, le=200),
    account: Account = Depends(get_current_account),
    db: Session = Depends(get_db),
):
    return [LedgerEntryOut.model_validate(e) for e in LedgerService(db).list_entries(account.id, limit=limit)]
