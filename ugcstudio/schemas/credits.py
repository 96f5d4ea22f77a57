from datetime import datetime

from pydantic import BaseModel, ConfigDict


class LedgerEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    amount: int
    source_kind: str
    external_event_id: str | None = None
    linked_payment_id: str | None = None
    video_request_id: str | None = None
    note: str | None = None
    created_at: datetime


class BalanceOut(BaseModel):
    account_id: str
    balance: int
    recent: list[LedgerEntryOut] = []
