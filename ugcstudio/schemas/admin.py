from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class CreditAdjustment(BaseModel):
    account_id: str
    amount: int
    source: Literal["manual_adjustment", "admin_grant"] = "manual_adjustment"
    note: str = Field(min_length=1)
    external_event_id: str | None = None


class CreditAdjustmentOut(BaseModel):
    applied: bool
    entry_id: str | None = None
    balance: int


class WebhookLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    direction: str
    provider: str
    event_type: str | None = None
    idempotency_key: str | None = None
    status_code: int | None = None
    payload: Any = None
    response: Any = None
    error: str | None = None
    created_at: datetime
