"""
LedgerService: the only writer of credit_ledger.

Balance is always derived: SUM(amount) over the account's entries. Consumption
takes a row lock on the account first, so two concurrent debits for the same
account are serialized and the second one sees the first one's entries.
"""
import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from ugcstudio.core.errors import InsufficientCredits, NotFound
from ugcstudio.models.account import Account
from ugcstudio.models.credit_ledger import LedgerEntry, LedgerSource
from ugcstudio.utils.metrics import balance_rejected_total, ledger_entries_total

logger = logging.getLogger(__name__)

GRANT_SOURCES = {
    LedgerSource.SUBSCRIPTION_GRANT,
    LedgerSource.TOPUP_PURCHASE,
    LedgerSource.ADMIN_GRANT,
}


class LedgerService:
    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_balance(self, account_id: str) -> int:
        total = (
            self.db.query(func.coalesce(func.sum(LedgerEntry.amount), 0))
            .filter(LedgerEntry.account_id == account_id)
            .scalar()
        )
        return int(total or 0)

    def list_entries(self, account_id: str, limit: int = 30) -> list[LedgerEntry]:
        return (
            self.db.query(LedgerEntry)
            .filter(LedgerEntry.account_id == account_id)
            .order_by(LedgerEntry.created_at.desc())
            .limit(limit)
            .all()
        )

    def find_by_event(self, external_event_id: str) -> LedgerEntry | None:
        return (
            self.db.query(LedgerEntry)
            .filter(LedgerEntry.external_event_id == external_event_id)
            .one_or_none()
        )

    # ------------------------------------------------------------------
    # Writes (caller owns the transaction)
    # ------------------------------------------------------------------

    def lock_account(self, account_id: str) -> Account:
        account = (
            self.db.query(Account)
            .filter(Account.id == account_id)
            .with_for_update()
            .one_or_none()
        )
        if account is None:
            raise NotFound(f"Account {account_id} not found")
        return account

    def append(
        self,
        account_id: str,
        amount: int,
        source: LedgerSource,
        *,
        external_event_id: str | None = None,
        linked_payment_id: str | None = None,
        video_request_id: str | None = None,
        note: str | None = None,
    ) -> LedgerEntry:
        if amount == 0:
            raise ValueError("ledger amount must be non-zero")
        entry = LedgerEntry(
            account_id=account_id,
            amount=int(amount),
            source_kind=source.value,
            external_event_id=external_event_id,
            linked_payment_id=linked_payment_id,
            video_request_id=video_request_id,
            note=note,
        )
        self.db.add(entry)
        self.db.flush()
        ledger_entries_total.labels(source_kind=source.value).inc()
        return entry

    def grant(
        self,
        account_id: str,
        credits: int,
        source: LedgerSource,
        external_event_id: str | None = None,
        linked_payment_id: str | None = None,
        note: str | None = None,
    ) -> LedgerEntry | None:
        """
        Positive entry for a paid or granted event. Idempotent on external_event_id:
        returns None if an entry for this event already exists (the unique
        constraint still backs this up under concurrency).
        """
        if source not in GRANT_SOURCES:
            raise ValueError(f"{source.value} is not a grant source")
        if credits <= 0:
            raise ValueError("grant must be positive")
        if external_event_id and self.find_by_event(external_event_id):
            logger.info("ledger_grant_already_applied", extra={"event_id": external_event_id})
            return None
        return self.append(
            account_id,
            credits,
            source,
            external_event_id=external_event_id,
            linked_payment_id=linked_payment_id,
            note=note,
        )

    def reserve(self, account_id: str, units: int) -> int:
        """
        Lock the account and verify it can pay for ``units`` consumption entries.
        Returns the balance seen under the lock. Raises InsufficientCredits without
        writing anything.
        """
        self.lock_account(account_id)
        return self.ensure_funds(account_id, units)

    def ensure_funds(self, account_id: str, units: int) -> int:
        """Balance check only; the caller must already hold the account lock."""
        balance = self.get_balance(account_id)
        if balance < units:
            balance_rejected_total.inc()
            logger.info(
                "ledger_insufficient_credits",
                extra={"account_id": account_id, "credits": units},
            )
            raise InsufficientCredits(required=units, available=balance)
        return balance

    def consume(self, account_id: str, video_request_id: str, note: str | None = None) -> LedgerEntry:
        """One credit for one video request. Must run after reserve() in the same transaction."""
        return self.append(
            account_id,
            -1,
            LedgerSource.CONSUMPTION,
            video_request_id=video_request_id,
            note=note,
        )

    def adjust(
        self,
        account_id: str,
        amount: int,
        source: LedgerSource,
        note: str,
        external_event_id: str | None = None,
    ) -> LedgerEntry | None:
        """Manual/admin correction. Negative adjustments are allowed and not balance-checked."""
        if source not in (LedgerSource.MANUAL_ADJUSTMENT, LedgerSource.ADMIN_GRANT):
            raise ValueError(f"{source.value} is not an adjustment source")
        if source == LedgerSource.ADMIN_GRANT and amount <= 0:
            raise ValueError("admin grant must be positive")
        self.lock_account(account_id)
        if external_event_id and self.find_by_event(external_event_id):
            return None
        return self.append(
            account_id,
            amount,
            source,
            external_event_id=external_event_id,
            note=note,
        )
