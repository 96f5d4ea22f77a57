import logging
from datetime import datetime, timezone

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ugcstudio.models.account import Account
from ugcstudio.models.provider_customer import ProviderCustomer

logger = logging.getLogger(__name__)


class AccountService:
    def __init__(self, db: Session):
        self.db = db

    def get(self, account_id: str) -> Account | None:
        return self.db.query(Account).filter(Account.id == account_id).one_or_none()

    def ensure_account(self, account_id: str, email: str | None = None) -> Account:
        """Implicit creation on first verified identity."""
        account = self.get(account_id)
        if account:
            if email and account.email != email:
                account.email = email
                self.db.add(account)
                self.db.commit()
            return account
        account = Account(id=account_id, email=email)
        self.db.add(account)
        try:
            self.db.commit()
        except IntegrityError:
            # Another request for the same identity created it first
            self.db.rollback()
            return self.db.query(Account).filter(Account.id == account_id).one()
        logger.info("account_created", extra={"account_id": account_id})
        return account

    def deactivate(self, account: Account) -> Account:
        account.is_active = False
        account.deactivated_at = datetime.now(timezone.utc)
        self.db.add(account)
        self.db.commit()
        return account

    # ------------------------------------------------------------------
    # Payment provider resolution
    # ------------------------------------------------------------------

    def resolve(self, customer_id: str | None, email: str | None) -> str | None:
        """Customer mapping first, then case-insensitive email match. None if neither resolves."""
        if customer_id:
            mapping = (
                self.db.query(ProviderCustomer)
                .filter(ProviderCustomer.provider_customer_id == customer_id)
                .one_or_none()
            )
            if mapping:
                return mapping.account_id
        if email:
            account = (
                self.db.query(Account)
                .filter(func.lower(Account.email) == email.strip().lower())
                .order_by(Account.created_at)
                .first()
            )
            if account:
                return account.id
        return None

    def link_customer(self, customer_id: str, account_id: str) -> None:
        """Remember customer -> account inside the caller's transaction."""
        existing = (
            self.db.query(ProviderCustomer)
            .filter(ProviderCustomer.provider_customer_id == customer_id)
            .one_or_none()
        )
        if existing:
            return
        self.db.add(ProviderCustomer(provider_customer_id=customer_id, account_id=account_id))
        self.db.flush()
