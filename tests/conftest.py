"""
Shared fixtures.

Settings are read at import time, so the environment is seeded here before any
ugcstudio module is imported. Tests run on a file-backed SQLite database (separate
connections, like the webhook log session in production); the schema is rebuilt
for every test.
"""
import os
import tempfile
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

_DB_DIR = tempfile.mkdtemp(prefix="ugcstudio-tests-")

os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")
os.environ.setdefault("IDENTITY_JWT_SECRET", "test-identity-secret-0123456789")
os.environ.setdefault("ASSET_URL_SECRET", "test-asset-url-secret-0123456789")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
os.environ.setdefault("ASSET_PUBLIC_BASE_URL", "https://assets.test")
os.environ.setdefault("AUTOMATION_WEBHOOK_URL", "https://automation.test/webhook/ugc")
os.environ.setdefault("AUTOMATION_BACKOFF_SECONDS", "0")
os.environ.setdefault("AUTO_CREATE_SCHEMA", "false")
os.environ.setdefault("CB_STORAGE", "memory")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "")


@pytest.fixture
def db():
    from ugcstudio.db.base import Base
    from ugcstudio.db.session import SessionLocal, engine
    import ugcstudio.models  # noqa: F401

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture(autouse=True)
def reset_circuit_breakers():
    from ugcstudio.services import circuit_breaker

    circuit_breaker._breakers.clear()
    yield
    circuit_breaker._breakers.clear()


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

_clock = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _tick() -> datetime:
    """Strictly increasing timestamps so "latest" queries are deterministic."""
    global _clock
    _clock = _clock + timedelta(seconds=1)
    return _clock


def make_account(db, account_id=None, email=None, balance=0, is_active=True):
    from ugcstudio.models.account import Account
    from ugcstudio.models.credit_ledger import LedgerEntry, LedgerSource

    account = Account(
        id=account_id or str(uuid4()),
        email=email,
        is_active=is_active,
        created_at=_tick(),
    )
    db.add(account)
    if balance:
        db.add(
            LedgerEntry(
                account_id=account.id,
                amount=balance,
                source_kind=LedgerSource.ADMIN_GRANT.value,
                note="seed",
                created_at=_tick(),
            )
        )
    db.commit()
    return account


def make_brief(db, account_id, **overrides):
    from ugcstudio.models.brief import UgcBrief

    fields = {
        "client_name": "Acme Coffee",
        "video_duration": "30s",
        "target_audience": "Remote workers 25-40",
        "main_objective": "Launch the new cold brew",
        "recording_formats": ["Vertical (9:16)"],
        "details": {"tone": "playful"},
    }
    fields.update(overrides)
    brief = UgcBrief(account_id=account_id, created_at=_tick(), **fields)
    db.add(brief)
    db.commit()
    return brief


def make_asset(db, account_id, type="logo", storage_path=None, metadata=None):
    from ugcstudio.models.brief import BrandingAsset

    asset = BrandingAsset(
        account_id=account_id,
        type=type,
        storage_path=storage_path or f"branding/{account_id}/{uuid4()}.png",
        asset_metadata=metadata or {},
        created_at=_tick(),
    )
    db.add(asset)
    db.commit()
    return asset


@pytest.fixture
def factories():
    class Factories:
        account = staticmethod(make_account)
        brief = staticmethod(make_brief)
        asset = staticmethod(make_asset)
        tick = staticmethod(_tick)

    return Factories
