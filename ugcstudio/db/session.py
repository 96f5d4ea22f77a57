import logging
from typing import Callable, TypeVar

from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from ugcstudio.core.config import settings
from ugcstudio.core.errors import TransactionConflict

logger = logging.getLogger(__name__)

T = TypeVar("T")

# serialization_failure, deadlock_detected
CONFLICT_SQLSTATES = {"40001", "40P01"}


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        return {}
    return {
        "pool_pre_ping": True,
        "pool_size": 10,
        "max_overflow": 20,
        "pool_recycle": 1800,  # recycle connections every 30 min (avoid stale)
        "connect_args": {"connect_timeout": 5},
    }


engine = create_engine(settings.database_url, **_engine_kwargs(settings.database_url))
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def is_conflict(exc: OperationalError) -> bool:
    orig = exc.orig
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    return code in CONFLICT_SQLSTATES


def run_with_conflict_retry(db: Session, work: Callable[[], T], attempts: int | None = None) -> T:
    """
    Run ``work`` (which must commit its own transaction) and retry the whole unit
    on serialization failures or deadlocks. Nothing outside the database is touched
    inside ``work``, so a retry has no externally visible side effects.
    """
    max_attempts = max(1, attempts or settings.transaction_retry_attempts)
    for attempt in range(1, max_attempts + 1):
        try:
            return work()
        except OperationalError as exc:
            db.rollback()
            if not is_conflict(exc):
                raise
            if attempt >= max_attempts:
                logger.error("transaction_conflict_exhausted", extra={"attempt": attempt})
                raise TransactionConflict() from exc
            logger.warning("transaction_conflict_retry", extra={"attempt": attempt})
    raise TransactionConflict()
