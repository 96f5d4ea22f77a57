"""
Idempotency guard shared by the webhook and batch flows.

The durable witness is a row in idempotency_keys written in the SAME transaction as
the state change it protects, so "key seen" and "effect applied" commit together or
not at all. The primary key on (scope, key) is the source of truth under
concurrency; the Redis claim below is only a fast path for concurrent duplicates.
"""
import logging
from dataclasses import dataclass

import redis
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ugcstudio.core.config import settings
from ugcstudio.core.errors import DuplicateKey
from ugcstudio.models.idempotency_key import IdempotencyKey

logger = logging.getLogger(__name__)

SCOPE_BATCH_CREATE = "batch_create"


@dataclass(frozen=True)
class Admit:
    pass


@dataclass(frozen=True)
class Replay:
    result_ref: str


class IdempotencyGuard:
    def __init__(self, db: Session) -> None:
        self.db = db

    def admit_or_replay(self, scope: str, key: str) -> Admit | Replay:
        record = (
            self.db.query(IdempotencyKey)
            .filter(IdempotencyKey.scope == scope, IdempotencyKey.key == key)
            .one_or_none()
        )
        if record is not None:
            return Replay(result_ref=record.result_ref)
        return Admit()

    def record(self, scope: str, key: str, result_ref: str) -> IdempotencyKey:
        """
        Add the witness row to the caller's transaction. A concurrent writer of the
        same key surfaces as DuplicateKey; the caller must roll back.
        """
        record = IdempotencyKey(scope=scope, key=key, result_ref=result_ref)
        self.db.add(record)
        try:
            self.db.flush()
        except IntegrityError as exc:
            raise DuplicateKey() from exc
        return record


class InFlightClaims:
    """
    Short-lived Redis claims for keys currently being processed.
    Fails open: without Redis the database constraint alone decides.
    """

    def __init__(self) -> None:
        self.client = redis.Redis.from_url(settings.redis_url, decode_responses=True)
        self.default_ttl = settings.batch_inflight_ttl

    def _key(self, scope: str, key: str) -> str:
        return f"inflight:{scope}:{key}"

    def claim(self, scope: str, key: str, ttl_seconds: int | None = None) -> bool:
        """Atomic operation: setnx + expire in one call."""
        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl
        try:
            created = self.client.set(self._key(scope, key), "1", nx=True, ex=ttl)
        except redis.RedisError:
            logger.warning("inflight_claim_unavailable", extra={"idempotency_key": key})
            return True
        return created is not None

    def release(self, scope: str, key: str) -> None:
        try:
            self.client.delete(self._key(scope, key))
        except redis.RedisError:
            logger.warning("inflight_release_failed", extra={"idempotency_key": key})
