"""
BatchService: idempotent creation of a batch of video requests.

Admission is one transaction: lock the account, re-check the idempotency key under
the lock, check the derived balance, then write the batch, N VideoRequests, N
consumption entries and the idempotency witness. Either all of it commits or none
of it does. The automation call happens only after the commit and can never undo
the debit.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ugcstudio.core.config import settings
from ugcstudio.core.errors import (
    AccountInactive,
    DuplicateKey,
    IncompleteBrief,
    InsufficientCredits,
    MalformedInput,
    MissingAssets,
    NotFound,
    ServiceError,
)
from ugcstudio.db.session import run_with_conflict_retry
from ugcstudio.models.account import Account
from ugcstudio.models.brief import BrandingAsset, UgcBrief
from ugcstudio.models.video_request import VideoRequest, VideoRequestBatch, VideoRequestStatus
from ugcstudio.services.dispatch.payload import BROLL_TYPES, LOGO_TYPES
from ugcstudio.services.dispatch.service import enqueue_dispatch
from ugcstudio.services.idempotency import (
    SCOPE_BATCH_CREATE,
    IdempotencyGuard,
    InFlightClaims,
    Replay,
)
from ugcstudio.services.ledger.service import LedgerService
from ugcstudio.utils.metrics import batches_total, video_requests_created_total

logger = logging.getLogger(__name__)

BRANDING_TYPES = set(LOGO_TYPES) | set(BROLL_TYPES)


@dataclass
class BatchResult:
    batch_id: str
    request_ids: list[str] = field(default_factory=list)
    replayed: bool = False

    def to_dict(self) -> dict:
        return {
            "success": True,
            "batch_id": self.batch_id,
            "request_ids": list(self.request_ids),
            "replayed": self.replayed,
        }


class BatchService:
    def __init__(
        self,
        db: Session,
        dispatcher: Callable[[str], None] | None = enqueue_dispatch,
        inflight: InFlightClaims | None = None,
    ):
        self.db = db
        self.dispatcher = dispatcher
        self.inflight = inflight
        self.guard = IdempotencyGuard(db)
        self.ledger = LedgerService(db)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def create_batch(
        self,
        account_id: str,
        video_count: int,
        idempotency_key: str | None,
        custom_instructions: str | None = None,
        brief_id: str | None = None,
        asset_ids: list[str] | None = None,
    ) -> BatchResult:
        key = (idempotency_key or "").strip()
        if not key:
            raise MalformedInput("Idempotency-Key is required")
        if not isinstance(video_count, int) or isinstance(video_count, bool) or video_count <= 0:
            raise MalformedInput("video_count must be a positive integer")
        if video_count > settings.batch_max_videos:
            raise MalformedInput(f"video_count must not exceed {settings.batch_max_videos}")

        self._require_active(account_id)

        decision = self.guard.admit_or_replay(SCOPE_BATCH_CREATE, key)
        if isinstance(decision, Replay):
            return self._replay(account_id, decision.result_ref, key)

        brief = self._load_brief(account_id, brief_id)
        assets = self._load_assets(account_id, asset_ids)

        claimed = False
        if self.inflight is not None:
            claimed = self.inflight.claim(SCOPE_BATCH_CREATE, key)
            if not claimed:
                # Another request holds the key; it may already have committed
                decision = self.guard.admit_or_replay(SCOPE_BATCH_CREATE, key)
                if isinstance(decision, Replay):
                    return self._replay(account_id, decision.result_ref, key)
                batches_total.labels(outcome="duplicate_in_flight").inc()
                raise DuplicateKey()
        try:
            result = run_with_conflict_retry(
                self.db,
                lambda: self._admit(account_id, video_count, key, custom_instructions, brief, assets),
            )
        finally:
            if claimed:
                self.inflight.release(SCOPE_BATCH_CREATE, key)

        if not result.replayed:
            self._dispatch(result.batch_id)
        return result

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _require_active(self, account_id: str) -> Account:
        account = self.db.query(Account).filter(Account.id == account_id).one_or_none()
        if account is None:
            raise NotFound(f"Account {account_id} not found")
        if not account.is_active:
            raise AccountInactive()
        return account

    def _load_brief(self, account_id: str, brief_id: str | None) -> UgcBrief:
        query = self.db.query(UgcBrief).filter(UgcBrief.account_id == account_id)
        if brief_id:
            brief = query.filter(UgcBrief.id == brief_id).one_or_none()
        else:
            brief = query.order_by(UgcBrief.created_at.desc()).first()
        if brief is None:
            raise IncompleteBrief()
        missing = brief.missing_fields()
        if missing:
            raise IncompleteBrief(f"Brief is missing required fields: {', '.join(missing)}")
        return brief

    def _load_assets(self, account_id: str, asset_ids: list[str] | None) -> list[BrandingAsset]:
        query = self.db.query(BrandingAsset).filter(BrandingAsset.account_id == account_id)
        if asset_ids:
            wanted = list(dict.fromkeys(asset_ids))
            assets = query.filter(BrandingAsset.id.in_(wanted)).all()
            unknown = set(wanted) - {a.id for a in assets}
            if unknown:
                raise MissingAssets(f"Unknown branding assets: {', '.join(sorted(unknown))}")
        else:
            assets = query.order_by(BrandingAsset.created_at).all()
        if not any((a.type or "").lower() in BRANDING_TYPES for a in assets):
            raise MissingAssets()
        return assets

    # ------------------------------------------------------------------
    # Transactional part
    # ------------------------------------------------------------------

    def _admit(
        self,
        account_id: str,
        video_count: int,
        key: str,
        custom_instructions: str | None,
        brief: UgcBrief,
        assets: list[BrandingAsset],
    ) -> BatchResult:
        try:
            self.ledger.lock_account(account_id)
            # Under the lock a concurrent request with the same key has either committed or not started
            decision = self.guard.admit_or_replay(SCOPE_BATCH_CREATE, key)
            if isinstance(decision, Replay):
                self.db.rollback()
                return self._replay(account_id, decision.result_ref, key)
            self.ledger.ensure_funds(account_id, video_count)

            batch = VideoRequestBatch(
                account_id=account_id,
                idempotency_key=key,
                brief_id=brief.id,
                video_count=video_count,
                custom_instructions=custom_instructions,
                asset_ids=[a.id for a in assets],
            )
            self.db.add(batch)
            self.db.flush()

            requests = [
                VideoRequest(
                    account_id=account_id,
                    batch_id=batch.batch_id,
                    status=VideoRequestStatus.QUEUED.value,
                )
                for _ in range(video_count)
            ]
            self.db.add_all(requests)
            self.db.flush()

            for request in requests:
                self.ledger.consume(account_id, request.id, note=f"Video request in batch {batch.batch_id}")

            self.guard.record(SCOPE_BATCH_CREATE, key, batch.batch_id)
            self.db.commit()
        except InsufficientCredits:
            self.db.rollback()
            batches_total.labels(outcome="insufficient_credits").inc()
            raise
        except (DuplicateKey, IntegrityError) as exc:
            self.db.rollback()
            decision = self.guard.admit_or_replay(SCOPE_BATCH_CREATE, key)
            if isinstance(decision, Replay):
                return self._replay(account_id, decision.result_ref, key)
            batches_total.labels(outcome="duplicate_in_flight").inc()
            if isinstance(exc, DuplicateKey):
                raise
            raise DuplicateKey() from exc
        except ServiceError:
            self.db.rollback()
            raise

        request_ids = sorted(r.id for r in requests)
        batches_total.labels(outcome="created").inc()
        video_requests_created_total.inc(video_count)
        logger.info(
            "batch_created",
            extra={
                "account_id": account_id,
                "batch_id": batch.batch_id,
                "idempotency_key": key,
                "credits": -video_count,
            },
        )
        return BatchResult(batch_id=batch.batch_id, request_ids=request_ids)

    def _replay(self, account_id: str, batch_id: str, key: str) -> BatchResult:
        batch = (
            self.db.query(VideoRequestBatch)
            .filter(VideoRequestBatch.batch_id == batch_id)
            .one_or_none()
        )
        if batch is None or batch.account_id != account_id:
            # Keys are global; never reveal another account's batch
            raise DuplicateKey("Idempotency key was already used for a different request")
        request_ids = [
            row.id
            for row in self.db.query(VideoRequest.id)
            .filter(VideoRequest.batch_id == batch_id)
            .order_by(VideoRequest.id)
            .all()
        ]
        batches_total.labels(outcome="replayed").inc()
        logger.info(
            "batch_replayed",
            extra={"account_id": account_id, "batch_id": batch_id, "idempotency_key": key},
        )
        return BatchResult(batch_id=batch_id, request_ids=request_ids, replayed=True)

    # ------------------------------------------------------------------
    # Post-commit
    # ------------------------------------------------------------------

    def _dispatch(self, batch_id: str) -> None:
        if self.dispatcher is None:
            return
        try:
            self.dispatcher(batch_id)
        except Exception:
            # Credits stay consumed; the batch is recoverable from its QUEUED requests
            logger.exception("dispatch_enqueue_failed", extra={"batch_id": batch_id})
