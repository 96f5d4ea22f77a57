"""Tests for BatchService: admission, idempotency, validation, post-commit dispatch."""
from unittest.mock import MagicMock, patch

import httpx
import pybreaker
import pytest

from ugcstudio.core.errors import (
    AccountInactive,
    DuplicateKey,
    IncompleteBrief,
    InsufficientCredits,
    MalformedInput,
    MissingAssets,
)
from ugcstudio.models.credit_ledger import LedgerEntry, LedgerSource
from ugcstudio.models.idempotency_key import IdempotencyKey
from ugcstudio.models.video_request import VideoRequest, VideoRequestBatch
from ugcstudio.models.webhook_log import WebhookLogEntry
from ugcstudio.services.batches.service import BatchService
from ugcstudio.services.dispatch.client import AutomationClient
from ugcstudio.services.dispatch.service import DispatchService
from ugcstudio.services.idempotency import Admit, Replay
from ugcstudio.services.ledger.service import LedgerService


@pytest.fixture
def ready_account(db, factories):
    """Account with a complete brief, a logo and a b-roll."""

    def _make(balance=5, **kwargs):
        account = factories.account(db, balance=balance, **kwargs)
        factories.brief(db, account.id)
        factories.asset(db, account.id, type="logo", metadata={"palette": ["#000000"]})
        factories.asset(db, account.id, type="b-roll")
        return account

    return _make


class TestCreateBatch:
    def test_creates_requests_and_consumes_credits(self, db, ready_account):
        account = ready_account(balance=5)
        dispatcher = MagicMock()

        result = BatchService(db, dispatcher=dispatcher).create_batch(account.id, 5, "key-1")

        assert result.replayed is False
        assert len(result.request_ids) == 5
        assert result.to_dict()["success"] is True

        requests = db.query(VideoRequest).filter(VideoRequest.batch_id == result.batch_id).all()
        assert len(requests) == 5
        assert {r.status for r in requests} == {"QUEUED"}

        consumption = (
            db.query(LedgerEntry)
            .filter(LedgerEntry.account_id == account.id, LedgerEntry.source_kind == "consumption")
            .all()
        )
        assert [e.amount for e in consumption] == [-1] * 5
        assert {e.video_request_id for e in consumption} == set(result.request_ids)
        assert LedgerService(db).get_balance(account.id) == 0

        record = db.query(IdempotencyKey).filter(IdempotencyKey.key == "key-1").one()
        assert record.scope == "batch_create"
        assert record.result_ref == result.batch_id
        dispatcher.assert_called_once_with(result.batch_id)

    def test_batch_records_brief_and_assets(self, db, factories):
        account = factories.account(db, balance=2)
        factories.brief(db, account.id, client_name="Older")
        latest = factories.brief(db, account.id, client_name="Latest")
        logo = factories.asset(db, account.id, type="logo")
        factories.asset(db, account.id, type="broll")

        result = BatchService(db, dispatcher=None).create_batch(
            account.id, 1, "key-1", custom_instructions="Show the mug", asset_ids=[logo.id]
        )

        batch = db.query(VideoRequestBatch).filter(VideoRequestBatch.batch_id == result.batch_id).one()
        assert batch.brief_id == latest.id
        assert batch.asset_ids == [logo.id]
        assert batch.custom_instructions == "Show the mug"
        assert batch.video_count == 1

    def test_same_key_replays_original_result(self, db, ready_account):
        account = ready_account(balance=5)
        dispatcher = MagicMock()
        service = BatchService(db, dispatcher=dispatcher)

        first = service.create_batch(account.id, 2, "key-1")
        second = service.create_batch(account.id, 2, "key-1")

        assert second.replayed is True
        assert second.batch_id == first.batch_id
        assert second.request_ids == first.request_ids
        assert db.query(VideoRequestBatch).count() == 1
        assert db.query(VideoRequest).count() == 2
        assert LedgerService(db).get_balance(account.id) == 3
        dispatcher.assert_called_once_with(first.batch_id)

    def test_replay_wins_over_changed_balance(self, db, ready_account):
        account = ready_account(balance=3)
        service = BatchService(db, dispatcher=None)
        first = service.create_batch(account.id, 3, "key-1")

        # Balance is now 0; the retry must still get the original batch
        again = service.create_batch(account.id, 3, "key-1")

        assert again.replayed is True
        assert again.batch_id == first.batch_id

    def test_key_from_another_account_is_rejected(self, db, ready_account):
        owner = ready_account(balance=5)
        other = ready_account(balance=5)
        BatchService(db, dispatcher=None).create_batch(owner.id, 1, "shared-key")

        with pytest.raises(DuplicateKey, match="different request"):
            BatchService(db, dispatcher=None).create_batch(other.id, 1, "shared-key")
        assert LedgerService(db).get_balance(other.id) == 5


class TestInsufficientCredits:
    def test_rejects_without_side_effects(self, db, ready_account):
        account = ready_account(balance=3)
        dispatcher = MagicMock()

        with pytest.raises(InsufficientCredits) as exc_info:
            BatchService(db, dispatcher=dispatcher).create_batch(account.id, 5, "key-1")

        assert exc_info.value.status_code == 402
        assert LedgerService(db).get_balance(account.id) == 3
        assert db.query(VideoRequest).count() == 0
        assert db.query(VideoRequestBatch).count() == 0
        assert db.query(IdempotencyKey).count() == 0
        dispatcher.assert_not_called()

    def test_same_key_succeeds_after_top_up(self, db, ready_account):
        account = ready_account(balance=3)
        service = BatchService(db, dispatcher=None)
        with pytest.raises(InsufficientCredits):
            service.create_batch(account.id, 5, "key-1")

        LedgerService(db).adjust(account.id, 2, LedgerSource.ADMIN_GRANT, note="top up")
        db.commit()
        result = service.create_batch(account.id, 5, "key-1")

        assert result.replayed is False
        assert LedgerService(db).get_balance(account.id) == 0


class TestValidation:
    @pytest.mark.parametrize("key", [None, "", "   "])
    def test_idempotency_key_required(self, db, ready_account, key):
        account = ready_account()
        with pytest.raises(MalformedInput, match="Idempotency-Key"):
            BatchService(db, dispatcher=None).create_batch(account.id, 1, key)

    @pytest.mark.parametrize("count", [0, -1, True, "3", 1.5])
    def test_video_count_must_be_positive_integer(self, db, ready_account, count):
        account = ready_account()
        with pytest.raises(MalformedInput):
            BatchService(db, dispatcher=None).create_batch(account.id, count, "key-1")

    def test_video_count_upper_bound(self, db, ready_account):
        account = ready_account(balance=100)
        with patch("ugcstudio.services.batches.service.settings") as settings:
            settings.batch_max_videos = 10
            with pytest.raises(MalformedInput, match="10"):
                BatchService(db, dispatcher=None).create_batch(account.id, 11, "key-1")

    def test_inactive_account(self, db, ready_account):
        account = ready_account(is_active=False)
        with pytest.raises(AccountInactive):
            BatchService(db, dispatcher=None).create_batch(account.id, 1, "key-1")

    def test_missing_brief(self, db, factories):
        account = factories.account(db, balance=5)
        factories.asset(db, account.id, type="logo")
        with pytest.raises(IncompleteBrief):
            BatchService(db, dispatcher=None).create_batch(account.id, 1, "key-1")

    def test_incomplete_brief_names_fields(self, db, factories):
        account = factories.account(db, balance=5)
        factories.brief(db, account.id, target_audience="", main_objective=None)
        factories.asset(db, account.id, type="logo")
        with pytest.raises(IncompleteBrief, match="target_audience, main_objective"):
            BatchService(db, dispatcher=None).create_batch(account.id, 1, "key-1")

    def test_brief_of_another_account(self, db, factories, ready_account):
        account = ready_account()
        stranger = factories.account(db)
        foreign = factories.brief(db, stranger.id)
        with pytest.raises(IncompleteBrief):
            BatchService(db, dispatcher=None).create_batch(account.id, 1, "key-1", brief_id=foreign.id)

    def test_missing_assets(self, db, factories):
        account = factories.account(db, balance=5)
        factories.brief(db, account.id)
        with pytest.raises(MissingAssets):
            BatchService(db, dispatcher=None).create_batch(account.id, 1, "key-1")

    def test_non_branding_assets_do_not_count(self, db, factories):
        account = factories.account(db, balance=5)
        factories.brief(db, account.id)
        factories.asset(db, account.id, type="other")
        with pytest.raises(MissingAssets):
            BatchService(db, dispatcher=None).create_batch(account.id, 1, "key-1")

    def test_unknown_asset_ref(self, db, ready_account):
        account = ready_account()
        with pytest.raises(MissingAssets, match="asset-404"):
            BatchService(db, dispatcher=None).create_batch(account.id, 1, "key-1", asset_ids=["asset-404"])

    def test_validation_failure_leaves_no_trace(self, db, factories):
        account = factories.account(db, balance=5)
        with pytest.raises(IncompleteBrief):
            BatchService(db, dispatcher=None).create_batch(account.id, 1, "key-1")
        assert db.query(IdempotencyKey).count() == 0
        assert LedgerService(db).get_balance(account.id) == 5


class TestConcurrentDuplicates:
    def test_winner_committed_before_lock(self, db, ready_account):
        account = ready_account(balance=5)
        first = BatchService(db, dispatcher=None).create_batch(account.id, 2, "key-1")

        service = BatchService(db, dispatcher=MagicMock())
        # First check ran before the winner committed; the re-check under the lock sees it
        with patch.object(service.guard, "admit_or_replay", side_effect=[Admit(), Replay(first.batch_id)]):
            result = service.create_batch(account.id, 2, "key-1")

        assert result.replayed is True
        assert result.batch_id == first.batch_id
        assert LedgerService(db).get_balance(account.id) == 3
        service.dispatcher.assert_not_called()

    def test_unique_constraint_is_the_last_word(self, db, ready_account):
        account = ready_account(balance=5)
        first = BatchService(db, dispatcher=None).create_batch(account.id, 2, "key-1")

        service = BatchService(db, dispatcher=None)
        with patch.object(
            service.guard,
            "admit_or_replay",
            side_effect=[Admit(), Admit(), Replay(first.batch_id)],
        ):
            result = service.create_batch(account.id, 2, "key-1")

        assert result.replayed is True
        assert db.query(VideoRequestBatch).count() == 1
        assert LedgerService(db).get_balance(account.id) == 3

    def test_constraint_conflict_without_record_is_duplicate(self, db, ready_account):
        account = ready_account(balance=5)
        BatchService(db, dispatcher=None).create_batch(account.id, 1, "key-1")

        service = BatchService(db, dispatcher=None)
        with patch.object(service.guard, "admit_or_replay", return_value=Admit()):
            with pytest.raises(DuplicateKey):
                service.create_batch(account.id, 1, "key-1")
        assert LedgerService(db).get_balance(account.id) == 4

    def test_inflight_claim_held_by_another_request(self, db, ready_account):
        account = ready_account()
        inflight = MagicMock()
        inflight.claim.return_value = False

        with pytest.raises(DuplicateKey) as exc_info:
            BatchService(db, dispatcher=None, inflight=inflight).create_batch(account.id, 1, "key-1")

        assert exc_info.value.status_code == 409
        inflight.release.assert_not_called()
        assert db.query(VideoRequestBatch).count() == 0

    def test_inflight_claim_released_after_commit(self, db, ready_account):
        account = ready_account()
        inflight = MagicMock()
        inflight.claim.return_value = True

        BatchService(db, dispatcher=None, inflight=inflight).create_batch(account.id, 1, "key-1")

        inflight.claim.assert_called_once_with("batch_create", "key-1")
        inflight.release.assert_called_once_with("batch_create", "key-1")

    def test_inflight_claim_released_on_rejection(self, db, ready_account):
        account = ready_account(balance=0)
        inflight = MagicMock()
        inflight.claim.return_value = True

        with pytest.raises(InsufficientCredits):
            BatchService(db, dispatcher=None, inflight=inflight).create_batch(account.id, 1, "key-1")
        inflight.release.assert_called_once_with("batch_create", "key-1")


class TestDispatchAfterCommit:
    def test_dispatcher_error_is_not_surfaced(self, db, ready_account):
        account = ready_account(balance=2)
        dispatcher = MagicMock(side_effect=RuntimeError("broker down"))

        result = BatchService(db, dispatcher=dispatcher).create_batch(account.id, 2, "key-1")

        assert len(result.request_ids) == 2
        assert LedgerService(db).get_balance(account.id) == 0

    def test_dispatch_failure_keeps_credits_consumed(self, db, ready_account):
        account = ready_account(balance=5)

        def unreachable(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = AutomationClient(
            url="https://automation.test/webhook/ugc",
            http_client=httpx.Client(transport=httpx.MockTransport(unreachable)),
            breaker=pybreaker.CircuitBreaker(fail_max=100),
            sleep=lambda _seconds: None,
        )
        results = []

        def dispatch_now(batch_id):
            results.append(DispatchService(db, client=client).dispatch(batch_id))

        result = BatchService(db, dispatcher=dispatch_now).create_batch(account.id, 5, "key-1")

        assert results[0].success is False
        assert results[0].attempts == 3
        requests = db.query(VideoRequest).filter(VideoRequest.batch_id == result.batch_id).all()
        assert len(requests) == 5
        assert {r.status for r in requests} == {"QUEUED"}
        assert LedgerService(db).get_balance(account.id) == 0

        outbound = db.query(WebhookLogEntry).filter(WebhookLogEntry.direction == "outbound").all()
        assert len(outbound) == 3
        assert all(entry.error and "ConnectError" in entry.error for entry in outbound)
        assert {entry.idempotency_key for entry in outbound} == {"key-1"}
