"""
PaymentWebhookService: ingestion of payment-provider events into the credit ledger.

Per event: Received -> Parsed -> {Deduplicated | Normalized} -> {Ignored | Reconciled} -> Logged.

- payments.external_event_id is the de-dup boundary: an event whose payment row
  already exists is acknowledged without side effects.
- Payment row, customer mapping and ledger entry commit in one transaction.
- The webhook log entry is written after the commit through its own session;
  losing it never rolls back a financial mutation.
- Unexpected failures answer 5xx so the provider redelivers; nothing is retried
  here except whole-transaction serialization conflicts.
"""
import logging
import time
from dataclasses import dataclass, replace
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ugcstudio.core.config import settings
from ugcstudio.core.errors import AccountUnresolved, RefundTargetNotFound, ServiceError
from ugcstudio.db.session import run_with_conflict_retry
from ugcstudio.models.credit_ledger import LedgerSource
from ugcstudio.models.payment import Payment, PaymentKind, PaymentStatus
from ugcstudio.services.accounts.service import AccountService
from ugcstudio.services.audit.service import INBOUND, WebhookLogService
from ugcstudio.services.ledger.service import LedgerService
from ugcstudio.services.payments.normalizer import (
    CanonicalPaymentEvent,
    EventEnvelope,
    IgnoredEvent,
    RefundEvent,
    normalize,
    parse_envelope,
    refund_credits,
)
from ugcstudio.services.payments.signature import SignatureVerifier
from ugcstudio.utils.metrics import webhook_events_total, webhook_processing_seconds

logger = logging.getLogger(__name__)


@dataclass
class WebhookResult:
    status_code: int
    body: dict[str, Any]
    outcome: str


class PaymentWebhookService:
    def __init__(
        self,
        db: Session,
        verifier: SignatureVerifier | None = None,
        log_service: WebhookLogService | None = None,
        provider: str | None = None,
    ):
        self.db = db
        self.verifier = verifier
        self.log_service = log_service or WebhookLogService()
        self.provider = provider or settings.billing_provider
        self.accounts = AccountService(db)
        self.ledger = LedgerService(db)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def handle(self, raw_body: bytes, signature_header: str | None = None) -> WebhookResult:
        started = time.monotonic()
        envelope: EventEnvelope | None = None
        try:
            if self.verifier is not None:
                self.verifier.verify(raw_body, signature_header)
            envelope = parse_envelope(raw_body)
            parsed = envelope
            result = run_with_conflict_retry(self.db, lambda: self._process(parsed))
        except ServiceError as exc:
            self.db.rollback()
            logger.warning(
                "payment_webhook_rejected",
                extra={
                    "event_id": envelope.id if envelope else None,
                    "event_type": envelope.type if envelope else None,
                    "status_code": exc.status_code,
                    "error": exc.message,
                },
            )
            result = WebhookResult(exc.status_code, {"ok": False, "error": exc.message}, "rejected")
        except Exception as exc:
            self.db.rollback()
            logger.exception(
                "payment_webhook_failed",
                extra={
                    "event_id": envelope.id if envelope else None,
                    "event_type": envelope.type if envelope else None,
                },
            )
            result = WebhookResult(500, {"ok": False, "error": str(exc) or type(exc).__name__}, "failed")

        self._log(envelope, raw_body, result)
        event_type = envelope.type if envelope else "unknown"
        webhook_events_total.labels(event_type=event_type, outcome=result.outcome).inc()
        webhook_processing_seconds.observe(time.monotonic() - started)
        return result

    # ------------------------------------------------------------------
    # Transactional part
    # ------------------------------------------------------------------

    def _payment_exists(self, event_id: str) -> bool:
        return (
            self.db.query(Payment.id).filter(Payment.external_event_id == event_id).first()
            is not None
        )

    def _process(self, envelope: EventEnvelope) -> WebhookResult:
        if self._payment_exists(envelope.id):
            logger.info("payment_event_duplicate", extra={"event_id": envelope.id, "event_type": envelope.type})
            return WebhookResult(200, {"ok": True, "idempotent": True}, "idempotent")

        normalized = normalize(envelope)
        if isinstance(normalized, IgnoredEvent):
            logger.info("payment_event_ignored", extra={"event_id": envelope.id, "event_type": envelope.type})
            return WebhookResult(200, {"ok": True, "ignored": True, "type": envelope.type}, "ignored")

        account_id = self.accounts.resolve(normalized.customer_id, normalized.customer_email)
        normalized = replace(normalized, account_id=account_id)

        try:
            if isinstance(normalized, RefundEvent):
                body, outcome = self._reconcile_refund(normalized)
            else:
                body, outcome = self._reconcile_payment(normalized)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            # A concurrent delivery of the same event committed first
            if self._payment_exists(envelope.id):
                logger.info("payment_event_duplicate_race", extra={"event_id": envelope.id})
                return WebhookResult(200, {"ok": True, "idempotent": True}, "idempotent")
            raise
        return WebhookResult(200, body, outcome)

    def _reconcile_payment(self, event: CanonicalPaymentEvent) -> tuple[dict[str, Any], str]:
        payment = Payment(
            external_event_id=event.event_id,
            external_object_kind=event.event_type,
            account_id=event.account_id,
            provider_customer_id=event.customer_id,
            amount_minor_units=event.amount_minor_units,
            currency=event.currency,
            kind=event.kind.value,
            status=PaymentStatus.PAID.value,
            credits_granted=event.credits,
            payment_metadata=event.raw_object,
        )
        self.db.add(payment)
        self.db.flush()

        if event.customer_id and event.account_id:
            self.accounts.link_customer(event.customer_id, event.account_id)

        credited = 0
        if event.credits > 0 and event.account_id:
            source = (
                LedgerSource.SUBSCRIPTION_GRANT
                if event.kind == PaymentKind.SUBSCRIPTION
                else LedgerSource.TOPUP_PURCHASE
            )
            entry = self.ledger.grant(
                event.account_id,
                event.credits,
                source,
                external_event_id=event.event_id,
                linked_payment_id=payment.id,
                note="Credit granted via webhook",
            )
            credited = entry.amount if entry else 0
        elif event.credits > 0:
            logger.warning(
                "payment_account_unresolved",
                extra={
                    "event_id": event.event_id,
                    "event_type": event.event_type,
                    "credits": event.credits,
                    "error_code": AccountUnresolved.code,
                },
            )

        logger.info(
            "payment_reconciled",
            extra={
                "event_id": event.event_id,
                "event_type": event.event_type,
                "account_id": event.account_id,
                "credits": credited,
            },
        )
        body = {
            "ok": True,
            "processed": True,
            "payment_id": payment.id,
            "credits_granted": credited,
            "account_resolved": event.account_id is not None,
        }
        return body, "reconciled"

    def _last_purchase(self, account_id: str) -> Payment | None:
        return (
            self.db.query(Payment)
            .filter(
                Payment.account_id == account_id,
                Payment.kind == PaymentKind.ONE_OFF.value,
                Payment.status == PaymentStatus.PAID.value,
            )
            .order_by(Payment.created_at.desc())
            .first()
        )

    def _reconcile_refund(self, event: RefundEvent) -> tuple[dict[str, Any], str]:
        if not event.account_id:
            # Never guess which account to debit: record for manual reconciliation
            payment = Payment(
                external_event_id=event.event_id,
                external_object_kind=event.event_type,
                account_id=None,
                provider_customer_id=event.customer_id,
                amount_minor_units=0,
                currency=event.currency,
                kind=PaymentKind.REFUND.value,
                status=PaymentStatus.UNRECONCILED.value,
                credits_granted=0,
                payment_metadata=event.raw_object,
            )
            self.db.add(payment)
            self.db.flush()
            logger.warning(
                "refund_account_unresolved",
                extra={"event_id": event.event_id, "event_type": event.event_type, "error_code": AccountUnresolved.code},
            )
            body = {
                "ok": True,
                "refunded": False,
                "reconciliation_required": True,
                "code": AccountUnresolved.code,
                "payment_id": payment.id,
            }
            return body, "unreconciled"

        original = self._last_purchase(event.account_id)
        if original is None:
            raise RefundTargetNotFound()

        # Each refund event reverses its own share of the latest purchase
        credits_to_reverse = refund_credits(
            original.amount_minor_units, original.credits_granted, event.refunded_amount
        )

        refund_payment = Payment(
            external_event_id=event.event_id,
            external_object_kind=event.event_type,
            account_id=event.account_id,
            provider_customer_id=event.customer_id,
            amount_minor_units=0,
            currency=event.currency,
            kind=PaymentKind.REFUND.value,
            status=PaymentStatus.REFUNDED.value,
            credits_granted=-credits_to_reverse,
            refunded_payment_id=original.id,
            payment_metadata=event.raw_object,
        )
        self.db.add(refund_payment)
        self.db.flush()

        if credits_to_reverse > 0:
            self.ledger.append(
                event.account_id,
                -credits_to_reverse,
                LedgerSource.REFUND,
                external_event_id=event.event_id,
                linked_payment_id=refund_payment.id,
                note="Refund compensation",
            )

        logger.info(
            "refund_reconciled",
            extra={
                "event_id": event.event_id,
                "account_id": event.account_id,
                "credits": -credits_to_reverse,
            },
        )
        body = {
            "ok": True,
            "refunded": True,
            "payment_id": refund_payment.id,
            "credits_reversed": credits_to_reverse,
        }
        return body, "refunded"

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    def _log(self, envelope: EventEnvelope | None, raw_body: bytes, result: WebhookResult) -> None:
        if envelope is not None:
            payload: Any = envelope.raw
        else:
            payload = {"raw": raw_body.decode("utf-8", errors="replace")[:10_000]}
        self.log_service.log(
            direction=INBOUND,
            provider=self.provider,
            event_type=envelope.type if envelope else "unknown",
            idempotency_key=envelope.id if envelope else None,
            status_code=result.status_code,
            payload=payload,
            response=result.body,
            error=None if result.body.get("ok") else result.body.get("error"),
        )
