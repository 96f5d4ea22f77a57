"""
Automation webhook client using httpx sync client.

Posts the batch payload to the external video automation workflow with a bounded
timeout and a small bounded retry (exponential backoff). Every attempt is written
to the webhook log as an outbound entry. Failures are reported, never raised:
credits were consumed at admission and dispatch does not undo that.
"""
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

import httpx
import pybreaker

from ugcstudio.core.config import settings
from ugcstudio.services.audit.service import OUTBOUND, WebhookLogService
from ugcstudio.services.circuit_breaker import get_circuit_breaker
from ugcstudio.utils.metrics import dispatch_request_duration_seconds, dispatch_requests_total

logger = logging.getLogger(__name__)

PROVIDER = "automation"
EVENT_TYPE = "video_generation.requested"


class AutomationHTTPError(Exception):
    def __init__(self, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"automation webhook error: {status_code}")

    @property
    def retryable(self) -> bool:
        return self.status_code == 429 or self.status_code >= 500


@dataclass
class DispatchResult:
    success: bool
    attempts: int
    status_code: int | None = None
    response: Any = None
    error: str | None = None


def _response_body(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return {"text": resp.text[:2000]}


class AutomationClient:
    def __init__(
        self,
        url: str | None = None,
        timeout: float | None = None,
        max_attempts: int | None = None,
        backoff_seconds: float | None = None,
        log_service: WebhookLogService | None = None,
        breaker: pybreaker.CircuitBreaker | None = None,
        http_client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.url = settings.automation_webhook_url if url is None else url
        self.timeout = timeout or settings.automation_timeout_seconds
        self.max_attempts = max(1, max_attempts or settings.automation_max_attempts)
        self.backoff_seconds = settings.automation_backoff_seconds if backoff_seconds is None else backoff_seconds
        self.log_service = log_service or WebhookLogService()
        self._breaker = breaker
        self._client = http_client
        self._sleep = sleep

    @property
    def client(self) -> httpx.Client:
        """Lazy initialization of httpx client."""
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout)
        return self._client

    @property
    def breaker(self) -> pybreaker.CircuitBreaker:
        if self._breaker is None:
            self._breaker = get_circuit_breaker(PROVIDER)
        return self._breaker

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def _post(self, payload: dict[str, Any], idempotency_key: str) -> httpx.Response:
        resp = self.client.post(
            self.url,
            json=payload,
            headers={
                "Content-Type": "application/json",
                "X-Contract-Version": settings.automation_contract_version,
                "Idempotency-Key": idempotency_key,
            },
            timeout=self.timeout,
        )
        if resp.status_code >= 400:
            raise AutomationHTTPError(resp.status_code, resp.text[:2000])
        return resp

    def _log_attempt(
        self,
        idempotency_key: str,
        payload: dict[str, Any],
        status_code: int | None,
        response: Any = None,
        error: str | None = None,
    ) -> None:
        self.log_service.log(
            direction=OUTBOUND,
            provider=PROVIDER,
            event_type=EVENT_TYPE,
            idempotency_key=idempotency_key,
            status_code=status_code,
            payload=payload,
            response=response,
            error=error,
        )

    def send(self, payload: dict[str, Any], idempotency_key: str) -> DispatchResult:
        if not self.url:
            error = "automation webhook url not configured"
            logger.error("dispatch_not_configured", extra={"idempotency_key": idempotency_key})
            self._log_attempt(idempotency_key, payload, None, error=error)
            dispatch_requests_total.labels(status="skipped").inc()
            return DispatchResult(success=False, attempts=0, error=error)

        last_error = None
        last_status = None
        for attempt in range(1, self.max_attempts + 1):
            start = time.monotonic()
            retryable = True
            try:
                resp = self.breaker.call(self._post, payload, idempotency_key)
            except pybreaker.CircuitBreakerError as exc:
                last_error, last_status, retryable = f"circuit open: {exc}", None, False
            except AutomationHTTPError as exc:
                last_error, last_status, retryable = str(exc), exc.status_code, exc.retryable
            except httpx.HTTPError as exc:
                last_error, last_status = f"{type(exc).__name__}: {exc}", None
            else:
                body = _response_body(resp)
                dispatch_request_duration_seconds.observe(time.monotonic() - start)
                dispatch_requests_total.labels(status="success").inc()
                self._log_attempt(idempotency_key, payload, resp.status_code, response=body)
                logger.info(
                    "dispatch_succeeded",
                    extra={"idempotency_key": idempotency_key, "attempt": attempt, "status_code": resp.status_code},
                )
                return DispatchResult(success=True, attempts=attempt, status_code=resp.status_code, response=body)

            dispatch_request_duration_seconds.observe(time.monotonic() - start)
            dispatch_requests_total.labels(status="error").inc()
            self._log_attempt(idempotency_key, payload, last_status, error=last_error)
            logger.warning(
                "dispatch_attempt_failed",
                extra={
                    "idempotency_key": idempotency_key,
                    "attempt": attempt,
                    "status_code": last_status,
                    "error": last_error,
                },
            )
            if not retryable or attempt >= self.max_attempts:
                return DispatchResult(success=False, attempts=attempt, status_code=last_status, error=last_error)
            self._sleep(self.backoff_seconds * (2 ** (attempt - 1)))

        return DispatchResult(success=False, attempts=self.max_attempts, status_code=last_status, error=last_error)
