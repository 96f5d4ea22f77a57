"""
Error taxonomy shared by the webhook ingestion handler and the batch orchestrator.

Every error carries a stable ``code`` (surfaced to clients so they can route the
user: top up, complete the brief, retry later) and the HTTP status it maps to.
"""


class ServiceError(Exception):
    code = "internal_error"
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"success": False, "error": self.message, "code": self.code}


class MalformedInput(ServiceError):
    code = "malformed_input"
    status_code = 400
    default_message = "Request is missing required fields"


class MalformedEvent(MalformedInput):
    # Nothing was committed; the provider redelivers on 5xx.
    code = "malformed_event"
    status_code = 500
    default_message = "Invalid event payload"


class SignatureInvalid(ServiceError):
    code = "signature_invalid"
    status_code = 400
    default_message = "Invalid webhook signature"


class DuplicateKey(ServiceError):
    code = "duplicate_in_flight"
    status_code = 409
    default_message = "This request is already being processed"


class InsufficientCredits(ServiceError):
    code = "insufficient_credits"
    status_code = 402

    def __init__(self, required: int, available: int) -> None:
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient credits. Required: {required}, available: {available}. "
            "Top up credits to continue."
        )


class IncompleteBrief(ServiceError):
    code = "incomplete_brief"
    status_code = 422
    default_message = "Complete your video brief before requesting videos"


class MissingAssets(ServiceError):
    code = "missing_assets"
    status_code = 422
    default_message = "Upload at least one logo or branding asset before requesting videos"


class AccountInactive(ServiceError):
    code = "account_inactive"
    status_code = 403
    default_message = "Account is deactivated"


class AccountUnresolved(ServiceError):
    """Payment recorded but not credited; needs manual reconciliation."""

    code = "account_unresolved"
    status_code = 200
    default_message = "Payment could not be matched to an account"


class RefundTargetNotFound(ServiceError):
    # The purchase may simply not have been delivered yet; 5xx makes the provider retry.
    code = "refund_target_not_found"
    status_code = 500
    default_message = "No purchase payment found to refund"


class TransactionConflict(ServiceError):
    code = "transaction_conflict"
    status_code = 503
    default_message = "Concurrent update detected, please retry"


class DispatchFailure(ServiceError):
    code = "dispatch_failed"
    status_code = 502
    default_message = "Automation dispatch failed"


class AdminAuthRequired(ServiceError):
    code = "admin_auth_required"
    status_code = 401
    default_message = "Missing or invalid admin key"


class NotFound(ServiceError):
    code = "not_found"
    status_code = 404
    default_message = "Not found"
