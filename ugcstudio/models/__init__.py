"""Import every model so Base.metadata knows all tables."""
from ugcstudio.models.account import Account
from ugcstudio.models.brief import BrandingAsset, UgcBrief
from ugcstudio.models.credit_ledger import LedgerEntry, LedgerSource
from ugcstudio.models.idempotency_key import IdempotencyKey
from ugcstudio.models.payment import Payment, PaymentKind, PaymentStatus
from ugcstudio.models.provider_customer import ProviderCustomer
from ugcstudio.models.video_request import VideoRequest, VideoRequestBatch, VideoRequestStatus
from ugcstudio.models.webhook_log import WebhookLogEntry

__all__ = [
    "Account",
    "BrandingAsset",
    "IdempotencyKey",
    "LedgerEntry",
    "LedgerSource",
    "Payment",
    "PaymentKind",
    "PaymentStatus",
    "ProviderCustomer",
    "UgcBrief",
    "VideoRequest",
    "VideoRequestBatch",
    "VideoRequestStatus",
    "WebhookLogEntry",
]
