"""
Pluggable signature check that runs before the event body is parsed.
"""
from typing import Protocol

import stripe

from ugcstudio.core.config import settings
from ugcstudio.core.errors import SignatureInvalid


class SignatureVerifier(Protocol):
    def verify(self, payload: bytes, header: str | None) -> None:
        ...


class StripeSignatureVerifier:
    """Validates the ``Stripe-Signature`` header (``t=...,v1=...``) against the endpoint secret."""

    def __init__(self, secret: str, tolerance: int = 300) -> None:
        self.secret = secret
        self.tolerance = tolerance

    def verify(self, payload: bytes, header: str | None) -> None:
        if not header:
            raise SignatureInvalid("Missing Stripe-Signature header")
        try:
            stripe.WebhookSignature.verify_header(
                payload.decode("utf-8"),
                header,
                self.secret,
                self.tolerance,
            )
        except (stripe.SignatureVerificationError, UnicodeDecodeError) as exc:
            raise SignatureInvalid() from exc


def get_signature_verifier() -> SignatureVerifier | None:
    """None when no endpoint secret is configured (mock provider)."""
    if not settings.signature_verification_enabled:
        return None
    return StripeSignatureVerifier(settings.stripe_webhook_secret, settings.stripe_signature_tolerance)
