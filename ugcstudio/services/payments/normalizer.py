"""
Payment event normalizer: provider envelope -> canonical record.

Pure functions, no I/O. Account resolution happens in the handler; the canonical
event only carries the identifiers (customer id, email) needed to resolve it.
"""
import json
from dataclasses import dataclass, field
from typing import Any

from ugcstudio.core.errors import MalformedEvent
from ugcstudio.models.payment import PaymentKind

CHECKOUT_COMPLETED = "checkout.session.completed"
INVOICE_PAID = "invoice.paid"
CHARGE_REFUNDED = "charge.refunded"
INVOICE_PAYMENT_REFUNDED = "invoice.payment_refunded"

REFUND_EVENT_TYPES = (CHARGE_REFUNDED, INVOICE_PAYMENT_REFUNDED)


@dataclass(frozen=True)
class EventEnvelope:
    id: str
    type: str
    created: int | None
    data_object: dict[str, Any]
    raw: dict[str, Any]


@dataclass(frozen=True)
class CanonicalPaymentEvent:
    event_id: str
    event_type: str
    kind: PaymentKind
    amount_minor_units: int
    currency: str
    credits: int
    customer_id: str | None = None
    customer_email: str | None = None
    account_id: str | None = None
    raw_object: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RefundEvent:
    event_id: str
    event_type: str
    refunded_amount: int | None  # None = provider did not say, refund everything
    currency: str
    customer_id: str | None = None
    customer_email: str | None = None
    account_id: str | None = None
    raw_object: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class IgnoredEvent:
    event_id: str
    event_type: str


NormalizedEvent = CanonicalPaymentEvent | RefundEvent | IgnoredEvent


def parse_envelope(raw_body: bytes | str) -> EventEnvelope:
    """Parse ``{id, type, created, data: {object: {...}}}``; MalformedEvent otherwise."""
    try:
        payload = json.loads(raw_body)
    except (TypeError, ValueError, UnicodeDecodeError) as exc:
        raise MalformedEvent("Invalid JSON payload") from exc
    if not isinstance(payload, dict):
        raise MalformedEvent("Event payload must be a JSON object")

    event_id = payload.get("id")
    event_type = payload.get("type")
    if not isinstance(event_id, str) or not event_id.strip() or not isinstance(event_type, str) or not event_type.strip():
        raise MalformedEvent("Missing event.id or type")

    data = payload.get("data") or {}
    data_object = data.get("object") if isinstance(data, dict) else None
    if data_object is None:
        data_object = {}
    if not isinstance(data_object, dict):
        raise MalformedEvent("event.data.object must be an object")

    created = payload.get("created")
    return EventEnvelope(
        id=event_id.strip(),
        type=event_type.strip(),
        created=created if isinstance(created, int) else None,
        data_object=data_object,
        raw=payload,
    )


def _to_int(value: Any, default: int, what: str) -> int:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise MalformedEvent(f"{what} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise MalformedEvent(f"{what} must be a number") from exc
    if number < 0:
        raise MalformedEvent(f"{what} must not be negative")
    return int(round(number))


def _first(obj: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = obj.get(key)
        if value is not None:
            return value
    return None


def _list_items(value: Any) -> list[dict[str, Any]]:
    """Accept both a bare list and the provider's ``{"object": "list", "data": [...]}``."""
    if isinstance(value, dict):
        value = value.get("data")
    if not value:
        return []
    if not isinstance(value, list):
        raise MalformedEvent("line items must be a list")
    return [item for item in value if isinstance(item, dict)]


def _customer(obj: dict[str, Any]) -> tuple[str | None, str | None]:
    customer = _first(obj, "customer", "customer_id")
    if isinstance(customer, dict):
        customer = customer.get("id")
    details = obj.get("customer_details") or {}
    email = _first(obj, "customer_email", "email") or (details.get("email") if isinstance(details, dict) else None)
    return (str(customer) if customer else None, str(email) if email else None)


def _currency(obj: dict[str, Any]) -> str:
    return str(obj.get("currency") or "usd").lower()


def checkout_credits(obj: dict[str, Any]) -> int:
    """Sum of ``price.metadata.credits * quantity``; missing credits contribute 0."""
    total = 0
    for item in _list_items(obj.get("line_items")):
        price = item.get("price")
        if not isinstance(price, dict):
            price = {}
        metadata = price.get("metadata") or {}
        per_unit = _to_int(metadata.get("credits"), 0, "credits")
        quantity = _to_int(item.get("quantity"), 1, "quantity")
        total += per_unit * quantity
    return total


def invoice_credits(obj: dict[str, Any]) -> int:
    """Sum of ``lines[].metadata.credits_included`` (subscription baseline, often 0)."""
    total = 0
    for line in _list_items(obj.get("lines")):
        metadata = line.get("metadata") or {}
        total += _to_int(metadata.get("credits_included"), 0, "credits_included")
    return total


def normalize(envelope: EventEnvelope) -> NormalizedEvent:
    obj = envelope.data_object
    customer_id, customer_email = _customer(obj)

    if envelope.type == CHECKOUT_COMPLETED:
        return CanonicalPaymentEvent(
            event_id=envelope.id,
            event_type=envelope.type,
            kind=PaymentKind.ONE_OFF,
            amount_minor_units=_to_int(_first(obj, "amount_total", "amount_paid"), 0, "amount"),
            currency=_currency(obj),
            credits=checkout_credits(obj),
            customer_id=customer_id,
            customer_email=customer_email,
            raw_object=obj,
        )

    if envelope.type == INVOICE_PAID:
        return CanonicalPaymentEvent(
            event_id=envelope.id,
            event_type=envelope.type,
            kind=PaymentKind.SUBSCRIPTION,
            amount_minor_units=_to_int(_first(obj, "amount_paid", "amount_due"), 0, "amount"),
            currency=_currency(obj),
            credits=invoice_credits(obj),
            customer_id=customer_id,
            customer_email=customer_email,
            raw_object=obj,
        )

    if envelope.type in REFUND_EVENT_TYPES:
        refunded = _first(obj, "amount_refunded", "amount")
        return RefundEvent(
            event_id=envelope.id,
            event_type=envelope.type,
            refunded_amount=None if refunded is None else _to_int(refunded, 0, "amount_refunded"),
            currency=_currency(obj),
            customer_id=customer_id,
            customer_email=customer_email,
            raw_object=obj,
        )

    return IgnoredEvent(event_id=envelope.id, event_type=envelope.type)


def refund_credits(original_amount: int, original_credits: int, refunded_amount: int | None) -> int:
    """
    floor(original_credits * min(1, refunded / original)).
    A missing refunded amount means a full refund; a zero original amount counts as 1.
    """
    if original_credits <= 0:
        return 0
    denominator = original_amount if original_amount > 0 else 1
    refunded = denominator if refunded_amount is None else max(0, min(refunded_amount, denominator))
    return (original_credits * refunded) // denominator
