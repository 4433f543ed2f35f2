from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError
from typing import Any, Dict, Literal, Optional, Union

from ..errors import ValidationError

PAYMENT_UPDATED = "payment.updated"


class WebhookEventBase(BaseModel):
    type: str
    event_id: Optional[str] = None  # Square's envelope event_id, when sent
    payload: Dict[str, Any] = Field(default_factory=dict)  # the full body as received


class PaymentUpdatedEvent(WebhookEventBase):
    """Payment state changed; `id` is the payment link id recorded at booking time."""
    type: Literal["payment.updated"] = PAYMENT_UPDATED
    id: str = Field(..., min_length=1)


class UnhandledEvent(WebhookEventBase):
    """Any other event kind; passed to subscribers untouched."""
    id: Optional[str] = None


WebhookEvent = Union[PaymentUpdatedEvent, UnhandledEvent]


class WebhookAck(BaseModel):
    ok: bool
    error: Optional[str] = None


def correlation_id_of(body: Dict[str, Any]) -> Optional[str]:
    """Envelope `id`, falling back to Square's `data.id`."""
    value = body.get("id")
    if not value:
        data = body.get("data")
        if isinstance(data, dict):
            value = data.get("id")
    return str(value) if value else None


def parse_event(body: Dict[str, Any]) -> WebhookEvent:
    """Turn a verified webhook body into one of the known event variants."""
    if not isinstance(body, dict):
        raise ValidationError("Webhook body must be a JSON object")

    event_type = body.get("type")
    if not event_type or not isinstance(event_type, str):
        raise ValidationError("Webhook body is missing 'type'")

    correlation_id = correlation_id_of(body)
    event_id = body.get("event_id")
    event_id = str(event_id) if event_id is not None else None

    try:
        if event_type == PAYMENT_UPDATED:
            if not correlation_id:
                raise ValidationError("payment.updated event is missing 'id'")
            return PaymentUpdatedEvent(id=correlation_id, event_id=event_id, payload=body)

        return UnhandledEvent(type=event_type, id=correlation_id, event_id=event_id, payload=body)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid {event_type} event: {e.error_count()} field error(s)")
