"""Length/presence rules applied to outgoing order payloads."""

from pesaflow.services.gateway.schemas import OrderRequest


# The gateway rejects orders whose optional address codes exceed these lengths.
FIELD_BOUNDS: dict[str, int] = {
    "state": 3,
    "postal_code": 10,
    "zip_code": 10,
}


def clamp_field(value: str | None, limit: int) -> str:
    """Trimmed value if it fits within `limit`, else empty string."""

    trimmed = (value or "").strip()
    if len(trimmed) > limit:
        return ""
    return trimmed


def sanitize(order: OrderRequest) -> OrderRequest:
    """Return a copy of `order` with bounded address fields cleared when too long."""

    address = order.billing_address
    cleaned = {field: clamp_field(getattr(address, field), limit) for field, limit in FIELD_BOUNDS.items()}
    return order.model_copy(update={"billing_address": address.model_copy(update=cleaned)})
