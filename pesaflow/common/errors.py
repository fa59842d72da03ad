"""Error taxonomy shared by the gateway client, checkout and reconciliation.

Every failure is tagged with an `ErrorKind` and keeps the vendor's own message
(when there is one) as diagnostic payload. The API layer maps kinds to HTTP
status codes in one place.
"""

from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    AUTH = "auth"
    UPSTREAM = "upstream"
    STORE = "store"


class PaymentError(Exception):
    """Base class for all checkout/reconciliation failures."""

    kind: ErrorKind = ErrorKind.UPSTREAM

    def __init__(
        self,
        message: str,
        *,
        vendor_message: str | None = None,
        transient: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.vendor_message = vendor_message
        self.transient = transient

    def to_dict(self) -> dict:
        payload = {"kind": self.kind.value, "message": self.message}
        if self.vendor_message:
            payload["vendor_message"] = self.vendor_message
        return payload


class ValidationError(PaymentError):
    """Caller input is missing or malformed; never retried."""

    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, *, missing_fields: list[str] | None = None) -> None:
        super().__init__(message)
        self.missing_fields = missing_fields or []

    def to_dict(self) -> dict:
        payload = super().to_dict()
        if self.missing_fields:
            payload["missing_fields"] = self.missing_fields
        return payload


class AuthError(PaymentError):
    """Token could not be obtained with the configured credential."""

    kind = ErrorKind.AUTH


class UpstreamError(PaymentError):
    """Gateway returned a non-success response or omitted an expected field."""

    kind = ErrorKind.UPSTREAM


class StoreError(PaymentError):
    """Record store write or read failed; the triggering delivery may be retried."""

    kind = ErrorKind.STORE
