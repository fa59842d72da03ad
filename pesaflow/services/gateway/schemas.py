"""Wire shapes exchanged with the hosted-payment gateway."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _VendorModel(BaseModel):
    """Gateway payloads carry extra fields we keep but do not interpret."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)


class AccessToken(_VendorModel):
    token: str
    expiry_date: str | None = Field(default=None, alias="expiryDate")


class NotificationRegistration(_VendorModel):
    """One IPN registration: the id the gateway uses to push notifications to `url`."""

    ipn_id: str
    url: str
    created_date: str | None = None
    ipn_notification_type: str | None = None
    ipn_status: int | str | None = None


class BillingAddress(BaseModel):
    phone_number: str
    email_address: str
    country_code: str
    first_name: str
    middle_name: str = ""
    last_name: str
    line_1: str = ""
    line_2: str = ""
    city: str = ""
    state: str | None = ""
    postal_code: str | None = ""
    zip_code: str | None = ""


class OrderRequest(BaseModel):
    """Order body for `SubmitOrderRequest`; `id` is the merchant reference."""

    id: str = Field(min_length=1, max_length=50)
    currency: str = Field(min_length=3, max_length=3)
    amount: float = Field(gt=0, allow_inf_nan=False)
    description: str
    callback_url: str
    notification_id: str
    language: str = "EN"
    terms_and_conditions_id: str | None = None
    billing_address: BillingAddress

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class OrderResponse(_VendorModel):
    order_tracking_id: str | None = None
    merchant_reference: str | None = None
    redirect_url: str | None = None
    error: Any = None
    message: str | None = None
    status: int | str | None = None


class TransactionStatus(_VendorModel):
    """Authoritative settlement record for one tracking id."""

    order_tracking_id: str = ""
    merchant_reference: str | None = None
    status_code: int | None = None
    payment_status_description: str | None = None
    payment_method: str | None = None
    confirmation_code: str | None = None
    amount: float | None = None
    currency: str | None = None
    payment_account: str | None = None
    payment_status_code: str | None = None
    created_date: str | None = None
    description: str | None = None
    message: str | None = None
    call_back_url: str | None = None
    error: Any = None
