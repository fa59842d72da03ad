"""API request/response schemas for checkout endpoints."""

from pydantic import BaseModel, ConfigDict, Field


class DonorInfo(BaseModel):
    """Create-order payload accepted from the donation frontend.

    Presence of required fields is checked by `CheckoutService` so that the
    error lists every missing field at once.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    amount: float | str | None = None
    first_name: str | None = Field(default=None, alias="firstName")
    middle_name: str | None = Field(default=None, alias="middleName")
    last_name: str | None = Field(default=None, alias="lastName")
    email: str | None = None
    phone: str | None = None
    description: str | None = None
    currency: str | None = None
    language: str | None = None
    country_code: str | None = Field(default=None, alias="countryCode")
    city: str | None = None


class CreateOrderResult(BaseModel):
    """What the payer's browser needs to continue on the hosted page."""

    redirect_url: str
    order_tracking_id: str
    merchant_reference: str
