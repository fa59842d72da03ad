"""Checkout orchestration.

Drives the dependent call sequence for one order: token, IPN registration
id, order submission. Nothing is persisted here; the caller receives the
hosted-page redirect plus the identifiers needed to reconcile later.
"""

import math
import re

from pydantic import ValidationError as PydanticValidationError

from pesaflow.common.config import GatewayConfig
from pesaflow.common.errors import UpstreamError, ValidationError
from pesaflow.common.logging import logger, merchant_reference_ctx, tracking_id_ctx
from pesaflow.common.metrics import orders_total
from pesaflow.services.checkout.references import new_merchant_reference
from pesaflow.services.checkout.registration import RegistrationCache
from pesaflow.services.checkout.sanitizer import sanitize
from pesaflow.services.checkout.schemas import CreateOrderResult, DonorInfo
from pesaflow.services.gateway.client import GatewayClient
from pesaflow.services.gateway.schemas import BillingAddress, OrderRequest


# Attribute name -> field name as the frontend sends it.
REQUIRED_FIELDS: dict[str, str] = {
    "amount": "amount",
    "first_name": "firstName",
    "last_name": "lastName",
    "email": "email",
    "phone": "phone",
}

_WHITESPACE = re.compile(r"\s+")


def _present(value) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def parse_amount(value) -> float:
    """Parse a donor amount; must be a finite positive number."""

    try:
        amount = float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"invalid amount: {value!r}") from exc
    if not math.isfinite(amount) or amount <= 0:
        raise ValidationError(f"amount must be a positive number, got {value!r}")
    return amount


_CURRENCY = re.compile(r"[A-Za-z]{3}")


class CheckoutService:
    """Creates hosted-page orders for donors."""

    def __init__(
        self,
        config: GatewayConfig,
        client: GatewayClient,
        registrations: RegistrationCache,
    ) -> None:
        self.config = config
        self.client = client
        self.registrations = registrations

    def validate(self, donor: DonorInfo) -> float:
        """Reject incomplete input before any gateway call; return the parsed amount."""

        missing = [name for attr, name in REQUIRED_FIELDS.items() if not _present(getattr(donor, attr))]
        if missing:
            raise ValidationError(
                f"missing required fields: {', '.join(missing)}",
                missing_fields=missing,
            )
        if donor.currency and not _CURRENCY.fullmatch(donor.currency.strip()):
            raise ValidationError(f"currency must be a 3-letter code, got {donor.currency!r}")
        return parse_amount(donor.amount)

    def build_order(
        self,
        donor: DonorInfo,
        amount: float,
        merchant_reference: str,
        notification_id: str = "",
    ) -> OrderRequest:
        """Order body from donor input and deployment defaults.

        Any shape the gateway schema refuses is caller input, so it surfaces as
        our `ValidationError`.
        """

        config = self.config
        try:
            return OrderRequest(
                id=merchant_reference,
                currency=(donor.currency or config.default_currency).strip().upper(),
                amount=amount,
                description=donor.description or config.default_description,
                callback_url=config.callback_url,
                notification_id=notification_id,
                language=donor.language or config.default_language,
                billing_address=BillingAddress(
                    email_address=donor.email.strip(),
                    phone_number=_WHITESPACE.sub("", donor.phone),
                    country_code=donor.country_code or config.default_country_code,
                    first_name=donor.first_name.strip(),
                    middle_name=donor.middle_name or "",
                    last_name=donor.last_name.strip(),
                    city=donor.city or config.default_city,
                ),
            )
        except PydanticValidationError as exc:
            fields = sorted({".".join(str(part) for part in error["loc"]) for error in exc.errors()})
            raise ValidationError(f"invalid order fields: {', '.join(fields)}") from exc

    async def create_order(self, donor: DonorInfo) -> CreateOrderResult:
        """Run the full checkout sequence; each step requires the previous one.

        The order body is built before the first gateway call so malformed input
        never reaches the network.
        """

        amount = self.validate(donor)
        merchant_reference = new_merchant_reference(self.config.merchant_reference_prefix)
        merchant_reference_ctx.set(merchant_reference)
        draft = self.build_order(donor, amount, merchant_reference)

        logger.info("getting access token")
        token = await self.client.authenticate(self.config.credential)

        ipn_id = await self.registrations.resolve(
            self.client,
            token,
            self.config.notification_url,
            self.config.notification_type,
        )

        order = sanitize(draft.model_copy(update={"notification_id": ipn_id}))
        logger.info("submitting order amount=%s currency=%s", order.amount, order.currency)
        try:
            response = await self.client.submit_order(token, order)
        except UpstreamError:
            orders_total.labels(outcome="failed").inc()
            raise

        if not response.order_tracking_id:
            orders_total.labels(outcome="failed").inc()
            raise UpstreamError("gateway returned no order tracking id", vendor_message=response.message)

        tracking_id_ctx.set(response.order_tracking_id)
        orders_total.labels(outcome="created").inc()
        logger.info("order created redirect_url=%s", response.redirect_url)
        return CreateOrderResult(
            redirect_url=response.redirect_url,
            order_tracking_id=response.order_tracking_id,
            merchant_reference=response.merchant_reference or merchant_reference,
        )
