"""Async client for the hosted-payment gateway's five remote operations.

Each operation is a single request/response exchange. The client keeps no
state between calls: token reuse, registration caching and order semantics
live in the checkout and reconciliation services.
"""

import asyncio
import time
from typing import Any, Callable

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from pesaflow.common.config import Credential, DeliveryMode, GatewayConfig
from pesaflow.common.errors import AuthError, UpstreamError
from pesaflow.common.logging import logger
from pesaflow.common.metrics import gateway_latency_seconds, gateway_requests_total, gateway_retries_total
from pesaflow.services.gateway.schemas import (
    AccessToken,
    NotificationRegistration,
    OrderRequest,
    OrderResponse,
    TransactionStatus,
)


AUTH_PATH = "/api/Auth/RequestToken"
IPN_LIST_PATH = "/api/URLSetup/GetIpnList"
IPN_REGISTER_PATH = "/api/URLSetup/RegisterIPN"
SUBMIT_ORDER_PATH = "/api/Transactions/SubmitOrderRequest"
STATUS_PATH = "/api/Transactions/GetTransactionStatus"


def vendor_error(data: Any) -> str | None:
    """Return the vendor's error text when a body reports one, else None.

    Success bodies may still carry an `error` object whose members are all null.
    """

    if not isinstance(data, dict):
        return None
    error = data.get("error")
    if not error:
        return None
    if isinstance(error, dict):
        if not any(error.get(key) for key in ("error_type", "code", "message")):
            return None
        return str(error.get("message") or error.get("code") or error.get("error_type"))
    return str(error)


def has_outcome(data: Any) -> bool:
    """A status body that names a settlement outcome, whatever its `error` says."""

    return isinstance(data, dict) and (
        data.get("status_code") is not None or bool(data.get("payment_status_description"))
    )


def _parse(model: type[BaseModel], data: Any, operation: str):
    """Validate a gateway body into `model`; a shape mismatch is an upstream failure."""

    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        logger.error("gateway %s returned an unexpected body: %s", operation, exc)
        raise UpstreamError(
            f"gateway {operation} returned an unexpected body",
            vendor_message=_vendor_message(data),
        ) from exc


def _vendor_message(data: Any) -> str | None:
    message = vendor_error(data)
    if message:
        return message
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return None


class GatewayClient:
    """Request builder/executor bound to one gateway environment."""

    def __init__(
        self,
        config: GatewayConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self.base_url = config.base_url
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=config.timeout_seconds,
            transport=transport,
            headers={"Accept": "application/json", "Content-Type": "application/json"},
        )

    async def __aenter__(self) -> "GatewayClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _call(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        token: str | None = None,
        json: dict | None = None,
        params: dict | None = None,
        retry: bool = True,
        accept_body: Callable[[Any], bool] | None = None,
    ) -> Any:
        """Run one exchange, retrying transport failures with exponential backoff.

        Only connection-level failures are retried; an HTTP response of any
        status is final. A 200 body carrying a vendor error is rejected unless
        `accept_body` says it is still a usable answer.
        """

        headers = {"Authorization": f"Bearer {token}"} if token else None
        attempts = 1 + (self.config.max_retries if retry else 0)
        for attempt in range(1, attempts + 1):
            start = time.perf_counter()
            try:
                response = await self._http.request(method, path, headers=headers, json=json, params=params)
            except httpx.TransportError as exc:
                gateway_latency_seconds.labels(operation=operation).observe(time.perf_counter() - start)
                timed_out = isinstance(exc, httpx.TimeoutException)
                if attempt == attempts:
                    gateway_requests_total.labels(operation=operation, outcome="transport_error").inc()
                    logger.error("gateway %s failed after %s attempt(s): %s", operation, attempt, exc)
                    reason = "timed out" if timed_out else "unreachable"
                    raise UpstreamError(
                        f"gateway {operation} {reason}",
                        vendor_message=str(exc) or None,
                        transient=True,
                    ) from exc
                backoff_seconds = self.config.backoff_seconds * 2 ** (attempt - 1)
                gateway_retries_total.labels(operation=operation).inc()
                logger.warning(
                    "gateway %s transport error attempt=%s backoff_s=%s error=%s",
                    operation,
                    attempt,
                    backoff_seconds,
                    exc,
                )
                await asyncio.sleep(backoff_seconds)
                continue

            gateway_latency_seconds.labels(operation=operation).observe(time.perf_counter() - start)
            try:
                data = response.json()
            except ValueError:
                data = None
            error = vendor_error(data)
            if error and not response.is_error and accept_body is not None and accept_body(data):
                logger.warning("gateway %s ok with vendor error=%s", operation, error)
                error = None
            if response.is_error or data is None or error:
                gateway_requests_total.labels(operation=operation, outcome="error").inc()
                message = _vendor_message(data) or response.text or None
                logger.error(
                    "gateway %s rejected status=%s message=%s",
                    operation,
                    response.status_code,
                    message,
                )
                raise UpstreamError(
                    f"gateway {operation} failed with HTTP {response.status_code}",
                    vendor_message=message,
                    transient=response.status_code >= 500,
                )
            gateway_requests_total.labels(operation=operation, outcome="ok").inc()
            logger.info("gateway %s ok status=%s", operation, response.status_code)
            return data
        raise AssertionError("unreachable")

    async def authenticate(self, credential: Credential) -> AccessToken:
        """Mint a bearer token; any failure is an `AuthError`."""

        try:
            data = await self._call(
                "authenticate",
                "POST",
                AUTH_PATH,
                json={
                    "consumer_key": credential.consumer_key,
                    "consumer_secret": credential.consumer_secret,
                },
            )
        except UpstreamError as exc:
            raise AuthError(
                "failed to get access token",
                vendor_message=exc.vendor_message,
                transient=exc.transient,
            ) from exc
        if not isinstance(data, dict) or not data.get("token"):
            raise AuthError("failed to get access token", vendor_message=_vendor_message(data))
        return AccessToken.model_validate(data)

    async def list_registrations(self, token: AccessToken) -> list[NotificationRegistration]:
        data = await self._call("list_registrations", "GET", IPN_LIST_PATH, token=token.token)
        if not isinstance(data, list):
            raise UpstreamError("gateway list_registrations returned no list", vendor_message=_vendor_message(data))
        return [_parse(NotificationRegistration, item, "list_registrations") for item in data]

    async def register(
        self,
        token: AccessToken,
        callback_url: str,
        delivery_mode: DeliveryMode = "GET",
    ) -> NotificationRegistration:
        """Create an IPN registration. Not retried: a retry could register twice."""

        data = await self._call(
            "register",
            "POST",
            IPN_REGISTER_PATH,
            token=token.token,
            json={"ipn_notification_type": delivery_mode, "url": callback_url},
            retry=False,
        )
        if not isinstance(data, dict) or not data.get("ipn_id"):
            raise UpstreamError("gateway register returned no ipn_id", vendor_message=_vendor_message(data))
        data.setdefault("url", callback_url)
        return _parse(NotificationRegistration, data, "register")

    async def submit_order(self, token: AccessToken, order: OrderRequest) -> OrderResponse:
        """Submit an order; a missing redirect URL is a failed submission.

        Retries resend the identical body, so the merchant reference (the
        gateway's idempotency key) is preserved.
        """

        data = await self._call(
            "submit_order",
            "POST",
            SUBMIT_ORDER_PATH,
            token=token.token,
            json=order.to_wire(),
        )
        if not isinstance(data, dict):
            raise UpstreamError("failed to create payment order", vendor_message=_vendor_message(data))
        response = _parse(OrderResponse, data, "submit_order")
        if not response.redirect_url:
            raise UpstreamError(
                "failed to create payment order",
                vendor_message=_vendor_message(data),
            )
        return response

    async def fetch_status(self, token: AccessToken, tracking_id: str) -> TransactionStatus:
        data = await self._call(
            "fetch_status",
            "GET",
            STATUS_PATH,
            token=token.token,
            params={"orderTrackingId": tracking_id},
            accept_body=has_outcome,
        )
        if not isinstance(data, dict):
            raise UpstreamError("gateway fetch_status returned no status object", vendor_message=_vendor_message(data))
        status = _parse(TransactionStatus, data, "fetch_status")
        if not status.order_tracking_id:
            status.order_tracking_id = tracking_id
        return status
