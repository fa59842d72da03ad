"""HTTP routes for checkout, IPN, payer return redirect and receipts.

Routes only extract fields; the work happens in `CheckoutService` and
`ReconciliationService`. Tagged errors are turned into responses by one
exception handler, except on the IPN route whose acknowledgment body is
fixed by the gateway.
"""

from time import perf_counter
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse

from pesaflow.common.config import settings
from pesaflow.common.errors import ErrorKind, PaymentError
from pesaflow.common.logging import logger, trace_id_ctx
from pesaflow.common.metrics import http_request_duration_seconds, http_requests_total, metrics_response
from pesaflow.services.checkout.schemas import DonorInfo
from pesaflow.services.checkout.service import CheckoutService
from pesaflow.services.reconciliation.service import ReconciliationService

CREATE_ORDER_PATH = "/api/pesapal/create-order"
IPN_PATH = "/api/pesapal/ipn"
VERIFY_PAYMENT_PATH = "/api/pesapal/verify-payment"

# Route -> error title shown to the frontend for non-validation failures.
ERROR_TITLES = {
    CREATE_ORDER_PATH: "Payment initialization failed",
    VERIFY_PAYMENT_PATH: "Payment verification failed",
}

FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


def status_for(exc: PaymentError) -> int:
    """HTTP status for a tagged payment error."""

    if exc.kind is ErrorKind.VALIDATION:
        return 400
    if exc.kind is ErrorKind.STORE:
        return 500
    if exc.kind is ErrorKind.UPSTREAM and exc.transient:
        return 504
    return 502


def error_title(exc: PaymentError, path: str) -> str:
    if exc.kind is ErrorKind.VALIDATION:
        return "Missing required fields" if getattr(exc, "missing_fields", None) else "Invalid request"
    return ERROR_TITLES.get(path, "Server error")


def error_response(exc: PaymentError, title: str) -> JSONResponse:
    return JSONResponse(status_code=status_for(exc), content={"error": title, **exc.to_dict()})


def _first(params, *names: str) -> str | None:
    for name in names:
        value = params.get(name)
        if value:
            return str(value)
    return None


async def _notification_fields(request: Request) -> dict:
    """Query parameters merged with a POST body, JSON or form-encoded."""

    fields = dict(request.query_params)
    if request.method != "POST":
        return fields
    content_type = request.headers.get("content-type", "").lower()
    if content_type.startswith(FORM_CONTENT_TYPES):
        body = dict(await request.form())
    else:
        try:
            body = await request.json()
        except ValueError:
            body = None
    if isinstance(body, dict):
        fields.update(body)
    return fields


def create_app(
    checkout: CheckoutService,
    reconciliation: ReconciliationService,
    allowed_origins: list[str] | None = None,
    lifespan=None,
) -> FastAPI:
    app = FastAPI(title="PesaFlow Checkout", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins or [],
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        """Record request count and latency, and bind a trace id for logs."""

        trace_id_ctx.set(request.headers.get("x-correlation-id") or str(uuid4()))
        start = perf_counter()
        route = request.url.path
        method = request.method
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            route_obj = request.scope.get("route")
            if route_obj is not None and getattr(route_obj, "path", None):
                route = route_obj.path
            return response
        finally:
            elapsed = max(0.0, perf_counter() - start)
            http_request_duration_seconds.labels(
                service=settings.service_name,
                route=route,
                method=method,
            ).observe(elapsed)
            http_requests_total.labels(
                service=settings.service_name,
                route=route,
                method=method,
                status_code=str(status_code),
            ).inc()

    @app.exception_handler(PaymentError)
    async def payment_error_handler(request: Request, exc: PaymentError):
        if exc.kind is not ErrorKind.VALIDATION:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return error_response(exc, error_title(exc, request.url.path))

    @app.post(CREATE_ORDER_PATH)
    async def create_order(donor: DonorInfo):
        """Start a hosted-page checkout and return the payer redirect."""

        result = await checkout.create_order(donor)
        return {"success": True, **result.model_dump()}

    @app.api_route(IPN_PATH, methods=["GET", "POST"])
    async def ipn(request: Request):
        """Gateway push notification; the acknowledgment echoes the ids it named."""

        fields = await _notification_fields(request)
        tracking_id = _first(fields, "OrderTrackingId", "orderTrackingId")
        merchant_reference = _first(fields, "OrderMerchantReference", "orderMerchantReference")
        ack = {
            "orderNotificationType": _first(fields, "OrderNotificationType") or "IPNCHANGE",
            "orderTrackingId": tracking_id or "",
            "orderMerchantReference": merchant_reference or "",
        }
        if not tracking_id:
            return JSONResponse(
                status_code=400,
                content={**ack, "status": 400, "error": "Missing OrderTrackingId"},
            )

        try:
            status = await reconciliation.reconcile(tracking_id, merchant_reference, source="ipn")
        except PaymentError as exc:
            # Non-200 lets the gateway re-deliver the notification later.
            return JSONResponse(
                status_code=500,
                content={**ack, "status": 500, "error": "IPN processing failed", **exc.to_dict()},
            )
        return {
            **ack,
            "status": 200,
            "message": "IPN processed successfully",
            "payment_status": status.payment_status_description,
        }

    @app.get(VERIFY_PAYMENT_PATH)
    async def verify_payment(request: Request):
        """Payer's return from the hosted page: reconcile, then send them to the receipt."""

        params = request.query_params
        tracking_id = _first(params, "orderTrackingId", "OrderTrackingId")
        merchant_reference = _first(params, "OrderMerchantReference", "merchantReference")
        if not tracking_id:
            return JSONResponse(
                status_code=400,
                content={"error": "Missing orderTrackingId", "message": "Order tracking ID is required"},
            )
        status = await reconciliation.reconcile(tracking_id, merchant_reference, source="redirect")
        return RedirectResponse(
            reconciliation.receipt_target(tracking_id, merchant_reference, status),
            status_code=302,
        )

    @app.get("/api/receipt/{receipt_id}")
    async def receipt(receipt_id: str):
        """Committed record by merchant reference or tracking id."""

        record = await reconciliation.receipt(receipt_id)
        if record is None:
            return JSONResponse(status_code=404, content={"error": "Receipt not found"})
        return record

    @app.get("/metrics")
    def metrics():
        """Prometheus scrape endpoint."""

        return metrics_response()

    @app.get("/health")
    def health():
        """Container health probe endpoint."""

        return {"ok": True}

    return app
