"""Reconciliation of gateway-reported transaction outcomes.

The IPN push and the payer's return redirect both land here and run the same
sequence: authenticate, fetch the authoritative status, commit it to the
record store keyed by tracking id. The two paths are unordered and may both
fire; the store write is an upsert so double delivery leaves one record.
"""

from datetime import datetime, timezone
from urllib.parse import quote

from pesaflow.common.config import GatewayConfig
from pesaflow.common.errors import PaymentError, ValidationError
from pesaflow.common.logging import logger, merchant_reference_ctx, tracking_id_ctx
from pesaflow.common.metrics import reconciliations_total
from pesaflow.services.gateway.client import GatewayClient
from pesaflow.services.gateway.schemas import TransactionStatus
from pesaflow.services.reconciliation.store import RecordStore, StoredTransaction


class ReconciliationService:
    """Fetches and commits transaction status for either delivery path."""

    def __init__(self, config: GatewayConfig, client: GatewayClient, store: RecordStore) -> None:
        self.config = config
        self.client = client
        self.store = store

    async def reconcile(
        self,
        tracking_id: str,
        merchant_reference_hint: str | None = None,
        source: str = "ipn",
    ) -> TransactionStatus:
        tracking_id = (tracking_id or "").strip()
        if not tracking_id:
            raise ValidationError("missing order tracking id", missing_fields=["OrderTrackingId"])
        tracking_id_ctx.set(tracking_id)
        if merchant_reference_hint:
            merchant_reference_ctx.set(merchant_reference_hint)

        try:
            token = await self.client.authenticate(self.config.credential)
            status = await self.client.fetch_status(token, tracking_id)
            entry = StoredTransaction(
                order_tracking_id=tracking_id,
                merchant_reference=status.merchant_reference or merchant_reference_hint,
                source=source,
                committed_at=datetime.now(timezone.utc),
                status=status,
            )
            await self.store.commit(entry)
        except PaymentError as exc:
            reconciliations_total.labels(source=source, outcome=exc.kind.value).inc()
            logger.error("reconciliation failed source=%s error=%s", source, exc)
            raise

        reconciliations_total.labels(source=source, outcome="committed").inc()
        logger.info(
            "transaction status committed source=%s status=%s amount=%s confirmation_code=%s",
            source,
            status.payment_status_description,
            status.amount,
            status.confirmation_code,
        )
        return status

    def receipt_target(
        self,
        tracking_id: str,
        merchant_reference_hint: str | None = None,
        status: TransactionStatus | None = None,
    ) -> str:
        """Human-facing receipt view, addressed by merchant reference when known."""

        key = merchant_reference_hint or (status.merchant_reference if status else None) or tracking_id
        return f"{self.config.receipt_base_url.rstrip('/')}/{quote(key, safe='')}"

    async def receipt(self, key: str) -> dict | None:
        return await self.store.get(key)
