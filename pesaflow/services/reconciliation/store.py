"""Record store backends for reconciled transactions.

Both backends write replace-or-insert keyed on the tracking id, so the IPN
and the return redirect may each commit the same status without creating a
second record. Every failure surfaces as `StoreError`.
"""

import asyncio
from datetime import datetime
from typing import Any, Protocol

import httpx
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from pesaflow.common.errors import StoreError
from pesaflow.common.logging import logger
from pesaflow.services.gateway.schemas import TransactionStatus
from pesaflow.services.reconciliation.models import TransactionRecord


class StoredTransaction(BaseModel):
    """One status commit: the authoritative status plus when and how it arrived."""

    order_tracking_id: str
    merchant_reference: str | None = None
    source: str
    committed_at: datetime
    status: TransactionStatus

    def to_payload(self) -> dict[str, Any]:
        """Flat JSON shape used by the remote receipt backend."""

        return {
            **self.status.model_dump(mode="json"),
            "timestamp": self.committed_at.isoformat(),
            "orderTrackingId": self.order_tracking_id,
            "merchantReference": self.merchant_reference,
            "source": self.source,
        }


class RecordStore(Protocol):
    async def commit(self, entry: StoredTransaction) -> None: ...

    async def get(self, key: str) -> dict | None: ...


class SqlRecordStore:
    """SQLAlchemy-backed store; `merge` on the primary key gives upsert semantics."""

    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory

    async def commit(self, entry: StoredTransaction) -> None:
        await asyncio.to_thread(self._commit, entry)

    async def get(self, key: str) -> dict | None:
        return await asyncio.to_thread(self._get, key)

    def _commit(self, entry: StoredTransaction) -> None:
        status = entry.status
        # A concurrent first insert for the same tracking id loses the race with
        # an IntegrityError; the second pass then sees the row and updates it.
        for attempt in (1, 2):
            try:
                with self.session_factory() as db:
                    db.merge(
                        TransactionRecord(
                            order_tracking_id=entry.order_tracking_id,
                            merchant_reference=entry.merchant_reference,
                            status_code=status.status_code,
                            payment_status_description=status.payment_status_description,
                            payment_method=status.payment_method,
                            confirmation_code=status.confirmation_code,
                            payment_account=status.payment_account,
                            amount=status.amount,
                            currency=status.currency,
                            source=entry.source,
                            payload=status.model_dump(mode="json"),
                            committed_at=entry.committed_at,
                        )
                    )
                    db.commit()
                    return
            except IntegrityError as exc:
                if attempt == 2:
                    raise StoreError("failed to commit transaction record", vendor_message=str(exc)) from exc
                logger.warning("concurrent record insert, retrying as update tracking_id=%s", entry.order_tracking_id)
            except SQLAlchemyError as exc:
                raise StoreError(
                    "failed to commit transaction record",
                    vendor_message=str(exc),
                    transient=True,
                ) from exc

    def _get(self, key: str) -> dict | None:
        try:
            with self.session_factory() as db:
                record = db.execute(
                    select(TransactionRecord)
                    .where(TransactionRecord.merchant_reference == key)
                    .order_by(TransactionRecord.committed_at.desc())
                    .limit(1)
                ).scalar_one_or_none()
                if record is None:
                    record = db.get(TransactionRecord, key)
                return record.to_dict() if record else None
        except SQLAlchemyError as exc:
            raise StoreError("failed to read transaction record", vendor_message=str(exc)) from exc


class HttpRecordStore:
    """Remote receipt backend reached over HTTP (save endpoint + receipt lookup).

    The remote side must upsert on `orderTrackingId`.
    """

    def __init__(
        self,
        save_url: str,
        receipt_url: str,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.save_url = save_url
        self.receipt_url = receipt_url
        self._http = httpx.AsyncClient(timeout=timeout_seconds, transport=transport)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def commit(self, entry: StoredTransaction) -> None:
        try:
            response = await self._http.post(self.save_url, json=entry.to_payload())
        except httpx.HTTPError as exc:
            raise StoreError("record store unreachable", vendor_message=str(exc), transient=True) from exc
        if response.is_error:
            raise StoreError(
                f"record store rejected commit with HTTP {response.status_code}",
                vendor_message=response.text or None,
                transient=response.status_code >= 500,
            )

    async def get(self, key: str) -> dict | None:
        try:
            response = await self._http.get(self.receipt_url, params={"id": key})
        except httpx.HTTPError as exc:
            raise StoreError("record store unreachable", vendor_message=str(exc), transient=True) from exc
        if response.status_code == 404:
            return None
        if response.is_error:
            raise StoreError(
                f"record store lookup failed with HTTP {response.status_code}",
                vendor_message=response.text or None,
            )
        try:
            record = response.json()
        except ValueError:
            record = None
        if not isinstance(record, dict):
            raise StoreError("record store returned a malformed receipt", vendor_message=response.text or None)
        return record
