"""Shared fixtures: deterministic config, an in-memory gateway double, SQLite store."""

from collections import Counter

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from pesaflow.common.config import Credential, GatewayConfig
from pesaflow.common.db import Base, make_session_factory
from pesaflow.common.errors import AuthError, UpstreamError
from pesaflow.services.gateway.schemas import (
    AccessToken,
    NotificationRegistration,
    OrderResponse,
    TransactionStatus,
)
from pesaflow.services.reconciliation.store import SqlRecordStore


@pytest.fixture
def config() -> GatewayConfig:
    return GatewayConfig(
        environment="sandbox",
        credential=Credential(consumer_key="key", consumer_secret="secret"),
        callback_url="https://donate.example.org/api/pesapal/verify-payment",
        notification_url="https://donate.example.org/api/pesapal/ipn",
        receipt_base_url="https://www.example.org/receipt",
        max_retries=1,
        backoff_seconds=0.0,
    )


class FakeGateway:
    """Stands in for `GatewayClient`, counting calls per operation."""

    def __init__(self, registrations=None, fail_auth=False, redirect_url=None, status=None) -> None:
        self.calls: Counter = Counter()
        self.registrations = list(registrations or [])
        self.fail_auth = fail_auth
        if redirect_url is None:
            redirect_url = "https://cybqa.pesapal.com/pesapaliframe/PesapalIframe3/Index?OrderTrackingId=trk-1"
        self.redirect_url = redirect_url
        self.status = status
        self.submitted = []

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())

    async def authenticate(self, credential):
        self.calls["authenticate"] += 1
        if self.fail_auth:
            raise AuthError("failed to get access token", vendor_message="invalid_consumer_key_or_secret_provided")
        return AccessToken(token="tok", expiry_date="2030-01-01T00:00:00Z")

    async def list_registrations(self, token):
        self.calls["list_registrations"] += 1
        return list(self.registrations)

    async def register(self, token, callback_url, delivery_mode="GET"):
        self.calls["register"] += 1
        registration = NotificationRegistration(
            ipn_id=f"ipn-{self.calls['register']}",
            url=callback_url,
            ipn_notification_type=delivery_mode,
        )
        self.registrations.append(registration)
        return registration

    async def submit_order(self, token, order):
        self.calls["submit_order"] += 1
        self.submitted.append(order)
        if not self.redirect_url:
            raise UpstreamError("failed to create payment order", vendor_message="amount is invalid")
        return OrderResponse(
            order_tracking_id="trk-1",
            merchant_reference=order.id,
            redirect_url=self.redirect_url,
        )

    async def fetch_status(self, token, tracking_id):
        self.calls["fetch_status"] += 1
        if self.status is not None:
            return self.status.model_copy(update={"order_tracking_id": tracking_id})
        return TransactionStatus(
            order_tracking_id=tracking_id,
            merchant_reference="KLB-1-abc",
            status_code=1,
            payment_status_description="Completed",
            payment_method="MpesaKE",
            confirmation_code="QK12AB34",
            amount=1000.0,
            currency="KES",
        )


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def sql_store(session_factory) -> SqlRecordStore:
    return SqlRecordStore(session_factory)
