"""Process entrypoint: wires settings, gateway client, cache and store into the app.

Run with `uvicorn pesaflow.services.api.main:app`.
"""

from contextlib import asynccontextmanager

import redis.asyncio as redis
from fastapi import FastAPI

from pesaflow.common.config import settings
from pesaflow.common.db import Base, make_engine, make_session_factory
from pesaflow.common.logging import configure_logging
from pesaflow.common.startup import log_startup_config
from pesaflow.common.tracing import instrument_app, setup_tracing
from pesaflow.services.api.app import create_app
from pesaflow.services.checkout.registration import RegistrationCache
from pesaflow.services.checkout.service import CheckoutService
from pesaflow.services.gateway.client import GatewayClient
from pesaflow.services.reconciliation.service import ReconciliationService
from pesaflow.services.reconciliation.store import HttpRecordStore, SqlRecordStore

configure_logging()
setup_tracing(settings.service_name)
log_startup_config(settings.service_name)

config = settings.gateway_config()
gateway = GatewayClient(config)
rdb = redis.Redis.from_url(settings.redis_url, decode_responses=True) if settings.redis_url else None
registrations = RegistrationCache(rdb, seed={config.notification_url: settings.pesapal_ipn_id})

engine = None
if settings.record_store_backend == "http":
    store = HttpRecordStore(settings.record_store_save_url, settings.record_store_receipt_url)
else:
    engine = make_engine(settings.database_url)
    store = SqlRecordStore(make_session_factory(engine))

checkout = CheckoutService(config, gateway, registrations)
reconciliation = ReconciliationService(config, gateway, store)


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Ensure the record table exists and close network clients on shutdown."""

    if engine is not None:
        Base.metadata.create_all(engine)
    yield
    await gateway.aclose()
    if isinstance(store, HttpRecordStore):
        await store.aclose()
    if rdb is not None:
        await rdb.aclose()


app = create_app(checkout, reconciliation, settings.allowed_origins, lifespan=lifespan)
instrument_app(app)
