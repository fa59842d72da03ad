"""Process-wide cache of IPN registration ids, keyed by callback URL.

Population is single-flight per URL: concurrent first use by several
requests results in one list/register exchange with the gateway, and every
waiter receives the same id. Failures are not cached.
"""

import asyncio

from pesaflow.common.config import DeliveryMode
from pesaflow.common.logging import logger
from pesaflow.common.metrics import registration_cache_total
from pesaflow.services.gateway.client import GatewayClient
from pesaflow.services.gateway.schemas import AccessToken


class RegistrationCache:
    """Resolves and memoizes the gateway's IPN id for each callback URL.

    An optional async redis client acts as a shared tier so other processes
    reuse ids resolved here.
    """

    key_prefix = "pesaflow:ipn:"

    def __init__(self, redis_client=None, seed: dict[str, str] | None = None) -> None:
        self.redis = redis_client
        self._ids: dict[str, str] = {url: ipn_id for url, ipn_id in (seed or {}).items() if ipn_id}
        self._locks: dict[str, asyncio.Lock] = {}

    def get(self, callback_url: str) -> str | None:
        return self._ids.get(callback_url)

    def reset(self) -> None:
        self._ids.clear()
        self._locks.clear()

    async def resolve(
        self,
        client: GatewayClient,
        token: AccessToken,
        callback_url: str,
        delivery_mode: DeliveryMode = "GET",
    ) -> str:
        cached = self._ids.get(callback_url)
        if cached:
            registration_cache_total.labels(result="hit").inc()
            return cached

        lock = self._locks.setdefault(callback_url, asyncio.Lock())
        async with lock:
            cached = self._ids.get(callback_url)
            if cached:
                registration_cache_total.labels(result="hit").inc()
                return cached

            ipn_id = await self._read_shared(callback_url)
            if ipn_id:
                registration_cache_total.labels(result="shared").inc()
            else:
                ipn_id = await self._lookup_or_register(client, token, callback_url, delivery_mode)
                await self._write_shared(callback_url, ipn_id)
            self._ids[callback_url] = ipn_id
            return ipn_id

    async def _lookup_or_register(
        self,
        client: GatewayClient,
        token: AccessToken,
        callback_url: str,
        delivery_mode: DeliveryMode,
    ) -> str:
        logger.info("no cached IPN for url=%s, checking existing registrations", callback_url)
        for registration in await client.list_registrations(token):
            if registration.url == callback_url:
                registration_cache_total.labels(result="existing").inc()
                logger.info("reusing existing IPN ipn_id=%s", registration.ipn_id)
                return registration.ipn_id

        registration = await client.register(token, callback_url, delivery_mode)
        registration_cache_total.labels(result="registered").inc()
        logger.info(
            "registered new IPN ipn_id=%s url=%s; set PESAPAL_IPN_ID to skip lookups",
            registration.ipn_id,
            callback_url,
        )
        return registration.ipn_id

    async def _read_shared(self, callback_url: str) -> str | None:
        if self.redis is None:
            return None
        try:
            value = await self.redis.get(f"{self.key_prefix}{callback_url}")
        except Exception as exc:
            logger.warning("ipn_cache_read_failed: %s", exc)
            return None
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    async def _write_shared(self, callback_url: str, ipn_id: str) -> None:
        if self.redis is None:
            return
        try:
            await self.redis.set(f"{self.key_prefix}{callback_url}", ipn_id)
        except Exception as exc:
            logger.warning("ipn_cache_write_failed: %s", exc)
