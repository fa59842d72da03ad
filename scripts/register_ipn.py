"""Resolve (or register) the IPN id for this deployment and print it.

Save the printed id as PESAPAL_IPN_ID so running services skip the lookup.
"""

import argparse
import asyncio

from pesaflow.common.config import settings
from pesaflow.services.checkout.registration import RegistrationCache
from pesaflow.services.gateway.client import GatewayClient


async def resolve(url: str, notification_type: str) -> str:
    """Authenticate, then list-or-register the IPN for `url`."""

    config = settings.gateway_config()
    async with GatewayClient(config) as client:
        token = await client.authenticate(config.credential)
        return await RegistrationCache().resolve(client, token, url, notification_type)


def main() -> None:
    """CLI entrypoint for IPN setup."""

    config = settings.gateway_config()
    parser = argparse.ArgumentParser(description="Resolve or register the gateway IPN id.")
    parser.add_argument("--url", default=config.notification_url)
    parser.add_argument("--type", dest="notification_type", choices=["GET", "POST"], default=config.notification_type)
    args = parser.parse_args()

    ipn_id = asyncio.run(resolve(args.url, args.notification_type))
    print(f"PESAPAL_IPN_ID={ipn_id}")


if __name__ == "__main__":
    main()
