"""Deliver an IPN notification to a running service, optionally several times.

Useful for exercising duplicate delivery against the record store.
"""

import argparse
import json

import httpx


def main() -> None:
    """Parse CLI args and send the notification(s)."""

    parser = argparse.ArgumentParser(description="Send IPN notification(s) to the checkout service.")
    parser.add_argument("--service-url", default="http://localhost:8000")
    parser.add_argument("--tracking-id", required=True)
    parser.add_argument("--merchant-reference", default="")
    parser.add_argument("--method", choices=["GET", "POST"], default="GET")
    parser.add_argument("--repeat", type=int, default=1)
    args = parser.parse_args()

    fields = {
        "OrderTrackingId": args.tracking_id,
        "OrderMerchantReference": args.merchant_reference,
        "OrderNotificationType": "IPNCHANGE",
    }
    url = f"{args.service_url}/api/pesapal/ipn"
    for attempt in range(1, args.repeat + 1):
        if args.method == "GET":
            resp = httpx.get(url, params=fields, timeout=30.0)
        else:
            resp = httpx.post(url, json=fields, timeout=30.0)
        print(f"delivery={attempt} status={resp.status_code}")
        print(json.dumps(resp.json(), indent=2))


if __name__ == "__main__":
    main()
