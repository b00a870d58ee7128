"""Create a small test order directly against the gateway and print the response."""

import argparse
import asyncio
import json

from paybridge.common.config import settings
from paybridge.common.errors import PayBridgeError
from paybridge.services.checkout.credentials import CredentialCache
from paybridge.services.checkout.flows import PROFILES, Flow, RequestContext, new_order_id
from paybridge.services.checkout.gateway_client import GatewayClient
from paybridge.services.checkout.schemas import PaymentOrderRequest


async def run(server_host: str, amount_paisa: int, name: str, mobile: str) -> dict:
    """Obtain a token and create one TEST order whose callbacks point at `server_host`."""

    credentials = CredentialCache.from_settings()
    gateway = GatewayClient.from_settings()
    profile = PROFILES[Flow.STANDARD]
    order_id = new_order_id("TEST")
    request = PaymentOrderRequest(
        order_id=order_id,
        amount_minor_units=amount_paisa,
        customer_name=name,
        customer_mobile=mobile,
        expire_after_seconds=profile.expire_after_seconds,
        callback_urls=RequestContext(base_url=server_host).merchant_urls(profile, order_id),
        message=f"Test Payment {order_id}",
        udf={"udf1": name, "udf2": mobile, "udf3": "TEST_API"},
    )
    token = await credentials.get_token()
    result = await gateway.create_order(request, token)
    return {"merchantOrderId": order_id, **result.model_dump(by_alias=True)}


def main() -> None:
    """CLI entrypoint for a manual gateway smoke test."""

    parser = argparse.ArgumentParser(description="Create a test order against the configured gateway.")
    parser.add_argument("--server-host", default="http://localhost:5001")
    parser.add_argument("--amount-paisa", type=int, default=1000)
    parser.add_argument("--name", default="Test User")
    parser.add_argument("--mobile", default="9999888877")
    args = parser.parse_args()

    try:
        result = asyncio.run(run(args.server_host, args.amount_paisa, args.name, args.mobile))
    except PayBridgeError as exc:
        print(json.dumps(exc.to_payload(), indent=2, default=str))
        raise SystemExit(1) from exc
    print(json.dumps({"gateway": settings.phonepe_base_url, **result}, indent=2))


if __name__ == "__main__":
    main()
