"""Compute a checkout confirmation signature and optionally submit it.

Useful for manual verify-path testing without the hosted checkout.
"""

import argparse
import json
import os

import httpx

from unlockpay.services.verification.verifier import ConfirmationVerifier


def main() -> None:
    """Parse CLI args, sign `order_id|payment_id` and print or POST the claim."""

    parser = argparse.ArgumentParser(description="Sign a confirmation claim with the gateway key secret.")
    parser.add_argument("--order-id", required=True)
    parser.add_argument("--payment-id", required=True)
    parser.add_argument("--secret", default=os.getenv("GATEWAY_KEY_SECRET", ""))
    parser.add_argument("--user-id", default=None)
    parser.add_argument("--target-id", default=None)
    parser.add_argument("--verify-url", default=None, help="POST the claim to this /verify endpoint")
    args = parser.parse_args()

    if not args.secret:
        raise SystemExit("Provide --secret or set GATEWAY_KEY_SECRET")

    claim = {
        "orderId": args.order_id,
        "paymentId": args.payment_id,
        "signature": ConfirmationVerifier(args.secret).expected_signature(args.order_id, args.payment_id),
    }
    if not args.verify_url:
        print(json.dumps(claim, indent=2))
        return

    if not (args.user_id and args.target_id):
        raise SystemExit("--user-id and --target-id are required with --verify-url")
    resp = httpx.post(
        args.verify_url,
        json={**claim, "userId": args.user_id, "targetId": args.target_id},
        timeout=10.0,
    )
    print(f"status={resp.status_code}")
    print(json.dumps(resp.json(), indent=2))


if __name__ == "__main__":
    main()
