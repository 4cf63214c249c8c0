"""Work the manual reconciliation queue of paid but ungranted unlocks."""

import argparse
import json
import os

import httpx


def main() -> None:
    """CLI entrypoint for support operators."""

    parser = argparse.ArgumentParser(description="List, retry or resolve unlock reconciliation cases.")
    parser.add_argument("--entitlements-url", default="http://localhost:8003")
    parser.add_argument("--api-key", default=os.getenv("API_KEY", ""))
    sub = parser.add_subparsers(dest="command", required=True)

    list_cmd = sub.add_parser("list", help="Show queued cases")
    list_cmd.add_argument("--status", default="PENDING")
    list_cmd.add_argument("--limit", type=int, default=100)

    for name, help_text in (("retry", "Re-run the grant for a case"), ("resolve", "Close a case handled out of band")):
        action = sub.add_parser(name, help=help_text)
        action.add_argument("case_id")
        action.add_argument("--operator", required=True)

    args = parser.parse_args()
    headers = {"x-api-key": args.api_key}

    if args.command == "list":
        resp = httpx.get(
            f"{args.entitlements_url}/ops/reconciliations",
            params={"status": args.status, "limit": args.limit},
            headers=headers,
            timeout=10.0,
        )
    else:
        resp = httpx.post(
            f"{args.entitlements_url}/ops/reconciliations/{args.case_id}/{args.command}",
            json={"resolvedBy": args.operator},
            headers=headers,
            timeout=10.0,
        )
    if resp.status_code >= 400:
        raise SystemExit(f"{args.command} failed ({resp.status_code}): {resp.text}")
    print(json.dumps(resp.json(), indent=2))


if __name__ == "__main__":
    main()
