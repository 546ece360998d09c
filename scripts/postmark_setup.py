#!/usr/bin/env python3
"""
Dev helper: check the Postmark server and point its inbound webhook here.

Prints the server's inbound address and current hook URL, updates the hook
to POSTMARK_WEBHOOK_URL when they differ, and lists inbound blocking rules.

Usage
-----
python scripts/postmark_setup.py
python scripts/postmark_setup.py --webhook-url https://api.example.com/api/webhooks/postmark/inbound

Environment / .env
------------------
POSTMARK_SERVER_TOKEN   Server API token (required).
POSTMARK_WEBHOOK_URL    Public inbound webhook URL.
"""

import argparse
import sys

from dotenv import load_dotenv

from app.config import Settings
from app.services.postmark_client import PostmarkAPIError, PostmarkClient


def main() -> int:
    load_dotenv()
    settings = Settings.from_env()

    parser = argparse.ArgumentParser(prog="postmark_setup.py")
    parser.add_argument(
        "--webhook-url",
        default=settings.postmark_webhook_url,
        help="Inbound webhook URL (default: POSTMARK_WEBHOOK_URL)",
    )
    args = parser.parse_args()

    try:
        client = PostmarkClient.from_settings(settings)
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    with client:
        try:
            server = client.get_server_info()
            print(f"Server          : {server.get('Name')}")
            print(f"Inbound address : {server.get('InboundAddress')}")
            print(f"Inbound hash    : {server.get('InboundHash')}")
            print(f"Webhook URL     : {server.get('InboundHookUrl') or 'Not set'}")

            if args.webhook_url and server.get("InboundHookUrl") != args.webhook_url:
                client.update_webhook_url(args.webhook_url)
                print(f"Webhook URL updated to {args.webhook_url}")

            rules = client.get_blocking_rules().get("InboundRules") or []
            print(f"Blocking rules  : {len(rules)}")
            for rule in rules:
                print(f"  - {rule.get('Rule')} (id {rule.get('ID')})")
        except PostmarkAPIError as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
