#!/usr/bin/env python3
"""
Dev helper: send signed test inbound-email webhooks to the local backend.

Builds a Postmark inbound payload for one of the sample categories, signs
the exact JSON bytes with HMAC-SHA256 (base64) using the configured webhook
secret, and POSTs it to /api/webhooks/postmark/inbound.

Usage
-----
# Send every sample (finance, product, quotation, spam)
python scripts/send_test_webhook.py

# Send one sample
python scripts/send_test_webhook.py --sample finance

# Check that a bad signature is rejected
python scripts/send_test_webhook.py --sample finance --invalid-signature

# Print the payload without sending
python scripts/send_test_webhook.py --sample quotation --dry-run

Environment / .env
------------------
POSTMARK_WEBHOOK_SECRET  Shared webhook secret. Falls back to
                         INBOUND_WEBHOOK_SECRET. When unset, requests are
                         sent unsigned (only accepted in development).
"""

import argparse
import json
import sys
import textwrap
from datetime import datetime, timezone
from email.utils import format_datetime

import httpx
from dotenv import load_dotenv

from app.config import Settings
from app.services.signature import compute_signature

INVALID_SIGNATURE = "invalid-signature-123"


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------

def _build_payload(
    message_id: str,
    subject: str,
    from_email: str,
    from_name: str,
    text_body: str,
    html_body: str,
    headers: list[dict] | None = None,
    attachments: list[dict] | None = None,
    tag: str | None = None,
) -> dict:
    """Build a Postmark inbound webhook payload (PascalCase keys)."""
    to_email = "procurement@mailmint.example"
    return {
        "MessageID": message_id,
        "Date": format_datetime(datetime.now(timezone.utc)),
        "Subject": subject,
        "From": from_email,
        "FromName": from_name,
        "FromFull": {"Email": from_email, "Name": from_name},
        "To": to_email,
        "ToFull": [{"Email": to_email, "Name": "Procurement Team"}],
        "OriginalRecipient": to_email,
        "HtmlBody": html_body,
        "TextBody": text_body,
        "StrippedTextReply": "",
        "Tag": tag,
        "Headers": headers or [{"Name": "Content-Type", "Value": "text/html"}],
        "Attachments": attachments or [],
    }


SAMPLES = {
    "finance": lambda: _build_payload(
        message_id="test-finance-001",
        subject="Invoice #12345 - Payment Due",
        from_email="billing@supplier.example",
        from_name="Billing Department",
        text_body="Invoice #12345\n\nAmount due: $2,500.00 USD\nDue date: 30 days",
        html_body="<h2>Invoice #12345</h2><p>Amount due: $2,500.00 USD</p><p>Due date: 30 days</p>",
        attachments=[{
            "Name": "invoice_12345.pdf",
            "Content": "JVBERi0xLjQKJdPr6eEKMSAwIG9iago8PAovVHlwZSAv",
            "ContentType": "application/pdf",
            "ContentLength": 33,
        }],
        tag="finance",
    ),
    "product": lambda: _build_payload(
        message_id="test-product-002",
        subject="New Product Launch - Special Pricing",
        from_email="sales@techvendor.example",
        from_name="Sales Team",
        text_body="New Product Launch\n\nIntroducing our latest product with special launch pricing of $199.99",
        html_body="<h1>New Product Launch</h1><p>Introducing our latest product with special launch pricing of $199.99</p>",
        tag="product-offer",
    ),
    "quotation": lambda: _build_payload(
        message_id="test-quotation-003",
        subject="RFQ Response - Equipment Quote",
        from_email="quotes@industrial.example",
        from_name="Quote Department",
        text_body="Equipment Quotation\n\nTotal quote: €15,750.00\nDelivery: 4-6 weeks",
        html_body="<h2>Equipment Quotation</h2><p>Total quote: €15,750.00</p><p>Delivery: 4-6 weeks</p>",
        tag="quotation",
    ),
    "spam": lambda: _build_payload(
        message_id="test-spam-004",
        subject="URGENT!!! Win $1,000,000 NOW!!!",
        from_email="noreply@spam.example",
        from_name="Get Rich Quick",
        text_body="URGENT!!! CLICK HERE NOW!!!\n\nMake money fast! Act now!",
        html_body="<h1>URGENT!!! CLICK HERE NOW!!!</h1><p>Make money fast! Act now!</p>",
        headers=[
            {"Name": "Content-Type", "Value": "text/html"},
            {"Name": "X-Spam-Score", "Value": "8.5"},
        ],
        tag="spam",
    ),
}


# ---------------------------------------------------------------------------
# Sending
# ---------------------------------------------------------------------------

def _send(client: httpx.Client, endpoint: str, name: str, secret: str, invalid: bool) -> bool:
    payload = SAMPLES[name]()
    body = json.dumps(payload).encode()

    headers = {"Content-Type": "application/json", "User-Agent": "Postmark/1.0"}
    if invalid:
        headers["X-Postmark-Signature"] = INVALID_SIGNATURE
    elif secret:
        headers["X-Postmark-Signature"] = compute_signature(body, secret)

    print(f"\nSample    : {name}")
    print(f"MessageID : {payload['MessageID']}")
    print(f"Subject   : {payload['Subject']}")

    response = client.post(endpoint, content=body, headers=headers)
    data = response.json()
    symbol = "OK" if data.get("success") else "FAIL"
    print(f"[{symbol}] HTTP {response.status_code}")
    print(json.dumps(data, indent=2))

    if invalid:
        # The endpoint must refuse the delivery but still answer 200
        return response.status_code == 200 and not data.get("success")
    return response.status_code == 200 and bool(data.get("success"))


def main() -> int:
    load_dotenv()

    parser = argparse.ArgumentParser(
        prog="send_test_webhook.py",
        description=textwrap.dedent("""\
            Send signed test Postmark inbound webhooks to the MailMint backend.
        """),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--url",
        default="http://localhost:8000",
        help="Backend base URL (default: http://localhost:8000)",
    )
    parser.add_argument(
        "--sample",
        choices=sorted(SAMPLES),
        default=None,
        help="Send only this sample (default: all)",
    )
    parser.add_argument(
        "--secret",
        default=None,
        help="Override the webhook secret (default: POSTMARK_WEBHOOK_SECRET)",
    )
    parser.add_argument(
        "--invalid-signature",
        action="store_true",
        help=f"Send {INVALID_SIGNATURE!r} as the signature",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the payload JSON without sending it.",
    )
    args = parser.parse_args()

    names = [args.sample] if args.sample else sorted(SAMPLES)

    if args.dry_run:
        for name in names:
            print(json.dumps(SAMPLES[name](), indent=2, ensure_ascii=False))
        return 0

    secret = args.secret or Settings.from_env().webhook_secret
    if not secret:
        print("WARNING: no webhook secret configured; sending unsigned requests", file=sys.stderr)

    endpoint = f"{args.url.rstrip('/')}/api/webhooks/postmark/inbound"
    print(f"Endpoint  : {endpoint}")

    try:
        with httpx.Client(timeout=10.0) as client:
            results = [
                _send(client, endpoint, name, secret, args.invalid_signature)
                for name in names
            ]
    except httpx.ConnectError:
        print(
            f"ERROR: could not connect to {args.url}. Is the backend running?\n"
            "  cd backend && uvicorn app.main:app --reload",
            file=sys.stderr,
        )
        return 1
    except httpx.HTTPError as e:
        print(f"ERROR: request failed: {e}", file=sys.stderr)
        return 1

    return 0 if all(results) else 1


if __name__ == "__main__":
    sys.exit(main())
