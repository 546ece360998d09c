"""
Inbound email adapter tests.

Covers:
  - validate_payload: structural checks and first-failing-field messages
  - parse_inbound_email: Postmark payload -> ProcessedEmail normalization
  - Header helpers: get_header, parse_spam_score, is_spam_by_headers
  - extract_mailbox_hash plus-addressing helper
"""

import copy
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from app.services.inbound_email_adapter import (
    fold_headers,
    extract_mailbox_hash,
    get_header,
    is_spam_by_headers,
    parse_inbound_email,
    parse_received_at,
    parse_spam_score,
    validate_payload,
)
from app.models.postmark import PostmarkHeader


# ---------------------------------------------------------------------------
# Payload builder helpers
# ---------------------------------------------------------------------------

def _make_payload(**overrides) -> dict:
    """Build a minimal valid Postmark inbound payload (PascalCase)."""
    payload = {
        "MessageID": "test-finance-001",
        "Date": "Fri, 1 Aug 2014 16:45:32 -0400",
        "Subject": "Invoice #12345 - Payment Due",
        "From": "billing@acme-supplies.com",
        "FromName": "Acme Supplies Billing",
        "FromFull": {"Email": "billing@acme-supplies.com", "Name": "Acme Supplies Billing"},
        "To": "procurement@mailmint.example",
        "ToFull": [
            {"Email": "procurement@mailmint.example", "Name": "Procurement Team", "MailboxHash": ""},
        ],
        "TextBody": "Invoice #12345. Amount due: $2,500.00.",
        "HtmlBody": "<p>Invoice #12345. Amount due: <strong>$2,500.00</strong>.</p>",
        "Headers": [{"Name": "X-Spam-Score", "Value": "0.1"}],
        "Attachments": [
            {
                "Name": "invoice-12345.pdf",
                "Content": "JVBERi0xLjQK",
                "ContentType": "application/pdf",
                "ContentLength": 9,
            },
        ],
    }
    payload.update(overrides)
    return payload


# ---------------------------------------------------------------------------
# validate_payload
# ---------------------------------------------------------------------------

class TestValidatePayload:

    def test_valid_payload_is_ok(self):
        result = validate_payload(_make_payload())
        assert result.ok is True
        assert result.error is None
        assert result.payload.MessageID == "test-finance-001"

    def test_missing_sender_email_names_the_field(self):
        """FromFull present but without Email."""
        payload = _make_payload(FromFull={"Name": "Acme Supplies Billing"})
        result = validate_payload(payload)
        assert result.ok is False
        assert result.payload is None
        assert result.error == "Missing required field: FromFull.Email"

    def test_empty_sender_email_is_missing(self):
        result = validate_payload(_make_payload(FromFull={"Email": ""}))
        assert result.ok is False
        assert "FromFull.Email" in result.error

    def test_missing_from_full(self):
        payload = _make_payload()
        del payload["FromFull"]
        result = validate_payload(payload)
        assert result.error == "Missing required field: FromFull"

    def test_missing_message_id(self):
        payload = _make_payload()
        del payload["MessageID"]
        result = validate_payload(payload)
        assert result.ok is False
        assert result.error == "Missing required field: MessageID"

    def test_empty_message_id(self):
        result = validate_payload(_make_payload(MessageID=""))
        assert result.error == "Missing required field: MessageID"

    def test_missing_date(self):
        payload = _make_payload()
        del payload["Date"]
        assert validate_payload(payload).error == "Missing required field: Date"

    def test_null_date(self):
        assert validate_payload(_make_payload(Date=None)).error == "Missing required field: Date"

    def test_empty_to_full(self):
        result = validate_payload(_make_payload(ToFull=[]))
        assert result.ok is False
        assert result.error == "Invalid field ToFull: must not be empty"

    def test_missing_to_full(self):
        payload = _make_payload()
        del payload["ToFull"]
        assert validate_payload(payload).error == "Missing required field: ToFull"

    def test_missing_headers(self):
        payload = _make_payload()
        del payload["Headers"]
        assert validate_payload(payload).error == "Missing required field: Headers"

    def test_missing_attachments(self):
        payload = _make_payload()
        del payload["Attachments"]
        assert validate_payload(payload).error == "Missing required field: Attachments"

    def test_headers_not_a_list(self):
        result = validate_payload(_make_payload(Headers="X-Spam-Score: 0.1"))
        assert result.ok is False
        assert result.error.startswith("Invalid field Headers")

    def test_empty_headers_and_attachments_are_valid(self):
        assert validate_payload(_make_payload(Headers=[], Attachments=[])).ok is True

    def test_null_header_value_is_valid(self):
        payload = _make_payload(Headers=[{"Name": "X-Empty", "Value": None}])
        assert validate_payload(payload).ok is True

    def test_cc_entry_without_email_is_valid(self):
        payload = _make_payload(CcFull=[{"Name": "No Address"}])
        assert validate_payload(payload).ok is True

    def test_attachment_with_null_fields_is_valid(self):
        payload = _make_payload(Attachments=[
            {"Name": None, "Content": None, "ContentType": None, "ContentLength": None},
        ])
        assert validate_payload(payload).ok is True

    def test_missing_subject_is_valid(self):
        payload = _make_payload()
        del payload["Subject"]
        assert validate_payload(payload).ok is True

    @pytest.mark.parametrize("payload", [None, [], "text", 42])
    def test_non_object_payload(self, payload):
        result = validate_payload(payload)
        assert result.ok is False
        assert result.error == "Invalid payload: expected a JSON object"

    def test_does_not_mutate_input(self):
        payload = _make_payload()
        before = copy.deepcopy(payload)
        validate_payload(payload)
        assert payload == before


# ---------------------------------------------------------------------------
# parse_inbound_email
# ---------------------------------------------------------------------------

class TestParseInboundEmail:

    def test_preserves_identity_sender_and_attachment_count(self):
        email = parse_inbound_email(_make_payload())
        assert email.id == "test-finance-001"
        assert email.message_id == "test-finance-001"
        assert email.sender.email == "billing@acme-supplies.com"
        assert email.sender.name == "Acme Supplies Billing"
        assert len(email.attachments) == 1

    def test_accepts_validated_model(self):
        validation = validate_payload(_make_payload())
        email = parse_inbound_email(validation.payload)
        assert email.message_id == "test-finance-001"

    def test_invalid_dict_raises_validation_error(self):
        with pytest.raises(ValidationError):
            parse_inbound_email(_make_payload(ToFull=[]))

    def test_content_mapping(self):
        payload = _make_payload(StrippedTextReply="Thanks")
        email = parse_inbound_email(payload)
        assert email.content.text == payload["TextBody"]
        assert email.content.html == payload["HtmlBody"]
        assert email.content.stripped_reply == "Thanks"

    def test_attachment_fields_copied_verbatim(self):
        att = parse_inbound_email(_make_payload()).attachments[0]
        assert att.filename == "invoice-12345.pdf"
        assert att.mime_type == "application/pdf"
        assert att.size_bytes == 9
        assert att.content == "JVBERi0xLjQK"
        assert att.content_id is None

    def test_recipients_keep_order_and_routing_tag(self):
        payload = _make_payload(ToFull=[
            {"Email": "first@mailmint.example", "Name": "First", "MailboxHash": "vendor42"},
            {"Email": "second@mailmint.example"},
        ])
        email = parse_inbound_email(payload)
        assert [r.email for r in email.to] == ["first@mailmint.example", "second@mailmint.example"]
        assert email.to[0].routing_tag == "vendor42"
        assert email.to[1].name is None

    def test_empty_cc_becomes_none(self):
        email = parse_inbound_email(_make_payload(CcFull=[]))
        assert email.cc is None
        assert email.bcc is None

    def test_cc_and_bcc_mapped(self):
        payload = _make_payload(
            CcFull=[{"Email": "finance@mailmint.example", "Name": "Finance"}],
            BccFull=[{"Email": "audit@mailmint.example"}],
        )
        email = parse_inbound_email(payload)
        assert [r.email for r in email.cc] == ["finance@mailmint.example"]
        assert [r.email for r in email.bcc] == ["audit@mailmint.example"]

    def test_null_header_value_becomes_empty_string(self):
        payload = _make_payload(Headers=[
            {"Name": "X-Empty", "Value": None},
            {"Name": "X-Spam-Score", "Value": "0.1"},
        ])
        email = parse_inbound_email(payload)
        assert email.headers == {"X-Empty": "", "X-Spam-Score": "0.1"}

    def test_header_without_name_is_skipped(self):
        payload = _make_payload(Headers=[{"Value": "orphan"}, {"Name": "X-Spam-Score", "Value": "0.1"}])
        assert parse_inbound_email(payload).headers == {"X-Spam-Score": "0.1"}

    def test_cc_entry_without_email_is_kept(self):
        payload = _make_payload(CcFull=[
            {"Name": "No Address"},
            {"Email": "finance@mailmint.example"},
        ])
        email = parse_inbound_email(payload)
        assert [r.email for r in email.cc] == ["", "finance@mailmint.example"]
        assert email.cc[0].name == "No Address"

    def test_attachment_null_fields_get_defaults(self):
        payload = _make_payload(Attachments=[
            {"Name": None, "Content": None, "ContentType": None, "ContentLength": None},
        ])
        att = parse_inbound_email(payload).attachments[0]
        assert att.filename == "attachment"
        assert att.mime_type == "application/octet-stream"
        assert att.size_bytes == 0
        assert att.content == ""

    def test_repeated_header_keeps_last_value(self):
        """Repeated header names fold to the last value seen."""
        payload = _make_payload(Headers=[
            {"Name": "Received", "Value": "by relay-1"},
            {"Name": "X-Spam-Score", "Value": "0.1"},
            {"Name": "Received", "Value": "by relay-2"},
        ])
        email = parse_inbound_email(payload)
        assert email.headers == {"Received": "by relay-2", "X-Spam-Score": "0.1"}

    def test_rfc2822_date_parsed_with_offset(self):
        email = parse_inbound_email(_make_payload())
        assert email.received_at == datetime(
            2014, 8, 1, 16, 45, 32, tzinfo=timezone(timedelta(hours=-4))
        )

    def test_unparseable_date_gives_none(self):
        email = parse_inbound_email(_make_payload(Date="sometime last week"))
        assert email.received_at is None

    def test_missing_subject_becomes_empty_string(self):
        payload = _make_payload()
        del payload["Subject"]
        assert parse_inbound_email(payload).subject == ""

    def test_tag_and_mailbox_hash_passthrough(self):
        email = parse_inbound_email(_make_payload(Tag="invoices", MailboxHash="vendor42"))
        assert email.tag == "invoices"
        assert email.routing_tag == "vendor42"

    def test_raw_payload_keeps_provider_fields(self):
        email = parse_inbound_email(_make_payload(MessageStream="inbound"))
        assert email.raw_payload["MessageID"] == "test-finance-001"
        assert email.raw_payload["MessageStream"] == "inbound"
        assert email.raw_payload["FromFull"]["Email"] == "billing@acme-supplies.com"
        assert "CcFull" not in email.raw_payload

    def test_does_not_mutate_input(self):
        payload = _make_payload()
        before = copy.deepcopy(payload)
        parse_inbound_email(payload)
        assert payload == before

    def test_same_payload_gives_equal_result(self):
        payload = _make_payload()
        assert parse_inbound_email(payload) == parse_inbound_email(payload)


class TestParseReceivedAt:

    def test_iso_8601_with_z(self):
        assert parse_received_at("2024-03-05T10:00:00Z") == datetime(
            2024, 3, 5, 10, 0, tzinfo=timezone.utc
        )

    @pytest.mark.parametrize("value", [None, "", "not a date"])
    def test_unparseable_returns_none(self, value):
        assert parse_received_at(value) is None


class TestFoldHeaders:

    def test_empty_list(self):
        assert fold_headers([]) == {}

    def test_distinct_names(self):
        headers = [PostmarkHeader(Name="A", Value="1"), PostmarkHeader(Name="B", Value="2")]
        assert fold_headers(headers) == {"A": "1", "B": "2"}


# ---------------------------------------------------------------------------
# Header and address helpers
# ---------------------------------------------------------------------------

class TestHeaderHelpers:

    def test_get_header_exact_case(self):
        assert get_header({"X-Spam-Score": "1.0"}, "X-Spam-Score") == "1.0"

    def test_get_header_case_insensitive(self):
        assert get_header({"x-spam-score": "1.0"}, "X-Spam-Score") == "1.0"

    def test_get_header_prefers_exact_case(self):
        headers = {"x-spam-score": "9.0", "X-Spam-Score": "1.0"}
        assert get_header(headers, "X-Spam-Score") == "1.0"

    def test_get_header_missing(self):
        assert get_header({}, "X-Spam-Score") is None

    @pytest.mark.parametrize("value,expected", [
        ("8.5", 8.5),
        ("8.5 (high)", 8.5),
        ("  -1.2", -1.2),
        ("5", 5.0),
        ("", None),
        (None, None),
        ("high", None),
    ])
    def test_parse_spam_score(self, value, expected):
        assert parse_spam_score(value) == expected

    def test_is_spam_by_headers_at_threshold(self):
        assert is_spam_by_headers({"X-Spam-Score": "5.0"}) is True

    def test_is_spam_by_headers_below_threshold(self):
        assert is_spam_by_headers({"X-Spam-Score": "4.9"}) is False

    def test_is_spam_by_headers_custom_threshold(self):
        assert is_spam_by_headers({"X-Spam-Score": "3.0"}, threshold=2.5) is True

    def test_is_spam_by_headers_without_score(self):
        assert is_spam_by_headers({"Content-Type": "text/plain"}) is False


class TestExtractMailboxHash:

    def test_plus_address(self):
        assert extract_mailbox_hash("inbound+tenant42@example.com") == "tenant42"

    def test_no_hash(self):
        assert extract_mailbox_hash("inbound@example.com") is None

    def test_empty_address(self):
        assert extract_mailbox_hash("") is None
