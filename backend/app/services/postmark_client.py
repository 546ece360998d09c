"""
Postmark REST client.

Minimal set of Postmark server-API operations the inbound workflow needs:
reading inbound message details, managing inbound blocking rules for
senders the verification workflow flags, and pointing the inbound webhook
at our endpoint during setup.

Auth is the server token in the X-Postmark-Server-Token header.
"""

import logging
from typing import Any, Optional

import httpx

from app.config import DEFAULT_POSTMARK_API_URL, Settings

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


class PostmarkAPIError(Exception):
    """Raised for non-2xx responses from the Postmark API."""

    def __init__(self, status_code: int, error_code: Optional[int], message: str):
        super().__init__(f"Postmark API error {status_code} (code {error_code}): {message}")
        self.status_code = status_code
        self.error_code = error_code
        self.message = message


class PostmarkClient:
    def __init__(
        self,
        server_token: Optional[str],
        base_url: str = DEFAULT_POSTMARK_API_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        if not server_token:
            raise ValueError("POSTMARK_SERVER_TOKEN is required for Postmark API calls")

        self._client = httpx.Client(
            base_url=base_url,
            headers={
                "Accept": "application/json",
                "X-Postmark-Server-Token": server_token,
            },
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "PostmarkClient":
        return cls(settings.postmark_server_token, base_url=settings.postmark_api_url, **kwargs)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "PostmarkClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _request(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        response = self._client.request(method, path, **kwargs)
        if response.is_error:
            try:
                body = response.json()
            except ValueError:
                body = {}
            raise PostmarkAPIError(
                status_code=response.status_code,
                error_code=body.get("ErrorCode"),
                message=body.get("Message") or response.text,
            )
        return response.json()

    # ------------------------------------------------------------------
    # Inbound messages
    # ------------------------------------------------------------------

    def get_inbound_message(self, message_id: str) -> dict[str, Any]:
        """Full details for one inbound message (used by verification)."""
        try:
            result = self._request("GET", f"/messages/inbound/{message_id}/details")
        except PostmarkAPIError as e:
            logger.error(f"Failed to get inbound message details for {message_id}: {e}")
            raise
        logger.info(f"Retrieved inbound message details for {message_id}")
        return result

    def search_inbound_messages(
        self,
        count: int = 50,
        offset: int = 0,
        **filters: Any,
    ) -> dict[str, Any]:
        """
        Search inbound messages.

        filters are passed through as query params, e.g. recipient,
        fromemail, subject, mailboxhash, fromdate, todate, status.
        """
        params = {"count": count, "offset": offset}
        params.update({k: v for k, v in filters.items() if v is not None})
        try:
            result = self._request("GET", "/messages/inbound", params=params)
        except PostmarkAPIError as e:
            logger.error(f"Failed to search inbound messages with {params}: {e}")
            raise
        logger.info(
            f"Retrieved {len(result.get('InboundMessages') or [])} inbound messages "
            f"(total {result.get('TotalCount')})"
        )
        return result

    # ------------------------------------------------------------------
    # Inbound blocking rules
    # ------------------------------------------------------------------

    def create_blocking_rule(self, rule: str) -> dict[str, Any]:
        """Block a sender address or domain from reaching the inbound stream."""
        try:
            result = self._request("POST", "/triggers/inboundrules", json={"Rule": rule})
        except PostmarkAPIError as e:
            logger.error(f"Failed to create blocking rule {rule!r}: {e}")
            raise
        logger.info(f"Created blocking rule {rule!r} (id {result.get('ID')})")
        return result

    def get_blocking_rules(self, count: int = 100, offset: int = 0) -> dict[str, Any]:
        try:
            result = self._request(
                "GET",
                "/triggers/inboundrules",
                params={"count": count, "offset": offset},
            )
        except PostmarkAPIError as e:
            logger.error(f"Failed to get blocking rules: {e}")
            raise
        logger.info(f"Retrieved {len(result.get('InboundRules') or [])} blocking rules")
        return result

    def delete_blocking_rule(self, trigger_id: int) -> dict[str, Any]:
        try:
            result = self._request("DELETE", f"/triggers/inboundrules/{trigger_id}")
        except PostmarkAPIError as e:
            logger.error(f"Failed to delete blocking rule {trigger_id}: {e}")
            raise
        logger.info(f"Deleted blocking rule {trigger_id}")
        return result

    # ------------------------------------------------------------------
    # Server configuration
    # ------------------------------------------------------------------

    def get_server_info(self) -> dict[str, Any]:
        try:
            result = self._request("GET", "/server")
        except PostmarkAPIError as e:
            logger.error(f"Failed to get server info: {e}")
            raise
        logger.info(
            f"Retrieved server info for {result.get('Name')!r} "
            f"(inbound hook: {result.get('InboundHookUrl') or 'not set'})"
        )
        return result

    def update_webhook_url(self, webhook_url: str) -> dict[str, Any]:
        try:
            result = self._request("PUT", "/server", json={"InboundHookUrl": webhook_url})
        except PostmarkAPIError as e:
            logger.error(f"Failed to update inbound webhook URL to {webhook_url}: {e}")
            raise
        logger.info(f"Updated inbound webhook URL to {webhook_url}")
        return result
