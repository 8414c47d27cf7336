"""JSON-over-HTTPS remote store (spreadsheet web app endpoint)."""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import httpx
from pydantic import ValidationError

from ..accounting.snapshot import LedgerSnapshot
from ..config import DEFAULT_REQUEST_TIMEOUT
from ..exceptions import TransportError
from .base import RemoteStoreBase

logger = logging.getLogger(__name__)

SYNC_ALL_ACTION = "sync_all"
PENDING_PAYMENTS_ACTION = "pending_payments"


class HttpRemoteStore(RemoteStoreBase):
    """Remote store reached through a single request/response JSON endpoint.

    The endpoint answers GET with the whole state, GET with
    ``?action=pending_payments`` with the virtual-office feed, and accepts
    POST ``{"action": "sync_all", "data": ...}`` to replace the whole state.
    Any body carrying an ``error`` key is a failure.
    """

    def __init__(
        self,
        url: str,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the store.

        Args:
            url: Endpoint URL. Must use https.
            timeout: Request timeout in seconds.
            client: Pre-built client, mainly for tests.

        Raises:
            ValueError: If the URL is empty or not https.
        """
        if not url:
            raise ValueError("Remote store URL must be provided")
        parsed = urlparse(url)
        if parsed.scheme != "https" or not parsed.netloc:
            raise ValueError(f"Remote store URL must be an https URL, got {url!r}")
        self.url = url
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    async def _request(self, method: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, self.url, **kwargs)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Remote store answered {e.response.status_code} to {method}")
            raise TransportError(f"Remote store returned HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"Remote store {method} failed: {type(e).__name__}: {e}")
            raise TransportError(f"Remote store unreachable: {e}") from e
        except ValueError as e:
            logger.error(f"Remote store {method} returned a non-JSON body")
            raise TransportError("Remote store returned an invalid JSON body") from e

        if isinstance(body, dict) and body.get("error"):
            logger.error(f"Remote store reported an error: {body['error']}")
            raise TransportError(f"Remote store error: {body['error']}")
        return body

    async def fetch_snapshot(self) -> LedgerSnapshot:
        body = await self._request("GET")
        if not isinstance(body, dict):
            raise TransportError("Remote snapshot is not a JSON object")
        try:
            snapshot = LedgerSnapshot.model_validate(body)
        except ValidationError as e:
            logger.error(f"Remote snapshot failed validation: {e.error_count()} errors")
            raise TransportError("Remote snapshot failed validation") from e
        logger.info(
            f"Fetched snapshot: {len(snapshot.representatives)} representatives, "
            f"{len(snapshot.payments)} payments"
        )
        return snapshot

    async def fetch_external_payments(self) -> List[Dict[str, Any]]:
        body = await self._request("GET", params={"action": PENDING_PAYMENTS_ACTION})
        # Accept a bare list or an object wrapping it
        if isinstance(body, dict):
            body = body.get("payments", body.get("data", []))
        if not isinstance(body, list):
            raise TransportError("External payments feed is not a JSON list")
        records = [r for r in body if isinstance(r, dict)]
        if len(records) != len(body):
            logger.warning(f"Dropped {len(body) - len(records)} non-object entries from feed")
        logger.info(f"Fetched {len(records)} external payment records")
        return records

    async def push_snapshot(self, snapshot: LedgerSnapshot) -> None:
        await self._request("POST", json={"action": SYNC_ALL_ACTION, "data": snapshot.to_wire()})
        logger.info(f"Pushed snapshot with {len(snapshot.payments)} payments")

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def get_remote_store(url: Optional[str], timeout: float = DEFAULT_REQUEST_TIMEOUT) -> Optional[RemoteStoreBase]:
    """Factory for the configured remote store.

    Args:
        url: Endpoint URL, or None when no remote store is configured.
        timeout: Request timeout in seconds.

    Returns:
        HttpRemoteStore, or None when ``url`` is empty.
    """
    if not url:
        return None
    return HttpRemoteStore(url, timeout=timeout)
