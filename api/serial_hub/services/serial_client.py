# serial_hub/services/serial_client.py
"""
HTTP client for the serialization endpoints (/serials/...).

Used by the aggregation coordinator (existence checks) and by the label
service (status updates). A definitive answer from the service is kept apart
from "could not ask": the latter is always UpstreamError.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from serial_hub.errors import ServiceError, UpstreamError

logger = logging.getLogger(__name__)


class SerialClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport)

    @staticmethod
    def _error_body(resp: httpx.Response) -> Dict[str, Any]:
        try:
            body = resp.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    async def exists(self, serial: str) -> bool:
        """
        True if the serial is known, False if the service says it is not.

        Raises UpstreamError on transport failure or any unexpected status.
        """
        try:
            async with self._client() as client:
                resp = await client.get(f"/serials/validate/{quote(serial, safe='')}")
        except httpx.HTTPError as e:
            logger.error("Error validating serial %s: %s", serial, e)
            raise UpstreamError(f"Error validating serial {serial}")

        if resp.status_code == 404:
            return False
        if resp.status_code != 200:
            logger.error("Unexpected status %s validating serial %s", resp.status_code, serial)
            raise UpstreamError(f"Error validating serial {serial}")

        body = self._error_body(resp)
        return bool(body.get("valid"))

    async def set_status(self, serial: str, status: str) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                resp = await client.patch(
                    f"/serials/status/{quote(serial, safe='')}",
                    json={"status": status},
                )
        except httpx.HTTPError as e:
            logger.error("Error updating serial %s to %s: %s", serial, status, e)
            raise UpstreamError(f"Error updating serial {serial}")

        body = self._error_body(resp)
        if resp.status_code >= 500:
            raise UpstreamError(f"Error updating serial {serial}")
        if resp.status_code >= 400:
            raise ServiceError(
                body.get("error") or f"Status update rejected for serial {serial}",
                status_code=resp.status_code,
                kind=body.get("kind"),
            )
        return body
