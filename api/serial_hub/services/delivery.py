# serial_hub/services/delivery.py
"""
External delivery - forwards opaque payloads to the configured endpoint.

Retry policy:
- at most `max_attempts` attempts, each with its own `timeout`
- 4xx from the receiver is terminal (retrying cannot help)
- anything else (5xx, timeout, connection failure) is retried after
  backoff_base ** attempt seconds (2s, 4s, ...)

Every attempt carries the same X-Request-ID so the receiver can correlate
them. The receiver may still see duplicates if a response is lost after a
successful post; no idempotency key is added to the payload.
"""
from __future__ import annotations
import asyncio
import enum
import logging
import random
import string
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import httpx

from serial_hub.errors import ValidationError

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase


class DeliveryStatus(str, enum.Enum):
    POSTED = "POSTED"
    FAILED = "FAILED"


class FailureKind(str, enum.Enum):
    rejected = "rejected"        # receiver answered with an error status
    unreachable = "unreachable"  # no response at all
    internal = "internal"        # request could not be sent


FAILURE_MESSAGES = {
    FailureKind.rejected: "External system error",
    FailureKind.unreachable: "External system unreachable",
    FailureKind.internal: "Internal error",
}


@dataclass
class DeliveryResult:
    status: DeliveryStatus
    trace_id: str
    attempts: int
    upstream_status: Optional[int] = None
    failure: Optional[FailureKind] = None

    @property
    def error(self) -> Optional[str]:
        return FAILURE_MESSAGES[self.failure] if self.failure else None


def new_trace_id() -> str:
    suffix = "".join(random.choice(_BASE36) for _ in range(9))
    return f"req_{int(time.time() * 1000)}_{suffix}"


class _Rejected(Exception):
    def __init__(self, response: httpx.Response):
        super().__init__(f"HTTP {response.status_code}")
        self.response = response


class ExternalDelivery:
    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        max_attempts: int = 3,
        backoff_base: float = 2.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.url = url
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.backoff_base = backoff_base
        self.transport = transport
        self.sleep = sleep

    def backoff(self, attempt: int) -> float:
        """Delay after the given (1-based) failed attempt."""
        return float(self.backoff_base ** attempt)

    async def _post_once(self, client: httpx.AsyncClient, payload: dict, trace_id: str) -> httpx.Response:
        resp = await client.post(
            self.url,
            json=payload,
            headers={"X-Request-ID": trace_id},
        )
        if resp.status_code >= 400:
            raise _Rejected(resp)
        return resp

    async def push(self, payload: Any) -> DeliveryResult:
        if payload is None:
            raise ValidationError("Payload is required")
        if not isinstance(payload, dict):
            raise ValidationError("Payload must be an object")

        trace_id = new_trace_id()
        logger.info("[%s] Sending payload to external system", trace_id)

        last_error: Optional[BaseException] = None
        attempt = 0
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            for attempt in range(1, self.max_attempts + 1):
                try:
                    logger.info("[%s] Attempt %d/%d", trace_id, attempt, self.max_attempts)
                    resp = await self._post_once(client, payload, trace_id)
                    logger.info("[%s] External system responded %s", trace_id, resp.status_code)
                    return DeliveryResult(
                        status=DeliveryStatus.POSTED,
                        trace_id=trace_id,
                        attempts=attempt,
                        upstream_status=resp.status_code,
                    )
                except _Rejected as e:
                    last_error = e
                    logger.error("[%s] Attempt %d failed: %s", trace_id, attempt, e)
                    if 400 <= e.response.status_code < 500:
                        break
                except httpx.InvalidURL as e:
                    # nothing was sent; the same URL will not get better
                    last_error = e
                    logger.error("[%s] Invalid external URL %r: %s", trace_id, self.url, e)
                    break
                except httpx.HTTPError as e:
                    last_error = e
                    logger.error("[%s] Attempt %d failed: %s", trace_id, attempt, e)

                if attempt < self.max_attempts:
                    delay = self.backoff(attempt)
                    logger.info("[%s] Waiting %ss before retry", trace_id, delay)
                    await self.sleep(delay)

        return self._failed(trace_id, attempt, last_error)

    @staticmethod
    def _failed(trace_id: str, attempts: int, error: Optional[BaseException]) -> DeliveryResult:
        if isinstance(error, _Rejected):
            failure, upstream_status = FailureKind.rejected, error.response.status_code
        elif isinstance(error, (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError)):
            failure, upstream_status = FailureKind.unreachable, None
        else:
            failure, upstream_status = FailureKind.internal, None
        logger.error("[%s] Delivery failed after %d attempt(s): %s", trace_id, attempts, failure.value)
        return DeliveryResult(
            status=DeliveryStatus.FAILED,
            trace_id=trace_id,
            attempts=attempts,
            upstream_status=upstream_status,
            failure=failure,
        )
