# serial_hub/services/labels.py
"""
Label Service - print/scan handling for serial labels.

Handles:
- Label payload encoding/parsing ("(21)SERIAL", GS1 AI 21 only)
- Print registration (one Label row per payload, reprints counted)
- Best-effort PRINTED status update, scheduled as a background task
- Scan -> SCANNED status update (synchronous, errors propagate)
"""
from __future__ import annotations
import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional, Set

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from serial_hub.database import transaction
from serial_hub.db_models import Label, SerialStatus
from serial_hub.errors import ConflictError, NotFound, ValidationError
from serial_hub.services.serial_client import SerialClient

logger = logging.getLogger(__name__)

SERIAL_AI = "21"
MAX_PAYLOAD_LENGTH = 100


def encode_label(serial: str) -> str:
    """Label payload for a serial. Depends on the serial only."""
    return f"({SERIAL_AI}){serial}"


def parse_label(payload: str) -> Optional[str]:
    """
    Extract the serial from a label payload.

    Accepts "(21)SERIAL" and the scanner form without parentheses "21SERIAL".
    """
    data = (payload or "").strip()
    if data.startswith(f"({SERIAL_AI})"):
        serial = data[len(SERIAL_AI) + 2:]
    elif data.startswith(SERIAL_AI):
        serial = data[len(SERIAL_AI):]
    else:
        return None
    # a printed payload may carry further AIs after the serial
    serial = serial.split("(", 1)[0].strip()
    return serial or None


class StatusUpdater:
    """
    Fire-and-forget status updates.

    Tasks are kept referenced until done; failures go to the log, never to the
    caller that scheduled them.
    """

    def __init__(self, client: SerialClient):
        self.client = client
        self._tasks: Set[asyncio.Task] = set()

    def schedule(self, serial: str, status: SerialStatus) -> asyncio.Task:
        task = asyncio.create_task(self.client.set_status(serial, status.value))
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._finished(t, serial, status))
        return task

    def _finished(self, task: asyncio.Task, serial: str, status: SerialStatus) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("Status update %s -> %s cancelled", serial, status.value)
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Failed to update serial %s to %s: %s", serial, status.value, exc)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for outstanding updates (shutdown)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class LabelService:
    def __init__(
        self,
        db: AsyncSession,
        client: SerialClient,
        updater: StatusUpdater,
    ):
        self.db = db
        self.client = client
        self.updater = updater

    @staticmethod
    def _check_payload(payload) -> str:
        if not payload:
            raise ValidationError("labelPayload is required")
        if not isinstance(payload, str):
            raise ValidationError("labelPayload must be a string")
        if len(payload) > MAX_PAYLOAD_LENGTH:
            raise ValidationError("labelPayload is too long")
        return payload

    async def print_label(self, payload) -> Label:
        payload = self._check_payload(payload)
        serial = parse_label(payload)

        now = datetime.now(timezone.utc)
        try:
            async with transaction(self.db):
                result = await self.db.execute(select(Label).where(Label.label_payload == payload))
                label = result.scalar_one_or_none()
                if label:
                    label.print_count += 1
                    label.printed_at = now
                    label.status = SerialStatus.PRINTED.value
                else:
                    label = Label(
                        label_payload=payload,
                        serial=serial,
                        status=SerialStatus.PRINTED.value,
                        print_count=1,
                        printed_at=now,
                    )
                    self.db.add(label)
                await self.db.flush()
        except IntegrityError:
            raise ConflictError(f"Label {payload} is being printed concurrently")

        if serial:
            self.updater.schedule(serial, SerialStatus.PRINTED)
        else:
            logger.warning("Printed label without serial AI: %s", payload)
        return label

    async def scan_label(self, payload) -> dict:
        payload = self._check_payload(payload)
        serial = parse_label(payload)
        if not serial:
            raise ValidationError(f"Could not parse serial from label {payload}")
        return await self.client.set_status(serial, SerialStatus.SCANNED.value)

    async def get_label(self, serial: str) -> Label:
        stmt = (
            select(Label)
            .where(Label.serial == serial)
            .order_by(Label.printed_at.desc())
            .limit(1)
        )
        result = await self.db.execute(stmt)
        label = result.scalar_one_or_none()
        if not label:
            raise NotFound("Label not found")
        return label
