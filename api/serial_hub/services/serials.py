# serial_hub/services/serials.py
"""
Serial Allocator & Lifecycle State Machine.

Handles:
- Request validation for new serials (required fields, ISO dates, mfg < expiry)
- Allocation from a counter row bumped with a single atomic UPDATE
  (seeded once from the highest existing serial, or BASE_SERIAL)
- Forward-only status transitions GENERATED -> PRINTED -> SCANNED
- Status statistics
"""
from __future__ import annotations
import logging
import re
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from serial_hub.database import transaction
from serial_hub.db_models import SerialCounter, SerialRecord, SerialStatus
from serial_hub.errors import (
    ConflictError, InvalidTransitionError, NotFound, ValidationError
)
from serial_hub.services.labels import encode_label

logger = logging.getLogger(__name__)

BASE_SERIAL = 10000001
COUNTER_NAME = "serial"

# SCANNED is terminal
TRANSITIONS: Dict[str, tuple] = {
    SerialStatus.GENERATED.value: (SerialStatus.PRINTED.value,),
    SerialStatus.PRINTED.value: (SerialStatus.SCANNED.value,),
    SerialStatus.SCANNED.value: (),
}


def is_valid_transition(current: str, requested: str) -> bool:
    allowed = TRANSITIONS.get(current)
    if allowed is None:
        # rows written before the table existed: accept anything
        return True
    return requested in allowed


def parse_date(value: Any, field: str) -> date:
    """Parse an ISO date or date-time; the date part is kept."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValidationError(f"Invalid {field} format")
    s = value.strip()
    try:
        return date.fromisoformat(s)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(s.replace("Z", "+00:00")).date()
    except ValueError:
        raise ValidationError(f"Invalid {field} format")


def serial_number(serial: str) -> Optional[int]:
    digits = re.sub(r"[^0-9]", "", serial or "")
    return int(digits) if digits else None


class SerialAllocator:
    """Allocation and lifecycle for serial records."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # =========================================================================
    # Allocation
    # =========================================================================

    @staticmethod
    def validate_request(
        product_code: Any,
        batch: Any,
        manufacture_date: Any,
        expiry_date: Any,
    ) -> tuple:
        required = (
            ("productCode", product_code),
            ("batch", batch),
            ("manufactureDate", manufacture_date),
            ("expiryDate", expiry_date),
        )
        for field, value in required:
            if value is None or (isinstance(value, str) and not value.strip()):
                raise ValidationError(f"{field} is required")
        for field, value in required[:2]:
            if not isinstance(value, str):
                raise ValidationError(f"{field} must be a string")

        mfg = parse_date(manufacture_date, "manufactureDate")
        exp = parse_date(expiry_date, "expiryDate")
        if mfg >= exp:
            raise ValidationError("manufactureDate must be before expiryDate")
        return product_code.strip(), batch.strip(), mfg, exp

    async def _max_existing_serial(self) -> int:
        result = await self.db.execute(select(SerialRecord.serial))
        max_serial = 0
        for serial in result.scalars():
            num = serial_number(serial)
            if num is not None and num > max_serial:
                max_serial = num
        return max_serial

    async def next_serial_value(self) -> int:
        """
        Bump the counter and return the new value.

        The first call on a store seeds the counter from existing serials. Two
        first calls racing each other collide on the counter's primary key.
        """
        stmt = (
            update(SerialCounter)
            .where(SerialCounter.name == COUNTER_NAME)
            .values(value=SerialCounter.value + 1)
            .returning(SerialCounter.value)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        value = result.scalar_one_or_none()
        if value is not None:
            return int(value)

        max_serial = await self._max_existing_serial()
        value = max_serial + 1 if max_serial > 0 else BASE_SERIAL
        logger.info("Seeding serial counter at %s", value)
        self.db.add(SerialCounter(name=COUNTER_NAME, value=value))
        await self.db.flush()
        return value

    async def allocate(
        self,
        product_code: Any,
        batch: Any,
        manufacture_date: Any,
        expiry_date: Any,
    ) -> SerialRecord:
        product_code, batch, mfg, exp = self.validate_request(
            product_code, batch, manufacture_date, expiry_date
        )

        serial: Optional[str] = None
        try:
            async with transaction(self.db):
                serial = str(await self.next_serial_value())
                now = datetime.now(timezone.utc)
                record = SerialRecord(
                    serial=serial,
                    product_code=product_code,
                    batch=batch,
                    manufacture_date=mfg,
                    expiry_date=exp,
                    label_payload=encode_label(serial),
                    status=SerialStatus.GENERATED.value,
                    created_at=now,
                    updated_at=now,
                )
                self.db.add(record)
                await self.db.flush()
        except IntegrityError as e:
            logger.warning("Serial allocation conflict (serial=%s): %s", serial, e.orig)
            if serial is None:
                raise ConflictError("Serial counter was initialised concurrently, retry the request")
            raise ConflictError(f"Serial {serial} already exists")

        logger.info("Allocated serial %s for %s/%s", serial, product_code, batch)
        return record

    # =========================================================================
    # Lookup
    # =========================================================================

    async def find(self, serial: str) -> Optional[SerialRecord]:
        result = await self.db.execute(select(SerialRecord).where(SerialRecord.serial == serial))
        return result.scalar_one_or_none()

    async def validate(self, serial: str) -> SerialRecord:
        if not serial:
            raise ValidationError("Serial number is required")
        record = await self.find(serial)
        if record is None:
            raise NotFound("Serial not found")
        return record

    async def list_all(self) -> List[SerialRecord]:
        result = await self.db.execute(select(SerialRecord).order_by(SerialRecord.id))
        return list(result.scalars())

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def transition(self, serial: str, requested: Any) -> SerialRecord:
        if not serial:
            raise ValidationError("Serial number is required")
        if not requested:
            raise ValidationError("Status is required")
        if not isinstance(requested, str):
            raise ValidationError("Status must be a string")
        new_status = requested.strip().upper()
        if new_status not in TRANSITIONS:
            raise ValidationError("Invalid status. Must be one of: GENERATED, PRINTED, SCANNED")

        record = await self.find(serial)
        if record is None:
            raise NotFound("Serial not found")

        current = (record.status or "").upper()
        if not is_valid_transition(current, new_status):
            raise InvalidTransitionError(current, new_status)
        if current not in TRANSITIONS:
            logger.warning("Serial %s has unknown status %r, accepting %s", serial, record.status, new_status)

        async with transaction(self.db):
            # conditional on the status we read; a concurrent writer makes this a no-op
            result = await self.db.execute(
                update(SerialRecord)
                .where(SerialRecord.serial == serial, SerialRecord.status == record.status)
                .values(status=new_status, updated_at=datetime.now(timezone.utc))
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise ConflictError(f"Serial {serial} was updated concurrently")

        await self.db.refresh(record)
        logger.info("Serial %s: %s -> %s", serial, current, new_status)
        return record

    # =========================================================================
    # Stats
    # =========================================================================

    async def stats(self) -> Dict[str, int]:
        stmt = select(SerialRecord.status, func.count()).group_by(SerialRecord.status)
        result = await self.db.execute(stmt)
        counts = {status: int(count) for status, count in result.all()}

        generated = counts.get(SerialStatus.GENERATED.value, 0)
        printed = counts.get(SerialStatus.PRINTED.value, 0)
        scanned = counts.get(SerialStatus.SCANNED.value, 0)
        return {
            "generated": generated,
            "printed": printed,
            "scanned": scanned,
            "total": generated + printed + scanned,
            "pending": generated + printed,
        }
