# serial_hub/services/aggregation.py
"""
Aggregation Coordinator - groups serials into containers.

A container is written only after every member has been confirmed by the
serialization service. The first unknown member aborts the whole request;
nothing is ever partially written.
"""
from __future__ import annotations
import logging
import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Protocol, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from serial_hub.database import transaction
from serial_hub.db_models import Container
from serial_hub.errors import ConflictError, NotFound, ValidationError

logger = logging.getLogger(__name__)

MAX_ID_LENGTH = 50
MAX_MEMBERS = 1000
MEMBER_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")

DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 10


class SerialChecker(Protocol):
    async def exists(self, serial: str) -> bool: ...


def validate_container_request(container_id: Any, members: Any) -> Tuple[str, List[str]]:
    if not container_id:
        raise ValidationError("Container ID is required")
    if not isinstance(container_id, str):
        raise ValidationError("Container ID must be a string")
    if len(container_id) > MAX_ID_LENGTH:
        raise ValidationError("Container ID is too long")

    if members is None:
        raise ValidationError("Members array is required")
    if not isinstance(members, list):
        raise ValidationError("Members must be an array")
    if not members:
        raise ValidationError("Members array cannot be empty")
    if len(members) > MAX_MEMBERS:
        raise ValidationError("Too many members in array")

    for i, serial in enumerate(members):
        if not isinstance(serial, str):
            raise ValidationError(f"Serial at index {i} must be a string")
        if len(serial) > MAX_ID_LENGTH:
            raise ValidationError(f"Serial at index {i} is too long")
        if not MEMBER_PATTERN.match(serial):
            raise ValidationError(f"Serial at index {i} contains invalid characters")
    return container_id, list(members)


def page_params(page: Any, page_size: Any) -> Tuple[int, int]:
    """Coerce page/pageSize query values; bad or non-positive values fall back to defaults."""
    def _int(value: Any, default: int) -> int:
        try:
            n = int(value)
        except (TypeError, ValueError):
            return default
        return n if n > 0 else default
    return _int(page, DEFAULT_PAGE), _int(page_size, DEFAULT_PAGE_SIZE)


class ContainerCoordinator:
    def __init__(self, db: AsyncSession, checker: SerialChecker):
        self.db = db
        self.checker = checker

    async def _find(self, container_id: str):
        result = await self.db.execute(select(Container).where(Container.container_id == container_id))
        return result.scalar_one_or_none()

    async def create(self, container_id: Any, members: Any) -> Container:
        container_id, members = validate_container_request(container_id, members)

        # cheap rejection before any network call
        if await self._find(container_id) is not None:
            raise ConflictError("Container ID already exists")
        # end the read so no pooled connection is held across the network calls below
        await self.db.rollback()

        # sequential on purpose: the first bad member is the one reported
        for serial in members:
            if not await self.checker.exists(serial):
                logger.info("Container %s rejected: serial %s does not exist", container_id, serial)
                raise ValidationError(f"Serial {serial} does not exist")

        container = Container(
            container_id=container_id,
            members=members,
            created_at=datetime.now(timezone.utc),
        )
        try:
            async with transaction(self.db):
                self.db.add(container)
                await self.db.flush()
        except IntegrityError as e:
            logger.warning("Container %s lost a create race: %s", container_id, e.orig)
            raise ConflictError("Container ID already exists")

        logger.info("Container %s created with %d members", container_id, len(members))
        return container

    async def get(self, container_id: str) -> Container:
        container = await self._find(container_id)
        if container is None:
            raise NotFound("Container not found")
        return container

    async def list(self, page: Any = DEFAULT_PAGE, page_size: Any = DEFAULT_PAGE_SIZE) -> Dict[str, Any]:
        """
        Offset pagination, newest first.

        Pages are not stable under concurrent inserts: a new container shifts
        every later page by one.
        """
        page, page_size = page_params(page, page_size)
        stmt = (
            select(Container)
            .order_by(Container.created_at.desc(), Container.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        result = await self.db.execute(stmt)
        items = list(result.scalars())

        total = (await self.db.execute(select(func.count()).select_from(Container))).scalar_one()
        return {
            "items": items,
            "page": page,
            "page_size": page_size,
            "total": int(total),
            "pages": math.ceil(total / page_size) if total else 0,
        }
