# serial_hub/db_models.py
"""
SQLAlchemy ORM Models for Serial Hub.

Uniqueness constraints on serial, container_id, label_payload and the counter
name are the only concurrency guarantees the services rely on.
"""
from __future__ import annotations
from datetime import datetime, date
from typing import Optional, List
import enum

from sqlalchemy import (
    String, Integer, BigInteger, Date, DateTime, Index, JSON, func
)
from sqlalchemy.orm import Mapped, mapped_column

from serial_hub.database import Base

# ============================================================================
# ENUMS
# ============================================================================

class SerialStatus(str, enum.Enum):
    GENERATED = "GENERATED"
    PRINTED = "PRINTED"
    SCANNED = "SCANNED"


# ============================================================================
# SERIALS
# ============================================================================

class SerialRecord(Base):
    __tablename__ = "serials"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    serial: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    product_code: Mapped[str] = mapped_column(String(100), nullable=False)
    batch: Mapped[str] = mapped_column(String(100), nullable=False)
    manufacture_date: Mapped[date] = mapped_column(Date, nullable=False)
    expiry_date: Mapped[date] = mapped_column(Date, nullable=False)
    label_payload: Mapped[str] = mapped_column(String(100), nullable=False)
    # plain string, not SQLEnum: legacy rows may carry values outside SerialStatus
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=SerialStatus.GENERATED.value)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now(), nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index("idx_serials_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<SerialRecord {self.serial} {self.status}>"


class SerialCounter(Base):
    """Single-row-per-domain allocation counter."""
    __tablename__ = "serial_counters"

    name: Mapped[str] = mapped_column(String(50), primary_key=True)
    value: Mapped[int] = mapped_column(BigInteger, nullable=False)


# ============================================================================
# AGGREGATION
# ============================================================================

class Container(Base):
    __tablename__ = "containers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    container_id: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    members: Mapped[List[str]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_containers_created", "created_at"),
    )

    @property
    def member_count(self) -> int:
        return len(self.members or [])


# ============================================================================
# LABELS
# ============================================================================

class Label(Base):
    __tablename__ = "labels"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    label_payload: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    serial: Mapped[Optional[str]] = mapped_column(String(50))
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=SerialStatus.PRINTED.value)
    print_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    printed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_labels_serial", "serial"),
    )
