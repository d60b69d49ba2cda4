from datetime import date, datetime
from typing import Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class _Camel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


# ----------------------------------------------------------------------------
# Serials
# ----------------------------------------------------------------------------

class AllocateIn(_Camel):
    # loose types: the allocator reports which field is wrong
    product_code: Any = Field(None, alias="productCode")
    batch: Any = None
    manufacture_date: Any = Field(None, alias="manufactureDate")
    expiry_date: Any = Field(None, alias="expiryDate")


class AllocateOut(_Camel):
    serial: str
    label_payload: str = Field(alias="labelPayload")


class ValidateOut(_Camel):
    valid: bool = True
    serial: str
    batch: str
    expiry_date: date = Field(alias="expiryDate")
    product_code: str = Field(alias="productCode")


class StatusIn(BaseModel):
    status: Any = None


class StatusOut(_Camel):
    success: bool = True
    serial: str
    status: str


class StatsOut(BaseModel):
    generated: int
    printed: int
    scanned: int
    total: int
    pending: int


class SerialOut(_Camel):
    serial: str
    product_code: str = Field(alias="productCode")
    batch: str
    manufacture_date: date = Field(alias="manufactureDate")
    expiry_date: date = Field(alias="expiryDate")
    label_payload: str = Field(alias="labelPayload")
    status: str
    created_at: Optional[datetime] = Field(None, alias="createdAt")


# ----------------------------------------------------------------------------
# Aggregation
# ----------------------------------------------------------------------------

class ContainerIn(_Camel):
    container_id: Any = Field(None, alias="containerId")
    members: Any = None


class ContainerCreatedOut(_Camel):
    status: str = "AGGREGATED"
    container_id: str = Field(alias="containerId")
    member_count: int = Field(alias="memberCount")
    created_at: datetime = Field(alias="createdAt")


class ContainerOut(_Camel):
    container_id: str = Field(alias="containerId")
    members: List[str]
    member_count: int = Field(alias="memberCount")
    created_at: datetime = Field(alias="createdAt")


class ContainerSummary(_Camel):
    container_id: str = Field(alias="containerId")
    member_count: int = Field(alias="memberCount")
    created_at: datetime = Field(alias="createdAt")


class Pagination(_Camel):
    page: int
    page_size: int = Field(alias="pageSize")
    total: int
    pages: int


class ContainerPage(_Camel):
    containers: List[ContainerSummary]
    pagination: Pagination


# ----------------------------------------------------------------------------
# Integration
# ----------------------------------------------------------------------------

class PushOut(_Camel):
    status: str
    trace_id: str = Field(alias="traceId")
    upstream_status: Optional[int] = Field(None, alias="upstreamStatus")
    error: Optional[str] = None


# ----------------------------------------------------------------------------
# Labels
# ----------------------------------------------------------------------------

class LabelIn(_Camel):
    label_payload: Any = Field(None, alias="labelPayload")


class LabelOut(_Camel):
    status: str
    label_payload: str = Field(alias="labelPayload")
    serial: Optional[str] = None
    print_count: int = Field(1, alias="printCount")
    printed_at: Optional[datetime] = Field(None, alias="printedAt")
