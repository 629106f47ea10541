"""
Pack Label Schemas

Label Structure: KBM2b100001 (11 characters)
- K: Marker, B: Supplier, M: Packaging type, 2: Size
- b: Month code, 1: Year code
- 00001: Serial (5 chars, base 31)
"""

from datetime import date, datetime
from typing import Optional, List
from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.schemas.base import BaseResponseSchema, BaseCreateSchema
from app.models.pack_label import LabelStatus


# ==================== Serial Reservation ====================

class NextSerialsRequest(BaseCreateSchema):
    prefix: str = Field(..., min_length=1, max_length=10)
    month_code: str = Field(..., min_length=1, max_length=1)
    year_code: str = Field(..., min_length=1, max_length=1)
    count: int = Field(..., ge=1)


class NextSerialsResponse(BaseModel):
    start_serial: str


# ==================== Generation ====================

class GenerateLabelsRequest(BaseCreateSchema):
    supplier: str = Field(..., min_length=1, max_length=1, description="Supplier code, e.g. B")
    packaging_type: str = Field(..., min_length=1, max_length=1, description="Packaging type, e.g. M")
    size: str = Field(..., min_length=1, max_length=1, description="Size class, 1-5")
    quantity: int = Field(10, ge=1, description="Number of labels to generate")
    on_date: Optional[date] = Field(None, description="Production date, defaults to today (UTC)")

    @field_validator('supplier', 'packaging_type', 'size')
    @classmethod
    def upper_code(cls, v):
        return v.upper()


class GeneratedLabel(BaseModel):
    label_id: str
    tracking_url: str


class GenerateLabelsResponse(BaseModel):
    prefix: str
    month_code: str
    year_code: str
    start_serial: str
    quantity: int
    labels: List[GeneratedLabel]


class ExportLabelsRequest(BaseCreateSchema):
    label_ids: List[str] = Field(..., min_length=1)


# ==================== Labels ====================

class PackLabelResponse(BaseResponseSchema):
    id: str
    label_id: str
    status: str
    group_id: Optional[str] = None
    merchant_id: Optional[str] = None
    current_order_id: Optional[str] = None
    previous_uses: int
    created_at: datetime
    updated_at: datetime


class PackLabelListResponse(BaseModel):
    items: List[PackLabelResponse]
    total: int
    limit: int
    offset: int


class LabelStatusUpdate(BaseCreateSchema):
    status: LabelStatus
    merchant_id: Optional[str] = None
    order_id: Optional[str] = None


class BulkStatusUpdate(LabelStatusUpdate):
    pack_ids: List[str] = Field(..., min_length=1, description="Scanned pack IDs")


class BulkStatusUpdateResponse(BaseModel):
    updated: List[str]
    not_found: List[str]


class DecodedLabelResponse(BaseModel):
    label_id: str
    prefix: str
    supplier: str
    packaging_type: str
    size: str
    month_code: str
    month: int
    year_code: str
    year: int
    serial: str
    serial_number: int


class QRScanRequest(BaseCreateSchema):
    pack_id: str = Field(..., min_length=1, alias="packId")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class QRScanResponse(BaseModel):
    success: bool


class CodeOption(BaseModel):
    value: str
    label: str


class LabelCodesResponse(BaseModel):
    suppliers: List[CodeOption]
    packaging_types: List[CodeOption]
    sizes: List[CodeOption]


# ==================== Groups ====================

class PackIdsRequest(BaseCreateSchema):
    pack_ids: str = Field(..., description="Pack IDs separated by newlines, commas or tabs")


class PackIdsValidationResponse(BaseModel):
    valid: List[str]
    invalid: List[str]
    already_grouped: List[str]


class LabelGroupResponse(BaseResponseSchema):
    id: str
    group_id: str
    label_count: int
    merchant_id: Optional[str] = None
    status: str
    created_at: datetime


class ShipGroupRequest(BaseCreateSchema):
    merchant_id: str = Field(..., min_length=1)
