"""
Pack Label API Endpoints

Endpoints for:
- Reserving serial ranges per prefix bucket
- Generating and exporting pack labels
- Decoding label IDs
- Rendering QR codes and Code128 barcodes
- Tracking the pack lifecycle and customer QR scans
- Grouping packs for shipment
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from app.api.deps import get_pack_label_service
from app.config import settings
from app.models.pack_label import LabelStatus
from app.schemas.pack_label import (
    # Serial reservation
    NextSerialsRequest,
    NextSerialsResponse,
    # Generation
    GenerateLabelsRequest,
    GenerateLabelsResponse,
    GeneratedLabel,
    ExportLabelsRequest,
    # Labels
    PackLabelResponse,
    PackLabelListResponse,
    LabelStatusUpdate,
    BulkStatusUpdate,
    BulkStatusUpdateResponse,
    DecodedLabelResponse,
    QRScanRequest,
    QRScanResponse,
    CodeOption,
    LabelCodesResponse,
    # Groups
    PackIdsRequest,
    PackIdsValidationResponse,
    LabelGroupResponse,
    ShipGroupRequest,
)
from app.services.label_render import LabelRenderError, render_barcode_png, render_qr_png
from app.services.pack_codec import (
    PackCodecError,
    SerialOutOfRangeError,
    decode_month,
    decode_year,
    encode_serial,
    parse_label_id,
)
from app.services.pack_label_service import (
    PACK_SIZES,
    PACKAGING_TYPES,
    SUPPLIERS,
    LabelNotFoundError,
    PackLabelError,
    PackLabelService,
)


logger = logging.getLogger(__name__)

router = APIRouter()


def _http_error(exc: Exception) -> HTTPException:
    """Map domain errors to HTTP errors."""
    if isinstance(exc, LabelNotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, SerialOutOfRangeError):
        logger.error("Serial capacity exhausted: %s", exc)
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


# ==================== Serial Reservation ====================

@router.post("/serials/next", response_model=NextSerialsResponse)
async def get_next_pack_serials(
    data: NextSerialsRequest,
    service: PackLabelService = Depends(get_pack_label_service),
):
    """Reserve `count` serials for a prefix bucket and return the first one."""
    try:
        start_serial = await service.reserve_serials(
            prefix=data.prefix,
            month_code=data.month_code,
            year_code=data.year_code,
            count=data.count,
        )
    except (PackCodecError, ValueError) as e:
        raise _http_error(e)
    return NextSerialsResponse(start_serial=start_serial)


# ==================== Generation ====================

@router.post("/generate", response_model=GenerateLabelsResponse)
async def generate_pack_labels(
    data: GenerateLabelsRequest,
    service: PackLabelService = Depends(get_pack_label_service),
):
    """
    Generate a batch of sequential pack labels.

    The whole batch is rejected if the bucket cannot hold `quantity` more serials.
    """
    try:
        batch = await service.generate_labels(
            supplier=data.supplier,
            packaging_type=data.packaging_type,
            size=data.size,
            quantity=data.quantity,
            on_date=data.on_date,
        )
    except (PackLabelError, PackCodecError) as e:
        raise _http_error(e)

    return GenerateLabelsResponse(
        prefix=batch.prefix,
        month_code=batch.month_code,
        year_code=batch.year_code,
        start_serial=encode_serial(batch.start_serial),
        quantity=batch.quantity,
        labels=[
            GeneratedLabel(label_id=label_id, tracking_url=service.tracking_url(label_id))
            for label_id in batch.label_ids
        ],
    )


@router.post("/export")
async def export_pack_labels(
    data: ExportLabelsRequest,
    service: PackLabelService = Depends(get_pack_label_service),
):
    """Export pack IDs with their QR tracking URLs as CSV."""
    content = service.export_csv(data.label_ids)
    filename = f"pack-labels-{datetime.now(timezone.utc).date().isoformat()}.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"}
    )


# ==================== Lookup ====================

@router.get("", response_model=PackLabelListResponse)
async def list_pack_labels(
    status: Optional[LabelStatus] = Query(None, description="Filter by lifecycle status"),
    prefix: Optional[str] = Query(None, max_length=11, description="Filter by label ID prefix"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    service: PackLabelService = Depends(get_pack_label_service),
):
    labels, total = await service.list_labels(
        status=status.value if status else None,
        prefix=prefix,
        limit=limit,
        offset=offset,
    )
    return PackLabelListResponse(
        items=[PackLabelResponse.model_validate(label) for label in labels],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/codes", response_model=LabelCodesResponse)
async def list_label_codes():
    """Supplier, packaging type and size codes accepted by /generate"""
    def options(codes):
        return [CodeOption(value=value, label=f"{name} ({value})") for value, name in codes.items()]

    return LabelCodesResponse(
        suppliers=options(SUPPLIERS),
        packaging_types=options(PACKAGING_TYPES),
        sizes=options(PACK_SIZES),
    )


@router.get("/decode/{label_id}", response_model=DecodedLabelResponse)
async def decode_pack_label(label_id: str):
    """Split a label ID into its codes without touching the database."""
    try:
        parsed = parse_label_id(label_id)
        month = decode_month(parsed.month_code)
        year = decode_year(parsed.year_code, settings.PACK_EPOCH_YEAR)
    except PackCodecError as e:
        raise _http_error(e)

    return DecodedLabelResponse(
        label_id=parsed.full,
        prefix=parsed.prefix,
        supplier=parsed.supplier,
        packaging_type=parsed.packaging_type,
        size=parsed.size,
        month_code=parsed.month_code,
        month=month,
        year_code=parsed.year_code,
        year=year,
        serial=parsed.serial,
        serial_number=parsed.serial_number,
    )


# ==================== Scanning ====================

@router.post("/scan", response_model=QRScanResponse)
async def record_qr_scan(
    data: QRScanRequest,
    service: PackLabelService = Depends(get_pack_label_service),
):
    """Record a customer QR scan from the returns portal."""
    try:
        await service.record_qr_scan(data.pack_id)
    except PackLabelError as e:
        raise _http_error(e)
    return QRScanResponse(success=True)


@router.put("/status", response_model=BulkStatusUpdateResponse)
async def update_pack_label_statuses(
    data: BulkStatusUpdate,
    service: PackLabelService = Depends(get_pack_label_service),
):
    """Move a batch of scanned packs to one status; unknown IDs are listed back."""
    result = await service.update_statuses(
        data.pack_ids,
        data.status,
        merchant_id=data.merchant_id,
        order_id=data.order_id,
    )
    return BulkStatusUpdateResponse(**result)


# ==================== Groups ====================

@router.post("/groups/validate", response_model=PackIdsValidationResponse)
async def validate_group_pack_ids(
    data: PackIdsRequest,
    service: PackLabelService = Depends(get_pack_label_service),
):
    result = await service.validate_pack_ids(data.pack_ids)
    return PackIdsValidationResponse(**result)


@router.post("/groups", response_model=LabelGroupResponse)
async def create_label_group(
    data: PackIdsRequest,
    service: PackLabelService = Depends(get_pack_label_service),
):
    """Group valid, ungrouped packs; unknown or grouped IDs are skipped."""
    try:
        group = await service.create_group(data.pack_ids)
    except PackLabelError as e:
        raise _http_error(e)
    return LabelGroupResponse.model_validate(group)


@router.post("/groups/{group_id}/ship", response_model=LabelGroupResponse)
async def ship_label_group(
    group_id: str,
    data: ShipGroupRequest,
    service: PackLabelService = Depends(get_pack_label_service),
):
    try:
        group = await service.ship_group(group_id, data.merchant_id)
    except PackLabelError as e:
        raise _http_error(e)
    return LabelGroupResponse.model_validate(group)


# ==================== Single Label ====================

@router.get("/{label_id}", response_model=PackLabelResponse)
async def get_pack_label(
    label_id: str,
    service: PackLabelService = Depends(get_pack_label_service),
):
    try:
        label = await service.get_label(label_id)
    except PackLabelError as e:
        raise _http_error(e)
    return PackLabelResponse.model_validate(label)


@router.put("/{label_id}/status", response_model=PackLabelResponse)
async def update_pack_label_status(
    label_id: str,
    data: LabelStatusUpdate,
    service: PackLabelService = Depends(get_pack_label_service),
):
    try:
        label = await service.update_status(
            label_id,
            data.status,
            merchant_id=data.merchant_id,
            order_id=data.order_id,
        )
    except PackLabelError as e:
        raise _http_error(e)
    return PackLabelResponse.model_validate(label)


@router.get("/{label_id}/qr.png")
async def get_pack_label_qr(
    label_id: str,
    service: PackLabelService = Depends(get_pack_label_service),
):
    """QR code PNG pointing at the label's tracking URL."""
    try:
        content = render_qr_png(service.tracking_url(label_id))
    except LabelRenderError as e:
        raise _http_error(e)
    return Response(content=content, media_type="image/png")


@router.get("/{label_id}/barcode.png")
async def get_pack_label_barcode(label_id: str):
    """Code128 PNG of the raw label ID."""
    try:
        content = render_barcode_png(label_id)
    except LabelRenderError as e:
        raise _http_error(e)
    return Response(content=content, media_type="image/png")
