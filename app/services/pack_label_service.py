"""
Pack Label Service

Generates, persists and tracks reusable pack labels.

Generation flow:
1. Build the prefix for supplier/type/size and the production month/year
2. Reserve a contiguous serial range for that prefix bucket from the allocator
3. Encode every serial and compose the label IDs (whole batch checked first)
4. Insert the labels as 'available' in chunks

Lifecycle: available -> grouped -> shipped -> in_use -> returned (-> available ...).
Every lifecycle change and every customer QR scan is logged as a ScanEvent.
"""

import logging
import random
import re
import string
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import quote

from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings, settings as default_settings
from app.models.pack_label import (
    GroupStatus,
    LabelGroup,
    LabelStatus,
    PackLabel,
    ScanEvent,
    ScanEventType,
)
from app.services.pack_codec import (
    build_prefix,
    decode_serial,
    encode_month,
    encode_serial,
    encode_year,
    generate_label_ids,
)
from app.services.serial_allocator import (
    DatabaseSerialAllocator,
    SerialAllocator,
    SerialBucket,
    cleanup_expired_pack_sequences,
)


logger = logging.getLogger(__name__)


# Business code enumerations (value -> display label)
SUPPLIERS: Dict[str, str] = {
    "B": "LegoPlast Sàrl",
    "R": "RePack",
    "X": "Testing",
}

PACKAGING_TYPES: Dict[str, str] = {
    "M": "Mailer",
    "B": "Box",
    "P": "Pouch",
    "T": "Tote",
    "G": "Garment",
}

PACK_SIZES: Dict[str, str] = {
    "1": "XS",
    "2": "S",
    "3": "M",
    "4": "L",
    "5": "XL",
}

CSV_HEADER = "Pack ID,QR Code URL"

QR_SCAN_LOCATION = "returns_portal"

_PACK_ID_SPLIT = re.compile(r"[\n,\r\t]+")
_BASE36 = string.digits + string.ascii_uppercase


class PackLabelError(Exception):
    """Exception raised when a pack label operation is rejected."""
    pass


class LabelNotFoundError(PackLabelError):
    """Exception raised when a label or group ID is unknown."""
    pass


@dataclass
class GeneratedBatch:
    prefix: str
    month_code: str
    year_code: str
    start_serial: int
    label_ids: List[str] = field(default_factory=list)

    @property
    def quantity(self) -> int:
        return len(self.label_ids)


def _to_base36(num: int) -> str:
    if num == 0:
        return "0"
    digits = []
    while num:
        num, rem = divmod(num, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_group_id() -> str:
    """Group ID: GRP-<base36 epoch millis>-<4 random base36 chars>"""
    timestamp = _to_base36(int(time.time() * 1000))
    suffix = "".join(random.choices(_BASE36, k=4))
    return f"GRP-{timestamp}-{suffix}"


def parse_pack_ids(raw: str) -> List[str]:
    """Split pasted/uploaded pack IDs on newlines, commas and tabs."""
    return [pack_id.strip() for pack_id in _PACK_ID_SPLIT.split(raw or "") if pack_id.strip()]


class PackLabelService:
    """Service for generating pack labels and tracking their lifecycle"""

    def __init__(
        self,
        db: AsyncSession,
        allocator: Optional[SerialAllocator] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.allocator = allocator or DatabaseSerialAllocator(db)
        self.settings = settings or default_settings

    # ==================== Serial Reservation ====================

    async def reserve_serials(
        self,
        prefix: str,
        month_code: str,
        year_code: str,
        count: int,
    ) -> str:
        """
        Reserve `count` serials for a bucket and return the encoded start serial.

        Also clears out sequence rows for buckets that have gone quiet.
        """
        bucket = SerialBucket(prefix=prefix, month_code=month_code, year_code=year_code)
        start_serial = await self.allocator(bucket, count)
        await cleanup_expired_pack_sequences(self.db, self.settings.PACK_SEQUENCE_RETENTION_DAYS)
        return encode_serial(start_serial)

    # ==================== Generation ====================

    def validate_codes(self, supplier: str, packaging_type: str, size: str) -> None:
        if supplier not in SUPPLIERS:
            raise PackLabelError(f"Unknown supplier code: {supplier}. Valid: {list(SUPPLIERS)}")
        if packaging_type not in PACKAGING_TYPES:
            raise PackLabelError(
                f"Unknown packaging type: {packaging_type}. Valid: {list(PACKAGING_TYPES)}"
            )
        if size not in PACK_SIZES:
            raise PackLabelError(f"Unknown pack size: {size}. Valid: {list(PACK_SIZES)}")

    async def generate_labels(
        self,
        supplier: str,
        packaging_type: str,
        size: str,
        quantity: int,
        on_date: Optional[date] = None,
    ) -> GeneratedBatch:
        """Generate and persist `quantity` new labels for one prefix bucket."""
        max_quantity = self.settings.MAX_LABELS_PER_BATCH
        if quantity < 1 or quantity > max_quantity:
            raise PackLabelError(f"Please enter a quantity between 1 and {max_quantity}")
        self.validate_codes(supplier, packaging_type, size)

        if on_date is None:
            on_date = datetime.now(timezone.utc).date()

        epoch_year = self.settings.PACK_EPOCH_YEAR
        prefix = build_prefix(supplier, packaging_type, size, on_date, epoch_year)
        month_code = encode_month(on_date)
        year_code = encode_year(on_date.year, epoch_year)

        start_serial = decode_serial(
            await self.reserve_serials(prefix, month_code, year_code, quantity)
        )
        label_ids = generate_label_ids(prefix, start_serial, quantity)

        batch_size = self.settings.LABEL_INSERT_BATCH_SIZE
        for i in range(0, len(label_ids), batch_size):
            self.db.add_all([
                PackLabel(label_id=label_id, status=LabelStatus.AVAILABLE.value, previous_uses=0)
                for label_id in label_ids[i:i + batch_size]
            ])
            await self.db.flush()

        logger.info(
            "Generated %d pack labels for %s starting at serial %s",
            quantity, prefix, encode_serial(start_serial),
        )
        return GeneratedBatch(
            prefix=prefix,
            month_code=month_code,
            year_code=year_code,
            start_serial=start_serial,
            label_ids=label_ids,
        )

    # ==================== Export ====================

    def tracking_url(self, label_id: str) -> str:
        base_url = self.settings.TRACKING_BASE_URL.rstrip("/")
        return f"{base_url}/search-orders?packId={quote(label_id, safe='')}"

    def export_csv(self, label_ids: Iterable[str]) -> str:
        lines = [CSV_HEADER]
        for label_id in label_ids:
            lines.append(f"{label_id},{self.tracking_url(label_id)}")
        return "\n".join(lines)

    # ==================== Lookup ====================

    async def get_label(self, label_id: str) -> PackLabel:
        result = await self.db.execute(
            select(PackLabel).where(PackLabel.label_id == label_id)
        )
        label = result.scalar_one_or_none()
        if not label:
            raise LabelNotFoundError(f"Pack {label_id} not found")
        return label

    async def list_labels(
        self,
        status: Optional[str] = None,
        prefix: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> Tuple[List[PackLabel], int]:
        query = select(PackLabel)
        count_query = select(func.count(PackLabel.id))
        if status:
            query = query.where(PackLabel.status == status)
            count_query = count_query.where(PackLabel.status == status)
        if prefix:
            query = query.where(PackLabel.label_id.startswith(prefix, autoescape=True))
            count_query = count_query.where(PackLabel.label_id.startswith(prefix, autoescape=True))

        total = (await self.db.execute(count_query)).scalar() or 0
        result = await self.db.execute(
            query.order_by(PackLabel.label_id).limit(limit).offset(offset)
        )
        return list(result.scalars().all()), total

    # ==================== Lifecycle ====================

    async def update_status(
        self,
        label_id: str,
        new_status: LabelStatus,
        merchant_id: Optional[str] = None,
        order_id: Optional[str] = None,
    ) -> PackLabel:
        label = await self.get_label(label_id)
        new_status = LabelStatus(new_status)

        self._apply_status(label, new_status, merchant_id, order_id)
        await self.db.flush()

        logger.info("Pack %s is now %s", label_id, new_status.value)
        return label

    async def update_statuses(
        self,
        label_ids: Iterable[str],
        new_status: LabelStatus,
        merchant_id: Optional[str] = None,
        order_id: Optional[str] = None,
    ) -> Dict[str, List[str]]:
        """
        Move many packs to one status, as inbound/outbound scanning does.

        Unknown IDs are reported back instead of failing the whole scan.
        """
        unique_ids = list(dict.fromkeys(label_ids))
        new_status = LabelStatus(new_status)

        labels: Dict[str, PackLabel] = {}
        if unique_ids:
            result = await self.db.execute(
                select(PackLabel).where(PackLabel.label_id.in_(unique_ids))
            )
            labels = {label.label_id: label for label in result.scalars()}

        updated, not_found = [], []
        for label_id in unique_ids:
            label = labels.get(label_id)
            if label is None:
                not_found.append(label_id)
                continue
            self._apply_status(label, new_status, merchant_id, order_id)
            updated.append(label_id)
        await self.db.flush()

        logger.info(
            "Moved %d pack(s) to %s (%d unknown)", len(updated), new_status.value, len(not_found)
        )
        return {"updated": updated, "not_found": not_found}

    def _apply_status(
        self,
        label: PackLabel,
        new_status: LabelStatus,
        merchant_id: Optional[str],
        order_id: Optional[str],
    ) -> None:
        label.status = new_status.value
        if new_status == LabelStatus.SHIPPED and merchant_id:
            label.merchant_id = merchant_id
        if new_status == LabelStatus.IN_USE and order_id:
            label.current_order_id = order_id
        if new_status == LabelStatus.RETURNED:
            label.merchant_id = None
            label.current_order_id = None
            label.previous_uses = (label.previous_uses or 0) + 1

        self.db.add(ScanEvent(
            label_id=label.id,
            event_type=ScanEventType(new_status.value).value,
            merchant_id=merchant_id if new_status == LabelStatus.SHIPPED else label.merchant_id,
        ))

    async def record_qr_scan(self, label_id: str) -> ScanEvent:
        """Record a customer scan from the returns portal."""
        label = await self.get_label(label_id)

        event = ScanEvent(
            label_id=label.id,
            merchant_id=label.merchant_id,
            event_type=ScanEventType.QR_SCAN.value,
            location=QR_SCAN_LOCATION,
        )
        self.db.add(event)
        label.previous_uses = (label.previous_uses or 0) + 1
        await self.db.flush()

        logger.info("Scan recorded for %s", label_id)
        return event

    # ==================== Groups ====================

    async def validate_pack_ids(self, raw: str) -> Dict[str, List[str]]:
        """Classify pasted pack IDs into valid, invalid and already grouped."""
        unique_ids = list(dict.fromkeys(parse_pack_ids(raw)))

        existing: Dict[str, Optional[str]] = {}
        if unique_ids:
            result = await self.db.execute(
                select(PackLabel.label_id, PackLabel.group_id)
                .where(PackLabel.label_id.in_(unique_ids))
            )
            existing = {row.label_id: row.group_id for row in result}

        valid, invalid, already_grouped = [], [], []
        for pack_id in unique_ids:
            if pack_id not in existing:
                invalid.append(pack_id)
            elif existing[pack_id]:
                already_grouped.append(pack_id)
            else:
                valid.append(pack_id)

        return {"valid": valid, "invalid": invalid, "already_grouped": already_grouped}

    async def create_group(self, raw: str) -> LabelGroup:
        validation = await self.validate_pack_ids(raw)
        valid = validation["valid"]
        if not valid:
            raise PackLabelError("No valid pack IDs to group")

        group = LabelGroup(
            group_id=generate_group_id(),
            label_count=len(valid),
            status=GroupStatus.PENDING.value,
        )
        self.db.add(group)
        await self.db.flush()

        await self.db.execute(
            update(PackLabel)
            .where(PackLabel.label_id.in_(valid))
            .values(group_id=group.id, status=LabelStatus.GROUPED.value)
            .execution_options(synchronize_session=False)
        )

        logger.info("Created group %s with %d packs", group.group_id, len(valid))
        return group

    async def ship_group(self, group_id: str, merchant_id: str) -> LabelGroup:
        result = await self.db.execute(
            select(LabelGroup).where(LabelGroup.group_id == group_id)
        )
        group = result.scalar_one_or_none()
        if not group:
            raise LabelNotFoundError(f"Group {group_id} not found")

        await self.db.execute(
            update(PackLabel)
            .where(PackLabel.group_id == group.id)
            .values(status=LabelStatus.SHIPPED.value, merchant_id=merchant_id)
            .execution_options(synchronize_session=False)
        )
        group.status = GroupStatus.SHIPPED.value
        group.merchant_id = merchant_id
        await self.db.flush()

        logger.info("Group %s shipped to %s", group_id, merchant_id)
        return group
