"""
Pack Label Models

Label Structure: KBM2b100001 (11 characters)
- K: Pack label marker
- B: Supplier code
- M: Packaging type
- 2: Size class
- b: Month code
- 1: Year code
- 00001: Serial (5 chars, base 31)

Serials are allocated per (prefix, month_code, year_code) bucket from
pack_sequences; the full label_id is unique across pack_labels.
"""

import enum
import uuid
from datetime import datetime, timezone
from typing import List, Optional
from sqlalchemy import String, Integer, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship, Mapped, mapped_column
from app.database import Base


class LabelStatus(str, enum.Enum):
    """Lifecycle status of a physical pack"""
    AVAILABLE = "available"      # Produced, not yet grouped or shipped
    GROUPED = "grouped"          # Linked to a label group
    SHIPPED = "shipped"          # Shipped to a retailer
    IN_USE = "in_use"            # Sent out with a customer order
    RETURNED = "returned"        # Back in the warehouse
    DAMAGED = "damaged"          # Retired from circulation


class GroupStatus(str, enum.Enum):
    """Status of a label group"""
    PENDING = "pending"
    SHIPPED = "shipped"


class ScanEventType(str, enum.Enum):
    """Scan event types; every label status has a matching lifecycle event"""
    QR_SCAN = "qr_scan"
    GROUPED = "grouped"
    SHIPPED = "shipped"
    IN_USE = "in_use"
    RETURNED = "returned"
    DAMAGED = "damaged"
    AVAILABLE = "available"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PackSequence(Base):
    """
    Tracks the last issued serial per prefix bucket.

    last_serial is stored in its encoded 5-char form ('00000' = nothing issued).
    """
    __tablename__ = "pack_sequences"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )

    # Sequence key components
    prefix: Mapped[str] = mapped_column(String(10), nullable=False)
    month_code: Mapped[str] = mapped_column(String(1), nullable=False)
    year_code: Mapped[str] = mapped_column(String(1), nullable=False)

    __table_args__ = (
        UniqueConstraint('prefix', 'month_code', 'year_code', name='uq_pack_sequence_bucket'),
    )

    # Sequence tracking
    last_serial: Mapped[str] = mapped_column(String(5), default="00000", nullable=False)

    # Metadata
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def __repr__(self):
        return f"<PackSequence {self.prefix}: {self.last_serial}>"


class LabelGroup(Base):
    """A batch of packs grouped for shipping to one retailer"""
    __tablename__ = "label_groups"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )
    group_id: Mapped[str] = mapped_column(String(40), unique=True, nullable=False, index=True)
    label_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    merchant_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=GroupStatus.PENDING.value, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    labels: Mapped[List["PackLabel"]] = relationship(back_populates="group")

    def __repr__(self):
        return f"<LabelGroup {self.group_id}: {self.label_count} packs>"


class PackLabel(Base):
    """A generated pack label attached to one physical reusable pack"""
    __tablename__ = "pack_labels"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )
    label_id: Mapped[str] = mapped_column(String(11), unique=True, nullable=False, index=True)

    group_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("label_groups.id", ondelete="SET NULL"),
        nullable=True
    )
    merchant_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=LabelStatus.AVAILABLE.value, nullable=False, index=True)
    current_order_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    previous_uses: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    group: Mapped[Optional[LabelGroup]] = relationship(back_populates="labels")

    def __repr__(self):
        return f"<PackLabel {self.label_id}: {self.status}>"


class ScanEvent(Base):
    """A scan or lifecycle change recorded against a pack"""
    __tablename__ = "scan_events"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )
    label_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("pack_labels.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    merchant_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    event_type: Mapped[str] = mapped_column(String(20), nullable=False)
    location: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    scanned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    def __repr__(self):
        return f"<ScanEvent {self.event_type} {self.label_id}>"
