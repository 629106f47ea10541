"""
Serial Allocators for Pack Labels

An allocator reserves a contiguous range of serial numbers for one prefix
bucket and returns the first number of the range:

    start = await allocator(SerialBucket("KBM2b1", "b", "1"), count=100)
    # start .. start + 99 now belong to the caller

The codec in app.services.pack_codec only formats the numbers it is given,
so any allocator with this signature can be plugged into PackLabelService.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict

from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.pack_label import PackLabel, PackSequence
from app.services.pack_codec import (
    MAX_SERIAL,
    SERIAL_LENGTH,
    InvalidSerialError,
    SerialOutOfRangeError,
    decode_serial,
    encode_serial,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SerialBucket:
    """Key that scopes serial uniqueness"""
    prefix: str
    month_code: str
    year_code: str


SerialAllocator = Callable[[SerialBucket, int], Awaitable[int]]


def _reserve(bucket: SerialBucket, last_serial: int, count: int) -> int:
    """Validate a reservation and return the new last serial."""
    if count < 1:
        raise ValueError(f"Serial count must be at least 1, got {count}")

    end_serial = last_serial + count
    if end_serial > MAX_SERIAL:
        raise SerialOutOfRangeError(
            f"Serial number overflow for {bucket.prefix}! Max is {MAX_SERIAL}, "
            f"requested end: {end_serial}. Current last serial: {last_serial}"
        )
    return end_serial


class InMemorySerialAllocator:
    """Process-local allocator, one counter per bucket."""

    def __init__(self, initial: Dict[SerialBucket, int] = None):
        self._last_serials: Dict[SerialBucket, int] = dict(initial or {})
        self._lock = threading.Lock()

    async def __call__(self, bucket: SerialBucket, count: int) -> int:
        with self._lock:
            last_serial = self._last_serials.get(bucket, 0)
            self._last_serials[bucket] = _reserve(bucket, last_serial, count)
        return last_serial + 1

    def last_serial(self, bucket: SerialBucket) -> int:
        with self._lock:
            return self._last_serials.get(bucket, 0)


class DatabaseSerialAllocator:
    """
    Allocator backed by the pack_sequences table.

    The bucket row is created if missing and then locked with
    SELECT FOR UPDATE, so concurrent requests for the same bucket
    are serialized by the database. The caller owns the transaction.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _highest_issued_serial(self, bucket: SerialBucket) -> int:
        """Highest serial already on a stored label for the bucket's prefix, 0 if none."""
        result = await self.db.execute(
            select(func.max(PackLabel.label_id))
            .where(PackLabel.label_id.startswith(bucket.prefix, autoescape=True))
        )
        highest = result.scalar()
        if not highest or len(highest) != len(bucket.prefix) + SERIAL_LENGTH:
            return 0
        try:
            return decode_serial(highest[len(bucket.prefix):])
        except InvalidSerialError:
            return 0

    async def _ensure_sequence_row(self, bucket: SerialBucket) -> None:
        if await self._select_sequence(bucket, lock=False) is not None:
            return

        # Rows are pruned after the retention window; a re-created row resumes
        # after the labels already issued so serials are never handed out twice.
        seed = await self._highest_issued_serial(bucket)
        if seed:
            logger.info(
                "Re-creating sequence for %s from issued serial %s",
                bucket.prefix, encode_serial(seed),
            )

        dialect = self.db.get_bind().dialect.name
        values = {
            "prefix": bucket.prefix,
            "month_code": bucket.month_code,
            "year_code": bucket.year_code,
            "last_serial": encode_serial(seed),
        }

        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        elif dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        else:
            insert = None

        if insert is not None:
            stmt = insert(PackSequence).values(**values).on_conflict_do_nothing(
                index_elements=["prefix", "month_code", "year_code"]
            )
            await self.db.execute(stmt)
            return

        self.db.add(PackSequence(**values))
        await self.db.flush()

    async def _select_sequence(self, bucket: SerialBucket, lock: bool = True):
        stmt = select(PackSequence).where(
            PackSequence.prefix == bucket.prefix,
            PackSequence.month_code == bucket.month_code,
            PackSequence.year_code == bucket.year_code,
        )
        if lock:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def __call__(self, bucket: SerialBucket, count: int) -> int:
        await self._ensure_sequence_row(bucket)
        sequence = await self._select_sequence(bucket)

        last_serial = decode_serial(sequence.last_serial)
        end_serial = _reserve(bucket, last_serial, count)

        sequence.last_serial = encode_serial(end_serial)
        sequence.updated_at = datetime.now(timezone.utc)
        await self.db.flush()

        logger.debug(
            "Reserved serials %d-%d for %s", last_serial + 1, end_serial, bucket.prefix
        )
        return last_serial + 1


async def cleanup_expired_pack_sequences(db: AsyncSession, retention_days: int = 60) -> int:
    """Delete sequence rows not used within the retention window."""
    cutoff = datetime.now(timezone.utc) - timedelta(days=retention_days)
    result = await db.execute(
        delete(PackSequence)
        .where(PackSequence.updated_at < cutoff)
        .execution_options(synchronize_session=False)
    )
    deleted = result.rowcount or 0
    if deleted:
        logger.info("Removed %d expired pack sequences (older than %d days)", deleted, retention_days)
    return deleted
