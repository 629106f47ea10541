"""
Serial Allocator Tests

In-memory and pack_sequences-backed allocators, plus expired sequence cleanup.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select, func

from app.models.pack_label import PackLabel, PackSequence
from app.services.pack_codec import MAX_SERIAL, SerialOutOfRangeError, encode_serial
from app.services.serial_allocator import (
    DatabaseSerialAllocator,
    InMemorySerialAllocator,
    SerialBucket,
    cleanup_expired_pack_sequences,
)

BUCKET = SerialBucket(prefix="KBM2b1", month_code="b", year_code="1")
OTHER_BUCKET = SerialBucket(prefix="KRB3c1", month_code="c", year_code="1")


# ==================== In-Memory ====================

def test_in_memory_allocates_contiguous_ranges():
    allocator = InMemorySerialAllocator()

    async def body():
        first = await allocator(BUCKET, 5)
        second = await allocator(BUCKET, 10)
        other = await allocator(OTHER_BUCKET, 1)
        return first, second, other

    first, second, other = asyncio.run(body())
    assert first == 1
    assert second == 6
    assert other == 1
    assert allocator.last_serial(BUCKET) == 15


def test_in_memory_overflow_leaves_counter_untouched():
    allocator = InMemorySerialAllocator(initial={BUCKET: MAX_SERIAL - 2})

    with pytest.raises(SerialOutOfRangeError):
        asyncio.run(allocator(BUCKET, 5))
    assert allocator.last_serial(BUCKET) == MAX_SERIAL - 2

    assert asyncio.run(allocator(BUCKET, 2)) == MAX_SERIAL - 1
    assert allocator.last_serial(BUCKET) == MAX_SERIAL


def test_in_memory_rejects_empty_request():
    allocator = InMemorySerialAllocator()
    with pytest.raises(ValueError):
        asyncio.run(allocator(BUCKET, 0))


# ==================== Database ====================

def test_database_allocator_reserves_and_persists(run_db):
    async def body(db):
        allocator = DatabaseSerialAllocator(db)
        first = await allocator(BUCKET, 3)
        second = await allocator(BUCKET, 4)
        other = await allocator(OTHER_BUCKET, 2)

        result = await db.execute(
            select(PackSequence).where(PackSequence.prefix == BUCKET.prefix)
        )
        sequence = result.scalar_one()
        rows = (await db.execute(select(func.count(PackSequence.id)))).scalar()
        return first, second, other, sequence.last_serial, rows

    first, second, other, last_serial, rows = run_db(body)
    assert first == 1
    assert second == 4
    assert other == 1
    assert last_serial == encode_serial(7)
    assert rows == 2


def test_database_allocator_overflow_fails_without_update(run_db):
    async def body(db):
        db.add(PackSequence(
            prefix=BUCKET.prefix,
            month_code=BUCKET.month_code,
            year_code=BUCKET.year_code,
            last_serial=encode_serial(MAX_SERIAL - 2),
        ))
        await db.flush()

        allocator = DatabaseSerialAllocator(db)
        with pytest.raises(SerialOutOfRangeError):
            await allocator(BUCKET, 5)

        result = await db.execute(select(PackSequence))
        return result.scalar_one().last_serial

    assert run_db(body) == encode_serial(MAX_SERIAL - 2)


def test_cleanup_expired_pack_sequences(run_db):
    async def body(db):
        now = datetime.now(timezone.utc)
        db.add_all([
            PackSequence(prefix="KBM2b1", month_code="b", year_code="1",
                         last_serial="00010", updated_at=now - timedelta(days=90)),
            PackSequence(prefix="KBM2c1", month_code="c", year_code="1",
                         last_serial="00010", updated_at=now - timedelta(days=5)),
        ])
        await db.flush()

        deleted = await cleanup_expired_pack_sequences(db, retention_days=60)
        remaining = (await db.execute(select(PackSequence.prefix))).scalars().all()
        return deleted, remaining

    deleted, remaining = run_db(body)
    assert deleted == 1
    assert remaining == ["KBM2c1"]


def test_database_allocator_recreated_row_resumes_after_issued_labels(run_db):
    async def body(db):
        db.add_all([
            PackLabel(label_id="KBM2b100001", status="available", previous_uses=0),
            PackLabel(label_id="KBM2b10000B", status="available", previous_uses=0),
            PackLabel(label_id="KBM2c100099", status="available", previous_uses=0),
        ])
        await db.flush()

        allocator = DatabaseSerialAllocator(db)
        start = await allocator(BUCKET, 2)
        sequence = (await db.execute(select(PackSequence))).scalar_one()
        return start, sequence.last_serial

    start, last_serial = run_db(body)
    assert start == 11
    assert last_serial == encode_serial(12)
