"""
Pack Label Service Tests

Generation, export, lifecycle updates, QR scans and grouping.
"""

from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import select, func, update

from app.config import Settings
from app.models.pack_label import (
    LabelGroup,
    LabelStatus,
    PackLabel,
    PackSequence,
    ScanEvent,
    ScanEventType,
)
from app.services.pack_codec import MAX_SERIAL, SerialOutOfRangeError, decode_serial, encode_serial
from app.services.pack_label_service import (
    LabelNotFoundError,
    PackLabelError,
    PackLabelService,
    generate_group_id,
    parse_pack_ids,
)

JANUARY_2026 = date(2026, 1, 5)
APRIL_2026 = date(2026, 4, 10)


def make_service(db, allocator=None):
    return PackLabelService(db, allocator=allocator, settings=Settings())


async def fresh_label(db, label_id):
    result = await db.execute(
        select(PackLabel)
        .where(PackLabel.label_id == label_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


# ==================== Generation ====================

def test_generate_labels_with_database_allocator(run_db):
    async def body(db):
        service = make_service(db)
        first = await service.generate_labels("B", "M", "2", 3, on_date=JANUARY_2026)
        second = await service.generate_labels("B", "M", "2", 2, on_date=JANUARY_2026)
        rows = (await db.execute(select(PackLabel).order_by(PackLabel.label_id))).scalars().all()
        return first, second, rows

    first, second, rows = run_db(body)
    assert first.prefix == "KBM2b1"
    assert first.month_code == "b"
    assert first.year_code == "1"
    assert first.start_serial == 1
    assert first.label_ids == ["KBM2b100001", "KBM2b100002", "KBM2b100003"]
    assert second.label_ids == ["KBM2b100004", "KBM2b100005"]

    assert [row.label_id for row in rows] == first.label_ids + second.label_ids
    assert all(row.status == LabelStatus.AVAILABLE.value for row in rows)
    assert all(row.previous_uses == 0 for row in rows)


def test_generate_labels_with_injected_allocator(run_db):
    async def start_at_zero(bucket, count):
        return 0

    async def body(db):
        return await make_service(db, allocator=start_at_zero).generate_labels(
            "B", "M", "2", 3, on_date=JANUARY_2026
        )

    batch = run_db(body)
    assert batch.label_ids == [
        "KBM2b1" + encode_serial(0),
        "KBM2b1" + encode_serial(1),
        "KBM2b1" + encode_serial(2),
    ]
    assert [decode_serial(label_id[6:]) for label_id in batch.label_ids] == [0, 1, 2]
    assert batch.quantity == 3


def test_generate_labels_overflow_inserts_nothing(run_db):
    async def near_the_end(bucket, count):
        return MAX_SERIAL - 1

    async def body(db):
        service = make_service(db, allocator=near_the_end)
        with pytest.raises(SerialOutOfRangeError):
            await service.generate_labels("B", "M", "2", 5, on_date=JANUARY_2026)
        return (await db.execute(select(func.count(PackLabel.id)))).scalar()

    assert run_db(body) == 0


@pytest.mark.parametrize("supplier,packaging_type,size,quantity", [
    ("B", "M", "2", 0),
    ("B", "M", "2", 5001),
    ("Z", "M", "2", 1),
    ("B", "Q", "2", 1),
    ("B", "M", "9", 1),
])
def test_generate_labels_rejects_bad_requests(run_db, supplier, packaging_type, size, quantity):
    async def body(db):
        with pytest.raises(PackLabelError):
            await make_service(db).generate_labels(
                supplier, packaging_type, size, quantity, on_date=JANUARY_2026
            )

    run_db(body)


def test_reserve_serials_returns_encoded_start(run_db):
    async def body(db):
        service = make_service(db)
        first = await service.reserve_serials("KBM2b1", "b", "1", 30)
        second = await service.reserve_serials("KBM2b1", "b", "1", 1)
        return first, second

    assert run_db(body) == ("00001", "00010")


def test_generate_after_sequence_cleanup_continues_from_issued_labels(run_db):
    async def body(db):
        service = make_service(db)
        first = await service.generate_labels("B", "M", "2", 1, on_date=JANUARY_2026)

        await db.execute(
            update(PackSequence)
            .values(updated_at=datetime.now(timezone.utc) - timedelta(days=90))
            .execution_options(synchronize_session=False)
        )
        # Reserving in another bucket prunes the idle January row
        await service.generate_labels("B", "M", "2", 1, on_date=APRIL_2026)
        buckets = (await db.execute(select(PackSequence.prefix))).scalars().all()

        again = await service.generate_labels("B", "M", "2", 2, on_date=JANUARY_2026)
        total = (await db.execute(select(func.count(PackLabel.id)))).scalar()
        return first, buckets, again, total

    first, buckets, again, total = run_db(body)
    assert first.label_ids == ["KBM2b100001"]
    assert buckets == ["KBM2f1"]
    assert again.label_ids == ["KBM2b100002", "KBM2b100003"]
    assert total == 4


# ==================== Export ====================

def test_export_csv(run_db):
    async def body(db):
        return make_service(db).export_csv(["KBM2b100001", "KBM2b100002"])

    csv = run_db(body)
    assert csv.split("\n") == [
        "Pack ID,QR Code URL",
        "KBM2b100001,https://kvatt.codestrokes.com/search-orders?packId=KBM2b100001",
        "KBM2b100002,https://kvatt.codestrokes.com/search-orders?packId=KBM2b100002",
    ]


# ==================== Lifecycle ====================

def test_lifecycle_updates(run_db):
    async def body(db):
        service = make_service(db)
        await service.generate_labels("B", "M", "2", 1, on_date=JANUARY_2026)

        shipped = await service.update_status("KBM2b100001", LabelStatus.SHIPPED, merchant_id="merchant-1")
        assert shipped.merchant_id == "merchant-1"

        in_use = await service.update_status("KBM2b100001", "in_use", order_id="#1001")
        assert in_use.current_order_id == "#1001"
        assert in_use.merchant_id == "merchant-1"

        returned = await service.update_status("KBM2b100001", LabelStatus.RETURNED)
        events = (await db.execute(
            select(ScanEvent.event_type).order_by(ScanEvent.scanned_at)
        )).scalars().all()
        return returned, events

    returned, events = run_db(body)
    assert returned.status == "returned"
    assert returned.merchant_id is None
    assert returned.current_order_id is None
    assert returned.previous_uses == 1
    assert sorted(events) == ["in_use", "returned", "shipped"]
    assert {ScanEventType(event) for event in events} == {
        ScanEventType.SHIPPED, ScanEventType.IN_USE, ScanEventType.RETURNED,
    }


def test_update_status_unknown_label(run_db):
    async def body(db):
        with pytest.raises(LabelNotFoundError):
            await make_service(db).update_status("KBM2b1ZZZZZ", LabelStatus.SHIPPED)

    run_db(body)


def test_update_statuses_in_bulk(run_db):
    async def body(db):
        service = make_service(db)
        await service.generate_labels("B", "M", "2", 3, on_date=JANUARY_2026)

        result = await service.update_statuses(
            ["KBM2b100001", "KBM2b100002", "NOPE", "KBM2b100001"],
            LabelStatus.SHIPPED,
            merchant_id="merchant-3",
        )
        shipped = await fresh_label(db, "KBM2b100002")
        untouched = await fresh_label(db, "KBM2b100003")
        events = (await db.execute(select(ScanEvent.event_type))).scalars().all()
        return result, shipped, untouched, events

    result, shipped, untouched, events = run_db(body)
    assert result == {"updated": ["KBM2b100001", "KBM2b100002"], "not_found": ["NOPE"]}
    assert shipped.status == "shipped"
    assert shipped.merchant_id == "merchant-3"
    assert untouched.status == "available"
    assert events == ["shipped", "shipped"]


def test_record_qr_scan(run_db):
    async def body(db):
        service = make_service(db)
        await service.generate_labels("B", "M", "2", 1, on_date=JANUARY_2026)
        event = await service.record_qr_scan("KBM2b100001")
        await service.record_qr_scan("KBM2b100001")
        label = await service.get_label("KBM2b100001")
        return event, label

    event, label = run_db(body)
    assert event.event_type == "qr_scan"
    assert event.location == "returns_portal"
    assert label.previous_uses == 2


def test_record_qr_scan_unknown_label(run_db):
    async def body(db):
        with pytest.raises(LabelNotFoundError):
            await make_service(db).record_qr_scan("NOPE")

    run_db(body)


# ==================== Groups ====================

def test_parse_pack_ids():
    assert parse_pack_ids("A, B\nC\tD\r\n\n,E ") == ["A", "B", "C", "D", "E"]
    assert parse_pack_ids("") == []


def test_generate_group_id_format():
    group_id = generate_group_id()
    prefix, timestamp, suffix = group_id.split("-")
    assert prefix == "GRP"
    assert timestamp.isalnum() and timestamp.isupper()
    assert len(suffix) == 4


def test_group_validate_create_and_ship(run_db):
    async def body(db):
        service = make_service(db)
        await service.generate_labels("B", "M", "2", 3, on_date=JANUARY_2026)

        raw = "KBM2b100001, KBM2b100002\nNOPE\tKBM2b100001"
        before = await service.validate_pack_ids(raw)

        group = await service.create_group(raw)
        after = await service.validate_pack_ids(raw)
        grouped = await fresh_label(db, "KBM2b100001")
        grouped_status = grouped.status

        await service.ship_group(group.group_id, "merchant-2")
        shipped = await fresh_label(db, "KBM2b100002")
        untouched = await fresh_label(db, "KBM2b100003")
        stored_group = (await db.execute(select(LabelGroup))).scalar_one()
        return before, after, group, grouped_status, shipped, untouched, stored_group

    before, after, group, grouped_status, shipped, untouched, stored_group = run_db(body)
    assert before == {"valid": ["KBM2b100001", "KBM2b100002"], "invalid": ["NOPE"], "already_grouped": []}
    assert after == {"valid": [], "invalid": ["NOPE"], "already_grouped": ["KBM2b100001", "KBM2b100002"]}

    assert group.group_id.startswith("GRP-")
    assert group.label_count == 2
    assert grouped_status == "grouped"

    assert shipped.status == "shipped"
    assert shipped.merchant_id == "merchant-2"
    assert untouched.status == "available"
    assert stored_group.status == "shipped"
    assert stored_group.merchant_id == "merchant-2"


def test_create_group_without_valid_ids(run_db):
    async def body(db):
        with pytest.raises(PackLabelError):
            await make_service(db).create_group("NOPE\nALSO-NOPE")

    run_db(body)


def test_ship_unknown_group(run_db):
    async def body(db):
        with pytest.raises(LabelNotFoundError):
            await make_service(db).ship_group("GRP-MISSING-0000", "merchant-1")

    run_db(body)
