from datetime import datetime

import pytest
from pydantic import ValidationError

from geoattend.db.models import AttendanceRecord
from geoattend.services.export_service import ExportFilters, ExportService, ExportTooLargeError
from geoattend.services.results import ErrorKind


@pytest.fixture
def five_records(db, seed):
    for offset in range(5):
        db.add(AttendanceRecord(
            event_id=seed.event.id,
            user_id=200 + offset,
            check_in_submitted_at=datetime(2026, 3, 2, 9, offset),
            check_in_distance=10.0 * offset,
            verification_status="Approved" if offset % 2 == 0 else "Pending"
        ))
    db.commit()


def test_chunks_are_bounded_and_ordered(db, seed, five_records):
    service = ExportService(chunk_size=2, max_records=100)

    chunks = list(service.iter_chunks(db, ExportFilters(event_ids=[seed.event.id])))

    assert [len(chunk) for chunk in chunks] == [2, 2, 1]
    ids = [row["id"] for chunk in chunks for row in chunk]
    assert ids == sorted(ids)
    assert chunks[0][0]["check_in"]["submitted_at"] == "2026-03-02T09:00:00"


def test_status_and_date_filters(db, seed, five_records):
    service = ExportService(chunk_size=10, max_records=100)

    approved = list(service.iter_export_rows(db, ExportFilters(status="Approved")))
    assert len(approved) == 3

    windowed = list(service.iter_export_rows(db, ExportFilters(
        start_date=datetime(2026, 3, 2, 9, 1),
        end_date=datetime(2026, 3, 2, 9, 3)
    )))
    assert [row["user_id"] for row in windowed] == [201, 202, 203]


def test_oversized_export_is_refused(db, seed, five_records):
    result = ExportService(chunk_size=2, max_records=4).prepare(db, ExportFilters())

    assert result.error.kind == ErrorKind.export_too_large
    assert result.error.details == {"total": 5, "max_records": 4}


def test_prepare_reports_total(db, seed, five_records):
    result = ExportService(chunk_size=2, max_records=5).prepare(db, ExportFilters())

    assert result.success
    assert result.record == {"total": 5}


def test_filter_validation():
    with pytest.raises(ValidationError):
        ExportFilters(event_ids=[])
    with pytest.raises(ValidationError):
        ExportFilters(event_ids=list(range(51)))
    with pytest.raises(ValidationError):
        ExportFilters(start_date=datetime(2026, 3, 2), end_date=datetime(2026, 3, 1))


def test_reader_refuses_oversized_export(db, seed, five_records):
    service = ExportService(chunk_size=2, max_records=4)

    with pytest.raises(ExportTooLargeError) as excinfo:
        list(service.iter_export_rows(db, ExportFilters()))

    assert excinfo.value.error.kind == ErrorKind.export_too_large
    assert excinfo.value.error.details == {"total": 5, "max_records": 4}


def test_reader_stops_when_set_grows_past_cap(db, seed, five_records):
    service = ExportService(chunk_size=2, max_records=5)
    chunks = service.iter_chunks(db, ExportFilters())

    assert len(next(chunks)) == 2
    for user_id in (300, 301):
        db.add(AttendanceRecord(event_id=seed.event.id, user_id=user_id))
    db.commit()

    assert len(next(chunks)) == 2
    with pytest.raises(ExportTooLargeError):
        next(chunks)


def test_reader_leaves_caller_objects_attached(db, seed, five_records):
    held = db.query(AttendanceRecord).filter(AttendanceRecord.user_id == 202).one()

    rows = list(ExportService(chunk_size=2, max_records=100).iter_export_rows(db, ExportFilters()))

    assert len(rows) == 5
    assert seed.event.name == "Engineering Week Assembly"
    assert held.check_in_distance == 20.0
    assert held in db
