from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from app.domain.canonical_record import RecordErrorEntry, RecordErrorType
from db.models.import_job import ImportJobStatus
from db.models.import_record_error import ImportRecordError
from db.repositories.import_job_repository import ImportJobRepository, resolve_terminal_status

STARTED = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def _job(**overrides):
    values = {
        "id": "job-1",
        "entity_type": "Payment",
        "imported_by": "user-7",
        "status": ImportJobStatus.PROCESSING,
        "total_records": 0,
        "processed_records": 0,
        "failed_records": 0,
        "error_count": 0,
        "total_chunks": 2,
        "chunks_received": 0,
        "last_chunk_index": None,
        "received_chunks": None,
        "error_details": [],
        "message": None,
        "processing_time_ms": None,
        "started_at": STARTED,
        "completed_at": None,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def _repository(job):
    session = MagicMock()
    session.scalars.return_value.first.return_value = job
    return ImportJobRepository(session), session


def _apply(repository, *, chunk_index, processed, failed, sample=(), sample_limit=10, total_chunks=2):
    return repository.apply_chunk(
        job_id="job-1",
        entity_type="Payment",
        imported_by="user-7",
        chunk_index=chunk_index,
        total_chunks=total_chunks,
        total=processed + failed,
        processed=processed,
        failed=failed,
        error_count=failed,
        error_sample=list(sample),
        sample_limit=sample_limit,
        started_at=STARTED,
    )


@pytest.mark.parametrize(
    ("processed", "failed", "expected"),
    [
        (10, 0, ImportJobStatus.COMPLETED),
        (8, 2, ImportJobStatus.COMPLETED_WITH_ERRORS),
        (0, 5, ImportJobStatus.FAILED),
        (0, 0, ImportJobStatus.COMPLETED),
    ],
)
def test_resolve_terminal_status(processed, failed, expected) -> None:
    assert resolve_terminal_status(processed=processed, failed=failed) == expected


def test_counters_accumulate_until_last_chunk() -> None:
    job = _job()
    repository, session = _repository(job)

    _apply(repository, chunk_index=1, processed=45, failed=5)

    session.execute.assert_called_once()
    assert job.status == ImportJobStatus.PROCESSING
    assert (job.total_records, job.processed_records, job.failed_records) == (50, 45, 5)
    assert (job.chunks_received, job.last_chunk_index) == (1, 1)
    assert job.message == "Processed 45/50 records (1/2 chunks received)"
    assert job.completed_at is None

    _apply(repository, chunk_index=2, processed=50, failed=0)

    assert job.status == ImportJobStatus.COMPLETED_WITH_ERRORS
    assert (job.total_records, job.processed_records, job.failed_records, job.error_count) == (100, 95, 5, 5)
    assert job.completed_at is not None
    assert job.processing_time_ms >= 0
    assert job.message == "Processed 95/100 records (2/2 chunks received)"


def test_job_fails_when_nothing_was_written() -> None:
    job = _job(total_chunks=1)
    repository, _ = _repository(job)

    _apply(repository, chunk_index=1, processed=0, failed=10, total_chunks=1)

    assert job.status == ImportJobStatus.FAILED


def test_error_sample_stays_bounded() -> None:
    job = _job(error_details=[{"row_number": n} for n in range(8)])
    repository, _ = _repository(job)

    _apply(
        repository,
        chunk_index=1,
        processed=0,
        failed=5,
        sample=[{"row_number": n} for n in range(100, 105)],
    )

    assert [item["row_number"] for item in job.error_details] == [0, 1, 2, 3, 4, 5, 6, 7, 100, 101]


def test_late_chunk_does_not_reopen_a_cancelled_job() -> None:
    job = _job(status=ImportJobStatus.CANCELLED)
    repository, _ = _repository(job)

    _apply(repository, chunk_index=2, processed=10, failed=0)
    _apply(repository, chunk_index=2, processed=10, failed=0)

    assert job.status == ImportJobStatus.CANCELLED
    assert job.processed_records == 20


def test_resent_chunk_is_counted_once() -> None:
    job = _job(total_chunks=3)
    repository, _ = _repository(job)

    _apply(repository, chunk_index=1, processed=100, failed=0, total_chunks=3)
    _apply(repository, chunk_index=1, processed=0, failed=100, total_chunks=3)

    assert job.status == ImportJobStatus.PROCESSING
    assert (job.chunks_received, job.received_chunks) == (1, [1])
    assert job.completed_at is None


def test_cancelled_job_completes_after_reopen() -> None:
    job = _job(
        status=ImportJobStatus.CANCELLED,
        total_chunks=3,
        chunks_received=1,
        received_chunks=[1],
        total_records=100,
        processed_records=100,
        completed_at=STARTED,
    )
    repository, _ = _repository(job)

    assert repository.reopen(job_id="job-1") is job
    assert job.status == ImportJobStatus.PROCESSING
    assert job.completed_at is None
    assert job.message == "Resumed after 1/3 chunks received"

    _apply(repository, chunk_index=2, processed=100, failed=0, total_chunks=3)
    assert job.status == ImportJobStatus.PROCESSING
    _apply(repository, chunk_index=3, processed=100, failed=0, total_chunks=3)

    assert job.status == ImportJobStatus.COMPLETED
    assert (job.chunks_received, job.processed_records) == (3, 300)
    assert job.completed_at is not None


def test_reopen_finishes_a_fully_received_cancelled_job() -> None:
    job = _job(status=ImportJobStatus.CANCELLED, chunks_received=2, processed_records=8, failed_records=2)
    repository, _ = _repository(job)

    repository.reopen(job_id="job-1")

    assert job.status == ImportJobStatus.COMPLETED_WITH_ERRORS


def test_reopen_leaves_other_jobs_alone() -> None:
    job = _job(status=ImportJobStatus.COMPLETED)
    repository, _ = _repository(job)

    assert repository.reopen(job_id="job-1").status == ImportJobStatus.COMPLETED
    assert _repository(None)[0].reopen(job_id="nope") is None


def test_record_errors_persists_every_entry() -> None:
    repository, session = _repository(_job())
    entries = [
        RecordErrorEntry(
            row_number=row,
            error_type=RecordErrorType.NORMALIZATION,
            message="Missing amount value",
            chunk_index=1,
            raw={"שם": "דני"},
        )
        for row in (3, 4)
    ]

    assert repository.record_errors(job_id="job-1", entries=entries) == 2

    added = session.add_all.call_args.args[0]
    assert all(isinstance(row, ImportRecordError) for row in added)
    assert [(row.job_id, row.row_number, row.raw_payload) for row in added] == [
        ("job-1", 3, {"שם": "דני"}),
        ("job-1", 4, {"שם": "דני"}),
    ]
    session.flush.assert_called_once()


def test_record_errors_with_nothing_to_store() -> None:
    repository, session = _repository(_job())

    assert repository.record_errors(job_id="job-1", entries=[]) == 0
    session.add_all.assert_not_called()


def test_mark_cancelled_processing_job() -> None:
    job = _job(chunks_received=1, processed_records=100)
    repository, _ = _repository(job)

    result = repository.mark_cancelled(job_id="job-1")

    assert result is job
    assert job.status == ImportJobStatus.CANCELLED
    assert job.completed_at is not None
    assert job.message == "Cancelled after 1/2 chunks; 100 records imported"


def test_mark_cancelled_leaves_finished_jobs_alone() -> None:
    job = _job(status=ImportJobStatus.COMPLETED)
    repository, _ = _repository(job)

    assert repository.mark_cancelled(job_id="job-1").status == ImportJobStatus.COMPLETED


def test_mark_cancelled_unknown_job() -> None:
    repository, _ = _repository(None)

    assert repository.mark_cancelled(job_id="nope") is None
