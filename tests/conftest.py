"""
Shared fakes for ingestion tests. No database or network is touched.
"""

from __future__ import annotations

import json
import threading
import time
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

import pytest
import requests

from app.domain.canonical_record import CanonicalRecord, InsertOutcome, RecordErrorEntry, RecordRejection
from app.errors import EntityFetchError, PartialWriteError, StoreUnavailableError, TotalWriteError
from app.services.batch_ingestion_service import BatchIngestionService

FIXED_NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeSession:
    def __init__(self) -> None:
        self.commits = 0
        self.rollbacks = 0
        self.closed = False

    def commit(self) -> None:
        self.commits += 1

    def rollback(self) -> None:
        self.rollbacks += 1

    def close(self) -> None:
        self.closed = True


class FakeRecordStore:
    """
    In-memory record store. ``duplicate_rows`` are rejected as conflicts and
    the 1-based insert calls in ``failing_calls`` fail as a whole.
    """

    def __init__(
        self,
        *,
        duplicate_rows: Sequence[int] = (),
        failing_calls: Sequence[int] = (),
        unavailable: bool = False,
    ) -> None:
        self.duplicate_rows = set(duplicate_rows)
        self.failing_calls = set(failing_calls)
        self.unavailable = unavailable
        self.pings = 0
        self.batches: list[list[CanonicalRecord]] = []
        self.stored: list[CanonicalRecord] = []

    def ping(self) -> None:
        self.pings += 1
        if self.unavailable:
            raise StoreUnavailableError("Record store is unreachable.")

    def insert_batch(self, records: Sequence[CanonicalRecord]) -> InsertOutcome:
        self.batches.append(list(records))
        if len(self.batches) in self.failing_calls:
            raise TotalWriteError("connection reset by peer")

        inserted = [record for record in records if record.row_number not in self.duplicate_rows]
        rejected = [record for record in records if record.row_number in self.duplicate_rows]
        self.stored.extend(inserted)
        if rejected:
            raise PartialWriteError(
                inserted_rows=[record.row_number for record in inserted],
                rejections=[
                    RecordRejection(row_number=record.row_number, reason="Duplicate record")
                    for record in rejected
                ],
            )
        return InsertOutcome(inserted_rows=tuple(record.row_number for record in inserted))


class FakeJobStore:
    def __init__(self) -> None:
        self.chunks: list[dict[str, Any]] = []
        self.errors: list[RecordErrorEntry] = []

    def apply_chunk(self, **kwargs: Any) -> dict[str, Any]:
        self.chunks.append(kwargs)
        return kwargs

    def record_errors(self, *, job_id: str, entries: Sequence[RecordErrorEntry]) -> int:
        self.errors.extend(entries)
        return len(entries)


class FakeFetcher:
    """
    Entity fetcher that records calls and tracks how many run at once.
    """

    def __init__(
        self,
        entities: dict[str, dict[str, dict[str, Any]]] | None = None,
        *,
        failures: int = 0,
        delay: float = 0.0,
    ) -> None:
        self.entities = entities or {}
        self.failures_remaining = failures
        self.delay = delay
        self.calls: list[tuple[str, tuple[str, ...]]] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def fetch(self, entity_type: str, ids: Sequence[str]) -> dict[str, dict[str, Any]]:
        with self._lock:
            self.calls.append((entity_type, tuple(ids)))
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
            should_fail = self.failures_remaining > 0
            if should_fail:
                self.failures_remaining -= 1
        try:
            if self.delay:
                time.sleep(self.delay)
            if should_fail:
                raise EntityFetchError("lookup service unavailable")
            known = self.entities.get(entity_type, {})
            return {entity_id: known[entity_id] for entity_id in ids if entity_id in known}
        finally:
            with self._lock:
                self.in_flight -= 1


def make_response(status_code: int, body: Any) -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    response._content = body if isinstance(body, bytes) else json.dumps(body).encode("utf-8")
    response.url = "http://testserver"
    return response


def payment_rows(count: int, *, start: int = 1) -> list[dict[str, Any]]:
    return [
        {"שם": f"דייר {index}", "סכום": 100 + index, "תאריך תשלום": "01/03/2024"}
        for index in range(start, start + count)
    ]


@pytest.fixture()
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture()
def record_store() -> FakeRecordStore:
    return FakeRecordStore()


@pytest.fixture()
def job_store() -> FakeJobStore:
    return FakeJobStore()


def build_service(
    record_store: FakeRecordStore,
    job_store: FakeJobStore,
    **overrides: Any,
) -> BatchIngestionService:
    options: dict[str, Any] = {
        "record_store_factory": lambda db: record_store,
        "job_store_factory": lambda db: job_store,
        "clock": lambda: FIXED_NOW,
    }
    options.update(overrides)
    return BatchIngestionService(**options)
