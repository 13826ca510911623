from __future__ import annotations

import threading

import pytest
import requests

from conftest import FakeJobStore, FakeRecordStore, FakeSession, build_service, make_response, payment_rows

from app.errors import ChunkCancelledError, ChunkTransportError
from app.importer.transport import CancellationToken, ChunkResponse, HttpChunkTransport, LocalChunkTransport

CHUNK = {
    "job_id": "job-1",
    "entity_type": "Payment",
    "imported_by": "user-7",
    "chunk_index": 1,
    "total_chunks": 2,
    "row_offset": 0,
    "records": [{"שם": "דני", "סכום": 10, "תאריך": "2024-01-01"}],
}


class ScriptedSession:
    def __init__(self, response=None, *, error=None, release=None) -> None:
        self.response = response
        self.error = error
        self.release = release
        self.calls: list[tuple[str, str, dict]] = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.release is not None:
            self.release.wait(timeout=5)
        if self.error is not None:
            raise self.error
        return self.response


def _transport(session) -> HttpChunkTransport:
    return HttpChunkTransport(base_url="http://api.local/", timeout_seconds=30, cancel_poll_seconds=0.01, session=session)


def test_chunk_is_posted_with_job_header() -> None:
    session = ScriptedSession(
        make_response(
            200,
            {
                "job_id": "job-1",
                "status": "completed_with_errors",
                "processed": 9,
                "total": 10,
                "failed": 1,
                "error_count": 1,
                "errors": [{"row_number": 4, "message": "Missing amount value"}],
                "chunk": "1/2",
            },
        )
    )

    response = _transport(session).send_chunk(CHUNK, cancel_token=CancellationToken())

    assert isinstance(response, ChunkResponse)
    assert (response.processed, response.failed, response.error_count) == (9, 1, 1)
    assert response.errors[0]["row_number"] == 4
    method, url, kwargs = session.calls[0]
    assert (method, url) == ("POST", "http://api.local/api/massive-import")
    assert kwargs["headers"] == {"X-Job-Id": "job-1"}
    assert kwargs["json"] == CHUNK
    assert kwargs["timeout"] == 30


def test_server_error_carries_status_and_detail() -> None:
    session = ScriptedSession(make_response(500, {"status": "failed", "error": "Record store is unreachable."}))

    with pytest.raises(ChunkTransportError) as excinfo:
        _transport(session).send_chunk(CHUNK)

    assert excinfo.value.status_code == 500
    assert "Record store is unreachable." in str(excinfo.value)


def test_validation_error_detail_is_reported() -> None:
    session = ScriptedSession(make_response(400, {"detail": "entity_type is required."}))

    with pytest.raises(ChunkTransportError, match="entity_type is required.") as excinfo:
        _transport(session).send_chunk(CHUNK)

    assert excinfo.value.status_code == 400


def test_network_failure_becomes_transport_error() -> None:
    session = ScriptedSession(error=requests.ConnectionError("connection refused"))

    with pytest.raises(ChunkTransportError) as excinfo:
        _transport(session).send_chunk(CHUNK)

    assert excinfo.value.status_code is None


def test_cancelled_token_skips_the_request() -> None:
    session = ScriptedSession(make_response(200, {}))
    token = CancellationToken()
    token.cancel()

    with pytest.raises(ChunkCancelledError):
        _transport(session).send_chunk(CHUNK, cancel_token=token)

    assert session.calls == []


def test_in_flight_request_is_abandoned_on_cancel() -> None:
    release = threading.Event()
    session = ScriptedSession(make_response(200, {"processed": 1}), release=release)
    token = CancellationToken()
    timer = threading.Timer(0.05, token.cancel)
    timer.start()
    try:
        with pytest.raises(ChunkCancelledError):
            _transport(session).send_chunk(CHUNK, cancel_token=token)
        # The request was issued and is still waiting on the server.
        assert len(session.calls) == 1
        assert not release.is_set()
    finally:
        release.set()
        timer.cancel()


def test_list_errors_and_abort_use_job_endpoints() -> None:
    session = ScriptedSession(make_response(200, {"errors": [{"row_number": 2}], "total": 7}))
    transport = _transport(session)

    errors, total = transport.list_errors("job-1", limit=50, offset=100)
    transport.abort_job("job-1")

    assert (errors, total) == ([{"row_number": 2}], 7)
    assert session.calls[0][:2] == ("GET", "http://api.local/api/import-jobs/job-1/errors")
    assert session.calls[0][2]["params"] == {"limit": 50, "offset": 100}
    assert session.calls[1][:2] == ("POST", "http://api.local/api/import-jobs/job-1/abort")


def test_resume_reopens_the_job_and_tolerates_an_unknown_one() -> None:
    session = ScriptedSession(make_response(200, {"job_id": "job-1", "status": "processing"}))
    _transport(session).resume_job("job-1")

    assert session.calls[0][:2] == ("POST", "http://api.local/api/import-jobs/job-1/resume")

    _transport(ScriptedSession(make_response(404, {"detail": "Import job not found: job-1"}))).resume_job("job-1")

    with pytest.raises(ChunkTransportError) as excinfo:
        _transport(ScriptedSession(make_response(500, {"detail": "boom"}))).resume_job("job-1")
    assert excinfo.value.status_code == 500


def test_local_transport_runs_the_service_in_process() -> None:
    record_store = FakeRecordStore()
    session = FakeSession()
    transport = LocalChunkTransport(service=build_service(record_store, FakeJobStore()), session_factory=lambda: session)

    response = transport.send_chunk({**CHUNK, "records": payment_rows(3), "row_offset": 40})

    assert (response.processed, response.total, response.chunk) == (3, 3, "1/2")
    assert [record.row_number for record in record_store.stored] == [41, 42, 43]
    assert session.closed is True


def test_local_transport_maps_request_errors_to_400() -> None:
    session = FakeSession()
    transport = LocalChunkTransport(
        service=build_service(FakeRecordStore(), FakeJobStore()),
        session_factory=lambda: session,
    )

    with pytest.raises(ChunkTransportError) as excinfo:
        transport.send_chunk({**CHUNK, "entity_type": ""})

    assert excinfo.value.status_code == 400
    assert session.closed is True


def test_local_transport_maps_unreachable_store_to_500() -> None:
    transport = LocalChunkTransport(
        service=build_service(FakeRecordStore(unavailable=True), FakeJobStore()),
        session_factory=FakeSession,
    )

    with pytest.raises(ChunkTransportError) as excinfo:
        transport.send_chunk(CHUNK)

    assert excinfo.value.status_code == 500
