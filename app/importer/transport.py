"""
app/importer/transport.py

How chunks reach the ingestion service.

``HttpChunkTransport`` posts to the massive-import endpoint; the request runs
in a worker thread so a cancellation can abandon it. ``LocalChunkTransport``
calls the service in-process, which is handy for scripts and tests.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from typing import Any, Protocol

import requests
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import ImportClientSettings
from app.errors import ChunkCancelledError, ChunkTransportError, RequestValidationError, StoreUnavailableError
from app.services.batch_ingestion_service import BatchIngestionService
from db.repositories.import_job_repository import ImportJobRepository

logger = logging.getLogger(__name__)


class CancellationToken:
    """
    Cooperative cancellation flag shared between the caller and a running import.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True)
class ChunkResponse:
    """
    Server verdict on one chunk.
    """

    job_id: str
    status: str
    processed: int
    total: int
    failed: int
    error_count: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)
    chunk: str | None = None
    message: str = ""

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> ChunkResponse:
        errors = payload.get("errors") or []
        return cls(
            job_id=str(payload.get("job_id") or payload.get("jobId") or ""),
            status=str(payload.get("status") or ""),
            processed=int(payload.get("processed") or 0),
            total=int(payload.get("total") or 0),
            failed=int(payload.get("failed") or 0),
            error_count=int(payload.get("error_count") or len(errors)),
            errors=list(errors),
            chunk=payload.get("chunk"),
            message=str(payload.get("message") or ""),
        )


class ChunkTransport(Protocol):
    def send_chunk(
        self,
        payload: dict[str, Any],
        *,
        cancel_token: CancellationToken | None = None,
    ) -> ChunkResponse: ...

    def list_errors(self, job_id: str, *, limit: int, offset: int) -> tuple[list[dict[str, Any]], int]: ...

    def abort_job(self, job_id: str) -> None: ...

    def resume_job(self, job_id: str) -> None: ...


class HttpChunkTransport:
    """
    ``requests``-based transport for a remote ingestion service.
    """

    def __init__(
        self,
        *,
        base_url: str,
        timeout_seconds: float = 60.0,
        cancel_poll_seconds: float = 0.1,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._cancel_poll_seconds = cancel_poll_seconds
        self._session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: ImportClientSettings) -> HttpChunkTransport:
        return cls(
            base_url=settings.api_base_url,
            timeout_seconds=settings.timeout_seconds,
            cancel_poll_seconds=settings.cancel_poll_seconds,
        )

    def send_chunk(
        self,
        payload: dict[str, Any],
        *,
        cancel_token: CancellationToken | None = None,
    ) -> ChunkResponse:
        """
        Post one chunk, polling ``cancel_token`` while the request runs.

        Cancelling abandons the request, it does not abort it: the worker
        thread keeps its connection until the server answers, so the server
        may still ingest that chunk. A late chunk for a job already marked
        cancelled is counted but leaves the job cancelled.
        """

        if cancel_token is None:
            return self._post_chunk(payload)
        if cancel_token.is_cancelled:
            raise ChunkCancelledError("Import cancelled before the chunk was sent.")

        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="chunk-send")
        try:
            future = executor.submit(self._post_chunk, payload)
            while True:
                try:
                    return future.result(timeout=self._cancel_poll_seconds)
                except FuturesTimeoutError:
                    if cancel_token.is_cancelled:
                        future.cancel()
                        logger.info(
                            "Abandoning in-flight chunk job_id=%s chunk=%s/%s",
                            payload.get("job_id"),
                            payload.get("chunk_index"),
                            payload.get("total_chunks"),
                        )
                        raise ChunkCancelledError("Import cancelled while the chunk was in flight.")
        finally:
            executor.shutdown(wait=False)

    def list_errors(self, job_id: str, *, limit: int, offset: int) -> tuple[list[dict[str, Any]], int]:
        body = self._request_json(
            "GET",
            f"{self._base_url}/api/import-jobs/{job_id}/errors",
            params={"limit": limit, "offset": offset},
        )
        return list(body.get("errors") or []), int(body.get("total") or 0)

    def abort_job(self, job_id: str) -> None:
        self._request_json("POST", f"{self._base_url}/api/import-jobs/{job_id}/abort")

    def resume_job(self, job_id: str) -> None:
        try:
            self._request_json("POST", f"{self._base_url}/api/import-jobs/{job_id}/resume")
        except ChunkTransportError as exc:
            # The job only exists once a chunk of it has arrived.
            if exc.status_code != 404:
                raise

    def _post_chunk(self, payload: dict[str, Any]) -> ChunkResponse:
        body = self._request_json(
            "POST",
            f"{self._base_url}/api/massive-import",
            json=payload,
            headers={"X-Job-Id": str(payload.get("job_id", ""))},
        )
        return ChunkResponse.from_payload(body)

    def _request_json(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = self._session.request(method, url, timeout=self._timeout_seconds, **kwargs)
        except requests.RequestException as exc:
            raise ChunkTransportError(f"Request to {url} failed: {exc}") from exc

        if response.status_code >= 400:
            raise ChunkTransportError(
                f"Server returned {response.status_code}: {_error_detail(response)}",
                status_code=response.status_code,
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise ChunkTransportError(
                f"Server response from {url} was not valid JSON.",
                status_code=response.status_code,
            ) from exc
        if not isinstance(body, dict):
            raise ChunkTransportError(f"Server response from {url} was not a JSON object.")
        return body


class LocalChunkTransport:
    """
    In-process transport: hands chunks straight to a ``BatchIngestionService``.
    """

    def __init__(
        self,
        *,
        service: BatchIngestionService,
        session_factory: Callable[[], Session],
    ) -> None:
        self._service = service
        self._session_factory = session_factory

    def send_chunk(
        self,
        payload: dict[str, Any],
        *,
        cancel_token: CancellationToken | None = None,
    ) -> ChunkResponse:
        if cancel_token is not None and cancel_token.is_cancelled:
            raise ChunkCancelledError("Import cancelled before the chunk was sent.")

        session = self._session_factory()
        try:
            result = self._service.ingest(
                db=session,
                entity_type=payload.get("entity_type"),
                records=payload.get("records"),
                job_id=str(payload.get("job_id")),
                imported_by=payload.get("imported_by"),
                chunk_index=int(payload.get("chunk_index", 1)),
                total_chunks=int(payload.get("total_chunks", 1)),
                row_offset=int(payload.get("row_offset", 0)),
            )
        except RequestValidationError as exc:
            raise ChunkTransportError(str(exc), status_code=400) from exc
        except StoreUnavailableError as exc:
            raise ChunkTransportError(str(exc), status_code=500) from exc
        finally:
            session.close()

        return ChunkResponse(
            job_id=result.job_id,
            status=result.status,
            processed=result.processed,
            total=result.total,
            failed=result.failed,
            error_count=result.error_count,
            errors=[entry.to_dict() for entry in result.errors],
            chunk=result.chunk_label,
            message=result.message,
        )

    def list_errors(self, job_id: str, *, limit: int, offset: int) -> tuple[list[dict[str, Any]], int]:
        session = self._session_factory()
        try:
            rows, total = ImportJobRepository(session).list_errors(job_id=job_id, limit=limit, offset=offset)
            return [
                {
                    "row_number": row.row_number,
                    "error_type": row.error_type,
                    "message": row.message,
                    "chunk_index": row.chunk_index,
                    "sub_batch": row.sub_batch,
                    "raw": row.raw_payload,
                }
                for row in rows
            ], total
        except SQLAlchemyError as exc:
            raise ChunkTransportError(f"Could not list errors for job {job_id}.") from exc
        finally:
            session.close()

    def abort_job(self, job_id: str) -> None:
        session = self._session_factory()
        try:
            ImportJobRepository(session).mark_cancelled(job_id=job_id)
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise ChunkTransportError(f"Could not abort job {job_id}.") from exc
        finally:
            session.close()

    def resume_job(self, job_id: str) -> None:
        session = self._session_factory()
        try:
            ImportJobRepository(session).reopen(job_id=job_id)
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise ChunkTransportError(f"Could not resume job {job_id}.") from exc
        finally:
            session.close()


def _error_detail(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        detail = body.get("detail") or body.get("error") or body
        if isinstance(detail, dict):
            return str(detail.get("error") or detail.get("message") or detail)
        return str(detail)
    return str(body)[:200]
