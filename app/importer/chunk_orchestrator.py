"""
app/importer/chunk_orchestrator.py

Client side of a massive import: normalizes a dataset, resolves foreign
references, splits it into chunks and sends them one at a time, tracking
progress and honouring cancellation.

State machine::

    idle -> chunking -> sending -> completed | cancelled | failed

A failing chunk is recorded and the run moves on; only a cancellation stops
the run early.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from app.config import ImportClientSettings
from app.domain.canonical_record import CanonicalRecord, FieldError, FieldSeverity
from app.domain.entity_profiles import get_profile
from app.errors import ChunkCancelledError, ChunkTransportError
from app.importer.transport import CancellationToken, ChunkTransport, HttpChunkTransport
from app.resolution.entity_cache import EntityResolutionCache
from app.services.field_normalizer import FieldNormalizer
from app.validators.value_coercion import is_blank

logger = logging.getLogger(__name__)

ERROR_PAGE_SIZE = 500


class RunStatus:
    IDLE = "idle"
    CHUNKING = "chunking"
    SENDING = "sending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    ACTIVE = frozenset({CHUNKING, SENDING})


@dataclass(frozen=True)
class ImportProgress:
    job_id: str
    chunks_done: int
    total_chunks: int
    processed: int
    failed: int

    @property
    def percent(self) -> int:
        if self.total_chunks == 0:
            return 100
        return round(100 * self.chunks_done / self.total_chunks)


@dataclass(frozen=True)
class ChunkError:
    """
    A chunk the server never accepted. All of its records count as failed.
    """

    chunk_index: int
    first_row: int
    last_row: int
    message: str
    status_code: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "chunk_index": self.chunk_index,
            "first_row": self.first_row,
            "last_row": self.last_row,
            "message": self.message,
            "status_code": self.status_code,
        }


@dataclass(frozen=True)
class ImportRunSummary:
    job_id: str
    status: str
    total_records: int
    succeeded: int
    failed: int
    chunks_sent: int
    total_chunks: int
    last_completed_chunk: int
    elapsed_seconds: float
    chunk_errors: list[ChunkError] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)
    server_error_count: int = 0
    client_errors: list[FieldError] = field(default_factory=list)
    unresolved_references: list[FieldError] = field(default_factory=list)

    @property
    def next_chunk(self) -> int:
        """Chunk index to pass as ``resume_from_chunk`` to continue this run."""
        return self.last_completed_chunk + 1


ProgressCallback = Callable[[ImportProgress], None]


class ChunkOrchestrator:
    """
    Sends a dataset to the ingestion service in sequential chunks.

    Args:
        transport:         Delivers chunks (HTTP or in-process).
        normalizer:        Client-side normalizer; the server re-normalizes anyway.
        resolver:          Optional resolution cache for ``tenant_id``/``property_id``.
        chunk_size:        Records per chunk.
        imported_by:       Provenance actor sent with every chunk.
        progress_callback: Called after every chunk with the cumulative progress.
    """

    def __init__(
        self,
        *,
        transport: ChunkTransport,
        normalizer: FieldNormalizer | None = None,
        resolver: EntityResolutionCache | None = None,
        chunk_size: int = 100,
        imported_by: str = "import_client",
        progress_callback: ProgressCallback | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1.")
        self._transport = transport
        self._normalizer = normalizer or FieldNormalizer()
        self._resolver = resolver
        self._chunk_size = chunk_size
        self._imported_by = imported_by
        self._progress_callback = progress_callback
        self._clock = clock
        self._state = RunStatus.IDLE
        self._progress: ImportProgress | None = None

    @classmethod
    def from_settings(
        cls,
        settings: ImportClientSettings,
        *,
        transport: ChunkTransport | None = None,
        resolver: EntityResolutionCache | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> ChunkOrchestrator:
        return cls(
            transport=transport or HttpChunkTransport.from_settings(settings),
            resolver=resolver,
            chunk_size=settings.chunk_size,
            imported_by=settings.imported_by,
            progress_callback=progress_callback,
        )

    @property
    def state(self) -> str:
        return self._state

    @property
    def progress(self) -> ImportProgress | None:
        return self._progress

    def run(
        self,
        records: Sequence[Mapping[str, Any]],
        entity_type: str,
        *,
        job_id: str | None = None,
        cancel_token: CancellationToken | None = None,
        resume_from_chunk: int | None = None,
    ) -> ImportRunSummary:
        """
        Import ``records`` as ``entity_type`` and return the terminal summary.

        ``resume_from_chunk`` continues a previous run: earlier chunks are
        skipped and the server job named by ``job_id`` is reopened if it was
        cancelled, so the remaining chunks fold into it and finish it.
        """

        if self._state in RunStatus.ACTIVE:
            raise RuntimeError("An import is already running on this orchestrator.")
        resuming = resume_from_chunk is not None
        if resuming and resume_from_chunk < 1:
            raise ValueError("resume_from_chunk must be at least 1.")
        if resuming and not job_id:
            raise ValueError("Resuming a run needs the job_id of that run.")
        resume_from_chunk = resume_from_chunk or 1

        job_id = job_id or str(uuid.uuid4())
        token = cancel_token or CancellationToken()
        started = self._clock()

        self._state = RunStatus.CHUNKING
        prepared, client_errors = self._prepare(records, entity_type)
        unresolved = self._check_references(prepared, entity_type)
        payload_records = [payload for payload, _ in prepared]
        chunks = [
            payload_records[start : start + self._chunk_size]
            for start in range(0, len(payload_records), self._chunk_size)
        ]
        total_chunks = len(chunks)

        logger.info(
            "Import run started job_id=%s entity_type=%s records=%s chunks=%s resume_from=%s",
            job_id,
            entity_type,
            len(records),
            total_chunks,
            resume_from_chunk,
        )

        if resuming and resume_from_chunk <= total_chunks:
            self._reopen_remote_job(job_id)

        self._state = RunStatus.SENDING
        succeeded = 0
        failed = 0
        server_error_count = 0
        chunks_done = 0
        chunks_sent = 0
        failed_chunks = 0
        # End of the unbroken run of accepted chunks starting at chunk 1.
        last_completed_chunk = min(resume_from_chunk - 1, total_chunks)
        prefix_intact = True
        cancelled = False
        chunk_errors: list[ChunkError] = []
        sampled_errors: list[dict[str, Any]] = []
        self._progress = ImportProgress(job_id, 0, total_chunks, 0, 0)

        for chunk_index, chunk in enumerate(chunks, start=1):
            row_offset = (chunk_index - 1) * self._chunk_size
            if chunk_index < resume_from_chunk:
                chunks_done += 1
                continue
            if token.is_cancelled:
                cancelled = True
                break

            payload = {
                "job_id": job_id,
                "entity_type": entity_type,
                "imported_by": self._imported_by,
                "chunk_index": chunk_index,
                "total_chunks": total_chunks,
                "row_offset": row_offset,
                "records": chunk,
            }
            try:
                response = self._transport.send_chunk(payload, cancel_token=token)
            except ChunkCancelledError:
                cancelled = True
                break
            except ChunkTransportError as exc:
                prefix_intact = False
                failed_chunks += 1
                failed += len(chunk)
                chunk_errors.append(
                    ChunkError(
                        chunk_index=chunk_index,
                        first_row=row_offset + 1,
                        last_row=row_offset + len(chunk),
                        message=str(exc),
                        status_code=exc.status_code,
                    )
                )
                logger.error(
                    "Chunk failed job_id=%s chunk=%s/%s status_code=%s error=%s",
                    job_id,
                    chunk_index,
                    total_chunks,
                    exc.status_code,
                    exc,
                )
            else:
                succeeded += response.processed
                failed += response.failed
                server_error_count += response.error_count
                sampled_errors.extend(response.errors)
                if prefix_intact:
                    last_completed_chunk = chunk_index

            chunks_sent += 1
            chunks_done += 1
            self._report_progress(ImportProgress(job_id, chunks_done, total_chunks, succeeded, failed))

        if cancelled:
            status = RunStatus.CANCELLED
            self._abort_remote_job(job_id)
        elif chunks_sent > 0 and failed_chunks == chunks_sent:
            status = RunStatus.FAILED
        else:
            status = RunStatus.COMPLETED
        self._state = status

        summary = ImportRunSummary(
            job_id=job_id,
            status=status,
            total_records=len(records),
            succeeded=succeeded,
            failed=failed,
            chunks_sent=chunks_sent,
            total_chunks=total_chunks,
            last_completed_chunk=last_completed_chunk,
            elapsed_seconds=round(self._clock() - started, 3),
            chunk_errors=chunk_errors,
            errors=sampled_errors,
            server_error_count=server_error_count,
            client_errors=client_errors,
            unresolved_references=unresolved,
        )
        logger.info(
            "Import run finished job_id=%s status=%s succeeded=%s failed=%s chunks=%s/%s elapsed_seconds=%s",
            job_id,
            status,
            succeeded,
            failed,
            chunks_sent,
            total_chunks,
            summary.elapsed_seconds,
        )
        return summary

    def fetch_all_errors(self, job_id: str, *, page_size: int = ERROR_PAGE_SIZE) -> list[dict[str, Any]]:
        """
        Page through every persisted record error of a job.
        """

        collected: list[dict[str, Any]] = []
        offset = 0
        while True:
            page, total = self._transport.list_errors(job_id, limit=page_size, offset=offset)
            collected.extend(page)
            offset += len(page)
            if not page or offset >= total:
                return collected

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _prepare(
        self,
        records: Sequence[Mapping[str, Any]],
        entity_type: str,
    ) -> tuple[list[tuple[dict[str, Any], CanonicalRecord | None]], list[FieldError]]:
        prepared: list[tuple[dict[str, Any], CanonicalRecord | None]] = []
        client_errors: list[FieldError] = []
        for index, raw_record in enumerate(records):
            record, field_errors = self._normalizer.normalize(
                raw_record,
                entity_type,
                row_number=index + 1,
            )
            client_errors.extend(field_errors)
            if any(error.is_error for error in field_errors):
                # Keep the raw values so the server reports the original problem.
                prepared.append((dict(raw_record), None))
            else:
                prepared.append((record.content(), record))
        return prepared, client_errors

    def _check_references(
        self,
        prepared: Sequence[tuple[dict[str, Any], CanonicalRecord | None]],
        entity_type: str,
    ) -> list[FieldError]:
        if self._resolver is None:
            return []

        references = get_profile(entity_type).references
        warnings: list[FieldError] = []
        for field_name, target_type in references.items():
            wanted = [
                (record.row_number, str(record.get(field_name)))
                for _, record in prepared
                if record is not None and not is_blank(record.get(field_name))
            ]
            if not wanted:
                continue
            resolved = self._resolver.resolve(target_type, [entity_id for _, entity_id in wanted])
            for row_number, entity_id in wanted:
                if entity_id.strip() in resolved:
                    continue
                warnings.append(
                    FieldError(
                        row_number=row_number,
                        column=field_name,
                        message=f"Referenced {target_type} id was not found.",
                        severity=FieldSeverity.WARNING,
                        value=entity_id,
                    )
                )
        if warnings:
            logger.warning("Unresolved references entity_type=%s count=%s", entity_type, len(warnings))
        return warnings

    def _report_progress(self, progress: ImportProgress) -> None:
        self._progress = progress
        if self._progress_callback is not None:
            self._progress_callback(progress)

    def _reopen_remote_job(self, job_id: str) -> None:
        try:
            self._transport.resume_job(job_id)
        except ChunkTransportError as exc:
            logger.warning("Could not reopen job on the server job_id=%s error=%s", job_id, exc)

    def _abort_remote_job(self, job_id: str) -> None:
        try:
            self._transport.abort_job(job_id)
        except ChunkTransportError as exc:
            logger.warning("Could not mark job cancelled on the server job_id=%s error=%s", job_id, exc)
