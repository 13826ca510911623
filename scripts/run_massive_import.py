"""
Run a chunked massive import of a CSV/Excel file from CLI.
"""

from __future__ import annotations

import argparse
import json
import logging
import signal
from dataclasses import replace

from app.config import get_import_client_settings, get_resolution_cache_settings
from app.importer import (
    CancellationToken,
    ChunkOrchestrator,
    ImportProgress,
    LocalChunkTransport,
    read_tabular_file,
    write_error_report,
)
from app.resolution import EntityResolutionCache


def _print_progress(progress: ImportProgress) -> None:
    print(
        f"[{progress.percent:3d}%] chunk {progress.chunks_done}/{progress.total_chunks} "
        f"processed={progress.processed} failed={progress.failed}",
        flush=True,
    )


def _local_transport() -> LocalChunkTransport:
    from app.services import get_batch_ingestion_service
    from db.session import SessionLocal

    return LocalChunkTransport(service=get_batch_ingestion_service(), session_factory=SessionLocal)


def main() -> int:
    parser = argparse.ArgumentParser(description="Import a spreadsheet through the massive-import API.")
    parser.add_argument("path", help="CSV or Excel file to import.")
    parser.add_argument("--entity-type", required=True, help="Entity type, e.g. Payment, Tenant, Property.")
    parser.add_argument("--job-id", default=None, help="Existing job id to resume.")
    parser.add_argument(
        "--resume-from",
        type=int,
        default=None,
        help="Continue the run named by --job-id from this chunk index.",
    )
    parser.add_argument("--chunk-size", type=int, default=None, help="Records per chunk.")
    parser.add_argument(
        "--resolve-references",
        action="store_true",
        help="Check tenant/property references through the entity cache before sending.",
    )
    parser.add_argument(
        "--local",
        action="store_true",
        help="Ingest in-process against DATABASE_URL instead of calling the API.",
    )
    parser.add_argument("--error-report", default=None, help="Write every failed record to this CSV path.")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")

    settings = get_import_client_settings()
    if args.chunk_size:
        settings = replace(settings, chunk_size=args.chunk_size)

    records = read_tabular_file(args.path)
    token = CancellationToken()
    signal.signal(signal.SIGINT, lambda *_: token.cancel())

    cache = EntityResolutionCache.from_settings(get_resolution_cache_settings()) if args.resolve_references else None
    if cache is not None:
        cache.initialize()
    try:
        orchestrator = ChunkOrchestrator.from_settings(
            settings,
            transport=_local_transport() if args.local else None,
            resolver=cache,
            progress_callback=_print_progress,
        )
        summary = orchestrator.run(
            records,
            args.entity_type,
            job_id=args.job_id,
            cancel_token=token,
            resume_from_chunk=args.resume_from,
        )
        if args.error_report and (summary.server_error_count or summary.chunk_errors):
            errors = orchestrator.fetch_all_errors(summary.job_id)
            write_error_report(errors, args.error_report)
    finally:
        if cache is not None:
            cache.close()

    payload = {
        "job_id": summary.job_id,
        "status": summary.status,
        "total_records": summary.total_records,
        "succeeded": summary.succeeded,
        "failed": summary.failed,
        "chunks_sent": summary.chunks_sent,
        "total_chunks": summary.total_chunks,
        "next_chunk": summary.next_chunk,
        "chunk_errors": [error.to_dict() for error in summary.chunk_errors],
        "client_errors": len(summary.client_errors),
        "unresolved_references": len(summary.unresolved_references),
        "elapsed_seconds": summary.elapsed_seconds,
    }
    print(json.dumps(payload, indent=2, ensure_ascii=False))
    return 0 if summary.status == "completed" else 1


if __name__ == "__main__":
    raise SystemExit(main())
