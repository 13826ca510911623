"""
app/importer package marker.
"""

from app.importer.chunk_orchestrator import (
    ChunkError,
    ChunkOrchestrator,
    ImportProgress,
    ImportRunSummary,
    RunStatus,
)
from app.importer.error_report import write_error_report
from app.importer.file_reader import read_tabular_file
from app.importer.transport import (
    CancellationToken,
    ChunkResponse,
    ChunkTransport,
    HttpChunkTransport,
    LocalChunkTransport,
)

__all__ = [
    "CancellationToken",
    "ChunkError",
    "ChunkOrchestrator",
    "ChunkResponse",
    "ChunkTransport",
    "HttpChunkTransport",
    "ImportProgress",
    "ImportRunSummary",
    "LocalChunkTransport",
    "RunStatus",
    "read_tabular_file",
    "write_error_report",
]
