"""
Repository layer exports.
"""

from db.repositories.import_job_repository import ImportJobRepository, JobStore, resolve_terminal_status

__all__ = [
    "ImportJobRepository",
    "JobStore",
    "resolve_terminal_status",
]
