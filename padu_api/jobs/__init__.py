"""Background job processing module."""

from padu_api.jobs.tasks import process_import_job

__all__ = [
    "process_import_job",
]
