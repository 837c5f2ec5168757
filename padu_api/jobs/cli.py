"""Command-line entry point for ingestion workers."""

import sys

from rq import Worker

from padu_api.core.log_config import setup_logging
from padu_api.core.otel_setup import setup_opentelemetry
from padu_api.jobs.queue import IMPORTS_QUEUE, get_redis_connection


def run_worker(queues: list[str] | None = None, burst: bool = False) -> bool:
    """
    Run an RQ worker for processing import jobs.

    Args:
        queues: Queue names to process (default: ['imports'])
        burst: Exit once the queues are empty

    Returns:
        Whether the worker performed any work
    """
    if queues is None:
        queues = [IMPORTS_QUEUE]

    setup_logging()
    setup_opentelemetry()

    worker = Worker(queues, connection=get_redis_connection())
    return worker.work(burst=burst)


def main() -> None:
    run_worker(sys.argv[1:] or None)


if __name__ == "__main__":
    main()
