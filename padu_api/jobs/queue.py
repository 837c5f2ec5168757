"""Redis Queue setup and connection."""

from __future__ import annotations

import redis
from rq import Queue

from padu_api.core.config import settings

IMPORTS_QUEUE = "imports"


def get_redis_connection() -> redis.Redis:
    """Get Redis connection for RQ."""
    return redis.from_url(settings.redis_url)


# Pre-configured queue for ingestion jobs
imports_queue = Queue(IMPORTS_QUEUE, connection=get_redis_connection())
