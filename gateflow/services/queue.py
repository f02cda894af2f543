# gateflow/services/queue.py
from __future__ import annotations

from typing import Any, Optional

import redis
from rq import Queue

_queues = {}


def get_queue(redis_url: str, name: str = "default") -> Queue:
    """One queue per (url, name), created on first use.

    decode_responses=False keeps RQ binary-safe for pickled jobs.
    """
    key = (redis_url, name)
    if key not in _queues:
        connection = redis.from_url(redis_url, decode_responses=False)
        _queues[key] = Queue(name, connection=connection)
    return _queues[key]


def enqueue(func: Any, *args, redis_url: Optional[str] = None, **kwargs):
    """Enqueue a job on the default queue."""
    return get_queue(redis_url or "redis://localhost:6379/0").enqueue(func, *args, **kwargs)
