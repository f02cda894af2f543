# -*- coding: utf-8 -*-
"""
Outbound notifier.

Schedules best-effort work (subscriber webhooks, conversion tracking, magic
link emails) off the request path. Scheduling never raises into the caller
and a failing job never touches the already committed purchase.

Backends:
  thread  in-process ThreadPoolExecutor, each job runs in its own app context
  rq      job enqueued on Redis, executed by an `rq worker`
  sync    run inline (tests)
"""
from concurrent.futures import ThreadPoolExecutor

from flask import Flask

from gateflow.database import db
from gateflow.jobs import notifications
from gateflow.services import queue
from gateflow.services.structured_logging import get_logger

logger = get_logger('gateflow.notifier')

BACKENDS = ('thread', 'rq', 'sync')


class Notifier:

    def __init__(self, app: Flask, backend: str = 'thread', max_workers: int = 4, redis_url: str = None):
        if backend not in BACKENDS:
            raise ValueError(f"Unknown notifier backend: {backend}")
        self.app = app
        self.backend = backend
        self.redis_url = redis_url
        self._executor = None
        if backend == 'thread':
            self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='gateflow-notify')

    def trigger(self, event_name: str, payload: dict):
        """Deliver `event_name` to subscribers (and conversion APIs) in the background."""
        self.submit(notifications.deliver_event, event_name, payload)

    def send_magic_link(self, email: str):
        self.submit(notifications.send_magic_link, email)

    def submit(self, func, *args, **kwargs):
        try:
            if self.backend == 'rq':
                queue.enqueue(func, *args, redis_url=self.redis_url, **kwargs)
            elif self.backend == 'thread':
                self._executor.submit(self._run, func, *args, **kwargs)
            else:
                self._run(func, *args, **kwargs)
        except Exception:
            logger.exception("Could not schedule notification", job=func.__name__)

    def _run(self, func, *args, **kwargs):
        with self.app.app_context():
            try:
                func(*args, **kwargs)
            except Exception:
                logger.exception("Notification job failed", job=func.__name__)
            finally:
                db.session.remove()

    def shutdown(self, wait: bool = True):
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
