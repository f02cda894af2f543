'''
Idempotency stores for inbound webhook events.

Both stores expose the same contract:

    claim(key, provider, event_type) -> bool   # True only for the first claimant
    record_processed(key, message)
    mark_failed(key, message)                  # the key may be claimed again
    has_processed(key) -> bool

The database store relies on the unique constraint of processed_webhook_events;
the Redis store relies on SET NX with a TTL.
'''
import json
from datetime import datetime, timezone
from typing import Optional

import redis
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from gateflow.database import db
from gateflow.models.base import utcnow
from gateflow.models.idempotency import ProcessedWebhookEvent
from gateflow.services.structured_logging import get_logger

logger = get_logger('gateflow.idempotency')


class DatabaseIdempotencyStore:
    '''Claims event keys by inserting into processed_webhook_events.'''

    def __init__(self, session=None):
        self._session = session

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    def claim(self, key: str, provider: str = 'stripe', event_type: str = '') -> bool:
        row = ProcessedWebhookEvent(
            event_key=key,
            provider=provider,
            event_type=event_type,
            status=ProcessedWebhookEvent.STATUS_PROCESSING,
        )
        try:
            self.session.add(row)
            self.session.commit()
            logger.log_idempotency_event('claimed', event_key=key)
            return True
        except IntegrityError:
            self.session.rollback()

        # Only a failed attempt may be picked up again.
        result = self.session.execute(
            update(ProcessedWebhookEvent)
            .where(ProcessedWebhookEvent.event_key == key)
            .where(ProcessedWebhookEvent.status == ProcessedWebhookEvent.STATUS_FAILED)
            .values(status=ProcessedWebhookEvent.STATUS_PROCESSING, updated_at=utcnow())
        )
        self.session.commit()
        reclaimed = result.rowcount == 1
        logger.log_idempotency_event('reclaimed' if reclaimed else 'duplicate', event_key=key)
        return reclaimed

    def _finish(self, key: str, status: str, message: Optional[str]):
        self.session.execute(
            update(ProcessedWebhookEvent)
            .where(ProcessedWebhookEvent.event_key == key)
            .values(status=status, message=(message or '')[:1000], updated_at=utcnow())
        )
        self.session.commit()

    def record_processed(self, key: str, message: Optional[str] = None):
        self._finish(key, ProcessedWebhookEvent.STATUS_PROCESSED, message)

    def mark_failed(self, key: str, message: Optional[str] = None):
        self._finish(key, ProcessedWebhookEvent.STATUS_FAILED, message)

    def has_processed(self, key: str) -> bool:
        row = self.session.query(ProcessedWebhookEvent).filter_by(event_key=key).first()
        return row is not None and row.status != ProcessedWebhookEvent.STATUS_FAILED

    def get(self, key: str) -> Optional[ProcessedWebhookEvent]:
        return self.session.query(ProcessedWebhookEvent).filter_by(event_key=key).first()


class RedisIdempotencyStore:
    '''Redis-based store, keys expire after ttl_hours.'''

    KEY_PREFIX = 'gateflow:webhook:'

    def __init__(self, redis_client: Optional[redis.Redis] = None, redis_url: Optional[str] = None,
                 ttl_hours: int = 72):
        if redis_client is not None:
            self.redis = redis_client
        else:
            self.redis = redis.from_url(redis_url or 'redis://localhost:6379/0', decode_responses=True)
        self.ttl_seconds = ttl_hours * 3600

    def _key(self, key: str) -> str:
        return f"{self.KEY_PREFIX}{key}"

    def _record(self, status: str, provider: str = '', event_type: str = '', message: Optional[str] = None) -> str:
        return json.dumps({
            'status': status,
            'provider': provider,
            'event_type': event_type,
            'message': message,
            'updated_at': datetime.now(timezone.utc).isoformat(),
        })

    def claim(self, key: str, provider: str = 'stripe', event_type: str = '') -> bool:
        claimed = self.redis.set(
            self._key(key),
            self._record(ProcessedWebhookEvent.STATUS_PROCESSING, provider, event_type),
            nx=True,
            ex=self.ttl_seconds,
        )
        logger.log_idempotency_event('claimed' if claimed else 'duplicate', event_key=key)
        return bool(claimed)

    def record_processed(self, key: str, message: Optional[str] = None):
        self.redis.set(
            self._key(key),
            self._record(ProcessedWebhookEvent.STATUS_PROCESSED, message=message),
            ex=self.ttl_seconds,
        )

    def mark_failed(self, key: str, message: Optional[str] = None):
        self.redis.delete(self._key(key))

    def has_processed(self, key: str) -> bool:
        return bool(self.redis.exists(self._key(key)))


def build_idempotency_store(config):
    if config.get('IDEMPOTENCY_BACKEND', 'database') == 'redis':
        return RedisIdempotencyStore(
            redis_url=config.get('REDIS_URL'),
            ttl_hours=int(config.get('IDEMPOTENCY_TTL_HOURS', 72)),
        )
    return DatabaseIdempotencyStore()
