"""
Webhook Service

Delivers GateFlow events (purchase.completed, lead.captured ...) to external
subscriber endpoints and keeps a log of every delivery attempt.
"""

import json
import hmac
import hashlib
import secrets
import time
from datetime import datetime, timezone
from typing import Dict, List, Optional, Any
from dataclasses import dataclass

import requests
from sqlalchemy.orm import Session

from gateflow.errors import ResourceNotFound
from gateflow.models.webhook import WebhookEndpoint, WebhookLog
from gateflow.services.structured_logging import get_logger

logger = get_logger('gateflow.outbound_webhooks')

WEBHOOK_EVENT_TYPES = [
    'purchase.completed',
    'lead.captured',
    'waitlist.signup',
    'payment.refunded',
    'user.access_granted',
    'user.access_revoked',
]

MAX_RESPONSE_BODY = 5000

MOCK_PAYLOADS: Dict[str, Dict[str, Any]] = {
    'purchase.completed': {
        'email': 'test@example.com',
        'product_id': '00000000-0000-0000-0000-000000000000',
        'amount': 4900,
        'currency': 'usd',
        'session_id': 'cs_test_mock',
        'is_guest': True,
        'source': 'test',
    },
    'lead.captured': {
        'email': 'lead@example.com',
        'product_id': '00000000-0000-0000-0000-000000000000',
        'source': 'test',
    },
    'waitlist.signup': {
        'email': 'waitlist@example.com',
        'product_id': '00000000-0000-0000-0000-000000000000',
        'source': 'test',
    },
}


@dataclass
class DeliveryResult:
    endpoint_id: str
    success: bool
    status: int
    error: Optional[str] = None
    log_id: Optional[str] = None


def generate_secret() -> str:
    return f"whsec_{secrets.token_hex(24)}"


class WebhookService:
    """Service for managing subscriber endpoints and delivering events"""

    def __init__(self, db_session: Session, timeout: int = 5, http=None, metrics=None):
        self.db = db_session
        self.timeout = timeout
        self.http = http or requests
        self.metrics = metrics

    def create_endpoint(self, url: str, events: List[str], secret: Optional[str] = None,
                        description: Optional[str] = None, is_active: bool = True) -> WebhookEndpoint:
        """Create a new subscriber endpoint"""
        try:
            endpoint = WebhookEndpoint(
                url=url,
                secret=secret or generate_secret(),
                events=events,
                description=description,
                is_active=is_active
            )
            self.db.add(endpoint)
            self.db.commit()
            logger.info(f"Created webhook endpoint {endpoint.id}", events=events)
            return endpoint
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create webhook endpoint: {e}")
            raise

    def get_endpoint(self, endpoint_id: str) -> Optional[WebhookEndpoint]:
        return self.db.query(WebhookEndpoint).filter_by(id=endpoint_id).first()

    def list_endpoints(self) -> List[WebhookEndpoint]:
        return self.db.query(WebhookEndpoint).order_by(WebhookEndpoint.created_at.desc()).all()

    def update_endpoint(self, endpoint_id: str, **kwargs) -> Optional[WebhookEndpoint]:
        """Update an endpoint's url, events, description or is_active"""
        try:
            endpoint = self.get_endpoint(endpoint_id)
            if not endpoint:
                return None

            for key in ('url', 'events', 'description', 'is_active'):
                if key in kwargs and kwargs[key] is not None:
                    setattr(endpoint, key, kwargs[key])

            self.db.commit()
            logger.info(f"Updated webhook endpoint {endpoint_id}")
            return endpoint
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update webhook endpoint {endpoint_id}: {e}")
            raise

    def delete_endpoint(self, endpoint_id: str) -> bool:
        try:
            endpoint = self.get_endpoint(endpoint_id)
            if not endpoint:
                return False

            self.db.delete(endpoint)
            self.db.commit()
            logger.info(f"Deleted webhook endpoint {endpoint_id}")
            return True
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to delete webhook endpoint {endpoint_id}: {e}")
            raise

    def list_logs(self, endpoint_id: Optional[str] = None, status: Optional[str] = None,
                  limit: int = 50) -> List[WebhookLog]:
        query = self.db.query(WebhookLog)
        if endpoint_id:
            query = query.filter(WebhookLog.endpoint_id == endpoint_id)
        if status:
            query = query.filter(WebhookLog.status == status)
        return query.order_by(WebhookLog.created_at.desc()).limit(limit).all()

    def trigger(self, event_type: str, data: Dict[str, Any]) -> List[DeliveryResult]:
        """Deliver an event to every active endpoint subscribed to it"""
        endpoints = [
            endpoint for endpoint in
            self.db.query(WebhookEndpoint).filter(WebhookEndpoint.is_active.is_(True)).all()
            if endpoint.subscribes_to(event_type)
        ]

        if not endpoints:
            logger.debug(f"No active webhook endpoints for event {event_type}")
            return []

        payload = {
            'event': event_type,
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'data': data,
        }
        return [self._dispatch(endpoint, event_type, payload) for endpoint in endpoints]

    def test_endpoint(self, endpoint_id: str, event_type: Optional[str] = None) -> DeliveryResult:
        """Send a mock event to one endpoint so admins can check their integration"""
        endpoint = self.get_endpoint(endpoint_id)
        if not endpoint:
            raise ResourceNotFound('Webhook endpoint not found', endpoint_id=endpoint_id)

        event_type = event_type or (endpoint.events[0] if endpoint.events else 'purchase.completed')
        payload = {
            'event': event_type,
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'data': dict(MOCK_PAYLOADS.get(event_type, {'message': 'Test event'}), test=True),
        }
        return self._dispatch(endpoint, event_type, payload, {'X-GateFlow-Test': 'true'})

    def retry(self, log_id: str) -> DeliveryResult:
        """Resend a logged delivery with its original payload; the old entry becomes `retried`"""
        log = self.db.query(WebhookLog).filter_by(id=log_id).first()
        if not log:
            raise ResourceNotFound('Log entry not found', log_id=log_id)
        if not log.endpoint:
            raise ResourceNotFound('Webhook endpoint no longer exists', log_id=log_id)

        result = self._dispatch(log.endpoint, log.event_type, log.payload, {'X-GateFlow-Retry': 'true'})

        log.status = WebhookLog.STATUS_RETRIED
        self.db.commit()
        return result

    def _dispatch(self, endpoint: WebhookEndpoint, event_type: str, payload: Dict[str, Any],
                  extra_headers: Optional[Dict[str, str]] = None) -> DeliveryResult:
        """Send one request and log the attempt"""
        body = json.dumps(payload)
        headers = {
            'Content-Type': 'application/json',
            'User-Agent': 'GateFlow-Webhook/1.0',
            'X-GateFlow-Event': event_type,
            'X-GateFlow-Signature': self._generate_signature(endpoint.secret, body),
            'X-GateFlow-Timestamp': str(int(time.time())),
        }
        if extra_headers:
            headers.update(extra_headers)

        start = time.monotonic()
        status = 0
        response_body = None
        error_message = None
        try:
            response = self.http.post(endpoint.url, data=body, headers=headers, timeout=self.timeout)
            status = response.status_code
            response_body = (response.text or '')[:MAX_RESPONSE_BODY]
            if not 200 <= status < 300:
                error_message = f"HTTP {status}"
        except requests.Timeout:
            status = 408
            error_message = f"Request timed out ({self.timeout}s)"
        except requests.RequestException as e:
            error_message = str(e) or 'Network error'
        duration_ms = int((time.monotonic() - start) * 1000)

        success = 200 <= status < 300
        log = WebhookLog(
            endpoint_id=endpoint.id,
            event_type=event_type,
            payload=payload,
            status=WebhookLog.STATUS_SUCCESS if success else WebhookLog.STATUS_FAILED,
            http_status=status,
            response_body=response_body,
            error_message=(error_message or '')[:1000] or None,
            duration_ms=duration_ms,
        )
        try:
            self.db.add(log)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to write webhook log for endpoint {endpoint.id}: {e}")

        if self.metrics is not None:
            self.metrics.record_outbound_delivery('success' if success else 'failed')

        if success:
            logger.info(f"Webhook {event_type} delivered to endpoint {endpoint.id}", http_status=status,
                        duration_ms=duration_ms)
        else:
            logger.warning(f"Webhook {event_type} to endpoint {endpoint.id} failed", http_status=status,
                           error=error_message)

        return DeliveryResult(
            endpoint_id=endpoint.id,
            success=success,
            status=status,
            error=error_message,
            log_id=log.id,
        )

    def _generate_signature(self, secret: str, payload: str) -> str:
        """Generate HMAC-SHA256 signature for webhook payload"""
        return hmac.new(secret.encode('utf-8'), payload.encode('utf-8'), hashlib.sha256).hexdigest()

    def verify_signature(self, secret: str, payload: str, received_signature: str) -> bool:
        """Verify a signature the way a subscriber would"""
        if not received_signature:
            return False

        expected_signature = self._generate_signature(secret, payload)
        return hmac.compare_digest(expected_signature, received_signature)
