# -*- coding: utf-8 -*-
"""
Server-side conversion tracking (Facebook Conversions API).

Only conversion events (Purchase, Lead) may be sent from the server, and only
when an admin enabled both CAPI and `send_conversions_without_consent` in the
integrations settings.
"""
import hashlib
import time
import uuid
from dataclasses import dataclass
from typing import List, Optional

import requests

from gateflow.database import db
from gateflow.models.integrations import IntegrationsConfig
from gateflow.models.product import Product
from gateflow.services.structured_logging import get_logger

logger = get_logger('gateflow.tracking')

SERVER_SIDE_ALLOWED_EVENTS = ('Purchase', 'Lead')


def hash_email(email: str) -> str:
    return hashlib.sha256(email.strip().lower().encode('utf-8')).hexdigest()


@dataclass
class TrackingResult:
    success: bool
    skipped: bool = False
    reason: Optional[str] = None
    events_received: Optional[int] = None
    error: Optional[str] = None


class ConversionTracker:

    def __init__(self, graph_api_version: str = 'v18.0', public_base_url: str = '', timeout: int = 5,
                 http=None):
        self.graph_api_version = graph_api_version
        self.public_base_url = public_base_url.rstrip('/')
        self.timeout = timeout
        self.http = http or requests

    def track_purchase(self, payload: dict) -> TrackingResult:
        """Send a Purchase for a `purchase.completed` notification payload."""
        product = db.session.get(Product, payload['product_id']) if payload.get('product_id') else None
        amount = payload.get('amount') or 0
        return self.track_server_side_conversion(
            event_name='Purchase',
            event_source_url=f"{self.public_base_url}/checkout/{product.slug if product else ''}",
            value=round(amount / 100.0, 2),
            currency=(payload.get('currency') or 'usd').upper(),
            items=[{
                'item_id': payload.get('product_id'),
                'item_name': product.name if product else None,
            }],
            order_id=payload.get('session_id') or payload.get('payment_intent_id'),
            user_email=payload.get('email'),
        )

    def track_server_side_conversion(self, event_name: str, event_source_url: str, value: float,
                                     currency: str, items: List[dict], order_id: Optional[str] = None,
                                     user_email: Optional[str] = None, client_ip: Optional[str] = None,
                                     user_agent: Optional[str] = None,
                                     event_id: Optional[str] = None) -> TrackingResult:
        if event_name not in SERVER_SIDE_ALLOWED_EVENTS:
            return TrackingResult(success=False, skipped=True, reason='event_not_allowed_server_side')

        config = IntegrationsConfig.current()
        if (config is None or not config.fb_capi_enabled
                or not config.facebook_pixel_id or not config.facebook_capi_token):
            return TrackingResult(success=False, skipped=True, reason='capi_not_configured')

        if not config.send_conversions_without_consent:
            return TrackingResult(success=False, skipped=True, reason='server_side_conversions_disabled')

        user_data = {}
        if client_ip:
            user_data['client_ip_address'] = client_ip
        if user_agent:
            user_data['client_user_agent'] = user_agent
        if user_email:
            user_data['em'] = [hash_email(user_email)]

        custom_data = {
            'currency': currency,
            'value': value,
            'content_ids': [item.get('item_id') for item in items],
            'content_name': items[0].get('item_name') if items else None,
            'content_type': 'product',
        }
        if order_id:
            custom_data['order_id'] = order_id

        body = {
            'data': [{
                'event_name': event_name,
                'event_time': int(time.time()),
                'event_id': event_id or str(uuid.uuid4()),
                'event_source_url': event_source_url,
                'action_source': 'website',
                'user_data': user_data,
                'custom_data': custom_data,
            }],
        }
        if config.facebook_test_event_code:
            body['test_event_code'] = config.facebook_test_event_code

        url = f"https://graph.facebook.com/{self.graph_api_version}/{config.facebook_pixel_id}/events"
        try:
            response = self.http.post(
                url,
                params={'access_token': config.facebook_capi_token},
                json=body,
                timeout=self.timeout,
            )
            result = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error("CAPI request failed", error=str(e), event_name=event_name)
            return TrackingResult(success=False, error=str(e))

        if not isinstance(result, dict):
            result = {}
        error = result.get('error')
        if response.status_code >= 400 or error:
            if isinstance(error, dict):
                error = error.get('message')
            message = str(error) if error else f"HTTP {response.status_code}"
            logger.warning("CAPI rejected event", error=message, event_name=event_name)
            return TrackingResult(success=False, error=message)

        logger.info("CAPI event sent", event_name=event_name, events_received=result.get('events_received'))
        return TrackingResult(success=True, events_received=result.get('events_received'))
