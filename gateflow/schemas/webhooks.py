# -*- coding: utf-8 -*-
"""
Outbound webhook endpoint schemas.

Endpoint URLs must use https and must not point at loopback, private,
link-local or cloud-metadata hosts.
"""
import ipaddress
from typing import List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator

from gateflow.services.webhook_service import WEBHOOK_EVENT_TYPES

BLOCKED_HOSTNAMES = (
    'localhost',
    'metadata.google.internal',
    'metadata.goog',
    'kubernetes.default',
    'kubernetes.default.svc',
)


def check_webhook_url(value: str) -> str:
    parsed = urlparse(value)
    if parsed.scheme != 'https':
        raise ValueError('URL must use HTTPS protocol')
    hostname = (parsed.hostname or '').lower()
    if not hostname:
        raise ValueError('Invalid URL format')

    if any(hostname == blocked or hostname.endswith('.' + blocked) for blocked in BLOCKED_HOSTNAMES):
        raise ValueError('URL cannot point to internal services')

    try:
        address = ipaddress.ip_address(hostname)
    except ValueError:
        return value

    if (address.is_loopback or address.is_private or address.is_link_local
            or address.is_unspecified or address.is_reserved):
        raise ValueError('URL cannot point to private or loopback addresses')
    return value


def check_events(events: List[str]) -> List[str]:
    if not events:
        raise ValueError('Events must be a non-empty array')
    unknown = [event for event in events if event not in WEBHOOK_EVENT_TYPES]
    if unknown:
        raise ValueError(f"Unknown event types: {', '.join(unknown)}")
    return list(dict.fromkeys(events))


class CreateWebhookEndpointRequest(BaseModel):
    url: str = Field(..., max_length=2048)
    events: List[str]
    description: Optional[str] = Field(default=None, max_length=500)
    is_active: bool = True

    @field_validator('url')
    @classmethod
    def validate_url(cls, v):
        return check_webhook_url(v)

    @field_validator('events')
    @classmethod
    def validate_events(cls, v):
        return check_events(v)


class UpdateWebhookEndpointRequest(BaseModel):
    url: Optional[str] = Field(default=None, max_length=2048)
    events: Optional[List[str]] = None
    description: Optional[str] = Field(default=None, max_length=500)
    is_active: Optional[bool] = None

    @field_validator('url')
    @classmethod
    def validate_url(cls, v):
        return check_webhook_url(v) if v is not None else v

    @field_validator('events')
    @classmethod
    def validate_events(cls, v):
        return check_events(v) if v is not None else v


class SendTestEventRequest(BaseModel):
    event_type: Optional[str] = None

    @field_validator('event_type')
    @classmethod
    def validate_event_type(cls, v):
        if v is not None and v not in WEBHOOK_EVENT_TYPES:
            raise ValueError('Unknown event type')
        return v
