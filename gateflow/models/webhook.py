"""
Webhook Models

Outbound webhook subscriptions and their delivery log.
"""

from sqlalchemy import Column, Integer, String, Boolean, JSON, ForeignKey, DateTime, Text
from sqlalchemy.orm import relationship

from gateflow.database import db
from gateflow.models.base import new_id, utcnow, isoformat


class WebhookEndpoint(db.Model):
    """An external system subscribed to GateFlow events (purchase.completed ...)"""
    __tablename__ = "webhook_endpoints"

    id = Column(String(36), primary_key=True, default=new_id)
    url = Column(String(2048), nullable=False)
    secret = Column(String(255), nullable=False)
    events = Column(JSON, nullable=False, default=list)
    description = Column(String(500), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    logs = relationship("WebhookLog", back_populates="endpoint", cascade="all, delete-orphan")

    def subscribes_to(self, event_type: str) -> bool:
        return event_type in (self.events or [])

    def to_dict(self, include_secret: bool = False):
        data = {
            "id": self.id,
            "url": self.url,
            "events": self.events or [],
            "description": self.description,
            "is_active": self.is_active,
            "created_at": isoformat(self.created_at),
        }
        if include_secret:
            data["secret"] = self.secret
        return data

    def __repr__(self):
        return f"<WebhookEndpoint {self.id} {self.url}>"


class WebhookLog(db.Model):
    """One delivery attempt to a webhook endpoint"""
    __tablename__ = "webhook_logs"

    STATUS_SUCCESS = "success"
    STATUS_FAILED = "failed"
    STATUS_RETRIED = "retried"

    id = Column(String(36), primary_key=True, default=new_id)
    endpoint_id = Column(String(36), ForeignKey("webhook_endpoints.id", ondelete="CASCADE"), nullable=True, index=True)
    event_type = Column(String(255), nullable=False)
    payload = Column(JSON, nullable=False)
    status = Column(String(16), nullable=False, default=STATUS_FAILED, index=True)
    http_status = Column(Integer, nullable=False, default=0)
    response_body = Column(Text, nullable=True)
    error_message = Column(String(1000), nullable=True)
    duration_ms = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    endpoint = relationship("WebhookEndpoint", back_populates="logs")

    def to_dict(self):
        return {
            "id": self.id,
            "endpoint_id": self.endpoint_id,
            "event_type": self.event_type,
            "payload": self.payload,
            "status": self.status,
            "http_status": self.http_status,
            "response_body": self.response_body,
            "error_message": self.error_message,
            "duration_ms": self.duration_ms,
            "created_at": isoformat(self.created_at),
        }
