# -*- coding: utf-8 -*-
"""
Idempotency table for inbound webhook events.

The unique constraint on event_key is the only concurrency control relied
upon: a duplicate insert fails and is read as "already claimed".
"""
from gateflow.database import db
from gateflow.models.base import new_id, utcnow


class ProcessedWebhookEvent(db.Model):
    __tablename__ = "processed_webhook_events"

    STATUS_PROCESSING = "processing"
    STATUS_PROCESSED = "processed"
    STATUS_FAILED = "failed"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    event_key = db.Column(db.String(255), unique=True, nullable=False)
    provider = db.Column(db.String(32), nullable=False, default="stripe")
    event_type = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=STATUS_PROCESSING)
    message = db.Column(db.String(1000), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<ProcessedWebhookEvent {self.event_key} ({self.status})>"
