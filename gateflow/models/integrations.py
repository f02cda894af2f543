# -*- coding: utf-8 -*-
from gateflow.database import db


class IntegrationsConfig(db.Model):
    """Single-row table with marketing integration settings editable by admins."""
    __tablename__ = "integrations_config"

    id = db.Column(db.Integer, primary_key=True)
    facebook_pixel_id = db.Column(db.String(64), nullable=True)
    facebook_capi_token = db.Column(db.String(512), nullable=True)
    facebook_test_event_code = db.Column(db.String(64), nullable=True)
    fb_capi_enabled = db.Column(db.Boolean, nullable=False, default=False)
    send_conversions_without_consent = db.Column(db.Boolean, nullable=False, default=False)

    @classmethod
    def current(cls):
        return cls.query.order_by(cls.id).first()
