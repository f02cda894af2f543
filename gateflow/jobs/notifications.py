# gateflow/jobs/notifications.py
"""
Background jobs scheduled by the Notifier.

They run either inside the web process (thread backend, app context already
pushed) or inside an `rq worker`, where the Flask app is created lazily.
"""
from __future__ import annotations

from contextlib import nullcontext

from flask import current_app, has_app_context

from gateflow.services.structured_logging import get_logger, mask_email

logger = get_logger('gateflow.notifier')

_APP_SINGLETON = None


def _get_app():
    """Create (once) and return the Flask app for work inside an RQ job."""
    global _APP_SINGLETON
    if _APP_SINGLETON is None:
        from gateflow.factory import create_app  # import here to avoid circulars
        _APP_SINGLETON = create_app()
    return _APP_SINGLETON


def _context():
    return nullcontext() if has_app_context() else _get_app().app_context()


def _services():
    return current_app.extensions["gateflow"]


def deliver_event(event_name: str, payload: dict):
    """Send an event to webhook subscribers; purchases also go to the conversion API."""
    with _context():
        services = _services()
        try:
            results = services.webhooks.trigger(event_name, payload)
            logger.info(
                "Outbound event delivered",
                outbound_event=event_name,
                endpoints=len(results),
                failed=sum(1 for r in results if not r.success),
            )
        except Exception:
            logger.exception("Outbound webhook delivery failed", outbound_event=event_name)

        if event_name == "purchase.completed":
            try:
                services.tracker.track_purchase(payload)
            except Exception:
                logger.exception("Conversion tracking failed", outbound_event=event_name)


def send_magic_link(email: str):
    with _context():
        sent = _services().magic_links.send(email)
        if not sent:
            logger.warning("Magic link email not sent", email=mask_email(email))
