# -*- coding: utf-8 -*-
"""
Request context middleware.

Generates (or accepts) a request_id for every request, exposes it through
Flask's `g`, and echoes it back in the `X-Request-ID` response header so a
webhook delivery can be traced from the processor dashboard into our logs.
"""

import uuid
import time
from typing import Optional
from flask import Flask, request, g, Response


class RequestContextMiddleware:
    """Middleware for managing request context and request_id propagation."""

    def __init__(self, app: Flask):
        self.app = app
        app.before_request(self._before_request)
        app.after_request(self._after_request)

    def _before_request(self):
        g.request_id = self._get_or_generate_request_id()
        g.request_start_time = time.time()
        g.request_method = request.method
        g.request_path = request.path

    def _after_request(self, response: Response) -> Response:
        if hasattr(g, 'request_id'):
            response.headers['X-Request-ID'] = g.request_id

        if hasattr(g, 'request_start_time'):
            duration_ms = round((time.time() - g.request_start_time) * 1000, 2)
            response.headers['X-Response-Time'] = f"{duration_ms}ms"

        return response

    def _get_or_generate_request_id(self) -> str:
        request_id = request.headers.get('X-Request-ID')

        if request_id:
            try:
                uuid.UUID(request_id)
                return request_id
            except ValueError:
                pass

        return str(uuid.uuid4())


def get_request_id() -> Optional[str]:
    """Get current request_id from Flask g context."""
    return getattr(g, 'request_id', None)


def get_request_context() -> dict:
    """Get request context fields for logging."""
    context = {
        'request_id': getattr(g, 'request_id', None),
        'method': getattr(g, 'request_method', None),
        'path': getattr(g, 'request_path', None),
    }

    if hasattr(g, 'request_start_time'):
        context['duration_ms'] = round(
            (time.time() - g.request_start_time) * 1000, 2)

    return context


def init_request_context(app: Flask):
    """Initialize request context middleware for Flask application."""
    return RequestContextMiddleware(app)
