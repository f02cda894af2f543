# -*- coding: utf-8 -*-
"""
Service for managing Prometheus metrics.

Records HTTP request metrics through before/after request hooks, plus
webhook ingestion outcomes and outbound delivery results.
"""

import time
import uuid
from typing import Optional
from flask import Flask, request, g, current_app, has_app_context
from prometheus_client import CollectorRegistry, Counter, Histogram
from prometheus_client.exposition import generate_latest


def init_metrics(app: Flask) -> None:
    """Initialize metrics service and the /metrics endpoint."""
    service = MetricsService(enabled=bool(app.config.get('GATEFLOW_METRICS_ENABLED', True)))
    app.extensions['metrics'] = service

    if service.enabled:
        @app.before_request
        def before_request():
            g.metrics_start_time = time.time()

        @app.after_request
        def after_request(response):
            start = getattr(g, 'metrics_start_time', None)
            if start is not None:
                service.record_http_request(
                    route=request.path,
                    method=request.method,
                    status_code=response.status_code,
                    duration_seconds=time.time() - start
                )
            return response

        @app.route("/metrics")
        def metrics():
            return generate_latest(service.registry), 200, {
                'Content-Type': 'text/plain; version=0.0.4; charset=utf-8'}


def get_metrics_service() -> Optional['MetricsService']:
    """Get the metrics service instance from the current app context."""
    if has_app_context():
        return current_app.extensions.get('metrics')
    return None


class MetricsService:
    """Service for managing Prometheus metrics."""

    def __init__(self, registry: Optional[CollectorRegistry] = None, enabled: bool = True):
        self.enabled = enabled
        # One registry per app so several apps (tests) never collide.
        self.registry = registry if registry is not None else CollectorRegistry()

        if self.enabled:
            self.http_requests_total = Counter(
                "gateflow_http_requests_total",
                "Total number of HTTP requests.",
                ["route", "method", "status"],
                registry=self.registry
            )
            self.http_request_duration_seconds = Histogram(
                "gateflow_http_request_duration_seconds",
                "Duration of HTTP requests in seconds.",
                ["route", "method"],
                registry=self.registry
            )
            self.webhook_events_total = Counter(
                "gateflow_webhook_events_total",
                "Inbound payment events by type and outcome.",
                ["event_type", "outcome"],
                registry=self.registry
            )
            self.webhook_signature_failures_total = Counter(
                "gateflow_webhook_signature_failures_total",
                "Inbound webhooks rejected for a missing or invalid signature.",
                ["provider"],
                registry=self.registry
            )
            self.outbound_deliveries_total = Counter(
                "gateflow_outbound_deliveries_total",
                "Outbound webhook deliveries by status.",
                ["status"],
                registry=self.registry
            )

    def record_http_request(
            self,
            route: str,
            method: str,
            status_code: int,
            duration_seconds: float):
        if self.enabled:
            normalized_route = self._normalize_route(route)
            self.http_requests_total.labels(
                route=normalized_route,
                method=method,
                status=status_code).inc()
            self.http_request_duration_seconds.labels(
                route=normalized_route, method=method).observe(duration_seconds)

    def record_webhook_event(self, event_type: str, outcome: str):
        """outcome is one of processed, failed, duplicate, ignored."""
        if self.enabled:
            self.webhook_events_total.labels(event_type=event_type, outcome=outcome).inc()

    def record_signature_failure(self, provider: str):
        if self.enabled:
            self.webhook_signature_failures_total.labels(provider=provider).inc()

    def record_outbound_delivery(self, status: str):
        if self.enabled:
            self.outbound_deliveries_total.labels(status=status).inc()

    def get_metrics(self) -> str:
        if self.enabled:
            return generate_latest(self.registry).decode('utf-8')
        return ""

    def _normalize_route(self, route: str) -> str:
        parts = route.split('/')
        for i, part in enumerate(parts):
            if part.isdigit():
                parts[i] = '{id}'
                continue
            try:
                uuid.UUID(part)
                parts[i] = '{uuid}'
            except (ValueError, AttributeError):
                pass
        return '/'.join(parts)
