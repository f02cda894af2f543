"""
Webhook Routes

Admin API for outbound webhook endpoints and their delivery logs.
"""

from flask import Blueprint, request, jsonify
from pydantic import ValidationError

from gateflow.middleware.auth import admin_required
from gateflow.models.webhook import WebhookLog
from gateflow.schemas.common import validation_error_response
from gateflow.schemas.webhooks import (
    CreateWebhookEndpointRequest,
    SendTestEventRequest,
    UpdateWebhookEndpointRequest,
)
from gateflow.services.container import get_services
from gateflow.services.structured_logging import get_logger
from gateflow.services.webhook_service import WEBHOOK_EVENT_TYPES

logger = get_logger("gateflow.outbound_webhooks")

webhooks_bp = Blueprint("webhooks", __name__)

MAX_LOG_LIMIT = 200


@webhooks_bp.route("/api/v1/webhooks", methods=["POST"])
@admin_required
def create_webhook():
    """Create a new webhook endpoint; the signing secret is only returned here"""
    try:
        data = CreateWebhookEndpointRequest(**(request.get_json(silent=True) or {}))
    except ValidationError as e:
        return validation_error_response(e)

    endpoint = get_services().webhooks.create_endpoint(
        url=data.url,
        events=data.events,
        description=data.description,
        is_active=data.is_active,
    )
    return jsonify(endpoint.to_dict(include_secret=True)), 201


@webhooks_bp.route("/api/v1/webhooks", methods=["GET"])
@admin_required
def list_webhooks():
    endpoints = get_services().webhooks.list_endpoints()
    return jsonify({
        "endpoints": [endpoint.to_dict() for endpoint in endpoints],
        "event_types": WEBHOOK_EVENT_TYPES,
    }), 200


@webhooks_bp.route("/api/v1/webhooks/<endpoint_id>", methods=["GET"])
@admin_required
def get_webhook(endpoint_id: str):
    endpoint = get_services().webhooks.get_endpoint(endpoint_id)
    if not endpoint:
        return jsonify({"error": "Webhook not found"}), 404
    return jsonify(endpoint.to_dict()), 200


@webhooks_bp.route("/api/v1/webhooks/<endpoint_id>", methods=["PUT", "PATCH"])
@admin_required
def update_webhook(endpoint_id: str):
    try:
        data = UpdateWebhookEndpointRequest(**(request.get_json(silent=True) or {}))
    except ValidationError as e:
        return validation_error_response(e)

    endpoint = get_services().webhooks.update_endpoint(endpoint_id, **data.model_dump(exclude_unset=True))
    if not endpoint:
        return jsonify({"error": "Webhook not found"}), 404
    return jsonify(endpoint.to_dict()), 200


@webhooks_bp.route("/api/v1/webhooks/<endpoint_id>", methods=["DELETE"])
@admin_required
def delete_webhook(endpoint_id: str):
    if not get_services().webhooks.delete_endpoint(endpoint_id):
        return jsonify({"error": "Webhook not found"}), 404
    return jsonify({"message": "Webhook deleted successfully"}), 200


@webhooks_bp.route("/api/v1/webhooks/<endpoint_id>/test", methods=["POST"])
@admin_required
def test_webhook(endpoint_id: str):
    """Send a mock event so admins can check their receiver"""
    try:
        data = SendTestEventRequest(**(request.get_json(silent=True) or {}))
    except ValidationError as e:
        return validation_error_response(e)

    result = get_services().webhooks.test_endpoint(endpoint_id, data.event_type)
    return jsonify({
        "success": result.success,
        "status": result.status,
        "error": result.error,
        "log_id": result.log_id,
    }), 200


@webhooks_bp.route("/api/v1/webhooks/logs", methods=["GET"])
@admin_required
def list_webhook_logs():
    status = request.args.get("status")
    if status and status not in (WebhookLog.STATUS_SUCCESS, WebhookLog.STATUS_FAILED, WebhookLog.STATUS_RETRIED):
        return jsonify({"error": "validation_error", "message": "Invalid status filter", "field": "status"}), 400

    try:
        limit = min(int(request.args.get("limit", 50)), MAX_LOG_LIMIT)
    except ValueError:
        return jsonify({"error": "validation_error", "message": "limit must be an integer", "field": "limit"}), 400

    logs = get_services().webhooks.list_logs(
        endpoint_id=request.args.get("endpoint_id"),
        status=status,
        limit=max(limit, 1),
    )
    return jsonify({"logs": [log.to_dict() for log in logs]}), 200


@webhooks_bp.route("/api/v1/webhooks/logs/<log_id>/retry", methods=["POST"])
@admin_required
def retry_webhook_log(log_id: str):
    """Manually resend a logged delivery"""
    result = get_services().webhooks.retry(log_id)
    logger.info(f"Webhook log {log_id} retried", success=result.success, http_status=result.status)
    return jsonify({
        "success": result.success,
        "status": result.status,
        "error": result.error,
        "log_id": result.log_id,
    }), 200
