# -*- coding: utf-8 -*-
"""
Error taxonomy for payment-event ingestion and the public/admin APIs.

"Already processed" is deliberately not an exception: it is a successful
outcome of the idempotency check and travels as a result value.
"""
from typing import Optional


class GateflowError(Exception):
    """Base class for all application errors."""
    error_kind = "application"

    def __init__(self, message: str = "", **context):
        super().__init__(message)
        self.message = message
        self.context = context


class InvalidSignature(GateflowError):
    """Webhook payload could not be authenticated. Always answered with 400."""
    error_kind = "invalid_signature"


class MissingRequiredData(GateflowError):
    """Event payload lacks the identifiers needed to act on it."""
    error_kind = "missing_required_data"


class DownstreamFailure(GateflowError):
    """Database or payment-processor call failed."""
    error_kind = "downstream_failure"


class AnomalyNotFound(GateflowError):
    """Refund or dispute references a transaction we cannot find."""
    error_kind = "anomaly_not_found"


class ValidationError(GateflowError):
    """Invalid API input, carries a stable error code for clients."""
    error_kind = "validation"

    def __init__(self, code: str, message: str, field: Optional[str] = None,
                 status_code: int = 400):
        super().__init__(message)
        self.code = code
        self.field = field
        self.status_code = status_code

    def to_dict(self) -> dict:
        body = {"error": self.code, "message": self.message}
        if self.field:
            body["field"] = self.field
        return body


class ResourceNotFound(GateflowError):
    """Admin or API lookup for a record that does not exist."""
    error_kind = "not_found"
