"""
Middleware package: authentication decorators and JSON error handlers.
"""

from .auth import admin_required, current_customer_id, issue_access_token
from .errors import register_error_handlers

__all__ = [
    'admin_required',
    'current_customer_id',
    'issue_access_token',
    'register_error_handlers',
]
