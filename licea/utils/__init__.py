"""
Utilities Package

Request plumbing shared by the blueprints: auth, validation, errors,
rate limiting, the audit tap, email, uploads, metrics and the assistant.
"""

from . import auth_utils
from . import validators
from . import error_handlers
from . import audit_logger

__all__ = [
    'auth_utils',
    'validators',
    'error_handlers',
    'audit_logger',
]
