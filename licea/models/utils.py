"""
Model Utilities

This module contains utility functions for the models package.
"""

import json
import secrets


def generate_verification_token():
    """Generate a 64 character hex email verification token"""
    return secrets.token_hex(32)


def generate_password_reset_token():
    """Generate a secure password reset token"""
    return secrets.token_hex(32)


def isoformat(value):
    return value.isoformat() if value else None


def dump_json(value):
    """Serialize a value for a JSON text column, None stays None"""
    if value is None:
        return None
    return json.dumps(value, default=str)


def load_json(value):
    if not value:
        return None
    try:
        return json.loads(value)
    except (TypeError, ValueError):
        return value
