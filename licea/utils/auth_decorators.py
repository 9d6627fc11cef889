"""
Request Authentication Decorators

FLOW OVERVIEW
- token_required
  • Bearer token → decode → load user → g.current_user. Failures:
    401 TOKEN_REQUIRED / TOKEN_EXPIRED / INVALID_TOKEN, 404 USER_NOT_FOUND, 403 ACCOUNT_INACTIVE.
- role_required(*roles)
  • 401 AUTH_REQUIRED without a user, 403 INSUFFICIENT_PERMISSIONS for other roles.
- owner_or_role_required(field, *roles)
  • Admins and listed roles pass; otherwise the view arg / body field must equal the caller id.
"""

import logging
from functools import wraps

import jwt
from flask import request, g

from ..models import db, User
from .auth_utils import decode_access_token
from .error_handlers import APIError

logger = logging.getLogger(__name__)


def _bearer_token():
    auth_header = (request.headers.get('Authorization') or '').strip()
    if not auth_header.lower().startswith('bearer '):
        return None
    token = auth_header.split(' ', 1)[1].strip()
    return token or None


def load_user_from_request():
    """Resolve the bearer token into an active user, raising APIError on failure"""
    token = _bearer_token()
    if not token:
        raise APIError('Access token required', 401, 'TOKEN_REQUIRED')

    try:
        payload = decode_access_token(token)
    except jwt.ExpiredSignatureError:
        raise APIError('Token expired', 401, 'TOKEN_EXPIRED')
    except jwt.InvalidTokenError as e:
        logger.debug(f"Rejected access token from {request.remote_addr}: {e}")
        raise APIError('Invalid token', 401, 'INVALID_TOKEN')

    user = db.session.get(User, payload['user_id'])
    if user is None:
        raise APIError('User not found', 404, 'USER_NOT_FOUND')
    if not user.is_active:
        raise APIError('Account is inactive', 403, 'ACCOUNT_INACTIVE')
    return user


def token_required(f):
    """Decorator to require a valid access token"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.current_user = load_user_from_request()
        return f(*args, **kwargs)
    return decorated_function


def role_required(*roles):
    """Decorator restricting a view to the given roles; apply below token_required"""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = g.get('current_user')
            if user is None:
                raise APIError('Authentication required', 401, 'AUTH_REQUIRED')
            if user.role not in roles:
                raise APIError(f"Access denied. Required role: {' or '.join(roles)}", 403,
                               'INSUFFICIENT_PERMISSIONS')
            return f(*args, **kwargs)
        return decorated_function
    return decorator


admin_required = role_required('admin')
instructor_required = role_required('instructor', 'admin')
student_required = role_required('student')


def owner_or_role_required(field='user_id', *roles):
    """Decorator allowing the owner of `field` or one of `roles` (admins always pass)"""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = g.get('current_user')
            if user is None:
                raise APIError('Authentication required', 401, 'AUTH_REQUIRED')
            if user.role == 'admin' or user.role in roles:
                return f(*args, **kwargs)

            body = request.get_json(silent=True) or {}
            target = kwargs.get(field, body.get(field) if isinstance(body, dict) else None)
            try:
                is_owner = target is not None and int(target) == user.id
            except (TypeError, ValueError):
                is_owner = False
            if not is_owner:
                raise APIError('Access denied', 403, 'ACCESS_DENIED')
            return f(*args, **kwargs)
        return decorated_function
    return decorator
