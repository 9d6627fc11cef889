"""
API Utilities Module

FLOW OVERVIEW
- get_json_body() → JSON object body or 400 INVALID_JSON.
- get_pagination(default_limit, max_limit) → (page, limit) from the query string.
- success_response(data, message, status, **extra) → {"success": true, ...} JSON.
- get_client_ip() → first X-Forwarded-For hop or remote_addr.

- APIRateLimiter
  • check_rate_limit(client_ip, scope, max_requests, window_minutes) → fixed window counters
    stored on the app; returns (is_allowed, error_response).
  • limit(scope, max_requests, window_minutes) decorator for individual routes.
  • register_api_rate_limit(app) applies the global /api limit before each request.
"""

import logging
import time
from functools import wraps
from typing import Dict, Any, Tuple, Optional
from flask import request, current_app, jsonify

from .error_handlers import APIError

logger = logging.getLogger(__name__)


def get_json_body(required=True) -> Dict[str, Any]:
    """Parse the request body as a JSON object"""
    data = request.get_json(silent=True)
    if data is None:
        if required:
            raise APIError('Invalid request format. JSON payload required.', 400, 'INVALID_JSON')
        return {}
    if not isinstance(data, dict):
        raise APIError('Request data must be a JSON object.', 400, 'INVALID_DATA_TYPE')
    return data


def get_int_arg(name, default=None, min_value=None, max_value=None):
    raw = request.args.get(name)
    if raw in (None, ''):
        return default
    try:
        value = int(raw)
    except ValueError:
        raise APIError(f'{name} must be an integer', 400, 'VALIDATION_ERROR')
    if min_value is not None and value < min_value:
        raise APIError(f'{name} must be at least {min_value}', 400, 'VALIDATION_ERROR')
    if max_value is not None and value > max_value:
        raise APIError(f'{name} must be at most {max_value}', 400, 'VALIDATION_ERROR')
    return value


def get_pagination(default_limit=10, max_limit=100) -> Tuple[int, int]:
    page = get_int_arg('page', 1, min_value=1)
    limit = get_int_arg('limit', default_limit, min_value=1, max_value=max_limit)
    return page, limit


def get_bool_arg(name, default=False):
    raw = request.args.get(name)
    if raw is None:
        return default
    return raw.lower() in ('1', 'true', 'yes')


def success_response(data=None, message=None, status=200, **extra):
    body = {'success': True}
    if message:
        body['message'] = message
    if data is not None:
        body['data'] = data
    body.update(extra)
    return jsonify(body), status


def get_client_ip() -> Optional[str]:
    forwarded = request.headers.get('X-Forwarded-For')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.remote_addr


class APIRateLimiter:
    """Fixed window request counters per client IP and scope."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def check_rate_limit(self, client_ip: str, scope: str = 'api', max_requests: int = 100,
                         window_minutes: int = 15) -> Tuple[bool, Optional[Dict[str, Any]]]:
        """
        Count one request for client_ip in the current window of `scope`.

        Args:
            client_ip: Client IP address
            scope: Counter namespace (api, auth, password_reset)
            max_requests: Requests allowed per window
            window_minutes: Window length

        Returns:
            Tuple of (is_allowed, error_response)
        """
        if not current_app.config.get('RATE_LIMIT_ENABLED', True):
            return True, None

        if not hasattr(current_app, 'rate_limit_counts'):
            current_app.rate_limit_counts = {}
        counts = current_app.rate_limit_counts

        window_seconds = window_minutes * 60
        window = int(time.time()) // window_seconds
        key = (scope, client_ip, window)
        counts[key] = counts.get(key, 0) + 1

        stale = [k for k in counts if k[0] == scope and k[2] < window]
        for old_key in stale:
            del counts[old_key]

        if counts[key] > max_requests:
            self.logger.warning(f"Rate limit '{scope}' exceeded for {client_ip}: {counts[key]} requests")
            return False, {
                'success': False,
                'error': {
                    'code': 'RATE_LIMIT_EXCEEDED',
                    'message': f'Too many requests. Maximum {max_requests} per {window_minutes} minutes.',
                },
            }

        return True, None

    def limit(self, scope, max_requests, window_minutes):
        """Decorator applying a per-route limit"""
        def decorator(f):
            @wraps(f)
            def decorated_function(*args, **kwargs):
                allowed, error = self.check_rate_limit(get_client_ip(), scope, max_requests, window_minutes)
                if not allowed:
                    return jsonify(error), 429
                return f(*args, **kwargs)
            return decorated_function
        return decorator


def register_api_rate_limit(app):
    """Global limit on every /api request"""

    @app.before_request
    def _api_rate_limit():
        if not request.path.startswith('/api') or request.method == 'OPTIONS':
            return None
        allowed, error = rate_limiter.check_rate_limit(
            get_client_ip(), 'api',
            app.config.get('RATE_LIMIT_MAX_REQUESTS', 100),
            app.config.get('RATE_LIMIT_WINDOW', 15),
        )
        if not allowed:
            return jsonify(error), 429
        return None


# Global instances
rate_limiter = APIRateLimiter()

auth_limit = rate_limiter.limit('auth', 5, 15)
password_reset_limit = rate_limiter.limit('password_reset', 3, 60)
