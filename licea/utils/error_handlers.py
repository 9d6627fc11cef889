"""
Error Handlers

FLOW OVERVIEW
- APIError(message, status_code, code)
  • Raised by routes and helpers for expected failures.
- classify_error(error) → (status_code, code, message)
  • Maps validation, database integrity, JWT, upload and upstream connection errors.
- register_error_handlers(app)
  • One handler for every exception: classify, write a JSON line to the error log,
    and return {"success": false, "error": {"message", "code"}}.
"""

import json
import logging
import os
from datetime import datetime

import jwt
import requests
from flask import jsonify, request, current_app, g
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

from .validators import ValidationError

logger = logging.getLogger(__name__)

HTTP_CODES = {
    400: 'BAD_REQUEST',
    401: 'UNAUTHORIZED',
    403: 'FORBIDDEN',
    404: 'NOT_FOUND',
    405: 'METHOD_NOT_ALLOWED',
    409: 'CONFLICT',
    415: 'UNSUPPORTED_MEDIA_TYPE',
    429: 'RATE_LIMIT_EXCEEDED',
}


class APIError(Exception):
    """Expected API failure carrying an HTTP status and a machine readable code"""

    def __init__(self, message, status_code=500, code=None, details=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.details = details


class UploadError(APIError):
    """Rejected file upload"""

    def __init__(self, message, code='FILE_UPLOAD_ERROR'):
        super().__init__(message, 400, code)


def classify_error(error):
    """Return (status_code, code, message) for an exception"""
    if isinstance(error, APIError):
        return error.status_code, error.code or HTTP_CODES.get(error.status_code, 'ERROR'), error.message

    if isinstance(error, ValidationError):
        return 400, 'VALIDATION_ERROR', error.message

    if isinstance(error, IntegrityError):
        text = str(getattr(error, 'orig', error)).lower()
        if 'unique' in text or 'duplicate' in text:
            return 409, 'DUPLICATE_ENTRY', 'Resource already exists'
        if 'foreign key' in text:
            return 400, 'INVALID_REFERENCE', 'Referenced resource does not exist'
        return 400, 'INTEGRITY_ERROR', 'Data integrity violation'

    if isinstance(error, jwt.ExpiredSignatureError):
        return 401, 'TOKEN_EXPIRED', 'Token expired'

    if isinstance(error, jwt.InvalidTokenError):
        return 401, 'INVALID_TOKEN', 'Invalid token'

    if isinstance(error, RequestEntityTooLarge):
        return 400, 'FILE_TOO_LARGE', 'File too large'

    if isinstance(error, requests.exceptions.ConnectionError):
        return 503, 'SERVICE_UNAVAILABLE', 'Service temporarily unavailable'

    if isinstance(error, HTTPException):
        status = error.code or 500
        return status, HTTP_CODES.get(status, 'HTTP_ERROR'), error.description

    return 500, 'INTERNAL_ERROR', 'Internal server error'


def error_response(message, status_code, code, details=None):
    body = {'success': False, 'error': {'message': message, 'code': code}}
    if details:
        body['error']['details'] = details
    return jsonify(body), status_code


def write_error_log(error, status_code, code):
    """Append one JSON line describing the error to ERROR_LOG_FILE"""
    log_file = current_app.config.get('ERROR_LOG_FILE')
    if not log_file:
        return
    user = g.get('current_user')
    entry = {
        'timestamp': datetime.utcnow().isoformat(),
        'status': status_code,
        'code': code,
        'message': str(error),
        'type': type(error).__name__,
        'method': request.method,
        'url': request.full_path.rstrip('?'),
        'ip': request.remote_addr,
        'user_agent': request.headers.get('User-Agent'),
        'user_id': user.id if user is not None else None,
    }
    try:
        directory = os.path.dirname(log_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(log_file, 'a', encoding='utf-8') as fh:
            fh.write(json.dumps(entry) + '\n')
    except OSError as e:
        logger.warning(f"Could not write error log {log_file}: {e}")


def register_error_handlers(app):
    """Register error handlers with the Flask app"""

    @app.errorhandler(Exception)
    def handle_exception(error):
        status_code, code, message = classify_error(error)

        if status_code >= 500:
            from ..models import db
            db.session.rollback()
            app.logger.error(f"Unhandled error on {request.method} {request.path}: {error}", exc_info=error)
            if status_code == 500 and not app.debug:
                message = 'Something went wrong'
        elif not isinstance(error, HTTPException) or status_code not in (404, 405):
            app.logger.warning(f"{request.method} {request.path} -> {status_code} {code}: {message}")

        write_error_log(error, status_code, code)

        details = None
        if isinstance(error, ValidationError):
            details = error.errors
        elif isinstance(error, APIError):
            details = error.details
        elif status_code == 500 and app.debug:
            details = {'type': type(error).__name__, 'error': str(error)}

        if status_code == 404 and isinstance(error, HTTPException):
            message = f'Route {request.path} not found'

        return error_response(message, status_code, code, details)
