"""
Audit Logger

FLOW OVERVIEW
- extract_entity_info(method, path, view_args, body)
  • Derives (action, entity_type, entity_id) from the route shape:
    /api/<entity>[/...] with method → CREATE/READ/LIST/UPDATE/DELETE and
    special segments (login, logout, register, submit, grade, enroll, join) overriding it.
- register_audit_logger(app)
  • after_request tap for non-GET /api calls: persists an AuditLog row for
    significant actions. Failures are logged and never change the response.
"""

import logging
from flask import request, g

from ..models import db, AuditLog
from .prom_metrics import observe_audit_entry

logger = logging.getLogger(__name__)

SKIPPED_PREFIXES = ('/health', '/api-docs', '/uploads')

SIGNIFICANT_ACTIONS = frozenset({
    'CREATE', 'UPDATE', 'DELETE', 'LOGIN', 'LOGOUT', 'REGISTER',
    'SUBMIT', 'GRADE', 'ENROLL', 'JOIN', 'UPLOAD',
})

SPECIAL_SEGMENTS = {
    'login': ('LOGIN', 'user'),
    'logout': ('LOGOUT', 'user'),
    'register': ('REGISTER', 'user'),
    'submit': ('SUBMIT', 'submission'),
    'grade': ('GRADE', 'submission'),
    'enroll': ('ENROLL', 'course'),
    'enroll-by-code': ('ENROLL', 'course'),
    'join-by-code': ('JOIN', 'group'),
}

ID_ARGS = ('id', 'user_id', 'course_id', 'task_id')

REDACTED_FIELDS = ('password', 'token', 'secret')


def _to_int(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def extract_entity_info(method, path, view_args=None, body=None):
    """
    Classify a request by its route shape.

    Returns a dict {action, entity_type, entity_id} or None for paths that are
    not audited (health checks, docs, uploads, anything outside /api).
    """
    if any(path.startswith(prefix) for prefix in SKIPPED_PREFIXES):
        return None

    parts = [part for part in path.split('/') if part]
    if len(parts) < 2 or parts[0] != 'api':
        return None

    view_args = view_args or {}
    entity_type = parts[1]
    if entity_type.endswith('s') and entity_type != 'schedules':
        entity_type = entity_type[:-1]

    method = method.upper()
    action = None
    entity_id = None

    if method == 'POST':
        action = 'CREATE'
    elif method == 'GET':
        action = 'READ' if len(parts) > 2 and 'id' in view_args else 'LIST'
    elif method in ('PUT', 'PATCH'):
        action = 'UPDATE'
        entity_id = view_args.get('id')
    elif method == 'DELETE':
        action = 'DELETE'
        entity_id = view_args.get('id')

    for part in parts[2:]:
        if part in SPECIAL_SEGMENTS:
            action, entity_type = SPECIAL_SEGMENTS[part]
            break

    if entity_id is None:
        for name in ID_ARGS:
            if view_args.get(name) is not None:
                entity_id = view_args[name]
                break
    if entity_id is None and isinstance(body, dict):
        entity_id = body.get('id')

    return {'action': action, 'entity_type': entity_type, 'entity_id': _to_int(entity_id)}


def redact(values):
    """Copy of a request body with credential-like fields masked"""
    if not isinstance(values, dict):
        return values
    return {
        key: '[REDACTED]' if any(marker in key.lower() for marker in REDACTED_FIELDS) else value
        for key, value in values.items()
    }


def _response_payload(response):
    if not response.is_json:
        return None
    return response.get_json(silent=True)


def _id_from_response(payload, entity_type):
    """Pick the affected entity id out of a {"data": {...}} response body"""
    if not isinstance(payload, dict) or not isinstance(payload.get('data'), dict):
        return None
    data = payload['data']
    for key in ('id', f'{entity_type}_id', 'userId', 'course_id'):
        if data.get(key) is not None:
            return _to_int(data[key])
    nested = data.get(entity_type)
    if isinstance(nested, dict):
        return _to_int(nested.get('id'))
    return None


def _request_body():
    body = request.get_json(silent=True)
    if body is None and request.form:
        body = request.form.to_dict()
    return body if isinstance(body, dict) else None


def record_request(response):
    """Persist an audit entry for the current request if it is significant"""
    if request.method == 'GET' or not request.path.startswith('/api'):
        return None

    body = _request_body()
    info = extract_entity_info(request.method, request.path, request.view_args, body)
    if info is None or info['action'] not in SIGNIFICANT_ACTIONS:
        return None

    payload = _response_payload(response)
    entity_id = info['entity_id']
    if entity_id is None:
        entity_id = _id_from_response(payload, info['entity_type'])

    user = g.get('current_user')
    user_id = user.id if user is not None else None
    if user_id is None and info['action'] in ('LOGIN', 'REGISTER') and response.status_code < 400:
        user_id = entity_id

    new_values = None
    if info['action'] in ('CREATE', 'UPDATE') and body:
        new_values = redact(body)

    if response.status_code >= 400:
        # Discard whatever the failed handler left pending
        db.session.rollback()

    entry = AuditLog.create_log(
        user_id=user_id,
        action=info['action'],
        entity_type=info['entity_type'],
        entity_id=entity_id,
        new_values=new_values,
        ip_address=request.headers.get('X-Forwarded-For', request.remote_addr),
        user_agent=request.headers.get('User-Agent'),
        status_code=response.status_code,
    )
    db.session.commit()
    observe_audit_entry(info['action'])
    logger.debug(f"Audit {info['action']} {info['entity_type']}:{entity_id} by user {user_id}")
    return entry


def register_audit_logger(app):
    """Attach the audit tap to every response"""

    @app.after_request
    def _audit(response):
        try:
            record_request(response)
        except Exception as e:
            db.session.rollback()
            logger.error(f"Audit logging failed for {request.method} {request.path}: {e}")
        return response
