"""
Audit Log Routes

- /api/audit-logs [GET] admin
  • Filters: user_id, action, entity_type, start_date, end_date (ISO 8601); page/limit.
"""

from flask import Blueprint, request

from ..models import AuditLog
from ..utils.api_utils import get_int_arg, get_pagination, success_response
from ..utils.auth_decorators import token_required, admin_required
from ..utils.validators import RequestValidator

audit_bp = Blueprint('audit', __name__)


@audit_bp.route('', methods=['GET'])
@token_required
@admin_required
def list_audit_logs():
    page, limit = get_pagination(default_limit=50, max_limit=200)
    dates = (RequestValidator(request.args.to_dict(), partial=True)
             .datetime('start_date')
             .datetime('end_date')
             .raise_if_invalid())

    filters = {
        'user_id': get_int_arg('user_id'),
        'action': (request.args.get('action') or '').upper() or None,
        'entity_type': request.args.get('entity_type'),
        'start_date': dates.get('start_date'),
        'end_date': dates.get('end_date'),
    }
    logs, pagination = AuditLog.get_audit_logs(filters, page, limit)
    return success_response([log.to_dict() for log in logs], pagination=pagination)
