"""
Institution Routes

FLOW OVERVIEW
- /api/institutions [GET] public
  • Active institutions ordered by name, used by the registration form.
- /api/institutions/<id> [GET] authenticated
- /api/institutions [POST], /api/institutions/<id> [PUT] admin
  • Codes are unique (409 CODE_EXISTS).
- /api/institutions/<id> [DELETE] admin
  • Deactivates institutions that still have users, deletes the others.
"""

import logging

from flask import Blueprint

from ..models import db, transaction, Institution
from ..utils.api_utils import get_json_body, success_response
from ..utils.auth_decorators import token_required, admin_required
from ..utils.error_handlers import APIError
from ..utils.validators import RequestValidator

logger = logging.getLogger(__name__)

institutions_bp = Blueprint('institutions', __name__)

EDITABLE_FIELDS = ('name', 'code', 'type', 'city', 'country', 'logo_url', 'is_active')


def get_institution_or_404(institution_id):
    institution = db.session.get(Institution, institution_id)
    if institution is None:
        raise APIError('Institution not found', 404, 'INSTITUTION_NOT_FOUND')
    return institution


def resolve_institution_id(value):
    """Validated institution_id from a request body; must name an active institution"""
    if value is None:
        return None
    if Institution.get_active(value) is None:
        raise APIError('institution_id must reference an active institution', 400, 'INVALID_REFERENCE')
    return value


def _validate_institution(data, partial=False):
    return (RequestValidator(data, partial=partial)
            .line('name', 2, 255, label='Name')
            .line('code', 2, 50, label='Code')
            .line('type', 0, 50, required=False)
            .line('city', 0, 100, required=False)
            .line('country', 0, 100, required=False)
            .line('logo_url', 0, 500, required=False)
            .boolean('is_active')
            .raise_if_invalid())


def _ensure_unique_code(code, exclude_id=None):
    query = Institution.query.filter(Institution.code == code)
    if exclude_id is not None:
        query = query.filter(Institution.id != exclude_id)
    if query.first():
        raise APIError('Institution code already exists', 409, 'CODE_EXISTS')


@institutions_bp.route('', methods=['GET'])
def list_institutions():
    institutions = (Institution.query.filter(Institution.is_active.is_(True))
                    .order_by(Institution.name.asc()).all())
    return success_response([i.to_public_dict() for i in institutions])


@institutions_bp.route('/<int:id>', methods=['GET'])
@token_required
def get_institution(id):
    return success_response(get_institution_or_404(id).to_dict())


@institutions_bp.route('', methods=['POST'])
@token_required
@admin_required
def create_institution():
    cleaned = _validate_institution(get_json_body())
    code = cleaned['code'].upper()
    _ensure_unique_code(code)

    with transaction():
        institution = Institution(
            name=cleaned['name'],
            code=code,
            type=cleaned.get('type'),
            city=cleaned.get('city'),
            country=cleaned.get('country', 'Colombia'),
            logo_url=cleaned.get('logo_url'),
            is_active=cleaned.get('is_active', True),
        )
        db.session.add(institution)

    logger.info(f"Institution {institution.code} created")
    return success_response(institution.to_dict(), 'Institution created successfully', 201)


@institutions_bp.route('/<int:id>', methods=['PUT'])
@token_required
@admin_required
def update_institution(id):
    institution = get_institution_or_404(id)
    cleaned = _validate_institution(get_json_body(), partial=True)
    updates = {k: v for k, v in cleaned.items() if k in EDITABLE_FIELDS}
    if not updates:
        raise APIError('No valid fields to update', 400, 'NO_UPDATES')
    if 'code' in updates:
        updates['code'] = updates['code'].upper()
        _ensure_unique_code(updates['code'], exclude_id=institution.id)

    with transaction():
        for field, value in updates.items():
            setattr(institution, field, value)

    return success_response(institution.to_dict(), 'Institution updated successfully')


@institutions_bp.route('/<int:id>', methods=['DELETE'])
@token_required
@admin_required
def delete_institution(id):
    institution = get_institution_or_404(id)

    if institution.user_count():
        with transaction():
            institution.is_active = False
        return success_response({'id': institution.id, 'deleted': False, 'is_active': False},
                                'Institution deactivated because it still has users')

    with transaction():
        db.session.delete(institution)
    logger.info(f"Institution {id} deleted")
    return success_response({'id': id, 'deleted': True}, 'Institution deleted successfully')
