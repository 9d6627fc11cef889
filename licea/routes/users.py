"""
User Management Routes

FLOW OVERVIEW
- /api/users [GET] admin: paginated listing with role, institution and search filters.
- /api/users/stats/overview [GET] admin: counts by role and status.
- /api/users [POST] admin: create a pre-verified account.
- /api/users/<id> [GET, PUT] owner or admin; role/is_active changes are admin only.
- /api/users/<id>/password [PATCH] owner (with current password) or admin.
- /api/users/<id>/toggle-active [PATCH], /api/users/<id> [DELETE] admin, never on self.
- /api/users/<id>/courses [GET] owner or admin.
"""

import logging
from datetime import datetime, timedelta

from flask import Blueprint, g, request
from sqlalchemy import func, or_

from ..models import (
    db, transaction, paginate_query, User, Course, Enrollment, AuditLog, CourseGroup, AttendanceRecord
)
from ..models.user import ROLES
from ..utils.api_utils import get_json_body, get_int_arg, get_pagination, success_response
from ..utils.auth_decorators import token_required, admin_required, owner_or_role_required
from ..utils.auth_utils import create_user, hash_password, verify_password
from ..utils.error_handlers import APIError
from ..utils.validators import RequestValidator
from .institutions import resolve_institution_id

logger = logging.getLogger(__name__)

users_bp = Blueprint('users', __name__)


def _get_user_or_404(user_id):
    user = db.session.get(User, user_id)
    if user is None:
        raise APIError('User not found', 404, 'USER_NOT_FOUND')
    return user


@users_bp.route('', methods=['GET'])
@token_required
@admin_required
def list_users():
    page, limit = get_pagination(default_limit=10, max_limit=100)
    query = User.query

    role = request.args.get('role')
    if role:
        if role not in ROLES:
            raise APIError(f"Role must be one of: {', '.join(ROLES)}", 400, 'VALIDATION_ERROR')
        query = query.filter(User.role == role)

    institution_id = get_int_arg('institution_id', min_value=1)
    if institution_id is not None:
        query = query.filter(User.institution_id == institution_id)

    search = (request.args.get('search') or '').strip()
    if search:
        pattern = f'%{search}%'
        query = query.filter(or_(User.name.ilike(pattern), User.email.ilike(pattern)))

    users, pagination = paginate_query(query.order_by(User.registration_date.desc(), User.id.desc()), page, limit)
    return success_response([u.to_dict() for u in users], pagination=pagination)


@users_bp.route('/stats/overview', methods=['GET'])
@token_required
@admin_required
def user_stats():
    by_role = dict(db.session.query(User.role, func.count(User.id)).group_by(User.role).all())
    since = datetime.utcnow() - timedelta(days=30)
    return success_response({
        'total': User.query.count(),
        'by_role': {role: by_role.get(role, 0) for role in ROLES},
        'active': User.query.filter(User.is_active.is_(True)).count(),
        'verified': User.query.filter(User.email_verified.is_(True)).count(),
        'new_last_30_days': User.query.filter(User.registration_date >= since).count(),
    })


@users_bp.route('', methods=['POST'])
@token_required
@admin_required
def create_user_account():
    data = get_json_body()
    cleaned = (RequestValidator(data)
               .line('name', 2, 255, label='Name')
               .email()
               .password()
               .choice('role', ROLES)
               .integer('institution_id', 1, required=False)
               .raise_if_invalid())

    if User.query.filter_by(email=cleaned['email']).first():
        raise APIError('Email already registered', 409, 'EMAIL_EXISTS')

    user, _ = create_user(cleaned['name'], cleaned['email'], cleaned['password'],
                          role=cleaned['role'], privacy_consent=True, terms_accepted=True,
                          email_verified=True,
                          institution_id=resolve_institution_id(cleaned.get('institution_id')))
    return success_response(user.to_dict(), 'User created successfully', 201)


@users_bp.route('/<int:id>', methods=['GET'])
@token_required
@owner_or_role_required('id')
def get_user(id):
    return success_response(_get_user_or_404(id).to_dict())


@users_bp.route('/<int:id>', methods=['PUT'])
@token_required
@owner_or_role_required('id')
def update_user(id):
    user = _get_user_or_404(id)
    data = get_json_body()
    is_admin = g.current_user.role == 'admin'

    validator = (RequestValidator(data, partial=True)
                 .line('name', 2, 255, label='Name')
                 .email()
                 .integer('institution_id', 1, required=False))
    if is_admin:
        validator.choice('role', ROLES).boolean('is_active')
    elif 'role' in data or 'is_active' in data:
        raise APIError('Only administrators can change role or status', 403, 'INSUFFICIENT_PERMISSIONS')
    cleaned = validator.raise_if_invalid()

    if not cleaned:
        raise APIError('No valid fields to update', 400, 'NO_UPDATES')
    if 'institution_id' in cleaned:
        resolve_institution_id(cleaned['institution_id'])

    if 'email' in cleaned and cleaned['email'] != user.email:
        if User.query.filter(User.email == cleaned['email'], User.id != user.id).first():
            raise APIError('Email already in use', 409, 'EMAIL_EXISTS')

    with transaction():
        for field, value in cleaned.items():
            setattr(user, field, value)

    return success_response(user.to_dict(), 'User updated successfully')


@users_bp.route('/<int:id>/password', methods=['PATCH'])
@token_required
@owner_or_role_required('id')
def change_password(id):
    user = _get_user_or_404(id)
    data = get_json_body()
    cleaned = RequestValidator(data).password('newPassword').raise_if_invalid()

    acting = g.current_user
    if acting.role != 'admin' or acting.id == user.id:
        if not verify_password(data.get('currentPassword'), user.password_hash):
            raise APIError('Current password is incorrect', 400, 'INVALID_PASSWORD')

    with transaction():
        user.password_hash = hash_password(cleaned['newPassword'])
        user.reset_login_attempts()

    return success_response(message='Password updated successfully')


@users_bp.route('/<int:id>/toggle-active', methods=['PATCH'])
@token_required
@admin_required
def toggle_active(id):
    user = _get_user_or_404(id)
    if user.id == g.current_user.id:
        raise APIError('You cannot deactivate your own account', 400, 'SELF_ACTION')

    with transaction():
        user.is_active = not user.is_active

    state = 'activated' if user.is_active else 'deactivated'
    return success_response({'id': user.id, 'is_active': user.is_active}, f'User {state} successfully')


@users_bp.route('/<int:id>', methods=['DELETE'])
@token_required
@admin_required
def delete_user(id):
    user = _get_user_or_404(id)
    if user.id == g.current_user.id:
        raise APIError('You cannot delete your own account', 400, 'SELF_ACTION')
    if Course.query.filter_by(instructor_id=user.id).first():
        raise APIError('Reassign or deactivate the courses taught by this user first', 409, 'HAS_COURSES')

    with transaction():
        for enrollment in user.enrollments:
            if enrollment.status == 'active' and enrollment.course.current_students:
                enrollment.course.current_students -= 1
        AuditLog.query.filter_by(user_id=user.id).update({'user_id': None}, synchronize_session=False)
        CourseGroup.query.filter_by(created_by=user.id).update({'created_by': None}, synchronize_session=False)
        AttendanceRecord.query.filter_by(recorded_by=user.id).update({'recorded_by': None}, synchronize_session=False)
        db.session.delete(user)

    logger.info(f"User {id} deleted by admin {g.current_user.id}")
    return success_response(message='User deleted successfully')


@users_bp.route('/<int:id>/courses', methods=['GET'])
@token_required
@owner_or_role_required('id')
def user_courses(id):
    user = _get_user_or_404(id)
    if user.role == 'student':
        rows = (db.session.query(Course, Enrollment)
                .join(Enrollment, Enrollment.course_id == Course.id)
                .filter(Enrollment.student_id == user.id, Enrollment.status == 'active')
                .order_by(Enrollment.enrolled_at.desc())
                .all())
        courses = [dict(course.to_dict(), enrolled_at=enrollment.enrolled_at.isoformat()) for course, enrollment in rows]
    else:
        courses = [c.to_dict() for c in Course.query.filter_by(instructor_id=user.id)
                   .order_by(Course.created_at.desc()).all()]
    return success_response(courses)
