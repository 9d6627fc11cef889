"""
Course Group Routes

FLOW OVERVIEW
- /api/groups [GET], /api/groups/my/groups [GET]
  • Student: groups they belong to; instructor: groups of their courses; admin: all.
    Optional course_id filter.
- /api/groups/<id> [GET]
  • Members, the course owner and admins; includes the member list.
- /api/groups [POST]
  • Enrolled students (who become the leader) or the course owner; names unique per course.
- /api/groups/<id> [PUT, DELETE] course owner or admin.
- /api/groups/<id>/members [POST], /api/groups/<id>/members/<student_id> [DELETE]
  • Course owner or admin; members must be actively enrolled; capacity is max_members.
- /api/groups/join-by-code [POST] student
- /api/groups/<id>/messages [GET, POST]
  • Group chat for members, the course owner and admins.
"""

import logging

from flask import Blueprint, g

from ..models import db, transaction, Course, Enrollment, CourseGroup, GroupMember, GroupMessage
from ..models.group import MEMBER_ROLES, generate_join_code
from ..utils.api_utils import get_json_body, get_int_arg, success_response
from ..utils.auth_decorators import token_required, instructor_required, student_required
from ..utils.error_handlers import APIError
from ..utils.validators import RequestValidator

logger = logging.getLogger(__name__)

groups_bp = Blueprint('groups', __name__)

EDITABLE_FIELDS = ('name', 'description', 'max_members')


def get_group_or_404(group_id):
    group = db.session.get(CourseGroup, group_id)
    if group is None:
        raise APIError('Group not found', 404, 'GROUP_NOT_FOUND')
    return group


def require_group_manager(group, user):
    if not group.is_managed_by(user):
        raise APIError('You can only manage groups of your own courses', 403, 'ACCESS_DENIED')


def require_group_access(group, user):
    if not group.can_view(user):
        raise APIError('You must be a member of this group', 403, 'NOT_MEMBER')


def _visible_groups(user, course_id=None):
    query = CourseGroup.query.join(Course, CourseGroup.course_id == Course.id)
    if user.role == 'student':
        query = query.join(GroupMember, GroupMember.group_id == CourseGroup.id).filter(
            GroupMember.student_id == user.id)
    elif user.role == 'instructor':
        query = query.filter(Course.instructor_id == user.id)
    if course_id is not None:
        query = query.filter(CourseGroup.course_id == course_id)
    return query.order_by(Course.name.asc(), CourseGroup.name.asc()).all()


def _group_listing(user):
    groups = _visible_groups(user, get_int_arg('course_id', min_value=1))
    data = []
    for group in groups:
        item = group.to_dict()
        if user.role == 'student':
            membership = group.get_member(user.id)
            item['my_role'] = membership.role
            item['joined_at'] = membership.joined_at.isoformat()
        data.append(item)
    return data


def _add_member(group, student_id, role='member'):
    if group.get_member(student_id) is not None:
        raise APIError('Student is already a member of this group', 409, 'ALREADY_MEMBER')
    if group.is_full():
        raise APIError('Group is full', 409, 'GROUP_FULL')
    member = GroupMember(student_id=student_id, role=role)
    group.members.append(member)
    return member


@groups_bp.route('', methods=['GET'])
@token_required
def list_groups():
    return success_response(_group_listing(g.current_user))


@groups_bp.route('/my/groups', methods=['GET'])
@token_required
def my_groups():
    return success_response(_group_listing(g.current_user))


@groups_bp.route('/<int:id>', methods=['GET'])
@token_required
def get_group(id):
    group = get_group_or_404(id)
    require_group_access(group, g.current_user)
    return success_response(group.to_dict(include_members=True))


@groups_bp.route('', methods=['POST'])
@token_required
def create_group():
    user = g.current_user
    data = get_json_body()
    cleaned = (RequestValidator(data)
               .line('name', 3, 255, label='Name')
               .integer('course_id', 1)
               .text('description', 0, 5000, required=False)
               .integer('max_members', 1, 100, required=False)
               .raise_if_invalid())

    course = db.session.get(Course, cleaned['course_id'])
    if course is None or not course.is_active:
        raise APIError('Course not found', 404, 'COURSE_NOT_FOUND')
    if user.role == 'student':
        if Enrollment.get_active(user.id, course.id) is None:
            raise APIError('You must be enrolled in this course to create a group', 403, 'NOT_ENROLLED')
    elif not course.is_owned_by(user):
        raise APIError('You can only create groups in your own courses', 403, 'ACCESS_DENIED')

    if CourseGroup.query.filter_by(course_id=course.id, name=cleaned['name']).first():
        raise APIError('A group with this name already exists in the course', 409, 'GROUP_EXISTS')

    with transaction():
        group = CourseGroup(
            name=cleaned['name'],
            course_id=course.id,
            description=cleaned.get('description'),
            max_members=cleaned.get('max_members', 30),
            join_code=generate_join_code(),
            created_by=user.id,
            is_active=True,
        )
        db.session.add(group)
        db.session.flush()
        if user.role == 'student':
            _add_member(group, user.id, 'leader')

    logger.info(f"Group {group.id} created in course {course.id} by user {user.id}")
    return success_response(group.to_dict(), 'Group created successfully', 201)


@groups_bp.route('/<int:id>', methods=['PUT'])
@token_required
@instructor_required
def update_group(id):
    group = get_group_or_404(id)
    require_group_manager(group, g.current_user)

    cleaned = (RequestValidator(get_json_body(), partial=True)
               .line('name', 3, 255, label='Name')
               .text('description', 0, 5000, required=False)
               .integer('max_members', 1, 100, required=False)
               .raise_if_invalid())
    updates = {k: v for k, v in cleaned.items() if k in EDITABLE_FIELDS}
    if not updates:
        raise APIError('No valid fields to update', 400, 'NO_UPDATES')
    if 'max_members' in updates and updates['max_members'] < group.member_count():
        raise APIError('max_members cannot be lower than the current member count', 400, 'VALIDATION_ERROR')
    if 'name' in updates and CourseGroup.query.filter(
            CourseGroup.course_id == group.course_id, CourseGroup.name == updates['name'],
            CourseGroup.id != group.id).first():
        raise APIError('A group with this name already exists in the course', 409, 'GROUP_EXISTS')

    with transaction():
        for field, value in updates.items():
            setattr(group, field, value)

    return success_response(group.to_dict(), 'Group updated successfully')


@groups_bp.route('/<int:id>', methods=['DELETE'])
@token_required
@instructor_required
def delete_group(id):
    group = get_group_or_404(id)
    require_group_manager(group, g.current_user)
    with transaction():
        db.session.delete(group)
    return success_response(message='Group deleted successfully')


@groups_bp.route('/<int:id>/members', methods=['POST'])
@token_required
@instructor_required
def add_member(id):
    group = get_group_or_404(id)
    require_group_manager(group, g.current_user)

    cleaned = (RequestValidator(get_json_body())
               .integer('student_id', 1)
               .choice('role', MEMBER_ROLES, required=False)
               .raise_if_invalid())
    student_id = cleaned['student_id']
    if Enrollment.get_active(student_id, group.course_id) is None:
        raise APIError('Student is not enrolled in the course', 400, 'NOT_ENROLLED')

    with transaction():
        member = _add_member(group, student_id, cleaned.get('role', 'member'))

    return success_response(member.to_dict(), 'Member added successfully', 201)


@groups_bp.route('/<int:id>/members/<int:student_id>', methods=['DELETE'])
@token_required
@instructor_required
def remove_member(id, student_id):
    group = get_group_or_404(id)
    require_group_manager(group, g.current_user)
    member = group.get_member(student_id)
    if member is None:
        raise APIError('Member not found in group', 404, 'MEMBER_NOT_FOUND')

    with transaction():
        db.session.delete(member)
    return success_response(message='Member removed successfully')


@groups_bp.route('/join-by-code', methods=['POST'])
@token_required
@student_required
def join_by_code():
    user = g.current_user
    data = get_json_body()
    code = data.get('join_code')
    if not isinstance(code, str) or not 6 <= len(code.strip()) <= 10:
        raise APIError('Invalid join code', 400, 'VALIDATION_ERROR')

    group = CourseGroup.query.filter_by(join_code=code.strip().upper(), is_active=True).first()
    if group is None:
        raise APIError('Invalid join code', 404, 'INVALID_CODE')
    if Enrollment.get_active(user.id, group.course_id) is None:
        raise APIError('You must be enrolled in the course to join this group', 403, 'NOT_ENROLLED')

    with transaction():
        _add_member(group, user.id)

    return success_response(
        {'group_id': group.id, 'group_name': group.name, 'course_name': group.course.name},
        f'Successfully joined group: {group.name}', 201,
    )


@groups_bp.route('/<int:id>/messages', methods=['GET'])
@token_required
def list_messages(id):
    group = get_group_or_404(id)
    require_group_access(group, g.current_user)
    limit = get_int_arg('limit', 100, min_value=1, max_value=200)
    before = get_int_arg('before', min_value=1)
    messages = GroupMessage.history(group.id, limit, before)
    return success_response([m.to_dict() for m in messages])


@groups_bp.route('/<int:id>/messages', methods=['POST'])
@token_required
def post_message(id):
    group = get_group_or_404(id)
    require_group_access(group, g.current_user)

    data = get_json_body()
    text = data.get('message')
    if not isinstance(text, str) or not text.strip():
        raise APIError('Message cannot be empty', 400, 'EMPTY_MESSAGE')
    cleaned = RequestValidator(data).text('message', 1, 5000, label='Message').raise_if_invalid()

    with transaction():
        message = GroupMessage(group_id=group.id, user_id=g.current_user.id, message=cleaned['message'])
        db.session.add(message)

    return success_response(message.to_dict(), 'Message sent successfully', 201)
