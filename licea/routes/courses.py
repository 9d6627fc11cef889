"""
Course Routes

FLOW OVERVIEW
- /api/courses [GET]
  • Active catalog, paginated, filters: category, level, search.
- /api/courses/my/courses [GET]
  • Student: active enrollments; instructor: taught courses; admin: all active courses.
- /api/courses/<id> [GET]
  • Course with class sessions ordered by weekday and start time.
- /api/courses [POST], /api/courses/<id> [PUT, DELETE]
  • Instructor owning the course or admin; delete is a soft delete.
- /api/courses/<id>/enroll, /api/courses/enroll-by-code [POST] student
  • Enrollment + seat counter increment in one transaction; 409 on duplicate or full course.
- /api/courses/<id>/unenroll [POST] student
- /api/courses/<id>/students [GET] owning instructor or admin
"""

import logging

from flask import Blueprint, g, request
from sqlalchemy import or_

from ..models import (
    db, transaction, paginate_query, Course, Enrollment, User, Schedule,
    create_notification
)
from ..models.course import LEVELS
from ..utils.api_utils import get_json_body, get_pagination, success_response
from ..utils.auth_decorators import token_required, instructor_required, student_required
from ..utils.error_handlers import APIError
from ..utils.validators import RequestValidator

logger = logging.getLogger(__name__)

courses_bp = Blueprint('courses', __name__)

EDITABLE_FIELDS = ('name', 'description', 'category', 'level', 'credits', 'max_students',
                   'start_date', 'end_date', 'syllabus')


def get_course_or_404(course_id, active_only=True):
    course = db.session.get(Course, course_id)
    if course is None or (active_only and not course.is_active):
        raise APIError('Course not found', 404, 'COURSE_NOT_FOUND')
    return course


def require_course_owner(course, user):
    if not course.is_owned_by(user):
        raise APIError('You can only manage your own courses', 403, 'ACCESS_DENIED')


def _validate_course(data, partial=False):
    validator = (RequestValidator(data, partial=partial)
                 .line('name', 3, 255, label='Course name')
                 .line('code', 2, 50, label='Course code', required=not partial)
                 .text('description', 0, 5000, required=False)
                 .line('category', 0, 100, required=False)
                 .choice('level', LEVELS, required=False)
                 .integer('credits', 1, 10, required=False)
                 .integer('max_students', 1, 200, required=False)
                 .date('start_date', required=False)
                 .date('end_date', required=False)
                 .text('syllabus', 0, 20000, required=False))
    cleaned = validator.cleaned
    if cleaned.get('start_date') and cleaned.get('end_date') and cleaned['end_date'] < cleaned['start_date']:
        validator.add_error('end_date', 'end_date must be after start_date')
    return validator


@courses_bp.route('', methods=['GET'])
@token_required
def list_courses():
    page, limit = get_pagination(default_limit=10, max_limit=100)
    query = Course.query.filter(Course.is_active.is_(True))

    category = request.args.get('category')
    if category:
        query = query.filter(Course.category == category)
    level = request.args.get('level')
    if level:
        query = query.filter(Course.level == level)
    search = (request.args.get('search') or '').strip()
    if search:
        pattern = f'%{search}%'
        query = query.filter(or_(Course.name.ilike(pattern), Course.description.ilike(pattern),
                                 Course.code.ilike(pattern)))

    courses, pagination = paginate_query(query.order_by(Course.created_at.desc(), Course.id.desc()), page, limit)
    return success_response([c.to_dict() for c in courses], pagination=pagination)


@courses_bp.route('/my/courses', methods=['GET'])
@token_required
def my_courses():
    user = g.current_user
    if user.role == 'student':
        rows = (db.session.query(Course, Enrollment)
                .join(Enrollment, Enrollment.course_id == Course.id)
                .filter(Enrollment.student_id == user.id, Enrollment.status == 'active',
                        Course.is_active.is_(True))
                .order_by(Enrollment.enrolled_at.desc())
                .all())
        courses = [dict(course.to_dict(), enrolled_at=enrollment.enrolled_at.isoformat(),
                        enrollment_status=enrollment.status)
                   for course, enrollment in rows]
    else:
        query = Course.query.filter(Course.is_active.is_(True))
        if user.role == 'instructor':
            query = query.filter(Course.instructor_id == user.id)
        courses = [c.to_dict() for c in query.order_by(Course.created_at.desc()).all()]
    return success_response(courses)


@courses_bp.route('/<int:id>', methods=['GET'])
@token_required
def get_course(id):
    course = get_course_or_404(id)
    data = course.to_dict()
    data['schedules'] = [s.to_dict() for s in Schedule.class_sessions([course.id])]
    if g.current_user.role == 'student':
        data['is_enrolled'] = Enrollment.get_active(g.current_user.id, course.id) is not None
    return success_response(data)


@courses_bp.route('', methods=['POST'])
@token_required
@instructor_required
def create_course():
    data = get_json_body()
    cleaned = _validate_course(data).raise_if_invalid()
    user = g.current_user

    instructor_id = user.id
    if user.role == 'admin' and data.get('instructor_id') is not None:
        instructor = db.session.get(User, data.get('instructor_id'))
        if instructor is None or instructor.role not in ('instructor', 'admin'):
            raise APIError('instructor_id must reference an instructor', 400, 'INVALID_REFERENCE')
        instructor_id = instructor.id

    code = cleaned['code'].upper()
    if Course.query.filter_by(code=code).first():
        raise APIError('Course code already exists', 409, 'CODE_EXISTS')

    with transaction():
        course = Course(
            name=cleaned['name'],
            code=code,
            description=cleaned.get('description'),
            instructor_id=instructor_id,
            category=cleaned.get('category'),
            level=cleaned.get('level', 'beginner'),
            credits=cleaned.get('credits', 3),
            max_students=cleaned.get('max_students', 30),
            current_students=0,
            start_date=cleaned.get('start_date'),
            end_date=cleaned.get('end_date'),
            syllabus=cleaned.get('syllabus'),
            is_active=True,
        )
        db.session.add(course)

    logger.info(f"Course {course.code} created by user {user.id}")
    return success_response({'id': course.id, 'code': course.code}, 'Course created successfully', 201)


@courses_bp.route('/<int:id>', methods=['PUT'])
@token_required
@instructor_required
def update_course(id):
    course = get_course_or_404(id)
    require_course_owner(course, g.current_user)

    data = get_json_body()
    cleaned = _validate_course(data, partial=True).raise_if_invalid()
    updates = {k: v for k, v in cleaned.items() if k in EDITABLE_FIELDS}
    if 'code' in cleaned:
        code = cleaned['code'].upper()
        if Course.query.filter(Course.code == code, Course.id != course.id).first():
            raise APIError('Course code already exists', 409, 'CODE_EXISTS')
        updates['code'] = code
    if not updates:
        raise APIError('No valid fields to update', 400, 'NO_UPDATES')
    if 'max_students' in updates and updates['max_students'] < course.current_students:
        raise APIError('max_students cannot be lower than the current enrollment', 400, 'VALIDATION_ERROR')

    with transaction():
        for field, value in updates.items():
            setattr(course, field, value)

    return success_response(course.to_dict(), 'Course updated successfully')


@courses_bp.route('/<int:id>', methods=['DELETE'])
@token_required
@instructor_required
def delete_course(id):
    course = get_course_or_404(id)
    require_course_owner(course, g.current_user)
    with transaction():
        course.is_active = False
    return success_response(message='Course deleted successfully')


def _enroll(course, student):
    """Enroll `student` in `course`, reactivating a dropped enrollment"""
    if Enrollment.get_active(student.id, course.id):
        raise APIError('Already enrolled in this course', 409, 'ALREADY_ENROLLED')
    if not course.has_capacity():
        raise APIError('Course is full', 409, 'COURSE_FULL')

    with transaction():
        enrollment = Enrollment.query.filter_by(student_id=student.id, course_id=course.id).first()
        if enrollment is None:
            enrollment = Enrollment(student_id=student.id, course_id=course.id, status='active')
            db.session.add(enrollment)
        else:
            enrollment.status = 'active'
        course.current_students = Course.current_students + 1
        create_notification(
            student.id, 'course_enrolled', f'Enrolled in {course.name}',
            f'You are now enrolled in {course.code} - {course.name}.',
            link=f'/courses/{course.id}', related_id=course.id,
        )
        db.session.flush()

    db.session.refresh(course)
    logger.info(f"Student {student.id} enrolled in course {course.id}")
    return success_response(
        {'course_id': course.id, 'course_name': course.name, 'course_code': course.code,
         'enrollment_id': enrollment.id},
        f'Successfully enrolled in {course.name}', 201,
    )


@courses_bp.route('/<int:id>/enroll', methods=['POST'])
@token_required
@student_required
def enroll(id):
    return _enroll(get_course_or_404(id), g.current_user)


@courses_bp.route('/enroll-by-code', methods=['POST'])
@token_required
@student_required
def enroll_by_code():
    data = get_json_body()
    code = (data.get('code') or '').strip().upper()
    if not code:
        raise APIError('Course code is required', 400, 'VALIDATION_ERROR')
    course = Course.query.filter_by(code=code, is_active=True).first()
    if course is None:
        raise APIError('Course not found', 404, 'COURSE_NOT_FOUND')
    return _enroll(course, g.current_user)


@courses_bp.route('/<int:id>/unenroll', methods=['POST'])
@token_required
@student_required
def unenroll(id):
    course = get_course_or_404(id)
    enrollment = Enrollment.get_active(g.current_user.id, course.id)
    if enrollment is None:
        raise APIError('You are not enrolled in this course', 404, 'NOT_ENROLLED')

    with transaction():
        enrollment.status = 'dropped'
        if course.current_students:
            course.current_students = Course.current_students - 1

    db.session.refresh(course)
    return success_response({'course_id': course.id}, 'Successfully unenrolled')


@courses_bp.route('/<int:id>/students', methods=['GET'])
@token_required
@instructor_required
def course_students(id):
    course = get_course_or_404(id)
    require_course_owner(course, g.current_user)
    rows = (db.session.query(User, Enrollment)
            .join(Enrollment, Enrollment.student_id == User.id)
            .filter(Enrollment.course_id == course.id, Enrollment.status == 'active')
            .order_by(User.name.asc())
            .all())
    students = [dict(user.to_summary(), enrolled_at=enrollment.enrolled_at.isoformat()) for user, enrollment in rows]
    return success_response({'course': {'id': course.id, 'name': course.name, 'code': course.code},
                             'students': students, 'total': len(students)})
