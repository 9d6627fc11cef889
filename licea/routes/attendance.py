"""
Attendance Routes

FLOW OVERVIEW
- /api/attendance/students [GET]
  • Active students of the caller's courses (every course for admins) with their course names.
- /api/attendance/records?date=&course_id= [GET]
  • Records of one day for the caller's courses; 400 MISSING_DATE without a date.
- /api/attendance/mark [POST]
  • Course owner or admin; the student must be actively enrolled. Re-marking a day updates it.
- /api/attendance/summary/<course_id> [GET]
  • Per student counts by status and attendance rate.

All routes require an instructor or admin.
"""

import logging

from flask import Blueprint, g, request

from ..models import db, transaction, Course, Enrollment, User, AttendanceRecord
from ..models.attendance import ATTENDANCE_STATUSES, summarize
from ..utils.api_utils import get_json_body, get_int_arg, success_response
from ..utils.auth_decorators import token_required, instructor_required
from ..utils.error_handlers import APIError
from ..utils.validators import InputValidator, RequestValidator
from .courses import get_course_or_404, require_course_owner

logger = logging.getLogger(__name__)

attendance_bp = Blueprint('attendance', __name__)


def _managed_courses_query(user):
    query = Course.query.filter(Course.is_active.is_(True))
    if user.role != 'admin':
        query = query.filter(Course.instructor_id == user.id)
    return query


@attendance_bp.route('/students', methods=['GET'])
@token_required
@instructor_required
def list_students():
    course_ids = [c.id for c in _managed_courses_query(g.current_user).all()]
    rows = []
    if course_ids:
        rows = (db.session.query(User, Course)
                .join(Enrollment, Enrollment.student_id == User.id)
                .join(Course, Course.id == Enrollment.course_id)
                .filter(Enrollment.course_id.in_(course_ids), Enrollment.status == 'active',
                        User.role == 'student')
                .order_by(User.name.asc(), Course.name.asc())
                .all())

    students = {}
    for user, course in rows:
        entry = students.setdefault(user.id, dict(
            user.to_summary(),
            institution_id=user.institution_id,
            institution_name=user.institution.name if user.institution else None,
            institution_code=user.institution.code if user.institution else None,
            courses=[],
        ))
        entry['courses'].append(course.name)

    data = [dict(entry, courses=', '.join(entry['courses'])) for entry in students.values()]
    return success_response(data, count=len(data))


@attendance_bp.route('/records', methods=['GET'])
@token_required
@instructor_required
def list_records():
    raw_date = request.args.get('date')
    if not raw_date:
        raise APIError('Date parameter is required', 400, 'MISSING_DATE')
    result = InputValidator.validate_iso_date(raw_date, 'date')
    if not result.is_valid:
        raise APIError(result.error_message, 400, 'VALIDATION_ERROR')

    query = (AttendanceRecord.query
             .join(Course, Course.id == AttendanceRecord.course_id)
             .join(User, User.id == AttendanceRecord.student_id)
             .filter(AttendanceRecord.attendance_date == result.sanitized_value))
    if g.current_user.role != 'admin':
        query = query.filter(Course.instructor_id == g.current_user.id)
    course_id = get_int_arg('course_id', min_value=1)
    if course_id is not None:
        query = query.filter(AttendanceRecord.course_id == course_id)

    records = query.order_by(User.name.asc()).all()
    return success_response([r.to_dict() for r in records])


@attendance_bp.route('/mark', methods=['POST'])
@token_required
@instructor_required
def mark_attendance():
    cleaned = (RequestValidator(get_json_body())
               .integer('course_id', 1)
               .integer('student_id', 1)
               .date('attendance_date')
               .choice('status', ATTENDANCE_STATUSES)
               .text('notes', 0, 1000, required=False)
               .raise_if_invalid())

    course = get_course_or_404(cleaned['course_id'])
    require_course_owner(course, g.current_user)
    if Enrollment.get_active(cleaned['student_id'], course.id) is None:
        raise APIError('Student not enrolled in this course', 404, 'NOT_ENROLLED')

    with transaction():
        record = AttendanceRecord.mark(
            course.id, cleaned['student_id'], cleaned['attendance_date'], cleaned['status'],
            notes=cleaned.get('notes'), recorded_by=g.current_user.id,
        )

    logger.info(f"Attendance {record.status} for student {record.student_id} in course {course.id} "
                f"on {record.attendance_date}")
    return success_response(record.to_dict(), 'Attendance marked successfully')


@attendance_bp.route('/summary/<int:course_id>', methods=['GET'])
@token_required
@instructor_required
def course_summary(course_id):
    course = get_course_or_404(course_id)
    require_course_owner(course, g.current_user)

    students = (db.session.query(User)
                .join(Enrollment, Enrollment.student_id == User.id)
                .filter(Enrollment.course_id == course.id, Enrollment.status == 'active')
                .order_by(User.name.asc())
                .all())
    records_by_student = {}
    for record in AttendanceRecord.query.filter_by(course_id=course.id).all():
        records_by_student.setdefault(record.student_id, []).append(record)

    summary = [dict(student_id=s.id, student_name=s.name, **summarize(records_by_student.get(s.id, [])))
               for s in students]
    return success_response({'course': {'id': course.id, 'name': course.name, 'code': course.code},
                             'students': summary})
