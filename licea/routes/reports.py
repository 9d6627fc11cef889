"""
Report Routes

FLOW OVERVIEW
- /api/reports/dashboard [GET]
  • Admin: platform counters, grade performance, monthly enrollments.
  • Instructor: own courses, students, published tasks, pending grading, per course performance.
  • Student: own courses, submissions, average, per course performance, upcoming tasks.
- /api/reports/course/<course_id>/performance [GET] course owner or admin
- /api/reports/course/<course_id>/attendance?start_date=&end_date= [GET] course owner or admin
- /api/reports/student/<student_id>/performance [GET]
  • The student, an instructor teaching them, or an admin.
- /api/reports/charts/performance-trends?course_id=&period=30 [GET]
- /api/reports/export/course/<course_id>/students [GET] course owner or admin
"""

from flask import Blueprint, g, request

from ..models import db, User, Course, Enrollment
from ..utils.api_utils import get_int_arg, success_response
from ..utils.auth_decorators import token_required
from ..utils.error_handlers import APIError
from ..utils.reports import (
    admin_dashboard, instructor_dashboard, student_dashboard, course_performance,
    course_attendance, student_performance, performance_trends, course_export
)
from ..utils.validators import InputValidator
from .courses import require_course_owner

reports_bp = Blueprint('reports', __name__)


def _report_course(course_id):
    course = db.session.get(Course, course_id)
    if course is None:
        raise APIError('Course not found', 404, 'COURSE_NOT_FOUND')
    require_course_owner(course, g.current_user)
    return course


def _date_arg(name):
    raw = request.args.get(name)
    if not raw:
        return None
    result = InputValidator.validate_iso_date(raw, name)
    if not result.is_valid:
        raise APIError(result.error_message, 400, 'VALIDATION_ERROR')
    return result.sanitized_value


def _can_view_student(user, student):
    if user.role == 'admin' or user.id == student.id:
        return True
    if user.role != 'instructor':
        return False
    return (Enrollment.query.join(Course, Course.id == Enrollment.course_id)
            .filter(Enrollment.student_id == student.id, Enrollment.status == 'active',
                    Course.instructor_id == user.id)
            .first()) is not None


@reports_bp.route('/dashboard', methods=['GET'])
@token_required
def dashboard():
    user = g.current_user
    if user.role == 'admin':
        data = admin_dashboard()
    elif user.role == 'instructor':
        data = instructor_dashboard(user)
    else:
        data = student_dashboard(user)
    return success_response(data)


@reports_bp.route('/course/<int:course_id>/performance', methods=['GET'])
@token_required
def course_performance_report(course_id):
    return success_response(course_performance(_report_course(course_id)))


@reports_bp.route('/course/<int:course_id>/attendance', methods=['GET'])
@token_required
def course_attendance_report(course_id):
    course = _report_course(course_id)
    start_date = _date_arg('start_date')
    end_date = _date_arg('end_date')
    if start_date and end_date and end_date < start_date:
        raise APIError('end_date must be after start_date', 400, 'VALIDATION_ERROR')
    return success_response(course_attendance(course, start_date, end_date))


@reports_bp.route('/student/<int:student_id>/performance', methods=['GET'])
@token_required
def student_performance_report(student_id):
    student = db.session.get(User, student_id)
    if student is None or student.role != 'student':
        raise APIError('Student not found', 404, 'STUDENT_NOT_FOUND')
    if not _can_view_student(g.current_user, student):
        raise APIError('You do not have access to this report', 403, 'ACCESS_DENIED')
    return success_response(student_performance(student))


@reports_bp.route('/charts/performance-trends', methods=['GET'])
@token_required
def performance_trends_report():
    course_id = get_int_arg('course_id', min_value=1)
    period = get_int_arg('period', 30, min_value=1, max_value=365)
    return success_response(performance_trends(g.current_user, course_id, period))


@reports_bp.route('/export/course/<int:course_id>/students', methods=['GET'])
@token_required
def export_course_students(course_id):
    return success_response(course_export(_report_course(course_id)))
