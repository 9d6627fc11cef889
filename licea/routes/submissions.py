"""
Submission Routes

FLOW OVERVIEW
- /api/submissions [GET]
  • Student: own submissions; instructor: submissions of own courses; admin: all.
- /api/submissions/my-grades [GET] student
  • Graded submissions with percentage and per-course averages.
- /api/submissions/task/<task_id> [GET]
- /api/submissions/<id> [GET]  student owner, owning instructor or admin
- /api/submissions [POST] student
  • JSON or multipart (file field). Enrollment → published task → due date →
    no previous submission → some content. draft=true keeps it editable.
- /api/submissions/<id> [PUT, DELETE] student owner, drafts only
- /api/submissions/<id>/submit [PATCH] draft → submitted
- /api/submissions/<id>/grade [PATCH] owning instructor or admin
  • 0 ≤ grade ≤ max_grade, task_graded notification + email.
- /api/submissions/<id>/download [GET]
"""

import os
import logging
from collections import defaultdict

from flask import Blueprint, g, request, send_file

from ..models import db, transaction, Submission, Task, Course, Enrollment, create_notification
from ..utils.api_utils import get_json_body, get_int_arg, success_response
from ..utils.auth_decorators import token_required, instructor_required, student_required
from ..utils.email_service import send_grade_notification_email
from ..utils.error_handlers import APIError
from ..utils.uploads import save_submission_file, resolve_upload_path, remove_upload
from ..utils.validators import RequestValidator

logger = logging.getLogger(__name__)

submissions_bp = Blueprint('submissions', __name__)


def _request_payload():
    """(fields, uploaded file) from a JSON or multipart body"""
    if request.mimetype == 'multipart/form-data':
        upload = request.files.get('file')
        if upload is not None and not upload.filename:
            upload = None
        return request.form.to_dict(), upload
    return get_json_body(), None


def _is_true(value):
    if isinstance(value, str):
        return value.lower() in ('1', 'true', 'yes')
    return value is True


def _scoped_query(user):
    query = Submission.query.join(Task, Submission.task_id == Task.id)
    if user.role == 'student':
        query = query.filter(Submission.student_id == user.id)
    elif user.role == 'instructor':
        query = query.join(Course, Task.course_id == Course.id).filter(Course.instructor_id == user.id)
    return query


def can_view(submission, user):
    if user.role == 'student':
        return submission.student_id == user.id
    return submission.task.course.is_owned_by(user)


def get_submission_or_404(submission_id, user):
    submission = db.session.get(Submission, submission_id)
    if submission is None:
        raise APIError('Submission not found', 404, 'SUBMISSION_NOT_FOUND')
    if not can_view(submission, user):
        raise APIError('You do not have access to this submission', 403, 'ACCESS_DENIED')
    return submission


def get_own_draft(submission_id, user):
    submission = get_submission_or_404(submission_id, user)
    if submission.student_id != user.id:
        raise APIError('You can only modify your own submissions', 403, 'ACCESS_DENIED')
    if not submission.is_draft():
        raise APIError('Only draft submissions can be modified', 400, 'NOT_DRAFT')
    return submission


def _validate_content(data):
    return (RequestValidator(data, partial=True)
            .text('submission_text', 1, 5000, label='Submission text')
            .line('file_url', 1, 500, label='File URL')
            .raise_if_invalid())


def _ensure_deadline(task, when=None):
    if not task.accepts_submission_at(when):
        raise APIError('The due date has passed and late submissions are not allowed', 400, 'DEADLINE_PASSED')


@submissions_bp.route('', methods=['GET'])
@token_required
def list_submissions():
    user = g.current_user
    query = _scoped_query(user)

    task_id = get_int_arg('task_id')
    if task_id is not None:
        query = query.filter(Submission.task_id == task_id)
    student_id = get_int_arg('student_id')
    if student_id is not None and user.role != 'student':
        query = query.filter(Submission.student_id == student_id)
    status = request.args.get('status')
    if status:
        query = query.filter(Submission.status == status)

    limit = get_int_arg('limit', 50, min_value=1, max_value=100)
    offset = get_int_arg('offset', 0, min_value=0)
    total = query.count()
    submissions = (query.order_by(Submission.submitted_at.desc(), Submission.id.desc())
                   .offset(offset).limit(limit).all())
    return success_response([s.to_dict() for s in submissions],
                            pagination={'total': total, 'limit': limit, 'offset': offset})


@submissions_bp.route('/my-grades', methods=['GET'])
@token_required
@student_required
def my_grades():
    graded = (Submission.query
              .filter_by(student_id=g.current_user.id, status='graded')
              .order_by(Submission.graded_at.desc())
              .all())

    grades = []
    by_course = defaultdict(list)
    for submission in graded:
        data = submission.to_dict(include_student=False)
        data['percentage'] = submission.percentage()
        data['course_name'] = submission.task.course.name
        data['course_code'] = submission.task.course.code
        grades.append(data)
        if data['percentage'] is not None:
            by_course[(submission.task.course_id, submission.task.course.name)].append(data['percentage'])

    averages = [
        {'course_id': course_id, 'course_name': name, 'graded_count': len(values),
         'average': round(sum(values) / len(values), 2)}
        for (course_id, name), values in by_course.items()
    ]
    all_values = [v for values in by_course.values() for v in values]
    overall = round(sum(all_values) / len(all_values), 2) if all_values else None
    return success_response({'grades': grades, 'course_averages': averages, 'overall_average': overall})


@submissions_bp.route('/task/<int:task_id>', methods=['GET'])
@token_required
def task_submissions(task_id):
    user = g.current_user
    task = db.session.get(Task, task_id)
    if task is None:
        raise APIError('Task not found', 404, 'TASK_NOT_FOUND')

    query = Submission.query.filter_by(task_id=task.id)
    if user.role == 'student':
        query = query.filter_by(student_id=user.id)
    elif not task.course.is_owned_by(user):
        raise APIError('You can only view submissions of your own courses', 403, 'ACCESS_DENIED')

    submissions = query.order_by(Submission.submitted_at.desc(), Submission.id.desc()).all()
    return success_response({'task': task.to_dict(), 'submissions': [s.to_dict() for s in submissions]})


@submissions_bp.route('/<int:id>', methods=['GET'])
@token_required
def get_submission(id):
    return success_response(get_submission_or_404(id, g.current_user).to_dict())


@submissions_bp.route('', methods=['POST'])
@token_required
@student_required
def create_submission():
    user = g.current_user
    data, upload = _request_payload()
    cleaned = RequestValidator(data).integer('task_id', 1).raise_if_invalid()
    cleaned.update(_validate_content(data))

    task = db.session.get(Task, cleaned['task_id'])
    if task is None:
        raise APIError('Task not found', 404, 'TASK_NOT_FOUND')
    if Enrollment.get_active(user.id, task.course_id) is None:
        raise APIError('You are not enrolled in this course', 403, 'NOT_ENROLLED')
    if not task.is_published:
        raise APIError('Task not found', 404, 'TASK_NOT_FOUND')
    _ensure_deadline(task)
    if Submission.query.filter_by(task_id=task.id, student_id=user.id).first():
        raise APIError('You already have a submission for this task', 400, 'ALREADY_SUBMITTED')
    if not (cleaned.get('submission_text') or cleaned.get('file_url') or upload is not None):
        raise APIError('Provide submission text, a file or a file URL', 400, 'NO_CONTENT')

    file_path = save_submission_file(upload, user.id) if upload is not None else None
    try:
        with transaction():
            submission = Submission(
                task_id=task.id,
                student_id=user.id,
                submission_text=cleaned.get('submission_text'),
                file_url=cleaned.get('file_url'),
                file_path=file_path,
                status='draft',
            )
            submission.task = task
            if not _is_true(data.get('draft')):
                submission.submit()
            db.session.add(submission)
    except Exception:
        remove_upload(file_path)
        raise

    message = 'Draft saved successfully' if submission.is_draft() else 'Submission sent successfully'
    logger.info(f"Submission {submission.id} ({submission.status}) for task {task.id} by user {user.id}")
    return success_response(submission.to_dict(), message, 201)


@submissions_bp.route('/<int:id>', methods=['PUT'])
@token_required
@student_required
def update_submission(id):
    submission = get_own_draft(id, g.current_user)
    data, upload = _request_payload()
    cleaned = _validate_content(data)
    if not cleaned and upload is None:
        raise APIError('No valid fields to update', 400, 'NO_UPDATES')

    old_file = submission.file_path
    new_file = save_submission_file(upload, g.current_user.id) if upload is not None else None
    try:
        with transaction():
            for field, value in cleaned.items():
                setattr(submission, field, value)
            if new_file:
                submission.file_path = new_file
    except Exception:
        remove_upload(new_file)
        raise

    if new_file and old_file:
        remove_upload(old_file)
    return success_response(submission.to_dict(), 'Submission updated successfully')


@submissions_bp.route('/<int:id>/submit', methods=['PATCH'])
@token_required
@student_required
def submit_submission(id):
    submission = get_submission_or_404(id, g.current_user)
    if not submission.is_draft():
        raise APIError('Submission was already submitted', 400, 'ALREADY_SUBMITTED')
    if not submission.has_content():
        raise APIError('Provide submission text, a file or a file URL', 400, 'NO_CONTENT')
    _ensure_deadline(submission.task)

    with transaction():
        submission.submit()
    return success_response(submission.to_dict(), 'Submission sent successfully')


@submissions_bp.route('/<int:id>/grade', methods=['PATCH'])
@token_required
@instructor_required
def grade_submission(id):
    submission = get_submission_or_404(id, g.current_user)
    if submission.is_draft():
        raise APIError('Only submitted work can be graded', 400, 'NOT_SUBMITTED')

    task = submission.task
    data = get_json_body()
    cleaned = (RequestValidator(data)
               .number('grade', 0, task.max_grade)
               .text('feedback', 0, 5000, required=False)
               .raise_if_invalid())

    with transaction():
        submission.apply_grade(cleaned['grade'], cleaned.get('feedback'))
        create_notification(
            submission.student_id, 'task_graded', f'Task graded: {task.title}',
            f'Your submission received {submission.grade:g}/{task.max_grade:g}.',
            link=f'/tasks/{task.id}', related_id=submission.id,
        )

    if not send_grade_notification_email(submission.student, submission):
        logger.warning(f"Grade email for submission {submission.id} was not delivered")
    return success_response(submission.to_dict(), 'Submission graded successfully')


@submissions_bp.route('/<int:id>/download', methods=['GET'])
@token_required
def download_submission(id):
    submission = get_submission_or_404(id, g.current_user)
    if not submission.file_path:
        raise APIError('This submission has no file', 404, 'FILE_NOT_FOUND')
    path = resolve_upload_path(submission.file_path)
    if not os.path.isfile(path):
        raise APIError('File not found', 404, 'FILE_NOT_FOUND')
    return send_file(path, as_attachment=True, download_name=os.path.basename(path))


@submissions_bp.route('/<int:id>', methods=['DELETE'])
@token_required
@student_required
def delete_submission(id):
    submission = get_own_draft(id, g.current_user)
    file_path = submission.file_path
    with transaction():
        db.session.delete(submission)
    remove_upload(file_path)
    return success_response(message='Submission deleted successfully')
