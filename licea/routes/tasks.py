"""
Task Routes

FLOW OVERVIEW
- /api/tasks [GET]
  • Students: published tasks of their active courses; instructors: tasks of
    their courses; admins: every task. Filters course_id, status, limit, offset.
- /api/tasks/<id> [GET]
  • Students get my_submission, instructors/admins get statistics.
- /api/tasks [POST], /api/tasks/<id> [PUT, DELETE]
  • Instructor owning the course or admin.
  • Publishing creates per-student deadline entries and task_assigned notifications.
- /api/tasks/<id>/toggle-publish [PATCH]
- /api/tasks/<id>/remind [POST]
  • Email + task_reminder notification to active students without a submission.
"""

import logging

from flask import Blueprint, g, request
from sqlalchemy import func

from ..models import db, transaction, Task, Course, Enrollment, Submission, Schedule, User
from ..models import create_notification, notify_students_in_course
from ..models.task import SUBMISSION_TYPES
from ..utils.api_utils import get_json_body, get_int_arg, success_response
from ..utils.auth_decorators import token_required, instructor_required
from ..utils.email_service import send_task_reminder_email
from ..utils.error_handlers import APIError
from ..utils.validators import RequestValidator

logger = logging.getLogger(__name__)

tasks_bp = Blueprint('tasks', __name__)

EDITABLE_FIELDS = ('title', 'description', 'instructions', 'due_date', 'max_grade', 'submission_type',
                   'is_published', 'late_submission_allowed', 'late_penalty')


def _visible_tasks_query(user):
    query = Task.query.join(Course, Task.course_id == Course.id)
    if user.role == 'student':
        query = query.filter(Task.course_id.in_(Enrollment.active_course_ids(user.id)),
                             Task.is_published.is_(True))
    elif user.role == 'instructor':
        query = query.filter(Course.instructor_id == user.id)
    return query


def get_task_or_404(task_id, user):
    task = _visible_tasks_query(user).filter(Task.id == task_id).first()
    if task is None:
        raise APIError('Task not found', 404, 'TASK_NOT_FOUND')
    return task


def get_owned_task(task_id, user):
    task = db.session.get(Task, task_id)
    if task is None:
        raise APIError('Task not found', 404, 'TASK_NOT_FOUND')
    if not task.course.is_owned_by(user):
        raise APIError('You can only manage tasks of your own courses', 403, 'ACCESS_DENIED')
    return task


def _validate_task(data, partial=False):
    return (RequestValidator(data, partial=partial)
            .line('title', 3, 255, label='Title')
            .text('description', 10, 10000, label='Description')
            .text('instructions', 0, 10000, required=False)
            .datetime('due_date')
            .number('max_grade', 0, 1000, required=False)
            .choice('submission_type', SUBMISSION_TYPES, required=False)
            .boolean('is_published')
            .boolean('late_submission_allowed')
            .number('late_penalty', 0, 100, required=False))


def publish_task(task):
    """Deadline entries + task_assigned notifications for every active student"""
    student_ids = task.course.active_student_ids()
    Schedule.sync_task_entries(task, student_ids)
    return notify_students_in_course(
        task.course, 'task_assigned', f'New task: {task.title}',
        f"A new task was published in {task.course.name}. Due {task.due_date.strftime('%Y-%m-%d %H:%M')}.",
        link=f'/tasks/{task.id}', related_id=task.id, student_ids=student_ids,
    )


@tasks_bp.route('', methods=['GET'])
@token_required
def list_tasks():
    user = g.current_user
    query = _visible_tasks_query(user)

    course_id = get_int_arg('course_id')
    if course_id is not None:
        query = query.filter(Task.course_id == course_id)
    status = request.args.get('status')
    if status == 'published':
        query = query.filter(Task.is_published.is_(True))
    elif status == 'unpublished':
        query = query.filter(Task.is_published.is_(False))

    limit = get_int_arg('limit', 50, min_value=1, max_value=100)
    offset = get_int_arg('offset', 0, min_value=0)
    total = query.count()
    tasks = query.order_by(Task.due_date.asc(), Task.id.asc()).offset(offset).limit(limit).all()

    task_ids = [t.id for t in tasks]
    counts = {}
    submitted = {}
    if task_ids:
        counts = dict(db.session.query(Submission.task_id, func.count(Submission.id))
                      .filter(Submission.task_id.in_(task_ids)).group_by(Submission.task_id).all())
        submitted = dict(db.session.query(Submission.task_id, func.count(Submission.id))
                         .filter(Submission.task_id.in_(task_ids),
                                 Submission.status.in_(('submitted', 'graded')))
                         .group_by(Submission.task_id).all())

    items = []
    for task in tasks:
        data = task.to_dict()
        data['submission_count'] = counts.get(task.id, 0)
        data['submitted_count'] = submitted.get(task.id, 0)
        if user.role == 'student':
            mine = Submission.query.filter_by(task_id=task.id, student_id=user.id).first()
            data['my_submission_status'] = mine.status if mine else None
        items.append(data)

    return success_response(items, pagination={'total': total, 'limit': limit, 'offset': offset})


@tasks_bp.route('/<int:id>', methods=['GET'])
@token_required
def get_task(id):
    user = g.current_user
    task = get_task_or_404(id, user)
    data = task.to_dict()
    if user.role == 'student':
        mine = Submission.query.filter_by(task_id=task.id, student_id=user.id).first()
        data['my_submission'] = mine.to_dict(include_student=False) if mine else None
    else:
        data['statistics'] = task.statistics()
    return success_response(data)


@tasks_bp.route('', methods=['POST'])
@token_required
@instructor_required
def create_task():
    data = get_json_body()
    validator = _validate_task(data).integer('course_id', 1)
    cleaned = validator.raise_if_invalid()

    course = db.session.get(Course, cleaned['course_id'])
    if course is None or not course.is_active:
        raise APIError('Course not found', 404, 'COURSE_NOT_FOUND')
    if not course.is_owned_by(g.current_user):
        raise APIError('You can only create tasks for your own courses', 403, 'ACCESS_DENIED')

    with transaction():
        task = Task(
            title=cleaned['title'],
            description=cleaned['description'],
            instructions=cleaned.get('instructions'),
            course_id=course.id,
            due_date=cleaned['due_date'],
            max_grade=cleaned.get('max_grade', 100),
            submission_type=cleaned.get('submission_type', 'both'),
            is_published=cleaned.get('is_published', False),
            late_submission_allowed=cleaned.get('late_submission_allowed', True),
            late_penalty=cleaned.get('late_penalty', 0),
        )
        db.session.add(task)
        db.session.flush()
        if task.is_published:
            publish_task(task)

    logger.info(f"Task {task.id} created in course {course.id}")
    return success_response(task.to_dict(), 'Task created successfully', 201)


@tasks_bp.route('/<int:id>', methods=['PUT'])
@token_required
@instructor_required
def update_task(id):
    task = get_owned_task(id, g.current_user)
    data = get_json_body()
    cleaned = _validate_task(data, partial=True).raise_if_invalid()
    updates = {k: v for k, v in cleaned.items() if k in EDITABLE_FIELDS}
    if not updates:
        raise APIError('No valid fields to update', 400, 'NO_UPDATES')

    was_published = task.is_published
    with transaction():
        for field, value in updates.items():
            setattr(task, field, value)
        if task.is_published and not was_published:
            publish_task(task)
        elif task.is_published:
            Schedule.sync_task_entries(task, task.course.active_student_ids())
        elif was_published:
            Schedule.remove_task_entries(task.id)

    return success_response(task.to_dict(), 'Task updated successfully')


@tasks_bp.route('/<int:id>', methods=['DELETE'])
@token_required
@instructor_required
def delete_task(id):
    task = get_owned_task(id, g.current_user)
    with transaction():
        db.session.delete(task)
    logger.info(f"Task {id} deleted by user {g.current_user.id}")
    return success_response(message='Task deleted successfully')


@tasks_bp.route('/<int:id>/toggle-publish', methods=['PATCH'])
@token_required
@instructor_required
def toggle_publish(id):
    task = get_owned_task(id, g.current_user)
    notified = 0
    with transaction():
        task.is_published = not task.is_published
        if task.is_published:
            notified = publish_task(task)
        else:
            Schedule.remove_task_entries(task.id)

    state = 'published' if task.is_published else 'unpublished'
    return success_response({'id': task.id, 'is_published': task.is_published, 'notified': notified},
                            f'Task {state} successfully')


@tasks_bp.route('/<int:id>/remind', methods=['POST'])
@token_required
@instructor_required
def remind(id):
    task = get_owned_task(id, g.current_user)
    if not task.is_published:
        raise APIError('Only published tasks can have reminders', 400, 'TASK_NOT_PUBLISHED')

    submitted_ids = {s.student_id for s in task.submissions if s.status != 'draft'}
    pending_ids = [sid for sid in task.course.active_student_ids() if sid not in submitted_ids]
    students = User.query.filter(User.id.in_(pending_ids)).all() if pending_ids else []

    with transaction():
        for student in students:
            create_notification(
                student.id, 'task_reminder', f'Reminder: {task.title}',
                f"{task.title} is due {task.due_date.strftime('%Y-%m-%d %H:%M')}.",
                link=f'/tasks/{task.id}', related_id=task.id,
            )

    emailed = sum(1 for student in students if send_task_reminder_email(student, task))
    return success_response({'notified': len(students), 'emailed': emailed},
                            f'Reminder sent to {len(students)} students')
