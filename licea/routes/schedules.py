"""
Schedule Routes

FLOW OVERVIEW
- /api/schedules/course/<course_id> [GET]
  • Course + class sessions ordered by weekday and start time.
- /api/schedules/my-schedule [GET]
  • Class sessions of the caller's courses grouped by weekday + own deadline entries.
- /api/schedules/upcoming [GET]
  • Next occurrences: later today, later this week, then next week.
- /api/schedules [POST], /api/schedules/<id> [PUT, DELETE]
  • Owning instructor or admin; HH:MM:SS times, start < end, no overlap
    with another session of the same course on the same day.
"""

import logging
from datetime import datetime, timedelta

from flask import Blueprint, g

from ..models import db, transaction, Schedule, Course, Enrollment
from ..models.schedule import DAYS_OF_WEEK, SESSION_TYPES
from ..utils.api_utils import get_json_body, get_int_arg, success_response
from ..utils.auth_decorators import token_required, instructor_required
from ..utils.error_handlers import APIError
from ..utils.validators import RequestValidator

logger = logging.getLogger(__name__)

schedules_bp = Blueprint('schedules', __name__)

EDITABLE_FIELDS = ('day_of_week', 'start_time', 'end_time', 'location', 'session_type', 'title',
                   'description', 'is_recurring', 'specific_date', 'notes')


def _caller_course_ids(user):
    if user.role == 'student':
        return Enrollment.active_course_ids(user.id)
    query = Course.query.with_entities(Course.id).filter(Course.is_active.is_(True))
    if user.role == 'instructor':
        query = query.filter(Course.instructor_id == user.id)
    return [row.id for row in query.all()]


def _validate_session(data, partial=False):
    validator = (RequestValidator(data, partial=partial)
                 .choice('day_of_week', DAYS_OF_WEEK)
                 .time('start_time')
                 .time('end_time')
                 .line('location', 0, 255, required=False)
                 .choice('session_type', SESSION_TYPES, required=False)
                 .line('title', 0, 255, required=False)
                 .text('description', 0, 5000, required=False)
                 .boolean('is_recurring')
                 .date('specific_date', required=False)
                 .text('notes', 0, 5000, required=False))
    return validator.raise_if_invalid()


def _check_time_range(start_time, end_time):
    if start_time >= end_time:
        raise APIError('Start time must be before end time', 400, 'INVALID_TIME_RANGE')


def _get_owned_session(schedule_id, user):
    schedule = db.session.get(Schedule, schedule_id)
    if schedule is None or schedule.activity_type != 'class':
        raise APIError('Schedule not found', 404, 'SCHEDULE_NOT_FOUND')
    if not schedule.course.is_owned_by(user):
        raise APIError('You can only manage schedules of your own courses', 403, 'UNAUTHORIZED')
    return schedule


def next_occurrences(sessions, now=None):
    """Pair each session with its next start, ordered soonest first"""
    now = now or datetime.now()
    today = now.weekday()
    current_time = now.strftime('%H:%M:%S')
    upcoming = []
    for session in sessions:
        days_ahead = (session.day_index() - today) % 7
        if days_ahead == 0 and session.start_time <= current_time:
            days_ahead = 7
        upcoming.append((days_ahead, session.start_time, session))
    upcoming.sort(key=lambda item: (item[0], item[1]))
    return [(session, (now + timedelta(days=days)).date(), days) for days, _, session in upcoming]


@schedules_bp.route('/course/<int:course_id>', methods=['GET'])
@token_required
def course_schedule(course_id):
    course = db.session.get(Course, course_id)
    if course is None or not course.is_active:
        raise APIError('Course not found', 404, 'COURSE_NOT_FOUND')
    sessions = Schedule.class_sessions([course.id])
    return success_response({
        'course': course.to_dict(include_instructor=False),
        'schedules': [s.to_dict() for s in sessions],
    })


@schedules_bp.route('/my-schedule', methods=['GET'])
@token_required
def my_schedule():
    user = g.current_user
    sessions = Schedule.class_sessions(_caller_course_ids(user))

    by_day = {day: [] for day in DAYS_OF_WEEK}
    for session in sessions:
        if session.day_of_week in by_day:
            by_day[session.day_of_week].append(session.to_dict())

    deadlines = (Schedule.query
                 .filter_by(user_id=user.id, activity_type='task')
                 .order_by(Schedule.deadline.asc())
                 .all())

    return success_response({
        'schedule': by_day,
        'deadlines': [d.to_dict() for d in deadlines],
        'summary': {
            'totalClasses': len(sessions),
            'daysWithClasses': len([day for day, items in by_day.items() if items]),
        },
    })


@schedules_bp.route('/upcoming', methods=['GET'])
@token_required
def upcoming():
    limit = get_int_arg('limit', 5, min_value=1, max_value=50)
    sessions = Schedule.class_sessions(_caller_course_ids(g.current_user))
    items = []
    for session, date, days_ahead in next_occurrences(sessions)[:limit]:
        data = session.to_dict()
        data['next_date'] = date.isoformat()
        data['days_until'] = days_ahead
        items.append(data)
    return success_response(items)


@schedules_bp.route('', methods=['POST'])
@token_required
@instructor_required
def create_schedule():
    data = get_json_body()
    course_id = RequestValidator(data).integer('course_id', 1).raise_if_invalid()['course_id']
    cleaned = _validate_session(data)
    _check_time_range(cleaned['start_time'], cleaned['end_time'])

    course = db.session.get(Course, course_id)
    if course is None or not course.is_active:
        raise APIError('Course not found', 404, 'COURSE_NOT_FOUND')
    if not course.is_owned_by(g.current_user):
        raise APIError('You can only manage schedules of your own courses', 403, 'UNAUTHORIZED')

    conflict = Schedule.find_conflict(course.id, cleaned['day_of_week'], cleaned['start_time'], cleaned['end_time'])
    if conflict is not None:
        raise APIError('Schedule conflicts with an existing session', 409, 'SCHEDULE_CONFLICT',
                       {'conflicting_schedule_id': conflict.id})

    with transaction():
        schedule = Schedule(course_id=course.id, activity_type='class',
                            **{k: v for k, v in cleaned.items() if k in EDITABLE_FIELDS})
        db.session.add(schedule)

    return success_response(schedule.to_dict(), 'Schedule created successfully', 201)


@schedules_bp.route('/<int:id>', methods=['PUT'])
@token_required
@instructor_required
def update_schedule(id):
    schedule = _get_owned_session(id, g.current_user)
    data = get_json_body()
    updates = {k: v for k, v in _validate_session(data, partial=True).items() if k in EDITABLE_FIELDS}
    if not updates:
        raise APIError('No valid fields to update', 400, 'NO_UPDATES')

    day = updates.get('day_of_week', schedule.day_of_week)
    start_time = updates.get('start_time', schedule.start_time)
    end_time = updates.get('end_time', schedule.end_time)
    _check_time_range(start_time, end_time)
    conflict = Schedule.find_conflict(schedule.course_id, day, start_time, end_time, exclude_id=schedule.id)
    if conflict is not None:
        raise APIError('Schedule conflicts with an existing session', 409, 'SCHEDULE_CONFLICT',
                       {'conflicting_schedule_id': conflict.id})

    with transaction():
        for field, value in updates.items():
            setattr(schedule, field, value)

    return success_response(schedule.to_dict(), 'Schedule updated successfully')


@schedules_bp.route('/<int:id>', methods=['DELETE'])
@token_required
@instructor_required
def delete_schedule(id):
    schedule = _get_owned_session(id, g.current_user)
    with transaction():
        db.session.delete(schedule)
    return success_response(message='Schedule deleted successfully')
