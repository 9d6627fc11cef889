"""
Notification Routes

FLOW OVERVIEW
- /api/notifications [GET]
  • Caller's notifications newest first (limit, unread_only) + unread_count.
- /api/notifications/<id>/read [PATCH], /api/notifications/mark-all-read [PATCH]
- /api/notifications/<id> [DELETE]
- /api/notifications/announce [POST] instructor/admin
  • announcement to every active student of an owned course.
"""

from datetime import datetime

from flask import Blueprint, g

from ..models import db, transaction, Notification, Course, notify_students_in_course
from ..utils.api_utils import get_json_body, get_int_arg, get_bool_arg, success_response
from ..utils.auth_decorators import token_required, instructor_required
from ..utils.error_handlers import APIError
from ..utils.validators import RequestValidator

notifications_bp = Blueprint('notifications', __name__)


def _get_own_notification(notification_id):
    notification = Notification.query.filter_by(id=notification_id, user_id=g.current_user.id).first()
    if notification is None:
        raise APIError('Notification not found', 404, 'NOTIFICATION_NOT_FOUND')
    return notification


@notifications_bp.route('', methods=['GET'])
@token_required
def list_notifications():
    user_id = g.current_user.id
    limit = get_int_arg('limit', 20, min_value=1, max_value=100)
    query = Notification.query.filter_by(user_id=user_id)
    if get_bool_arg('unread_only'):
        query = query.filter_by(is_read=False)
    notifications = query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()
    return success_response([n.to_dict() for n in notifications],
                            unread_count=Notification.unread_count(user_id))


@notifications_bp.route('/<int:id>/read', methods=['PATCH'])
@token_required
def mark_read(id):
    notification = _get_own_notification(id)
    with transaction():
        notification.mark_read()
    return success_response(notification.to_dict(), 'Notification marked as read')


@notifications_bp.route('/mark-all-read', methods=['PATCH'])
@token_required
def mark_all_read():
    with transaction():
        updated = (Notification.query
                   .filter_by(user_id=g.current_user.id, is_read=False)
                   .update({'is_read': True, 'read_at': datetime.utcnow()}, synchronize_session=False))
    return success_response({'updated': updated}, 'All notifications marked as read')


@notifications_bp.route('/<int:id>', methods=['DELETE'])
@token_required
def delete_notification(id):
    notification = _get_own_notification(id)
    with transaction():
        db.session.delete(notification)
    return success_response(message='Notification deleted')


@notifications_bp.route('/announce', methods=['POST'])
@token_required
@instructor_required
def announce():
    data = get_json_body()
    cleaned = (RequestValidator(data)
               .integer('course_id', 1)
               .line('title', 3, 255, label='Title')
               .text('message', 1, 5000, label='Message')
               .raise_if_invalid())

    course = db.session.get(Course, cleaned['course_id'])
    if course is None or not course.is_active:
        raise APIError('Course not found', 404, 'COURSE_NOT_FOUND')
    if not course.is_owned_by(g.current_user):
        raise APIError('You can only announce to your own courses', 403, 'ACCESS_DENIED')

    with transaction():
        sent = notify_students_in_course(course, 'announcement', cleaned['title'], cleaned['message'],
                                         link=f'/courses/{course.id}', related_id=course.id)

    return success_response({'course_id': course.id, 'recipients': sent}, f'Announcement sent to {sent} students')
