"""
Notification Model

FLOW OVERVIEW
- Notification rows are created by task publication, grading, reminders,
  enrollment and announcements; the client polls GET /api/notifications.
- formatted_title: title prefixed by a marker for the notification type.
- create_notification / notify_students_in_course: helpers used by routes.
"""

import logging
from datetime import datetime
from .database import db
from .utils import isoformat

logger = logging.getLogger(__name__)

NOTIFICATION_TYPES = ('task_assigned', 'task_graded', 'task_reminder', 'course_enrolled', 'announcement')

TITLE_PREFIXES = {
    'task_assigned': '📝',
    'task_graded': '✅',
    'task_reminder': '⏰',
    'course_enrolled': '🎓',
    'announcement': '📢',
}


class Notification(db.Model):
    """In-app notification addressed to one user"""
    __tablename__ = 'notifications'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    type = db.Column(db.String(30), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    link = db.Column(db.String(500))
    related_id = db.Column(db.Integer)
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    @property
    def formatted_title(self):
        prefix = TITLE_PREFIXES.get(self.type)
        return f'{prefix} {self.title}' if prefix else self.title

    def mark_read(self):
        if not self.is_read:
            self.is_read = True
            self.read_at = datetime.utcnow()

    def to_dict(self):
        return {
            'id': self.id,
            'type': self.type,
            'title': self.title,
            'formatted_title': self.formatted_title,
            'message': self.message,
            'link': self.link,
            'related_id': self.related_id,
            'is_read': self.is_read,
            'read_at': isoformat(self.read_at),
            'created_at': isoformat(self.created_at),
        }

    @classmethod
    def unread_count(cls, user_id):
        return cls.query.filter_by(user_id=user_id, is_read=False).count()


def create_notification(user_id, type, title, message, link=None, related_id=None):
    """Add a notification to the current session; the caller commits"""
    if type not in NOTIFICATION_TYPES:
        raise ValueError(f'Unknown notification type: {type}')
    notification = Notification(user_id=user_id, type=type, title=title, message=message,
                                link=link, related_id=related_id, is_read=False)
    db.session.add(notification)
    return notification


def notify_students_in_course(course, type, title, message, link=None, related_id=None, student_ids=None):
    """Notify every active student of a course, returns the number of notifications"""
    if student_ids is None:
        student_ids = course.active_student_ids()
    for student_id in student_ids:
        create_notification(student_id, type, title, message, link=link, related_id=related_id)
    logger.info(f"Queued {len(student_ids)} '{type}' notifications for course {course.id}")
    return len(student_ids)
