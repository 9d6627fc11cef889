"""
Database Models Package

FLOW OVERVIEW
- Centralizes SQLAlchemy DB instance and model imports for convenient usage.
- Exposes: db, transaction, paginate_query and every LICEA model.
"""

from .database import db, transaction, paginate_query
from .user import User, EmailVerification, PasswordReset
from .course import Course, Enrollment
from .task import Task
from .submission import Submission
from .schedule import Schedule
from .notification import Notification, create_notification, notify_students_in_course
from .audit_log import AuditLog
from .ai_conversation import AIConversation
from .institution import Institution
from .group import CourseGroup, GroupMember, GroupMessage
from .attendance import AttendanceRecord

__all__ = [
    'db',
    'transaction',
    'paginate_query',
    'User',
    'EmailVerification',
    'PasswordReset',
    'Course',
    'Enrollment',
    'Task',
    'Submission',
    'Schedule',
    'Notification',
    'create_notification',
    'notify_students_in_course',
    'AuditLog',
    'AIConversation',
    'Institution',
    'CourseGroup',
    'GroupMember',
    'GroupMessage',
    'AttendanceRecord',
]
