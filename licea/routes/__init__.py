"""
Routes Package

This package contains all Flask route blueprints.
"""

from .main import main_bp
from .auth import auth_bp
from .users import users_bp
from .courses import courses_bp
from .tasks import tasks_bp
from .submissions import submissions_bp
from .schedules import schedules_bp
from .notifications import notifications_bp
from .audit import audit_bp
from .assistant import assistant_bp
from .institutions import institutions_bp
from .groups import groups_bp
from .attendance import attendance_bp
from .reports import reports_bp

__all__ = [
    'main_bp',
    'auth_bp',
    'users_bp',
    'courses_bp',
    'tasks_bp',
    'submissions_bp',
    'schedules_bp',
    'notifications_bp',
    'audit_bp',
    'assistant_bp',
    'institutions_bp',
    'groups_bp',
    'attendance_bp',
    'reports_bp',
]
