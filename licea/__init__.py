"""
LICEA Application Package

FLOW OVERVIEW
- create_app(test_config=None)
  • Build Flask app, apply config (test mapping or env-based Config), set log level.
  • Init extensions: DB, Mail, CORS on /api/*.
  • Register blueprints: main (/), auth (/api/auth), users, courses, tasks,
    submissions, schedules, notifications, audit-logs, ai, institutions, groups,
    attendance, reports.
  • Register error handlers, the global /api rate limit, request metrics and the audit tap.
"""

import logging

from flask import Flask, g
from flask_cors import CORS

from .models import db
from .routes import (
    main_bp, auth_bp, users_bp, courses_bp, tasks_bp, submissions_bp,
    schedules_bp, notifications_bp, audit_bp, assistant_bp, institutions_bp, groups_bp,
    attendance_bp, reports_bp
)
from .config import Config
from .utils.email_service import mail


def create_app(test_config=None):
    """Application factory pattern for production deployment"""
    app = Flask(__name__)

    # Configuration
    if test_config:
        app.config.update(test_config)
    else:
        app.config.from_object(Config())

    logging.basicConfig(
        level=app.config.get('LOG_LEVEL', 'INFO'),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
    app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    # Initialize extensions
    db.init_app(app)
    mail.init_app(app)
    CORS(app, resources={r'/api/*': {'origins': app.config.get('CORS_ORIGINS', ['http://localhost:3000'])}},
         supports_credentials=True)

    @app.before_request
    def _reset_current_user():
        g.current_user = None

    # Register blueprints
    app.register_blueprint(main_bp)
    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(users_bp, url_prefix='/api/users')
    app.register_blueprint(courses_bp, url_prefix='/api/courses')
    app.register_blueprint(tasks_bp, url_prefix='/api/tasks')
    app.register_blueprint(submissions_bp, url_prefix='/api/submissions')
    app.register_blueprint(schedules_bp, url_prefix='/api/schedules')
    app.register_blueprint(notifications_bp, url_prefix='/api/notifications')
    app.register_blueprint(audit_bp, url_prefix='/api/audit-logs')
    app.register_blueprint(assistant_bp, url_prefix='/api/ai')
    app.register_blueprint(institutions_bp, url_prefix='/api/institutions')
    app.register_blueprint(groups_bp, url_prefix='/api/groups')
    app.register_blueprint(attendance_bp, url_prefix='/api/attendance')
    app.register_blueprint(reports_bp, url_prefix='/api/reports')

    # Register error handlers and request hooks
    from .utils.error_handlers import register_error_handlers
    from .utils.api_utils import register_api_rate_limit
    from .utils.prom_metrics import register_request_metrics
    from .utils.audit_logger import register_audit_logger
    register_error_handlers(app)
    register_api_rate_limit(app)
    register_request_metrics(app)
    register_audit_logger(app)

    return app
