"""
Email Service

FLOW OVERVIEW
- mail: Flask-Mail extension, initialized in the app factory.
- send_email(to, subject, template, **context)
  • Renders templates/emails/<template>.html and sends through SMTP.
  • Returns True/False; delivery failures and rejected headers are logged, never raised.
- send_verification_email / send_password_reset_email / send_task_reminder_email
  / send_grade_notification_email build links from FRONTEND_URL.
"""

import logging
import smtplib
from flask import current_app, render_template
from flask_mail import BadHeaderError, Mail, Message

logger = logging.getLogger(__name__)

mail = Mail()


def is_configured():
    return bool(current_app.config.get('MAIL_SERVER'))


def send_email(to, subject, template, **context):
    """Render and send one HTML email"""
    if not is_configured():
        logger.warning(f"Mail not configured, skipping '{subject}' to {to}")
        return False

    context.setdefault('frontend_url', current_app.config.get('FRONTEND_URL', 'http://localhost:3000'))
    html = render_template(f'emails/{template}.html', **context)
    msg = Message(subject=subject, recipients=[to], html=html)

    try:
        mail.send(msg)
    except (smtplib.SMTPException, BadHeaderError, OSError) as e:
        logger.error(f"Failed to send '{subject}' to {to}: {e}")
        return False

    logger.info(f"Sent '{subject}' to {to}")
    return True


def _frontend_link(path, token):
    base = current_app.config.get('FRONTEND_URL', 'http://localhost:3000').rstrip('/')
    return f'{base}/{path}?token={token}'


def send_verification_email(user, verification):
    return send_email(
        user.email, 'Verify your LICEA account', 'verification',
        name=user.name, link=_frontend_link('verify-email', verification.token),
    )


def send_password_reset_email(user, reset):
    return send_email(
        user.email, 'Reset your LICEA password', 'password_reset',
        name=user.name, link=_frontend_link('reset-password', reset.token),
    )


def send_task_reminder_email(user, task):
    return send_email(
        user.email, f'Reminder: {task.title} is due soon', 'task_reminder',
        name=user.name, task=task, course=task.course,
        due_date=task.due_date.strftime('%Y-%m-%d %H:%M'),
    )


def send_grade_notification_email(user, submission):
    task = submission.task
    return send_email(
        user.email, f'Your submission for {task.title} was graded', 'grade_notification',
        name=user.name, task=task, grade=submission.grade, max_grade=task.max_grade,
        feedback=submission.feedback,
    )
