"""
User Models

This module contains the User, EmailVerification and PasswordReset models.
"""

import math
from datetime import datetime, timedelta
from .database import db
from .utils import generate_verification_token, generate_password_reset_token, isoformat

ROLES = ('student', 'instructor', 'admin')


class User(db.Model):
    """User account for students, instructors and administrators"""
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), nullable=False, default='student')
    institution_id = db.Column(db.Integer, db.ForeignKey('institutions.id'), nullable=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    email_verified = db.Column(db.Boolean, nullable=False, default=False)
    privacy_consent = db.Column(db.Boolean, nullable=False, default=False)
    terms_accepted = db.Column(db.Boolean, nullable=False, default=False)
    failed_login_attempts = db.Column(db.Integer, nullable=False, default=0)
    locked_until = db.Column(db.DateTime)
    last_login = db.Column(db.DateTime)
    registration_date = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    verifications = db.relationship('EmailVerification', backref='user', lazy=True,
                                    cascade='all, delete-orphan')
    password_resets = db.relationship('PasswordReset', backref='user', lazy=True,
                                      cascade='all, delete-orphan')
    enrollments = db.relationship('Enrollment', backref='student', lazy=True,
                                  cascade='all, delete-orphan')
    submissions = db.relationship('Submission', backref='student', lazy=True,
                                  cascade='all, delete-orphan')
    notifications = db.relationship('Notification', backref='user', lazy=True,
                                    cascade='all, delete-orphan')
    schedule_entries = db.relationship('Schedule', backref='user', lazy=True,
                                       cascade='all, delete-orphan')
    ai_conversations = db.relationship('AIConversation', backref='user', lazy=True,
                                       cascade='all, delete-orphan')

    def __init__(self, name, email, password_hash, role='student', **kwargs):
        """Initialize a new user, validating the email and role"""
        # Import validators here to avoid circular imports
        from ..utils.validators import validate_email

        email_validation = validate_email(email)
        if not email_validation.is_valid:
            raise ValueError(email_validation.error_message)
        if role not in ROLES:
            raise ValueError(f"Role must be one of: {', '.join(ROLES)}")

        super().__init__(**kwargs)
        self.name = name.strip()
        self.email = email_validation.sanitized_value
        self.password_hash = password_hash
        self.role = role
        if self.is_active is None:
            self.is_active = True
        if self.email_verified is None:
            self.email_verified = False
        self.failed_login_attempts = 0

    def __repr__(self):
        return f'<User {self.id}: {self.email} ({self.role})>'

    def is_locked(self):
        """Check if the account is inside a lockout window"""
        return self.locked_until is not None and self.locked_until > datetime.utcnow()

    def lock_minutes_remaining(self):
        if not self.is_locked():
            return 0
        return math.ceil((self.locked_until - datetime.utcnow()).total_seconds() / 60)

    def register_failed_login(self, max_attempts, lockout_minutes):
        """Count a failed login, locking the account once the limit is reached"""
        self.failed_login_attempts = (self.failed_login_attempts or 0) + 1
        if self.failed_login_attempts >= max_attempts:
            self.locked_until = datetime.utcnow() + timedelta(minutes=lockout_minutes)

    def reset_login_attempts(self):
        self.failed_login_attempts = 0
        self.locked_until = None

    def update_last_login(self):
        """Update the last login timestamp"""
        self.last_login = datetime.utcnow()

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'role': self.role,
            'institution_id': self.institution_id,
            'institution_name': self.institution.name if self.institution else None,
            'institution_code': self.institution.code if self.institution else None,
            'is_active': self.is_active,
            'email_verified': self.email_verified,
            'registration_date': isoformat(self.registration_date),
            'last_login': isoformat(self.last_login),
        }

    def to_summary(self):
        """Minimal representation embedded in other resources"""
        return {'id': self.id, 'name': self.name, 'email': self.email}


class EmailVerification(db.Model):
    """Email verification token sent after registration"""
    __tablename__ = 'email_verifications'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    token = db.Column(db.String(64), unique=True, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __init__(self, user_id, expires_in_hours=24):
        self.user_id = user_id
        self.token = generate_verification_token()
        self.expires_at = datetime.utcnow() + timedelta(hours=expires_in_hours)

    def is_valid(self):
        """Check if token has not expired"""
        return datetime.utcnow() < self.expires_at


class PasswordReset(db.Model):
    """Password reset token for password recovery"""
    __tablename__ = 'password_resets'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    token = db.Column(db.String(64), unique=True, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    used = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __init__(self, user_id, expires_in_hours=1):
        self.user_id = user_id
        self.token = generate_password_reset_token()
        self.expires_at = datetime.utcnow() + timedelta(hours=expires_in_hours)
        self.used = False

    def is_valid(self):
        """Check if token is unused and not expired"""
        return not self.used and datetime.utcnow() < self.expires_at

    def mark_used(self):
        self.used = True
