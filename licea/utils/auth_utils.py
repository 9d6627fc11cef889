"""
Authentication Utilities

FLOW OVERVIEW
- hash_password / verify_password
  • bcrypt with BCRYPT_LOG_ROUNDS rounds.
- generate_access_token / generate_refresh_token / generate_tokens
  • PyJWT HS256; access tokens carry {user_id, role, type: access}, refresh tokens
    {user_id, type: refresh} signed with a separate secret.
- decode_access_token / verify_refresh_token
  • Raise jwt errors for expired, malformed or wrong-type tokens.
- create_user(...)
  • Create the user and its 24h email verification token in one transaction.
- authenticate_user(email, password)
  • Login policy: lockout window, inactive accounts, failed attempt counter, email verification.
"""

import logging
from datetime import datetime, timedelta

import bcrypt
import jwt
from flask import current_app

from ..models import db, transaction, User, EmailVerification, PasswordReset
from .error_handlers import APIError

logger = logging.getLogger(__name__)


def hash_password(password):
    """Hash a password using bcrypt"""
    rounds = current_app.config.get('BCRYPT_LOG_ROUNDS', 12)
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=rounds)).decode('utf-8')


def verify_password(password, password_hash):
    """Verify a password against its bcrypt hash"""
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def _encode(payload, secret, lifetime_seconds):
    now = datetime.utcnow()
    payload = dict(payload, iat=now, exp=now + timedelta(seconds=lifetime_seconds))
    return jwt.encode(payload, secret, algorithm='HS256')


def generate_access_token(user_id, role):
    """Short lived token sent as Authorization: Bearer"""
    return _encode(
        {'user_id': user_id, 'role': role, 'type': 'access'},
        current_app.config['JWT_SECRET_KEY'],
        current_app.config.get('JWT_ACCESS_TOKEN_EXPIRES', 900),
    )


def generate_refresh_token(user_id):
    return _encode(
        {'user_id': user_id, 'type': 'refresh'},
        current_app.config['JWT_REFRESH_SECRET_KEY'],
        current_app.config.get('JWT_REFRESH_TOKEN_EXPIRES', 604800),
    )


def generate_tokens(user):
    return {
        'accessToken': generate_access_token(user.id, user.role),
        'refreshToken': generate_refresh_token(user.id),
    }


def _decode(token, secret, expected_type):
    payload = jwt.decode(token, secret, algorithms=['HS256'])
    if payload.get('type') != expected_type or 'user_id' not in payload:
        raise jwt.InvalidTokenError(f'Expected {expected_type} token')
    return payload


def decode_access_token(token):
    """Return the access token payload or raise jwt.ExpiredSignatureError / jwt.InvalidTokenError"""
    return _decode(token, current_app.config['JWT_SECRET_KEY'], 'access')


def verify_refresh_token(token):
    return _decode(token, current_app.config['JWT_REFRESH_SECRET_KEY'], 'refresh')


def create_user(name, email, password, role='student', privacy_consent=False,
                terms_accepted=False, email_verified=False, institution_id=None):
    """Create a new user with an email verification token"""
    with transaction():
        user = User(
            name=name,
            email=email,
            password_hash=hash_password(password),
            role=role,
            privacy_consent=privacy_consent,
            terms_accepted=terms_accepted,
            email_verified=email_verified,
            institution_id=institution_id,
        )
        db.session.add(user)
        db.session.flush()

        verification = None
        if not email_verified:
            verification = EmailVerification(user.id)
            db.session.add(verification)

    logger.info(f"Created {role} account {user.id} for {user.email}")
    return user, verification


def authenticate_user(email, password):
    """
    Apply the login policy and return the authenticated user.

    Raises APIError:
        401 INVALID_CREDENTIALS for unknown email or wrong password,
        423 ACCOUNT_LOCKED while a lockout window is active,
        403 ACCOUNT_INACTIVE for deactivated accounts,
        403 EMAIL_NOT_VERIFIED when the password is right but the email is unverified.
    """
    user = User.query.filter_by(email=(email or '').strip().lower()).first()
    if user is None:
        raise APIError('Invalid credentials', 401, 'INVALID_CREDENTIALS')

    if user.is_locked():
        minutes = user.lock_minutes_remaining()
        raise APIError(f'Account locked. Try again in {minutes} minutes', 423, 'ACCOUNT_LOCKED',
                       details={'minutes_remaining': minutes})

    if not user.is_active:
        raise APIError('Account is inactive', 403, 'ACCOUNT_INACTIVE')

    if not verify_password(password, user.password_hash):
        user.register_failed_login(
            current_app.config.get('MAX_LOGIN_ATTEMPTS', 5),
            current_app.config.get('LOCKOUT_DURATION', 15),
        )
        db.session.commit()
        logger.warning(f"Failed login for user {user.id} ({user.failed_login_attempts} attempts)")
        raise APIError('Invalid credentials', 401, 'INVALID_CREDENTIALS')

    if not user.email_verified:
        raise APIError('Please verify your email before logging in', 403, 'EMAIL_NOT_VERIFIED')

    user.reset_login_attempts()
    user.update_last_login()
    db.session.commit()
    return user


def get_user_by_reset_token(token):
    """Return (reset, user) for a usable password reset token, else (None, None)"""
    reset = PasswordReset.query.filter_by(token=token).first()
    if reset is None or not reset.is_valid():
        return None, None
    user = db.session.get(User, reset.user_id)
    if user is None or not user.is_active:
        return None, None
    return reset, user
