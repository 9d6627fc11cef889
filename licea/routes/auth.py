"""
Authentication Routes

FLOW OVERVIEW
- /api/auth/register [POST]
  • Validate → reject duplicate email (409) and unknown institution (400)
    → create user + 24h verification token → send email.
- /api/auth/verify-email [POST]
  • Consume verification token and mark the email verified.
- /api/auth/resend-verification [POST]
  • Replace verification tokens for an unverified account; generic response.
- /api/auth/login [POST]
  • Lockout / active / password / verification checks → access + refresh tokens.
- /api/auth/refresh [POST]
  • Refresh token → new access token.
- /api/auth/forgot-password [POST]
  • Generic response; active users get a 1h reset token by email.
- /api/auth/reset-password [POST]
  • Reset token + strong password → new hash, lockout cleared, token used.
- /api/auth/logout [POST], /api/auth/me [GET]

Register, login, verification and reset are rate limited per client IP.
"""

import logging

import jwt
from flask import Blueprint, g

from ..models import db, transaction, User, EmailVerification, PasswordReset
from ..models.user import ROLES
from ..utils.api_utils import get_json_body, success_response, auth_limit, password_reset_limit
from ..utils.auth_decorators import token_required
from ..utils.auth_utils import (
    create_user, authenticate_user, generate_tokens, generate_access_token,
    verify_refresh_token, hash_password, get_user_by_reset_token
)
from ..utils.email_service import send_verification_email, send_password_reset_email
from ..utils.error_handlers import APIError
from ..utils.validators import RequestValidator
from .institutions import resolve_institution_id

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__)

RESET_REQUESTED_MESSAGE = 'If the email exists, you will receive password reset instructions'
VERIFICATION_RESENT_MESSAGE = 'If the account exists and is not verified, a new verification email has been sent'


@auth_bp.route('/register', methods=['POST'])
@auth_limit
def register():
    """User registration endpoint"""
    data = get_json_body()
    cleaned = (RequestValidator(data)
               .line('name', 2, 255, label='Name')
               .email()
               .password()
               .choice('role', ROLES, required=False)
               .integer('institution_id', 1, required=False)
               .must_be_true('privacyConsent', 'You must accept the privacy policy')
               .must_be_true('termsAccepted', 'You must accept the terms and conditions')
               .raise_if_invalid())

    if User.query.filter_by(email=cleaned['email']).first():
        raise APIError('Email already registered', 409, 'EMAIL_EXISTS')

    user, verification = create_user(
        cleaned['name'], cleaned['email'], cleaned['password'],
        role=cleaned.get('role', 'student'),
        privacy_consent=True, terms_accepted=True,
        institution_id=resolve_institution_id(cleaned.get('institution_id')),
    )

    if not send_verification_email(user, verification):
        logger.warning(f"Verification email for user {user.id} was not delivered")

    return success_response(
        {'userId': user.id, 'email': user.email, 'name': user.name, 'role': user.role},
        'Registration successful. Please check your email to verify your account.',
        201,
    )


@auth_bp.route('/verify-email', methods=['POST'])
@auth_limit
def verify_email():
    data = get_json_body()
    token = (data.get('token') or '').strip()
    if not token:
        raise APIError('Verification token is required', 400, 'VALIDATION_ERROR')

    verification = EmailVerification.query.filter_by(token=token).first()
    if verification is None or not verification.is_valid():
        raise APIError('Invalid or expired verification token', 400, 'INVALID_TOKEN')

    with transaction():
        user = db.session.get(User, verification.user_id)
        user.email_verified = True
        db.session.delete(verification)

    return success_response(message='Email verified successfully. You can now log in.')


@auth_bp.route('/resend-verification', methods=['POST'])
@auth_limit
def resend_verification():
    data = get_json_body()
    cleaned = RequestValidator(data).email().raise_if_invalid()

    user = User.query.filter_by(email=cleaned['email']).first()
    if user is not None and user.is_active and not user.email_verified:
        with transaction():
            EmailVerification.query.filter_by(user_id=user.id).delete()
            verification = EmailVerification(user.id)
            db.session.add(verification)
        send_verification_email(user, verification)

    return success_response(message=VERIFICATION_RESENT_MESSAGE)


@auth_bp.route('/login', methods=['POST'])
@auth_limit
def login():
    """Authenticate and issue access + refresh tokens"""
    data = get_json_body()
    email = data.get('email')
    password = data.get('password')
    if not email or not password:
        raise APIError('Email and password are required', 400, 'VALIDATION_ERROR')

    user = authenticate_user(email, password)
    logger.info(f"User {user.id} logged in")

    return success_response(
        {'user': user.to_dict(), 'tokens': generate_tokens(user)},
        'Login successful',
    )


@auth_bp.route('/refresh', methods=['POST'])
def refresh():
    data = get_json_body()
    refresh_token = data.get('refreshToken')
    if not refresh_token:
        raise APIError('Refresh token required', 401, 'TOKEN_REQUIRED')

    try:
        payload = verify_refresh_token(refresh_token)
    except jwt.InvalidTokenError:
        raise APIError('Invalid refresh token', 401, 'INVALID_TOKEN')

    user = db.session.get(User, payload['user_id'])
    if user is None or not user.is_active:
        raise APIError('Invalid refresh token', 401, 'INVALID_TOKEN')

    return success_response({'accessToken': generate_access_token(user.id, user.role)})


@auth_bp.route('/forgot-password', methods=['POST'])
@password_reset_limit
def forgot_password():
    data = get_json_body()
    cleaned = RequestValidator(data).email().raise_if_invalid()

    user = User.query.filter_by(email=cleaned['email']).first()
    if user is not None and user.is_active:
        with transaction():
            PasswordReset.query.filter_by(user_id=user.id).delete()
            reset = PasswordReset(user.id)
            db.session.add(reset)
        send_password_reset_email(user, reset)

    return success_response(message=RESET_REQUESTED_MESSAGE)


@auth_bp.route('/reset-password', methods=['POST'])
@auth_limit
def reset_password():
    data = get_json_body()
    token = (data.get('token') or '').strip()
    if not token:
        raise APIError('Reset token is required', 400, 'VALIDATION_ERROR')
    cleaned = RequestValidator(data).password().raise_if_invalid()

    reset, user = get_user_by_reset_token(token)
    if user is None:
        raise APIError('Invalid or expired reset token', 400, 'INVALID_TOKEN')

    with transaction():
        user.password_hash = hash_password(cleaned['password'])
        user.reset_login_attempts()
        reset.mark_used()

    logger.info(f"Password reset for user {user.id}")
    return success_response(message='Password reset successfully')


@auth_bp.route('/logout', methods=['POST'])
@token_required
def logout():
    """Tokens are stateless; the client discards them"""
    return success_response(message='Logout successful')


@auth_bp.route('/me', methods=['GET'])
@token_required
def me():
    return success_response({'user': g.current_user.to_dict()})
