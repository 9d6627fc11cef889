"""
Input Validation Utilities

FLOW OVERVIEW
- validate_email(email)
  • RFC-like syntax checks; returns sanitized lowercased value.
- validate_password_strength(password)
  • Length ≥ 8 with uppercase, lowercase, digit and one of @$!%*?&.
- validate_name / validate_text_length / validate_choice / validate_int_range
  / validate_number_range / validate_iso_datetime / validate_time
  • Field level checks returning ValidationResult with the normalized value.
  • Numbers must be finite; single-line text (titles, names, codes) rejects control characters.
- RequestValidator
  • Collects field errors for a JSON body and raises ValidationError with all of them.

Routes call RequestValidator; the central error handler turns ValidationError
into a 400 VALIDATION_ERROR response.
"""

import math
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence
from dataclasses import dataclass, field


@dataclass
class ValidationResult:
    """Result of validation operation"""
    is_valid: bool
    error_message: Optional[str] = None
    sanitized_value: Any = None


class ValidationError(Exception):
    """Raised when request data fails validation"""

    def __init__(self, message='Validation failed', errors: Optional[List[Dict[str, str]]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or []


class InputValidator:
    """Field validators shared by every resource"""

    EMAIL_PATTERN = re.compile(
        r'^[a-zA-Z0-9.!#$%&\'*+/=?^_`{|}~-]+@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)+$'
    )

    TIME_PATTERN = re.compile(r'^([01]\d|2[0-3]):([0-5]\d):([0-5]\d)$')

    CONTROL_CHARS = re.compile(r'[\x00-\x1f\x7f]')

    PASSWORD_SPECIALS = '@$!%*?&'

    @classmethod
    def validate_email(cls, email: str) -> ValidationResult:
        """
        Validate email address

        Args:
            email: Email address to validate

        Returns:
            ValidationResult with validation status and sanitized value
        """
        if not email or not isinstance(email, str):
            return ValidationResult(False, "Email must be a non-empty string")

        email = email.strip()
        if email == "":
            return ValidationResult(False, "Email cannot be empty")

        if len(email) > 254:
            return ValidationResult(False, "Email address too long (max 254 characters)")

        if not cls.EMAIL_PATTERN.match(email):
            return ValidationResult(False, "Invalid email format")

        local_part, domain = email.split('@')
        if len(local_part) > 64:
            return ValidationResult(False, "Email local part too long (max 64 characters)")

        if local_part.startswith('.') or local_part.endswith('.') or '..' in local_part:
            return ValidationResult(False, "Invalid email format")

        return ValidationResult(True, sanitized_value=email.lower())

    @classmethod
    def validate_password_strength(cls, password: str) -> ValidationResult:
        """
        Validate password strength requirements

        Args:
            password: Password to validate

        Returns:
            ValidationResult with validation status
        """
        if not password or not isinstance(password, str):
            return ValidationResult(False, "Password must be a non-empty string")

        if len(password) < 8:
            return ValidationResult(False, "Password must be at least 8 characters long")

        if len(password) > 128:
            return ValidationResult(False, "Password too long (max 128 characters)")

        has_upper = any(c.isupper() for c in password)
        has_lower = any(c.islower() for c in password)
        has_digit = any(c.isdigit() for c in password)
        has_special = any(c in cls.PASSWORD_SPECIALS for c in password)

        if not (has_upper and has_lower and has_digit and has_special):
            return ValidationResult(
                False,
                "Password must contain uppercase, lowercase, number and special character (@$!%*?&)"
            )

        return ValidationResult(True, sanitized_value=password)

    @classmethod
    def validate_text_length(cls, value, min_length=0, max_length=None, label='Value',
                             single_line=False) -> ValidationResult:
        if value is None or not isinstance(value, str):
            return ValidationResult(False, f"{label} is required")
        value = cls.sanitize_input(value, max_length=max_length + 1 if max_length else 100000)
        if single_line and cls.CONTROL_CHARS.search(value):
            return ValidationResult(False, f"{label} must be a single line of text")
        if len(value) < min_length:
            return ValidationResult(False, f"{label} must be at least {min_length} characters")
        if max_length is not None and len(value) > max_length:
            return ValidationResult(False, f"{label} must be at most {max_length} characters")
        return ValidationResult(True, sanitized_value=value)

    @classmethod
    def validate_name(cls, name) -> ValidationResult:
        return cls.validate_text_length(name, 2, 255, 'Name', single_line=True)

    @classmethod
    def validate_choice(cls, value, choices: Sequence[str], label='Value') -> ValidationResult:
        if value not in choices:
            return ValidationResult(False, f"{label} must be one of: {', '.join(choices)}")
        return ValidationResult(True, sanitized_value=value)

    @classmethod
    def validate_int_range(cls, value, min_value=None, max_value=None, label='Value') -> ValidationResult:
        if isinstance(value, bool):
            return ValidationResult(False, f"{label} must be an integer")
        try:
            number = int(value)
        except (TypeError, ValueError, OverflowError):
            return ValidationResult(False, f"{label} must be an integer")
        if isinstance(value, float) and not value.is_integer():
            return ValidationResult(False, f"{label} must be an integer")
        return cls._check_range(number, min_value, max_value, label)

    @classmethod
    def validate_number_range(cls, value, min_value=None, max_value=None, label='Value') -> ValidationResult:
        if isinstance(value, bool):
            return ValidationResult(False, f"{label} must be a number")
        try:
            number = float(value)
        except (TypeError, ValueError):
            return ValidationResult(False, f"{label} must be a number")
        if not math.isfinite(number):
            return ValidationResult(False, f"{label} must be a finite number")
        return cls._check_range(number, min_value, max_value, label)

    @classmethod
    def _check_range(cls, number, min_value, max_value, label):
        if min_value is not None and number < min_value:
            return ValidationResult(False, f"{label} must be at least {min_value}")
        if max_value is not None and number > max_value:
            return ValidationResult(False, f"{label} must be at most {max_value}")
        return ValidationResult(True, sanitized_value=number)

    @classmethod
    def validate_iso_datetime(cls, value, label='Date') -> ValidationResult:
        """Parse an ISO 8601 date or datetime into a naive UTC datetime"""
        if not value or not isinstance(value, str):
            return ValidationResult(False, f"{label} must be a valid ISO 8601 date")
        text = value.strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return ValidationResult(False, f"{label} must be a valid ISO 8601 date")
        if parsed.tzinfo is not None:
            parsed = (parsed - parsed.utcoffset()).replace(tzinfo=None)
        return ValidationResult(True, sanitized_value=parsed)

    @classmethod
    def validate_iso_date(cls, value, label='Date') -> ValidationResult:
        result = cls.validate_iso_datetime(value, label)
        if not result.is_valid:
            return result
        return ValidationResult(True, sanitized_value=result.sanitized_value.date())

    @classmethod
    def validate_time(cls, value, label='Time') -> ValidationResult:
        """HH:MM:SS 24h clock"""
        if not isinstance(value, str) or not cls.TIME_PATTERN.match(value):
            return ValidationResult(False, f"{label} must be in HH:MM:SS format")
        return ValidationResult(True, sanitized_value=value)

    @classmethod
    def sanitize_input(cls, input_string: str, max_length: int = 1000) -> str:
        """
        Trim, bound length, drop null bytes and normalize line endings

        Args:
            input_string: Input string to sanitize
            max_length: Maximum allowed length

        Returns:
            Sanitized string
        """
        if not input_string:
            return ""

        sanitized = str(input_string).strip()

        if len(sanitized) > max_length:
            sanitized = sanitized[:max_length]

        sanitized = sanitized.replace('\x00', '')
        sanitized = sanitized.replace('\r\n', '\n').replace('\r', '\n')

        return sanitized


@dataclass
class RequestValidator:
    """
    Accumulates field errors over a request body.

    Each check stores the normalized value in `cleaned` when it passes and
    records `{field, message}` when it fails; `raise_if_invalid` raises a
    single ValidationError carrying every failure.
    """
    data: Dict[str, Any]
    partial: bool = False
    cleaned: Dict[str, Any] = field(default_factory=dict)
    errors: List[Dict[str, str]] = field(default_factory=list)

    def _present(self, name):
        value = self.data.get(name)
        return value is not None and value != ''

    def _check(self, name, required, validate):
        if not self._present(name):
            if required and not self.partial:
                self.errors.append({'field': name, 'message': f'{name} is required'})
            return self
        result = validate(self.data[name])
        if result.is_valid:
            self.cleaned[name] = result.sanitized_value
        else:
            self.errors.append({'field': name, 'message': result.error_message})
        return self

    def email(self, name='email', required=True):
        return self._check(name, required, InputValidator.validate_email)

    def password(self, name='password', required=True):
        return self._check(name, required, InputValidator.validate_password_strength)

    def text(self, name, min_length=0, max_length=None, required=True, label=None, single_line=False):
        return self._check(name, required, lambda v: InputValidator.validate_text_length(
            v, min_length, max_length, label or name, single_line))

    def line(self, name, min_length=0, max_length=None, required=True, label=None):
        """Text without line breaks or other control characters (titles, names, codes)"""
        return self.text(name, min_length, max_length, required, label, single_line=True)

    def choice(self, name, choices, required=True):
        return self._check(name, required, lambda v: InputValidator.validate_choice(v, choices, name))

    def integer(self, name, min_value=None, max_value=None, required=True):
        return self._check(name, required, lambda v: InputValidator.validate_int_range(
            v, min_value, max_value, name))

    def number(self, name, min_value=None, max_value=None, required=True):
        return self._check(name, required, lambda v: InputValidator.validate_number_range(
            v, min_value, max_value, name))

    def datetime(self, name, required=True):
        return self._check(name, required, lambda v: InputValidator.validate_iso_datetime(v, name))

    def date(self, name, required=True):
        return self._check(name, required, lambda v: InputValidator.validate_iso_date(v, name))

    def time(self, name, required=True):
        return self._check(name, required, lambda v: InputValidator.validate_time(v, name))

    def boolean(self, name, required=False):
        def _validate(value):
            if isinstance(value, bool):
                return ValidationResult(True, sanitized_value=value)
            if isinstance(value, str) and value.lower() in ('true', 'false'):
                return ValidationResult(True, sanitized_value=value.lower() == 'true')
            return ValidationResult(False, f'{name} must be a boolean')
        return self._check(name, required, _validate)

    def must_be_true(self, name, message):
        if self.data.get(name) is not True:
            self.errors.append({'field': name, 'message': message})
        return self

    def add_error(self, name, message):
        self.errors.append({'field': name, 'message': message})
        return self

    def raise_if_invalid(self):
        if self.errors:
            raise ValidationError('Validation failed', self.errors)
        return self.cleaned


# Convenience functions for common validations
def validate_email(email: str) -> ValidationResult:
    """Validate email address"""
    return InputValidator.validate_email(email)


def validate_password_strength(password: str) -> ValidationResult:
    """Validate password strength"""
    return InputValidator.validate_password_strength(password)


def validate_time(value: str) -> ValidationResult:
    return InputValidator.validate_time(value)


def sanitize_input(input_string: str, max_length: int = 1000) -> str:
    """Sanitize user input"""
    return InputValidator.sanitize_input(input_string, max_length)
