"""
Test configuration and shared fixtures for LICEA tests.

This file contains:
- Centralized test configuration
- Shared fixtures used across multiple test files (users per role, a course,
  a published task, an enrollment)
- Common test utilities (auth headers)
"""

from datetime import datetime, timedelta

import pytest

from licea import create_app
from licea.models import db, User, Course, Enrollment, Task
from licea.utils.auth_utils import hash_password, generate_access_token
from licea.utils.ollama_client import ollama_client


PASSWORD = 'TestPass123!'

# Centralized test configuration
TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'SECRET_KEY': 'test-secret-key',
    'JWT_SECRET_KEY': 'test-jwt-secret-key',
    'JWT_REFRESH_SECRET_KEY': 'test-jwt-refresh-secret-key',
    'JWT_ACCESS_TOKEN_EXPIRES': 900,
    'JWT_REFRESH_TOKEN_EXPIRES': 604800,
    'BCRYPT_LOG_ROUNDS': 4,
    'MAX_LOGIN_ATTEMPTS': 5,
    'LOCKOUT_DURATION': 15,
    'MAIL_SERVER': 'localhost',
    'MAIL_PORT': 587,
    'MAIL_USE_TLS': False,
    'MAIL_USE_SSL': False,
    'MAIL_USERNAME': 'test@example.com',
    'MAIL_PASSWORD': 'test-password',
    'MAIL_DEFAULT_SENDER': 'test@example.com',
    'FRONTEND_URL': 'http://localhost:3000',
    'CORS_ORIGINS': ['http://localhost:3000'],
    'MAX_CONTENT_LENGTH': 10 * 1024 * 1024,
    'ERROR_LOG_FILE': None,
    'LOG_LEVEL': 'WARNING',
    'RATE_LIMIT_ENABLED': False,
    'OLLAMA_URL': 'http://ollama.test:11434',
    'OLLAMA_MODEL': 'llama2',
    'OLLAMA_TIMEOUT': 5,
}


@pytest.fixture
def app(tmp_path):
    """Create and configure a new app instance for each test."""
    config = dict(TEST_CONFIG, UPLOAD_FOLDER=str(tmp_path / 'uploads'))
    app = create_app(config)
    return app


@pytest.fixture
def client(app):
    """Create a test client for the app."""
    return app.test_client()


@pytest.fixture
def app_context(app):
    """Create an application context for database operations."""
    with app.app_context():
        yield


@pytest.fixture
def db_session(app_context):
    """Create a database session and clean up after tests."""
    db.create_all()
    yield db.session
    db.session.remove()
    db.drop_all()


@pytest.fixture(autouse=True)
def reset_ollama_cache():
    """The Ollama client is a module global; forget availability between tests."""
    ollama_client.reset_cache()
    yield
    ollama_client.reset_cache()


def make_user(session, name, email, role='student', verified=True, active=True, password=PASSWORD):
    user = User(
        name=name,
        email=email,
        password_hash=hash_password(password),
        role=role,
        email_verified=verified,
        is_active=active,
        privacy_consent=True,
        terms_accepted=True,
    )
    session.add(user)
    session.commit()
    return user


@pytest.fixture
def user_factory(db_session):
    """Return a function creating committed users."""
    def _make(name, email, role='student', **kwargs):
        return make_user(db_session, name, email, role, **kwargs)
    return _make


@pytest.fixture
def student(db_session):
    return make_user(db_session, 'Ana Student', 'student@example.com', 'student')


@pytest.fixture
def other_student(db_session):
    return make_user(db_session, 'Bruno Student', 'student2@example.com', 'student')


@pytest.fixture
def instructor(db_session):
    return make_user(db_session, 'Irene Instructor', 'instructor@example.com', 'instructor')


@pytest.fixture
def other_instructor(db_session):
    return make_user(db_session, 'Oscar Instructor', 'instructor2@example.com', 'instructor')


@pytest.fixture
def admin(db_session):
    return make_user(db_session, 'Ada Admin', 'admin@example.com', 'admin')


@pytest.fixture
def course(db_session, instructor):
    """Active course taught by `instructor`."""
    course = Course(
        name='Intro to Programming',
        code='CS101',
        description='Programming fundamentals with Python',
        instructor_id=instructor.id,
        category='programming',
        level='beginner',
        credits=3,
        max_students=30,
        current_students=0,
        is_active=True,
    )
    db_session.add(course)
    db_session.commit()
    return course


@pytest.fixture
def enrollment(db_session, course, student):
    """`student` actively enrolled in `course`."""
    enrollment = Enrollment(student_id=student.id, course_id=course.id, status='active')
    course.current_students = 1
    db_session.add(enrollment)
    db_session.commit()
    return enrollment


@pytest.fixture
def task(db_session, course):
    """Published task due in a week."""
    task = Task(
        title='Homework 1',
        description='Solve the exercises of chapter one',
        course_id=course.id,
        due_date=datetime.utcnow() + timedelta(days=7),
        max_grade=100,
        submission_type='both',
        is_published=True,
        late_submission_allowed=True,
        late_penalty=0,
    )
    db_session.add(task)
    db_session.commit()
    return task


@pytest.fixture
def auth_headers(app_context):
    """Return a function building Authorization headers for a user."""
    def _headers(user):
        return {'Authorization': f'Bearer {generate_access_token(user.id, user.role)}'}
    return _headers
