"""
Tests for the central error handler
"""

import json

import jwt
import pytest
import requests
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import RequestEntityTooLarge

from licea.utils.error_handlers import APIError, UploadError, classify_error
from licea.utils.validators import ValidationError


class TestClassifyError:
    """Test exception to (status, code, message) mapping"""

    def test_api_error(self):
        assert classify_error(APIError('Course not found', 404, 'COURSE_NOT_FOUND')) == \
            (404, 'COURSE_NOT_FOUND', 'Course not found')

    def test_api_error_without_code_uses_status_name(self):
        assert classify_error(APIError('Nope', 403))[1] == 'FORBIDDEN'

    def test_upload_error(self):
        assert classify_error(UploadError('File type not allowed'))[:2] == (400, 'FILE_UPLOAD_ERROR')

    def test_validation_error(self):
        assert classify_error(ValidationError())[:2] == (400, 'VALIDATION_ERROR')

    @pytest.mark.parametrize('orig,expected', [
        ('UNIQUE constraint failed: users.email', (409, 'DUPLICATE_ENTRY')),
        ('FOREIGN KEY constraint failed', (400, 'INVALID_REFERENCE')),
        ('NOT NULL constraint failed: tasks.title', (400, 'INTEGRITY_ERROR')),
    ])
    def test_integrity_errors(self, orig, expected):
        error = IntegrityError('INSERT ...', {}, Exception(orig))
        assert classify_error(error)[:2] == expected

    def test_jwt_errors(self):
        assert classify_error(jwt.ExpiredSignatureError())[:2] == (401, 'TOKEN_EXPIRED')
        assert classify_error(jwt.DecodeError())[:2] == (401, 'INVALID_TOKEN')

    def test_request_too_large(self):
        assert classify_error(RequestEntityTooLarge())[:2] == (400, 'FILE_TOO_LARGE')

    def test_upstream_connection_error(self):
        assert classify_error(requests.exceptions.ConnectionError())[:2] == (503, 'SERVICE_UNAVAILABLE')

    def test_unknown_error(self):
        assert classify_error(RuntimeError('boom')) == (500, 'INTERNAL_ERROR', 'Internal server error')


class TestErrorResponses:
    """Test the JSON error envelope"""

    def test_unknown_route(self, client):
        response = client.get('/api/does-not-exist')
        assert response.status_code == 404
        assert response.get_json() == {
            'success': False,
            'error': {'message': 'Route /api/does-not-exist not found', 'code': 'NOT_FOUND'},
        }

    def test_method_not_allowed(self, client):
        response = client.delete('/health')
        assert response.status_code == 405
        assert response.get_json()['error']['code'] == 'METHOD_NOT_ALLOWED'

    def test_validation_details(self, client, db_session):
        response = client.post('/api/auth/register', json={'email': 'bad'})
        assert response.status_code == 400
        body = response.get_json()
        assert body['error']['code'] == 'VALIDATION_ERROR'
        assert 'email' in [detail['field'] for detail in body['error']['details']]

    def test_invalid_json(self, client, db_session):
        response = client.post('/api/auth/login', data='{not json', content_type='application/json')
        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'INVALID_JSON'

    def test_unhandled_error_is_hidden(self, app, client):
        @app.route('/boom')
        def boom():
            raise RuntimeError('secret internals')

        response = client.get('/boom')
        assert response.status_code == 500
        assert response.get_json()['error'] == {'message': 'Something went wrong', 'code': 'INTERNAL_ERROR'}

    def test_errors_are_written_to_log_file(self, app, client, tmp_path):
        log_file = tmp_path / 'logs' / 'errors.log'
        app.config['ERROR_LOG_FILE'] = str(log_file)

        client.get('/api/missing?x=1')

        entry = json.loads(log_file.read_text().strip().splitlines()[-1])
        assert entry['status'] == 404
        assert entry['code'] == 'NOT_FOUND'
        assert entry['method'] == 'GET'
        assert entry['url'] == '/api/missing?x=1'
        assert entry['user_id'] is None
