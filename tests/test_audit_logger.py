import pytest

from licea.models import AuditLog
from licea.utils.audit_logger import extract_entity_info, redact

PASSWORD = 'TestPass123!'


class TestExtractEntityInfo:
    """Test action / entity derivation from the route shape"""

    @pytest.mark.parametrize('method,path,view_args,expected', [
        ('POST', '/api/courses', {}, ('CREATE', 'course', None)),
        ('PUT', '/api/courses/7', {'id': 7}, ('UPDATE', 'course', 7)),
        ('DELETE', '/api/tasks/3', {'id': 3}, ('DELETE', 'task', 3)),
        ('GET', '/api/users', {}, ('LIST', 'user', None)),
        ('GET', '/api/users/4', {'id': 4}, ('READ', 'user', 4)),
        ('POST', '/api/auth/login', {}, ('LOGIN', 'user', None)),
        ('POST', '/api/auth/register', {}, ('REGISTER', 'user', None)),
        ('PATCH', '/api/submissions/9/grade', {'id': 9}, ('GRADE', 'submission', 9)),
        ('PATCH', '/api/submissions/9/submit', {'id': 9}, ('SUBMIT', 'submission', 9)),
        ('POST', '/api/courses/5/enroll', {'id': 5}, ('ENROLL', 'course', 5)),
        ('POST', '/api/courses/enroll-by-code', {}, ('ENROLL', 'course', None)),
        ('POST', '/api/groups/join-by-code', {}, ('JOIN', 'group', None)),
        ('POST', '/api/schedules', {}, ('CREATE', 'schedules', None)),
    ])
    def test_route_shapes(self, method, path, view_args, expected):
        info = extract_entity_info(method, path, view_args)
        assert (info['action'], info['entity_type'], info['entity_id']) == expected

    def test_body_id_fallback(self):
        info = extract_entity_info('POST', '/api/tasks', {}, {'id': '12'})
        assert info['entity_id'] == 12

    def test_unaudited_paths(self):
        assert extract_entity_info('GET', '/health') is None
        assert extract_entity_info('POST', '/uploads/file.pdf') is None
        assert extract_entity_info('POST', '/metrics') is None

    def test_redact(self):
        assert redact({'email': 'a@b.c', 'password': 'x', 'newPassword': 'y', 'refreshToken': 'z'}) == {
            'email': 'a@b.c', 'password': '[REDACTED]', 'newPassword': '[REDACTED]', 'refreshToken': '[REDACTED]',
        }


class TestAuditTrail:
    """Test that mutating API calls are persisted"""

    def test_create_course_is_audited(self, client, instructor, auth_headers):
        response = client.post('/api/courses', json={'name': 'Audited Course', 'code': 'AUD1'},
                               headers=auth_headers(instructor))
        course_id = response.get_json()['data']['id']

        entry = AuditLog.query.filter_by(action='CREATE').one()
        assert entry.entity_type == 'course'
        assert entry.entity_id == course_id
        assert entry.user_id == instructor.id
        assert entry.status_code == 201
        assert entry.to_dict()['new_values']['code'] == 'AUD1'

    def test_login_is_audited_without_body(self, client, student):
        client.post('/api/auth/login', json={'email': 'student@example.com', 'password': PASSWORD})
        entry = AuditLog.query.filter_by(action='LOGIN').one()
        assert entry.user_id == student.id
        assert entry.entity_id == student.id
        assert entry.new_values is None

    def test_failed_request_is_audited_without_side_effects(self, client, course, other_instructor, auth_headers):
        response = client.put(f'/api/courses/{course.id}', json={'name': 'Hijack'},
                              headers=auth_headers(other_instructor))
        assert response.status_code == 403
        entry = AuditLog.query.filter_by(action='UPDATE').one()
        assert entry.status_code == 403
        assert entry.entity_id == course.id

    def test_reads_are_not_audited(self, client, student, course, auth_headers):
        client.get('/api/courses', headers=auth_headers(student))
        client.get(f'/api/courses/{course.id}', headers=auth_headers(student))
        assert AuditLog.query.count() == 0


class TestAuditLogRoute:
    """Test the admin audit log listing"""

    def test_admin_lists_and_filters(self, client, db_session, admin, student, auth_headers):
        AuditLog.create_log(student.id, 'LOGIN', 'user', student.id)
        AuditLog.create_log(admin.id, 'DELETE', 'course', 3)
        db_session.commit()

        response = client.get('/api/audit-logs?action=login', headers=auth_headers(admin))
        body = response.get_json()
        assert response.status_code == 200
        assert [log['user_email'] for log in body['data']] == ['student@example.com']
        assert body['pagination']['total'] == 1

        response = client.get(f'/api/audit-logs?user_id={admin.id}', headers=auth_headers(admin))
        assert [log['action'] for log in response.get_json()['data']] == ['DELETE']

    def test_invalid_date_filter(self, client, admin, auth_headers):
        response = client.get('/api/audit-logs?start_date=yesterday', headers=auth_headers(admin))
        assert response.status_code == 400

    def test_non_admin_forbidden(self, client, instructor, auth_headers):
        assert client.get('/api/audit-logs', headers=auth_headers(instructor)).status_code == 403
