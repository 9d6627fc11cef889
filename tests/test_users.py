from licea.models import User, AuditLog
from licea.utils.auth_utils import verify_password

PASSWORD = 'TestPass123!'


class TestUserAdministration:
    """Test admin user management"""

    def test_list_requires_admin(self, client, student, auth_headers):
        response = client.get('/api/users', headers=auth_headers(student))
        assert response.status_code == 403
        assert response.get_json()['error']['code'] == 'INSUFFICIENT_PERMISSIONS'

    def test_list_filters(self, client, admin, student, instructor, auth_headers):
        response = client.get('/api/users?role=instructor', headers=auth_headers(admin))
        assert [u['email'] for u in response.get_json()['data']] == ['instructor@example.com']

        response = client.get('/api/users?search=ana', headers=auth_headers(admin))
        assert [u['id'] for u in response.get_json()['data']] == [student.id]

    def test_stats_overview(self, client, admin, student, instructor, auth_headers):
        data = client.get('/api/users/stats/overview', headers=auth_headers(admin)).get_json()['data']
        assert data['total'] == 3
        assert data['by_role'] == {'student': 1, 'instructor': 1, 'admin': 1}

    def test_admin_creates_verified_user(self, client, admin, auth_headers):
        response = client.post('/api/users', json={'name': 'Ivan Petrov', 'email': 'ivan@example.com',
                                                   'password': PASSWORD, 'role': 'instructor'},
                               headers=auth_headers(admin))
        assert response.status_code == 201
        user = User.query.filter_by(email='ivan@example.com').one()
        assert user.email_verified is True
        assert user.role == 'instructor'

    def test_toggle_active(self, client, db_session, admin, student, auth_headers):
        response = client.patch(f'/api/users/{student.id}/toggle-active', headers=auth_headers(admin))
        assert response.get_json()['data']['is_active'] is False
        assert client.get('/api/auth/me', headers=auth_headers(student)).status_code == 403

        response = client.patch(f'/api/users/{admin.id}/toggle-active', headers=auth_headers(admin))
        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'SELF_ACTION'

    def test_delete_user(self, client, db_session, admin, student, course, enrollment, auth_headers):
        response = client.delete(f'/api/users/{student.id}', headers=auth_headers(admin))
        assert response.status_code == 200
        assert db_session.get(User, student.id) is None
        assert course.current_students == 0

    def test_delete_instructor_with_courses(self, client, admin, instructor, course, auth_headers):
        response = client.delete(f'/api/users/{instructor.id}', headers=auth_headers(admin))
        assert response.status_code == 409
        assert response.get_json()['error']['code'] == 'HAS_COURSES'

    def test_delete_keeps_audit_trail(self, client, db_session, admin, student, auth_headers):
        AuditLog.create_log(student.id, 'UPDATE', 'user', student.id)
        db_session.commit()

        client.delete(f'/api/users/{student.id}', headers=auth_headers(admin))
        entry = AuditLog.query.filter_by(action='UPDATE', entity_id=student.id).one()
        assert entry.user_id is None


class TestUserSelfService:
    """Test owner access to their profile"""

    def test_owner_reads_and_updates_profile(self, client, student, auth_headers):
        assert client.get(f'/api/users/{student.id}', headers=auth_headers(student)).status_code == 200
        response = client.put(f'/api/users/{student.id}', json={'name': 'Ana Maria'}, headers=auth_headers(student))
        assert response.status_code == 200
        assert response.get_json()['data']['name'] == 'Ana Maria'

    def test_other_user_forbidden(self, client, student, other_student, auth_headers):
        response = client.get(f'/api/users/{student.id}', headers=auth_headers(other_student))
        assert response.status_code == 403
        assert response.get_json()['error']['code'] == 'ACCESS_DENIED'

    def test_owner_cannot_change_role(self, client, student, auth_headers):
        response = client.put(f'/api/users/{student.id}', json={'role': 'admin'}, headers=auth_headers(student))
        assert response.status_code == 403

    def test_email_conflict(self, client, student, other_student, auth_headers):
        response = client.put(f'/api/users/{student.id}', json={'email': 'student2@example.com'},
                              headers=auth_headers(student))
        assert response.status_code == 409

    def test_change_password_requires_current(self, client, db_session, student, auth_headers):
        response = client.patch(f'/api/users/{student.id}/password',
                                json={'currentPassword': 'Wrong123!', 'newPassword': 'Changed123!'},
                                headers=auth_headers(student))
        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'INVALID_PASSWORD'

        response = client.patch(f'/api/users/{student.id}/password',
                                json={'currentPassword': PASSWORD, 'newPassword': 'Changed123!'},
                                headers=auth_headers(student))
        assert response.status_code == 200
        assert verify_password('Changed123!', db_session.get(User, student.id).password_hash)

    def test_admin_resets_password_without_current(self, client, db_session, admin, student, auth_headers):
        response = client.patch(f'/api/users/{student.id}/password', json={'newPassword': 'Changed123!'},
                                headers=auth_headers(admin))
        assert response.status_code == 200

    def test_user_courses(self, client, course, enrollment, student, auth_headers):
        response = client.get(f'/api/users/{student.id}/courses', headers=auth_headers(student))
        assert [c['id'] for c in response.get_json()['data']] == [course.id]
