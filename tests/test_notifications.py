import pytest

from licea.models import Notification, create_notification


@pytest.fixture
def notifications(db_session, student, other_student):
    items = [
        create_notification(student.id, 'task_assigned', 'New task', 'Homework 1 published'),
        create_notification(student.id, 'announcement', 'Class moved', 'Room 204 today'),
        create_notification(other_student.id, 'announcement', 'Other', 'Not yours'),
    ]
    db_session.commit()
    return items


class TestNotificationModel:
    """Test notification helpers"""

    def test_formatted_title_has_type_marker(self, db_session, student):
        notification = create_notification(student.id, 'task_graded', 'Graded', 'You got 90')
        assert notification.formatted_title.endswith('Graded')
        assert notification.formatted_title != 'Graded'

    def test_unknown_type_rejected(self, db_session, student):
        with pytest.raises(ValueError):
            create_notification(student.id, 'spam', 'x', 'y')


class TestNotificationRoutes:
    """Test notification endpoints"""

    def test_list_returns_own_with_unread_count(self, client, notifications, student, auth_headers):
        response = client.get('/api/notifications', headers=auth_headers(student))
        body = response.get_json()
        assert len(body['data']) == 2
        assert body['unread_count'] == 2
        assert all('formatted_title' in n for n in body['data'])

    def test_mark_read_and_unread_only(self, client, db_session, notifications, student, auth_headers):
        first = notifications[0]
        response = client.patch(f'/api/notifications/{first.id}/read', headers=auth_headers(student))
        assert response.status_code == 200
        assert response.get_json()['data']['is_read'] is True

        body = client.get('/api/notifications?unread_only=true', headers=auth_headers(student)).get_json()
        assert [n['id'] for n in body['data']] == [notifications[1].id]
        assert body['unread_count'] == 1

    def test_cannot_touch_others_notifications(self, client, notifications, student, auth_headers):
        foreign = notifications[2]
        assert client.patch(f'/api/notifications/{foreign.id}/read', headers=auth_headers(student)).status_code == 404
        assert client.delete(f'/api/notifications/{foreign.id}', headers=auth_headers(student)).status_code == 404

    def test_mark_all_read(self, client, db_session, notifications, student, other_student, auth_headers):
        response = client.patch('/api/notifications/mark-all-read', headers=auth_headers(student))
        assert response.get_json()['data']['updated'] == 2
        assert Notification.unread_count(student.id) == 0
        assert Notification.unread_count(other_student.id) == 1

    def test_delete(self, client, db_session, notifications, student, auth_headers):
        target = notifications[0]
        response = client.delete(f'/api/notifications/{target.id}', headers=auth_headers(student))
        assert response.status_code == 200
        assert db_session.get(Notification, target.id) is None

    def test_announce_to_course(self, client, course, enrollment, student, instructor, auth_headers):
        response = client.post('/api/notifications/announce',
                               json={'course_id': course.id, 'title': 'Exam date', 'message': 'Friday at 9'},
                               headers=auth_headers(instructor))
        assert response.status_code == 200
        assert response.get_json()['data']['recipients'] == 1
        notification = Notification.query.filter_by(user_id=student.id).one()
        assert notification.type == 'announcement'

    def test_announce_requires_ownership(self, client, course, other_instructor, student, auth_headers):
        payload = {'course_id': course.id, 'title': 'Exam date', 'message': 'Friday'}
        assert client.post('/api/notifications/announce', json=payload,
                           headers=auth_headers(other_instructor)).status_code == 403
        assert client.post('/api/notifications/announce', json=payload,
                           headers=auth_headers(student)).status_code == 403
