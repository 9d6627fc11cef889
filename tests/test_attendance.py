from datetime import date

import pytest

from licea.models import AttendanceRecord, Enrollment


@pytest.fixture
def enrolled_other_student(db_session, course, other_student):
    db_session.add(Enrollment(student_id=other_student.id, course_id=course.id, status='active'))
    db_session.commit()
    return other_student


def mark_payload(course_id, student_id, **overrides):
    payload = {'course_id': course_id, 'student_id': student_id, 'attendance_date': '2024-09-02',
               'status': 'present'}
    payload.update(overrides)
    return payload


class TestMarkAttendance:
    """Test recording attendance"""

    def test_mark_then_update_same_day(self, client, course, enrollment, student, instructor, auth_headers):
        response = client.post('/api/attendance/mark', json=mark_payload(course.id, student.id),
                               headers=auth_headers(instructor))
        assert response.status_code == 200
        data = response.get_json()['data']
        assert (data['status'], data['attendance_date'], data['recorded_by']) == \
            ('present', '2024-09-02', instructor.id)

        response = client.post('/api/attendance/mark',
                               json=mark_payload(course.id, student.id, status='late', notes='Bus delay'),
                               headers=auth_headers(instructor))
        assert response.status_code == 200
        assert response.get_json()['data']['id'] == data['id']

        record = AttendanceRecord.query.one()
        assert (record.status, record.notes, record.attendance_date) == ('late', 'Bus delay', date(2024, 9, 2))

    def test_student_not_enrolled(self, client, course, other_student, instructor, auth_headers):
        response = client.post('/api/attendance/mark', json=mark_payload(course.id, other_student.id),
                               headers=auth_headers(instructor))
        assert response.status_code == 404
        assert response.get_json()['error']['code'] == 'NOT_ENROLLED'

    def test_invalid_status(self, client, course, enrollment, student, instructor, auth_headers):
        response = client.post('/api/attendance/mark', json=mark_payload(course.id, student.id, status='asleep'),
                               headers=auth_headers(instructor))
        assert response.status_code == 400
        assert [d['field'] for d in response.get_json()['error']['details']] == ['status']

    def test_other_instructor_denied(self, client, course, enrollment, student, other_instructor, auth_headers):
        response = client.post('/api/attendance/mark', json=mark_payload(course.id, student.id),
                               headers=auth_headers(other_instructor))
        assert response.status_code == 403
        assert AttendanceRecord.query.count() == 0

    def test_students_cannot_mark(self, client, course, enrollment, student, auth_headers):
        response = client.post('/api/attendance/mark', json=mark_payload(course.id, student.id),
                               headers=auth_headers(student))
        assert response.status_code == 403


class TestAttendanceQueries:
    """Test listings and summaries"""

    def test_students_of_my_courses(self, client, enrollment, student, instructor, other_instructor,
                                    auth_headers):
        response = client.get('/api/attendance/students', headers=auth_headers(instructor))
        body = response.get_json()
        assert body['count'] == 1
        assert body['data'][0]['id'] == student.id
        assert body['data'][0]['courses'] == 'Intro to Programming'

        assert client.get('/api/attendance/students', headers=auth_headers(other_instructor)).get_json()['count'] == 0

    def test_records_require_date(self, client, db_session, instructor, auth_headers):
        response = client.get('/api/attendance/records', headers=auth_headers(instructor))
        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'MISSING_DATE'

        response = client.get('/api/attendance/records?date=yesterday', headers=auth_headers(instructor))
        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'VALIDATION_ERROR'

    def test_records_of_one_day(self, client, db_session, course, enrollment, student, instructor,
                                other_instructor, auth_headers):
        AttendanceRecord.mark(course.id, student.id, date(2024, 9, 2), 'present')
        AttendanceRecord.mark(course.id, student.id, date(2024, 9, 3), 'absent')
        db_session.commit()

        data = client.get('/api/attendance/records?date=2024-09-02',
                          headers=auth_headers(instructor)).get_json()['data']
        assert [(r['student_name'], r['status']) for r in data] == [('Ana Student', 'present')]

        data = client.get('/api/attendance/records?date=2024-09-02',
                          headers=auth_headers(other_instructor)).get_json()['data']
        assert data == []

    def test_summary(self, client, db_session, course, enrollment, enrolled_other_student, student, instructor,
                     auth_headers):
        for day, status in ((2, 'present'), (3, 'present'), (4, 'late'), (5, 'absent')):
            AttendanceRecord.mark(course.id, student.id, date(2024, 9, day), status)
        db_session.commit()

        response = client.get(f'/api/attendance/summary/{course.id}', headers=auth_headers(instructor))
        assert response.status_code == 200
        data = response.get_json()['data']
        assert data['course'] == {'id': course.id, 'name': 'Intro to Programming', 'code': 'CS101'}

        by_name = {row['student_name']: row for row in data['students']}
        assert by_name['Ana Student']['present_count'] == 2
        assert by_name['Ana Student']['late_count'] == 1
        assert by_name['Ana Student']['total_sessions'] == 4
        assert by_name['Ana Student']['attendance_rate'] == 50.0
        assert by_name['Bruno Student']['total_sessions'] == 0
        assert by_name['Bruno Student']['attendance_rate'] is None

    def test_summary_of_other_course(self, client, course, other_instructor, auth_headers):
        response = client.get(f'/api/attendance/summary/{course.id}', headers=auth_headers(other_instructor))
        assert response.status_code == 403
