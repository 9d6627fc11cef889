import io
import os
from datetime import datetime, timedelta

import pytest

from licea.models import Submission, Notification
from licea.utils.email_service import mail


@pytest.fixture
def submitted(db_session, task, enrollment, student):
    submission = Submission(task_id=task.id, student_id=student.id, submission_text='My answer',
                            status='submitted', submitted_at=datetime.utcnow())
    db_session.add(submission)
    db_session.commit()
    return submission


@pytest.fixture
def draft(db_session, task, enrollment, student):
    submission = Submission(task_id=task.id, student_id=student.id, submission_text='Work in progress',
                            status='draft')
    db_session.add(submission)
    db_session.commit()
    return submission


class TestCreateSubmission:
    """Test the submission rules"""

    def test_submit_text(self, client, task, enrollment, student, auth_headers):
        response = client.post('/api/submissions', json={'task_id': task.id, 'submission_text': 'Answer'},
                               headers=auth_headers(student))
        assert response.status_code == 201
        data = response.get_json()['data']
        assert data['status'] == 'submitted'
        assert data['submitted_at'] is not None
        assert data['is_late'] is False

    def test_save_draft(self, client, task, enrollment, student, auth_headers):
        response = client.post('/api/submissions',
                               json={'task_id': task.id, 'submission_text': 'Half done', 'draft': True},
                               headers=auth_headers(student))
        assert response.status_code == 201
        data = response.get_json()['data']
        assert data['status'] == 'draft'
        assert data['submitted_at'] is None

    def test_not_enrolled(self, client, task, other_student, auth_headers):
        response = client.post('/api/submissions', json={'task_id': task.id, 'submission_text': 'Answer'},
                               headers=auth_headers(other_student))
        assert response.status_code == 403

    def test_unpublished_task(self, client, db_session, task, enrollment, student, auth_headers):
        task.is_published = False
        db_session.commit()
        response = client.post('/api/submissions', json={'task_id': task.id, 'submission_text': 'Answer'},
                               headers=auth_headers(student))
        assert response.status_code == 404

    def test_past_due_without_late_submissions(self, client, db_session, task, enrollment, student, auth_headers):
        task.due_date = datetime.utcnow() - timedelta(days=1)
        task.late_submission_allowed = False
        db_session.commit()
        response = client.post('/api/submissions', json={'task_id': task.id, 'submission_text': 'Answer'},
                               headers=auth_headers(student))
        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'DEADLINE_PASSED'

    def test_late_submission_is_flagged(self, client, db_session, task, enrollment, student, auth_headers):
        task.due_date = datetime.utcnow() - timedelta(days=1)
        db_session.commit()
        response = client.post('/api/submissions', json={'task_id': task.id, 'submission_text': 'Answer'},
                               headers=auth_headers(student))
        assert response.status_code == 201
        assert response.get_json()['data']['is_late'] is True

    def test_second_submission_rejected(self, client, task, submitted, student, auth_headers):
        response = client.post('/api/submissions', json={'task_id': task.id, 'submission_text': 'Again'},
                               headers=auth_headers(student))
        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'ALREADY_SUBMITTED'

    def test_empty_submission_rejected(self, client, task, enrollment, student, auth_headers):
        response = client.post('/api/submissions', json={'task_id': task.id}, headers=auth_headers(student))
        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'NO_CONTENT'

    def test_instructor_cannot_submit(self, client, task, instructor, auth_headers):
        response = client.post('/api/submissions', json={'task_id': task.id, 'submission_text': 'x'},
                               headers=auth_headers(instructor))
        assert response.status_code == 403

    def test_file_upload_and_download(self, app, client, task, enrollment, student, instructor, auth_headers):
        response = client.post(
            '/api/submissions',
            data={'task_id': str(task.id), 'file': (io.BytesIO(b'%PDF-1.4 report'), 'report.pdf')},
            content_type='multipart/form-data',
            headers=auth_headers(student),
        )
        assert response.status_code == 201
        data = response.get_json()['data']
        assert data['has_file'] is True
        assert data['file_path'].startswith(f'submissions/submission-{student.id}-')
        assert data['file_path'].endswith('.pdf')
        assert os.path.isfile(os.path.join(app.config['UPLOAD_FOLDER'], data['file_path']))

        download = client.get(f"/api/submissions/{data['id']}/download", headers=auth_headers(instructor))
        assert download.status_code == 200
        assert download.data == b'%PDF-1.4 report'

    def test_file_type_rejected(self, client, task, enrollment, student, auth_headers):
        response = client.post(
            '/api/submissions',
            data={'task_id': str(task.id), 'file': (io.BytesIO(b'MZ'), 'virus.exe')},
            content_type='multipart/form-data',
            headers=auth_headers(student),
        )
        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'FILE_UPLOAD_ERROR'
        assert Submission.query.count() == 0

    def test_file_too_large(self, app, client, task, enrollment, student, auth_headers):
        app.config['MAX_CONTENT_LENGTH'] = 1024
        response = client.post(
            '/api/submissions',
            data={'task_id': str(task.id), 'file': (io.BytesIO(b'%PDF-1.4 ' + b'x' * 4096), 'report.pdf')},
            content_type='multipart/form-data',
            headers=auth_headers(student),
        )
        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'FILE_TOO_LARGE'
        assert Submission.query.count() == 0


class TestSubmissionAccess:
    """Test who can read and modify submissions"""

    def test_student_lists_only_own(self, client, db_session, task, submitted, other_student, auth_headers):
        response = client.get('/api/submissions', headers=auth_headers(other_student))
        assert response.get_json()['data'] == []
        response = client.get(f'/api/submissions/{submitted.id}', headers=auth_headers(other_student))
        assert response.status_code == 403

    def test_instructor_lists_course_submissions(self, client, submitted, instructor, other_instructor,
                                                 auth_headers):
        response = client.get('/api/submissions', headers=auth_headers(instructor))
        assert [s['id'] for s in response.get_json()['data']] == [submitted.id]
        assert client.get('/api/submissions', headers=auth_headers(other_instructor)).get_json()['data'] == []

    def test_task_submissions(self, client, task, submitted, instructor, other_instructor, auth_headers):
        response = client.get(f'/api/submissions/task/{task.id}', headers=auth_headers(instructor))
        assert len(response.get_json()['data']['submissions']) == 1
        response = client.get(f'/api/submissions/task/{task.id}', headers=auth_headers(other_instructor))
        assert response.status_code == 403
        assert client.get('/api/submissions/task/999', headers=auth_headers(instructor)).status_code == 404

    def test_non_owner_cannot_update(self, client, db_session, task, draft, other_student, auth_headers):
        response = client.put(f'/api/submissions/{draft.id}', json={'submission_text': 'Hijacked'},
                              headers=auth_headers(other_student))
        assert response.status_code == 403
        assert db_session.get(Submission, draft.id).submission_text == 'Work in progress'

    def test_update_and_submit_draft(self, client, draft, student, auth_headers):
        response = client.put(f'/api/submissions/{draft.id}', json={'submission_text': 'Final answer'},
                              headers=auth_headers(student))
        assert response.status_code == 200
        assert response.get_json()['data']['submission_text'] == 'Final answer'

        response = client.patch(f'/api/submissions/{draft.id}/submit', headers=auth_headers(student))
        assert response.status_code == 200
        assert response.get_json()['data']['status'] == 'submitted'

        response = client.patch(f'/api/submissions/{draft.id}/submit', headers=auth_headers(student))
        assert response.status_code == 400

    def test_submitted_work_is_not_editable(self, client, submitted, student, auth_headers):
        response = client.put(f'/api/submissions/{submitted.id}', json={'submission_text': 'Edit'},
                              headers=auth_headers(student))
        assert response.status_code == 400
        assert client.delete(f'/api/submissions/{submitted.id}', headers=auth_headers(student)).status_code == 400

    def test_delete_draft(self, client, db_session, draft, student, auth_headers):
        response = client.delete(f'/api/submissions/{draft.id}', headers=auth_headers(student))
        assert response.status_code == 200
        assert db_session.get(Submission, draft.id) is None

    def test_download_without_file(self, client, submitted, student, auth_headers):
        response = client.get(f'/api/submissions/{submitted.id}/download', headers=auth_headers(student))
        assert response.status_code == 404


class TestGrading:
    """Test grading"""

    def test_grade_submission(self, client, db_session, submitted, student, instructor, auth_headers):
        with mail.record_messages() as outbox:
            response = client.patch(f'/api/submissions/{submitted.id}/grade',
                                    json={'grade': 85, 'feedback': 'Well done'},
                                    headers=auth_headers(instructor))
        assert response.status_code == 200
        data = response.get_json()['data']
        assert data['status'] == 'graded'
        assert data['grade'] == 85
        assert data['feedback'] == 'Well done'
        assert data['graded_at'] is not None

        notification = Notification.query.filter_by(user_id=student.id, type='task_graded').one()
        assert notification.related_id == submitted.id
        assert [m.recipients for m in outbox] == [['student@example.com']]

    def test_grade_above_max(self, client, submitted, instructor, auth_headers):
        response = client.patch(f'/api/submissions/{submitted.id}/grade', json={'grade': 101},
                                headers=auth_headers(instructor))
        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'VALIDATION_ERROR'

    def test_grade_negative(self, client, submitted, instructor, auth_headers):
        response = client.patch(f'/api/submissions/{submitted.id}/grade', json={'grade': -1},
                                headers=auth_headers(instructor))
        assert response.status_code == 400

    def test_regrade_allowed(self, client, submitted, instructor, auth_headers):
        client.patch(f'/api/submissions/{submitted.id}/grade', json={'grade': 60}, headers=auth_headers(instructor))
        response = client.patch(f'/api/submissions/{submitted.id}/grade', json={'grade': 70},
                                headers=auth_headers(instructor))
        assert response.status_code == 200
        assert response.get_json()['data']['grade'] == 70

    def test_draft_cannot_be_graded(self, client, draft, instructor, auth_headers):
        response = client.patch(f'/api/submissions/{draft.id}/grade', json={'grade': 50},
                                headers=auth_headers(instructor))
        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'NOT_SUBMITTED'

    def test_other_instructor_cannot_grade(self, client, submitted, other_instructor, auth_headers):
        response = client.patch(f'/api/submissions/{submitted.id}/grade', json={'grade': 50},
                                headers=auth_headers(other_instructor))
        assert response.status_code == 403

    def test_my_grades(self, client, db_session, submitted, student, auth_headers):
        submitted.apply_grade(45, 'Half')
        db_session.commit()

        response = client.get('/api/submissions/my-grades', headers=auth_headers(student))
        data = response.get_json()['data']
        assert data['grades'][0]['percentage'] == 45.0
        assert data['course_averages'][0]['average'] == 45.0
        assert data['overall_average'] == 45.0

    def test_non_finite_grade_rejected(self, client, db_session, submitted, instructor, auth_headers):
        for value in ('nan', 'inf', float('nan'), float('inf')):
            response = client.patch(f'/api/submissions/{submitted.id}/grade', json={'grade': value},
                                    headers=auth_headers(instructor))
            assert response.status_code == 400
            assert response.get_json()['error']['code'] == 'VALIDATION_ERROR'
        assert db_session.get(Submission, submitted.id).status == 'submitted'

    def test_grading_succeeds_when_email_header_is_rejected(self, client, db_session, task, submitted, student,
                                                            instructor, auth_headers):
        # Rows written before validation rejected multi-line titles
        task.title = 'Essay\nPart two'
        db_session.commit()

        with mail.record_messages() as outbox:
            response = client.patch(f'/api/submissions/{submitted.id}/grade', json={'grade': 90},
                                    headers=auth_headers(instructor))

        assert response.status_code == 200
        assert response.get_json()['data']['status'] == 'graded'
        assert outbox == []
        assert Notification.query.filter_by(user_id=student.id, type='task_graded').count() == 1
