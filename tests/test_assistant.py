"""
Tests for the AI assistant routes and the rule based fallback
"""

from datetime import datetime, timedelta
from unittest.mock import Mock, patch

import pytest
import requests

from licea.models import AIConversation, Submission
from licea.utils.assistant import DAILY_TIPS, generate_fallback_response, course_statistics
from licea.utils.ollama_client import ollama_client


@pytest.fixture
def ollama_down():
    with patch('licea.utils.ollama_client.requests.get', side_effect=requests.ConnectionError('refused')), \
            patch('licea.utils.ollama_client.requests.post', side_effect=requests.ConnectionError('refused')):
        yield


@pytest.fixture
def ollama_up():
    tags = Mock(status_code=200)
    tags.json.return_value = {'models': [{'name': 'llama2'}]}
    generated = Mock(status_code=200)
    generated.json.return_value = {'response': 'Start with Homework 1.'}
    with patch('licea.utils.ollama_client.requests.get', return_value=tags), \
            patch('licea.utils.ollama_client.requests.post', return_value=generated) as mock_post:
        yield mock_post


class TestFallbackResponses:
    """Test keyword routing over the user's context"""

    def context(self, **overrides):
        context = {'user_name': 'Ana Student', 'role': 'student', 'courses': [], 'tasks': [],
                   'completed_tasks': 0, 'grades': [], 'schedules': []}
        context.update(overrides)
        return context

    def test_pending_tasks(self):
        due = datetime.utcnow() + timedelta(days=2, hours=1)
        context = self.context(tasks=[{'id': 1, 'title': 'Essay', 'due_date': due,
                                       'course_name': 'Literature', 'course_code': 'LIT1'}])
        response = generate_fallback_response('Which tasks are due?', context)
        assert 'urgent' in response
        assert '**Essay**' in response

    def test_no_tasks(self):
        response = generate_fallback_response('any homework?', self.context(completed_tasks=2))
        assert 'up to date' in response
        assert '2 task(s)' in response

    def test_grades_average(self):
        grades = [{'title': 'Quiz', 'grade': 18, 'max_grade': 20, 'course_name': 'Math', 'feedback': None},
                  {'title': 'Exam', 'grade': 80, 'max_grade': 100, 'course_name': 'Math', 'feedback': 'Good'}]
        response = generate_fallback_response('How are my grades?', self.context(grades=grades))
        assert '**Overall average:** 85.0%' in response
        assert '"Good"' in response

    def test_courses(self):
        courses = [{'id': 1, 'code': 'CS101', 'name': 'Intro to Programming'}]
        response = generate_fallback_response('how many courses do I have', self.context(courses=courses))
        assert '**1 course**' in response
        assert '**CS101**' in response

    def test_not_enrolled(self):
        assert 'not enrolled' in generate_fallback_response('my courses', self.context())

    def test_unknown_question(self):
        response = generate_fallback_response('xyz', self.context())
        assert response.startswith('Hi Ana!')


class TestChat:
    """Test /api/ai/chat"""

    def test_fallback_when_ollama_unavailable(self, client, ollama_down, task, enrollment, student, auth_headers):
        response = client.post('/api/ai/chat', json={'message': 'What tasks do I have?'},
                               headers=auth_headers(student))
        assert response.status_code == 200
        data = response.get_json()['data']
        assert data['source'] == 'fallback'
        assert data['model'] is None
        assert 'Homework 1' in data['response']
        assert data['context_summary'] == {'courses': 1, 'pending_tasks': 1, 'completed_tasks': 0,
                                           'recent_grades': 0}

        stored = AIConversation.query.filter_by(user_id=student.id).one()
        assert stored.user_message == 'What tasks do I have?'
        assert stored.ai_source == 'fallback'

    def test_ollama_reply(self, client, ollama_up, enrollment, student, auth_headers):
        history = [{'role': 'user', 'content': 'Hi'}, {'role': 'assistant', 'content': 'Hello!'}]
        response = client.post('/api/ai/chat', json={'message': 'What first?', 'conversation_history': history},
                               headers=auth_headers(student))
        data = response.get_json()['data']
        assert data['source'] == 'ollama'
        assert data['model'] == 'llama2'
        assert data['response'] == 'Start with Homework 1.'
        assert 'User: Hi' in ollama_up.call_args.kwargs['json']['prompt']

    def test_use_ollama_false_skips_model(self, client, ollama_up, student, auth_headers):
        response = client.post('/api/ai/chat', json={'message': 'hello', 'use_ollama': False},
                               headers=auth_headers(student))
        assert response.get_json()['data']['source'] == 'fallback'
        ollama_up.assert_not_called()

    def test_generation_failure_marks_unavailable(self, app, client, student, auth_headers):
        tags = Mock(status_code=200)
        with patch('licea.utils.ollama_client.requests.get', return_value=tags), \
                patch('licea.utils.ollama_client.requests.post', side_effect=requests.Timeout()):
            response = client.post('/api/ai/chat', json={'message': 'hello'}, headers=auth_headers(student))
            assert response.get_json()['data']['source'] == 'fallback'
            assert ollama_client.is_available() is False

    def test_message_required(self, client, student, auth_headers):
        response = client.post('/api/ai/chat', json={'message': '   '}, headers=auth_headers(student))
        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'VALIDATION_ERROR'

    def test_requires_auth(self, client, db_session):
        assert client.post('/api/ai/chat', json={'message': 'hi'}).status_code == 401


class TestAssistantEndpoints:
    """Test history, analysis, suggestions, tips and status"""

    def test_history_newest_first(self, client, db_session, student, other_student, auth_headers):
        AIConversation.record(student.id, 'first', 'one')
        db_session.commit()
        AIConversation.record(student.id, 'second', 'two', {'courses': 0}, 'ollama')
        AIConversation.record(other_student.id, 'not mine', 'x')
        db_session.commit()

        data = client.get('/api/ai/history', headers=auth_headers(student)).get_json()['data']
        assert [c['user_message'] for c in data] == ['second', 'first']
        assert data[0]['context_data'] == {'courses': 0}

    def test_analyze_performance_fallback(self, client, db_session, ollama_down, task, enrollment, student,
                                          auth_headers):
        submission = Submission(task_id=task.id, student_id=student.id, submission_text='x',
                                status='submitted', submitted_at=datetime.utcnow())
        db_session.add(submission)
        submission.apply_grade(90, 'Great')
        db_session.commit()

        data = client.get('/api/ai/analyze-performance', headers=auth_headers(student)).get_json()['data']
        assert data['source'] == 'fallback'
        assert data['statistics'] == {'courses': 1, 'completed_tasks': 1, 'pending_tasks': 0,
                                      'average_grade': 90.0}
        assert 'Excellent work' in data['analysis']

    def test_analyze_performance_with_ollama(self, client, ollama_up, student, auth_headers):
        data = client.get('/api/ai/analyze-performance', headers=auth_headers(student)).get_json()['data']
        assert data['source'] == 'ollama'
        assert data['analysis'] == 'Start with Homework 1.'

    def test_analyze_performance_students_only(self, client, instructor, auth_headers):
        assert client.get('/api/ai/analyze-performance', headers=auth_headers(instructor)).status_code == 403

    def test_course_suggestions(self, client, ollama_down, course, task, enrollment, instructor, auth_headers):
        response = client.get(f'/api/ai/course-suggestions/{course.id}', headers=auth_headers(instructor))
        data = response.get_json()['data']
        assert data['course']['code'] == 'CS101'
        assert data['source'] == 'fallback'
        assert data['statistics']['students_count'] == 1
        assert data['statistics']['total_tasks'] == 1
        assert data['statistics']['submission_rate'] == 0
        assert 'Intro to Programming' in data['suggestions']

    def test_course_suggestions_access(self, client, course, other_instructor, student, auth_headers):
        assert client.get(f'/api/ai/course-suggestions/{course.id}',
                          headers=auth_headers(other_instructor)).status_code == 403
        assert client.get(f'/api/ai/course-suggestions/{course.id}',
                          headers=auth_headers(student)).status_code == 403
        assert client.get('/api/ai/course-suggestions/999',
                          headers=auth_headers(other_instructor)).status_code == 404

    def test_course_statistics_rate(self, db_session, course, task, enrollment, student):
        db_session.add(Submission(task_id=task.id, student_id=student.id, submission_text='x',
                                  status='submitted', submitted_at=datetime.utcnow()))
        db_session.commit()
        stats = course_statistics(course)
        assert stats['total_submissions'] == 1
        assert stats['submission_rate'] == 100.0
        assert stats['avg_grade'] is None

    def test_daily_tip(self, client, student, auth_headers):
        data = client.get('/api/ai/daily-tip', headers=auth_headers(student)).get_json()['data']
        assert data in DAILY_TIPS

    def test_status(self, client, ollama_up, student, auth_headers):
        data = client.get('/api/ai/status', headers=auth_headers(student)).get_json()['data']
        assert data == {
            'ollama_available': True,
            'current_model': 'llama2',
            'available_models': ['llama2'],
            'fallback_enabled': True,
            'api_url': 'http://ollama.test:11434',
        }

    def test_status_when_down(self, client, ollama_down, student, auth_headers):
        data = client.get('/api/ai/status', headers=auth_headers(student)).get_json()['data']
        assert data['ollama_available'] is False
        assert data['available_models'] == []
