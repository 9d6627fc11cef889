"""
Tests for the Ollama HTTP client
"""

from unittest.mock import Mock, patch

import requests

from licea.utils.ollama_client import ollama_client, ASSISTANT_NAME


def tags_response(models=('llama2',)):
    response = Mock(status_code=200)
    response.json.return_value = {'models': [{'name': name} for name in models]}
    return response


def generate_response(text):
    response = Mock(status_code=200)
    response.json.return_value = {'response': text, 'total_duration': 1200, 'eval_count': 42}
    return response


class TestAvailability:
    """Test the cached availability check"""

    def test_available_is_cached(self, app_context):
        with patch('licea.utils.ollama_client.requests.get', return_value=tags_response()) as mock_get:
            assert ollama_client.is_available() is True
            assert ollama_client.is_available() is True
        mock_get.assert_called_once_with('http://ollama.test:11434/api/tags', timeout=5)

    def test_connection_error_means_unavailable(self, app_context):
        with patch('licea.utils.ollama_client.requests.get', side_effect=requests.ConnectionError('refused')):
            assert ollama_client.is_available() is False

    def test_bypass_cache(self, app_context):
        ollama_client.mark_unavailable()
        with patch('licea.utils.ollama_client.requests.get', return_value=tags_response()):
            assert ollama_client.is_available() is False
            assert ollama_client.is_available(use_cache=False) is True

    def test_list_models(self, app_context):
        with patch('licea.utils.ollama_client.requests.get', return_value=tags_response(('llama2', 'mistral'))):
            assert [m['name'] for m in ollama_client.list_models()] == ['llama2', 'mistral']
        with patch('licea.utils.ollama_client.requests.get', side_effect=requests.Timeout()):
            assert ollama_client.list_models() == []


class TestGeneration:
    """Test generate and chat"""

    def test_generate_success(self, app_context):
        with patch('licea.utils.ollama_client.requests.get', return_value=tags_response()), \
                patch('licea.utils.ollama_client.requests.post',
                      return_value=generate_response('  Study every day.  ')) as mock_post:
            result = ollama_client.generate('How do I study?', {'role': 'student', 'user_name': 'Ana'})

        assert result['success'] is True
        assert result['response'] == 'Study every day.'
        assert result['model'] == 'llama2'
        body = mock_post.call_args.kwargs['json']
        assert body['stream'] is False
        assert body['model'] == 'llama2'
        assert body['prompt'].endswith(f'User: How do I study?\n\n{ASSISTANT_NAME}:')

    def test_generate_unavailable_falls_back(self, app_context):
        with patch('licea.utils.ollama_client.requests.get', side_effect=requests.ConnectionError()), \
                patch('licea.utils.ollama_client.requests.post') as mock_post:
            result = ollama_client.generate('Hello')
        assert result == {'success': False, 'error': 'Ollama is not available', 'fallback': True}
        mock_post.assert_not_called()

    def test_generate_http_error(self, app_context):
        failing = Mock(status_code=500)
        failing.raise_for_status.side_effect = requests.HTTPError('500 Server Error')
        with patch('licea.utils.ollama_client.requests.get', return_value=tags_response()), \
                patch('licea.utils.ollama_client.requests.post', return_value=failing):
            result = ollama_client.generate('Hello')
        assert result['success'] is False
        assert result['fallback'] is True

    def test_chat_sends_transcript(self, app_context):
        messages = [
            {'role': 'user', 'content': 'Hi'},
            {'role': 'assistant', 'content': 'Hello Ana'},
            {'role': 'user', 'content': 'What is due?'},
        ]
        with patch('licea.utils.ollama_client.requests.get', return_value=tags_response()), \
                patch('licea.utils.ollama_client.requests.post',
                      return_value=generate_response('Homework 1')) as mock_post:
            result = ollama_client.chat(messages, {'role': 'student', 'user_name': 'Ana'})

        assert result == {'success': True, 'message': 'Homework 1', 'model': 'llama2'}
        prompt = mock_post.call_args.kwargs['json']['prompt']
        assert f'User: Hi\n\n{ASSISTANT_NAME}: Hello Ana\n\nUser: What is due?' in prompt
        assert mock_post.call_args.kwargs['json']['options']['num_predict'] == 800


class TestPrompts:
    """Test role aware prompt templating"""

    def test_student_prompt(self, app_context):
        prompt = ollama_client.build_system_prompt({
            'role': 'student', 'user_name': 'Ana Student',
            'courses': [{'name': 'Intro to Programming'}], 'tasks': [{}, {}], 'grades': [],
        })
        assert 'Always answer in Spanish' in prompt
        assert 'Student: Ana Student' in prompt
        assert '- Pending tasks: 2' in prompt
        assert '- Studying: Intro to Programming' in prompt

    def test_instructor_prompt(self, app, app_context):
        app.config['ASSISTANT_LANGUAGE'] = 'English'
        prompt = ollama_client.build_system_prompt({
            'role': 'instructor', 'user_name': 'Irene', 'courses': [], 'total_students': 12, 'pending_grading': 3,
        })
        assert 'Always answer in English' in prompt
        assert '- Total students: 12' in prompt
        assert '- Submissions awaiting grading: 3' in prompt
        assert 'YOUR ROLE FOR INSTRUCTORS' in prompt
