"""
Ollama Client

Thin HTTP client for a locally hosted Ollama server used by the AI assistant.

FLOW OVERVIEW
- is_available()
  • GET /api/tags (5s timeout); result cached for AVAILABILITY_TTL seconds.
- list_models()
  • Model list from /api/tags, [] on error.
- generate(prompt, context, options)
  • POST /api/generate with stream=false; returns {'success': True, 'response', 'model', ...}
    or {'success': False, 'error', 'fallback': True}. Never raises.
- chat(messages, context)
  • System prompt + conversation transcript → generate with chat options.
- build_system_prompt / build_chat_prompt / build_contextual_prompt
  • Role-aware prompt templating from the user's course data.
- analyze_student_performance / suggest_course_improvements
  • Short analysis prompts for the assistant routes.

Settings come from the app config: OLLAMA_URL, OLLAMA_MODEL, OLLAMA_TIMEOUT, ASSISTANT_LANGUAGE.
"""

import time
import logging
from typing import Dict, Any, List, Optional

import requests
from flask import current_app

from .prom_metrics import observe_ollama_call

AVAILABILITY_TTL = 300
AVAILABILITY_TIMEOUT = 5

DEFAULT_OPTIONS = {
    'temperature': 0.7,
    'top_p': 0.9,
    'top_k': 40,
    'num_predict': 512,
}

CHAT_OPTIONS = {
    'temperature': 0.7,
    'top_p': 0.9,
    'top_k': 40,
    'num_predict': 800,
    'repeat_penalty': 1.1,
    'stop': ['User:', 'Student:'],
}

ASSISTANT_NAME = 'LICEA Assistant'


class OllamaClient:
    """Client for the Ollama generate and tags endpoints."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._available: Optional[bool] = None
        self._checked_at = 0.0

    @property
    def base_url(self) -> str:
        return current_app.config.get('OLLAMA_URL', 'http://localhost:11434').rstrip('/')

    @property
    def model(self) -> str:
        return current_app.config.get('OLLAMA_MODEL', 'llama2')

    @property
    def timeout(self) -> int:
        return current_app.config.get('OLLAMA_TIMEOUT', 60)

    @property
    def language(self) -> str:
        return current_app.config.get('ASSISTANT_LANGUAGE', 'Spanish')

    def reset_cache(self) -> None:
        self._available = None
        self._checked_at = 0.0

    def mark_unavailable(self) -> None:
        """Force the cached availability to False until the TTL expires"""
        self._available = False
        self._checked_at = time.time()

    def is_available(self, use_cache: bool = True) -> bool:
        now = time.time()
        if use_cache and self._available is not None and now - self._checked_at < AVAILABILITY_TTL:
            return self._available

        try:
            response = requests.get(f'{self.base_url}/api/tags', timeout=AVAILABILITY_TIMEOUT)
            available = response.status_code == 200
        except requests.RequestException as e:
            self.logger.warning(f"Ollama not available at {self.base_url}: {e}")
            available = False

        self._available = available
        self._checked_at = now
        return available

    def list_models(self) -> List[Dict[str, Any]]:
        try:
            response = requests.get(f'{self.base_url}/api/tags', timeout=AVAILABILITY_TIMEOUT)
            response.raise_for_status()
            return response.json().get('models', [])
        except (requests.RequestException, ValueError) as e:
            self.logger.error(f"Error listing Ollama models: {e}")
            return []

    def _post_generate(self, prompt: str, options: Dict[str, Any], timeout: Optional[float] = None) -> Dict[str, Any]:
        body = {
            'model': self.model,
            'prompt': prompt,
            'stream': False,
            'options': options,
        }
        started = time.time()
        response = requests.post(
            f'{self.base_url}/api/generate',
            json=body,
            timeout=timeout or self.timeout,
            headers={'Content-Type': 'application/json'},
        )
        response.raise_for_status()
        data = response.json()
        observe_ollama_call('success', time.time() - started)
        return data

    def generate(self, prompt: str, context: Optional[Dict[str, Any]] = None,
                 options: Optional[Dict[str, Any]] = None, timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Generate a completion for `prompt` wrapped in the role-aware system prompt.

        Returns:
            {'success': True, 'response', 'model', 'total_duration', 'eval_count'} or
            {'success': False, 'error', 'fallback': True}
        """
        if not self.is_available():
            observe_ollama_call('unavailable')
            return {'success': False, 'error': 'Ollama is not available', 'fallback': True}

        merged = dict(DEFAULT_OPTIONS)
        merged.update(options or {})
        try:
            self.logger.info(f"Generating response with model {self.model}")
            data = self._post_generate(self.build_contextual_prompt(prompt, context or {}), merged, timeout)
        except (requests.RequestException, ValueError) as e:
            observe_ollama_call('error')
            self.logger.error(f"Ollama generation failed: {e}")
            return {'success': False, 'error': str(e), 'fallback': True}

        return {
            'success': True,
            'response': (data.get('response') or '').strip(),
            'model': self.model,
            'total_duration': data.get('total_duration'),
            'prompt_eval_count': data.get('prompt_eval_count'),
            'eval_count': data.get('eval_count'),
        }

    def chat(self, messages: List[Dict[str, str]], context: Optional[Dict[str, Any]] = None,
             timeout: Optional[float] = None) -> Dict[str, Any]:
        """Continue a conversation; messages are {'role': 'user'|'assistant', 'content': str}"""
        if not self.is_available():
            observe_ollama_call('unavailable')
            return {'success': False, 'error': 'Ollama is not available'}

        prompt = self.build_chat_prompt(messages, self.build_system_prompt(context or {}))
        try:
            data = self._post_generate(prompt, dict(CHAT_OPTIONS), timeout)
        except (requests.RequestException, ValueError) as e:
            observe_ollama_call('error')
            self.logger.error(f"Ollama chat failed: {e}")
            return {'success': False, 'error': str(e)}

        return {'success': True, 'message': (data.get('response') or '').strip(), 'model': self.model}

    def build_contextual_prompt(self, user_message: str, context: Dict[str, Any]) -> str:
        return f"{self.build_system_prompt(context)}\n\nUser: {user_message}\n\n{ASSISTANT_NAME}:"

    def build_chat_prompt(self, messages: List[Dict[str, str]], system_prompt: str) -> str:
        prompt = system_prompt + '\n\n---\n\n'
        for message in messages:
            speaker = 'User' if message.get('role') == 'user' else ASSISTANT_NAME
            prompt += f"{speaker}: {message.get('content', '')}\n\n"
        return prompt + f'{ASSISTANT_NAME}:'

    def build_system_prompt(self, context: Dict[str, Any]) -> str:
        role = context.get('role')
        user_name = context.get('user_name') or 'there'
        courses = context.get('courses') or []
        course_names = ', '.join(c.get('name', '') for c in courses)

        prompt = (
            "You are an expert educational assistant for the LICEA learning platform.\n\n"
            "IDENTITY:\n"
            f"- Name: {ASSISTANT_NAME}\n"
            "- Personality: professional, friendly and encouraging\n"
            "- Format: clear answers organized with bullets or numbers, at most 5 paragraphs\n\n"
            "RULES:\n"
            f"1. Always answer in {self.language}\n"
            "2. If you do not know something, say so honestly\n"
            "3. Give concrete, actionable examples\n"
            "4. Keep a professional but warm tone\n\n"
        )

        if role == 'instructor':
            prompt += (
                "USER PROFILE:\n"
                f"Instructor: {user_name}\n\n"
                "CURRENT STATISTICS:\n"
                f"- Courses taught: {len(courses)}\n"
                f"- Total students: {context.get('total_students') or 0}\n"
                f"- Submissions awaiting grading: {context.get('pending_grading') or 0}\n"
            )
            if course_names:
                prompt += f"- Active courses: {course_names}\n"
            prompt += (
                "\nYOUR ROLE FOR INSTRUCTORS:\n"
                "- Help with course management and planning\n"
                "- Suggest effective teaching strategies\n"
                "- Analyze student performance and detect patterns\n"
                "- Streamline grading and feedback\n"
            )
        else:
            prompt += (
                "USER PROFILE:\n"
                f"Student: {user_name}\n\n"
                "CURRENT STATISTICS:\n"
                f"- Enrolled courses: {len(courses)}\n"
                f"- Pending tasks: {len(context.get('tasks') or [])}\n"
                f"- Recent grades: {len(context.get('grades') or [])}\n"
            )
            if course_names:
                prompt += f"- Studying: {course_names}\n"
            prompt += (
                "\nYOUR ROLE FOR STUDENTS:\n"
                "- Help organize and plan study time\n"
                "- Suggest effective learning techniques (Pomodoro, Cornell, Feynman)\n"
                "- Recommend strategies to improve grades\n"
                "- Help prioritize tasks and prepare for exams\n"
            )

        prompt += (
            "\nRESPONSE FORMAT:\n"
            "- Structure the answer with bullets or numbered steps\n"
            "- Use **bold** for key points\n"
            "- End with a question or next step when appropriate\n"
        )
        return prompt

    def analyze_student_performance(self, student_data: Dict[str, Any]) -> Dict[str, Any]:
        tasks = student_data.get('tasks') or {}
        grades = student_data.get('grades') or {}
        average = grades.get('average')
        prompt = (
            "Analyze the following academic performance and give 3 specific recommendations:\n\n"
            f"Enrolled courses: {len(student_data.get('courses') or [])}\n"
            f"Completed tasks: {tasks.get('completed', 0)}\n"
            f"Pending tasks: {tasks.get('pending', 0)}\n"
            f"Average grade: {average if average is not None else 'N/A'}%\n\n"
            "Give a short analysis (2-3 lines) and 3 actionable tips."
        )
        return self.generate(prompt, {'role': 'student', 'user_name': student_data.get('user_name')},
                             {'num_predict': 400})

    def suggest_course_improvements(self, course_data: Dict[str, Any]) -> Dict[str, Any]:
        prompt = (
            f"As the instructor of \"{course_data.get('course_name')}\" with "
            f"{course_data.get('students_count', 0)} students, the average grade is "
            f"{course_data.get('avg_grade', 'N/A')}% and the submission rate is "
            f"{course_data.get('submission_rate', 'N/A')}%.\n\n"
            "Which 3 specific strategies do you recommend to improve course performance?"
        )
        return self.generate(prompt, {'role': 'instructor'}, {'num_predict': 400})


# Global instance
ollama_client = OllamaClient()
