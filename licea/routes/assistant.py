"""
AI Assistant Routes

FLOW OVERVIEW
- /api/ai/chat [POST]
  • Build the caller's context → Ollama chat when available → rule based fallback otherwise.
  • Every exchange is stored in ai_conversations; storage failures do not fail the reply.
- /api/ai/history [GET]
- /api/ai/analyze-performance [GET] student
- /api/ai/course-suggestions/<course_id> [GET] owning instructor or admin
- /api/ai/daily-tip [GET]
- /api/ai/status [GET]
"""

import logging
from datetime import datetime

from flask import Blueprint, g
from sqlalchemy.exc import SQLAlchemyError

from ..models import db, AIConversation, Course
from ..utils.api_utils import get_json_body, get_int_arg, success_response
from ..utils.assistant import (
    get_user_context, course_statistics, average_percentage, generate_fallback_response,
    fallback_performance_analysis, fallback_course_suggestions, random_tip
)
from ..utils.auth_decorators import token_required, instructor_required, student_required
from ..utils.error_handlers import APIError
from ..utils.ollama_client import ollama_client

logger = logging.getLogger(__name__)

assistant_bp = Blueprint('assistant', __name__)

MAX_HISTORY_MESSAGES = 10


def context_summary(context):
    if context.get('role') == 'student':
        return {
            'courses': len(context.get('courses') or []),
            'pending_tasks': len(context.get('tasks') or []),
            'completed_tasks': context.get('completed_tasks', 0),
            'recent_grades': len(context.get('grades') or []),
        }
    return {
        'courses': len(context.get('courses') or []),
        'total_students': context.get('total_students', 0),
        'pending_grading': context.get('pending_grading', 0),
    }


def _conversation_messages(history, message):
    messages = []
    if isinstance(history, list):
        for item in history[-MAX_HISTORY_MESSAGES:]:
            if isinstance(item, dict) and item.get('content'):
                role = 'assistant' if item.get('role') == 'assistant' else 'user'
                messages.append({'role': role, 'content': str(item['content'])})
    messages.append({'role': 'user', 'content': message})
    return messages


def _store_conversation(user_id, message, reply, context, source):
    try:
        AIConversation.record(user_id, message, reply, context_summary(context), source)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Failed to store AI conversation for user {user_id}: {e}")


@assistant_bp.route('/chat', methods=['POST'])
@token_required
def chat():
    data = get_json_body()
    message = (data.get('message') or '').strip() if isinstance(data.get('message'), str) else ''
    if not message:
        raise APIError('Message is required', 400, 'VALIDATION_ERROR')

    user = g.current_user
    context = get_user_context(user)
    reply, source, model = None, 'fallback', None

    if data.get('use_ollama', True) is not False and ollama_client.is_available():
        result = ollama_client.chat(_conversation_messages(data.get('conversation_history'), message), context)
        if result.get('success') and result.get('message'):
            reply, source, model = result['message'], 'ollama', result.get('model')
        else:
            logger.warning(f"Ollama chat failed, using fallback: {result.get('error')}")
            ollama_client.mark_unavailable()

    if reply is None:
        reply = generate_fallback_response(message, context)

    _store_conversation(user.id, message, reply, context, source)

    return success_response({
        'response': reply,
        'timestamp': datetime.utcnow().isoformat(),
        'source': source,
        'model': model,
        'context_summary': context_summary(context),
    })


@assistant_bp.route('/history', methods=['GET'])
@token_required
def history():
    limit = get_int_arg('limit', 20, min_value=1, max_value=100)
    conversations = AIConversation.history(g.current_user.id, limit)
    return success_response([c.to_dict() for c in conversations])


@assistant_bp.route('/analyze-performance', methods=['GET'])
@token_required
@student_required
def analyze_performance():
    context = get_user_context(g.current_user)
    statistics = {
        'courses': len(context['courses']),
        'completed_tasks': context['completed_tasks'],
        'pending_tasks': len(context['tasks']),
        'average_grade': average_percentage(context['grades']),
    }

    result = ollama_client.analyze_student_performance({
        'user_name': context['user_name'],
        'courses': context['courses'],
        'tasks': {'completed': statistics['completed_tasks'], 'pending': statistics['pending_tasks']},
        'grades': {'average': statistics['average_grade']},
    })
    if result.get('success'):
        analysis, source = result['response'], 'ollama'
    else:
        analysis, source = fallback_performance_analysis(context), 'fallback'

    return success_response({'analysis': analysis, 'statistics': statistics, 'source': source})


@assistant_bp.route('/course-suggestions/<int:course_id>', methods=['GET'])
@token_required
@instructor_required
def course_suggestions(course_id):
    course = db.session.get(Course, course_id)
    if course is None:
        raise APIError('Course not found', 404, 'COURSE_NOT_FOUND')
    if not course.is_owned_by(g.current_user):
        raise APIError('You can only analyze your own courses', 403, 'ACCESS_DENIED')

    stats = course_statistics(course)
    result = ollama_client.suggest_course_improvements(dict(stats, course_name=course.name))
    if result.get('success'):
        suggestions, source = result['response'], 'ollama'
    else:
        suggestions, source = fallback_course_suggestions(course.name, stats), 'fallback'

    return success_response({
        'course': {'id': course.id, 'name': course.name, 'code': course.code},
        'suggestions': suggestions,
        'statistics': stats,
        'source': source,
    })


@assistant_bp.route('/daily-tip', methods=['GET'])
@token_required
def daily_tip():
    return success_response(random_tip())


@assistant_bp.route('/status', methods=['GET'])
@token_required
def status():
    available = ollama_client.is_available(use_cache=False)
    models = [m.get('name') for m in ollama_client.list_models()] if available else []
    return success_response({
        'ollama_available': available,
        'current_model': ollama_client.model,
        'available_models': models,
        'fallback_enabled': True,
        'api_url': ollama_client.base_url,
    })
