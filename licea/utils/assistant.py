"""
Assistant Context and Fallback Responses

FLOW OVERVIEW
- get_user_context(user)
  • Student: active courses, pending published tasks, completed count, recent grades, class sessions.
  • Instructor/admin: taught courses, distinct students, recent tasks, pending grading, per-course performance.
- generate_fallback_response(message, context)
  • Keyword routing over the context when Ollama is unavailable.
- fallback_performance_analysis / fallback_course_suggestions / course_statistics
- DAILY_TIPS / random_tip()
"""

import random
from datetime import datetime

from ..models import Course, Enrollment, Task, Submission, Schedule

DAILY_TIPS = [
    {
        'title': 'Pomodoro Technique',
        'description': 'Study for 25 minutes, rest for 5. After 4 cycles take a longer 15-30 minute break. '
                       'It keeps focus high and prevents mental fatigue.',
        'category': 'productivity',
        'action': 'Use a timer in your next study session',
    },
    {
        'title': 'Spaced Repetition',
        'description': 'Review material 1 day, 3 days, 1 week and 1 month after learning it. '
                       'Spacing reviews builds long term memory.',
        'category': 'learning',
        'action': 'Build a review calendar for your next exam',
    },
    {
        'title': 'Cornell Notes',
        'description': 'Split the page into main notes, keywords and a summary. '
                       'It improves organization and retention.',
        'category': 'study',
        'action': 'Try this layout in your next class',
    },
    {
        'title': 'Teach to Learn',
        'description': 'Explain concepts to classmates or out loud. If you can teach it clearly, you understand it.',
        'category': 'collaboration',
        'action': 'Explain something you learned today to a classmate',
    },
    {
        'title': 'Feynman Technique',
        'description': 'Pick a concept, explain it in simple words, find the gaps, study them and simplify again.',
        'category': 'learning',
        'action': 'Apply it to the hardest topic of your course',
    },
    {
        'title': 'Weekly Planning',
        'description': 'Spend 30 minutes every Sunday reviewing tasks, distributing study time and scheduling breaks.',
        'category': 'organization',
        'action': 'Plan next week this Sunday',
    },
    {
        'title': 'Two Minute Rule',
        'description': 'If a task takes less than two minutes, do it now so small tasks do not pile up.',
        'category': 'productivity',
        'action': 'Apply the rule to your pending tasks today',
    },
    {
        'title': 'Sleep and Learning',
        'description': 'Your brain consolidates memories during sleep. 7-9 hours improves retention considerably.',
        'category': 'health',
        'action': 'Set a fixed time to go to bed and wake up',
    },
]

STUDY_TIPS = [
    "**Pomodoro Technique**\n\nStudy 25 minutes, rest 5 minutes. After 4 cycles take a 15-30 minute break.",
    "**Cornell Notes**\n\n1. Split the page into notes, keywords and summary\n2. Review within 24 hours",
    "**Weekly Planning**\n\n1. Review the week's tasks\n2. Prioritize by due date\n3. Distribute study time\n4. Schedule breaks",
    "**Spaced Repetition**\n\nReview after 1 day, 3 days, 1 week and 1 month to keep what you learn.",
]

KEYWORDS = {
    'courses': ('course', 'class', 'subject', 'curso', 'materia'),
    'tasks': ('task', 'assignment', 'homework', 'deadline', 'tarea', 'entrega'),
    'grades': ('grade', 'score', 'mark', 'performance', 'nota', 'calificaci'),
    'schedule': ('schedule', 'timetable', 'when', 'next', 'horario'),
    'help': ('tip', 'advice', 'help', 'study', 'organize', 'plan', 'consejo', 'ayuda'),
    'greeting': ('hello', 'hi', 'hey', 'good morning', 'good afternoon', 'hola', 'buenas'),
    'thanks': ('thanks', 'thank you', 'bye', 'gracias', 'adios'),
}


def _first_name(context):
    return (context.get('user_name') or '').split(' ')[0]


def _matches(text, group):
    return any(keyword in text for keyword in KEYWORDS[group])


def _days_until(due_date, now=None):
    delta = due_date - (now or datetime.utcnow())
    return max(delta.days + (1 if delta.seconds else 0), 0)


def get_student_context(user):
    now = datetime.utcnow()
    course_ids = Enrollment.active_course_ids(user.id)
    courses = Course.query.filter(Course.id.in_(course_ids), Course.is_active.is_(True)).all() if course_ids else []

    submitted_task_ids = {s.task_id for s in Submission.query.filter_by(student_id=user.id).all()}
    pending = []
    if course_ids:
        candidates = (Task.query
                      .filter(Task.course_id.in_(course_ids), Task.is_published.is_(True), Task.due_date > now)
                      .order_by(Task.due_date.asc())
                      .limit(10).all())
        pending = [t for t in candidates if t.id not in submitted_task_ids]

    completed = Submission.query.filter(
        Submission.student_id == user.id, Submission.status.in_(('submitted', 'graded'))
    ).count()

    graded = (Submission.query
              .filter_by(student_id=user.id, status='graded')
              .order_by(Submission.graded_at.desc())
              .limit(5).all())

    return {
        'user_name': user.name,
        'role': 'student',
        'courses': [
            {'id': c.id, 'name': c.name, 'code': c.code,
             'instructor_name': c.instructor.name if c.instructor else None}
            for c in courses
        ],
        'tasks': [
            {'id': t.id, 'title': t.title, 'due_date': t.due_date, 'course_name': t.course.name,
             'course_code': t.course.code}
            for t in pending
        ],
        'completed_tasks': completed,
        'grades': [
            {'title': s.task.title, 'grade': s.grade, 'max_grade': s.task.max_grade,
             'course_name': s.task.course.name, 'feedback': s.feedback}
            for s in graded
        ],
        'schedules': [
            {'day_of_week': s.day_of_week, 'start_time': s.start_time, 'end_time': s.end_time,
             'course_name': s.course.name, 'location': s.location}
            for s in Schedule.class_sessions(course_ids)
        ],
    }


def get_instructor_context(user):
    query = Course.query.filter(Course.is_active.is_(True))
    if user.role != 'admin':
        query = query.filter(Course.instructor_id == user.id)
    courses = query.all()
    course_ids = [c.id for c in courses]

    students = set()
    performance = []
    for course in courses:
        student_ids = course.active_student_ids()
        students.update(student_ids)
        performance.append(dict(course_statistics(course), course_name=course.name, code=course.code))

    recent_tasks = []
    pending_grading = 0
    if course_ids:
        recent_tasks = Task.query.filter(Task.course_id.in_(course_ids)).order_by(Task.created_at.desc()).limit(5).all()
        pending_grading = (Submission.query.join(Task)
                           .filter(Task.course_id.in_(course_ids), Submission.status == 'submitted')
                           .count())

    return {
        'user_name': user.name,
        'role': 'instructor',
        'courses': [
            {'id': c.id, 'name': c.name, 'code': c.code, 'current_students': c.current_students}
            for c in courses
        ],
        'total_students': len(students),
        'tasks': [
            {'id': t.id, 'title': t.title, 'due_date': t.due_date, 'course_name': t.course.name}
            for t in recent_tasks
        ],
        'pending_grading': pending_grading,
        'course_performance': performance,
    }


def get_user_context(user):
    if user.role in ('instructor', 'admin'):
        return get_instructor_context(user)
    return get_student_context(user)


def course_statistics(course):
    """Enrolled students, task count, submission rate and average percentage for a course"""
    students_count = len(course.active_student_ids())
    tasks = course.tasks
    submissions = [s for t in tasks for s in t.submissions if s.status != 'draft']
    graded = [s.percentage() for s in submissions if s.status == 'graded' and s.percentage() is not None]
    expected = students_count * len(tasks)
    return {
        'students_count': students_count,
        'total_tasks': len(tasks),
        'total_submissions': len(submissions),
        'avg_grade': round(sum(graded) / len(graded), 1) if graded else None,
        'submission_rate': round(len(submissions) / expected * 100, 1) if expected else 0,
    }


def average_percentage(grades):
    values = [g['grade'] / g['max_grade'] * 100 for g in grades if g.get('max_grade')]
    return round(sum(values) / len(values), 1) if values else None


def _courses_response(context, first_name, text):
    courses = context.get('courses') or []
    if not courses:
        if context.get('role') == 'instructor':
            return f"You are not teaching any active course yet, {first_name}. Create one from the Courses section."
        return (f"Hi {first_name}! You are not enrolled in any course yet.\n\n"
                "1. Go to the Courses section\n2. Ask your instructor for the course code\n"
                "3. Enroll with the code or pick a course from the catalog")
    lines = [f"{i}. **{c['code']}** - {c['name']}" for i, c in enumerate(courses, 1)]
    if 'how many' in text:
        return f"You have **{len(courses)} course{'s' if len(courses) != 1 else ''}**, {first_name}:\n\n" + '\n'.join(lines)
    return f"Here are your active courses, {first_name}:\n\n" + '\n'.join(lines)


def _tasks_response(context, first_name):
    tasks = context.get('tasks') or []
    if context.get('role') == 'instructor':
        pending = context.get('pending_grading') or 0
        return (f"You have {pending} submission(s) waiting to be graded, {first_name}.\n\n"
                + '\n'.join(f"- **{t['title']}** ({t['course_name']})" for t in tasks[:5]))
    if not tasks:
        completed = context.get('completed_tasks') or 0
        extra = f" You have already completed {completed} task(s)." if completed else ''
        return f"No pending tasks right now, {first_name}. You are up to date!{extra}"

    now = datetime.utcnow()
    urgent = [t for t in tasks if _days_until(t['due_date'], now) <= 3]
    if urgent:
        response = f"{first_name}, you have {len(urgent)} urgent task(s) due in 3 days or less:\n\n"
    else:
        response = f"You have {len(tasks)} pending task(s), {first_name}:\n\n"
    items = []
    for task in tasks[:5]:
        days = _days_until(task['due_date'], now)
        marker = '[!!]' if days <= 1 else '[!]' if days <= 3 else '[ ]'
        items.append(f"{marker} **{task['title']}** - {task['course_name']} ({task['course_code']}), "
                     f"due {task['due_date'].strftime('%A %d %B')} ({days} day{'s' if days != 1 else ''})")
    response += '\n'.join(items)
    response += ("\n\n**Tip:** " + ('Start with the urgent tasks and split the work into small parts.'
                                    if urgent else 'Plan your time and start with the earliest deadline.'))
    return response


def _grades_response(context, first_name):
    grades = context.get('grades') or []
    if not grades:
        return f"You have no grades yet, {first_name}. Your instructors will grade your submissions soon."
    average = average_percentage(grades)
    lines = []
    for g in grades:
        percentage = round(g['grade'] / g['max_grade'] * 100, 1) if g['max_grade'] else 0
        line = f"- **{g['title']}** ({g['course_name']}): {g['grade']}/{g['max_grade']} ({percentage}%)"
        if g.get('feedback'):
            line += f'\n  "{g["feedback"]}"'
        lines.append(line)
    response = f"Here are your recent grades, {first_name}:\n\n" + '\n'.join(lines)
    response += f"\n\n**Overall average:** {average}%\n\n"
    if average >= 85:
        response += 'Excellent work, keep it up!'
    elif average >= 70:
        response += 'Good progress. Ask your instructor or a study group about the topics you find hardest.'
    else:
        response += 'Keep going. Review the class material, ask your instructor and try a study group.'
    return response


def _schedule_response(context, first_name):
    sessions = context.get('schedules') or []
    if not sessions:
        return f"You have no class sessions scheduled yet, {first_name}."
    today = datetime.utcnow().strftime('%A').lower()
    todays = [s for s in sessions if s['day_of_week'] == today]
    header = (f"Today is **{today.capitalize()}**, you have {len(todays)} class(es):\n\n" if todays
              else f"Your weekly schedule, {first_name}:\n\n")
    lines = [f"- **{s['day_of_week'].capitalize()}**: {s['course_name']} {s['start_time']} - {s['end_time']}"
             + (f" ({s['location']})" if s.get('location') else '')
             for s in (todays or sessions)]
    return header + '\n'.join(lines)


def generate_fallback_response(message, context):
    """Rule based answer built from the user's own data"""
    text = (message or '').lower()
    first_name = _first_name(context)

    if _matches(text, 'grades'):
        return _grades_response(context, first_name)
    if _matches(text, 'tasks'):
        return _tasks_response(context, first_name)
    if _matches(text, 'schedule'):
        return _schedule_response(context, first_name)
    if _matches(text, 'courses'):
        return _courses_response(context, first_name, text)
    if _matches(text, 'help'):
        return random.choice(STUDY_TIPS)
    if _matches(text, 'thanks'):
        return f"You're welcome, {first_name}! Good luck with your studies."
    if any(text.startswith(k) for k in KEYWORDS['greeting']):
        hour = datetime.now().hour
        greeting = 'Good morning' if hour < 12 else 'Good afternoon' if hour < 19 else 'Good evening'
        return (f"{greeting}, {first_name}! I am the LICEA assistant.\n\n"
                "I can help you with your courses, tasks, grades, schedule and study tips.")

    summary = []
    if context.get('tasks'):
        summary.append(f"{len(context['tasks'])} pending task(s)")
    if context.get('courses'):
        summary.append(f"{len(context['courses'])} active course(s)")
    if summary:
        return (f'You asked about: "{message}"\n\nRight now you have:\n- ' + '\n- '.join(summary)
                + "\n\nAsk me about your courses, tasks, grades or schedule.")
    return (f"Hi {first_name}! I did not fully understand your question, but I can help with "
            "courses and enrollment, tasks and submissions, grades and study tips.")


def fallback_performance_analysis(context):
    average = average_percentage(context.get('grades') or []) or 0
    pending = len(context.get('tasks') or [])
    courses = context.get('courses') or []

    analysis = "**Performance analysis**\n\n"
    if average >= 85:
        analysis += f"Excellent work! Your average of {average:.1f}% is outstanding.\n\n"
    elif average >= 70:
        analysis += f"Good performance with a {average:.1f}% average. There is room to improve.\n\n"
    else:
        analysis += f"Your current average is {average:.1f}%. Focus on improving it.\n\n"
    analysis += "**Recommendations:**\n"
    analysis += f"1. {f'Prioritize your {pending} pending tasks' if pending else 'Keep up the pace with your submissions'}\n"
    analysis += f"2. Review the material of {courses[0]['name'] if courses else 'your courses'}\n"
    analysis += "3. Join a study group to collaborate"
    return analysis


def fallback_course_suggestions(course_name, stats):
    avg = stats['avg_grade'] if stats['avg_grade'] is not None else 'N/A'
    return (f"**Suggestions for {course_name}**\n\n"
            "**Current statistics:**\n"
            f"- {stats['students_count']} students\n"
            f"- Average: {avg}%\n"
            f"- Submission rate: {stats['submission_rate']}%\n\n"
            "**Recommendations:**\n"
            "1. Give feedback more frequently\n"
            "2. Create collaborative study groups\n"
            "3. Offer additional office hours")


def random_tip():
    return random.choice(DAILY_TIPS)
