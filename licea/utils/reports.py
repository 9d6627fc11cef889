"""
Report Builders

FLOW OVERVIEW
- Grades are compared as percentages of the task max_grade; a percentage of
  PASSING_PERCENTAGE or more counts as passing.
- admin_dashboard / instructor_dashboard / student_dashboard(user)
  • Role specific counters, per course performance and upcoming deadlines.
- course_performance(course), course_attendance(course, start, end)
- student_performance(student)
- performance_trends(user, course_id, period_days)
  • Average percentage per grading day and the distribution over GRADE_BANDS.
- course_export(course)
  • One flat row per enrolled student for spreadsheet export.
"""

from collections import defaultdict
from datetime import datetime, timedelta

from sqlalchemy import func

from ..models import (
    db, User, Course, Enrollment, Task, Submission, AttendanceRecord, CourseGroup, Institution
)
from ..models.attendance import summarize

PASSING_PERCENTAGE = 60.0

GRADE_BANDS = (
    (90, 'Excellent (90-100%)'),
    (80, 'Outstanding (80-89%)'),
    (70, 'Good (70-79%)'),
    (60, 'Acceptable (60-69%)'),
    (40, 'Insufficient (40-59%)'),
    (0, 'Deficient (0-39%)'),
)

UPCOMING_LIMIT = 10
GRADE_HISTORY_LIMIT = 50
ATTENDANCE_TREND_DAYS = 30


def _mean(values):
    values = [v for v in values if v is not None]
    return round(sum(values) / len(values), 2) if values else None


def grade_band(percentage):
    for lower, label in GRADE_BANDS:
        if percentage >= lower:
            return label
    return GRADE_BANDS[-1][1]


def grade_summary(submissions):
    """Average percentage and passing/failing counts over graded submissions"""
    percentages = [s.percentage() for s in submissions if s.status == 'graded']
    percentages = [p for p in percentages if p is not None]
    return {
        'average': _mean(percentages),
        'graded_count': len(percentages),
        'passing_count': len([p for p in percentages if p >= PASSING_PERCENTAGE]),
        'failing_count': len([p for p in percentages if p < PASSING_PERCENTAGE]),
    }


def _published_tasks(course):
    return [t for t in course.tasks if t.is_published]


def _active_students(course):
    return (User.query.join(Enrollment, Enrollment.student_id == User.id)
            .filter(Enrollment.course_id == course.id, Enrollment.status == 'active')
            .order_by(User.name.asc())
            .all())


def student_course_performance(student_id, course, now=None):
    """Task counts and grades of one student in one course"""
    now = now or datetime.utcnow()
    tasks = _published_tasks(course)
    by_task = {s.task_id: s for t in tasks for s in t.submissions if s.student_id == student_id}
    sent = [s for s in by_task.values() if s.status != 'draft']
    grades = grade_summary(by_task.values())
    overdue = [t for t in tasks if t.is_past_due(now) and (t.id not in by_task or by_task[t.id].is_draft())]
    return {
        'course_id': course.id,
        'course_name': course.name,
        'course_code': course.code,
        'total_tasks': len(tasks),
        'submitted_tasks': len(sent),
        'course_average': grades['average'],
        'passing_tasks': grades['passing_count'],
        'failing_tasks': grades['failing_count'],
        'overdue_tasks': len(overdue),
    }


def admin_dashboard(now=None):
    now = now or datetime.utcnow()
    graded = Submission.query.filter(Submission.status == 'graded').all()
    grades = grade_summary(graded)

    since = (now.replace(day=1) - timedelta(days=365)).replace(day=1)
    trend = defaultdict(int)
    for (enrolled_at,) in db.session.query(Enrollment.enrolled_at).filter(Enrollment.enrolled_at >= since):
        trend[enrolled_at.strftime('%Y-%m')] += 1

    return {
        'general': {
            'total_students': User.query.filter_by(role='student', is_active=True).count(),
            'total_instructors': User.query.filter_by(role='instructor', is_active=True).count(),
            'total_courses': Course.query.filter_by(is_active=True).count(),
            'total_tasks': Task.query.filter_by(is_published=True).count(),
            'total_submissions': Submission.query.filter_by(status='submitted').count(),
            'total_groups': CourseGroup.query.filter_by(is_active=True).count(),
            'total_institutions': Institution.query.filter_by(is_active=True).count(),
        },
        'performance': {
            'overall_average': grades['average'],
            'students_with_grades': len({s.student_id for s in graded}),
            'passing_submissions': grades['passing_count'],
            'failing_submissions': grades['failing_count'],
        },
        'enrollment_trend': [{'month': month, 'enrollments': trend[month]} for month in sorted(trend)],
    }


def instructor_dashboard(user):
    courses = Course.query.filter_by(instructor_id=user.id, is_active=True).order_by(Course.name.asc()).all()
    students = set()
    published = 0
    pending = 0
    performance = []
    for course in courses:
        student_ids = course.active_student_ids()
        students.update(student_ids)
        tasks = _published_tasks(course)
        published += len(tasks)
        submissions = [s for t in tasks for s in t.submissions if s.student_id in student_ids]
        pending += len([s for t in course.tasks for s in t.submissions if s.status == 'submitted'])
        grades = grade_summary(submissions)
        performance.append({
            'course_id': course.id,
            'course_name': course.name,
            'course_code': course.code,
            'enrolled_students': len(student_ids),
            'average_grade': grades['average'],
            'passing_count': grades['passing_count'],
            'failing_count': grades['failing_count'],
        })

    return {
        'instructor': {
            'my_courses': len(courses),
            'my_students': len(students),
            'my_tasks': published,
            'pending_grading': pending,
        },
        'course_performance': performance,
    }


def student_dashboard(user, now=None):
    now = now or datetime.utcnow()
    course_ids = Enrollment.active_course_ids(user.id)
    courses = Course.query.filter(Course.id.in_(course_ids)).order_by(Course.name.asc()).all() if course_ids else []
    submissions = Submission.query.filter_by(student_id=user.id).all()

    upcoming = []
    if course_ids:
        mine = {s.task_id: s for s in submissions}
        tasks = (Task.query.filter(Task.course_id.in_(course_ids), Task.is_published.is_(True), Task.due_date > now)
                 .order_by(Task.due_date.asc()).all())
        for task in tasks:
            submission = mine.get(task.id)
            if submission is not None and not submission.is_draft():
                continue
            upcoming.append({
                'id': task.id,
                'title': task.title,
                'due_date': task.due_date.isoformat(),
                'course_name': task.course.name,
                'submission_status': submission.status if submission else None,
            })
            if len(upcoming) == UPCOMING_LIMIT:
                break

    return {
        'student': {
            'my_courses': len(courses),
            'my_submissions': len([s for s in submissions if s.status != 'draft']),
            'my_average': grade_summary(submissions)['average'],
        },
        'my_performance': [student_course_performance(user.id, course, now) for course in courses],
        'upcoming_tasks': upcoming,
    }


def course_performance(course, now=None):
    now = now or datetime.utcnow()
    students = _active_students(course)
    student_ids = {s.id for s in students}
    tasks = _published_tasks(course)
    submissions = [s for t in tasks for s in t.submissions if s.student_id in student_ids]
    grades = grade_summary(submissions)

    student_rows = []
    for student in students:
        row = student_course_performance(student.id, course, now)
        student_rows.append({
            'student_id': student.id,
            'student_name': student.name,
            'student_email': student.email,
            'assigned_tasks': row['total_tasks'],
            'submitted_tasks': row['submitted_tasks'],
            'student_average': row['course_average'],
            'passing_tasks': row['passing_tasks'],
            'failing_tasks': row['failing_tasks'],
            'overdue_tasks': row['overdue_tasks'],
        })
    student_rows.sort(key=lambda r: (r['student_average'] is None, -(r['student_average'] or 0),
                                     r['student_name'].lower()))

    task_rows = []
    for task in sorted(tasks, key=lambda t: t.due_date, reverse=True):
        task_submissions = [s for s in task.submissions if s.student_id in student_ids]
        values = [s.grade for s in task_submissions if s.status == 'graded' and s.grade is not None]
        task_rows.append({
            'task_id': task.id,
            'task_title': task.title,
            'due_date': task.due_date.isoformat(),
            'max_grade': task.max_grade,
            'total_students': len(student_ids),
            'submissions_count': len([s for s in task_submissions if s.status != 'draft']),
            'graded_count': len(values),
            'task_average': _mean(values),
            'lowest_grade': min(values) if values else None,
            'highest_grade': max(values) if values else None,
        })

    return {
        'course_stats': {
            'course_id': course.id,
            'course_name': course.name,
            'course_code': course.code,
            'total_students': len(students),
            'total_tasks': len(tasks),
            'total_submissions': len([s for s in submissions if s.status != 'draft']),
            'course_average': grades['average'],
            'passing_submissions': grades['passing_count'],
            'failing_submissions': grades['failing_count'],
        },
        'student_performance': student_rows,
        'task_performance': task_rows,
    }


def course_attendance(course, start_date=None, end_date=None):
    students = _active_students(course)
    student_ids = {s.id for s in students}
    query = AttendanceRecord.query.filter(AttendanceRecord.course_id == course.id)
    if start_date is not None:
        query = query.filter(AttendanceRecord.attendance_date >= start_date)
    if end_date is not None:
        query = query.filter(AttendanceRecord.attendance_date <= end_date)
    records = [r for r in query.all() if r.student_id in student_ids]

    by_student = defaultdict(list)
    by_date = defaultdict(list)
    for record in records:
        by_student[record.student_id].append(record)
        by_date[record.attendance_date].append(record)

    stats = []
    for student in students:
        if not by_student[student.id]:
            continue
        stats.append(dict(student_id=student.id, student_name=student.name, student_email=student.email,
                          **summarize(by_student[student.id])))
    stats.sort(key=lambda r: (-r['attendance_rate'], r['student_name'].lower()))

    trend = []
    for day in sorted(by_date, reverse=True)[:ATTENDANCE_TREND_DAYS]:
        counts = summarize(by_date[day])
        present = counts['present_count']
        trend.append({
            'date': day.isoformat(),
            'enrolled_students': len(students),
            'present_count': present,
            'absent_count': counts['absent_count'],
            'late_count': counts['late_count'],
            'excused_count': counts['excused_count'],
            'daily_attendance_rate': round(present / len(students) * 100, 2) if students else None,
        })

    return {'attendance_stats': stats, 'attendance_trend': trend}


def student_performance(student, now=None):
    now = now or datetime.utcnow()
    course_ids = Enrollment.active_course_ids(student.id)
    courses = Course.query.filter(Course.id.in_(course_ids)).order_by(Course.name.asc()).all() if course_ids else []
    graded = (Submission.query.filter_by(student_id=student.id, status='graded')
              .order_by(Submission.graded_at.desc()).all())

    attendance = []
    for course in courses:
        records = AttendanceRecord.query.filter_by(course_id=course.id, student_id=student.id).all()
        if records:
            attendance.append(dict(course_id=course.id, course_name=course.name, course_code=course.code,
                                   **summarize(records)))

    history = []
    for submission in graded[:GRADE_HISTORY_LIMIT]:
        task = submission.task
        history.append({
            'submission_id': submission.id,
            'grade': submission.grade,
            'max_grade': task.max_grade,
            'percentage': submission.percentage(),
            'graded_at': submission.graded_at.isoformat() if submission.graded_at else None,
            'task_title': task.title,
            'course_name': task.course.name,
            'course_code': task.course.code,
        })

    return {
        'student_info': {
            'id': student.id,
            'name': student.name,
            'email': student.email,
            'registration_date': student.registration_date.isoformat() if student.registration_date else None,
            'last_login': student.last_login.isoformat() if student.last_login else None,
            'enrolled_courses': len(courses),
            'total_submissions': len(graded),
            'overall_average': grade_summary(graded)['average'],
        },
        'course_performance': [student_course_performance(student.id, course, now) for course in courses],
        'grade_history': history,
        'attendance_stats': attendance,
    }


def performance_trends(user, course_id=None, period_days=30, now=None):
    """Grading trend and grade band distribution visible to `user`"""
    now = now or datetime.utcnow()
    query = (Submission.query.join(Task, Task.id == Submission.task_id)
             .join(Course, Course.id == Task.course_id)
             .filter(Submission.status == 'graded', Submission.grade.isnot(None),
                     Submission.graded_at >= now - timedelta(days=period_days)))
    if user.role == 'instructor':
        query = query.filter(Course.instructor_id == user.id)
    elif user.role == 'student':
        query = query.filter(Submission.student_id == user.id)
    if course_id is not None:
        query = query.filter(Course.id == course_id)

    by_day = defaultdict(list)
    bands = defaultdict(int)
    for submission in query.all():
        percentage = submission.percentage()
        if percentage is None:
            continue
        by_day[submission.graded_at.date()].append(percentage)
        bands[grade_band(percentage)] += 1

    return {
        'performance_trend': [
            {'grade_date': day.isoformat(), 'average_grade': _mean(values), 'submissions_count': len(values)}
            for day, values in sorted(by_day.items())
        ],
        'grade_distribution': [
            {'grade_range': label, 'count': bands[label]} for _, label in GRADE_BANDS if bands[label]
        ],
    }


def course_export(course, now=None):
    now = now or datetime.utcnow()
    enrolled_at = dict(db.session.query(Enrollment.student_id, Enrollment.enrolled_at)
                       .filter(Enrollment.course_id == course.id, Enrollment.status == 'active').all())
    present = dict(db.session.query(AttendanceRecord.student_id, func.count(AttendanceRecord.id))
                   .filter(AttendanceRecord.course_id == course.id, AttendanceRecord.status == 'present')
                   .group_by(AttendanceRecord.student_id).all())
    totals = dict(db.session.query(AttendanceRecord.student_id, func.count(AttendanceRecord.id))
                  .filter(AttendanceRecord.course_id == course.id)
                  .group_by(AttendanceRecord.student_id).all())

    rows = []
    for student in _active_students(course):
        performance = student_course_performance(student.id, course, now)
        total = totals.get(student.id, 0)
        rows.append({
            'name': student.name,
            'email': student.email,
            'enrollment_date': enrolled_at[student.id].isoformat() if enrolled_at.get(student.id) else None,
            'assigned_tasks': performance['total_tasks'],
            'submitted_tasks': performance['submitted_tasks'],
            'average': performance['course_average'],
            'passed_tasks': performance['passing_tasks'],
            'failed_tasks': performance['failing_tasks'],
            'attendance_rate': round(present.get(student.id, 0) / total * 100, 2) if total else 0,
        })

    return {
        'course_name': course.name,
        'course_code': course.code,
        'students': rows,
        'export_date': now.isoformat(),
    }
