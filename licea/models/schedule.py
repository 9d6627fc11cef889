"""
Schedule Model

FLOW OVERVIEW
- Schedule rows come in two kinds (activity_type):
  • 'class': a recurring course session (day_of_week, start_time, end_time, location).
  • 'task': a per-student deadline entry created when a task is published.
- find_conflict: overlapping class session of the same course on the same day.
- sync_task_entries / remove_task_entries: keep deadline entries aligned with task publication.
"""

from datetime import datetime
from .database import db
from .utils import isoformat

DAYS_OF_WEEK = ('monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday')
SESSION_TYPES = ('lecture', 'lab', 'seminar', 'workshop', 'exam')
PRIORITIES = ('low', 'medium', 'high')


class Schedule(db.Model):
    """Course session or task deadline entry"""
    __tablename__ = 'schedules'

    id = db.Column(db.Integer, primary_key=True)
    course_id = db.Column(db.Integer, db.ForeignKey('courses.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True, index=True)
    task_id = db.Column(db.Integer, db.ForeignKey('tasks.id'), nullable=True)
    activity_type = db.Column(db.String(10), nullable=False, default='class')
    title = db.Column(db.String(255))
    description = db.Column(db.Text)
    day_of_week = db.Column(db.String(10))
    start_time = db.Column(db.String(8))  # HH:MM:SS
    end_time = db.Column(db.String(8))
    deadline = db.Column(db.DateTime)
    location = db.Column(db.String(255))
    session_type = db.Column(db.String(20), default='lecture')
    is_recurring = db.Column(db.Boolean, default=True)
    specific_date = db.Column(db.Date)
    notes = db.Column(db.Text)
    priority = db.Column(db.String(10), default='medium')
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f'<Schedule {self.id}: {self.activity_type} course {self.course_id}>'

    def day_index(self):
        return DAYS_OF_WEEK.index(self.day_of_week) if self.day_of_week in DAYS_OF_WEEK else len(DAYS_OF_WEEK)

    def to_dict(self):
        data = {
            'id': self.id,
            'course_id': self.course_id,
            'activity_type': self.activity_type,
            'title': self.title,
            'description': self.description,
            'day_of_week': self.day_of_week,
            'start_time': self.start_time,
            'end_time': self.end_time,
            'location': self.location,
            'session_type': self.session_type,
            'is_recurring': self.is_recurring,
            'specific_date': isoformat(self.specific_date),
            'notes': self.notes,
        }
        if self.activity_type == 'task':
            data.update({
                'user_id': self.user_id,
                'task_id': self.task_id,
                'deadline': isoformat(self.deadline),
                'priority': self.priority,
            })
        if self.course is not None:
            data['course_name'] = self.course.name
            data['course_code'] = self.course.code
        return data

    @classmethod
    def class_sessions(cls, course_ids):
        """Class sessions of the given courses ordered by weekday then start time"""
        if not course_ids:
            return []
        sessions = cls.query.filter(cls.course_id.in_(course_ids), cls.activity_type == 'class').all()
        return sorted(sessions, key=lambda s: (s.day_index(), s.start_time or ''))

    @classmethod
    def find_conflict(cls, course_id, day_of_week, start_time, end_time, exclude_id=None):
        """Return a class session of the course overlapping [start_time, end_time) on that day"""
        query = cls.query.filter(
            cls.course_id == course_id,
            cls.activity_type == 'class',
            cls.day_of_week == day_of_week,
            cls.start_time < end_time,
            cls.end_time > start_time,
        )
        if exclude_id is not None:
            query = query.filter(cls.id != exclude_id)
        return query.first()

    @classmethod
    def sync_task_entries(cls, task, student_ids):
        """Create or refresh one deadline entry per student for a published task"""
        existing = {entry.user_id: entry for entry in cls.query.filter_by(task_id=task.id).all()}
        for student_id in student_ids:
            entry = existing.get(student_id)
            if entry is None:
                entry = cls(course_id=task.course_id, user_id=student_id, task_id=task.id,
                            activity_type='task')
                db.session.add(entry)
            entry.title = task.title
            entry.description = task.description
            entry.deadline = task.due_date
            entry.priority = 'high'

    @classmethod
    def remove_task_entries(cls, task_id):
        return cls.query.filter_by(task_id=task_id).delete(synchronize_session=False)
