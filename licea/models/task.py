"""
Task Model

FLOW OVERVIEW
- Task: an assignment within a course with a due date and maximum grade.
- is_past_due / accepts_submission_at: late submission policy.
- statistics(): submission counts and average grade for instructors.
"""

from datetime import datetime
from .database import db
from .utils import isoformat

SUBMISSION_TYPES = ('file', 'text', 'both')


class Task(db.Model):
    """Assignment belonging to a course"""
    __tablename__ = 'tasks'

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False)
    instructions = db.Column(db.Text)
    course_id = db.Column(db.Integer, db.ForeignKey('courses.id'), nullable=False, index=True)
    due_date = db.Column(db.DateTime, nullable=False)
    max_grade = db.Column(db.Float, nullable=False, default=100)
    submission_type = db.Column(db.String(10), nullable=False, default='both')
    is_published = db.Column(db.Boolean, nullable=False, default=False)
    late_submission_allowed = db.Column(db.Boolean, nullable=False, default=True)
    late_penalty = db.Column(db.Float, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    submissions = db.relationship('Submission', backref='task', lazy=True,
                                  cascade='all, delete-orphan')
    schedule_entries = db.relationship('Schedule', backref='task', lazy=True,
                                       cascade='all, delete-orphan')

    def __repr__(self):
        return f'<Task {self.id}: {self.title}>'

    def is_past_due(self, when=None):
        return (when or datetime.utcnow()) > self.due_date

    def accepts_submission_at(self, when=None):
        return self.late_submission_allowed or not self.is_past_due(when)

    def statistics(self):
        submissions = self.submissions
        graded = [s.grade for s in submissions if s.status == 'graded' and s.grade is not None]
        return {
            'total_students': len(self.course.active_student_ids()),
            'total_submissions': len(submissions),
            'submitted_count': len([s for s in submissions if s.status in ('submitted', 'graded')]),
            'graded_count': len(graded),
            'average_grade': round(sum(graded) / len(graded), 2) if graded else None,
        }

    def to_dict(self):
        data = {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'instructions': self.instructions,
            'course_id': self.course_id,
            'due_date': isoformat(self.due_date),
            'max_grade': self.max_grade,
            'submission_type': self.submission_type,
            'is_published': self.is_published,
            'late_submission_allowed': self.late_submission_allowed,
            'late_penalty': self.late_penalty,
            'created_at': isoformat(self.created_at),
        }
        if self.course is not None:
            data['course_name'] = self.course.name
            data['course_code'] = self.course.code
        return data
