"""
Submission Model

FLOW OVERVIEW
- Submission: a student's deliverable for a task (text, uploaded file or URL).
- Lifecycle: draft → submitted → graded. Only drafts are editable by the student.
- submit(): stamps submitted_at and is_late against the task due date.
- apply_grade(): records grade, feedback and graded_at.
"""

from datetime import datetime
from .database import db
from .utils import isoformat

STATUSES = ('draft', 'submitted', 'graded')


class Submission(db.Model):
    """Student submission for a task"""
    __tablename__ = 'submissions'

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(db.Integer, db.ForeignKey('tasks.id'), nullable=False, index=True)
    student_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    submission_text = db.Column(db.Text)
    file_path = db.Column(db.String(500))
    file_url = db.Column(db.String(500))
    status = db.Column(db.String(20), nullable=False, default='draft')
    grade = db.Column(db.Float)
    feedback = db.Column(db.Text)
    is_late = db.Column(db.Boolean, nullable=False, default=False)
    submitted_at = db.Column(db.DateTime)
    graded_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('task_id', 'student_id', name='unique_task_student'),
    )

    def __repr__(self):
        return f'<Submission {self.id}: task {self.task_id} by {self.student_id} ({self.status})>'

    def is_draft(self):
        return self.status == 'draft'

    def has_content(self):
        return bool(self.submission_text or self.file_path or self.file_url)

    def submit(self, when=None):
        when = when or datetime.utcnow()
        self.status = 'submitted'
        self.submitted_at = when
        self.is_late = self.task.is_past_due(when)

    def apply_grade(self, grade, feedback=None):
        self.grade = grade
        self.feedback = feedback
        self.status = 'graded'
        self.graded_at = datetime.utcnow()

    def percentage(self):
        if self.grade is None or not self.task or not self.task.max_grade:
            return None
        return round(self.grade / self.task.max_grade * 100, 2)

    def to_dict(self, include_student=True):
        data = {
            'id': self.id,
            'task_id': self.task_id,
            'student_id': self.student_id,
            'submission_text': self.submission_text,
            'file_path': self.file_path,
            'file_url': self.file_url,
            'has_file': bool(self.file_path),
            'status': self.status,
            'grade': self.grade,
            'feedback': self.feedback,
            'is_late': self.is_late,
            'submitted_at': isoformat(self.submitted_at),
            'graded_at': isoformat(self.graded_at),
            'created_at': isoformat(self.created_at),
        }
        if self.task is not None:
            data['task_title'] = self.task.title
            data['max_grade'] = self.task.max_grade
            data['course_id'] = self.task.course_id
        if include_student and self.student is not None:
            data['student_name'] = self.student.name
            data['student_email'] = self.student.email
        return data
