"""
Course Models

FLOW OVERVIEW
- Course: catalog entry taught by one instructor with a bounded seat count.
  • has_capacity / active_student_ids helpers used by enrollment and notifications.
- Enrollment: student ↔ course link; unique per pair, status active/dropped.
"""

from datetime import datetime
from .database import db
from .utils import isoformat

LEVELS = ('beginner', 'intermediate', 'advanced')


class Course(db.Model):
    """Course offered on the platform"""
    __tablename__ = 'courses'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    code = db.Column(db.String(50), unique=True, nullable=False, index=True)
    instructor_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    category = db.Column(db.String(100))
    level = db.Column(db.String(20), nullable=False, default='beginner')
    credits = db.Column(db.Integer, nullable=False, default=3)
    max_students = db.Column(db.Integer, nullable=False, default=30)
    current_students = db.Column(db.Integer, nullable=False, default=0)
    start_date = db.Column(db.Date)
    end_date = db.Column(db.Date)
    syllabus = db.Column(db.Text)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    instructor = db.relationship('User', backref=db.backref('courses_taught', lazy=True))
    enrollments = db.relationship('Enrollment', backref='course', lazy=True,
                                  cascade='all, delete-orphan')
    tasks = db.relationship('Task', backref='course', lazy=True,
                            cascade='all, delete-orphan')
    schedules = db.relationship('Schedule', backref='course', lazy=True,
                                cascade='all, delete-orphan')

    def __repr__(self):
        return f'<Course {self.code}: {self.name}>'

    def has_capacity(self):
        return (self.current_students or 0) < self.max_students

    def is_owned_by(self, user):
        return user is not None and (user.role == 'admin' or self.instructor_id == user.id)

    def active_student_ids(self):
        return [e.student_id for e in self.enrollments if e.status == 'active']

    def to_dict(self, include_instructor=True):
        data = {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'code': self.code,
            'instructor_id': self.instructor_id,
            'category': self.category,
            'level': self.level,
            'credits': self.credits,
            'max_students': self.max_students,
            'current_students': self.current_students,
            'start_date': isoformat(self.start_date),
            'end_date': isoformat(self.end_date),
            'syllabus': self.syllabus,
            'is_active': self.is_active,
            'created_at': isoformat(self.created_at),
        }
        if include_instructor and self.instructor is not None:
            data['instructor_name'] = self.instructor.name
            data['instructor_email'] = self.instructor.email
        return data


class Enrollment(db.Model):
    """Student enrollment in a course"""
    __tablename__ = 'course_enrollments'

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    course_id = db.Column(db.Integer, db.ForeignKey('courses.id'), nullable=False)
    status = db.Column(db.String(20), nullable=False, default='active')
    enrolled_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('student_id', 'course_id', name='unique_student_course'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'student_id': self.student_id,
            'course_id': self.course_id,
            'status': self.status,
            'enrolled_at': isoformat(self.enrolled_at),
        }

    @classmethod
    def get_active(cls, student_id, course_id):
        return cls.query.filter_by(student_id=student_id, course_id=course_id, status='active').first()

    @classmethod
    def active_course_ids(cls, student_id):
        rows = cls.query.with_entities(cls.course_id).filter_by(student_id=student_id, status='active').all()
        return [row.course_id for row in rows]
