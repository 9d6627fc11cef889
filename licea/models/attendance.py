"""
Attendance Model

FLOW OVERVIEW
- AttendanceRecord: one status per (course, student, date); marking the same
  day again updates the existing record.
- summarize(records): present/absent/late/excused counts and attendance rate.
"""

from datetime import datetime
from .database import db
from .utils import isoformat

ATTENDANCE_STATUSES = ('present', 'absent', 'late', 'excused')


def summarize(records):
    """Status counts over attendance records; rate is the share of present records"""
    counts = {f'{status}_count': 0 for status in ATTENDANCE_STATUSES}
    for record in records:
        counts[f'{record.status}_count'] += 1
    total = len(records)
    counts['total_sessions'] = total
    counts['attendance_rate'] = round(counts['present_count'] / total * 100, 2) if total else None
    return counts


class AttendanceRecord(db.Model):
    """Attendance of a student at a course session on a given date"""
    __tablename__ = 'attendance_records'

    id = db.Column(db.Integer, primary_key=True)
    course_id = db.Column(db.Integer, db.ForeignKey('courses.id'), nullable=False, index=True)
    student_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    attendance_date = db.Column(db.Date, nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False)
    notes = db.Column(db.Text)
    recorded_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    course = db.relationship('Course', backref=db.backref('attendance_records', lazy=True,
                                                          cascade='all, delete-orphan'))
    student = db.relationship('User', foreign_keys=[student_id],
                              backref=db.backref('attendance_records', lazy=True, cascade='all, delete-orphan'))

    __table_args__ = (
        db.UniqueConstraint('course_id', 'student_id', 'attendance_date', name='unique_attendance_day'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'course_id': self.course_id,
            'course_name': self.course.name if self.course else None,
            'student_id': self.student_id,
            'student_name': self.student.name if self.student else None,
            'attendance_date': isoformat(self.attendance_date),
            'status': self.status,
            'notes': self.notes,
            'recorded_by': self.recorded_by,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at),
        }

    @classmethod
    def mark(cls, course_id, student_id, attendance_date, status, notes=None, recorded_by=None):
        """Create or update the record for that day; the caller commits"""
        record = cls.query.filter_by(course_id=course_id, student_id=student_id,
                                     attendance_date=attendance_date).first()
        if record is None:
            record = cls(course_id=course_id, student_id=student_id, attendance_date=attendance_date)
            db.session.add(record)
        record.status = status
        record.notes = notes
        record.recorded_by = recorded_by
        return record
