"""
Course Group Models

FLOW OVERVIEW
- CourseGroup: study group inside a course, joined by members or by an
  8 character join code. Names are unique per course.
- GroupMember: membership row with role member/leader.
- GroupMessage: chat message posted by a member (or the course staff).
"""

import secrets
import string
from datetime import datetime
from .database import db
from .utils import isoformat

MEMBER_ROLES = ('member', 'leader')

JOIN_CODE_ALPHABET = string.ascii_uppercase + string.digits
JOIN_CODE_LENGTH = 8


def generate_join_code():
    """Random upper-case join code that is not used by another group"""
    while True:
        code = ''.join(secrets.choice(JOIN_CODE_ALPHABET) for _ in range(JOIN_CODE_LENGTH))
        if not CourseGroup.query.filter_by(join_code=code).first():
            return code


class CourseGroup(db.Model):
    """Study group belonging to a course"""
    __tablename__ = 'course_groups'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    course_id = db.Column(db.Integer, db.ForeignKey('courses.id'), nullable=False, index=True)
    description = db.Column(db.Text)
    max_members = db.Column(db.Integer, nullable=False, default=30)
    join_code = db.Column(db.String(10), unique=True, nullable=False, index=True)
    created_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    course = db.relationship('Course', backref=db.backref('groups', lazy=True, cascade='all, delete-orphan'))
    creator = db.relationship('User', foreign_keys=[created_by])
    members = db.relationship('GroupMember', backref='group', lazy=True, cascade='all, delete-orphan')
    messages = db.relationship('GroupMessage', backref='group', lazy='dynamic', cascade='all, delete-orphan')

    __table_args__ = (
        db.UniqueConstraint('course_id', 'name', name='unique_course_group_name'),
    )

    def __repr__(self):
        return f'<CourseGroup {self.id}: {self.name}>'

    def member_count(self):
        return len(self.members)

    def is_full(self):
        return self.member_count() >= self.max_members

    def get_member(self, user_id):
        for member in self.members:
            if member.student_id == user_id:
                return member
        return None

    def is_managed_by(self, user):
        """Course owner or admin"""
        return self.course.is_owned_by(user)

    def can_view(self, user):
        return self.is_managed_by(user) or self.get_member(user.id) is not None

    def to_dict(self, include_members=False):
        course = self.course
        data = {
            'id': self.id,
            'name': self.name,
            'course_id': self.course_id,
            'course_name': course.name if course else None,
            'course_code': course.code if course else None,
            'instructor_id': course.instructor_id if course else None,
            'instructor_name': course.instructor.name if course and course.instructor else None,
            'description': self.description,
            'max_members': self.max_members,
            'member_count': self.member_count(),
            'join_code': self.join_code,
            'created_by': self.created_by,
            'is_active': self.is_active,
            'created_at': isoformat(self.created_at),
        }
        if include_members:
            members = sorted(self.members, key=lambda m: m.student.name.lower())
            data['members'] = [m.to_dict() for m in members]
        return data


class GroupMember(db.Model):
    """Membership of a user in a course group"""
    __tablename__ = 'group_members'

    id = db.Column(db.Integer, primary_key=True)
    group_id = db.Column(db.Integer, db.ForeignKey('course_groups.id'), nullable=False, index=True)
    student_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    role = db.Column(db.String(20), nullable=False, default='member')
    joined_at = db.Column(db.DateTime, default=datetime.utcnow)

    student = db.relationship('User', backref=db.backref('group_memberships', lazy=True,
                                                         cascade='all, delete-orphan'))

    __table_args__ = (
        db.UniqueConstraint('group_id', 'student_id', name='unique_group_member'),
    )

    def to_dict(self):
        return {
            'id': self.student_id,
            'name': self.student.name,
            'email': self.student.email,
            'member_role': self.role,
            'joined_at': isoformat(self.joined_at),
        }


class GroupMessage(db.Model):
    """Message posted to a group chat"""
    __tablename__ = 'group_messages'

    id = db.Column(db.Integer, primary_key=True)
    group_id = db.Column(db.Integer, db.ForeignKey('course_groups.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    message = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    author = db.relationship('User', backref=db.backref('group_messages', lazy=True,
                                                        cascade='all, delete-orphan'))

    def to_dict(self):
        return {
            'id': self.id,
            'group_id': self.group_id,
            'user_id': self.user_id,
            'user_name': self.author.name if self.author else None,
            'user_email': self.author.email if self.author else None,
            'message': self.message,
            'created_at': isoformat(self.created_at),
        }

    @classmethod
    def history(cls, group_id, limit=100, before=None):
        """Latest `limit` messages (optionally older than id `before`), oldest first"""
        query = cls.query.filter(cls.group_id == group_id)
        if before is not None:
            query = query.filter(cls.id < before)
        rows = query.order_by(cls.created_at.desc(), cls.id.desc()).limit(limit).all()
        return list(reversed(rows))
