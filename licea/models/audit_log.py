"""
Audit Log Model

FLOW OVERVIEW
- Persists who performed which mutating action on which entity.
- create_log: helper used by the audit tap (utils/audit_logger.py).
- get_audit_logs: filtered, paginated listing joined with the acting user.
"""

from datetime import datetime
from .database import db, paginate_query
from .utils import isoformat, dump_json, load_json


class AuditLog(db.Model):
    """Record of a significant API action"""
    __tablename__ = 'audit_logs'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True, index=True)
    action = db.Column(db.String(50), nullable=False, index=True)
    entity_type = db.Column(db.String(50), nullable=False, index=True)
    entity_id = db.Column(db.Integer)
    old_values = db.Column(db.Text)
    new_values = db.Column(db.Text)
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.Text)
    status_code = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    user = db.relationship('User', lazy='joined')

    def __repr__(self):
        return f'<AuditLog {self.id}: {self.action} {self.entity_type}:{self.entity_id}>'

    def to_dict(self):
        data = {
            'id': self.id,
            'user_id': self.user_id,
            'action': self.action,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'old_values': load_json(self.old_values),
            'new_values': load_json(self.new_values),
            'ip_address': self.ip_address,
            'user_agent': self.user_agent,
            'status_code': self.status_code,
            'created_at': isoformat(self.created_at),
        }
        if self.user is not None:
            data['user_name'] = self.user.name
            data['user_email'] = self.user.email
            data['user_role'] = self.user.role
        return data

    @classmethod
    def create_log(cls, user_id, action, entity_type, entity_id=None, old_values=None,
                   new_values=None, ip_address=None, user_agent=None, status_code=None):
        """Create a new audit log entry in the current session"""
        entry = cls(
            user_id=user_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            old_values=dump_json(old_values),
            new_values=dump_json(new_values),
            ip_address=ip_address,
            user_agent=user_agent,
            status_code=status_code,
        )
        db.session.add(entry)
        return entry

    @classmethod
    def get_audit_logs(cls, filters=None, page=1, limit=50):
        """Return (logs, pagination) newest first, filtered by user, action, entity and date range"""
        filters = filters or {}
        query = cls.query
        if filters.get('user_id'):
            query = query.filter(cls.user_id == filters['user_id'])
        if filters.get('action'):
            query = query.filter(cls.action == filters['action'])
        if filters.get('entity_type'):
            query = query.filter(cls.entity_type == filters['entity_type'])
        if filters.get('start_date'):
            query = query.filter(cls.created_at >= filters['start_date'])
        if filters.get('end_date'):
            query = query.filter(cls.created_at <= filters['end_date'])
        query = query.order_by(cls.created_at.desc(), cls.id.desc())
        return paginate_query(query, page, limit)
