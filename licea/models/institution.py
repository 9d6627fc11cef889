"""
Institution Model

FLOW OVERVIEW
- Institution: school or university a user belongs to (users.institution_id).
- The public listing only exposes active institutions; deletion deactivates
  institutions that still have users and removes the others.
"""

from datetime import datetime
from .database import db
from .utils import isoformat

PUBLIC_FIELDS = ('id', 'name', 'code', 'type', 'city', 'country', 'logo_url')


class Institution(db.Model):
    """Educational institution"""
    __tablename__ = 'institutions'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(50), unique=True, nullable=False, index=True)
    type = db.Column(db.String(50))
    city = db.Column(db.String(100))
    country = db.Column(db.String(100), default='Colombia')
    logo_url = db.Column(db.String(500))
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    users = db.relationship('User', backref='institution', lazy='dynamic')

    def __repr__(self):
        return f'<Institution {self.code}: {self.name}>'

    def user_count(self):
        return self.users.count()

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'code': self.code,
            'type': self.type,
            'city': self.city,
            'country': self.country,
            'logo_url': self.logo_url,
            'is_active': self.is_active,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at),
        }

    def to_public_dict(self):
        data = self.to_dict()
        return {key: data[key] for key in PUBLIC_FIELDS}

    @classmethod
    def get_active(cls, institution_id):
        return cls.query.filter_by(id=institution_id, is_active=True).first()
