"""
AI Conversation Model

Stores each assistant exchange with the context that was sent to the model.
"""

from datetime import datetime
from .database import db
from .utils import isoformat, dump_json, load_json


class AIConversation(db.Model):
    """One user message and the assistant's reply"""
    __tablename__ = 'ai_conversations'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    user_message = db.Column(db.Text, nullable=False)
    ai_response = db.Column(db.Text, nullable=False)
    context_data = db.Column(db.Text)
    ai_source = db.Column(db.String(20), nullable=False, default='fallback')
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'user_message': self.user_message,
            'ai_response': self.ai_response,
            'context_data': load_json(self.context_data),
            'ai_source': self.ai_source,
            'created_at': isoformat(self.created_at),
        }

    @classmethod
    def record(cls, user_id, user_message, ai_response, context_data=None, ai_source='fallback'):
        entry = cls(user_id=user_id, user_message=user_message, ai_response=ai_response,
                    context_data=dump_json(context_data), ai_source=ai_source)
        db.session.add(entry)
        return entry

    @classmethod
    def history(cls, user_id, limit=20):
        return cls.query.filter_by(user_id=user_id).order_by(cls.created_at.desc(), cls.id.desc()).limit(limit).all()
