"""
Database Configuration

FLOW OVERVIEW
- Provides the global SQLAlchemy instance `db` used across all models.
- Initialized in app factory (licea/__init__.py) with app context.
- transaction()
  • Groups several writes into one unit: commit on success, rollback and re-raise on error.
- paginate_query(query, page, limit)
  • Returns (items, pagination dict) with page/limit/total/pages.
- SQLite connections run with PRAGMA foreign_keys=ON so references are enforced
  the same way as on MySQL or PostgreSQL.
"""

import logging
import math
import sqlite3
from contextlib import contextmanager
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

db = SQLAlchemy()


@event.listens_for(Engine, 'connect')
def enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute('PRAGMA foreign_keys=ON')
        cursor.close()


@contextmanager
def transaction():
    """Run the enclosed block as a single committed unit of work."""
    try:
        yield db.session
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("Transaction rolled back")
        raise


def paginate_query(query, page=1, limit=10):
    """Apply offset pagination to a query."""
    page = max(int(page or 1), 1)
    limit = max(int(limit or 10), 1)
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    pagination = {
        'page': page,
        'limit': limit,
        'total': total,
        'pages': math.ceil(total / limit) if total else 0,
    }
    return items, pagination
