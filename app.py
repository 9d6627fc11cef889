#!/usr/bin/env python3
"""
LICEA application entry point.

This module creates the Flask application via `create_app` using the
environment-based configuration and makes sure the database tables exist.
When executed directly, it runs the development server. In production, a WSGI
server should import `app` from this module.

Environment variables of interest:
- FLASK_ENV: selects config.env / config.prod.env ('testing' loads neither).
- DATABASE_URL: SQLAlchemy URI, defaults to a local SQLite file.
- PORT: development server port (default 5000).
- SECRET_KEY, JWT_SECRET_KEY, JWT_REFRESH_SECRET_KEY, MAIL_*, OLLAMA_*: consumed by `create_app`.
"""

import os
import logging

from licea import create_app
from licea.models import db

logger = logging.getLogger('licea')

app = create_app()

with app.app_context():
    db.create_all()
    logger.info(f"Database ready at {app.config['SQLALCHEMY_DATABASE_URI']}")

if __name__ == '__main__':
    app.run(debug=app.config.get('DEBUG', False), host='0.0.0.0', port=int(os.getenv('PORT', 5000)))
