"""
Application Configuration

FLOW OVERVIEW
- Config.__init__
  • Reads FLASK_ENV to select which .env file to load (dev/prod). Testing bypasses file load.
- Properties expose configuration values, defaulting to sensible development-safe defaults.
  • Auth: JWT secrets and lifetimes, bcrypt rounds, login lockout policy.
  • Infrastructure: database, mail, CORS, uploads, error log file, rate limits.
  • Assistant: Ollama endpoint, model and timeout.
"""

import os
from dotenv import load_dotenv


def _env_bool(name, default):
    return os.getenv(name, default).lower() == 'true'


class Config:
    """Base configuration class"""

    def __init__(self):
        env_file = os.getenv('FLASK_ENV', 'development')
        if env_file == 'testing':
            pass
        elif env_file == 'production':
            load_dotenv('config.prod.env')
        else:
            load_dotenv('config.env')

    @property
    def ENV(self):
        return os.getenv('FLASK_ENV', 'development')

    @property
    def DEBUG(self):
        return _env_bool('FLASK_DEBUG', 'False')

    @property
    def SECRET_KEY(self):
        """Application secret key"""
        return os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')

    # Database

    @property
    def SQLALCHEMY_DATABASE_URI(self):
        """Database connection URI"""
        return os.getenv('DATABASE_URL', 'sqlite:///licea.db')

    @property
    def SQLALCHEMY_TRACK_MODIFICATIONS(self):
        return False

    @property
    def SQLALCHEMY_ENGINE_OPTIONS(self):
        """Connection pool settings"""
        return {
            'pool_pre_ping': True,
            'pool_recycle': int(os.getenv('DB_POOL_RECYCLE', 280)),
        }

    # Authentication

    @property
    def JWT_SECRET_KEY(self):
        """Secret used to sign access tokens"""
        return os.getenv('JWT_SECRET_KEY', 'jwt-secret-key-change-in-production')

    @property
    def JWT_REFRESH_SECRET_KEY(self):
        """Secret used to sign refresh tokens"""
        return os.getenv('JWT_REFRESH_SECRET_KEY', 'jwt-refresh-secret-key-change-in-production')

    @property
    def JWT_ACCESS_TOKEN_EXPIRES(self):
        """Access token lifetime in seconds (15 minutes)"""
        return int(os.getenv('JWT_ACCESS_TOKEN_EXPIRES', 900))

    @property
    def JWT_REFRESH_TOKEN_EXPIRES(self):
        """Refresh token lifetime in seconds (7 days)"""
        return int(os.getenv('JWT_REFRESH_TOKEN_EXPIRES', 604800))

    @property
    def BCRYPT_LOG_ROUNDS(self):
        return int(os.getenv('BCRYPT_LOG_ROUNDS', 12))

    @property
    def MAX_LOGIN_ATTEMPTS(self):
        """Failed logins allowed before the account is locked"""
        return int(os.getenv('MAX_LOGIN_ATTEMPTS', 5))

    @property
    def LOCKOUT_DURATION(self):
        """Lockout duration in minutes"""
        return int(os.getenv('LOCKOUT_DURATION', 15))

    # Mail

    @property
    def MAIL_SERVER(self):
        """Mail server hostname, mail is disabled when unset"""
        return os.getenv('MAIL_SERVER')

    @property
    def MAIL_PORT(self):
        return int(os.getenv('MAIL_PORT', 587))

    @property
    def MAIL_USE_TLS(self):
        return _env_bool('MAIL_USE_TLS', 'True')

    @property
    def MAIL_USE_SSL(self):
        return _env_bool('MAIL_USE_SSL', 'False')

    @property
    def MAIL_USERNAME(self):
        return os.getenv('MAIL_USERNAME')

    @property
    def MAIL_PASSWORD(self):
        return os.getenv('MAIL_PASSWORD')

    @property
    def MAIL_DEFAULT_SENDER(self):
        return os.getenv('MAIL_DEFAULT_SENDER', 'LICEA <noreply@licea.edu>')

    @property
    def FRONTEND_URL(self):
        """Base URL used in links sent by email"""
        return os.getenv('FRONTEND_URL', 'http://localhost:3000')

    @property
    def CORS_ORIGINS(self):
        """Comma separated list of allowed origins"""
        return [o.strip() for o in os.getenv('CORS_ORIGINS', 'http://localhost:3000').split(',') if o.strip()]

    # Uploads and logging

    @property
    def UPLOAD_FOLDER(self):
        return os.getenv('UPLOAD_FOLDER', os.path.abspath('uploads'))

    @property
    def MAX_CONTENT_LENGTH(self):
        """Maximum request body size (10MB)"""
        return int(os.getenv('MAX_FILE_SIZE', 10 * 1024 * 1024))

    @property
    def ERROR_LOG_FILE(self):
        """JSON lines file receiving every handled error"""
        return os.getenv('ERROR_LOG_FILE', os.path.join('logs', 'errors.log'))

    @property
    def LOG_LEVEL(self):
        return os.getenv('LOG_LEVEL', 'INFO')

    # Rate limiting

    @property
    def RATE_LIMIT_ENABLED(self):
        return _env_bool('RATE_LIMIT_ENABLED', 'True')

    @property
    def RATE_LIMIT_WINDOW(self):
        """Global API rate limit window in minutes"""
        return int(os.getenv('RATE_LIMIT_WINDOW', 15))

    @property
    def RATE_LIMIT_MAX_REQUESTS(self):
        """Requests per client IP per window on /api"""
        return int(os.getenv('RATE_LIMIT_MAX_REQUESTS', 100))

    # AI assistant

    @property
    def OLLAMA_URL(self):
        return os.getenv('OLLAMA_URL', 'http://localhost:11434')

    @property
    def OLLAMA_MODEL(self):
        return os.getenv('OLLAMA_MODEL', 'llama2')

    @property
    def OLLAMA_TIMEOUT(self):
        """Generation timeout in seconds"""
        return int(os.getenv('OLLAMA_TIMEOUT', 60))

    @property
    def ASSISTANT_LANGUAGE(self):
        """Language the assistant is instructed to answer in"""
        return os.getenv('ASSISTANT_LANGUAGE', 'Spanish')
