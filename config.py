"""Configuration module for Flask application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '1') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')
    TESTING = False

    # Session Configuration (Production-safe defaults)
    SESSION_COOKIE_SECURE = os.getenv('SESSION_COOKIE_SECURE', 'false').lower() == 'true'
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = os.getenv('SESSION_COOKIE_SAMESITE', 'Lax')
    PERMANENT_SESSION_LIFETIME = 86400  # 24 hours

    # CSRF (API clients send the token in the X-CSRFToken header)
    WTF_CSRF_ENABLED = os.getenv('WTF_CSRF_ENABLED', 'true').lower() == 'true'

    # Identity provider: header set by the trusted auth proxy in front of the app.
    # Empty disables header-based identity (session only).
    TRUSTED_IDENTITY_HEADER = os.getenv('TRUSTED_IDENTITY_HEADER', '')
    TRUSTED_IDENTITY_EMAIL_HEADER = os.getenv('TRUSTED_IDENTITY_EMAIL_HEADER', 'X-Identity-Email')
    TRUSTED_IDENTITY_NAME_HEADER = os.getenv('TRUSTED_IDENTITY_NAME_HEADER', 'X-Identity-Name')
    TRUSTED_IDENTITY_VERIFIED_HEADER = os.getenv('TRUSTED_IDENTITY_VERIFIED_HEADER', 'X-Identity-Email-Verified')
    AUTH_WAIT_ATTEMPTS = int(os.getenv('AUTH_WAIT_ATTEMPTS', '20'))
    AUTH_WAIT_INTERVAL = float(os.getenv('AUTH_WAIT_INTERVAL', '0.1'))

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'pos')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'pos')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'pos')

        DATABASE_URL = (
            f"postgresql://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', '0') == '1'

    # Store round-trips: connect/statement timeout in seconds
    STORE_TIMEOUT_SECONDS = int(os.getenv('STORE_TIMEOUT_SECONDS', '15'))

    # Sale pipeline: attempts on concurrent stock modification + base backoff (seconds)
    PIPELINE_MAX_ATTEMPTS = int(os.getenv('PIPELINE_MAX_ATTEMPTS', '3'))
    PIPELINE_RETRY_BACKOFF = float(os.getenv('PIPELINE_RETRY_BACKOFF', '0.05'))

    # Stock Configuration
    LOW_STOCK_THRESHOLD = int(os.getenv('LOW_STOCK_THRESHOLD', '10'))

    # Tax defaults used until the user saves their own settings
    DEFAULT_TAX_ENABLED = os.getenv('DEFAULT_TAX_ENABLED', 'true').lower() == 'true'
    DEFAULT_TAX_RATE = os.getenv('DEFAULT_TAX_RATE', '0.19')
    DEFAULT_TAX_NAME = os.getenv('DEFAULT_TAX_NAME', 'IVA')

    # Redis Cache Configuration
    # Shared cache layer for report reads + change notifications for snapshot feeds
    REDIS_URL = os.getenv('REDIS_URL', 'redis://redis:6379/0')
    CACHE_ENABLED = os.getenv('CACHE_ENABLED', 'true').lower() == 'true'
    CACHE_DEFAULT_TTL = int(os.getenv('CACHE_DEFAULT_TTL', '60'))  # seconds
    CACHE_REPORTS_TTL = int(os.getenv('CACHE_REPORTS_TTL', '120'))
    CACHE_KEY_PREFIX = os.getenv('CACHE_KEY_PREFIX', 'pos')

    # Real-time sync: fallback polling interval when pub/sub is not available
    SNAPSHOT_POLL_INTERVAL = float(os.getenv('SNAPSHOT_POLL_INTERVAL', '2.0'))


class TestConfig(Config):
    """Configuration for the test suite (in-memory SQLite, no Redis)."""

    TESTING = True
    DEBUG = False
    ENV = 'testing'
    SECRET_KEY = 'test-secret-key'
    WTF_CSRF_ENABLED = False
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_ECHO = False
    CACHE_ENABLED = False
    PIPELINE_RETRY_BACKOFF = 0.0
    AUTH_WAIT_ATTEMPTS = 3
    AUTH_WAIT_INTERVAL = 0.0
    SNAPSHOT_POLL_INTERVAL = 0.0
    TRUSTED_IDENTITY_HEADER = 'X-Identity-Sub'
