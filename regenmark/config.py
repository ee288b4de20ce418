"""
RegenMark Certification Engine
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name]())
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Default SQLite path for local dev when PostgreSQL is not running
_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'regenmark_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Generate a random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
    }

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Rate limiting
    RATELIMIT_STORAGE_URI = os.getenv("REDIS_URL", "memory://")
    REGENMARK_API_RATE_LIMIT = os.getenv("REGENMARK_API_RATE_LIMIT", "60/minute")
    REGENMARK_ADMIN_RATE_LIMIT = os.getenv("REGENMARK_ADMIN_RATE_LIMIT", "200/minute")

    # Certification lifecycle
    REGENMARK_VALIDITY_MONTHS = int(os.getenv("REGENMARK_VALIDITY_MONTHS", "12"))
    REGENMARK_EXPIRING_SOON_DAYS = int(os.getenv("REGENMARK_EXPIRING_SOON_DAYS", "60"))
    REGENMARK_APPROVAL_THRESHOLD = int(os.getenv("REGENMARK_APPROVAL_THRESHOLD", "60"))

    # Optional overrides of the scoring tables, e.g.
    # {"CARBON_SAVER": 0.25, "WATER_GUARDIAN": 0.3, ...}. None keeps defaults.
    REGENMARK_TYPE_WEIGHTS = None
    REGENMARK_TIERS = None

    # Evidence uploads (local document storage)
    REGENMARK_UPLOAD_DIR = os.getenv(
        "REGENMARK_UPLOAD_DIR", os.path.join(basedir, "instance", "uploads", "regenmarks"),
    )
    REGENMARK_UPLOAD_URL_PREFIX = os.getenv("REGENMARK_UPLOAD_URL_PREFIX", "/uploads/regenmarks")


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = (
        _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else _SQLITE_DEV
    )


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    # Railway/Heroku use postgres:// but SQLAlchemy 2.0 requires postgresql://
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else None
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # Must be set explicitly in production

    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
        "connect_args": {
            "options": "-c statement_timeout=30000",  # 30s query timeout
        },
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
