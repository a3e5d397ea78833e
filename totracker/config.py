"""
totracker
Configuration classes for the Flask app factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Default SQLite path for local dev when PostgreSQL is not running
_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'totracker_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Generate a random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)


def _database_url(raw: str) -> str:
    # Heroku-style postgres:// URLs are rejected by SQLAlchemy 2.0
    return raw.replace("postgres://", "postgresql://", 1)


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,   # recycle connections every 5 min
    }

    # Authentication
    # "local":    email/password accounts stored in this database
    # "external": bearer tokens minted by an external identity provider;
    #             registration and password login are disabled
    AUTH_PROVIDER = os.getenv("AUTH_PROVIDER", "local").lower()
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
    JWT_ACCESS_EXPIRES = int(os.getenv("JWT_ACCESS_EXPIRES", "3600"))
    EXTERNAL_AUTH_ISSUER = os.getenv("EXTERNAL_AUTH_ISSUER")
    EXTERNAL_AUTH_AUDIENCE = os.getenv("EXTERNAL_AUTH_AUDIENCE")
    EXTERNAL_AUTH_SECRET = os.getenv("EXTERNAL_AUTH_SECRET")
    BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

    # Rate limiting (Flask-Limiter); Redis in production, memory for dev
    RATELIMIT_STORAGE_URI = os.getenv("REDIS_URL", "memory://")

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    LOG_LEVEL = os.getenv("LOG_LEVEL")

    MAX_CONTENT_LENGTH = 1 * 1024 * 1024  # 1 MB


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = _database_url(_raw_db_url) if _raw_db_url else _SQLITE_DEV


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    SQLALCHEMY_ENGINE_OPTIONS = {}
    AUTH_PROVIDER = "local"
    JWT_SECRET_KEY = "test-jwt-secret-key-with-enough-bytes"
    BCRYPT_ROUNDS = 4
    RATELIMIT_ENABLED = False


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = _database_url(_raw_db_url) if _raw_db_url else None
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
