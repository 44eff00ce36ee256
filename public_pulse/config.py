"""
Public Pulse
Settings per environment, selected by ``APP_ENV``.

Usage:
    app.config.from_object(config[os.getenv("APP_ENV", "development")]())
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
instance_dir = os.path.join(basedir, "instance")

FIREBASE_JWKS_URL = (
    "https://www.googleapis.com/service_accounts/v1/jwk/"
    "securetoken@system.gserviceaccount.com"
)


def _env_bool(name, default="true"):
    return os.getenv(name, default).lower() in ("1", "true", "yes")


def _database_url(fallback=None):
    """``DATABASE_URL`` with the legacy ``postgres://`` scheme that SQLAlchemy 2 rejects fixed up."""
    url = os.getenv("DATABASE_URL")
    if not url:
        return fallback
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    return url


class Config:
    # Random per process unless set; sessions do not survive a restart
    SECRET_KEY = os.getenv("SECRET_KEY") or secrets.token_hex(32)
    DEBUG = False
    TESTING = False
    LOG_LEVEL = os.getenv("LOG_LEVEL")
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True, "pool_recycle": 300}

    # Flask-Limiter
    RATELIMIT_STORAGE_URI = os.getenv("REDIS_URL", "memory://")

    # Bearer tokens: JWKS (Firebase in production) or a shared HS256 secret
    IDENTITY_JWKS_URL = os.getenv("IDENTITY_JWKS_URL")
    IDENTITY_AUDIENCE = os.getenv("IDENTITY_AUDIENCE")
    IDENTITY_ISSUER = os.getenv("IDENTITY_ISSUER")
    IDENTITY_SHARED_SECRET = os.getenv("IDENTITY_SHARED_SECRET")

    STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "local")
    STORAGE_LOCAL_ROOT = os.getenv("STORAGE_LOCAL_ROOT", os.path.join(instance_dir, "uploads"))
    STORAGE_TIMEOUT_SECONDS = float(os.getenv("STORAGE_TIMEOUT_SECONDS", "10"))
    S3_BUCKET = os.getenv("S3_BUCKET")
    AWS_REGION = os.getenv("AWS_REGION")
    SIGNED_URL_EXPIRES = int(os.getenv("SIGNED_URL_EXPIRES", "3600"))

    MAX_IMAGE_BYTES = int(os.getenv("MAX_IMAGE_BYTES", str(5 * 1024 * 1024)))
    MAX_IMAGES_PER_ISSUE = int(os.getenv("MAX_IMAGES_PER_ISSUE", "10"))
    # Whole multipart body: every image plus 1 MiB of form fields
    MAX_CONTENT_LENGTH = MAX_IMAGE_BYTES * MAX_IMAGES_PER_ISSUE + 1024 * 1024

    ISSUE_ANALYSIS_ENABLED = _env_bool("ISSUE_ANALYSIS_ENABLED")
    LLM_CLASSIFIER_MODEL = os.getenv("LLM_CLASSIFIER_MODEL") or os.getenv(
        "LLM_DEFAULT_CHAT_MODEL", "gemini-2.5-flash")
    LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "15"))
    # Unconfigured providers fail the call (severity 5, no department) instead of using the stub
    LLM_STRICT_PROVIDERS = _env_bool("LLM_STRICT_PROVIDERS")
    PROMPTS_DIR = os.getenv("PROMPTS_DIR", os.path.join(basedir, "prompts"))


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url(
        f"sqlite:///{os.path.join(instance_dir, 'public_pulse_dev.db')}")


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False
    RATELIMIT_STORAGE_URI = "memory://"

    IDENTITY_JWKS_URL = None
    IDENTITY_AUDIENCE = None
    IDENTITY_ISSUER = None
    IDENTITY_SHARED_SECRET = "test-identity-secret-0123456789abcdef"

    STORAGE_BACKEND = "local"
    LLM_CLASSIFIER_MODEL = "local-stub"
    LLM_STRICT_PROVIDERS = False


class ProductionConfig(Config):
    SQLALCHEMY_DATABASE_URI = _database_url()
    # Empty means same-origin only; set explicitly per deployment
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")
    IDENTITY_JWKS_URL = os.getenv("IDENTITY_JWKS_URL", FIREBASE_JWKS_URL)
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_timeout": 20,
        "connect_args": {"options": "-c statement_timeout=30000"},
    }

    def __init__(self):
        missing = [name for name in ("DATABASE_URL", "SECRET_KEY") if not os.getenv(name)]
        if missing:
            raise RuntimeError(f"Production requires environment variables: {', '.join(missing)}")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
