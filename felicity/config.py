import os
from datetime import timedelta

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _env_flag(name, default="false"):
    return os.getenv(name, default).lower() in ["true", "1", "t"]


class Config:
    # Database
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "postgresql://localhost/felicity")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # JWT (tokens are issued by the identity service, we only verify them)
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "your-secret-key")
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(days=1)
    JWT_TOKEN_LOCATION = ["headers"]
    JWT_HEADER_NAME = "Authorization"
    JWT_HEADER_TYPE = "Bearer"

    # Email configuration
    MAIL_SERVER = os.getenv("MAIL_SERVER")
    MAIL_PORT = int(os.getenv("MAIL_PORT", 587))
    MAIL_USE_TLS = _env_flag("MAIL_USE_TLS", "true")
    MAIL_USERNAME = os.getenv("MAIL_USERNAME")
    MAIL_PASSWORD = os.getenv("MAIL_PASSWORD")
    MAIL_SENDER_NAME = os.getenv("MAIL_SENDER_NAME", "Felicity Events")
    CLIENT_URL = os.getenv("CLIENT_URL", "http://localhost:5173")

    CORS_ORIGINS = os.getenv(
        "CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173"
    ).split(",")

    # Rate limiting
    RATELIMIT_ENABLED = True
    RATELIMIT_STORAGE_URI = os.getenv("LIMITER_DATABASE_URL", "memory://")
    RATELIMIT_DEFAULT = "150 per minute, 10000 per hour, 100000 per day"

    # Event status sweep
    SCHEDULER_ENABLED = _env_flag("SCHEDULER_ENABLED", "true")
    SCHEDULER_API_ENABLED = False
    STATUS_SWEEP_INTERVAL = int(os.getenv("STATUS_SWEEP_INTERVAL", 60))

    # Tickets
    TICKET_PREFIX = os.getenv("TICKET_PREFIX", "FEL")


class DevelopmentConfig(Config):
    DEBUG = True


class ProductionConfig(Config):
    DEBUG = False
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL")


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    JWT_SECRET_KEY = "testing-secret-key-with-enough-length-for-hs256"
    RATELIMIT_ENABLED = False
    SCHEDULER_ENABLED = False


config = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
    "default": DevelopmentConfig,
}
