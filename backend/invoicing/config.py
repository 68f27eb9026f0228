# backend/invoicing/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///invoicing.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Access token signing. Loaded once by create_app() into TokenSettings.
    JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY", "dev-jwt-signing-key-change-me-32b!")
    JWT_ALGORITHM = "HS256"
    JWT_ISSUER = os.environ.get("JWT_ISSUER", "invoicing-api")
    JWT_AUDIENCE = os.environ.get("JWT_AUDIENCE", "invoicing-clients")
    ACCESS_TOKEN_TTL_MINUTES = int(os.environ.get("ACCESS_TOKEN_TTL_MINUTES", "60"))
    REFRESH_TOKEN_TTL_DAYS = int(os.environ.get("REFRESH_TOKEN_TTL_DAYS", "7"))
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))

    # Push delivery
    PUSH_ASYNC = _env_bool("PUSH_ASYNC", True)
    PUSH_QUEUE_SIZE = int(os.environ.get("PUSH_QUEUE_SIZE", "1000"))
    PUSH_WORKERS = int(os.environ.get("PUSH_WORKERS", "2"))
    PUSH_MAX_RETRIES = int(os.environ.get("PUSH_MAX_RETRIES", "2"))
    PUSH_RETRY_BACKOFF = float(os.environ.get("PUSH_RETRY_BACKOFF", "0.5"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    CORS_ALLOWED_ORIGINS = {
        "http://localhost:4200",
        "http://127.0.0.1:4200",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    }
