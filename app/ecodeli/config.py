import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str

    jwt_secret: str
    jwt_expires_days: int
    app_base_url: str

    smtp_host: str
    smtp_port: int
    smtp_user: str
    smtp_pass: str
    smtp_from: str
    smtp_use_tls: bool

    onesignal_app_id: str
    onesignal_api_key: str

    stripe_secret_key: str
    stripe_publishable_key: str

    storage_backend: str
    storage_dir: str
    s3_endpoint: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def load_settings() -> Settings:
    secret_key = _getenv("SECRET_KEY", "change-me")
    return Settings(
        secret_key=secret_key,
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///ecodeli.db"),
        # Falls back to SECRET_KEY so a single secret is enough in dev.
        jwt_secret=_getenv("JWT_SECRET", secret_key),
        jwt_expires_days=_getenv_int("JWT_EXPIRES_DAYS", 7),
        app_base_url=_getenv("APP_BASE_URL", "http://localhost:3000"),
        smtp_host=_getenv("SMTP_HOST", ""),
        smtp_port=_getenv_int("SMTP_PORT", 587),
        smtp_user=_getenv("SMTP_USER", ""),
        smtp_pass=_getenv("SMTP_PASS", ""),
        smtp_from=_getenv("SMTP_FROM", ""),
        smtp_use_tls=_getenv("SMTP_USE_TLS", "1").lower() in ("1", "true", "yes"),
        onesignal_app_id=_getenv("ONESIGNAL_APP_ID", ""),
        onesignal_api_key=_getenv("ONESIGNAL_API_KEY", ""),
        stripe_secret_key=_getenv("STRIPE_SECRET_KEY", ""),
        stripe_publishable_key=_getenv("STRIPE_PUBLISHABLE_KEY", "") or _getenv("NEXT_PUBLIC_STRIPE_PUBLISHABLE_KEY", ""),
        storage_backend=_getenv("STORAGE_BACKEND", "local"),
        storage_dir=_getenv("STORAGE_DIR", ""),
        s3_endpoint=_getenv("S3_ENDPOINT", ""),
        s3_region=_getenv("S3_REGION", "eu-west-3"),
        s3_bucket=_getenv("S3_BUCKET", ""),
        s3_access_key_id=_getenv("S3_ACCESS_KEY_ID", ""),
        s3_secret_access_key=_getenv("S3_SECRET_ACCESS_KEY", ""),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "JWT_SECRET": s.jwt_secret,
        "JWT_EXPIRES_DAYS": s.jwt_expires_days,
        "APP_BASE_URL": s.app_base_url,
        "SMTP_HOST": s.smtp_host,
        "SMTP_PORT": s.smtp_port,
        "SMTP_USER": s.smtp_user,
        "SMTP_PASS": s.smtp_pass,
        "SMTP_FROM": s.smtp_from,
        "SMTP_USE_TLS": s.smtp_use_tls,
        "ONESIGNAL_APP_ID": s.onesignal_app_id,
        "ONESIGNAL_API_KEY": s.onesignal_api_key,
        "STRIPE_SECRET_KEY": s.stripe_secret_key,
        "STRIPE_PUBLISHABLE_KEY": s.stripe_publishable_key,
        "STORAGE_BACKEND": s.storage_backend,
        "STORAGE_DIR": s.storage_dir,
        "S3_ENDPOINT": s.s3_endpoint,
        "S3_REGION": s.s3_region,
        "S3_BUCKET": s.s3_bucket,
        "S3_ACCESS_KEY_ID": s.s3_access_key_id,
        "S3_SECRET_ACCESS_KEY": s.s3_secret_access_key,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        # JSON bodies only; 1MB is plenty
        "MAX_CONTENT_LENGTH": 1 * 1024 * 1024,
    }
