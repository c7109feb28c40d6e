import os
from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import BaseModel


class Settings(BaseModel):
    database_url: Optional[str] = None
    database_name: str = "edu_community"
    jwt_secret: str = "dev-secret-key-change-me"
    access_token_expire_minutes: int = 60 * 24
    upload_dir: str = os.path.join(os.getcwd(), "uploads")
    app_url: str = "http://localhost:8000"
    consistency_mode: Literal["best_effort", "compensate", "reconcile"] = "best_effort"
    email_provider: Literal["console", "smtp", "resend"] = "console"
    resend_api_key: Optional[str] = None
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_from: str = "noreply@example.com"
    admin_email: Optional[str] = None
    admin_password: Optional[str] = None
    log_level: str = "INFO"


def load_settings() -> Settings:
    env = os.environ
    values = {
        "database_url": env.get("DATABASE_URL"),
        "database_name": env.get("DATABASE_NAME"),
        "jwt_secret": env.get("JWT_SECRET"),
        "access_token_expire_minutes": env.get("ACCESS_TOKEN_EXPIRE_MINUTES"),
        "upload_dir": env.get("UPLOAD_DIR"),
        "app_url": env.get("APP_URL"),
        "consistency_mode": env.get("CONSISTENCY_MODE"),
        "email_provider": env.get("EMAIL_PROVIDER"),
        "resend_api_key": env.get("RESEND_API_KEY"),
        "smtp_host": env.get("SMTP_HOST"),
        "smtp_port": env.get("SMTP_PORT"),
        "smtp_user": env.get("SMTP_USER"),
        "smtp_password": env.get("SMTP_PASSWORD"),
        "smtp_from": env.get("SMTP_FROM"),
        "admin_email": env.get("ADMIN_EMAIL"),
        "admin_password": env.get("ADMIN_PASSWORD"),
        "log_level": env.get("LOG_LEVEL"),
    }
    # unset variables fall back to the model defaults
    return Settings(**{k: v for k, v in values.items() if v is not None})


@lru_cache()
def get_settings() -> Settings:
    return load_settings()


def missing_settings(settings: Settings) -> List[str]:
    """Presence-only check of the variables a deployment needs."""
    missing = []
    if not settings.database_url:
        missing.append("DATABASE_URL")
    if settings.jwt_secret == Settings().jwt_secret:
        missing.append("JWT_SECRET")
    if settings.email_provider == "resend" and not settings.resend_api_key:
        missing.append("RESEND_API_KEY")
    if settings.email_provider == "smtp" and not settings.smtp_host:
        missing.append("SMTP_HOST")
    return missing
