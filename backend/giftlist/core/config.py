import json
import os

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "Gift List API"
    backend_url: str = "http://localhost:8000"
    frontend_url: str = "http://localhost:3000"
    environment: str = "local"
    backend_cors_origins_raw: str = ""  # Comma-separated or JSON array

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "allow",
    }

    @property
    def backend_cors_origins(self) -> list[str]:
        """Parse CORS origins from raw string."""
        raw = os.getenv("BACKEND_CORS_ORIGINS", self.backend_cors_origins_raw).strip()
        if not raw:
            return ["http://localhost:3000", "http://127.0.0.1:3000"]
        if raw.startswith("["):
            try:
                parsed = json.loads(raw)
                if isinstance(parsed, list):
                    return [str(item).strip() for item in parsed if str(item).strip()]
            except ValueError:
                pass
        return [item.strip() for item in raw.split(",") if item.strip()]

    # Database: sqlite+aiosqlite:///./giftlist.db (dev) | postgresql+asyncpg://... (prod)
    database_url: str = "sqlite+aiosqlite:///./giftlist.db"
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_recycle: int = 1800
    db_pool_timeout: int = 30

    # Admin session (signed token issued after the emailed one-time link)
    admin_token_expire_minutes: int = 60 * 24 * 7
    # SECURITY: override via JWT_SECRET_KEY env var outside local
    jwt_secret_key: str = "CHANGE_ME"
    jwt_algorithm: str = "HS256"
    admin_emails: str = ""  # Comma-separated allow list
    admin_password_hash: str = ""  # Optional bcrypt hash enabling password login
    otp_expire_minutes: int = 15

    # Anonymous visitors
    visitor_cookie_max_age_days: int = 365
    abuse_guard_enabled: bool = True
    abuse_daily_visitor_threshold: int = 12

    # SMTP settings (optional)
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_from_email: str = "noreply@giftlist.local"
    smtp_use_tls: bool = True

    rate_limit_enabled: bool = True
    rate_limit_login_requests: int = 5
    rate_limit_window_seconds: int = 60

    media_root: str = "uploads"
    media_path: str = "/media"
    image_upload_max_mb: int = 5

    log_level: str = "INFO"
    log_file: str = ""

    @property
    def admin_email_list(self) -> set[str]:
        """Normalized admin allow list."""
        return {e.strip().lower() for e in self.admin_emails.split(",") if e.strip()}

    @property
    def primary_admin_email(self) -> str | None:
        """First address in ADMIN_EMAILS; names sessions opened by password login."""
        for e in self.admin_emails.split(","):
            if e.strip():
                return e.strip().lower()
        return None

    @property
    def is_local(self) -> bool:
        return (self.environment or "local").lower() == "local"


settings = Settings()
