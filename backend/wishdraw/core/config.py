import json
import os

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "WishDraw API"
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

    # Database: sqlite+aiosqlite:///./wishdraw.db (dev) | postgresql+asyncpg://... (prod)
    postgres_dsn: str = "sqlite+aiosqlite:///./wishdraw.db"
    redis_dsn: str = "redis://localhost:6379/0"
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_recycle: int = 1800
    db_pool_timeout: int = 30

    access_token_expire_minutes: int = 60 * 24 * 7
    # SECURITY: override via JWT_SECRET_KEY env var; outside local env the app refuses to start with default
    jwt_secret_key: str = "CHANGE_ME"
    jwt_algorithm: str = "HS256"

    # Shared secret sent by the external scheduler as "Authorization: Bearer <secret>"
    cron_secret: str = ""

    # Secret Santa draw
    draw_max_attempts: int = 1000
    draw_min_members: int = 3
    draw_exhaustive_fallback: bool = False
    scheduled_draw_budget_seconds: float = 240.0
    scheduled_draw_lock_ttl_seconds: int = 300

    # Email queue
    email_queue_batch_size: int = 150
    email_queue_max_attempts: int = 3
    email_queue_send_delay_ms: int = 600

    # SMTP settings (optional)
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_from_email: str = "noreply@wishdraw.local"
    smtp_use_tls: bool = True
    email_notifications_enabled: bool = True

    log_level: str = "INFO"
    log_file: str = ""

    @property
    def is_local(self) -> bool:
        return (self.environment or "local").lower() == "local"

    def group_url(self, group_id: int | str) -> str:
        return f"{self.frontend_url.rstrip('/')}/bubbles/{group_id}/secret-santa"


settings = Settings()
