"""
Pydantic Settings — centralized configuration loaded from environment variables.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── Database ──────────────────────────────
    POSTGRES_USER: str = "crm_user"
    POSTGRES_PASSWORD: str = "crm_pass"
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "insurance_crm"

    # Full SQLAlchemy URL that replaces the POSTGRES_* composition (tests, SQLite)
    DATABASE_URL_OVERRIDE: str = ""

    @property
    def DATABASE_URL(self) -> str:
        """Async URL for app runtime (asyncpg)."""
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE
        return f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    @property
    def DATABASE_URL_SYNC(self) -> str:
        """Sync URL for Alembic migrations (psycopg2)."""
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE.replace("+asyncpg", "").replace("+aiosqlite", "")
        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    # ── Redis / Celery ────────────────────────
    REDIS_URL: str = "redis://localhost:6379/0"
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/1"

    # ── Auth / JWT ────────────────────────────
    JWT_SECRET_KEY: str = "change-this-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 1440
    JWT_ISSUER: str = "insurance-crm"
    BCRYPT_ROUNDS: int = 12

    # ── Email (Gmail SMTP) ────────────────────
    SMTP_HOST: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    SMTP_USE_TLS: bool = True
    GMAIL_USER: str = ""
    GMAIL_APP_PASSWORD: str = ""
    GMAIL_FROM_NAME: str = "Insurance Agency"

    # ── WhatsApp (MSG91) ──────────────────────
    MSG91_AUTH_KEY: str = ""
    MSG91_INTEGRATED_NUMBER: str = ""
    MSG91_NAMESPACE: str = ""
    MSG91_API_URL: str = "https://api.msg91.com/api/v5/whatsapp/whatsapp-outbound-message/bulk/"
    MSG91_TIMEOUT_SECONDS: int = 30

    # ── Automation ────────────────────────────
    AUTOMATION_TIMEZONE: str = "Asia/Kolkata"
    AUTOMATION_RUN_HOUR: int = 9
    RENEWAL_REMINDER_DAYS: int = 30
    RENEWAL_DEDUP_DAYS: int = 7
    UPCOMING_BIRTHDAY_DAYS: int = 30
    UPCOMING_RENEWAL_DAYS: int = 60
    CRON_SECRET: str = ""

    # ── Expiry tracking (days) ────────────────
    EXPIRY_CRITICAL_DAYS: int = 7
    EXPIRY_WARNING_DAYS: int = 30
    EXPIRY_INFO_DAYS: int = 60

    # ── Policy migration ──────────────────────
    MIGRATION_BATCH_SIZE: int = 100
    MIGRATION_CREATE_BACKUP: bool = True
    MIGRATION_SKIP_DUPLICATES: bool = True

    # ── Application ───────────────────────────
    APP_ENV: str = "development"
    RATE_LIMIT_ENABLED: bool = True
    CORS_ORIGINS: list[str] = ["*"]

    model_config = {"env_file": ["../.env", ".env"], "extra": "ignore"}


settings = Settings()
