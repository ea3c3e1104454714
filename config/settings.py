from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Core
    ENVIRONMENT: str = Field(default="production")
    LOG_LEVEL: str = Field(default="INFO")
    FIRESTORE_PROJECT_ID: str = Field(default="")
    SITE_BASE_URL: str = Field(default="https://pricemymeds.co.uk")  # used in email links
    CORS_ALLOWED_ORIGINS: str = Field(default="*")  # comma-separated

    # Operator/admin auth (Google OIDC ID token)
    OPERATOR_AUTH_AUDIENCE: str = Field(default="")
    OPERATOR_INVOKER_SUBS: str = Field(default="")  # comma-separated
    OPERATOR_INVOKER_EMAILS: str = Field(default="")  # comma-separated

    # Email transport
    ESP_PROVIDER: str = Field(default="smtp")  # smtp | resend | log
    SMTP_HOST: str = Field(default="smtp.zoho.eu")
    SMTP_PORT: int = Field(default=465)
    SMTP_USE_STARTTLS: bool = Field(default=False)  # False = implicit SSL
    SMTP_USERNAME: str = Field(default="")
    SMTP_PASSWORD: str = Field(default="")
    SMTP_TIMEOUT_SEC: float = Field(default=20.0)
    RESEND_API_KEY: str = Field(default="")
    EMAIL_FROM_ADDRESS: str = Field(default="")
    EMAIL_FROM_NAME: str = Field(default="PriceMyMeds")
    ADMIN_EMAIL: str = Field(default="")

    # Scheduled jobs
    SCHEDULER_ENABLED: bool = Field(default=True)
    PRICE_ALERT_CRON: str = Field(default="0 * * * *")
    WEEKLY_DIGEST_CRON: str = Field(default="0 9 * * sun")
    STARTUP_ALERT_SCAN_DELAY_SEC: int = Field(default=5)

    # Alerts
    ALERT_EXPIRY_DAYS: int = Field(default=90)

    # Batching
    CAMPAIGN_BATCH_SIZE: int = Field(default=5)
    NEWSLETTER_BATCH_SIZE: int = Field(default=10)
    EMAIL_BATCH_DELAY_SEC: float = Field(default=1.0)
    PRICE_INSERT_BATCH_SIZE: int = Field(default=1000)
    WEEKLY_DIGEST_TOP_N: int = Field(default=5)

    # Ingestion
    INGEST_SOURCE_PATH: str = Field(default="data/medications.json")
    GCS_INGEST_ARCHIVE_BUCKET: str = Field(default="")  # empty disables archiving


settings = Settings()
