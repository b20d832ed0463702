"""Settings for the clinic booking service, read from the environment and .env."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"  # dev | staging | prod
    VERSION: str = "0.1.0"
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str

    # HS256 session tokens. During a key rotation the old key goes in
    # JWT_SECRET_PREVIOUS until every outstanding token has expired.
    JWT_SECRET: str = "dev-only-secret"
    JWT_SECRET_PREVIOUS: str = ""
    JWT_EXPIRES_HOURS: int = 8

    CORS_ORIGINS: str = "http://localhost:3000"  # comma separated

    SENTRY_DSN: str = ""  # empty disables Sentry

    # Slot labels and dates are interpreted in this zone
    CLINIC_TIMEZONE: str = "America/New_York"

    REMINDER_LEAD_MINUTES: int = 30
    REMINDER_MISFIRE_GRACE_SECONDS: int = 300
    SCHEDULER_ENABLED: bool = True

    RATE_LIMIT_BOOKING: int = 10  # booking requests per client IP per minute

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def jwt_secrets(self) -> list[str]:
        """Keys accepted for verification, signing key first."""
        return [s for s in (self.JWT_SECRET, self.JWT_SECRET_PREVIOUS) if s]


settings = Settings()
