import secrets
import warnings
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str = "postgresql+asyncpg://localhost:5432/clevercourse"

    # Auth - tokens are issued by the auth service, we only verify them
    secret_key: str = ""
    access_token_expire_minutes: int = 60 * 24 * 7  # 1 week

    # App settings
    app_name: str = "CleverCourse Gamification"
    debug: bool = False
    log_level: str = "INFO"

    # Streak days are cut at midnight in this zone for every user
    streak_timezone: str = "UTC"

    # Insert missing achievement definitions when the app starts
    seed_achievements_on_startup: bool = True

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @field_validator("streak_timezone")
    @classmethod
    def validate_streak_timezone(cls, value: str) -> str:
        """Reject unknown zones at startup rather than on the first award."""
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown STREAK_TIMEZONE {value!r}; use an IANA name such as 'UTC'") from None
        return value

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Ensure secret_key is properly configured."""
        if not self.secret_key:
            if self.debug:
                # Generate a random key for development
                self.secret_key = secrets.token_urlsafe(32)
                warnings.warn(
                    "SECRET_KEY not set - using random key (tokens won't verify across restarts)",
                    stacklevel=2,
                )
            else:
                raise ValueError(
                    "SECRET_KEY environment variable must be set in production. "
                    "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(32))\""
                )
        return self


settings = Settings()
