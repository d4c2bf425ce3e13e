"""Runtime settings loaded from environment variables."""

from functools import lru_cache
from typing import Annotated

from pydantic import Field, HttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict

NonEmptyStr = Annotated[str, Field(min_length=1)]
NonNegativeInt = Annotated[int, Field(ge=0)]
PositiveInt = Annotated[int, Field(gt=0)]
SigningKey = Annotated[str, Field(min_length=32)]


class Settings(BaseSettings):
    """Environment-driven application settings."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: NonEmptyStr = Field(validation_alias="DATABASE_URL")
    jwt_signing_key: SigningKey = Field(validation_alias="JWT_SIGNING_KEY")
    jwt_issuer: NonEmptyStr = Field(default="ideaboard-auth", validation_alias="JWT_ISSUER")
    jwt_audience: NonEmptyStr = Field(default="ideaboard-api", validation_alias="JWT_AUDIENCE")
    access_token_ttl_minutes: PositiveInt = Field(
        default=15,
        validation_alias="ACCESS_TOKEN_TTL_MINUTES",
    )
    refresh_token_ttl_days: PositiveInt = Field(
        default=7,
        validation_alias="REFRESH_TOKEN_TTL_DAYS",
    )
    email_verification_ttl_hours: PositiveInt = Field(
        default=24,
        validation_alias="EMAIL_VERIFICATION_TTL_HOURS",
    )
    verification_resend_cooldown_minutes: NonNegativeInt = Field(
        default=2,
        validation_alias="VERIFICATION_RESEND_COOLDOWN_MINUTES",
    )
    public_base_url: HttpUrl = Field(validation_alias="PUBLIC_BASE_URL")
    password_min_length: PositiveInt = Field(default=8, validation_alias="PASSWORD_MIN_LENGTH")
    smtp_host: NonEmptyStr | None = Field(default=None, validation_alias="SMTP_HOST")
    smtp_port: PositiveInt = Field(default=587, validation_alias="SMTP_PORT")
    smtp_username: NonEmptyStr | None = Field(default=None, validation_alias="SMTP_USERNAME")
    smtp_password: NonEmptyStr | None = Field(default=None, validation_alias="SMTP_PASSWORD")
    smtp_use_tls: bool = Field(default=True, validation_alias="SMTP_USE_TLS")
    mail_from: NonEmptyStr | None = Field(default=None, validation_alias="MAIL_FROM")
    mail_from_name: NonEmptyStr = Field(default="IdeaBoard", validation_alias="MAIL_FROM_NAME")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    """Load and cache application settings."""

    return Settings()  # type: ignore[call-arg]
