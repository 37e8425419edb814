"""Application configuration loaded from environment variables and .env."""

from __future__ import annotations

from typing import Literal

from dotenv import load_dotenv
from pydantic import SecretStr, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError

PLACEHOLDER_VALUES = {"", "your_client_id_here", "your_client_secret_here"}


class RunQuestConfig(BaseSettings):
    """Strava credentials and RunQuest server settings."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    strava_client_id: str = ""
    strava_client_secret: SecretStr = SecretStr("")
    strava_api_url: str = "https://www.strava.com/api/v3"
    strava_token_url: str = "https://www.strava.com/oauth/token"

    runquest_upstream_timeout: float = 10.0
    runquest_cors_origins: str = "*"
    runquest_medal_signing_key: SecretStr | None = None
    runquest_storage_backend: Literal["memory", "dynamodb"] = "memory"
    runquest_dynamodb_table: str | None = None
    aws_region: str | None = None
    runquest_races_file: str | None = None
    runquest_log_level: str = "INFO"

    @model_validator(mode="after")
    def validate_credentials(self) -> RunQuestConfig:
        """Validate that required credentials are configured."""
        if self.strava_client_id in PLACEHOLDER_VALUES:
            raise ValueError("STRAVA_CLIENT_ID is not configured. Please set it in your .env file.")
        if self.strava_client_secret.get_secret_value() in PLACEHOLDER_VALUES:
            raise ValueError(
                "STRAVA_CLIENT_SECRET is not configured. Please set it in your .env file."
            )
        if self.runquest_storage_backend == "dynamodb" and not self.runquest_dynamodb_table:
            raise ValueError(
                "RUNQUEST_DYNAMODB_TABLE must be set when RUNQUEST_STORAGE_BACKEND=dynamodb."
            )
        return self

    @property
    def cors_origins(self) -> list[str]:
        origins = [o.strip() for o in self.runquest_cors_origins.split(",") if o.strip()]
        return origins or ["*"]


def load_config(**overrides) -> RunQuestConfig:
    """Load configuration from the environment, failing loudly when incomplete."""
    load_dotenv()
    try:
        return RunQuestConfig(**overrides)
    except PydanticValidationError as exc:
        messages = "; ".join(str(error["msg"]) for error in exc.errors())
        raise ConfigurationError(messages) from exc
