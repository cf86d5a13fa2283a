"""Shared configuration base classes only."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseServiceConfig(BaseSettings):
    """Base configuration class for services to extend."""

    log_level: str = Field("INFO", description="Log level for service loggers")

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)
