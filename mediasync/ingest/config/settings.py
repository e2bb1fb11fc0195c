"""
Configuration management for the media ingestion service.

Uses pydantic-settings to load configuration from environment variables,
an optional .env file and optional per-environment YAML files.
"""

import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..core.types import LinkMode


class MediaSyncSettings(BaseSettings):
    """
    Process-wide settings, read once at startup.

    Environment variable names match the deployed service
    (TECHULUS_*, AWS_*, AIRTABLE_*, APP_ENV).
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore", populate_by_name=True
    )

    # Environment
    app_env: str = Field("development", description="Environment name")

    # Screenshot rendering service
    techulus_api_url: Optional[str] = Field(None, description="Base URL of the screenshot service, with trailing slash")
    techulus_api_key: Optional[str] = None
    techulus_secret: Optional[str] = None
    screenshot_delay_seconds: int = Field(5, ge=0, le=60)

    # AWS / S3
    aws_region: str = Field("us-east-1")
    aws_s3_bucket: str = Field(..., description="Bucket receiving uploaded media")
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    localstack_endpoint: Optional[str] = Field(None, description="LocalStack endpoint for local development")

    # Airtable
    airtable_api_url: str = Field("https://api.airtable.com/v0")
    airtable_base: str = Field(..., description="Airtable base id")
    airtable_token: Optional[str] = Field(
        None, validation_alias=AliasChoices("airtable_token", "airtable_api_key")
    )
    media_table: str = Field("Media")
    media_attachment_field: str = Field("File")
    media_link_field: str = Field("Link", description="Empty string omits the link field")
    media_parent_field: str = Field("Listings")
    listing_table: str = Field("Listings")
    listing_media_field: str = Field("Images")
    link_mode: LinkMode = Field(LinkMode.BATCH)

    # Download
    download_directory: str = Field("screenshots")
    download_suffix: str = Field(".jpg")
    max_content_length: int = Field(50 * 1024 * 1024, ge=1024)  # 50MB
    request_timeout: int = Field(60, ge=5, le=600)
    user_agent: str = Field("mediasync/0.1")

    # Upload
    upload_workers: int = Field(64, ge=1, le=512, description="Threads available to concurrent S3 uploads")

    # Logging
    log_level: str = Field("INFO", description="Logging level")
    json_logs: bool = Field(True, description="Whether to output JSON format logs")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()

    @field_validator("app_env")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        valid_envs = ["development", "devlocal", "staging", "production"]
        if v not in valid_envs:
            raise ValueError(f"Invalid environment: {v}. Must be one of {valid_envs}")
        return v

    @field_validator("airtable_api_url", "techulus_api_url")
    @classmethod
    def strip_whitespace(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v else v

    @model_validator(mode="after")
    def validate_local_endpoints(self) -> "MediaSyncSettings":
        """LocalStack development needs an explicit endpoint"""
        if self.app_env == "devlocal" and not self.localstack_endpoint:
            raise ValueError("localstack_endpoint is required for devlocal environment")
        return self

    @property
    def screenshot_configured(self) -> bool:
        return bool(self.techulus_api_url and self.techulus_api_key and self.techulus_secret)

    def table_url(self, table: str) -> str:
        return f"{self.airtable_api_url.rstrip('/')}/{self.airtable_base}/{table}"


def _expand_env_variables(obj: Any) -> Any:
    """Expand ${VAR} and ${VAR:default} inside YAML values."""
    if isinstance(obj, str):

        def replace_env_var(match: "re.Match[str]") -> str:
            var_name, sep, default = match.group(1).partition(":")
            if sep:
                return os.getenv(var_name, default)
            return os.getenv(var_name, match.group(0))

        return re.sub(r"\$\{([^}]+)\}", replace_env_var, obj)
    if isinstance(obj, dict):
        return {key: _expand_env_variables(value) for key, value in obj.items()}
    if isinstance(obj, list):
        return [_expand_env_variables(item) for item in obj]
    return obj


def load_config_from_yaml(file_path: Path) -> Dict[str, Any]:
    """
    Load configuration from a YAML file with environment variable expansion.

    Raises:
        FileNotFoundError: If the file doesn't exist
        yaml.YAMLError: If the file is malformed
    """
    if not file_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {file_path}")

    with open(file_path, "r", encoding="utf-8") as f:
        return _expand_env_variables(yaml.safe_load(f) or {})


def get_config_file_path(environment: str) -> Path:
    return Path(__file__).parent / f"{environment}.yaml"


def load_settings(
    environment: Optional[str] = None, config_file: Optional[Path] = None, **overrides: Any
) -> MediaSyncSettings:
    """
    Load settings from YAML (if any), environment variables and overrides.

    Explicit overrides win over YAML values; environment variables fill
    whatever neither provides.
    """
    if environment is None:
        environment = os.getenv("APP_ENV", "development")

    config_data: Dict[str, Any] = {}
    if config_file:
        config_data = load_config_from_yaml(config_file)
    else:
        default_config_file = get_config_file_path(environment)
        if default_config_file.exists():
            config_data = load_config_from_yaml(default_config_file)

    config_data["app_env"] = environment
    config_data.update(overrides)

    return MediaSyncSettings(**config_data)


_settings: Optional[MediaSyncSettings] = None


def get_cached_settings() -> MediaSyncSettings:
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings_cache() -> None:
    """Reset the cached settings instance (useful for testing)"""
    global _settings
    _settings = None
