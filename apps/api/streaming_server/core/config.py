"""Application configuration for the streaming server."""
from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=4500)
    log_level: str = Field(default="INFO")
    cors_allow_origins: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["*"])

    bbb_url: str = Field(default="")
    bbb_secret: str = Field(default="")
    bbb_checksum_algorithm: str = Field(default="sha1")
    directory_timeout_seconds: float = Field(default=10.0, gt=0)

    max_concurrent_streams: int = Field(
        default=1,
        ge=0,
        validation_alias=AliasChoices("max_concurrent_streams", "number_of_concurrent_streamings"),
    )
    worker_image: str = Field(default="bbb-stream:v1.0")
    worker_name_prefix: str = Field(default="bbb-stream-")
    docker_base_url: str = Field(default="unix:///var/run/docker.sock")
    docker_socket_path: str = Field(default="/var/run/docker.sock")
    runtime_timeout_seconds: float = Field(default=30.0, gt=0)
    remove_on_start_failure: bool = Field(default=False)

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: object) -> object:
        """Allow comma-separated env values for CORS origins."""

        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("bbb_checksum_algorithm")
    @classmethod
    def _check_algorithm(cls, value: str) -> str:
        lowered = value.strip().lower()
        if lowered not in {"sha1", "sha256"}:
            raise ValueError("bbb_checksum_algorithm must be sha1 or sha256")
        return lowered


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()


settings = get_settings()
