# imagist/config.py
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources.base import PydanticBaseSettingsSource
from pydantic_settings.sources.providers.env import EnvSettingsSource

from imagist.services.options import ParserPolicy

APP_NAME = "imagist"
APP_VERSION = "1.0.0"

_DEFAULT_ACCEPTED_TYPES = ("image/jpeg", "image/png", "image/webp", "image/gif")
_DEFAULT_OUTPUT_FORMATS = ("jpeg", "png", "webp")
_DEFAULT_COVER_ONLY_POSITIONS = ("entropy", "attention")


def _csv_to_list(value: str) -> List[str]:
    items = [part.strip() for part in value.split(",")]
    return [item for item in items if item]


def _json_or_csv_to_list(value: str) -> List[str]:
    text = value.strip()
    if not text:
        return []
    if text.startswith("["):
        try:
            decoded = json.loads(text)
        except (json.JSONDecodeError, TypeError, ValueError):
            return _csv_to_list(text)
        if isinstance(decoded, str):
            return _csv_to_list(decoded)
        if isinstance(decoded, (list, tuple, set)):
            result: List[str] = []
            for item in decoded:
                piece = str(item).strip()
                if piece:
                    result.append(piece)
            return result
        return []
    return _csv_to_list(text)


class _CsvFriendlyEnvSettingsSource(EnvSettingsSource):
    def decode_complex_value(self, field_name: str, field: Any, value: Any) -> Any:
        try:
            return super().decode_complex_value(field_name, field, value)
        except ValueError:
            return value


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="IMAGIST_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        if isinstance(env_settings, EnvSettingsSource):
            env_settings = _CsvFriendlyEnvSettingsSource(
                settings_cls,
                case_sensitive=env_settings.case_sensitive,
                env_prefix=env_settings.env_prefix,
                env_nested_delimiter=env_settings.env_nested_delimiter,
                env_ignore_empty=env_settings.env_ignore_empty,
                env_parse_none_str=env_settings.env_parse_none_str,
                env_parse_enums=env_settings.env_parse_enums,
            )
        return init_settings, env_settings, dotenv_settings, file_secret_settings

    # --- Source resolution / host guard ---
    allowed_hosts: List[str] = Field(default_factory=list)
    base_host: Optional[str] = None  # "relative-to-host" mode when set
    tls: bool = False  # default scheme for scheme-less sources
    local_root: Optional[Path] = None

    # --- Fetch ---
    fetch_ttfb_timeout_s: float = Field(default=10.0, gt=0)
    fetch_timeout_s: float = Field(default=30.0, gt=0)
    max_redirects: int = Field(default=5, ge=0, le=20)
    max_source_bytes: int = Field(default=25 * 1024 * 1024, ge=1)
    user_agent: str = Field(default=f"{APP_NAME}/{APP_VERSION}")
    httpx_max_connections: int = Field(default=200, ge=1)
    httpx_max_keepalive: int = Field(default=100, ge=0)
    httpx_keepalive_s: float = Field(default=20.0, ge=0)

    # --- Content types ---
    accepted_types: List[str] = Field(default_factory=lambda: list(_DEFAULT_ACCEPTED_TYPES))
    passthrough_types: List[str] = Field(default_factory=list)
    sniff_window: int = Field(default=512, ge=16, le=65536)

    # --- Transform defaults ---
    output_formats: List[str] = Field(default_factory=lambda: list(_DEFAULT_OUTPUT_FORMATS))
    default_quality: int = Field(default=80, ge=1, le=100)
    trim_threshold: int = Field(default=10, ge=1, le=255)
    max_dimension: int = Field(default=8192, ge=1)
    max_output_pixels: int = Field(default=50_000_000, ge=1)
    cover_only_positions: List[str] = Field(
        default_factory=lambda: list(_DEFAULT_COVER_ONLY_POSITIONS)
    )
    chunk_size: int = Field(default=64 * 1024, ge=1024)

    # --- Logging / metrics ---
    log_json: bool = True
    log_level: str = "INFO"
    metrics_enabled: bool = True

    @field_validator(
        "allowed_hosts",
        "accepted_types",
        "passthrough_types",
        "output_formats",
        "cover_only_positions",
        mode="before",
    )
    @classmethod
    def _parse_list_csv(cls, value: object) -> object:
        if isinstance(value, str):
            return _json_or_csv_to_list(value)
        if isinstance(value, (list, set, tuple)):
            return [str(item).strip() for item in value if str(item).strip()]
        return value

    @field_validator("accepted_types", "passthrough_types", "output_formats", mode="after")
    @classmethod
    def _lower(cls, value: List[str]) -> List[str]:
        return [item.lower() for item in value]

    def effective_allowlist(self) -> List[str]:
        """Allow-list with the base host folded in (only when non-empty)."""
        hosts = list(self.allowed_hosts)
        if hosts and self.base_host:
            base = self.base_host.strip("/").rsplit("@", 1)[-1].split(":", 1)[0]
            if base and base not in hosts:
                hosts.append(base)
        return hosts

    def parser_policy(self) -> ParserPolicy:
        return ParserPolicy(
            default_quality=self.default_quality,
            trim_threshold=self.trim_threshold,
            max_dimension=self.max_dimension,
            cover_only_positions=frozenset(self.cover_only_positions),
            output_formats=frozenset(self.output_formats),
        )


def get_settings() -> Settings:
    return Settings()


__all__ = ["APP_NAME", "APP_VERSION", "Settings", "get_settings"]
