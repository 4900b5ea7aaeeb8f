"""Configuration management with Pydantic Settings + optional YAML."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from waha_relay.utils.platform import get_config_dir


class GatewayConfig(BaseModel):
    base_url: str = "http://localhost:3000"
    api_key: str = ""
    default_session: str = "default"
    timeout: float = Field(default=30.0, gt=0)


class WebhookConfig(BaseModel):
    enabled: bool = False
    auto_start: bool = True
    bind: str = "0.0.0.0"
    port: int = Field(default=3001, ge=0, le=65535)
    path: str = "/webhook"
    # Empty disables signature checks entirely
    hmac_key: str = ""
    ngrok_auth_token: str = ""
    dispatch_timeout: float = Field(default=10.0, gt=0)
    events: list[str] = Field(
        default_factory=lambda: ["message", "message.ack", "state.change"]
    )


class CacheConfig(BaseModel):
    enabled: bool = True
    ttl_seconds: float = Field(default=300, gt=0)
    max_entries: int = Field(default=100, ge=1)
    prune_interval: float = Field(default=300, gt=0)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="WAHA_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    log_level: str = "INFO"
    log_json: bool = False


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_settings(
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> Settings:
    """Load settings from env vars, optionally overlaying a YAML config."""
    yaml_data: dict[str, Any] = {}

    if config_path is None:
        config_path = os.environ.get("WAHA_RELAY_CONFIG")
    if config_path is None:
        default = get_config_dir() / "config.yaml"
        if default.exists():
            config_path = default

    if config_path is not None:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                yaml_data = yaml.safe_load(f) or {}

    if overrides:
        yaml_data = _deep_merge(yaml_data, overrides)

    # YAML values act as init kwargs; pydantic-settings gives init priority,
    # so env vars are applied on top explicitly below.
    settings = Settings(**yaml_data)
    env_settings = Settings()
    return _apply_env(settings, env_settings)


def _apply_env(settings: Settings, env_settings: Settings) -> Settings:
    """Overlay fields that were explicitly set through the environment."""
    merged = settings.model_dump()
    env_dump = env_settings.model_dump(exclude_unset=True)
    return Settings(**_deep_merge(merged, env_dump))
