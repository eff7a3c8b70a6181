"""
Configuration loading for hintflow.

Settings come from an optional YAML file, overridden by ``HINTFLOW_*``
environment variables, and convert into the dataclass configs consumed by
each component.

Example YAML::

    rate_limits:
      completion:
        max_requests_per_minute: 30
        burst_limit: 5
        cooldown_period_ms: 60000
    cache:
      ttl_ms: 120000
      max_entries: 50
    lifecycle:
      max_retries: 5
    logging:
      level: DEBUG
      format: text
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from hintflow.cache.store import CacheConfig
from hintflow.errors import ConfigurationError
from hintflow.lifecycle import LifecycleConfig
from hintflow.resilience.rate_limiter import DEFAULT_LIMITS, RateLimitConfig
from hintflow.telemetry.logger import HintFlowLogger, LogLevel
from hintflow.types.service import ServiceId

if TYPE_CHECKING:
    from collections.abc import Mapping

ENV_PREFIX = "HINTFLOW_"
CONFIG_PATH_ENV = "HINTFLOW_CONFIG"

# Environment variable suffix -> (section, field)
_ENV_FIELDS: dict[str, tuple[str, str]] = {
    "CACHE_TTL_MS": ("cache", "ttl_ms"),
    "CACHE_MAX_ENTRIES": ("cache", "max_entries"),
    "CACHE_SWEEP_INTERVAL_MS": ("cache", "sweep_interval_ms"),
    "MAX_RETRIES": ("lifecycle", "max_retries"),
    "RETRY_DELAY_MS": ("lifecycle", "retry_delay_ms"),
    "HEALTH_CHECK_INTERVAL_MS": ("lifecycle", "health_check_interval_ms"),
    "LOG_LEVEL": ("logging", "level"),
    "LOG_FORMAT": ("logging", "format"),
}

# Per-service suffixes, e.g. HINTFLOW_COMPLETION_MAX_RPM
_ENV_RATE_FIELDS: dict[str, str] = {
    "MAX_RPM": "max_requests_per_minute",
    "BURST_LIMIT": "burst_limit",
    "COOLDOWN_MS": "cooldown_period_ms",
}


class RateLimitSettings(BaseModel):
    """Rate limits for one dependency."""

    model_config = ConfigDict(extra="forbid")

    max_requests_per_minute: int = Field(ge=1)
    burst_limit: int = Field(ge=1)
    cooldown_period_ms: int = Field(ge=0)

    def to_config(self) -> RateLimitConfig:
        return RateLimitConfig(
            max_requests_per_minute=self.max_requests_per_minute,
            burst_limit=self.burst_limit,
            cooldown_period_ms=self.cooldown_period_ms,
        )


class CacheSettings(BaseModel):
    """Result cache settings."""

    model_config = ConfigDict(extra="forbid")

    ttl_ms: int = Field(default=300_000, gt=0)
    max_entries: int = Field(default=100, ge=1)
    sweep_interval_ms: int | None = Field(default=None, gt=0)


class LifecycleSettings(BaseModel):
    """Lifecycle manager settings."""

    model_config = ConfigDict(extra="forbid")

    max_retries: int = Field(default=3, ge=0)
    retry_delay_ms: int = Field(default=5000, ge=0)
    health_check_interval_ms: int = Field(default=30_000, gt=0)


class LoggingSettings(BaseModel):
    """Structured logging settings."""

    model_config = ConfigDict(extra="forbid")

    level: LogLevel = LogLevel.INFO
    format: Literal["json", "text"] = "json"

    @field_validator("level", mode="before")
    @classmethod
    def _upper_level(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


def _default_rate_limits() -> dict[ServiceId, RateLimitSettings]:
    return {
        service: RateLimitSettings(**config.to_dict())
        for service, config in DEFAULT_LIMITS.items()
    }


class HintFlowSettings(BaseModel):
    """Top-level hintflow settings.

    Rate limits given for a subset of services keep the defaults for the
    others.
    """

    model_config = ConfigDict(extra="forbid")

    rate_limits: dict[ServiceId, RateLimitSettings] = Field(
        default_factory=_default_rate_limits
    )
    cache: CacheSettings = Field(default_factory=CacheSettings)
    lifecycle: LifecycleSettings = Field(default_factory=LifecycleSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @field_validator("rate_limits", mode="before")
    @classmethod
    def _merge_rate_limits(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return value
        merged: dict[ServiceId, Any] = dict(_default_rate_limits())
        for key, limits in value.items():
            merged[ServiceId.parse(key)] = limits
        return merged

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], *, path: str | None = None) -> HintFlowSettings:
        """Validate settings from a mapping.

        Raises:
            ConfigurationError: If the mapping is invalid
        """
        try:
            return cls.model_validate(dict(data))
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid configuration: {e.error_count()} error(s)\n{e}",
                path=path,
                cause=e,
            ) from e

    @classmethod
    def from_yaml(cls, path: str | Path) -> HintFlowSettings:
        """Load settings from a YAML file.

        An empty file yields the defaults.

        Raises:
            ConfigurationError: If the file is unreadable or invalid
        """
        path = Path(path)
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(
                f"Cannot read configuration file: {e}", path=str(path), cause=e
            ) from e

        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML: {e}", path=str(path), cause=e
            ) from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError(
                "Configuration root must be a mapping", path=str(path)
            )
        return cls.from_dict(data, path=str(path))

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> HintFlowSettings:
        """Create settings from defaults and ``HINTFLOW_*`` variables."""
        return cls().with_env_overrides(environ)

    def with_env_overrides(self, environ: Mapping[str, str] | None = None) -> HintFlowSettings:
        """Return a copy with ``HINTFLOW_*`` variables applied on top.

        Raises:
            ConfigurationError: If an override value is invalid
        """
        env = os.environ if environ is None else environ
        data = self.model_dump(mode="json")

        for suffix, (section, name) in _ENV_FIELDS.items():
            value = env.get(ENV_PREFIX + suffix)
            if value is not None and value != "":
                data[section][name] = value

        for service in ServiceId:
            for suffix, name in _ENV_RATE_FIELDS.items():
                value = env.get(f"{ENV_PREFIX}{service.name}_{suffix}")
                if value is not None and value != "":
                    data["rate_limits"][service.value][name] = value

        return type(self).from_dict(data)

    def rate_limit_configs(self) -> dict[ServiceId, RateLimitConfig]:
        """Rate limits as limiter configs."""
        return {service: limits.to_config() for service, limits in self.rate_limits.items()}

    def cache_config(self) -> CacheConfig:
        """Cache settings as a cache config."""
        return CacheConfig(
            ttl_ms=self.cache.ttl_ms,
            max_entries=self.cache.max_entries,
            sweep_interval_ms=self.cache.sweep_interval_ms,
        )

    def lifecycle_config(self) -> LifecycleConfig:
        """Lifecycle settings as a lifecycle config."""
        return LifecycleConfig(
            max_retries=self.lifecycle.max_retries,
            retry_delay_ms=self.lifecycle.retry_delay_ms,
            health_check_interval_ms=self.lifecycle.health_check_interval_ms,
        )

    def configure_logging(self, stream: Any = None) -> None:
        """Apply the logging settings to the structured logger."""
        HintFlowLogger.configure(
            level=self.logging.level, format=self.logging.format, stream=stream
        )


def load_settings(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> HintFlowSettings:
    """Load settings from a file (if any) with environment overrides.

    The file is ``path`` if given, else ``$HINTFLOW_CONFIG`` if set;
    without either, defaults are used.

    Args:
        path: Optional YAML file
        environ: Environment mapping (default: ``os.environ``)

    Returns:
        Validated settings

    Raises:
        ConfigurationError: If the file or an override is invalid
    """
    env = os.environ if environ is None else environ
    source = path or env.get(CONFIG_PATH_ENV)
    settings = HintFlowSettings.from_yaml(source) if source else HintFlowSettings()
    return settings.with_env_overrides(env)
