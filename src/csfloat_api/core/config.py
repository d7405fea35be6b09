"""
Configuration module for the marketplace client.

This module provides configuration loading and validation for the API
origin, request timeouts, rate limit header names and dispatch defaults.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

DEFAULT_BASE_URL = "https://csfloat.com/api/v1"


class ConfigValidationError(ValueError):
    """Raised when a loaded configuration is invalid."""


@dataclass
class HeaderConfig:
    """Names of the rate limit headers sent by the server."""

    limit: str = "X-Ratelimit-Limit"
    remaining: str = "X-Ratelimit-Remaining"
    reset: str = "X-Ratelimit-Reset"

    def names(self) -> list[str]:
        """Return all header names in limit, remaining, reset order."""
        return [self.limit, self.remaining, self.reset]


@dataclass
class ClientConfig:
    """Configuration for the request dispatcher and rate tracker."""

    base_url: str = DEFAULT_BASE_URL
    timeout: float = 15.0  # total seconds per request
    connect_timeout: float = 15.0
    safety_margin: float = 5.0  # seconds shaved off every reset window
    wait_by_default: bool = True
    strict_quota: bool = False
    user_agent: str = "csfloat-api"
    headers: HeaderConfig = field(default_factory=HeaderConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ClientConfig":
        """Create ClientConfig from dictionary."""
        headers_data = data.get("headers") or {}
        if not isinstance(headers_data, dict):
            raise ConfigValidationError("headers must be a dictionary")
        unknown = set(headers_data) - {"limit", "remaining", "reset"}
        if unknown:
            raise ConfigValidationError(f"unknown header keys: {sorted(unknown)}")
        headers = HeaderConfig(**headers_data)

        defaults = cls()
        return cls(
            base_url=data.get("base_url", defaults.base_url),
            timeout=data.get("timeout", defaults.timeout),
            connect_timeout=data.get("connect_timeout", defaults.connect_timeout),
            safety_margin=data.get("safety_margin", defaults.safety_margin),
            wait_by_default=data.get("wait_by_default", defaults.wait_by_default),
            strict_quota=data.get("strict_quota", defaults.strict_quota),
            user_agent=data.get("user_agent", defaults.user_agent),
            headers=headers,
        )


def load_config(config_path: str | Path | None = None) -> ClientConfig:
    """
    Load client configuration from YAML file.

    Args:
        config_path: Path to config file. If None, uses default location.

    Returns:
        ClientConfig built from the file, or defaults when it is missing

    Raises:
        ConfigValidationError: If the file is invalid YAML or fails validation
    """
    if config_path is None:
        config_path = Path(__file__).parents[3] / "config" / "client.yml"
    else:
        config_path = Path(config_path)

    if not config_path.exists():
        return ClientConfig()

    with open(config_path, "r") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigValidationError(f"Invalid YAML in {config_path}: {e}") from e

    if not data:
        return ClientConfig()

    if not isinstance(data, dict):
        raise ConfigValidationError(f"{config_path} must contain a mapping")

    section = data.get("client", data)
    if not isinstance(section, dict):
        raise ConfigValidationError(f"'client' in {config_path} must be a mapping")

    config = ClientConfig.from_dict(section)
    validate_config(config)
    return config


def validate_config(config: ClientConfig) -> None:
    """
    Validate configuration.

    Args:
        config: Configuration to validate

    Raises:
        ConfigValidationError: If configuration is invalid
    """
    if not config.base_url:
        raise ConfigValidationError("base_url must be set")

    if not config.base_url.startswith(("http://", "https://")):
        raise ConfigValidationError(
            f"base_url must be an http(s) URL, got {config.base_url!r}"
        )

    if config.timeout <= 0:
        raise ConfigValidationError("timeout must be positive")

    if config.connect_timeout <= 0:
        raise ConfigValidationError("connect_timeout must be positive")

    if config.safety_margin < 0:
        raise ConfigValidationError("safety_margin must not be negative")

    for name in config.headers.names():
        if not name:
            raise ConfigValidationError("rate limit header names must not be empty")
