"""Restore settings loaded from YAML, environment, and CLI arguments."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, List, Mapping, Optional

import yaml

from .constants import Constants

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when a configuration file exists but cannot be used."""


@dataclass
class RestoreSettings:
    """Tunables for restore orchestration."""

    poll_interval: float = Constants.RESTORE_POLL_INTERVAL_SEC
    timeout: float = Constants.RESTORE_TIMEOUT_SEC
    target_framework: str = Constants.RESTORE_TFM
    script_extension: str = Constants.SCRIPT_EXTENSION
    package_manager_key: str = Constants.PACKAGE_MANAGER_KEY
    restore_sources: List[str] = field(default_factory=list)
    dotnet_path: str = Constants.DOTNET_EXECUTABLE

    def __post_init__(self) -> None:
        if self.poll_interval <= 0:
            raise ConfigError(f"poll_interval must be positive, got {self.poll_interval}")
        if self.timeout <= 0:
            raise ConfigError(f"timeout must be positive, got {self.timeout}")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "RestoreSettings":
        """Build settings from a mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        values: Dict[str, Any] = {}
        for key, value in data.items():
            name = str(key).replace("-", "_")
            if name not in known:
                logger.warning("Ignoring unknown restore setting: %s", key)
                continue
            values[name] = value
        try:
            if "poll_interval" in values:
                values["poll_interval"] = float(values["poll_interval"])
            if "timeout" in values:
                values["timeout"] = float(values["timeout"])
            if "restore_sources" in values:
                sources = values["restore_sources"] or []
                if isinstance(sources, str):
                    sources = [sources]
                values["restore_sources"] = [str(s) for s in sources]
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid restore setting: {exc}") from exc
        return cls(**values)

    def apply_env(self, environ: Optional[Mapping[str, str]] = None) -> "RestoreSettings":
        """Return a copy with ``PKGRESTORE_*`` environment overrides applied."""
        env = os.environ if environ is None else environ
        overrides: Dict[str, Any] = {}
        try:
            if env.get(Constants.ENV_TIMEOUT):
                overrides["timeout"] = float(env[Constants.ENV_TIMEOUT])
            if env.get(Constants.ENV_POLL_INTERVAL):
                overrides["poll_interval"] = float(env[Constants.ENV_POLL_INTERVAL])
        except ValueError as exc:
            raise ConfigError(f"Invalid environment override: {exc}") from exc
        if env.get(Constants.ENV_DOTNET):
            overrides["dotnet_path"] = env[Constants.ENV_DOTNET]
        return replace(self, **overrides) if overrides else self

    def apply_args(self, args: Any) -> "RestoreSettings":
        """Return a copy with CLI overrides applied; CLI sources are appended."""
        overrides: Dict[str, Any] = {}
        if getattr(args, "TIMEOUT", None) is not None:
            overrides["timeout"] = float(args.TIMEOUT)
        if getattr(args, "POLL_INTERVAL", None) is not None:
            overrides["poll_interval"] = float(args.POLL_INTERVAL)
        if getattr(args, "DOTNET_PATH", None):
            overrides["dotnet_path"] = args.DOTNET_PATH
        extra_sources = getattr(args, "SOURCES", None) or []
        if extra_sources:
            overrides["restore_sources"] = [*self.restore_sources, *extra_sources]
        return replace(self, **overrides) if overrides else self


def load_settings(
    config_path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> RestoreSettings:
    """Load settings from defaults, an optional YAML file, and the environment.

    Args:
        config_path: Path to a YAML file; a ``restore:`` section is used when present.
        environ: Environment mapping; ``os.environ`` when None.

    Returns:
        RestoreSettings instance.

    Raises:
        ConfigError: If the file cannot be read or parsed.
    """
    settings = RestoreSettings()
    if config_path:
        if not os.path.isfile(config_path):
            logger.warning("Config file not found: %s", config_path)
        else:
            try:
                with open(config_path, "r", encoding="utf-8") as f:
                    data = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as exc:
                raise ConfigError(f"Failed to load config {config_path}: {exc}") from exc
            if not isinstance(data, dict):
                raise ConfigError(f"Config {config_path} must contain a mapping")
            section = data.get("restore", data)
            if not isinstance(section, dict):
                raise ConfigError(f"'restore' section in {config_path} must be a mapping")
            settings = RestoreSettings.from_mapping(section)
    return settings.apply_env(environ)
