"""Configuration management for foldcast."""

from __future__ import annotations

import os
import textwrap
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

import yaml

from .exceptions import ConfigError
from .models import FoldcastConfig
from .resolver import flatten_for_env, parse_env_overrides, resolve_with_precedence

DEFAULT_CONFIG_PATH = Path("~/.foldcast/config.yaml")
_CONFIG_HEADER = textwrap.dedent(
    """\
    # foldcast configuration file
    # Manage with `foldcast config set` or edit by hand; unknown keys are rejected.
    """
)


class ConfigManager:
    """Read, write, and layer the foldcast settings file."""

    def __init__(
        self,
        config_path: Path | None = None,
        *,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self._config_path = (config_path or DEFAULT_CONFIG_PATH).expanduser()
        self._env = env if env is not None else os.environ

    @property
    def config_path(self) -> Path:
        """Return the resolved configuration path."""
        return self._config_path

    def load(
        self,
        *,
        cli_overrides: Mapping[str, Any] | None = None,
        include_env: bool = True,
        ensure_file: bool = True,
        env_overrides: Mapping[str, str] | None = None,
    ) -> FoldcastConfig:
        """Load settings, applying file, environment, and CLI layers in that order.

        Args:
            cli_overrides: Dotted-key overrides supplied by the caller.
            include_env: Whether ``FOLDCAST__`` environment variables are honored.
            ensure_file: Whether to create a default settings file when missing.
            env_overrides: Environment mapping used instead of ``os.environ``.

        Returns:
            FoldcastConfig: Validated configuration.

        Raises:
            ConfigError: If any layer cannot be parsed or validated.
        """
        if ensure_file:
            self.ensure_exists()

        env_layer = None
        if include_env:
            env_source = env_overrides if env_overrides is not None else self._env
            env_layer = parse_env_overrides(env_source) or None

        return resolve_with_precedence(
            defaults=FoldcastConfig(),
            file_overrides=self._read_file(),
            env_overrides=env_layer,
            cli_overrides=cli_overrides,
        )

    def load_file_overrides(self) -> dict[str, Any]:
        """Return the raw mapping stored in the settings file."""
        return self._read_file()

    def save(self, config: FoldcastConfig | Mapping[str, Any]) -> None:
        """Persist configuration data to disk."""
        if isinstance(config, FoldcastConfig):
            data = config.model_dump(mode="python")
        else:
            data = dict(config)
        self._write_file(data)

    def ensure_exists(self) -> Path:
        """Create a settings file populated with defaults if none exists."""
        if not self._config_path.exists():
            self._write_file(FoldcastConfig().model_dump(mode="python"))
        return self._config_path

    def read_text(self) -> str:
        """Return the current configuration file contents."""
        if not self._config_path.exists():
            return ""
        return self._config_path.read_text(encoding="utf-8")

    def _read_file(self) -> dict[str, Any]:
        if not self._config_path.exists():
            return {}

        try:
            raw = yaml.safe_load(self._config_path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Failed to parse configuration file: {exc}") from exc

        if not isinstance(raw, dict):
            raise ConfigError("Configuration file must contain a mapping at the top level.")
        return raw

    def _write_file(self, data: Mapping[str, Any]) -> None:
        self._config_path.parent.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        body = yaml.safe_dump(dict(data), sort_keys=False)
        self._config_path.write_text(
            f"{_CONFIG_HEADER}# Last updated: {stamp}\n{body}", encoding="utf-8"
        )


__all__ = [
    "ConfigManager",
    "DEFAULT_CONFIG_PATH",
    "FoldcastConfig",
    "resolve_with_precedence",
    "parse_env_overrides",
    "flatten_for_env",
    "ConfigError",
]
