"""Merging of configuration layers into a validated ``FoldcastConfig``."""

from __future__ import annotations

from collections.abc import Mapping as MappingABC
from copy import deepcopy
from typing import Any, Dict, Mapping

import yaml
from pydantic import ValidationError

from .exceptions import ConfigError
from .models import FoldcastConfig

ENV_PREFIX = "FOLDCAST__"


def resolve_with_precedence(
    *,
    defaults: FoldcastConfig,
    file_overrides: Mapping[str, Any] | None = None,
    env_overrides: Mapping[str, Any] | None = None,
    cli_overrides: Mapping[str, Any] | None = None,
) -> FoldcastConfig:
    """Merge configuration layers; later layers win over earlier ones.

    Args:
        defaults: Baseline configuration.
        file_overrides: Values read from the YAML settings file.
        env_overrides: Nested values extracted from ``FOLDCAST__`` variables.
        cli_overrides: Values supplied on the command line, keyed by dotted path.

    Returns:
        FoldcastConfig: Validated configuration.

    Raises:
        ConfigError: If a layer is malformed or the merged values are invalid.
    """
    merged: dict[str, Any] = defaults.model_dump(mode="python")
    layers = (("file", file_overrides), ("environment", env_overrides), ("cli", cli_overrides))
    for name, layer in layers:
        if layer is not None:
            merged = _deep_merge(merged, _expand_dotted(layer, source_name=name))

    try:
        return FoldcastConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration values: {exc}") from exc


def parse_env_overrides(env: Mapping[str, str], prefix: str = ENV_PREFIX) -> dict[str, Any]:
    """Translate ``FOLDCAST__SECTION__KEY`` variables into a nested mapping.

    Values are parsed as YAML so numbers, booleans, and lists keep their types.
    """
    overrides: dict[str, Any] = {}
    for key, raw_value in env.items():
        if not key.startswith(prefix):
            continue
        segments = [segment.lower() for segment in key[len(prefix) :].split("__") if segment]
        if not segments:
            continue
        try:
            value: Any = yaml.safe_load(raw_value)
        except yaml.YAMLError:
            value = raw_value
        _assign(overrides, segments, value, source_name="environment")
    return overrides


def flatten_for_env(config: FoldcastConfig) -> Dict[str, str]:
    """Render the config as the environment variables that would reproduce it."""
    flat: Dict[str, str] = {}

    def _walk(path: list[str], value: Any) -> None:
        if isinstance(value, dict):
            for child_key, child in value.items():
                _walk([*path, str(child_key)], child)
            return
        env_key = ENV_PREFIX + "__".join(part.upper() for part in path)
        if isinstance(value, list):
            flat[env_key] = yaml.safe_dump(value, default_flow_style=True).strip()
        elif value is None:
            flat[env_key] = "null"
        else:
            flat[env_key] = str(value)

    for section, payload in config.model_dump(mode="python").items():
        _walk([section], payload)
    return flat


def _expand_dotted(source: Mapping[str, Any], *, source_name: str) -> dict[str, Any]:
    if not isinstance(source, MappingABC):
        raise ConfigError(f"{source_name.capitalize()} overrides must be a mapping.")

    expanded: dict[str, Any] = {}
    for key, value in source.items():
        if not isinstance(key, str):
            raise ConfigError(f"{source_name.capitalize()} override keys must be strings.")
        if isinstance(value, MappingABC):
            value = _expand_dotted(value, source_name=source_name)
        _assign(expanded, key.split("."), value, source_name=source_name)
    return expanded


def _assign(target: dict[str, Any], path: list[str], value: Any, *, source_name: str) -> None:
    node = target
    for segment in path[:-1]:
        child = node.setdefault(segment, {})
        if not isinstance(child, dict):
            raise ConfigError(
                f"{source_name.capitalize()} override for {'.'.join(path)} "
                "conflicts with existing value."
            )
        node = child
    leaf = path[-1]
    if isinstance(value, dict) and isinstance(node.get(leaf), dict):
        node[leaf] = _deep_merge(node[leaf], value)
    else:
        node[leaf] = value


def _deep_merge(base: Mapping[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    merged = {key: deepcopy(value) for key, value in base.items()}
    for key, value in overrides.items():
        current = merged.get(key)
        if isinstance(value, MappingABC) and isinstance(current, MappingABC):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = deepcopy(value)
    return merged


__all__ = ["ENV_PREFIX", "resolve_with_precedence", "parse_env_overrides", "flatten_for_env"]
