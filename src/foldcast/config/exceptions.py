"""Exceptions raised while loading or resolving foldcast settings."""


class ConfigError(Exception):
    """Raised when the settings file, environment, or overrides are unusable."""
