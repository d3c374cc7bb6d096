"""
Configuration loading for gitsum.

Reads the optional JSON settings file in ``~/.gitsum`` and the provider
credentials from the environment. See :mod:`gitsum.config.loader` for
implementation details.
"""

from .loader import AppConfig, ConfigError, load_config  # noqa: F401
