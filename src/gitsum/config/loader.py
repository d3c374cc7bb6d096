"""
Configuration loader for gitsum.

Settings come from two places:

* an optional JSON file ``~/.gitsum/config.json`` with model names,
  timeouts and limits;
* the ``ANTHROPIC_API_KEY`` and ``OPENAI_API_KEY`` environment
  variables, which may also be provided through a ``.env`` file in the
  repository or the current directory.

Both are read exactly once by :func:`load_config`, which returns an
immutable :class:`AppConfig`. Components never read the environment
themselves. A malformed file or a value of the wrong type raises
:class:`ConfigError`.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from dotenv import find_dotenv, load_dotenv

from gitsum.diff.diff_extractor import DEFAULT_MAX_DIFF_BYTES
from gitsum.llm.provider_chain import ANTHROPIC, OPENAI, ProviderConfig, ProviderEntry
from gitsum.llm.provider_clients import DEFAULT_MAX_TOKENS, DEFAULT_REQUEST_TIMEOUT


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())


CONFIG_FILE_NAME = "config.json"
ANTHROPIC_KEY_ENV = "ANTHROPIC_API_KEY"
OPENAI_KEY_ENV = "OPENAI_API_KEY"

DEFAULT_ANTHROPIC_MODEL = "claude-3-5-sonnet-20241022"
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"

# Optional keys and the types they must have.
_OPTIONAL_KEYS = {
    "anthropic_model": (str,),
    "openai_model": (str,),
    "anthropic_base_url": (str,),
    "openai_base_url": (str,),
    "request_timeout": (int, float),
    "max_tokens": (int,),
    "max_diff_bytes": (int,),
}


class ConfigError(Exception):
    """Raised when the configuration file is malformed or invalid."""

    pass


@dataclass(frozen=True)
class AppConfig:
    """Validated settings for one process."""

    providers: ProviderConfig
    max_diff_bytes: int = DEFAULT_MAX_DIFF_BYTES
    config_path: Optional[Path] = None


def _get_config_directory() -> Path:
    """Return the directory holding the gitsum configuration file."""
    return Path.home() / ".gitsum"


def _read_settings(config_path: Path) -> Dict[str, Any]:
    if not config_path.exists():
        logger.debug("No configuration file at %s; using defaults", config_path)
        return {}
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.error("Failed to read or parse configuration file: %s", exc)
        raise ConfigError(f"Invalid JSON in {config_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{config_path} must contain a JSON object")

    for key, types in _OPTIONAL_KEYS.items():
        if key not in data:
            continue
        value = data[key]
        # bool is an int subclass but never a valid setting
        if isinstance(value, bool) or not isinstance(value, types):
            expected = "a string" if types == (str,) else ("an integer" if types == (int,) else "a number")
            raise ConfigError(f"'{key}' must be {expected}")
    for key in ("request_timeout", "max_tokens", "max_diff_bytes"):
        if key in data and data[key] <= 0:
            raise ConfigError(f"'{key}' must be positive")
    unknown = sorted(set(data) - set(_OPTIONAL_KEYS))
    if unknown:
        logger.warning("Ignoring unknown configuration keys: %s", ", ".join(unknown))
    logger.debug("Loaded configuration from: %s", config_path)
    return data


def build_provider_config(settings: Mapping[str, Any], environ: Mapping[str, str]) -> ProviderConfig:
    """Create the provider list from file settings and credentials."""
    timeout = float(settings.get("request_timeout", DEFAULT_REQUEST_TIMEOUT))
    max_tokens = int(settings.get("max_tokens", DEFAULT_MAX_TOKENS))
    anthropic_key = environ.get(ANTHROPIC_KEY_ENV) or None
    openai_key = environ.get(OPENAI_KEY_ENV) or None
    return ProviderConfig.from_entries(
        [
            ProviderEntry(
                name=ANTHROPIC,
                credential_present=anthropic_key is not None,
                model_id=settings.get("anthropic_model", DEFAULT_ANTHROPIC_MODEL),
                api_key=anthropic_key,
                base_url=settings.get("anthropic_base_url"),
                timeout=timeout,
                max_tokens=max_tokens,
            ),
            ProviderEntry(
                name=OPENAI,
                credential_present=openai_key is not None,
                model_id=settings.get("openai_model", DEFAULT_OPENAI_MODEL),
                api_key=openai_key,
                base_url=settings.get("openai_base_url"),
                timeout=timeout,
                max_tokens=max_tokens,
            ),
        ]
    )


def load_config(repo_root: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Load settings and credentials and return an :class:`AppConfig`.

    Args:
        repo_root: Repository root; a ``.env`` file there is loaded before
            the one in the current directory. Existing environment
            variables are never overridden.
        environ: Mapping to read credentials from instead of ``os.environ``.
            No ``.env`` file is loaded when it is given.

    Raises:
        ConfigError: If the configuration file is malformed or invalid.
    """
    if environ is None:
        if repo_root is not None and (repo_root / ".env").exists():
            load_dotenv(repo_root / ".env")
        dotenv_path = find_dotenv(usecwd=True)
        if dotenv_path:
            load_dotenv(dotenv_path)
        environ = os.environ

    config_path = _get_config_directory() / CONFIG_FILE_NAME
    settings = _read_settings(config_path)
    providers = build_provider_config(settings, environ)
    logger.debug("Providers with credentials: %s", providers.available or "none")
    return AppConfig(
        providers=providers,
        max_diff_bytes=int(settings.get("max_diff_bytes", DEFAULT_MAX_DIFF_BYTES)),
        config_path=config_path if config_path.exists() else None,
    )
