"""
Configuration loader for commit_weaver.

Settings come from four layers, later ones winning:

1. built-in defaults (:data:`DEFAULTS`);
2. the user file ``~/.commit_weaver/config.json``;
3. the project file ``.weaver.json`` in the repository root;
4. the environment: ``ANTHROPIC_API_KEY`` and ``WEAVER_MODEL``.

Missing files are fine. A file that is not valid JSON, or a key with
the wrong type, raises :class:`ConfigError`.
"""

from __future__ import annotations

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


CONFIG_FILE_NAME = "config.json"
PROJECT_CONFIG_NAME = ".weaver.json"

DEFAULTS: Dict[str, Any] = {
    "api_key": None,
    "model": "claude-sonnet-4-20250514",
    "request_timeout": 120,
    "max_tokens": 4096,
    "personality": None,
    "retry": {"max_attempts": 4, "base_delay_ms": 1000, "max_delay_ms": 30000},
    "auto": {
        "interval": 30,
        "max_commits": 100,
        "debounce_ms": 2000,
        "rewrite_history": False,
        "squash_threshold": 5,
    },
    "commit": {"realistic_chunk_threshold": 30},
}

# Expected type(s) per key; nested sections are validated key by key
_TYPES: Dict[str, Any] = {
    "api_key": (str, type(None)),
    "model": str,
    "request_timeout": (int, float),
    "max_tokens": int,
    "personality": (str, type(None)),
    "retry": {"max_attempts": int, "base_delay_ms": int, "max_delay_ms": int},
    "auto": {
        "interval": (int, float),
        "max_commits": int,
        "debounce_ms": int,
        "rewrite_history": bool,
        "squash_threshold": int,
    },
    "commit": {"realistic_chunk_threshold": int},
}


class ConfigError(Exception):
    """Raised when a configuration file is malformed or has invalid values."""

    pass


def _get_config_directory() -> Path:
    """Return the directory holding the user-level configuration."""
    return Path.home() / ".commit_weaver"


def _type_name(expected: Any) -> str:
    if isinstance(expected, tuple):
        return " or ".join(t.__name__ for t in expected if t is not type(None))
    return expected.__name__


def _check(value: Any, expected: Any, key: str) -> None:
    # bool is an int subclass; only accept it where bool is expected
    if isinstance(value, bool) and expected is not bool:
        raise ConfigError(f"'{key}' must be {_type_name(expected)}")
    if not isinstance(value, expected):
        raise ConfigError(f"'{key}' must be {_type_name(expected)}")


def validate(data: Dict[str, Any], source: str = "configuration") -> None:
    """Check the types of every known key in ``data``; unknown keys are ignored."""
    if not isinstance(data, dict):
        raise ConfigError(f"{source} must contain a JSON object")
    for key, value in data.items():
        expected = _TYPES.get(key)
        if expected is None:
            logger.debug("Ignoring unknown configuration key '%s' in %s", key, source)
            continue
        if isinstance(expected, dict):
            if not isinstance(value, dict):
                raise ConfigError(f"'{key}' must be an object")
            for sub_key, sub_value in value.items():
                if sub_key in expected:
                    _check(sub_value, expected[sub_key], f"{key}.{sub_key}")
            continue
        _check(value, expected, key)


def _read(path: Path) -> Dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.error("Failed to read or parse configuration file %s: %s", path, exc)
        raise ConfigError(f"Invalid JSON in {path}: {exc}") from exc
    validate(data, str(path))
    return data


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> None:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            base[key].update(value)
        else:
            base[key] = value


def load_config(repo_root: Optional[Path] = None) -> Dict[str, Any]:
    """Load and merge the configuration layers.

    Args:
        repo_root: Repository root holding an optional ``.weaver.json``.

    Returns:
        The merged configuration dictionary (see :data:`DEFAULTS` for keys).

    Raises:
        ConfigError: If a configuration file is malformed or invalid.
    """
    config = copy.deepcopy(DEFAULTS)
    sources = [_get_config_directory() / CONFIG_FILE_NAME]
    if repo_root is not None:
        sources.append(Path(repo_root) / PROJECT_CONFIG_NAME)
    for path in sources:
        if path.is_file():
            _merge(config, _read(path))
            logger.debug("Loaded configuration from %s", path)

    api_key = os.environ.get("ANTHROPIC_API_KEY")
    if api_key:
        config["api_key"] = api_key
    model = os.environ.get("WEAVER_MODEL")
    if model:
        config["model"] = model
    return config
