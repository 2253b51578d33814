"""Settings from ``receiptflow.toml`` or ``[tool.receiptflow]`` in ``pyproject.toml``."""

from __future__ import annotations

import warnings
from functools import lru_cache
from pathlib import Path
from typing import Any

import tomllib

DEFAULT_CONFIG: dict[str, dict[str, Any]] = {
    "analysis": {
        "backend": "gemini",
        "model": None,
        "temperature": 0.1,
        "consult_temperature": 0.7,
    },
    "video": {
        "sample_interval": 1.0,
        "frame_timeout": 20.0,
        "extract_timeout": 20.0,
    },
    "export": {
        "vocabulary": "en",
    },
    "pipeline": {
        "candidate_failure_policy": "drop",
    },
}


def _find_config_file() -> Path | None:
    """``receiptflow.toml`` in the working directory wins over ``pyproject.toml``."""
    cwd = Path.cwd()
    for name in ("receiptflow.toml", "pyproject.toml"):
        path = cwd / name
        if path.exists():
            return path
    return None


def _load_toml(path: Path) -> dict[str, Any]:
    with open(path, "rb") as f:
        return tomllib.load(f)


def _extract_config(data: dict[str, Any], filename: str) -> dict[str, Any]:
    if filename == "receiptflow.toml":
        return data
    elif filename == "pyproject.toml":
        return data.get("tool", {}).get("receiptflow", {})
    return {}


@lru_cache(maxsize=1)
def _get_cached_config() -> dict[str, Any]:
    # A broken config file falls back to the defaults with a warning
    config_path = _find_config_file()
    if config_path is None:
        return {}

    try:
        data = _load_toml(config_path)
        return _extract_config(data, config_path.name)
    except tomllib.TOMLDecodeError as e:
        warnings.warn(f"Invalid TOML in config file {config_path}: {e}", RuntimeWarning)
        return {}
    except OSError as e:
        warnings.warn(f"Cannot read config file {config_path}: {e}", RuntimeWarning)
        return {}


def get_config() -> dict[str, Any]:
    return _get_cached_config()


def get_setting(section: str, key: str) -> Any:
    """Value of ``[section] key`` from the config file, else from DEFAULT_CONFIG.

    Unknown keys return None.
    """
    section_data = get_config().get(section, {})
    if isinstance(section_data, dict) and key in section_data:
        return section_data[key]
    return DEFAULT_CONFIG.get(section, {}).get(key)


def get_default_backend() -> str:
    return str(get_setting("analysis", "backend"))


def clear_config_cache() -> None:
    """Forget the loaded file so the next lookup reads it again."""
    _get_cached_config.cache_clear()
