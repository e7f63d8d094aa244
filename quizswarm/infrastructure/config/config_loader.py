"""
Configuration Loader - Bridge Between JSON Config and AppSettings
================================================================
Loads an optional config.json and overlays it on the environment-driven AppSettings.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict

from .settings import AppSettings

SECTIONS = ("hub", "registry", "probe", "logging", "api")


def _resolve_env_vars(data: Any) -> Any:
    """Replace "${VAR}" string values with the environment variable's value."""
    if isinstance(data, dict):
        return {k: _resolve_env_vars(v) for k, v in data.items()}
    if isinstance(data, list):
        return [_resolve_env_vars(i) for i in data]
    if isinstance(data, str) and data.startswith("${") and data.endswith("}"):
        return os.getenv(data[2:-1], "")
    return data


def load_app_settings_from_json(config_path: str = "config/config.json") -> AppSettings:
    """
    Load AppSettings from a JSON configuration file.

    Only the known sections are read; each section's keys are validated by the
    matching settings model, so an unknown key or a bad value fails loudly.
    """
    try:
        with open(config_path, 'r') as f:
            config_data: Dict[str, Any] = _resolve_env_vars(json.load(f))
    except (OSError, json.JSONDecodeError) as e:
        print(f"[WARNING] Failed to load JSON config from {config_path}: {e}")
        print("[INFO] Using default AppSettings configuration")
        return AppSettings()

    settings = AppSettings()
    overrides = {}
    for section in SECTIONS:
        if isinstance(config_data.get(section), dict):
            current = getattr(settings, section)
            overrides[section] = current.model_validate({**current.model_dump(), **config_data[section]})

    return settings.model_copy(update=overrides)


def get_settings_from_working_directory() -> AppSettings:
    """
    Load settings from config.json relative to the working directory.

    Returns:
        Configured AppSettings instance
    """
    possible_paths = [
        os.getenv("QUIZSWARM_CONFIG", ""),
        "config/config.json",
        "../config/config.json",
    ]

    for config_path in possible_paths:
        if config_path and Path(config_path).exists():
            return load_app_settings_from_json(config_path)

    return AppSettings()
