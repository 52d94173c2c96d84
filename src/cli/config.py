"""Configuration loading and management."""

import os
from pathlib import Path
from typing import Optional

import yaml

from .config_models import ResolutionCoachConfig

STORE_URL_ENV_VARS = ("KV_URL", "REDIS_URL")


def find_config() -> Optional[Path]:
    """Find config file in standard locations."""
    locations = [
        Path.cwd() / "config.yaml",
        Path.home() / ".resolution-coach" / "config.yaml",
    ]
    for loc in locations:
        if loc.exists():
            return loc
    return None


def _env_overrides() -> dict:
    overrides: dict = {}
    for var in STORE_URL_ENV_VARS:
        url = os.getenv(var)
        if url:
            overrides["store"] = {"url": url}
            break
    api_key = os.getenv("ANTHROPIC_API_KEY")
    if api_key:
        overrides["llm"] = {"api_key": api_key}
    return overrides


def load_config_model(config_path: Optional[Path] = None) -> ResolutionCoachConfig:
    """Load configuration as Pydantic model with validation.

    Environment variables (KV_URL / REDIS_URL, ANTHROPIC_API_KEY) take
    precedence over the file.
    """
    base_config = {}

    path = config_path or find_config()
    if path and path.exists():
        try:
            with open(path) as f:
                base_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in config file: {e}")

    merged = deep_merge(base_config, _env_overrides())
    try:
        return ResolutionCoachConfig.model_validate(merged)
    except Exception as e:
        raise ValueError(f"Config validation failed: {e}")


def deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dictionaries."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result
