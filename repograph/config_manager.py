"""Configuration manager for repograph using TOML files."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

import toml

from . import config
from .config import DEFAULT_LLM_CONFIGS, Settings, settings_from_mapping

logger = logging.getLogger(__name__)


def load_full_config() -> Dict[str, Any]:
    """Load the entire TOML config (all sections); empty when absent or unreadable."""
    path = config.CONFIG_FILE
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Could not read %s: %s", path, exc)
        return {}


def load_config() -> Dict[str, Any]:
    """Return the ``[llm]`` section."""
    return dict(load_full_config().get("llm", {}))


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Resolve the effective settings from ``config.toml`` and the environment."""
    return settings_from_mapping(load_full_config(), environ)


def _save_full_config(data: Dict[str, Any]) -> bool:
    """Write the entire config dict, preserving every section."""
    path = config.CONFIG_FILE
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            toml.dump(data, f)
        return True
    except OSError as exc:
        logger.error("Could not write %s: %s", path, exc)
        return False


def save_llm_config(provider: str, model: str = "", api_key: str = "", endpoint: str = "") -> bool:
    """Save the ``[llm]`` section, leaving ``[analysis]`` and others untouched.

    Args:
        provider: One of ``config.SUPPORTED_PROVIDERS``
        model: Model name; provider default when empty
        api_key: API key for cloud providers
        endpoint: Custom endpoint URL

    Returns:
        True if saved successfully, False otherwise
    """
    provider = provider.lower()
    if provider not in DEFAULT_LLM_CONFIGS:
        raise ValueError(f"Unknown provider: {provider}")

    data = load_full_config()
    data["llm"] = {
        "provider": provider,
        "model": model or DEFAULT_LLM_CONFIGS[provider]["model"],
    }
    if api_key:
        data["llm"]["api_key"] = api_key
    if endpoint:
        data["llm"]["endpoint"] = endpoint
    return _save_full_config(data)
