"""Configuration paths, defaults and the resolved ``Settings`` object."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

BASE_DIR = Path(os.environ.get("REPOGRAPH_HOME", str(Path.home() / ".repograph"))).expanduser()
CONFIG_FILE = BASE_DIR / "config.toml"

DEFAULT_PROVIDER = "openai"

# Per-provider defaults; ``endpoint`` is the full chat/generate URL.
DEFAULT_LLM_CONFIGS: Dict[str, Dict[str, str]] = {
    "openai": {
        "model": "gpt-4o-mini",
        "endpoint": "https://api.openai.com/v1/chat/completions",
    },
    "openrouter": {
        "model": "openai/gpt-4o-mini",
        "endpoint": "https://openrouter.ai/api/v1/chat/completions",
    },
    "groq": {
        "model": "llama-3.3-70b-versatile",
        "endpoint": "https://api.groq.com/openai/v1/chat/completions",
    },
    "anthropic": {
        "model": "claude-3-5-haiku-20241022",
        "endpoint": "https://api.anthropic.com/v1/messages",
    },
    "ollama": {
        "model": "qwen2.5-coder:7b",
        "endpoint": "http://127.0.0.1:11434/api/generate",
    },
}
SUPPORTED_PROVIDERS = tuple(DEFAULT_LLM_CONFIGS)

DEFAULT_ANALYSIS_CONFIG: Dict[str, int] = {
    "max_files": 1000,
    "concurrency": 8,
    "llm_min_files": 5,
    "llm_max_files": 20,
    "llm_timeout": 30,
    "llm_max_tokens": 800,
}

ENV_PROVIDER = "REPOGRAPH_LLM_PROVIDER"
ENV_MODEL = "REPOGRAPH_LLM_MODEL"
ENV_ENDPOINT = "REPOGRAPH_LLM_ENDPOINT"
ENV_API_KEY = "REPOGRAPH_LLM_API_KEY"
ENV_OPENAI_API_KEY = "OPENAI_API_KEY"


@dataclass
class Settings:
    """Effective configuration for one run (file values overlaid by environment)."""

    llm_provider: str = DEFAULT_PROVIDER
    llm_model: str = DEFAULT_LLM_CONFIGS[DEFAULT_PROVIDER]["model"]
    llm_api_key: str = ""
    llm_endpoint: str = DEFAULT_LLM_CONFIGS[DEFAULT_PROVIDER]["endpoint"]
    max_files: int = DEFAULT_ANALYSIS_CONFIG["max_files"]
    concurrency: int = DEFAULT_ANALYSIS_CONFIG["concurrency"]
    llm_min_files: int = DEFAULT_ANALYSIS_CONFIG["llm_min_files"]
    llm_max_files: int = DEFAULT_ANALYSIS_CONFIG["llm_max_files"]
    llm_timeout: int = DEFAULT_ANALYSIS_CONFIG["llm_timeout"]
    llm_max_tokens: int = DEFAULT_ANALYSIS_CONFIG["llm_max_tokens"]

    @property
    def has_llm_credential(self) -> bool:
        return bool(self.llm_api_key) or self.llm_provider == "ollama"

    @property
    def masked_api_key(self) -> str:
        key = self.llm_api_key
        if not key:
            return "(not set)"
        return f"{key[:4]}…{key[-4:]}" if len(key) > 8 else "****"


def settings_from_mapping(
    config: Mapping[str, Any],
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Build ``Settings`` from a parsed config document and environment variables."""
    env = os.environ if environ is None else environ
    llm = dict(config.get("llm") or {})
    analysis = dict(config.get("analysis") or {})

    provider = (env.get(ENV_PROVIDER) or llm.get("provider") or DEFAULT_PROVIDER).lower()
    defaults = DEFAULT_LLM_CONFIGS.get(provider, DEFAULT_LLM_CONFIGS[DEFAULT_PROVIDER])

    api_key = env.get(ENV_API_KEY) or llm.get("api_key") or ""
    if not api_key and provider == "openai":
        api_key = env.get(ENV_OPENAI_API_KEY, "")

    values: Dict[str, int] = {}
    for key, default in DEFAULT_ANALYSIS_CONFIG.items():
        raw = analysis.get(key, default)
        try:
            values[key] = int(raw)
        except (TypeError, ValueError):
            values[key] = default

    return Settings(
        llm_provider=provider,
        llm_model=env.get(ENV_MODEL) or llm.get("model") or defaults["model"],
        llm_api_key=api_key,
        llm_endpoint=env.get(ENV_ENDPOINT) or llm.get("endpoint") or defaults["endpoint"],
        **values,
    )
