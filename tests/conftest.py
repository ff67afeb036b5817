"""Shared fixtures for repograph tests."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from repograph import config
from repograph.config import Settings
from repograph.llm import LLMProvider

FIXTURES_DIR = Path(__file__).parent / "fixtures"

_LLM_ENV_VARS = (
    config.ENV_PROVIDER,
    config.ENV_MODEL,
    config.ENV_ENDPOINT,
    config.ENV_API_KEY,
    config.ENV_OPENAI_API_KEY,
)


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point the config file at a temp dir and strip LLM credentials from the environment."""
    config_file = tmp_path / "repograph-home" / "config.toml"
    monkeypatch.setattr(config, "CONFIG_FILE", config_file)
    for name in _LLM_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield config_file


@pytest.fixture(autouse=True)
def no_network(monkeypatch):
    """No test may reach a real LLM endpoint."""
    def _refuse(*args, **kwargs):
        raise AssertionError("unexpected HTTP request in tests")

    monkeypatch.setattr("repograph.llm.requests.post", _refuse)


@pytest.fixture
def settings():
    """Default settings with a single worker and no credential."""
    return Settings(concurrency=1)


@pytest.fixture
def sample_files():
    """A small in-memory TypeScript project."""
    return {
        "src/util.ts": "export function helper(x: number): number {\n  return x + 1;\n}\n",
        "src/main.ts": "import { helper } from './util';\n\nhelper(1);\n",
        "src/sub/view.ts": (
            "import { helper } from '../util';\n"
            "\n"
            "export function render() {\n"
            "  return helper(2);\n"
            "}\n"
        ),
    }


@pytest.fixture
def fake_provider():
    """A provider whose ``complete`` returns a canned JSON reply."""
    provider = MagicMock(spec=LLMProvider)
    provider.complete.return_value = '{"fileEdges": [], "functionEdges": [], "notes": []}'
    return provider


@pytest.fixture
def sample_project_path():
    """Path to the on-disk sample project."""
    return FIXTURES_DIR / "sample_project"
