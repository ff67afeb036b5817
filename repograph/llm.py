"""Multi-provider LLM adapter supporting OpenAI, OpenRouter, Groq, Anthropic and Ollama."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from .config import DEFAULT_LLM_CONFIGS, Settings

logger = logging.getLogger(__name__)

Message = Dict[str, str]


class LLMError(RuntimeError):
    """Transport, timeout or protocol failure talking to an LLM endpoint."""


class LLMProvider:
    """Base class for LLM providers."""

    name = "llm"

    def __init__(self, model: str, endpoint: str, api_key: str = "") -> None:
        self.model = model
        self.endpoint = endpoint
        self.api_key = api_key

    def complete(
        self,
        messages: List[Message],
        max_tokens: int = 800,
        temperature: float = 0.05,
        timeout: float = 30,
    ) -> str:
        """Return the assistant text for a chat exchange; raise ``LLMError`` on failure."""
        raise NotImplementedError

    def _post(self, payload: Dict[str, Any], headers: Dict[str, str], timeout: float) -> Dict[str, Any]:
        try:
            response = requests.post(
                self.endpoint,
                headers={"Content-Type": "application/json", **headers},
                json=payload,
                timeout=timeout,
            )
        except requests.Timeout as exc:
            raise LLMError(f"{self.name} request timed out after {timeout}s") from exc
        except requests.RequestException as exc:
            raise LLMError(f"{self.name} request failed: {exc}") from exc

        if not response.ok:
            raise LLMError(f"{self.name} API error: {response.status_code} {response.reason}")
        try:
            return response.json()
        except ValueError as exc:
            raise LLMError(f"{self.name} returned a non-JSON body") from exc


class OpenAICompatibleProvider(LLMProvider):
    """OpenAI chat-completions API (also OpenRouter and Groq, which speak the same protocol)."""

    name = "openai"

    def complete(self, messages, max_tokens=800, temperature=0.05, timeout=30) -> str:
        if not self.api_key:
            raise LLMError(f"{self.name} API key is not configured")
        parsed = self._post(
            {
                "model": self.model,
                "messages": messages,
                "max_tokens": max_tokens,
                "temperature": temperature,
            },
            {"Authorization": f"Bearer {self.api_key}"},
            timeout,
        )
        text = self._extract_response(parsed)
        if not text:
            raise LLMError(f"No response content from {self.name} API")
        return text

    @staticmethod
    def _extract_response(parsed: Dict[str, Any]) -> Optional[str]:
        """Extract response text, handling reasoning models that return empty content."""
        try:
            msg = parsed["choices"][0]["message"]
        except (KeyError, IndexError, TypeError):
            return None
        content = msg.get("content") or ""
        if content.strip():
            return content
        reasoning = msg.get("reasoning") or ""
        if reasoning.strip():
            return reasoning
        return None


class OpenRouterProvider(OpenAICompatibleProvider):
    name = "openrouter"


class GroqProvider(OpenAICompatibleProvider):
    name = "groq"


class AnthropicProvider(LLMProvider):
    """Anthropic messages API."""

    name = "anthropic"

    def complete(self, messages, max_tokens=800, temperature=0.05, timeout=30) -> str:
        if not self.api_key:
            raise LLMError("anthropic API key is not configured")
        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [m for m in messages if m["role"] != "system"],
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if system:
            payload["system"] = system
        parsed = self._post(
            payload,
            {"x-api-key": self.api_key, "anthropic-version": "2023-06-01"},
            timeout,
        )
        try:
            return parsed["content"][0]["text"]
        except (KeyError, IndexError, TypeError) as exc:
            raise LLMError("No response content from anthropic API") from exc


class OllamaProvider(LLMProvider):
    """Ollama local LLM provider (``/api/generate``)."""

    name = "ollama"

    def complete(self, messages, max_tokens=800, temperature=0.05, timeout=30) -> str:
        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        prompt = "\n\n".join(m["content"] for m in messages if m["role"] != "system")
        parsed = self._post(
            {
                "model": self.model,
                "system": system,
                "prompt": prompt,
                "stream": False,
                "format": "json",
                "options": {"temperature": temperature, "num_predict": max_tokens},
            },
            {},
            timeout,
        )
        text = parsed.get("response") if isinstance(parsed, dict) else None
        if not text:
            raise LLMError("No response content from ollama")
        return text


_PROVIDERS = {
    "openai": OpenAICompatibleProvider,
    "openrouter": OpenRouterProvider,
    "groq": GroqProvider,
    "anthropic": AnthropicProvider,
    "ollama": OllamaProvider,
}


def create_provider(settings: Settings) -> LLMProvider:
    """Create the provider named by ``settings.llm_provider``."""
    provider_name = settings.llm_provider.lower()
    cls = _PROVIDERS.get(provider_name)
    if cls is None:
        raise LLMError(f"Unknown LLM provider: {settings.llm_provider}")
    defaults = DEFAULT_LLM_CONFIGS[provider_name]
    logger.debug("Using %s provider with model %s", provider_name, settings.llm_model)
    return cls(
        model=settings.llm_model or defaults["model"],
        endpoint=settings.llm_endpoint or defaults["endpoint"],
        api_key=settings.llm_api_key,
    )
