"""Multi-provider LLM adapter supporting Ollama, Groq, OpenAI-compatible gateways, Anthropic and Gemini."""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from typing import Any, Dict, Optional

from .config import LLM_API_KEY, LLM_ENDPOINT, LLM_MODEL, LLM_PROVIDER

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
TEMPERATURE = 0.3
MAX_TOKENS = 3000


def _post_json(
    url: str,
    payload: Dict[str, Any],
    headers: Dict[str, str],
    timeout: float,
) -> Optional[Dict[str, Any]]:
    """POST *payload* as JSON and return the decoded body, or ``None`` on transport errors."""
    req = urllib.request.Request(
        url,
        data=json.dumps(payload).encode("utf-8"),
        headers={"Content-Type": "application/json", **headers},
        method="POST",
    )
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            return json.loads(resp.read().decode("utf-8"))
    except urllib.error.HTTPError as exc:
        if exc.code == 429:
            logger.warning("LLM rate limit exceeded at %s", url)
        elif exc.code == 402:
            logger.warning("LLM credits exhausted at %s", url)
        else:
            logger.warning("LLM HTTP error %s at %s", exc.code, url)
    except (urllib.error.URLError, TimeoutError, json.JSONDecodeError) as exc:
        logger.warning("LLM request to %s failed: %s", url, exc)
    return None


class LLMProvider:
    """Base class for LLM providers."""

    def generate(self, prompt: str, system: str = "", timeout: float = DEFAULT_TIMEOUT) -> Optional[str]:
        """Generate a response from the LLM, ``None`` when the call failed."""
        raise NotImplementedError


class OllamaProvider(LLMProvider):
    """Ollama local LLM provider."""

    def __init__(self, model: str, endpoint: str):
        self.model = model
        self.endpoint = endpoint or "http://127.0.0.1:11434/api/generate"

    def generate(self, prompt: str, system: str = "", timeout: float = DEFAULT_TIMEOUT) -> Optional[str]:
        parsed = _post_json(
            self.endpoint,
            {
                "model": self.model,
                "prompt": prompt,
                "system": system,
                "stream": False,
                "options": {"temperature": TEMPERATURE},
            },
            {},
            timeout,
        )
        return parsed.get("response") if parsed else None


class GroqProvider(LLMProvider):
    """Groq cloud API provider."""

    def __init__(self, model: str, api_key: str):
        self.model = model
        self.api_key = api_key
        self.endpoint = "https://api.groq.com/openai/v1/chat/completions"

    def generate(self, prompt: str, system: str = "", timeout: float = DEFAULT_TIMEOUT) -> Optional[str]:
        if not self.api_key:
            return None

        import requests

        try:
            response = requests.post(
                self.endpoint,
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {self.api_key}",
                },
                json={
                    "model": self.model,
                    "messages": _messages(prompt, system),
                    "temperature": TEMPERATURE,
                    "max_tokens": MAX_TOKENS,
                },
                timeout=timeout,
            )
            response.raise_for_status()
            return response.json()["choices"][0]["message"]["content"]
        except (requests.RequestException, KeyError, IndexError, ValueError) as exc:
            logger.warning("Groq request failed: %s", exc)
            return None


class OpenAIProvider(LLMProvider):
    """OpenAI API provider (also works with OpenRouter and other OpenAI-compatible gateways)."""

    def __init__(self, model: str, api_key: str, endpoint: str = "https://api.openai.com/v1/chat/completions"):
        self.model = model
        self.api_key = api_key
        self.endpoint = endpoint

    def generate(self, prompt: str, system: str = "", timeout: float = DEFAULT_TIMEOUT) -> Optional[str]:
        if not self.api_key:
            return None
        parsed = _post_json(
            self.endpoint,
            {
                "model": self.model,
                "messages": _messages(prompt, system),
                "temperature": TEMPERATURE,
                "max_tokens": MAX_TOKENS,
            },
            {"Authorization": f"Bearer {self.api_key}"},
            timeout,
        )
        if not parsed:
            return None
        try:
            return parsed["choices"][0]["message"]["content"]
        except (KeyError, IndexError):
            logger.warning("Unexpected response shape from %s", self.endpoint)
            return None


class AnthropicProvider(LLMProvider):
    """Anthropic Claude API provider."""

    def __init__(self, model: str, api_key: str):
        self.model = model
        self.api_key = api_key
        self.endpoint = "https://api.anthropic.com/v1/messages"

    def generate(self, prompt: str, system: str = "", timeout: float = DEFAULT_TIMEOUT) -> Optional[str]:
        if not self.api_key:
            return None
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": MAX_TOKENS,
            "temperature": TEMPERATURE,
        }
        if system:
            payload["system"] = system
        parsed = _post_json(
            self.endpoint,
            payload,
            {"x-api-key": self.api_key, "anthropic-version": "2023-06-01"},
            timeout,
        )
        if not parsed:
            return None
        try:
            return parsed["content"][0]["text"]
        except (KeyError, IndexError):
            logger.warning("Unexpected response shape from Anthropic")
            return None


class GeminiProvider(LLMProvider):
    """Google Gemini API provider."""

    def __init__(self, model: str, api_key: str):
        self.model = model
        self.api_key = api_key
        self.endpoint = f"https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

    def generate(self, prompt: str, system: str = "", timeout: float = DEFAULT_TIMEOUT) -> Optional[str]:
        if not self.api_key:
            return None
        payload: Dict[str, Any] = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": TEMPERATURE, "maxOutputTokens": MAX_TOKENS},
        }
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}
        parsed = _post_json(f"{self.endpoint}?key={self.api_key}", payload, {}, timeout)
        if not parsed:
            return None
        try:
            return parsed["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError):
            logger.warning("Unexpected response shape from Gemini")
            return None


def _messages(prompt: str, system: str):
    messages = []
    if system:
        messages.append({"role": "system", "content": system})
    messages.append({"role": "user", "content": prompt})
    return messages


class LLMClient:
    """Provider selection over the configured ``[llm]`` settings."""

    def __init__(
        self,
        model: Optional[str] = None,
        provider: Optional[str] = None,
        api_key: Optional[str] = None,
        endpoint: Optional[str] = None,
    ):
        """Initialize the client.

        Args:
            model: Model name (defaults to config, then the provider default)
            provider: "ollama", "groq", "openai", "openrouter", "anthropic" or "gemini"
            api_key: API key for cloud providers (defaults to config)
            endpoint: Custom endpoint for Ollama / OpenAI-compatible gateways
        """
        from .config_manager import get_provider_config

        self.provider_name = (provider or LLM_PROVIDER).lower()
        defaults = get_provider_config(self.provider_name)
        self.model = model or LLM_MODEL or defaults.get("model", "")
        self.api_key = api_key or LLM_API_KEY
        self.endpoint = endpoint or LLM_ENDPOINT or defaults.get("endpoint", "")

        self.provider = self._create_provider()

    def _create_provider(self) -> LLMProvider:
        name = self.provider_name
        if name == "groq":
            return GroqProvider(self.model, self.api_key)
        if name == "openai":
            return OpenAIProvider(
                self.model, self.api_key,
                self.endpoint or "https://api.openai.com/v1/chat/completions",
            )
        if name == "openrouter":
            return OpenAIProvider(
                self.model, self.api_key,
                self.endpoint or "https://openrouter.ai/api/v1/chat/completions",
            )
        if name == "anthropic":
            return AnthropicProvider(self.model, self.api_key)
        if name == "gemini":
            return GeminiProvider(self.model, self.api_key)
        if name == "ollama":
            return OllamaProvider(self.model, self.endpoint)
        raise ValueError(f"Unknown LLM provider '{name}'")

    def generate(self, prompt: str, system: str = "", timeout: float = DEFAULT_TIMEOUT) -> Optional[str]:
        return self.provider.generate(prompt, system=system, timeout=timeout)
