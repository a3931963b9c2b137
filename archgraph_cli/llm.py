"""Multi-provider LLM adapter: Ollama, Groq, OpenAI, OpenRouter, Anthropic and Gemini.

Every provider takes a system instruction plus one user prompt and yields
text chunks. The analysis pipeline only ever concatenates those chunks, so
anything with a compatible ``stream(system, prompt)`` method can stand in
for :class:`LocalLLM`.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, Iterator, Optional, Protocol

import requests

from .config_manager import get_provider_config, load_config
from .errors import CollaboratorError

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 8192
DEFAULT_TEMPERATURE = 0.1


class TextCollaborator(Protocol):
    """Anything that turns (system, prompt) into a stream of text chunks."""

    def stream(self, system: str, prompt: str) -> Iterable[str]:
        ...


def collect_text(collaborator: TextCollaborator, system: str, prompt: str) -> str:
    """Concatenate every chunk *collaborator* streams for *prompt*."""
    return "".join(chunk for chunk in collaborator.stream(system, prompt) if chunk)


class LLMProvider:
    """Base class for LLM providers."""

    def generate(self, system: str, prompt: str) -> Optional[str]:
        """Return the whole response, or None when the provider failed."""
        raise NotImplementedError

    def stream(self, system: str, prompt: str) -> Iterator[str]:
        text = self.generate(system, prompt)
        if text:
            yield text


class OllamaProvider(LLMProvider):
    """Ollama local LLM provider with NDJSON streaming."""

    def __init__(self, model: str, endpoint: str, timeout: float = 300):
        self.model = model
        self.endpoint = endpoint
        self.timeout = timeout

    def _payload(self, system: str, prompt: str, stream: bool) -> Dict[str, Any]:
        return {
            "model": self.model,
            "system": system,
            "prompt": prompt,
            "stream": stream,
            "options": {"temperature": DEFAULT_TEMPERATURE},
        }

    def generate(self, system: str, prompt: str) -> Optional[str]:
        try:
            response = requests.post(
                self.endpoint, json=self._payload(system, prompt, False), timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json().get("response")
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Ollama request failed: %s", exc)
            return None

    def stream(self, system: str, prompt: str) -> Iterator[str]:
        """Yield NDJSON chunks; a failure after the first chunk raises :class:`CollaboratorError`."""
        received = 0
        try:
            with requests.post(
                self.endpoint,
                json=self._payload(system, prompt, True),
                stream=True,
                timeout=self.timeout,
            ) as response:
                response.raise_for_status()
                for line in response.iter_lines():
                    if not line:
                        continue
                    chunk = json.loads(line)
                    if chunk.get("response"):
                        received += len(chunk["response"])
                        yield chunk["response"]
                    if chunk.get("done"):
                        break
        except (requests.RequestException, ValueError) as exc:
            if received:
                raise CollaboratorError(
                    f"Ollama stream interrupted after {received} characters: {exc}"
                ) from exc
            logger.warning("Ollama stream failed: %s", exc)


class OpenAIProvider(LLMProvider):
    """OpenAI chat-completions API (also Groq and other compatible gateways)."""

    def __init__(
        self,
        model: str,
        api_key: str,
        endpoint: str = "https://api.openai.com/v1/chat/completions",
        timeout: float = 120,
    ):
        self.model = model
        self.api_key = api_key
        self.endpoint = endpoint
        self.timeout = timeout

    def generate(self, system: str, prompt: str) -> Optional[str]:
        if not self.api_key:
            logger.warning("No API key configured for %s", self.endpoint)
            return None
        try:
            response = requests.post(
                self.endpoint,
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {self.api_key}",
                },
                json={
                    "model": self.model,
                    "messages": [
                        {"role": "system", "content": system},
                        {"role": "user", "content": prompt},
                    ],
                    "temperature": DEFAULT_TEMPERATURE,
                    "max_tokens": DEFAULT_MAX_TOKENS,
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
            return self._extract_response(response.json())
        except (requests.RequestException, ValueError, KeyError, IndexError) as exc:
            logger.warning("Chat completion request to %s failed: %s", self.endpoint, exc)
            return None

    @staticmethod
    def _extract_response(parsed: Dict[str, Any]) -> Optional[str]:
        """Extract response text, handling reasoning models that return empty content."""
        msg = parsed["choices"][0]["message"]
        content = msg.get("content") or ""
        if content.strip():
            return content
        reasoning = msg.get("reasoning") or ""
        if reasoning.strip():
            return reasoning
        return content or None


class GroqProvider(OpenAIProvider):
    """Groq cloud API provider (OpenAI-compatible)."""

    def __init__(self, model: str, api_key: str):
        super().__init__(model, api_key, "https://api.groq.com/openai/v1/chat/completions")


class OpenRouterProvider(OpenAIProvider):
    """OpenRouter multi-model gateway (OpenAI-compatible)."""

    def __init__(self, model: str, api_key: str, endpoint: str = "https://openrouter.ai/api/v1/chat/completions"):
        super().__init__(model, api_key, endpoint)


class AnthropicProvider(LLMProvider):
    """Anthropic Messages API provider."""

    def __init__(self, model: str, api_key: str, timeout: float = 120):
        self.model = model
        self.api_key = api_key
        self.endpoint = "https://api.anthropic.com/v1/messages"
        self.timeout = timeout

    def generate(self, system: str, prompt: str) -> Optional[str]:
        if not self.api_key:
            logger.warning("No API key configured for Anthropic")
            return None
        try:
            response = requests.post(
                self.endpoint,
                headers={
                    "Content-Type": "application/json",
                    "x-api-key": self.api_key,
                    "anthropic-version": "2023-06-01",
                },
                json={
                    "model": self.model,
                    "system": system,
                    "messages": [{"role": "user", "content": prompt}],
                    "max_tokens": DEFAULT_MAX_TOKENS,
                    "temperature": DEFAULT_TEMPERATURE,
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
            blocks = response.json()["content"]
            return "".join(b.get("text", "") for b in blocks if b.get("type") == "text") or None
        except (requests.RequestException, ValueError, KeyError) as exc:
            logger.warning("Anthropic request failed: %s", exc)
            return None


class GeminiProvider(LLMProvider):
    """Google Gemini API provider."""

    def __init__(self, model: str, api_key: str, timeout: float = 120):
        self.model = model
        self.api_key = api_key
        self.endpoint = f"https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
        self.timeout = timeout

    def generate(self, system: str, prompt: str) -> Optional[str]:
        if not self.api_key:
            logger.warning("No API key configured for Gemini")
            return None
        try:
            response = requests.post(
                self.endpoint,
                params={"key": self.api_key},
                json={
                    "systemInstruction": {"parts": [{"text": system}]},
                    "contents": [{"role": "user", "parts": [{"text": prompt}]}],
                    "generationConfig": {
                        "temperature": DEFAULT_TEMPERATURE,
                        "maxOutputTokens": DEFAULT_MAX_TOKENS,
                    },
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json()["candidates"][0]["content"]["parts"][0]["text"]
        except (requests.RequestException, ValueError, KeyError, IndexError) as exc:
            logger.warning("Gemini request failed: %s", exc)
            return None


class LocalLLM:
    """Configured LLM collaborator; defaults come from ``config.toml``."""

    def __init__(
        self,
        model: Optional[str] = None,
        provider: Optional[str] = None,
        api_key: Optional[str] = None,
        endpoint: Optional[str] = None,
    ):
        """Initialize LLM with provider selection.

        Args:
            model: Model name (defaults to config, then the provider default)
            provider: Provider name: "ollama", "groq", "openai", "openrouter",
                "anthropic", "gemini" (defaults to config)
            api_key: API key for cloud providers (defaults to config)
            endpoint: Custom endpoint for Ollama or OpenAI-compatible APIs
        """
        config = load_config()
        self.provider_name = (provider or config.get("provider") or "ollama").lower()
        defaults = get_provider_config(self.provider_name)
        self.model = model or config.get("model") or defaults.get("model", "")
        self.api_key = api_key or config.get("api_key") or ""
        self.endpoint = endpoint or config.get("endpoint") or defaults.get("endpoint", "")
        self.provider = self._create_provider()

    def _create_provider(self) -> LLMProvider:
        """Create the appropriate provider based on configuration."""
        name = self.provider_name
        if name == "groq":
            return GroqProvider(self.model, self.api_key)
        if name == "openai":
            return OpenAIProvider(
                self.model, self.api_key, self.endpoint or "https://api.openai.com/v1/chat/completions",
            )
        if name == "openrouter":
            return OpenRouterProvider(
                self.model, self.api_key, self.endpoint or "https://openrouter.ai/api/v1/chat/completions",
            )
        if name == "anthropic":
            return AnthropicProvider(self.model, self.api_key)
        if name == "gemini":
            return GeminiProvider(self.model, self.api_key)
        if name != "ollama":
            logger.warning("Unknown LLM provider '%s'; falling back to Ollama", name)
        return OllamaProvider(self.model, self.endpoint or get_provider_config("ollama")["endpoint"])

    def stream(self, system: str, prompt: str) -> Iterator[str]:
        """Yield response chunks; raises :class:`CollaboratorError` if none arrive."""
        produced = False
        for chunk in self.provider.stream(system, prompt):
            if chunk:
                produced = True
                yield chunk
        if not produced:
            raise CollaboratorError(
                f"LLM provider '{self.provider_name}' ({self.model}) returned no response"
            )

    def generate(self, system: str, prompt: str) -> str:
        return collect_text(self, system, prompt)
