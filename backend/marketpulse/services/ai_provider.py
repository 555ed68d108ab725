import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import httpx

from marketpulse.core.config import Settings, get_settings
from marketpulse.core.errors import AIProviderError, QuotaExhaustedError, TransientAIError

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = {500, 502, 503, 504}


class AIProvider(ABC):
    @abstractmethod
    def chat(self, messages: list[Dict[str, str]]) -> str:  # pragma: no cover - interface
        raise NotImplementedError


class MockProvider(AIProvider):
    """Offline provider that answers every prompt with a fixed reply."""

    def __init__(self, reply: str = "{}") -> None:
        self.reply = reply
        self.calls: List[list[Dict[str, str]]] = []

    def chat(self, messages: list[Dict[str, str]]) -> str:
        self.calls.append(messages)
        return self.reply


class GeminiProvider(AIProvider):
    """Google Generative Language REST API over httpx.

    Raises :class:`TransientAIError` for overload and transport failures,
    :class:`QuotaExhaustedError` for 429 / ``RESOURCE_EXHAUSTED`` and
    :class:`AIProviderError` for anything else.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.5-flash",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: float = 20.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    def _client_or_default(self) -> httpx.Client:
        if self._client:
            return self._client
        self._client = httpx.Client(timeout=self.timeout)
        return self._client

    def chat(self, messages: list[Dict[str, str]]) -> str:
        system = "\n".join(m["content"] for m in messages if m["role"] == "system")
        contents = [
            {"role": "model" if m["role"] == "assistant" else "user", "parts": [{"text": m["content"]}]}
            for m in messages
            if m["role"] != "system"
        ]
        payload: Dict[str, object] = {"contents": contents, "generationConfig": {"temperature": 0.1}}
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}

        url = f"{self.base_url}/models/{self.model}:generateContent"
        try:
            response = self._client_or_default().post(url, params={"key": self.api_key}, json=payload)
        except httpx.TimeoutException as exc:
            raise TransientAIError(f"AI request timed out: {exc}") from exc
        except httpx.TransportError as exc:
            raise TransientAIError(f"AI transport error: {exc}") from exc

        if response.status_code == 429 or "RESOURCE_EXHAUSTED" in response.text:
            raise QuotaExhaustedError(f"AI quota exhausted ({response.status_code})")
        if response.status_code in TRANSIENT_STATUS_CODES:
            raise TransientAIError(f"AI service overloaded ({response.status_code})")
        if response.is_error:
            raise AIProviderError(f"AI request failed ({response.status_code}): {response.text[:200]}")

        try:
            candidates = response.json().get("candidates") or []
            parts = candidates[0]["content"]["parts"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise AIProviderError("AI response has no candidate text") from exc
        return "".join(part.get("text", "") for part in parts if isinstance(part, dict))


def get_ai_provider(settings: Optional[Settings] = None) -> Optional[AIProvider]:
    settings = settings or get_settings()
    name = settings.ai_provider.lower()
    if name == "gemini":
        if not settings.ai_api_key:
            logger.warning("AI provider 'gemini' selected without an API key; AI fallback disabled")
            return None
        return GeminiProvider(
            api_key=settings.ai_api_key,
            model=settings.ai_model,
            base_url=settings.ai_base_url,
            timeout=settings.ai_timeout_seconds,
        )
    if name == "mock":
        return MockProvider()
    return None
