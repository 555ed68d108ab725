"""AI-assisted structured extraction used when the rule stage leaves gaps.

``TaxonomyExtractor.extract`` never raises: provider errors come back as an
:class:`ExtractionFailure` so ingestion can always continue with the rule
result. Vocabulary filtering of the returned values is the normalizer's job.
"""

import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Literal, Optional, Tuple, Union

from marketpulse.core.config import Settings, get_settings
from marketpulse.core.errors import AIProviderError, QuotaExhaustedError, TransientAIError
from .ai_provider import AIProvider, get_ai_provider

logger = logging.getLogger(__name__)

RESPONSE_KEYS = frozenset({"model", "trim", "generation", "options"})
MAX_OPTIONS_TEXT = 500

SYSTEM_PROMPT = (
    "You are a Porsche vehicle expert and data normalization specialist. "
    "Extract structured information from a sale listing and answer with ONLY a JSON object."
)

USER_PROMPT = """Listing Title: {title}
Year: {year}
Price: {price}
Mileage: {mileage}
Color: {color}
Options Text: {options_text}

Return a JSON object with exactly these fields:
- model: "911", "718 Cayman" or "718 Boxster" (null for any other model)
- trim: the specific trim, e.g. "GT3", "GT3 RS", "GT4 RS", "Turbo S", "Carrera 4S Cabriolet"
- generation: the generation code if identifiable, e.g. "992.1", "991.2", "982"
- options: array of factory option names found in the listing

Use null for anything you cannot determine. Return ONLY the JSON object, no other text."""

FailureKind = Literal["quota", "transient", "error", "unparseable", "disabled"]


@dataclass(frozen=True)
class ExtractionRequest:
    title: str
    year: Optional[int] = None
    price: Optional[float] = None
    mileage: Optional[int] = None
    color: Optional[str] = None
    options_text: Optional[str] = None

    def prompt(self) -> str:
        options_text = self.options_text or "None provided"
        if len(options_text) > MAX_OPTIONS_TEXT:
            options_text = options_text[:MAX_OPTIONS_TEXT] + "..."
        return USER_PROMPT.format(
            title=self.title,
            year=self.year or "Unknown",
            price=f"${self.price:,.0f}" if self.price is not None else "Unknown",
            mileage=self.mileage if self.mileage is not None else "Unknown",
            color=self.color or "Unknown",
            options_text=options_text,
        )


@dataclass(frozen=True)
class PartialTaxonomy:
    model: Optional[str] = None
    trim: Optional[str] = None
    generation: Optional[str] = None
    options: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ExtractionFailure:
    kind: FailureKind
    message: str = ""


ExtractionOutcome = Union[PartialTaxonomy, ExtractionFailure]


class TaxonomyExtractor(ABC):
    enabled = True

    @abstractmethod
    def extract(self, request: ExtractionRequest) -> ExtractionOutcome:  # pragma: no cover - interface
        raise NotImplementedError


class DisabledExtractor(TaxonomyExtractor):
    """Always fails; used when no AI provider is configured."""

    enabled = False

    def extract(self, request: ExtractionRequest) -> ExtractionOutcome:
        return ExtractionFailure(kind="disabled", message="AI fallback is not configured")


def extract_first_json_object(text: str, allowed_keys: frozenset = RESPONSE_KEYS) -> Optional[Dict[str, Any]]:
    """First well-formed JSON object in ``text`` whose keys are all in ``allowed_keys``."""
    decoder = json.JSONDecoder()
    index = text.find("{")
    while index != -1:
        try:
            payload, _ = decoder.raw_decode(text, index)
        except ValueError:
            payload = None
        if isinstance(payload, dict) and set(payload) <= allowed_keys:
            return payload
        index = text.find("{", index + 1)
    return None


def _as_text(value: Any) -> Optional[str]:
    if isinstance(value, (str, int, float)) and not isinstance(value, bool):
        text = str(value).strip()
        return text or None
    return None


class ChatTaxonomyExtractor(TaxonomyExtractor):
    def __init__(
        self,
        provider: AIProvider,
        max_attempts: int = 3,
        backoff_base: float = 2.0,
        backoff_max: float = 8.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.provider = provider
        self.max_attempts = max(max_attempts, 1)
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self._sleep = sleep

    def _chat_with_retry(self, messages: list[Dict[str, str]]) -> Union[str, ExtractionFailure]:
        for attempt in range(1, self.max_attempts + 1):
            try:
                return self.provider.chat(messages)
            except QuotaExhaustedError as exc:
                logger.warning("AI quota exhausted: %s", exc)
                return ExtractionFailure(kind="quota", message=str(exc))
            except TransientAIError as exc:
                if attempt == self.max_attempts:
                    logger.warning("AI still unavailable after %s attempts: %s", attempt, exc)
                    return ExtractionFailure(kind="transient", message=str(exc))
                delay = min(self.backoff_base * 2 ** (attempt - 1), self.backoff_max)
                logger.info("AI overloaded, retrying in %.1fs (attempt %s/%s)", delay, attempt, self.max_attempts)
                self._sleep(delay)
            except AIProviderError as exc:
                logger.warning("AI request failed: %s", exc)
                return ExtractionFailure(kind="error", message=str(exc))
        return ExtractionFailure(kind="transient", message="no attempts made")  # pragma: no cover

    def extract(self, request: ExtractionRequest) -> ExtractionOutcome:
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": request.prompt()},
        ]
        reply = self._chat_with_retry(messages)
        if isinstance(reply, ExtractionFailure):
            return reply

        payload = extract_first_json_object(reply)
        if payload is None:
            logger.warning("Unparseable AI response for %r: %.200s", request.title, reply)
            return ExtractionFailure(kind="unparseable", message="no JSON object with the expected keys")

        options = payload.get("options")
        return PartialTaxonomy(
            model=_as_text(payload.get("model")),
            trim=_as_text(payload.get("trim")),
            generation=_as_text(payload.get("generation")),
            options=tuple(filter(None, (_as_text(item) for item in options))) if isinstance(options, list) else (),
        )


def get_taxonomy_extractor(settings: Optional[Settings] = None) -> TaxonomyExtractor:
    settings = settings or get_settings()
    provider = get_ai_provider(settings)
    if provider is None:
        return DisabledExtractor()
    return ChatTaxonomyExtractor(
        provider,
        max_attempts=settings.ai_max_attempts,
        backoff_base=settings.ai_backoff_base_seconds,
        backoff_max=settings.ai_backoff_max_seconds,
    )
