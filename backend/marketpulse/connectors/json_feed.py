import json
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Union

from pydantic import ValidationError

from marketpulse.core.errors import SourceError
from marketpulse.schemas.listing import RawListing
from .base import RawListingSource

logger = logging.getLogger(__name__)

NUMBER_PATTERN = re.compile(r"\d+(?:\.\d+)?")

FIELD_ALIASES = {
    "source_url": ("source_url", "url", "listing_url"),
    "vin": ("vin",),
    "title": ("title", "name"),
    "year": ("year", "model_year"),
    "price": ("price", "sold_price", "sale_price"),
    "mileage": ("mileage", "miles"),
    "exterior_color_text": ("exterior_color_text", "exterior_color", "color"),
    "options_text": ("options_text", "options"),
    "sold_date": ("sold_date", "sale_date", "end_date"),
    "scraped_at": ("scraped_at",),
}


def _first(payload: Mapping, keys: Iterable[str]) -> Any:
    for key in keys:
        value = payload.get(key)
        if value not in (None, ""):
            return value
    return None


def _parse_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    match = NUMBER_PATTERN.search(str(value).replace(",", ""))
    return float(match.group(0)) if match else None


def _parse_date_text(value: Any) -> Any:
    # "2024-05-01T18:00:00Z" -> "2024-05-01"
    if isinstance(value, str) and len(value) > 10 and value[4] == "-":
        return value[:10]
    return value


class JsonFeedSource(RawListingSource):
    """Listings exported by a scraper as a JSON array or as JSON lines."""

    def __init__(self, name: str, path: Optional[Union[str, Path]] = None, text: Optional[str] = None) -> None:
        if (path is None) == (text is None):
            raise ValueError("JsonFeedSource needs exactly one of path or text")
        self.name = name
        self.path = Path(path) if path is not None else None
        self.text = text
        self.fetched_at = datetime.utcnow()

    def _read(self) -> str:
        if self.text is not None:
            return self.text
        try:
            return self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise SourceError(f"Cannot read feed {self.path}: {exc}") from exc

    def iter_payloads(self) -> Iterable[Any]:
        text = self._read().strip()
        if not text:
            return
        if text.startswith("["):
            try:
                records = json.loads(text)
            except ValueError as exc:
                raise SourceError(f"[{self.name}] feed is not valid JSON: {exc}") from exc
            yield from records
            return
        for line in text.splitlines():
            if not line.strip():
                continue
            try:
                yield json.loads(line)
            except ValueError:
                # handed to parse_listing undecoded so the run records it as a failure
                yield line

    def parse_listing(self, payload: Any) -> RawListing:
        if isinstance(payload, str):
            try:
                payload = json.loads(payload)
            except ValueError as exc:
                raise SourceError(f"[{self.name}] malformed JSON line: {payload[:80]!r}") from exc
        if not isinstance(payload, Mapping):
            raise SourceError(f"[{self.name}] expected a JSON object, got {type(payload).__name__}")

        data = {field: _first(payload, keys) for field, keys in FIELD_ALIASES.items()}
        options = data["options_text"]
        if isinstance(options, list):
            data["options_text"] = ", ".join(str(item) for item in options)
        data["price"] = _parse_number(data["price"])
        mileage = _parse_number(data["mileage"])
        data["mileage"] = int(mileage) if mileage is not None else None
        data["sold_date"] = _parse_date_text(data["sold_date"])
        data["scraped_at"] = data["scraped_at"] or self.fetched_at
        data["source"] = self.name

        try:
            return RawListing(**data)
        except ValidationError as exc:
            url = data.get("source_url") or "<no url>"
            raise SourceError(f"[{self.name}] invalid listing {url}: {exc.error_count()} field error(s)") from exc
