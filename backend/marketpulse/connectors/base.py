from abc import ABC, abstractmethod
from typing import Any, Iterable, Iterator

from marketpulse.schemas.listing import RawListing


class RawListingSource(ABC):
    """A feed of scraped listings for one marketplace.

    Fetching (HTTP, headless browsers, proxies) happens upstream; a source only
    hands over payloads and turns each one into a :class:`RawListing`.
    """

    name: str

    @abstractmethod
    def iter_payloads(self) -> Iterable[Any]:  # pragma: no cover - interface
        """Yield one undecoded record per listing."""

    @abstractmethod
    def parse_listing(self, payload: Any) -> RawListing:  # pragma: no cover - interface
        """Map a source record onto the raw listing schema; raise SourceError if impossible."""

    def fetch_listings(self) -> Iterator[RawListing]:
        for payload in self.iter_payloads():
            yield self.parse_listing(payload)
