"""
Scraper sources

Scraping itself (browser automation against third-party sites) lives outside
this package. A source only has to turn keywords/location into business
records; sources are registered by name on a ScraperRegistry.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List

from ..exceptions import ScrapingError

logger = logging.getLogger(__name__)

# Business record as returned by a source. Keys mirror Business columns:
# name (required), email, phone, website, address, category, rating,
# review_count, latitude, longitude.
BusinessData = Dict[str, Any]


@dataclass
class ScrapeOptions:
    keywords: List[str] = field(default_factory=list)
    location: str = ""
    limit: int = 20


class ScraperSource(ABC):
    """One scraping backend (google-maps, linkedin, ...)."""

    name: str = ""

    @abstractmethod
    async def scrape(self, options: ScrapeOptions, user_id: str) -> List[BusinessData]:
        """
        Return up to options.limit business records.

        Raises:
            Exception: Any failure; callers wrap it in ScrapingError
        """
        pass


class ScraperRegistry:
    """
    Example:
        registry = ScraperRegistry()
        registry.register(GoogleMapsSource())
        results = await registry.scrape("google-maps", ScrapeOptions(["pizza"], "Austin"), user_id)
    """

    def __init__(self):
        self._sources: Dict[str, ScraperSource] = {}

    def register(self, source: ScraperSource) -> None:
        if not source.name:
            raise ValueError("Scraper source must have a name")
        self._sources[source.name] = source
        logger.info(f"Registered scraper source: {source.name}")

    def names(self) -> List[str]:
        return list(self._sources)

    def has(self, name: str) -> bool:
        return name in self._sources

    async def scrape(self, name: str, options: ScrapeOptions, user_id: str) -> List[BusinessData]:
        source = self._sources.get(name)
        if source is None:
            raise ScrapingError(f"No scraper registered for '{name}'", source=name)
        try:
            return await source.scrape(options, user_id)
        except ScrapingError:
            raise
        except Exception as e:
            raise ScrapingError(f"{name} scraper failed: {e}", source=name)
