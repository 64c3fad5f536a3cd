"""
Integrations configured by dotted class path.

Scraper sources and LinkedIn automation live outside this package; workers
pick them up from the environment:

    SCRAPER_SOURCES=acme_scrapers.maps.GoogleMapsSource,acme_scrapers.linkedin.LinkedInSource
    LINKEDIN_AUTOMATION=acme_browser.linkedin.PlaywrightLinkedIn

Each class is instantiated without arguments. A path that cannot be loaded
is logged and skipped so one broken plugin does not take the worker down.
"""

import importlib
import logging
from typing import List, Optional, Type, TypeVar

from .linkedin import LinkedInAutomation
from .scrapers import ScraperRegistry, ScraperSource

logger = logging.getLogger(__name__)

T = TypeVar("T")


def split_paths(value: Optional[str]) -> List[str]:
    return [path.strip() for path in (value or "").split(",") if path.strip()]


def load_class(path: str) -> type:
    """
    Raises:
        ValueError: path has no module part
        ImportError / AttributeError: module or class not found
    """
    module_path, class_name = path.rsplit(".", 1) if "." in path else ("", path)
    if not module_path:
        raise ValueError(f"'{path}' is not a dotted path")
    module = importlib.import_module(module_path)
    return getattr(module, class_name)


def instantiate(path: str, base: Type[T]) -> Optional[T]:
    try:
        instance = load_class(path)()
    except (ImportError, AttributeError, ValueError, TypeError) as e:
        logger.error(f"Failed to load integration '{path}': {e}")
        return None

    if not isinstance(instance, base):
        logger.error(f"Integration '{path}' is not a {base.__name__}")
        return None
    logger.info(f"Loaded integration: {path}")
    return instance


def load_scraper_registry(paths: Optional[str]) -> ScraperRegistry:
    registry = ScraperRegistry()
    for path in split_paths(paths):
        source = instantiate(path, ScraperSource)
        if source is None:
            continue
        try:
            registry.register(source)
        except ValueError as e:
            logger.error(f"Failed to register scraper '{path}': {e}")

    logger.info(f"Scraper sources available: {', '.join(registry.names()) or 'none'}")
    return registry


def load_linkedin(path: Optional[str]) -> Optional[LinkedInAutomation]:
    if not path or not path.strip():
        return None
    return instantiate(path.strip(), LinkedInAutomation)
