"""
Integration clients for external services.

This module provides clients for:
- Gmail: outreach email with the user's OAuth token
- WhatsApp Cloud API: template and text messages
- AI: Gemini text generation
- Scrapers: pluggable business sources (google-maps, linkedin, ...)
- LinkedIn automation: connection requests via a browser session
- Notifications: dashboard notification rows
- Sandbox: E2B runner for custom code nodes

`Integrations` bundles them so workers build one set at process start and
pass it to the engine; tests pass fakes. Scraper sources and LinkedIn
automation are plugged in by dotted path (see plugins.py).
"""

import os
from dataclasses import dataclass, field
from typing import Callable, Optional

import httpx

from .ai import AIClient
from .gmail import GmailSender, SendResult, default_http_client, send_with_retry
from .linkedin import AutomationResult, LinkedInAutomation
from .notifications import NotificationService
from .plugins import load_linkedin, load_scraper_registry
from .sandbox import E2BCodeRunner
from .scrapers import ScrapeOptions, ScraperRegistry, ScraperSource
from .whatsapp import WhatsAppClient


@dataclass
class Integrations:
    email_sender: GmailSender = field(default_factory=GmailSender)
    whatsapp: WhatsAppClient = field(default_factory=WhatsAppClient)
    scrapers: ScraperRegistry = field(default_factory=ScraperRegistry)
    linkedin: Optional[LinkedInAutomation] = None
    gemini_api_key: Optional[str] = None
    ai_client_factory: Callable[[str], AIClient] = AIClient
    http_client_factory: Callable[[], httpx.AsyncClient] = default_http_client
    code_runner: E2BCodeRunner = field(default_factory=E2BCodeRunner)
    # First backoff delay for transient email errors, in seconds
    email_retry_delay: float = 1.0

    @classmethod
    def from_env(cls) -> "Integrations":
        return cls(
            scrapers=load_scraper_registry(os.getenv("SCRAPER_SOURCES")),
            linkedin=load_linkedin(os.getenv("LINKEDIN_AUTOMATION")),
            gemini_api_key=os.getenv("GEMINI_API_KEY"),
        )


__all__ = [
    "Integrations",
    "AIClient",
    "GmailSender",
    "SendResult",
    "send_with_retry",
    "WhatsAppClient",
    "ScraperRegistry",
    "ScraperSource",
    "ScrapeOptions",
    "LinkedInAutomation",
    "AutomationResult",
    "NotificationService",
    "E2BCodeRunner",
]
