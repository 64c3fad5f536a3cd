"""
scraper and linkedinScraper node handlers.

scraper actions operate on the resolved input; when the input is a URL the
page is fetched first (fetch-url stores the raw HTML as-is). scraper failures
are soft, linkedinScraper failures abort the run.
"""

import html
import re
from typing import Any, List

from ..exceptions import LinkedInError, ScrapingError
from ..integrations.scrapers import ScrapeOptions
from ..resolver import interpolate, resolve_value, stringify
from ..run import NodeOutcome, WorkflowRun
from .http import REQUEST_ERRORS

EMAIL_PATTERN = re.compile(r"[\w.-]+@[\w.-]+\.\w+")
URL_PATTERN = re.compile(r"^https?://\S+$", re.IGNORECASE)
_SCRIPT_STYLE = re.compile(r"<(script|style)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_BLOCK_TAGS = re.compile(r"<\s*(br|/p|/div|/li|/h[1-6]|/tr)\b[^>]*>", re.IGNORECASE)
_TAG = re.compile(r"<[^>]+>")

LINKEDIN_MAX_RESULTS = 10
SUMMARY_LENGTH = 200


def extract_emails(text: str) -> List[str]:
    """Unique addresses in order of first appearance."""
    return list(dict.fromkeys(EMAIL_PATTERN.findall(text)))


def clean_html(text: str) -> str:
    text = _SCRIPT_STYLE.sub(" ", text)
    text = _TAG.sub(" ", text)
    return re.sub(r"\s+", " ", html.unescape(text)).strip()


def html_to_markdown(text: str) -> str:
    text = _SCRIPT_STYLE.sub("", text)
    text = _BLOCK_TAGS.sub("\n", text)
    text = html.unescape(_TAG.sub("", text))
    lines = [line.strip() for line in text.splitlines()]
    return re.sub(r"\n{3,}", "\n\n", "\n".join(lines)).strip()


async def _fetch(url: str, run: WorkflowRun) -> str:
    async with run.integrations.http_client_factory() as client:
        response = await client.get(url)
        response.raise_for_status()
        return response.text


async def handle_scraper(node, run: WorkflowRun) -> NodeOutcome:
    action = node.config.action
    value: Any = resolve_value(node.config.input, run.context)

    if value is None or value == "":
        run.context.set_variable("scrapedData", None)
        run.warn("Scraper input is empty, skipping")
        return NodeOutcome.proceed()

    text = value if isinstance(value, str) else stringify(value)
    run.log(f"Running scraper action {action}")

    try:
        if URL_PATTERN.match(text):
            text = await _fetch(text, run)

        if action == "fetch-url":
            result: Any = text
        elif action == "extract-emails":
            result = extract_emails(text)
        elif action == "clean-html":
            result = clean_html(text)
        elif action == "markdown":
            result = html_to_markdown(text)
        else:
            result = text[:SUMMARY_LENGTH]
    except REQUEST_ERRORS as e:
        run.soft_error(f"Scraper action {action} failed: {type(e).__name__}: {e}")
        return NodeOutcome.proceed()

    run.context.set_variable("scrapedData", result)
    size = f"{len(result)} emails" if isinstance(result, list) else f"{len(result)} characters"
    run.log(f"✅ Scraper {action} produced {size}")
    return NodeOutcome.proceed()


async def handle_linkedin_scraper(node, run: WorkflowRun) -> NodeOutcome:
    config = node.config
    ctx = run.context
    keywords = [k.strip() for k in interpolate(config.keywords, ctx).split(",") if k.strip()]
    location = interpolate(config.location, ctx).strip()
    limit = min(config.limit, LINKEDIN_MAX_RESULTS)

    if not keywords:
        raise LinkedInError("No keywords provided for LinkedIn scraper", node_id=node.id)

    run.log(f"Searching LinkedIn for {', '.join(keywords)}{' in ' + location if location else ''}")
    try:
        results = await run.integrations.scrapers.scrape(
            "linkedin", ScrapeOptions(keywords=keywords, location=location, limit=limit), ctx.user_id
        )
    except ScrapingError as e:
        raise LinkedInError(f"LinkedIn scraping failed: {e.message}", node_id=node.id)

    results = list(results)[:limit]
    ctx.set_variable("linkedinResults", results)
    run.log(f"✅ Found {len(results)} LinkedIn results")
    return NodeOutcome.proceed()
