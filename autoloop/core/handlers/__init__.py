"""
Node handlers, one coroutine per node type.

Each handler receives the parsed node and the WorkflowRun and returns a
NodeOutcome telling the walker how to continue. Handlers either record a
soft failure on the run or raise to abort it.
"""

from typing import Awaitable, Callable, Dict

from ..run import NodeOutcome, WorkflowRun
from .ai import handle_ai
from .database import handle_database
from .email import handle_template
from .http import handle_api_request
from .logic import (
    handle_ab_split,
    handle_condition,
    handle_custom,
    handle_delay,
    handle_passthrough,
    handle_set,
)
from .messaging import handle_linkedin_message, handle_whatsapp
from .scraper import handle_linkedin_scraper, handle_scraper

Handler = Callable[..., Awaitable[NodeOutcome]]

HANDLERS: Dict[str, Handler] = {
    "start": handle_passthrough,
    "condition": handle_condition,
    "template": handle_template,
    "delay": handle_delay,
    "custom": handle_custom,
    "gemini": handle_ai,
    "agent": handle_ai,
    "apiRequest": handle_api_request,
    "database": handle_database,
    "scraper": handle_scraper,
    "linkedinScraper": handle_linkedin_scraper,
    "linkedinMessage": handle_linkedin_message,
    "whatsappNode": handle_whatsapp,
    "abSplit": handle_ab_split,
    "set": handle_set,
    "webhook": handle_passthrough,
    "schedule": handle_passthrough,
    "merge": handle_passthrough,
    "splitInBatches": handle_passthrough,
    "filter": handle_passthrough,
}


def get_handler(node_type: str) -> Handler:
    """
    Raises:
        KeyError: If no handler is registered for node_type
    """
    try:
        return HANDLERS[node_type]
    except KeyError:
        raise KeyError(f"No handler registered for node type '{node_type}'")


__all__ = ["HANDLERS", "get_handler", "NodeOutcome", "WorkflowRun"]
