"""
LinkedIn automation

Messaging goes through a browser session authenticated with the user's
`li_at` cookie; that automation is an external capability plugged in through
LinkedInAutomation.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class AutomationResult:
    success: bool
    logs: List[str] = field(default_factory=list)
    error: Optional[str] = None


class LinkedInAutomation(ABC):

    @abstractmethod
    async def send_connection_request(self, session_cookie: str, profile_url: str, message: str) -> AutomationResult:
        """Open profile_url and send a connection request carrying message."""
        pass
