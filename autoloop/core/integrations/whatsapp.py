"""
WhatsApp Business (Cloud API) client

Template messages for the whatsappNode and plain text messages for the
failure alerts sent to workflow owners.
"""

import logging
import os
import re
from typing import Any, Callable, Dict, List, Optional

import httpx

from .gmail import SendResult, default_http_client

logger = logging.getLogger(__name__)

GRAPH_API_URL = "https://graph.facebook.com/v18.0"


def normalize_phone(phone: str) -> str:
    """Cloud API expects digits only, country code included."""
    return re.sub(r"\D", "", phone or "")


class WhatsAppClient:
    """
    Environment Variables:
        WHATSAPP_PHONE_NUMBER_ID: Sender phone number id
        WHATSAPP_ACCESS_TOKEN: Permanent or system-user token
    """

    def __init__(
        self,
        phone_number_id: Optional[str] = None,
        access_token: Optional[str] = None,
        client_factory: Optional[Callable[[], httpx.AsyncClient]] = None,
    ):
        self.phone_number_id = phone_number_id or os.getenv("WHATSAPP_PHONE_NUMBER_ID")
        self.access_token = access_token or os.getenv("WHATSAPP_ACCESS_TOKEN")
        self.client_factory = client_factory or default_http_client

    @property
    def is_configured(self) -> bool:
        return bool(self.phone_number_id and self.access_token)

    async def send_template(
        self,
        to: str,
        template_name: str,
        template_language: str = "en_US",
        components: Optional[List[Dict[str, Any]]] = None,
    ) -> SendResult:
        template: Dict[str, Any] = {"name": template_name, "language": {"code": template_language}}
        if components:
            template["components"] = components
        return await self._send({
            "messaging_product": "whatsapp",
            "to": normalize_phone(to),
            "type": "template",
            "template": template,
        })

    async def send_text(self, to: str, text: str) -> SendResult:
        return await self._send({
            "messaging_product": "whatsapp",
            "to": normalize_phone(to),
            "type": "text",
            "text": {"body": text},
        })

    async def _send(self, payload: Dict[str, Any]) -> SendResult:
        if not self.is_configured:
            return SendResult(success=False, error="WhatsApp credentials not configured")

        url = f"{GRAPH_API_URL}/{self.phone_number_id}/messages"
        headers = {"Authorization": f"Bearer {self.access_token}"}

        try:
            async with self.client_factory() as client:
                response = await client.post(url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"WhatsApp request failed: {e}")
            return SendResult(success=False, error=str(e))

        data = _safe_json(response)
        if response.status_code >= 400:
            error = (data.get("error") or {}).get("message") or response.text
            logger.error(f"WhatsApp API error ({response.status_code}): {error}")
            return SendResult(success=False, error=error)

        messages = data.get("messages") or [{}]
        return SendResult(success=True, message_id=messages[0].get("id"))


def _safe_json(response: httpx.Response) -> Dict[str, Any]:
    try:
        data = response.json()
        return data if isinstance(data, dict) else {}
    except ValueError:
        return {}
