"""
Gmail sender

Sends outreach email through the Gmail API with the user's Google OAuth
access token. Network-level failures (connection refused, timeouts, host
unreachable) raise TransientSendError so callers can retry them; anything
else comes back as a failed SendResult.
"""

import base64
import logging
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Callable, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..exceptions import TransientSendError

logger = logging.getLogger(__name__)

GMAIL_SEND_URL = "https://gmail.googleapis.com/gmail/v1/users/me/messages/send"

# Raised by httpx for ECONNREFUSED / EHOSTUNREACH / ETIMEDOUT
TRANSIENT_ERRORS = (httpx.ConnectError, httpx.TimeoutException)


@dataclass
class SendResult:
    """Outcome of an outbound send (email or WhatsApp)."""

    success: bool
    error: Optional[str] = None
    message_id: Optional[str] = None


def default_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=30.0, follow_redirects=True)


def build_raw_message(to: str, subject: str, body: str, sender: Optional[str] = None) -> str:
    """RFC 822 message, base64url-encoded as the Gmail API expects."""
    message = EmailMessage()
    message["To"] = to
    message["Subject"] = subject
    if sender:
        message["From"] = sender
    subtype = "html" if "<" in body and ">" in body else "plain"
    message.set_content(body, subtype=subtype)
    return base64.urlsafe_b64encode(message.as_bytes()).decode("ascii")


class GmailSender:
    """
    Gmail API client.

    Example:
        sender = GmailSender()
        result = await sender.send(
            to="owner@luigis.com",
            subject="Quick question",
            body="Hi Luigi's...",
            access_token=user.access_token,
        )
    """

    def __init__(self, client_factory: Optional[Callable[[], httpx.AsyncClient]] = None):
        self.client_factory = client_factory or default_http_client

    async def send(
        self,
        to: str,
        subject: str,
        body: str,
        access_token: str,
        sender: Optional[str] = None,
    ) -> SendResult:
        """
        Send one message.

        Raises:
            TransientSendError: On connection/timeout errors (retryable)
        """
        payload = {"raw": build_raw_message(to, subject, body, sender)}
        headers = {"Authorization": f"Bearer {access_token}"}

        try:
            async with self.client_factory() as client:
                response = await client.post(GMAIL_SEND_URL, json=payload, headers=headers)
        except TRANSIENT_ERRORS as e:
            raise TransientSendError(f"{type(e).__name__}: {e}")
        except httpx.HTTPError as e:
            logger.error(f"Gmail send failed: {e}")
            return SendResult(success=False, error=str(e))

        if response.status_code >= 400:
            error = _extract_error(response)
            logger.error(f"Gmail send rejected ({response.status_code}): {error}")
            return SendResult(success=False, error=error)

        message_id = response.json().get("id")
        logger.info(f"Gmail message sent to {to} (id={message_id})")
        return SendResult(success=True, message_id=message_id)


def _extract_error(response: httpx.Response) -> str:
    try:
        data = response.json()
        return data.get("error", {}).get("message") or response.text
    except ValueError:
        return response.text or f"HTTP {response.status_code}"


async def send_with_retry(
    sender: GmailSender,
    *,
    to: str,
    subject: str,
    body: str,
    access_token: str,
    sender_address: Optional[str] = None,
    max_retries: int = 3,
    initial_delay: float = 1.0,
) -> SendResult:
    """
    Send with exponential backoff on transient network errors.

    Delays are initial_delay, 2x, 4x... for up to max_retries retries. When
    retries are exhausted the last transient error is returned as a failed
    SendResult.
    """
    try:
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(TransientSendError),
            stop=stop_after_attempt(max_retries + 1),
            wait=wait_exponential(multiplier=initial_delay, min=0, max=30),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                return await sender.send(
                    to=to,
                    subject=subject,
                    body=body,
                    access_token=access_token,
                    sender=sender_address,
                )
    except TransientSendError as e:
        logger.error(f"Email to {to} failed after {max_retries} retries: {e.message}")
        return SendResult(success=False, error=e.message)
