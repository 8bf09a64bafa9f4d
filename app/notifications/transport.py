"""E-mail transports: the capability the email service sends through."""

from typing import Any, Protocol

import httpx
import structlog

from app.config import Settings
from app.core.exceptions import TransportError
from app.schemas.notifications import EmailMessage, TransportResponse

logger = structlog.get_logger(__name__)


class EmailTransport(Protocol):
    """Delivers one e-mail message."""

    async def send(self, message: EmailMessage) -> TransportResponse: ...


class ResendTransport:
    """Transport backed by the Resend HTTP API."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.resend.com",
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize transport; ``client`` overrides the per-call HTTP client."""
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.client = client

    def _payload(self, message: EmailMessage) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "from": message.sender,
            "to": message.to,
            "subject": message.subject,
            "html": message.html,
        }

        if message.text:
            payload["text"] = message.text

        if message.reply_to:
            payload["reply_to"] = message.reply_to

        if message.headers:
            payload["headers"] = message.headers

        if message.tags:
            payload["tags"] = [{"name": "category", "value": tag} for tag in message.tags]

        if message.attachments:
            payload["attachments"] = [
                {
                    "filename": attachment.filename,
                    "content": attachment.content,
                    "content_type": attachment.content_type,
                }
                for attachment in message.attachments
            ]

        return payload

    async def _post(self, client: httpx.AsyncClient, payload: dict[str, Any]) -> httpx.Response:
        return await client.post(
            f"{self.base_url}/emails",
            json=payload,
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=self.timeout,
        )

    async def send(self, message: EmailMessage) -> TransportResponse:
        """
        POST the message to ``/emails``.

        Raises:
            TransportError: On timeout, connection failure or a non-2xx response
        """
        payload = self._payload(message)

        try:
            if self.client is not None:
                response = await self._post(self.client, payload)
            else:
                async with httpx.AsyncClient() as client:
                    response = await self._post(client, payload)
        except httpx.TimeoutException as e:
            raise TransportError(f"Email provider timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise TransportError(f"Email provider request failed: {e!s}") from e

        if response.status_code >= 300:
            raise TransportError(
                f"Email provider returned {response.status_code}: {response.text}"
            )

        data = response.json()
        logger.info("email_sent", provider="resend", message_id=data.get("id"), to=message.to)
        return TransportResponse(message_id=data.get("id"), status="sent")


class LoggingTransport:
    """Transport that only logs messages; used in development."""

    async def send(self, message: EmailMessage) -> TransportResponse:
        """Log the message and report it as sent."""
        logger.info(
            "email_logged",
            to=message.to,
            subject=message.subject,
            attachments=[a.filename for a in message.attachments],
            headers=message.headers,
        )
        return TransportResponse(message_id=None, status="sent")


def build_transport(settings: Settings) -> EmailTransport:
    """
    Build the transport named by ``EMAIL_PROVIDER``.

    Raises:
        ValueError: If the provider is unknown or Resend has no API key
    """
    provider = settings.email_provider.lower()

    if provider == "resend":
        if not settings.resend_api_key:
            raise ValueError("RESEND_API_KEY is required when EMAIL_PROVIDER=resend")
        return ResendTransport(
            api_key=settings.resend_api_key,
            base_url=settings.resend_base_url,
            timeout=settings.resend_timeout_seconds,
        )

    if provider == "log":
        return LoggingTransport()

    raise ValueError(f"Unknown EMAIL_PROVIDER: {settings.email_provider}")
