"""Email service: sends one message through a transport with bounded retries."""

import asyncio
from collections.abc import Awaitable, Callable

import structlog

from app.core.exceptions import NotificationDeliveryError, TransportError
from app.core.retry import RetryExhaustedError, RetryPolicy, retry_async
from app.notifications.transport import EmailTransport
from app.schemas.notifications import EmailMessage, NotificationKind, TransportResponse

logger = structlog.get_logger(__name__)


class EmailService:
    """Retrying wrapper around an :class:`EmailTransport`."""

    def __init__(
        self,
        transport: EmailTransport,
        default_from: str,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize service with transport, default sender and retry policy."""
        self.transport = transport
        self.default_from = default_from
        self.policy = policy or RetryPolicy()
        self.sleep = sleep

    async def _attempt(self, message: EmailMessage) -> TransportResponse:
        try:
            response = await self.transport.send(message)
        except TransportError:
            raise
        except Exception as e:
            raise TransportError(str(e) or e.__class__.__name__) from e
        if response.status == "failed":
            raise TransportError(response.error or "Email provider reported failure")
        return response

    async def send(self, message: EmailMessage, kind: NotificationKind) -> TransportResponse:
        """
        Send a message, retrying transport failures.

        Args:
            message: Message to deliver; ``sender`` defaults to the configured address
            kind: Notification kind, used in logs and the final error

        Returns:
            Transport response of the successful attempt

        Raises:
            NotificationDeliveryError: When every attempt failed
        """
        if not message.sender:
            message = message.model_copy(update={"sender": self.default_from})

        try:
            response = await retry_async(
                lambda: self._attempt(message),
                self.policy,
                retry_on=(TransportError,),
                sleep=self.sleep,
                label=f"send_{kind.value}",
            )
        except RetryExhaustedError as e:
            logger.error(
                "email_delivery_failed",
                kind=kind.value,
                to=message.to,
                attempts=e.attempts,
                error=str(e.last_error),
            )
            raise NotificationDeliveryError(
                f"Failed to send {kind.value} after {e.attempts} attempts: {e.last_error}",
                attempts=e.attempts,
            ) from e.last_error

        logger.info(
            "email_delivered",
            kind=kind.value,
            to=message.to,
            message_id=response.message_id,
        )
        return response
