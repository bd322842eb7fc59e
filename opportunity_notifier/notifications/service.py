"""Dispatch sender: renders an opportunity alert and delivers it to one recipient."""

import logging
from datetime import datetime
from typing import Callable, Optional

from opportunity_notifier.domain.models import Opportunity, Recipient
from opportunity_notifier.logging import get_logger
from opportunity_notifier.utils.timestamps import utc_now

from .models import (
    RecipientUnreachableError,
    SendResult,
    SendStatus,
    TransientDeliveryError,
)
from .payloads import build_message_context
from .telegram_client import TelegramClient
from .templates import TemplateRenderer

logger = get_logger(__name__, component="dispatch")


class DispatchSender:
    """Sends opportunity alerts over the messaging channel.

    One call to :meth:`send` produces at most one outbound message and never
    raises for delivery problems: the outcome is reported in the returned
    :class:`SendResult`. No retries are attempted here.
    """

    def __init__(
        self,
        client: TelegramClient,
        template_renderer: Optional[TemplateRenderer] = None,
        utm_source: Optional[str] = "telegrambot",
        clock: Optional[Callable[[], datetime]] = None,
        logger_instance: Optional[logging.LoggerAdapter] = None,
    ):
        """
        Args:
            client: Messaging channel client
            template_renderer: Renderer for alert text (creates default if None)
            utm_source: Tracking tag appended to links
            clock: Time source for relative deadlines
            logger_instance: Logger instance (uses module logger if None)
        """
        self.client = client
        self.template_renderer = template_renderer or TemplateRenderer()
        self.utm_source = utm_source
        self.clock = clock or utc_now
        self.logger = logger_instance or logger

    def render(self, opportunity: Opportunity) -> str:
        """Render the alert text for an opportunity.

        Raises:
            NotificationTemplateError: If the template cannot be rendered
        """
        context = build_message_context(opportunity, utm_source=self.utm_source, now=self.clock())
        return self.template_renderer.render(context)

    def send(
        self, recipient: Recipient, opportunity: Opportunity, text: Optional[str] = None
    ) -> SendResult:
        """Deliver one alert.

        Args:
            recipient: Target recipient
            opportunity: Opportunity to announce
            text: Pre-rendered message; rendered from the opportunity when omitted

        Returns:
            SendResult with status sent, unreachable or failed
        """
        if text is None:
            text = self.render(opportunity)

        extra = {"recipient_id": recipient.id, "opportunity_id": opportunity.id}
        try:
            message_id = self.client.deliver_message(recipient.channel_id, text)
        except RecipientUnreachableError as e:
            self.logger.warning(
                f"Recipient {recipient.id} is unreachable: {e}",
                extra={**extra, "event": "dispatch.unreachable", "status_code": e.status_code},
            )
            return SendResult(recipient.id, opportunity.id, SendStatus.UNREACHABLE, error=str(e))
        except TransientDeliveryError as e:
            self.logger.error(
                f"Failed to deliver to recipient {recipient.id}: {e}",
                extra={
                    **extra,
                    "event": "dispatch.failed",
                    "status_code": e.status_code,
                    "retry_after": e.retry_after,
                },
            )
            return SendResult(recipient.id, opportunity.id, SendStatus.FAILED, error=str(e))

        self.logger.info(
            f"Delivered opportunity {opportunity.id} to recipient {recipient.id}",
            extra={**extra, "event": "dispatch.sent", "message_id": message_id},
        )
        return SendResult(recipient.id, opportunity.id, SendStatus.SENT)

    def close(self) -> None:
        self.client.close()
