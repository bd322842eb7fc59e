"""Result types and exceptions for message dispatch."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class NotificationError(Exception):
    """Base exception for notification-related errors."""


class NotificationTemplateError(NotificationError):
    """Raised when the alert template cannot be rendered."""


class DeliveryError(NotificationError):
    """The messaging channel rejected or never acknowledged a message.

    Attributes:
        status_code: HTTP status returned by the channel, if any
        description: Channel-provided error description, if any
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        description: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.description = description


class RecipientUnreachableError(DeliveryError):
    """The recipient blocked the bot or the chat no longer exists.

    Retrying will not help; the recipient should be paused.
    """


class TransientDeliveryError(DeliveryError):
    """Timeouts, connection failures, throttling and server errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        description: Optional[str] = None,
        retry_after: Optional[int] = None,
    ) -> None:
        super().__init__(message, status_code=status_code, description=description)
        self.retry_after = retry_after


class SendStatus(str, Enum):
    """Outcome of a single send."""

    SENT = "sent"
    UNREACHABLE = "unreachable"
    FAILED = "failed"


@dataclass(frozen=True)
class SendResult:
    """Result of sending one opportunity to one recipient.

    Attributes:
        recipient_id: Recipient the message was addressed to
        opportunity_id: Opportunity announced
        status: sent, unreachable or failed
        error: Error description when not sent
    """

    recipient_id: int
    opportunity_id: str
    status: SendStatus
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        """True only for confirmed deliveries; the pipeline records these."""
        return self.status == SendStatus.SENT
