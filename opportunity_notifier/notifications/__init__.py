"""Dispatch of opportunity alerts over the messaging channel.

This module provides:
- DispatchSender: renders and delivers one alert, reporting the outcome
- TelegramClient: Bot API sendMessage wrapper with error classification
- TemplateRenderer: Jinja2 rendering of alert text
- Result types and exceptions
"""

from .models import (
    DeliveryError,
    NotificationError,
    NotificationTemplateError,
    RecipientUnreachableError,
    SendResult,
    SendStatus,
    TransientDeliveryError,
)
from .payloads import build_message_context, format_deadline, format_reward
from .service import DispatchSender
from .telegram_client import TelegramClient
from .templates import TemplateRenderer

__all__ = [
    "DispatchSender",
    "TelegramClient",
    "TemplateRenderer",
    "build_message_context",
    "format_deadline",
    "format_reward",
    "SendResult",
    "SendStatus",
    "NotificationError",
    "NotificationTemplateError",
    "DeliveryError",
    "RecipientUnreachableError",
    "TransientDeliveryError",
]
