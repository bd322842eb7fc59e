"""Minimal Bot API client for sending chat messages.

Only ``sendMessage`` is used. Errors are classified into unreachable
recipients (blocked bot, deleted chat) and transient failures.
"""

import logging
from typing import Optional

import requests

from .models import DeliveryError, RecipientUnreachableError, TransientDeliveryError

logger = logging.getLogger(__name__)

# 400-level descriptions that mean the chat is gone for good.
_UNREACHABLE_DESCRIPTIONS = (
    "chat not found",
    "user is deactivated",
    "bot was blocked by the user",
    "bot was kicked",
    "have no rights to send a message",
)


class TelegramClient:
    """Wrapper around a ``requests.Session`` posting to the Bot API.

    Designed to be easily mockable: pass a fake session in tests.
    """

    def __init__(
        self,
        token: str,
        api_base_url: str = "https://api.telegram.org",
        timeout: int = 10,
        parse_mode: str = "HTML",
        disable_link_preview: bool = False,
        session: Optional[requests.Session] = None,
    ):
        """
        Args:
            token: Bot API token
            api_base_url: Bot API root URL
            timeout: Per-request timeout in seconds
            parse_mode: Bot API parse mode for message text
            disable_link_preview: Suppress link previews
            session: Optional requests session (for connection reuse or mocking)
        """
        if not token:
            raise ValueError("Bot API token is required")
        self._endpoint = f"{api_base_url.rstrip('/')}/bot{token}/sendMessage"
        self.timeout = timeout
        self.parse_mode = parse_mode
        self.disable_link_preview = disable_link_preview
        self.session = session or requests.Session()

    def deliver_message(self, channel_id: str, text: str) -> int:
        """Send ``text`` to ``channel_id``.

        Returns:
            Message id assigned by the channel

        Raises:
            RecipientUnreachableError: Bot blocked, chat missing or user deactivated
            TransientDeliveryError: Timeout, connection error, throttling, or any
                other rejection
        """
        payload = {
            "chat_id": channel_id,
            "text": text,
            "parse_mode": self.parse_mode,
            "link_preview_options": {"is_disabled": self.disable_link_preview},
        }

        try:
            response = self.session.post(self._endpoint, json=payload, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise TransientDeliveryError(f"Bot API request timed out after {self.timeout}s") from e
        except requests.exceptions.RequestException as e:
            # The exception text can embed the request URL, which carries the token.
            raise TransientDeliveryError(f"Bot API request failed: {type(e).__name__}") from e

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if response.status_code == 200 and body.get("ok"):
            return int(body.get("result", {}).get("message_id", 0))

        raise self._classify_error(response.status_code, body)

    @staticmethod
    def _classify_error(status_code: int, body: dict) -> DeliveryError:
        description = str(body.get("description") or "")
        error_code = body.get("error_code") or status_code
        lowered = description.lower()

        if error_code == 403 or (
            error_code == 400 and any(marker in lowered for marker in _UNREACHABLE_DESCRIPTIONS)
        ):
            return RecipientUnreachableError(
                f"Recipient unreachable: {description or error_code}",
                status_code=error_code,
                description=description,
            )

        retry_after = None
        if error_code == 429:
            retry_after = (body.get("parameters") or {}).get("retry_after")

        logger.debug(
            f"Bot API rejected message: {error_code} {description}",
            extra={"event": "telegram.rejected", "status_code": error_code},
        )
        return TransientDeliveryError(
            f"Bot API error {error_code}: {description or 'no description'}",
            status_code=error_code,
            description=description,
            retry_after=retry_after,
        )

    def close(self) -> None:
        self.session.close()
