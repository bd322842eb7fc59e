"""Unit tests for the Bot API client and the dispatch sender.

Tests cover:
- Request payload and endpoint
- Classification of channel errors into unreachable and transient
- DispatchSender outcomes for each failure mode
"""

from unittest.mock import Mock

import pytest
import requests

from opportunity_notifier.notifications.models import (
    NotificationTemplateError,
    RecipientUnreachableError,
    SendStatus,
    TransientDeliveryError,
)
from opportunity_notifier.notifications.service import DispatchSender
from opportunity_notifier.notifications.telegram_client import TelegramClient
from tests.helpers import NOW, make_opportunity, make_recipient

TOKEN = "123456789:AAbbCCddEEffGGhhIIjjKKllMMnn"


def make_response(status_code=200, body=None):
    response = Mock(spec=requests.Response)
    response.status_code = status_code
    if isinstance(body, Exception):
        response.json.side_effect = body
    else:
        response.json.return_value = body if body is not None else {}
    return response


@pytest.fixture
def session():
    return Mock(spec=requests.Session)


@pytest.fixture
def client(session):
    return TelegramClient(TOKEN, api_base_url="https://api.example.org/", timeout=7, session=session)


class TestTelegramClient:
    """Tests for TelegramClient."""

    def test_requires_token(self):
        """Test an empty token is rejected at construction."""
        with pytest.raises(ValueError):
            TelegramClient("")

    def test_deliver_message_success(self, client, session):
        """Test a successful send posts the HTML payload and returns the message id."""
        session.post.return_value = make_response(200, {"ok": True, "result": {"message_id": 321}})

        assert client.deliver_message("1001", "<b>hi</b>") == 321

        session.post.assert_called_once_with(
            f"https://api.example.org/bot{TOKEN}/sendMessage",
            json={
                "chat_id": "1001",
                "text": "<b>hi</b>",
                "parse_mode": "HTML",
                "link_preview_options": {"is_disabled": False},
            },
            timeout=7,
        )

    @pytest.mark.parametrize(
        "status,description",
        [
            (403, "Forbidden: bot was blocked by the user"),
            (403, "Forbidden: user is deactivated"),
            (400, "Bad Request: chat not found"),
        ],
    )
    def test_unreachable_errors(self, client, session, status, description):
        """Test blocked and missing chats are classified as unreachable."""
        session.post.return_value = make_response(
            status, {"ok": False, "error_code": status, "description": description}
        )
        with pytest.raises(RecipientUnreachableError) as exc_info:
            client.deliver_message("1001", "hi")
        assert exc_info.value.status_code == status

    def test_rate_limited_is_transient_with_retry_after(self, client, session):
        """Test 429 carries the retry_after hint."""
        session.post.return_value = make_response(
            429,
            {"ok": False, "error_code": 429, "description": "Too Many Requests", "parameters": {"retry_after": 5}},
        )
        with pytest.raises(TransientDeliveryError) as exc_info:
            client.deliver_message("1001", "hi")
        assert exc_info.value.retry_after == 5

    @pytest.mark.parametrize(
        "status,body",
        [
            (500, {"ok": False, "description": "Internal Server Error"}),
            (400, {"ok": False, "error_code": 400, "description": "Bad Request: can't parse entities"}),
            (502, ValueError("not json")),
            (200, ["unexpected"]),
        ],
    )
    def test_other_failures_are_transient(self, client, session, status, body):
        """Test server errors, other rejections and unreadable bodies are transient."""
        session.post.return_value = make_response(status, body)
        with pytest.raises(TransientDeliveryError):
            client.deliver_message("1001", "hi")

    def test_timeout_is_transient(self, client, session):
        """Test request timeouts are transient."""
        session.post.side_effect = requests.exceptions.ReadTimeout("slow")
        with pytest.raises(TransientDeliveryError, match="timed out"):
            client.deliver_message("1001", "hi")

    def test_connection_error_does_not_leak_token(self, client, session):
        """Test connection failures are transient and never echo the URL."""
        session.post.side_effect = requests.exceptions.ConnectionError(
            f"Max retries exceeded with url: /bot{TOKEN}/sendMessage"
        )
        with pytest.raises(TransientDeliveryError) as exc_info:
            client.deliver_message("1001", "hi")
        assert TOKEN not in str(exc_info.value)

    def test_close_closes_session(self, client, session):
        """Test close releases the HTTP session."""
        client.close()
        session.close.assert_called_once()


class TestDispatchSender:
    """Tests for DispatchSender."""

    @pytest.fixture
    def telegram(self):
        return Mock(spec=TelegramClient)

    @pytest.fixture
    def sender(self, telegram):
        return DispatchSender(telegram, clock=lambda: NOW, logger_instance=Mock())

    def test_send_success(self, sender, telegram):
        """Test a delivered message yields SENT."""
        telegram.deliver_message.return_value = 1

        result = sender.send(make_recipient(7, channel_id="555"), make_opportunity())

        assert result.status == SendStatus.SENT
        assert result.ok is True
        assert (result.recipient_id, result.opportunity_id) == (7, "bounty-1")
        channel_id, text = telegram.deliver_message.call_args.args
        assert channel_id == "555"
        assert "New Bounty Alert!" in text
        assert sender.logger.info.call_args.kwargs["extra"]["event"] == "dispatch.sent"

    def test_send_uses_prerendered_text(self, sender, telegram):
        """Test a supplied text is sent as-is."""
        telegram.deliver_message.return_value = 1
        sender.send(make_recipient(), make_opportunity(), text="prerendered")
        telegram.deliver_message.assert_called_once_with("1001", "prerendered")

    def test_send_unreachable(self, sender, telegram):
        """Test unreachable recipients are reported, not raised."""
        telegram.deliver_message.side_effect = RecipientUnreachableError("blocked", status_code=403)

        result = sender.send(make_recipient(), make_opportunity())

        assert result.status == SendStatus.UNREACHABLE
        assert result.ok is False
        assert "blocked" in result.error
        assert sender.logger.warning.call_args.kwargs["extra"]["event"] == "dispatch.unreachable"

    def test_send_transient_failure(self, sender, telegram):
        """Test transient failures are reported once, without retry."""
        telegram.deliver_message.side_effect = TransientDeliveryError("timeout")

        result = sender.send(make_recipient(), make_opportunity())

        assert result.status == SendStatus.FAILED
        telegram.deliver_message.assert_called_once()
        assert sender.logger.error.call_args.kwargs["extra"]["event"] == "dispatch.failed"

    def test_render_failure_raises(self, telegram):
        """Test template problems surface to the caller."""
        renderer = Mock()
        renderer.render.side_effect = NotificationTemplateError("broken")
        sender = DispatchSender(telegram, template_renderer=renderer, clock=lambda: NOW)

        with pytest.raises(NotificationTemplateError):
            sender.render(make_opportunity())
        telegram.deliver_message.assert_not_called()

    def test_utm_source_disabled(self, telegram):
        """Test links are left untouched when tagging is off."""
        sender = DispatchSender(telegram, utm_source=None, clock=lambda: NOW)
        assert "utm_source" not in sender.render(make_opportunity())

    def test_close_closes_client(self, sender, telegram):
        """Test close releases the channel client."""
        sender.close()
        telegram.close.assert_called_once()
