"""Rendering of alert messages with Jinja2.

Messages are sent with the Bot API's HTML parse mode, so autoescaping
makes every catalog-provided string safe to embed.
"""

import html
import logging
import re
from typing import Dict

from jinja2 import Environment, PackageLoader, StrictUndefined, TemplateError

from .models import NotificationTemplateError

logger = logging.getLogger(__name__)

# Bot API hard limit for a single text message, counted after entity parsing.
MAX_MESSAGE_LENGTH = 4096

ELLIPSIS = "…"

_TAG_PATTERN = re.compile(r"<[^>]+>")

# Free-text fields shortened, in order, when a message is too long.
_SHORTENABLE_FIELDS = ("title", "sponsor")


def visible_length(text: str) -> int:
    """Length of ``text`` as the channel counts it: tags removed, entities decoded."""
    return len(html.unescape(_TAG_PATTERN.sub("", text)))


def _shorten(value: str, excess: int) -> str:
    keep = max(0, len(value) - excess - len(ELLIPSIS))
    return value[:keep].rstrip() + ELLIPSIS


class TemplateRenderer:
    """Renders opportunity alerts from templates in ``message_templates``."""

    def __init__(
        self,
        template_dir: str = "message_templates",
        alert_template: str = "opportunity_alert.html.j2",
        max_length: int = MAX_MESSAGE_LENGTH,
    ):
        """
        Args:
            template_dir: Directory name within the notifications package
            alert_template: Filename of the alert template
            max_length: Upper bound on the visible message length
        """
        self.alert_template_name = alert_template
        self.max_length = max_length
        self.env = Environment(
            loader=PackageLoader("opportunity_notifier.notifications", template_dir),
            autoescape=True,
            undefined=StrictUndefined,
            trim_blocks=True,
            keep_trailing_newline=False,
        )

    def render(self, context: Dict) -> str:
        """Render the alert text for ``context``.

        A message over the channel limit is shortened rather than refused:
        trailing skills are dropped first, then the title and sponsor are
        cut with an ellipsis.

        Raises:
            NotificationTemplateError: If rendering fails, or the fixed parts
                of the message alone exceed the limit
        """
        text = self._render(context)
        if visible_length(text) <= self.max_length:
            return text

        original_length = visible_length(text)
        context = dict(context)
        skills = list(context.get("skills") or [])
        while skills and visible_length(text) > self.max_length:
            skills.pop()
            context["skills"] = skills
            text = self._render(context)

        for field in _SHORTENABLE_FIELDS:
            excess = visible_length(text) - self.max_length
            if excess <= 0:
                break
            value = context.get(field)
            if value:
                context[field] = _shorten(value, excess)
                text = self._render(context)

        if visible_length(text) > self.max_length:
            raise NotificationTemplateError(
                f"Rendered message is {visible_length(text)} characters even after shortening; "
                f"the limit is {self.max_length}"
            )

        logger.warning(
            f"Alert shortened from {original_length} to {visible_length(text)} characters",
            extra={"event": "notification.shortened", "opportunity_id": context.get("opportunity_id")},
        )
        return text

    def _render(self, context: Dict) -> str:
        try:
            return self.env.get_template(self.alert_template_name).render(context).strip()
        except TemplateError as e:
            error_msg = f"Template rendering failed: {e}"
            logger.error(
                error_msg,
                extra={"event": "notification.template_failed", "opportunity_id": context.get("opportunity_id")},
            )
            raise NotificationTemplateError(error_msg) from e
