"""Structured logging helpers shared by every notifier component."""

import logging
from typing import Optional

from .config import configure_logging
from .context import clear_log_context, get_log_context, log_context


class ComponentLoggerAdapter(logging.LoggerAdapter):
    """LoggerAdapter that stamps a ``component`` field onto every record.

    Fields passed through ``extra=`` on an individual call win over the
    adapter defaults, so a call may still override ``component``.
    """

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(name: str, component: Optional[str] = None):
    """Return a logger, optionally bound to a component label.

    Args:
        name: Logger name (typically ``__name__``)
        component: Component label injected into every record, e.g.
            ``"ledger"`` or ``"dispatch"``

    Returns:
        A plain ``logging.Logger`` or a ``ComponentLoggerAdapter``

    Example:
        >>> logger = get_logger(__name__, component="pipeline")
        >>> logger.info("Tick started", extra={"event": "tick.started"})
    """
    logger = logging.getLogger(name)
    if component:
        return ComponentLoggerAdapter(logger, {"component": component})
    return logger


__all__ = [
    "ComponentLoggerAdapter",
    "clear_log_context",
    "configure_logging",
    "get_log_context",
    "get_logger",
    "log_context",
]
