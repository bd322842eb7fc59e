"""Scoped logging context.

Fields pushed here (``tick_id``, ``opportunity_id``, ``recipient_id`` ...)
are attached to every record emitted inside the scope. Storage is a
``ContextVar`` so each dispatch worker thread sees only its own fields.
"""

from contextvars import ContextVar, Token
from typing import Any, Dict, Optional

_LOG_CONTEXT: ContextVar[Dict[str, Any]] = ContextVar("opportunity_notifier_log_context", default={})


def get_log_context() -> Dict[str, Any]:
    """Return a copy of the fields currently in scope."""
    return dict(_LOG_CONTEXT.get())


def push_log_context(**fields) -> Token:
    """Merge ``fields`` into the active context and return a reset token."""
    return _LOG_CONTEXT.set({**_LOG_CONTEXT.get(), **fields})


def pop_log_context(token: Token) -> None:
    """Restore the context captured by :func:`push_log_context`."""
    _LOG_CONTEXT.reset(token)


def clear_log_context() -> None:
    """Drop every field. Intended for test isolation."""
    _LOG_CONTEXT.set({})


class log_context:
    """Context manager that scopes logging fields to a block.

    Example:
        >>> with log_context(tick_id="a1b2", opportunity_id="bounty-42"):
        ...     logger.info("Dispatching")  # carries tick_id and opportunity_id
    """

    def __init__(self, **fields):
        self.fields = fields
        self.token: Optional[Token] = None

    def __enter__(self):
        self.token = push_log_context(**self.fields)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.token is not None:
            pop_log_context(self.token)
            self.token = None
        return False
