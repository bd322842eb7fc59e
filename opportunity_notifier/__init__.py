"""Delay-gated opportunity alerts for subscribed Telegram recipients."""

__version__ = "0.1.0"
