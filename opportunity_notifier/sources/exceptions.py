"""Exceptions raised by opportunity sources."""


class SourceError(Exception):
    """Base exception for all source errors.

    A source error aborts the current fetch only; the scheduler logs it and
    the next tick retries from scratch.
    """


class SourceQueryError(SourceError):
    """A catalog query failed or timed out."""

    def __init__(self, message: str, operation: str) -> None:
        """
        Args:
            message: Human-readable error message
            operation: Source operation that failed, e.g. ``"fetch_visible"``
        """
        super().__init__(message)
        self.operation = operation


class SourceConfigurationError(SourceError):
    """The source was given unusable settings (bad window, bad base URL...)."""


class OpportunityNotFoundError(SourceError):
    """No open opportunity exists with the requested id."""

    def __init__(self, opportunity_id: str) -> None:
        super().__init__(f"Opportunity {opportunity_id} not found among open bounties, projects or grants")
        self.opportunity_id = opportunity_id
