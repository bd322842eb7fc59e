"""Abstract contract for opportunity sources."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, List, Optional

from opportunity_notifier.domain.models import Opportunity
from opportunity_notifier.utils.timestamps import utc_now

from .exceptions import SourceConfigurationError

Clock = Callable[[], datetime]


class BaseOpportunitySource(ABC):
    """Read-only query interface over an upstream catalog.

    Implementations must be side-effect free and must propagate failures as
    :class:`~opportunity_notifier.sources.exceptions.SourceError` rather than
    returning partial or empty results, so the caller can retry next tick.

    Attributes:
        clock: Callable returning the current aware-UTC time
    """

    def __init__(self, clock: Optional[Clock] = None) -> None:
        """
        Args:
            clock: Time source, injectable for tests (defaults to utc_now)
        """
        self.clock = clock or utc_now

    @abstractmethod
    def fetch_visible(self, delay_hours: float, window_minutes: int = 5) -> List[Opportunity]:
        """Return opportunities whose visibility timestamp lies in
        ``[now - delay - window, now - delay + window]`` (inclusive).

        Grants are not included; see :meth:`fetch_open_grants`.

        Raises:
            SourceError: On any catalog failure
        """

    @abstractmethod
    def fetch_open_grants(self) -> List[Opportunity]:
        """Return every currently open grant, without a delay window.

        Raises:
            SourceError: On any catalog failure
        """

    @abstractmethod
    def get_opportunity(self, opportunity_id: str) -> Optional[Opportunity]:
        """Look up one open opportunity of any category, or None.

        Raises:
            SourceError: On any catalog failure
        """

    def close(self) -> None:
        """Release connections held by the source."""

    @staticmethod
    def _validate_window(delay_hours: float, window_minutes: int) -> None:
        if delay_hours < 0:
            raise SourceConfigurationError(f"delay_hours must be >= 0, got {delay_hours}")
        if window_minutes <= 0:
            raise SourceConfigurationError(f"window_minutes must be > 0, got {window_minutes}")
