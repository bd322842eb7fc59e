"""SQL-backed opportunity source over the upstream catalog.

The catalog is owned by another system. Every query here is a plain
SELECT; connection and statement failures surface as
:class:`SourceQueryError`.
"""

from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import and_, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from opportunity_notifier.domain.models import Opportunity
from opportunity_notifier.logging import get_logger
from opportunity_notifier.persistence.database import create_database_engine
from opportunity_notifier.utils.timestamps import to_naive_utc, visibility_window

from .base import BaseOpportunitySource, Clock
from .catalog_schema import bounties, grants, sponsors
from .exceptions import SourceQueryError
from .normalization import (
    NormalizationError,
    bounty_to_opportunity,
    extract_skills,
    grant_to_opportunity,
)

logger = get_logger(__name__, component="source")

OPEN_STATUS = "OPEN"


def _keyed_columns(table):
    """Label each column with its Python key so result rows use snake_case names."""
    return [column.label(column.key) for column in table.c]


class CatalogSource(BaseOpportunitySource):
    """Opportunity source reading bounties, projects and grants from the catalog.

    Catalog timestamps are naive UTC; window bounds are converted before
    comparison.

    Attributes:
        engine: SQLAlchemy engine for the catalog
        base_url: Public site root used to build listing URLs
    """

    def __init__(
        self,
        engine: Engine,
        base_url: str = "https://earn.superteam.fun",
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__(clock=clock)
        self.engine = engine
        self.base_url = base_url.rstrip("/")

    @classmethod
    def from_url(
        cls,
        database_url: str,
        base_url: str = "https://earn.superteam.fun",
        query_timeout_seconds: Optional[int] = None,
        clock: Optional[Clock] = None,
    ) -> "CatalogSource":
        """Build a source with its own engine for ``database_url``."""
        engine = create_database_engine(database_url, query_timeout_seconds=query_timeout_seconds)
        return cls(engine, base_url=base_url, clock=clock)

    def fetch_visible(self, delay_hours: float, window_minutes: int = 5) -> List[Opportunity]:
        self._validate_window(delay_hours, window_minutes)
        start, end = visibility_window(
            self.clock(), timedelta(hours=delay_hours), timedelta(minutes=window_minutes)
        )

        stmt = (
            self._bounty_select()
            .where(
                bounties.c.published_at >= to_naive_utc(start),
                bounties.c.published_at <= to_naive_utc(end),
            )
            .order_by(bounties.c.published_at, bounties.c.id)
        )
        rows = self._fetch(stmt, "fetch_visible")
        opportunities = self._normalize(rows, bounty_to_opportunity)

        logger.info(
            f"Fetched {len(opportunities)} visible opportunities",
            extra={
                "event": "source.fetch_visible.completed",
                "window_start": start.isoformat(),
                "window_end": end.isoformat(),
                "row_count": len(rows),
                "opportunity_count": len(opportunities),
            },
        )
        return opportunities

    def fetch_open_grants(self) -> List[Opportunity]:
        rows = self._fetch(self._grant_select().order_by(grants.c.id), "fetch_open_grants")
        opportunities = self._normalize(rows, grant_to_opportunity)

        logger.info(
            f"Fetched {len(opportunities)} open grants",
            extra={
                "event": "source.fetch_grants.completed",
                "row_count": len(rows),
                "opportunity_count": len(opportunities),
            },
        )
        return opportunities

    def get_opportunity(self, opportunity_id: str) -> Optional[Opportunity]:
        rows = self._fetch(
            self._bounty_select().where(bounties.c.id == opportunity_id), "get_opportunity"
        )
        found = self._normalize(rows, bounty_to_opportunity)
        if found:
            return found[0]

        rows = self._fetch(
            self._grant_select().where(grants.c.id == opportunity_id), "get_opportunity"
        )
        found = self._normalize(rows, grant_to_opportunity)
        return found[0] if found else None

    def available_skills(self) -> List[str]:
        """Sorted distinct skill names across published, active listings."""
        stmt = select(bounties.c.skills).where(
            bounties.c.is_published.is_(True),
            bounties.c.is_active.is_(True),
            bounties.c.skills.is_not(None),
        )
        names = set()
        for row in self._fetch(stmt, "available_skills"):
            names.update(extract_skills(row["skills"]))
        return sorted(names)

    def close(self) -> None:
        self.engine.dispose()

    def _bounty_select(self):
        return (
            select(*_keyed_columns(bounties), sponsors.c.name.label("sponsor_name"))
            .select_from(bounties.outerjoin(sponsors, bounties.c.sponsor_id == sponsors.c.id))
            .where(
                and_(
                    bounties.c.status == OPEN_STATUS,
                    bounties.c.is_published.is_(True),
                    bounties.c.is_active.is_(True),
                )
            )
        )

    def _grant_select(self):
        return (
            select(*_keyed_columns(grants), sponsors.c.name.label("sponsor_name"))
            .select_from(grants.outerjoin(sponsors, grants.c.sponsor_id == sponsors.c.id))
            .where(
                and_(
                    grants.c.status == OPEN_STATUS,
                    grants.c.is_published.is_(True),
                    grants.c.is_active.is_(True),
                )
            )
        )

    def _fetch(self, stmt, operation: str) -> List[Dict[str, Any]]:
        try:
            with self.engine.connect() as conn:
                return [dict(row._mapping) for row in conn.execute(stmt)]
        except SQLAlchemyError as e:
            logger.error(
                f"Catalog query failed during {operation}: {e}",
                extra={
                    "event": "source.query.failed",
                    "operation": operation,
                    "error_type": type(e).__name__,
                },
            )
            raise SourceQueryError(f"Catalog query failed during {operation}: {e}", operation) from e

    def _normalize(
        self, rows: List[Dict[str, Any]], transform: Callable[[Dict[str, Any], str], Opportunity]
    ) -> List[Opportunity]:
        opportunities = []
        for row in rows:
            try:
                opportunities.append(transform(row, self.base_url))
            except NormalizationError as e:
                logger.warning(
                    f"Skipping malformed catalog row: {e}",
                    extra={
                        "event": "source.row.skipped",
                        "opportunity_id": e.opportunity_id,
                    },
                )
        return opportunities
