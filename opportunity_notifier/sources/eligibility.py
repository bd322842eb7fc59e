"""External eligibility checks answered from the catalog."""

from typing import Any, List

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from opportunity_notifier.eligibility.checker import EligibilityChecker
from opportunity_notifier.eligibility.models import EligibilityVerdict
from opportunity_notifier.logging import get_logger

from .catalog_schema import bounties, submissions, users

logger = get_logger(__name__, component="source")


def _allowed_regions(eligibility: Any) -> List[str]:
    if not isinstance(eligibility, dict):
        return []
    regions = eligibility.get("regions")
    if isinstance(regions, str):
        regions = [regions]
    if not isinstance(regions, list):
        return []
    return [region.strip().lower() for region in regions if isinstance(region, str) and region.strip()]


class CatalogEligibilityChecker(EligibilityChecker):
    """Applies the catalog's own participation rules to a linked user.

    - Unknown user: ineligible
    - Opportunity not in the bounties table (e.g. grants): unknown
    - Region list set, without GLOBAL and without the user's location: ineligible
    - User already submitted to the opportunity: ineligible
    - Any query failure: unknown
    """

    def __init__(self, engine: Engine):
        self.engine = engine

    def check(self, external_user_id: str, opportunity_id: str) -> EligibilityVerdict:
        try:
            with self.engine.connect() as conn:
                user = conn.execute(
                    select(users.c.id, users.c.location).where(users.c.id == external_user_id)
                ).first()
                if user is None:
                    return EligibilityVerdict.INELIGIBLE

                listing = conn.execute(
                    select(bounties.c.id, bounties.c.eligibility).where(bounties.c.id == opportunity_id)
                ).first()
                if listing is None:
                    return EligibilityVerdict.UNKNOWN

                regions = _allowed_regions(listing.eligibility)
                location = (user.location or "").strip().lower()
                if regions and location and "global" not in regions and location not in regions:
                    return EligibilityVerdict.INELIGIBLE

                submitted = conn.execute(
                    select(submissions.c.id).where(
                        submissions.c.user_id == external_user_id,
                        submissions.c.listing_id == opportunity_id,
                    )
                ).first()
        except SQLAlchemyError as e:
            logger.warning(
                f"Eligibility lookup failed: {e}",
                extra={
                    "event": "eligibility.lookup_failed",
                    "opportunity_id": opportunity_id,
                    "error_type": type(e).__name__,
                },
            )
            return EligibilityVerdict.UNKNOWN

        if submitted is not None:
            return EligibilityVerdict.INELIGIBLE
        return EligibilityVerdict.ELIGIBLE
