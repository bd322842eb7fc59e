"""Opportunity sources: read-only access to the upstream catalog.

This package provides:
- BaseOpportunitySource: the fetch contract used by the pipeline
- CatalogSource: SQL implementation over the catalog tables
- CatalogEligibilityChecker: external eligibility rules from the catalog
- Source exceptions
"""

from .base import BaseOpportunitySource
from .catalog import CatalogSource
from .eligibility import CatalogEligibilityChecker
from .exceptions import (
    OpportunityNotFoundError,
    SourceConfigurationError,
    SourceError,
    SourceQueryError,
)
from .normalization import NormalizationError, bounty_to_opportunity, grant_to_opportunity

__all__ = [
    "BaseOpportunitySource",
    "CatalogSource",
    "CatalogEligibilityChecker",
    "OpportunityNotFoundError",
    "SourceConfigurationError",
    "SourceError",
    "SourceQueryError",
    "NormalizationError",
    "bounty_to_opportunity",
    "grant_to_opportunity",
]
