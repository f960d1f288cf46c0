"""
Pure calculation engines for the research core.

- incentive: divides incentive/points pools among authors by rule table
- scoring:   sizes the pools from publication metadata
"""

from erp_engines.incentive import (
    AllocationAuthor,
    AllocationPolicy,
    AllocationResult,
    AuthorCategory,
    AuthorRole,
    AuthorShare,
    AuthorType,
    CoAuthorSplit,
    CoAuthorSplitMethod,
    DistributionMethod,
    IncentiveAllocationEngine,
)
from erp_engines.scoring import PoolScorer, ScoredPool, ScoringInputs, ScoringTables

__all__ = [
    "AllocationAuthor",
    "AllocationPolicy",
    "AllocationResult",
    "AuthorCategory",
    "AuthorRole",
    "AuthorShare",
    "AuthorType",
    "CoAuthorSplit",
    "CoAuthorSplitMethod",
    "DistributionMethod",
    "IncentiveAllocationEngine",
    "PoolScorer",
    "ScoredPool",
    "ScoringInputs",
    "ScoringTables",
]
