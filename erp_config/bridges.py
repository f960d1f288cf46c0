"""
Config -> Engine bridges.

Convert ``ErpConfiguration`` sections into the value objects the pure
engines accept.  These live in erp_config (the producer) so that engines
never import configuration.

Usage:
    from erp_config.bridges import allocation_policy_for

    config = get_active_config()
    policy = allocation_policy_for(config, "conference_paper", "keynote_speaker_invited_talks")
"""

from __future__ import annotations

from erp_config.schema import ErpConfiguration
from erp_engines.incentive import (
    AllocationPolicy,
    CoAuthorSplit,
    CoAuthorSplitMethod,
    DistributionMethod,
)
from erp_engines.scoring import PoolScorer


def allocation_policy_for(
    config: ErpConfiguration,
    publication_type: str,
    sub_type: str | None = None,
) -> AllocationPolicy:
    """Build the engine policy for a publication type and optional sub-type.

    Raises:
        ValueError: if no policy is configured for ``publication_type`` or
            a configured method name is not recognised.
    """
    policy = config.policy_for(publication_type)
    kwargs = {}
    if config.position_percentages:
        kwargs["position_percentages"] = config.position_percentages
    return AllocationPolicy(
        distribution=DistributionMethod(policy.distribution_for(sub_type)),
        first_percent=policy.first_percent,
        corresponding_percent=policy.corresponding_percent,
        co_author_split=CoAuthorSplit(
            method=CoAuthorSplitMethod(policy.co_author_split_method),
            weights=policy.co_author_weights,
        ),
        **kwargs,
    )


def build_pool_scorer(config: ErpConfiguration) -> PoolScorer:
    return PoolScorer(config.scoring)
