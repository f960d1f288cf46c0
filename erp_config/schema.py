"""
ErpConfiguration schema.

Typed, frozen view of a configuration set.  YAML is parsed into these
types by the loader; runtime code receives them through
``erp_config.get_active_config()`` and never reads YAML itself.

Sections:
  research             -- raw settings consumed by ResearchConfig.from_dict()
  incentive_policies   -- how each publication type divides its pool
  scoring              -- how big each pool is (erp_engines.scoring tables)
  permissions          -- closed catalog of grantable keys per scope
  designation_templates -- default school-scope grants by job title
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from erp_engines.scoring import ScoringTables

# ---------------------------------------------------------------------------
# Incentive policies
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class IncentivePolicy:
    """Declarative allocation policy for one publication type.

    ``sub_type_distribution`` overrides ``distribution`` for specific
    sub-types (e.g. non-indexed conference papers are split equally).
    """

    publication_type: str
    distribution: str = "role_based"
    first_percent: Decimal = Decimal("35")
    corresponding_percent: Decimal = Decimal("35")
    co_author_split_method: str = "equal"
    co_author_weights: tuple[Decimal, ...] = ()
    sub_type_distribution: Mapping[str, str] = field(default_factory=dict)

    def distribution_for(self, sub_type: str | None) -> str:
        if sub_type and sub_type in self.sub_type_distribution:
            return self.sub_type_distribution[sub_type]
        return self.distribution


# ---------------------------------------------------------------------------
# Permission catalog
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PermissionCatalog:
    """Closed set of permission keys, grouped by scope then category."""

    scopes: Mapping[str, Mapping[str, tuple[str, ...]]]

    def categories(self, scope: str) -> Mapping[str, tuple[str, ...]]:
        try:
            return self.scopes[scope]
        except KeyError:
            raise ValueError(f"Unknown permission scope: {scope}") from None

    def keys_for(self, scope: str) -> frozenset[str]:
        return frozenset(k for keys in self.categories(scope).values() for k in keys)

    def unknown_keys(self, scope: str, keys: Iterable[str]) -> tuple[str, ...]:
        allowed = self.keys_for(scope)
        return tuple(sorted({k for k in keys if k not in allowed}))


@dataclass(frozen=True)
class DesignationTemplate:
    """Default school-scope permissions for a job title."""

    designation: str
    permissions: Mapping[str, tuple[str, ...]]

    def keys(self) -> tuple[str, ...]:
        return tuple(k for keys in self.permissions.values() for k in keys)


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ErpConfiguration:
    """One loaded configuration set."""

    config_id: str
    version: int
    checksum: str
    research: Mapping[str, Any]
    incentive_policies: Mapping[str, IncentivePolicy]
    position_percentages: tuple[Decimal, ...]
    scoring: ScoringTables
    permissions: PermissionCatalog
    designation_templates: Mapping[str, DesignationTemplate] = field(default_factory=dict)

    def policy_for(self, publication_type: str) -> IncentivePolicy:
        try:
            return self.incentive_policies[publication_type]
        except KeyError:
            raise ValueError(
                f"No incentive policy configured for {publication_type!r}"
            ) from None

    def template_for(self, designation: str) -> DesignationTemplate | None:
        return self.designation_templates.get(designation)
