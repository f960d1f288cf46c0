"""
Configuration Loader (``erp_config.loader``).

Responsibility
--------------
Loads a YAML configuration set and parses it into typed
``erp_config.schema`` dataclasses.  Callers use
``erp_config.get_active_config()``; the parse helpers are public for tests.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Bad values (unknown kind, negative percentages)  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from erp_config.schema import (
    DesignationTemplate,
    ErpConfiguration,
    IncentivePolicy,
    PermissionCatalog,
)
from erp_engines.scoring import (
    Band,
    BookTable,
    CategoryKind,
    CategoryRule,
    ConferenceTable,
    PoolAmount,
    ResearchPaperTable,
    ScoringTables,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _decimal(value: Any) -> Decimal:
    return Decimal(str(value))


# ---------------------------------------------------------------------------
# Incentive policies
# ---------------------------------------------------------------------------


def parse_incentive_policy(publication_type: str, data: dict[str, Any]) -> IncentivePolicy:
    split = data.get("co_author_split") or {}
    return IncentivePolicy(
        publication_type=publication_type,
        distribution=data.get("distribution", "role_based"),
        first_percent=_decimal(data.get("first_percent", "35")),
        corresponding_percent=_decimal(data.get("corresponding_percent", "35")),
        co_author_split_method=split.get("method", "equal"),
        co_author_weights=tuple(_decimal(w) for w in split.get("weights", ())),
        sub_type_distribution=dict(data.get("sub_type_distribution") or {}),
    )


# ---------------------------------------------------------------------------
# Scoring tables
# ---------------------------------------------------------------------------


def parse_amount(data: dict[str, Any]) -> PoolAmount:
    return PoolAmount(incentive=_decimal(data["incentive"]), points=int(data["points"]))


def parse_category(name: str, data: dict[str, Any]) -> CategoryRule:
    """
    Parse one research-paper indexing category.

    Raises:
        ValueError: if ``kind`` is not a CategoryKind value.
        KeyError: if a field required by the kind is missing.
    """
    kind = CategoryKind(data["kind"])
    if kind == CategoryKind.FLAT:
        return CategoryRule(name=name, kind=kind, amount=parse_amount(data["amount"]))
    if kind == CategoryKind.THRESHOLD:
        return CategoryRule(
            name=name,
            kind=kind,
            metric=data["metric"],
            above=_decimal(data["above"]),
            amount=parse_amount(data["amount"]),
        )
    if kind == CategoryKind.QUARTILE:
        return CategoryRule(
            name=name,
            kind=kind,
            metric=data["metric"],
            quartiles={q: parse_amount(a) for q, a in data["quartiles"].items()},
        )
    bands = tuple(
        Band(
            minimum=_decimal(b["min"]),
            maximum=_decimal(b["max"]) if b.get("max") is not None else None,
            amount=parse_amount(b["amount"]),
        )
        for b in data["bands"]
    )
    return CategoryRule(name=name, kind=kind, metric=data["metric"], bands=bands)


def parse_book_table(data: dict[str, Any]) -> BookTable:
    return BookTable(
        base={k: parse_amount(v) for k, v in data["base"].items()},
        indexing_bonus={k: _decimal(v) for k, v in (data.get("indexing_bonus") or {}).items()},
        international_bonus=_decimal(data.get("international_bonus", "0")),
    )


def parse_conference_table(data: dict[str, Any]) -> ConferenceTable:
    return ConferenceTable(
        indexed_sub_type=data["indexed_sub_type"],
        quartiles={q: parse_amount(a) for q, a in data["quartiles"].items()},
        flat={
            sub_type: {level: parse_amount(a) for level, a in levels.items()}
            for sub_type, levels in (data.get("flat") or {}).items()
        },
        international_bonus=_decimal(data.get("international_bonus", "0")),
        best_paper_bonus=_decimal(data.get("best_paper_bonus", "0")),
    )


def parse_scoring(data: dict[str, Any]) -> ScoringTables:
    return ScoringTables(
        research_paper=ResearchPaperTable(
            categories={
                name: parse_category(name, cat)
                for name, cat in data["research_paper"]["categories"].items()
            }
        ),
        book=parse_book_table(data["book"]),
        book_chapter=parse_book_table(data["book_chapter"]),
        conference_paper=parse_conference_table(data["conference_paper"]),
    )


# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------


def parse_permission_catalog(data: dict[str, Any]) -> PermissionCatalog:
    return PermissionCatalog(
        scopes={
            scope: {category: tuple(keys) for category, keys in categories.items()}
            for scope, categories in data.items()
        }
    )


def parse_designation_templates(
    data: dict[str, Any], catalog: PermissionCatalog
) -> dict[str, DesignationTemplate]:
    """
    Parse designation templates, checking every key against the school catalog.

    Raises:
        ValueError: if a template names a key outside the school scope.
    """
    templates = {}
    for designation, permissions in data.items():
        template = DesignationTemplate(
            designation=designation,
            permissions={c: tuple(keys) for c, keys in permissions.items()},
        )
        unknown = catalog.unknown_keys("school", template.keys())
        if unknown:
            raise ValueError(
                f"Designation template {designation!r} names unknown keys: {unknown}"
            )
        templates[designation] = template
    return templates


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


def parse_configuration(data: dict[str, Any]) -> ErpConfiguration:
    """Parse a whole configuration set dict into an ``ErpConfiguration``."""
    catalog = parse_permission_catalog(data["permissions"])
    return ErpConfiguration(
        config_id=data["config_id"],
        version=int(data.get("version", 1)),
        checksum=compute_checksum(data),
        research=dict(data.get("research") or {}),
        incentive_policies={
            pub_type: parse_incentive_policy(pub_type, policy)
            for pub_type, policy in data["incentive_policies"].items()
        },
        position_percentages=tuple(_decimal(p) for p in data.get("position_percentages", ())),
        scoring=parse_scoring(data["scoring"]),
        permissions=catalog,
        designation_templates=parse_designation_templates(
            data.get("designation_templates") or {}, catalog
        ),
    )


def load_configuration(path: Path) -> ErpConfiguration:
    return parse_configuration(load_yaml_file(path))
