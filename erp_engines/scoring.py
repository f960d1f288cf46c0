"""
Module: erp_engines.scoring
Responsibility:
    Derive the incentive pool and points pool of a contribution from its
    publication metadata (indexing categories, quartile, SJR, NAAS rating,
    impact factor, book type, conference sub-type).

Architecture position:
    Engines -- pure lookup over tables supplied by erp_config.  Zero I/O.

Rules:
    - research_paper: every selected indexing category is scored on its own
      and the single highest category wins (no stacking).
    - book / book_chapter: base amount by book type plus indexing and
      international bonuses.
    - conference_paper: the indexed sub-type is scored by proceedings
      quartile plus bonuses; other sub-types use flat national/international
      amounts.
    Missing or unrecognised metadata yields a zero pool with basis
    "unscored" rather than an error; reviewers see the zero before approving.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from erp_kernel.logging_config import get_logger

logger = get_logger("engines.scoring")

_QUARTILE_ALIASES = {
    "top1": "Top 1%",
    "top5": "Top 5%",
    "q1": "Q1",
    "q2": "Q2",
    "q3": "Q3",
    "q4": "Q4",
}


def normalize_quartile(raw: str | None) -> str | None:
    """Map free-form quartile labels ("top 1%", "top_1_", "q2") to table keys."""
    if not raw:
        return None
    return _QUARTILE_ALIASES.get(re.sub(r"[\s_%]", "", raw.lower()))


@dataclass(frozen=True)
class PoolAmount:
    incentive: Decimal
    points: int

    def with_bonus(self, bonus: Decimal) -> "PoolAmount":
        return PoolAmount(self.incentive + bonus, self.points)


@dataclass(frozen=True)
class Band:
    """Inclusive metric range; ``maximum=None`` means open-ended."""

    minimum: Decimal
    maximum: Decimal | None
    amount: PoolAmount

    def contains(self, value: Decimal) -> bool:
        if value < self.minimum:
            return False
        return self.maximum is None or value <= self.maximum


class CategoryKind(str, Enum):
    FLAT = "flat"
    QUARTILE = "quartile"
    BAND = "band"
    THRESHOLD = "threshold"


@dataclass(frozen=True)
class CategoryRule:
    name: str
    kind: CategoryKind
    metric: str | None = None
    amount: PoolAmount | None = None
    quartiles: Mapping[str, PoolAmount] = field(default_factory=dict)
    bands: tuple[Band, ...] = ()
    above: Decimal | None = None

    def evaluate(self, inputs: "ScoringInputs") -> PoolAmount | None:
        if self.kind == CategoryKind.FLAT:
            return self.amount
        value = inputs.metric(self.metric) if self.metric else None
        if value is None:
            return None
        if self.kind == CategoryKind.QUARTILE:
            return self.quartiles.get(normalize_quartile(value))
        if self.kind == CategoryKind.BAND:
            for band in self.bands:
                if band.contains(Decimal(value)):
                    return band.amount
            return None
        if self.kind == CategoryKind.THRESHOLD:
            return self.amount if Decimal(value) > self.above else None
        return None


@dataclass(frozen=True)
class ResearchPaperTable:
    categories: Mapping[str, CategoryRule]


@dataclass(frozen=True)
class BookTable:
    base: Mapping[str, PoolAmount]
    indexing_bonus: Mapping[str, Decimal]
    international_bonus: Decimal = Decimal("0")


@dataclass(frozen=True)
class ConferenceTable:
    indexed_sub_type: str
    quartiles: Mapping[str, PoolAmount]
    flat: Mapping[str, Mapping[str, PoolAmount]]
    international_bonus: Decimal = Decimal("0")
    best_paper_bonus: Decimal = Decimal("0")


@dataclass(frozen=True)
class ScoringTables:
    research_paper: ResearchPaperTable
    book: BookTable
    book_chapter: BookTable
    conference_paper: ConferenceTable


@dataclass(frozen=True)
class ScoringInputs:
    """Publication metadata relevant to pool sizing."""

    publication_type: str
    indexing_categories: tuple[str, ...] = ()
    quartile: str | None = None
    impact_factor: Decimal | None = None
    sjr: Decimal | None = None
    naas_rating: Decimal | None = None
    book_type: str | None = None
    book_indexing: str | None = None
    conference_sub_type: str | None = None
    proceedings_quartile: str | None = None
    is_international: bool = False
    best_paper_award: bool = False

    def metric(self, name: str):
        return getattr(self, name, None)


@dataclass(frozen=True)
class ScoredPool:
    incentive: Decimal
    points: int
    basis: str

    @classmethod
    def unscored(cls) -> "ScoredPool":
        return cls(Decimal("0"), 0, "unscored")


class PoolScorer:
    """Looks up pools from configured tables."""

    def __init__(self, tables: ScoringTables):
        self._tables = tables
        self._handlers = {
            "research_paper": self._score_research_paper,
            "book": lambda inputs: self._score_book(inputs, self._tables.book),
            "book_chapter": lambda inputs: self._score_book(inputs, self._tables.book_chapter),
            "conference_paper": self._score_conference,
        }

    def score(self, inputs: ScoringInputs) -> ScoredPool:
        handler = self._handlers.get(inputs.publication_type)
        if handler is None:
            raise ValueError(f"Unknown publication type: {inputs.publication_type}")
        pool = handler(inputs)
        logger.debug(
            "pool_scored",
            extra={
                "publication_type": inputs.publication_type,
                "basis": pool.basis,
                "incentive": str(pool.incentive),
                "points": pool.points,
            },
        )
        return pool

    def _score_research_paper(self, inputs: ScoringInputs) -> ScoredPool:
        categories = self._tables.research_paper.categories
        best: tuple[str, PoolAmount] | None = None
        for name in inputs.indexing_categories:
            rule = categories.get(name)
            if rule is None:
                continue
            amount = rule.evaluate(inputs)
            if amount is None:
                continue
            if best is None or (amount.incentive, amount.points) > (
                best[1].incentive,
                best[1].points,
            ):
                best = (name, amount)
        if best is None:
            return ScoredPool.unscored()
        return ScoredPool(best[1].incentive, best[1].points, best[0])

    def _score_book(self, inputs: ScoringInputs, table: BookTable) -> ScoredPool:
        book_type = inputs.book_type or "authored"
        base = table.base.get(book_type)
        if base is None:
            return ScoredPool.unscored()
        bonus = table.indexing_bonus.get(inputs.book_indexing or "", Decimal("0"))
        if inputs.is_international:
            bonus += table.international_bonus
        amount = base.with_bonus(bonus)
        return ScoredPool(amount.incentive, amount.points, f"{inputs.publication_type}:{book_type}")

    def _score_conference(self, inputs: ScoringInputs) -> ScoredPool:
        table = self._tables.conference_paper
        sub_type = inputs.conference_sub_type
        if sub_type == table.indexed_sub_type:
            amount = table.quartiles.get(normalize_quartile(inputs.proceedings_quartile))
            if amount is None:
                return ScoredPool.unscored()
            bonus = Decimal("0")
            if inputs.is_international:
                bonus += table.international_bonus
            if inputs.best_paper_award:
                bonus += table.best_paper_bonus
            amount = amount.with_bonus(bonus)
            return ScoredPool(amount.incentive, amount.points, sub_type)

        levels = table.flat.get(sub_type or "")
        if levels is None:
            return ScoredPool.unscored()
        level = "international" if inputs.is_international else "national"
        amount = levels[level]
        return ScoredPool(amount.incentive, amount.points, f"{sub_type}:{level}")
