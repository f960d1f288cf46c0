"""
Module: erp_engines.incentive
Responsibility:
    Divide a contribution's incentive pool (currency) and points pool
    (integer) among its authors according to role, category and type.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Imports only
    erp_kernel.exceptions and the logging factory.

Role-based precedence (first matching rule assigns percentages):
    1. single_author      -- one author takes 100% as first_and_corresponding.
    2. two_author_split   -- two authors, neither a co-author: 50 / 50.
    3. role_percentages   -- first% and corresponding% to their holders (summed
                             when one person holds both); the remainder goes to
                             co-authors through the CoAuthorSplit table.
Other distribution methods:
    position_based        -- per-position percentage table.
    equal                 -- the pool divided evenly by author count.
    presenter             -- the first internal author listed takes the whole
                             pool (keynotes, invited talks, organizers).
Post-filters, applied to every distribution method:
    4. external_forfeit   -- external authors receive nothing.  A first or
                             corresponding share held by an external author is
                             forfeited; an external co-author's share was
                             already redistributed evenly to internal co-authors.
    5. student_no_points  -- students keep the money share, points are zero.
                             Co-author points are split among internal
                             employee co-authors only.

Invariants enforced:
    - sum(incentive_share) <= incentive_pool and sum(points_share) <= points_pool.
    - Money is rounded to 2 dp, points to whole numbers, ROUND_HALF_UP; the
      rounding residue is assigned to the last recipient (an overshoot is
      taken back from the largest shares) so the rounded total equals the
      rounded distributable amount and no share is negative.
    - Purity: no clock access, no I/O.

Failure modes:
    - InvalidAuthorConfigurationError: empty author list, more than one first
      or corresponding holder, or a role percentage with no holder.
    - ValueError: negative pool or duplicate author keys.

Usage:
    engine = IncentiveAllocationEngine()
    result = engine.allocate(
        incentive_pool=Decimal("10000"),
        points_pool=100,
        authors=[
            AllocationAuthor("a", AuthorCategory.INTERNAL, AuthorType.FACULTY,
                             AuthorRole.FIRST_AND_CORRESPONDING),
            AllocationAuthor("b", AuthorCategory.INTERNAL, AuthorType.STUDENT,
                             AuthorRole.CO_AUTHOR),
        ],
        policy=AllocationPolicy(first_percent=Decimal("35"),
                                corresponding_percent=Decimal("35")),
    )
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, replace
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from erp_kernel.exceptions import InvalidAuthorConfigurationError
from erp_kernel.logging_config import get_logger

logger = get_logger("engines.incentive")

HUNDRED = Decimal("100")
ZERO = Decimal("0")
CENT = Decimal("0.01")
WHOLE = Decimal("1")


class AuthorCategory(str, Enum):
    INTERNAL = "internal"
    EXTERNAL = "external"


class AuthorType(str, Enum):
    FACULTY = "faculty"
    STUDENT = "student"
    ACADEMIC = "academic"
    INDUSTRY = "industry"
    INTERNATIONAL = "international"


class AuthorRole(str, Enum):
    FIRST = "first"
    CORRESPONDING = "corresponding"
    FIRST_AND_CORRESPONDING = "first_and_corresponding"
    CO_AUTHOR = "co_author"

    @property
    def holds_first(self) -> bool:
        return self in (AuthorRole.FIRST, AuthorRole.FIRST_AND_CORRESPONDING)

    @property
    def holds_corresponding(self) -> bool:
        return self in (AuthorRole.CORRESPONDING, AuthorRole.FIRST_AND_CORRESPONDING)


class DistributionMethod(str, Enum):
    ROLE_BASED = "role_based"
    POSITION_BASED = "position_based"
    EQUAL = "equal"
    PRESENTER = "presenter"


class CoAuthorSplitMethod(str, Enum):
    EQUAL = "equal"
    WEIGHTED = "weighted"


@dataclass(frozen=True)
class CoAuthorSplit:
    """
    How the co-author remainder is divided before external redistribution.

    ``weights`` apply to co-authors in listing order; co-authors beyond the
    table get ``default_weight``.  EQUAL ignores the table.
    """

    method: CoAuthorSplitMethod = CoAuthorSplitMethod.EQUAL
    weights: tuple[Decimal, ...] = ()
    default_weight: Decimal = WHOLE

    def __post_init__(self) -> None:
        if any(w < 0 for w in self.weights) or self.default_weight < 0:
            raise ValueError("Co-author weights must be non-negative")

    def weight_for(self, ordinal: int) -> Decimal:
        if self.method == CoAuthorSplitMethod.EQUAL:
            return WHOLE
        if ordinal < len(self.weights):
            return self.weights[ordinal]
        return self.default_weight


@dataclass(frozen=True)
class AllocationPolicy:
    """Percentages and split tables for one publication type."""

    distribution: DistributionMethod = DistributionMethod.ROLE_BASED
    first_percent: Decimal = Decimal("35")
    corresponding_percent: Decimal = Decimal("35")
    co_author_split: CoAuthorSplit = field(default_factory=CoAuthorSplit)
    position_percentages: tuple[Decimal, ...] = (
        Decimal("40"),
        Decimal("25"),
        Decimal("15"),
        Decimal("12"),
        Decimal("8"),
    )

    def __post_init__(self) -> None:
        if self.first_percent < 0 or self.corresponding_percent < 0:
            raise ValueError("Role percentages must be non-negative")
        if self.first_percent + self.corresponding_percent > HUNDRED:
            raise ValueError(
                "first_percent + corresponding_percent cannot exceed 100, "
                f"got {self.first_percent + self.corresponding_percent}"
            )
        if any(p < 0 for p in self.position_percentages):
            raise ValueError("Position percentages must be non-negative")
        if sum(self.position_percentages, ZERO) > HUNDRED:
            raise ValueError("Position percentages cannot exceed 100 in total")

    @property
    def co_author_percent(self) -> Decimal:
        return HUNDRED - self.first_percent - self.corresponding_percent


@dataclass(frozen=True)
class AllocationAuthor:
    """One author as seen by the engine; ``key`` is the caller's identifier."""

    key: str
    category: AuthorCategory
    author_type: AuthorType
    role: AuthorRole

    @property
    def is_internal(self) -> bool:
        return self.category == AuthorCategory.INTERNAL

    @property
    def earns_points(self) -> bool:
        return self.is_internal and self.author_type != AuthorType.STUDENT


@dataclass(frozen=True)
class AuthorShare:
    key: str
    effective_role: AuthorRole
    rule: str
    incentive_percent: Decimal
    points_percent: Decimal
    incentive_share: Decimal
    points_share: int


@dataclass(frozen=True)
class AllocationResult:
    """
    Outcome of one allocation run.

    ``undistributed_*`` is what the pools kept back: forfeited external
    first/corresponding shares, student points, and co-author pools with no
    eligible holder.
    """

    rule: str
    distribution: DistributionMethod
    shares: tuple[AuthorShare, ...]
    incentive_pool: Decimal
    points_pool: int
    distributed_incentive: Decimal
    distributed_points: int

    @property
    def undistributed_incentive(self) -> Decimal:
        return self.incentive_pool - self.distributed_incentive

    @property
    def undistributed_points(self) -> int:
        return self.points_pool - self.distributed_points

    def share_for(self, key: str) -> AuthorShare:
        for share in self.shares:
            if share.key == key:
                return share
        raise KeyError(key)


# ---------------------------------------------------------------------------
# Percentage slots
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _Slot:
    effective_role: AuthorRole
    rule: str
    incentive_percent: Decimal
    points_percent: Decimal


def _even_split(
    pool_percent: Decimal,
    indices: Sequence[int],
    weights: dict[int, Decimal],
    receivers: Sequence[int],
) -> dict[int, Decimal]:
    """Weighted split of ``pool_percent``; non-receivers' parts go evenly to receivers."""
    total_weight = sum(weights.values(), ZERO)
    if not receivers or total_weight == 0:
        return {i: ZERO for i in indices}
    base = {i: pool_percent * weights[i] / total_weight for i in indices}
    spare = sum((base[i] for i in indices if i not in receivers), ZERO)
    bonus = spare / len(receivers)
    return {i: (base[i] + bonus if i in receivers else ZERO) for i in indices}


def _assign_single(authors: Sequence[AllocationAuthor], policy: AllocationPolicy) -> list[_Slot]:
    return [_Slot(AuthorRole.FIRST_AND_CORRESPONDING, "single_author", HUNDRED, HUNDRED)]


def _assign_two(authors: Sequence[AllocationAuthor], policy: AllocationPolicy) -> list[_Slot]:
    half = HUNDRED / 2
    return [_Slot(a.role, "two_author_split", half, half) for a in authors]


def _assign_by_role(authors: Sequence[AllocationAuthor], policy: AllocationPolicy) -> list[_Slot]:
    if not any(a.role.holds_first for a in authors):
        raise InvalidAuthorConfigurationError(
            "no author holds the first-author role", role="first", count=0
        )
    if not any(a.role.holds_corresponding for a in authors):
        raise InvalidAuthorConfigurationError(
            "no author holds the corresponding-author role", role="corresponding", count=0
        )

    co_indices = [i for i, a in enumerate(authors) if a.role == AuthorRole.CO_AUTHOR]
    if policy.co_author_percent > 0 and not co_indices:
        raise InvalidAuthorConfigurationError(
            "co-author percentage configured but no co-authors listed",
            role="co_author",
            count=0,
        )
    weights = {
        i: policy.co_author_split.weight_for(ordinal)
        for ordinal, i in enumerate(co_indices)
    }
    co_incentive = _even_split(
        policy.co_author_percent,
        co_indices,
        weights,
        [i for i in co_indices if authors[i].is_internal],
    )
    co_points = _even_split(
        policy.co_author_percent,
        co_indices,
        weights,
        [i for i in co_indices if authors[i].earns_points],
    )

    slots: list[_Slot] = []
    for i, author in enumerate(authors):
        if author.role == AuthorRole.CO_AUTHOR:
            slots.append(_Slot(author.role, "role_percentages", co_incentive[i], co_points[i]))
            continue
        percent = ZERO
        if author.role.holds_first:
            percent += policy.first_percent
        if author.role.holds_corresponding:
            percent += policy.corresponding_percent
        slots.append(_Slot(author.role, "role_percentages", percent, percent))
    return slots


def _assign_by_position(authors: Sequence[AllocationAuthor], policy: AllocationPolicy) -> list[_Slot]:
    table = policy.position_percentages
    slots = []
    for position, author in enumerate(authors):
        percent = table[position] if position < len(table) else ZERO
        slots.append(_Slot(author.role, "position_percentages", percent, percent))
    return slots


def _assign_equal(authors: Sequence[AllocationAuthor], policy: AllocationPolicy) -> list[_Slot]:
    percent = HUNDRED / len(authors)
    return [_Slot(a.role, "equal_split", percent, percent) for a in authors]


def _assign_presenter(authors: Sequence[AllocationAuthor], policy: AllocationPolicy) -> list[_Slot]:
    """The first internal author in listing order (the applicant) takes the whole pool."""
    presenter = next((i for i, a in enumerate(authors) if a.is_internal), None)
    slots = []
    for i, author in enumerate(authors):
        percent = HUNDRED if i == presenter else ZERO
        slots.append(_Slot(author.role, "presenter", percent, percent))
    return slots


@dataclass(frozen=True)
class AllocationRule:
    """One row of the precedence table."""

    name: str
    applies: Callable[[Sequence[AllocationAuthor]], bool]
    assign: Callable[[Sequence[AllocationAuthor], AllocationPolicy], list[_Slot]]


ROLE_BASED_RULES: tuple[AllocationRule, ...] = (
    AllocationRule("single_author", lambda authors: len(authors) == 1, _assign_single),
    AllocationRule(
        "two_author_split",
        lambda authors: len(authors) == 2
        and all(a.role != AuthorRole.CO_AUTHOR for a in authors),
        _assign_two,
    ),
    AllocationRule("role_percentages", lambda authors: True, _assign_by_role),
)

_METHOD_RULES: dict[DistributionMethod, tuple[AllocationRule, ...]] = {
    DistributionMethod.ROLE_BASED: ROLE_BASED_RULES,
    DistributionMethod.POSITION_BASED: (
        ROLE_BASED_RULES[0],
        AllocationRule("position_percentages", lambda authors: True, _assign_by_position),
    ),
    DistributionMethod.EQUAL: (
        AllocationRule("equal_split", lambda authors: True, _assign_equal),
    ),
    DistributionMethod.PRESENTER: (
        AllocationRule("presenter", lambda authors: True, _assign_presenter),
    ),
}


def _external_forfeit(author: AllocationAuthor, slot: _Slot) -> _Slot:
    if author.is_internal:
        return slot
    return replace(slot, incentive_percent=ZERO, points_percent=ZERO)


def _student_no_points(author: AllocationAuthor, slot: _Slot) -> _Slot:
    if author.earns_points:
        return slot
    return replace(slot, points_percent=ZERO)


POST_FILTERS: tuple[tuple[str, Callable[[AllocationAuthor, _Slot], _Slot]], ...] = (
    ("external_forfeit", _external_forfeit),
    ("student_no_points", _student_no_points),
)


# ---------------------------------------------------------------------------
# Rounding
# ---------------------------------------------------------------------------


def _apportion(pool: Decimal, percents: Sequence[Decimal], quantum: Decimal) -> list[Decimal]:
    """Round each share; the last recipient absorbs the residue.

    When rounding up overshoots the target, the excess is taken back from
    the largest shares instead, so no share goes negative.
    """
    exact = [pool * p / HUNDRED for p in percents]
    rounded = [e.quantize(quantum, rounding=ROUND_HALF_UP) for e in exact]
    recipients = [i for i, p in enumerate(percents) if p > 0]
    if not recipients:
        return [ZERO.quantize(quantum) for _ in percents]
    target = sum(exact, ZERO).quantize(quantum, rounding=ROUND_HALF_UP)
    residue = target - sum(rounded, ZERO)
    if residue >= 0:
        rounded[recipients[-1]] += residue
        return rounded
    for i in sorted(recipients, key=lambda i: rounded[i], reverse=True):
        take = min(-residue, rounded[i])
        rounded[i] -= take
        residue += take
        if residue == 0:
            break
    return rounded


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class IncentiveAllocationEngine:
    """
    Stateless allocation engine.

    Contract:
        ``allocate`` is a pure function of its arguments; identical inputs
        always produce identical shares.
    """

    def allocate(
        self,
        incentive_pool: Decimal,
        points_pool: int,
        authors: Sequence[AllocationAuthor],
        policy: AllocationPolicy | None = None,
    ) -> AllocationResult:
        policy = policy or AllocationPolicy()
        incentive_pool = Decimal(incentive_pool)
        self._validate(incentive_pool, points_pool, authors)

        rule = next(r for r in _METHOD_RULES[policy.distribution] if r.applies(authors))
        slots = rule.assign(authors, policy)
        for _, post_filter in POST_FILTERS:
            slots = [post_filter(a, s) for a, s in zip(authors, slots)]

        money = _apportion(incentive_pool, [s.incentive_percent for s in slots], CENT)
        points = _apportion(Decimal(points_pool), [s.points_percent for s in slots], WHOLE)

        shares = tuple(
            AuthorShare(
                key=author.key,
                effective_role=slot.effective_role,
                rule=slot.rule,
                incentive_percent=slot.incentive_percent,
                points_percent=slot.points_percent,
                incentive_share=amount,
                points_share=int(pts),
            )
            for author, slot, amount, pts in zip(authors, slots, money, points)
        )
        result = AllocationResult(
            rule=rule.name,
            distribution=policy.distribution,
            shares=shares,
            incentive_pool=incentive_pool,
            points_pool=points_pool,
            distributed_incentive=sum((s.incentive_share for s in shares), ZERO),
            distributed_points=sum(s.points_share for s in shares),
        )

        logger.info(
            "incentive_allocated",
            extra={
                "rule": rule.name,
                "distribution": policy.distribution.value,
                "author_count": len(authors),
                "incentive_pool": str(incentive_pool),
                "points_pool": points_pool,
                "distributed_incentive": str(result.distributed_incentive),
                "distributed_points": result.distributed_points,
            },
        )
        return result

    @staticmethod
    def _validate(
        incentive_pool: Decimal,
        points_pool: int,
        authors: Sequence[AllocationAuthor],
    ) -> None:
        if incentive_pool < 0 or points_pool < 0:
            raise ValueError("Incentive and points pools must be non-negative")
        if not authors:
            raise InvalidAuthorConfigurationError("at least one author is required", count=0)
        keys = [a.key for a in authors]
        if len(set(keys)) != len(keys):
            raise ValueError("Author keys must be unique")

        firsts = sum(1 for a in authors if a.role.holds_first)
        if firsts > 1:
            raise InvalidAuthorConfigurationError(
                f"{firsts} authors hold the first-author role", role="first", count=firsts
            )
        correspondings = sum(1 for a in authors if a.role.holds_corresponding)
        if correspondings > 1:
            raise InvalidAuthorConfigurationError(
                f"{correspondings} authors hold the corresponding-author role",
                role="corresponding",
                count=correspondings,
            )
