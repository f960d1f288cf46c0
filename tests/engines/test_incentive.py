"""
Tests for the Incentive Allocation Engine.

Covers:
- Single author and two-author split
- Role percentages with co-author remainder
- External forfeit and redistribution to internal co-authors
- Student points suppression
- Equal, position-based and presenter distribution
- Weighted co-author split
- Rounding residue handling
- Validation failures
- Property-based invariants over random author lists
"""

from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from erp_engines.incentive import (
    AllocationAuthor,
    AllocationPolicy,
    AuthorCategory,
    AuthorRole,
    AuthorType,
    CoAuthorSplit,
    CoAuthorSplitMethod,
    DistributionMethod,
    IncentiveAllocationEngine,
)
from erp_kernel.exceptions import InvalidAuthorConfigurationError


def internal(key, role, author_type=AuthorType.FACULTY):
    return AllocationAuthor(key, AuthorCategory.INTERNAL, author_type, role)


def external(key, role, author_type=AuthorType.ACADEMIC):
    return AllocationAuthor(key, AuthorCategory.EXTERNAL, author_type, role)


ROLE_POLICY = AllocationPolicy(first_percent=Decimal("35"), corresponding_percent=Decimal("35"))


# =============================================================================
# Role-based precedence
# =============================================================================


class TestRoleBasedAllocation:
    """Single author, two-author split and role percentages."""

    def setup_method(self):
        self.engine = IncentiveAllocationEngine()

    def test_single_author_takes_everything(self):
        result = self.engine.allocate(
            Decimal("10000"), 100, [internal("a", AuthorRole.FIRST)], ROLE_POLICY
        )

        assert result.rule == "single_author"
        share = result.share_for("a")
        assert share.incentive_share == Decimal("10000.00")
        assert share.points_share == 100
        assert share.effective_role == AuthorRole.FIRST_AND_CORRESPONDING

    def test_two_authors_without_co_author_split_evenly(self):
        result = self.engine.allocate(
            Decimal("10000"),
            100,
            [internal("a", AuthorRole.FIRST), internal("b", AuthorRole.CORRESPONDING)],
            ROLE_POLICY,
        )

        assert result.rule == "two_author_split"
        assert result.share_for("a").incentive_share == Decimal("5000.00")
        assert result.share_for("b").incentive_share == Decimal("5000.00")
        assert result.share_for("a").points_share == 50
        assert result.share_for("b").points_share == 50

    def test_first_and_corresponding_with_one_co_author(self):
        result = self.engine.allocate(
            Decimal("10000"),
            100,
            [
                internal("a", AuthorRole.FIRST_AND_CORRESPONDING),
                internal("b", AuthorRole.CO_AUTHOR),
            ],
            ROLE_POLICY,
        )

        assert result.rule == "role_percentages"
        assert result.share_for("a").incentive_share == Decimal("7000.00")
        assert result.share_for("b").incentive_share == Decimal("3000.00")
        assert result.distributed_incentive == Decimal("10000.00")

    def test_student_and_external_co_authors(self):
        """First+Corresponding faculty, student co-author, external co-author."""
        result = self.engine.allocate(
            Decimal("10000"),
            100,
            [
                internal("A", AuthorRole.FIRST_AND_CORRESPONDING),
                internal("B", AuthorRole.CO_AUTHOR, AuthorType.STUDENT),
                external("C", AuthorRole.CO_AUTHOR),
            ],
            ROLE_POLICY,
        )

        a, b, c = (result.share_for(k) for k in "ABC")
        assert (a.incentive_share, a.points_share) == (Decimal("7000.00"), 70)
        assert (b.incentive_share, b.points_share) == (Decimal("3000.00"), 0)
        assert (c.incentive_share, c.points_share) == (Decimal("0.00"), 0)
        assert result.distributed_incentive == Decimal("10000.00")
        assert result.undistributed_points == 30

    def test_separate_first_and_corresponding_holders(self):
        result = self.engine.allocate(
            Decimal("20000"),
            100,
            [
                internal("a", AuthorRole.FIRST),
                internal("b", AuthorRole.CORRESPONDING),
                internal("c", AuthorRole.CO_AUTHOR),
                internal("d", AuthorRole.CO_AUTHOR),
            ],
            ROLE_POLICY,
        )

        assert result.share_for("a").incentive_share == Decimal("7000.00")
        assert result.share_for("b").incentive_share == Decimal("7000.00")
        assert result.share_for("c").incentive_share == Decimal("3000.00")
        assert result.share_for("d").incentive_share == Decimal("3000.00")
        assert result.distributed_points == 100


# =============================================================================
# Forfeits
# =============================================================================


class TestExternalForfeit:
    """External authors never receive a share."""

    def setup_method(self):
        self.engine = IncentiveAllocationEngine()

    def test_external_first_author_share_is_forfeited(self):
        result = self.engine.allocate(
            Decimal("10000"),
            100,
            [
                external("a", AuthorRole.FIRST, AuthorType.INDUSTRY),
                internal("b", AuthorRole.CORRESPONDING),
                internal("c", AuthorRole.CO_AUTHOR),
            ],
            ROLE_POLICY,
        )

        assert result.share_for("a").incentive_share == Decimal("0.00")
        assert result.share_for("b").incentive_share == Decimal("3500.00")
        assert result.share_for("c").incentive_share == Decimal("3000.00")
        assert result.undistributed_incentive == Decimal("3500.00")
        assert result.undistributed_points == 35

    def test_external_co_author_share_goes_evenly_to_internal_co_authors(self):
        result = self.engine.allocate(
            Decimal("9000"),
            90,
            [
                internal("a", AuthorRole.FIRST_AND_CORRESPONDING),
                external("x", AuthorRole.CO_AUTHOR, AuthorType.INTERNATIONAL),
                internal("b", AuthorRole.CO_AUTHOR),
                internal("c", AuthorRole.CO_AUTHOR),
            ],
            ROLE_POLICY,
        )

        # 30% co-author pool: 10% each, x's 10% split 5/5 between b and c
        assert result.share_for("x").incentive_share == Decimal("0.00")
        assert result.share_for("b").incentive_share == Decimal("1350.00")
        assert result.share_for("c").incentive_share == Decimal("1350.00")
        assert result.distributed_incentive == Decimal("9000.00")

    def test_co_author_pool_forfeited_when_all_co_authors_external(self):
        result = self.engine.allocate(
            Decimal("10000"),
            100,
            [
                internal("a", AuthorRole.FIRST_AND_CORRESPONDING),
                external("x", AuthorRole.CO_AUTHOR),
                external("y", AuthorRole.CO_AUTHOR),
            ],
            ROLE_POLICY,
        )

        assert result.share_for("a").incentive_share == Decimal("7000.00")
        assert result.distributed_incentive == Decimal("7000.00")
        assert result.undistributed_incentive == Decimal("3000.00")

    def test_student_first_author_keeps_money_but_no_points(self):
        result = self.engine.allocate(
            Decimal("10000"),
            100,
            [internal("s", AuthorRole.FIRST_AND_CORRESPONDING, AuthorType.STUDENT)],
            ROLE_POLICY,
        )

        assert result.share_for("s").incentive_share == Decimal("10000.00")
        assert result.share_for("s").points_share == 0
        assert result.undistributed_points == 100

    def test_co_author_points_go_to_faculty_only(self):
        result = self.engine.allocate(
            Decimal("10000"),
            100,
            [
                internal("a", AuthorRole.FIRST_AND_CORRESPONDING),
                internal("s", AuthorRole.CO_AUTHOR, AuthorType.STUDENT),
                internal("f", AuthorRole.CO_AUTHOR),
            ],
            ROLE_POLICY,
        )

        assert result.share_for("s").incentive_share == Decimal("1500.00")
        assert result.share_for("s").points_share == 0
        assert result.share_for("f").incentive_share == Decimal("1500.00")
        assert result.share_for("f").points_share == 30
        assert result.distributed_points == 100


# =============================================================================
# Other distribution methods
# =============================================================================


class TestOtherDistributions:
    """Equal, position-based, presenter and weighted co-author splits."""

    def setup_method(self):
        self.engine = IncentiveAllocationEngine()

    def test_equal_split_assigns_residue_to_last_recipient(self):
        result = self.engine.allocate(
            Decimal("10000"),
            100,
            [
                internal("a", AuthorRole.FIRST),
                internal("b", AuthorRole.CO_AUTHOR),
                internal("c", AuthorRole.CORRESPONDING),
            ],
            AllocationPolicy(distribution=DistributionMethod.EQUAL),
        )

        assert result.rule == "equal_split"
        assert [s.incentive_share for s in result.shares] == [
            Decimal("3333.33"),
            Decimal("3333.33"),
            Decimal("3333.34"),
        ]
        assert [s.points_share for s in result.shares] == [33, 33, 34]
        assert result.distributed_incentive == Decimal("10000.00")

    def test_position_based_uses_listing_order(self):
        result = self.engine.allocate(
            Decimal("10000"),
            100,
            [
                internal("a", AuthorRole.FIRST),
                internal("b", AuthorRole.CO_AUTHOR),
                internal("c", AuthorRole.CORRESPONDING),
            ],
            AllocationPolicy(distribution=DistributionMethod.POSITION_BASED),
        )

        assert result.rule == "position_percentages"
        assert [s.incentive_share for s in result.shares] == [
            Decimal("4000.00"),
            Decimal("2500.00"),
            Decimal("1500.00"),
        ]
        assert result.undistributed_incentive == Decimal("2000.00")

    def test_weighted_co_author_split(self):
        policy = AllocationPolicy(
            co_author_split=CoAuthorSplit(
                method=CoAuthorSplitMethod.WEIGHTED,
                weights=(Decimal("2"), Decimal("1")),
            )
        )
        result = self.engine.allocate(
            Decimal("10000"),
            100,
            [
                internal("a", AuthorRole.FIRST),
                internal("b", AuthorRole.CORRESPONDING),
                internal("c", AuthorRole.CO_AUTHOR),
                internal("d", AuthorRole.CO_AUTHOR),
            ],
            policy,
        )

        assert result.share_for("c").incentive_share == Decimal("2000.00")
        assert result.share_for("d").incentive_share == Decimal("1000.00")

    def test_presenter_takes_whole_pool(self):
        result = self.engine.allocate(
            Decimal("10000"),
            10,
            [
                internal("speaker", AuthorRole.FIRST_AND_CORRESPONDING),
                internal("chair", AuthorRole.CO_AUTHOR),
                external("guest", AuthorRole.CO_AUTHOR),
            ],
            AllocationPolicy(distribution=DistributionMethod.PRESENTER),
        )

        assert result.rule == "presenter"
        assert [s.incentive_share for s in result.shares] == [
            Decimal("10000.00"),
            Decimal("0.00"),
            Decimal("0.00"),
        ]
        assert [s.points_share for s in result.shares] == [10, 0, 0]

    def test_presenter_skips_leading_external(self):
        result = self.engine.allocate(
            Decimal("5000"),
            5,
            [
                external("host", AuthorRole.FIRST),
                internal("organizer", AuthorRole.CO_AUTHOR),
            ],
            AllocationPolicy(distribution=DistributionMethod.PRESENTER),
        )

        assert result.share_for("host").incentive_share == Decimal("0.00")
        assert result.share_for("organizer").incentive_share == Decimal("5000.00")

    def test_student_presenter_keeps_money_not_points(self):
        result = self.engine.allocate(
            Decimal("10000"),
            10,
            [internal("speaker", AuthorRole.FIRST_AND_CORRESPONDING, AuthorType.STUDENT)],
            AllocationPolicy(distribution=DistributionMethod.PRESENTER),
        )

        assert result.share_for("speaker").incentive_share == Decimal("10000.00")
        assert result.share_for("speaker").points_share == 0
        assert result.undistributed_points == 10

    def test_small_points_pool_never_goes_negative(self):
        result = self.engine.allocate(
            Decimal("0"),
            5,
            [
                internal("a", AuthorRole.FIRST),
                internal("b", AuthorRole.CORRESPONDING),
                internal("c", AuthorRole.CO_AUTHOR),
                internal("d", AuthorRole.CO_AUTHOR),
                internal("e", AuthorRole.CO_AUTHOR),
            ],
            ROLE_POLICY,
        )

        assert all(s.points_share >= 0 for s in result.shares)
        assert result.distributed_points == 5


# =============================================================================
# Validation
# =============================================================================


class TestValidation:
    """Configuration errors are typed; caller bugs are ValueError."""

    def setup_method(self):
        self.engine = IncentiveAllocationEngine()

    def test_empty_author_list(self):
        with pytest.raises(InvalidAuthorConfigurationError):
            self.engine.allocate(Decimal("100"), 10, [])

    def test_two_first_authors(self):
        with pytest.raises(InvalidAuthorConfigurationError) as exc_info:
            self.engine.allocate(
                Decimal("100"),
                10,
                [
                    internal("a", AuthorRole.FIRST),
                    internal("b", AuthorRole.FIRST_AND_CORRESPONDING),
                    internal("c", AuthorRole.CO_AUTHOR),
                ],
            )
        assert exc_info.value.role == "first"
        assert exc_info.value.count == 2

    def test_two_corresponding_authors(self):
        with pytest.raises(InvalidAuthorConfigurationError) as exc_info:
            self.engine.allocate(
                Decimal("100"),
                10,
                [
                    internal("a", AuthorRole.CORRESPONDING),
                    internal("b", AuthorRole.FIRST_AND_CORRESPONDING),
                ],
            )
        assert exc_info.value.role == "corresponding"

    def test_missing_corresponding_holder(self):
        with pytest.raises(InvalidAuthorConfigurationError) as exc_info:
            self.engine.allocate(
                Decimal("100"),
                10,
                [
                    internal("a", AuthorRole.FIRST),
                    internal("b", AuthorRole.CO_AUTHOR),
                    internal("c", AuthorRole.CO_AUTHOR),
                ],
            )
        assert exc_info.value.count == 0

    def test_negative_pool(self):
        with pytest.raises(ValueError):
            self.engine.allocate(Decimal("-1"), 10, [internal("a", AuthorRole.FIRST)])

    def test_duplicate_keys(self):
        with pytest.raises(ValueError):
            self.engine.allocate(
                Decimal("100"),
                10,
                [internal("a", AuthorRole.FIRST), internal("a", AuthorRole.CORRESPONDING)],
            )

    def test_policy_percentages_cannot_exceed_hundred(self):
        with pytest.raises(ValueError):
            AllocationPolicy(first_percent=Decimal("60"), corresponding_percent=Decimal("50"))


# =============================================================================
# Properties
# =============================================================================


_INTERNAL_TYPES = st.sampled_from([AuthorType.FACULTY, AuthorType.STUDENT])
_EXTERNAL_TYPES = st.sampled_from([AuthorType.ACADEMIC, AuthorType.INDUSTRY, AuthorType.INTERNATIONAL])


@st.composite
def _author(draw, key, role):
    if draw(st.booleans()):
        return AllocationAuthor(key, AuthorCategory.INTERNAL, draw(_INTERNAL_TYPES), role)
    return AllocationAuthor(key, AuthorCategory.EXTERNAL, draw(_EXTERNAL_TYPES), role)


@st.composite
def author_lists(draw):
    if draw(st.booleans()):
        leads = [draw(_author("lead", AuthorRole.FIRST_AND_CORRESPONDING))]
    else:
        leads = [
            draw(_author("first", AuthorRole.FIRST)),
            draw(_author("corr", AuthorRole.CORRESPONDING)),
        ]
    co_count = draw(st.integers(min_value=0, max_value=6))
    co_authors = [draw(_author(f"co{i}", AuthorRole.CO_AUTHOR)) for i in range(co_count)]
    return leads + co_authors


class TestAllocationProperties:
    """Invariants that hold for every valid author list."""

    @settings(max_examples=200, deadline=None)
    @given(
        authors=author_lists(),
        incentive_pool=st.decimals(min_value=0, max_value=500000, places=2),
        points_pool=st.integers(min_value=0, max_value=200),
        method=st.sampled_from(list(DistributionMethod)),
    )
    def test_shares_never_exceed_pools(self, authors, incentive_pool, points_pool, method):
        result = IncentiveAllocationEngine().allocate(
            incentive_pool, points_pool, authors, AllocationPolicy(distribution=method)
        )

        assert result.distributed_incentive <= incentive_pool
        assert result.distributed_points <= points_pool
        for author, share in zip(authors, result.shares):
            assert share.incentive_share >= 0
            assert share.points_share >= 0
            if author.category == AuthorCategory.EXTERNAL:
                assert share.incentive_share == 0
                assert share.points_share == 0
            if author.author_type == AuthorType.STUDENT:
                assert share.points_share == 0

    @settings(max_examples=100, deadline=None)
    @given(authors=author_lists(), incentive_pool=st.decimals(min_value=0, max_value=100000, places=2))
    def test_allocation_is_deterministic(self, authors, incentive_pool):
        engine = IncentiveAllocationEngine()
        first = engine.allocate(incentive_pool, 50, authors, ROLE_POLICY)
        second = engine.allocate(incentive_pool, 50, authors, ROLE_POLICY)
        assert first == second
