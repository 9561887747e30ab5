"""Tests for cascade promotion and tier assignment."""

import pytest

from compressor import AxiomTier, compress_with_cascade, determine_tier
from principle_store import Principle


def principle(seq: int, n: int) -> Principle:
    return Principle(
        id=f"pri_{seq:05d}",
        text=f"principle {seq}",
        centroid=[1.0, 0.0],
        contributors=[f"sig_{seq}_{i}" for i in range(n)],
        created_at=0.0,
        last_update=0.0,
    )


@pytest.mark.parametrize("n, tier", [
    (1, AxiomTier.EMERGING),
    (2, AxiomTier.EMERGING),
    (3, AxiomTier.DOMAIN),
    (4, AxiomTier.DOMAIN),
    (5, AxiomTier.CORE),
    (12, AxiomTier.CORE),
])
def test_determine_tier(n, tier):
    assert determine_tier(n) is tier


def test_empty_input_gives_empty_result():
    result = compress_with_cascade([])
    assert result.axioms == []
    assert result.effective_threshold == 1
    assert result.axiom_count_by_threshold == {3: 0, 2: 0, 1: 0}


def test_stops_at_strictest_level_meeting_target():
    principles = [principle(1, 6), principle(2, 4), principle(3, 3), principle(4, 1)]
    result = compress_with_cascade(principles)

    assert result.effective_threshold == 3
    assert len(result.attempts) == 1
    assert [a.principle_id for a in result.axioms] == ["pri_00001", "pri_00002", "pri_00003"]
    assert [p.id for p in result.unconverged] == ["pri_00004"]


def test_falls_through_to_looser_level():
    principles = [principle(1, 5), principle(2, 2), principle(3, 2)]
    result = compress_with_cascade(principles)
    assert result.effective_threshold == 2
    assert result.axiom_count_by_threshold == {3: 1, 2: 3}
    assert [a.admitted_at_threshold for a in result.axioms] == [2, 2, 2]


def test_tier_follows_actual_n_not_cascade_level():
    principles = [principle(1, 4), principle(2, 1)]
    result = compress_with_cascade(principles)
    assert result.effective_threshold == 1
    tiers = {a.principle_id: a.tier for a in result.axioms}
    assert tiers == {"pri_00001": AxiomTier.DOMAIN, "pri_00002": AxiomTier.EMERGING}


def test_every_axiom_meets_effective_threshold():
    principles = [principle(i, n) for i, n in enumerate([7, 3, 3, 2, 1, 1], start=1)]
    result = compress_with_cascade(principles)
    assert all(a.n_count >= result.effective_threshold for a in result.axioms)
    assert len(result.axioms) + len(result.unconverged) == len(principles)


def test_ordering_is_tier_then_n_then_id():
    principles = [principle(1, 1), principle(2, 3), principle(3, 5), principle(4, 8), principle(5, 3)]
    result = compress_with_cascade(principles, min_axiom_target=5)
    assert [a.principle_id for a in result.axioms] == [
        "pri_00004", "pri_00003", "pri_00002", "pri_00005", "pri_00001",
    ]


def test_axiom_ids_are_deterministic():
    result = compress_with_cascade([principle(7, 3)], min_axiom_target=1)
    assert result.axioms[0].id == "ax_00007"


def test_cognitive_load_cap_prunes_weakest():
    principles = [principle(i, 10 - i) for i in range(1, 6)]   # N = 9, 8, 7, 6, 5
    result = compress_with_cascade(principles, cognitive_load_cap=3)
    assert [a.n_count for a in result.axioms] == [9, 8, 7]
    assert [a.n_count for a in result.pruned] == [6, 5]


def test_custom_cascade_and_tier_boundaries():
    principles = [principle(1, 4), principle(2, 4)]
    result = compress_with_cascade(
        principles, cascade_thresholds=(4, 1), min_axiom_target=2, core_min_n=4, domain_min_n=2,
    )
    assert result.effective_threshold == 4
    assert all(a.tier is AxiomTier.CORE for a in result.axioms)


def test_empty_cascade_uses_defaults():
    result = compress_with_cascade([principle(1, 3)], cascade_thresholds=())
    assert result.axiom_count_by_threshold == {3: 1, 2: 1, 1: 1}
