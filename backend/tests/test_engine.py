import random

import pytest

from wishdraw.draw.engine import assign, find_matching, shuffle
from wishdraw.draw.exclusions import build_adjacency


def _is_derangement(pairs, members) -> bool:
    givers = [giver for giver, _ in pairs]
    receivers = [receiver for _, receiver in pairs]
    return (
        givers == list(members)
        and sorted(receivers) == sorted(members)
        and all(giver != receiver for giver, receiver in pairs)
    )


def test_three_members_get_one_of_two_cycles():
    valid = {
        (("A", "B"), ("B", "C"), ("C", "A")),
        (("A", "C"), ("B", "A"), ("C", "B")),
    }
    for seed in range(50):
        pairs = assign(["A", "B", "C"], build_adjacency([]), rng=random.Random(seed))
        assert tuple(pairs) in valid


def test_exclusion_is_respected_in_both_directions():
    adjacency = build_adjacency([("A", "B")])
    rng = random.Random(7)
    for _ in range(500):
        pairs = assign(["A", "B", "C", "D"], adjacency, rng=rng)
        assert pairs is not None
        assert ("A", "B") not in pairs
        assert ("B", "A") not in pairs


def test_fully_excluded_triangle_is_infeasible():
    adjacency = build_adjacency([("A", "B"), ("B", "C"), ("A", "C")])
    assert assign(["A", "B", "C"], adjacency, max_attempts=50, rng=random.Random(1)) is None


def test_result_is_a_bijection_without_self_assignment():
    members = list(range(1, 21))
    adjacency = build_adjacency([(1, 2), (3, 4), (5, 6), (7, 8)])
    pairs = assign(members, adjacency, rng=random.Random(42))
    assert pairs is not None
    assert _is_derangement(pairs, members)
    for giver, receiver in pairs:
        assert not adjacency.excludes(giver, receiver)


def test_same_seed_gives_same_assignment():
    members = [10, 20, 30, 40, 50]
    adjacency = build_adjacency([(10, 20)])
    first = assign(members, adjacency, rng=random.Random(2024))
    second = assign(members, adjacency, rng=random.Random(2024))
    assert first == second


def test_input_members_are_not_mutated():
    members = [3, 1, 2]
    assign(members, build_adjacency([]), rng=random.Random(0))
    assert members == [3, 1, 2]


@pytest.mark.parametrize(
    "members, kwargs",
    [
        (["A", "B"], {}),
        ([], {}),
        (["A", "A", "B"], {}),
        (["A", "B", "C"], {"max_attempts": 0}),
    ],
)
def test_invalid_input_raises(members, kwargs):
    with pytest.raises(ValueError):
        assign(members, build_adjacency([]), **kwargs)


def test_shuffle_keeps_elements():
    items = list(range(30))
    shuffle(items, random.Random(3))
    assert sorted(items) == list(range(30))


class _NeverShuffles(random.Random):
    def randrange(self, *args, **kwargs):
        # j == i leaves every position untouched, so every sample is the identity
        return args[0] - 1


def test_sampler_can_miss_a_feasible_assignment():
    rng = _NeverShuffles()
    assert assign(["A", "B", "C", "D"], build_adjacency([]), max_attempts=10, rng=rng) is None


def test_exhaustive_fallback_finds_what_sampling_missed():
    rng = _NeverShuffles()
    members = ["A", "B", "C", "D"]
    pairs = assign(members, build_adjacency([]), max_attempts=10, rng=rng, exhaustive_fallback=True)
    assert pairs is not None
    assert _is_derangement(pairs, members)


def test_exhaustive_fallback_still_reports_infeasible():
    adjacency = build_adjacency([("A", "B"), ("B", "C"), ("A", "C")])
    assert assign(["A", "B", "C"], adjacency, max_attempts=5, exhaustive_fallback=True) is None


def test_find_matching_dense_but_feasible():
    # Everyone but E is blocked from D; only E can give to D.
    members = ["A", "B", "C", "D", "E"]
    adjacency = build_adjacency([("A", "D"), ("B", "D"), ("C", "D")])
    pairs = find_matching(members, adjacency, random.Random(5))
    assert pairs is not None
    assert _is_derangement(pairs, members)
    assert dict(pairs)["E"] == "D"
    assert dict(pairs)["D"] == "E"


def test_find_matching_rejects_unreachable_receiver():
    members = ["A", "B", "C", "D"]
    adjacency = build_adjacency([("A", "D"), ("B", "D"), ("C", "D")])
    assert find_matching(members, adjacency, random.Random(0)) is None
