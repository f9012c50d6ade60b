"""Secret Santa assignment engine.

Pure functions only: the caller supplies members, the exclusion map and the
random source, and gets back ``(giver, receiver)`` pairs or ``None``.
"""
from __future__ import annotations

import random
from collections.abc import Hashable, Mapping, Sequence

DEFAULT_MAX_ATTEMPTS = 1000
MIN_MEMBERS = 3

Pair = tuple[Hashable, Hashable]


def shuffle(items: list, rng: random.Random) -> None:
    """In-place Fisher-Yates shuffle driven by ``rng``."""
    for i in range(len(items) - 1, 0, -1):
        j = rng.randrange(i + 1)
        items[i], items[j] = items[j], items[i]


def _is_valid(
    members: Sequence[Hashable],
    receivers: Sequence[Hashable],
    exclusions: Mapping[Hashable, frozenset],
) -> bool:
    for giver, receiver in zip(members, receivers):
        if giver == receiver:
            return False
        if receiver in exclusions.get(giver, ()):
            return False
    return True


def _allowed_receivers(
    members: Sequence[Hashable],
    exclusions: Mapping[Hashable, frozenset],
) -> dict[Hashable, list[Hashable]]:
    allowed: dict[Hashable, list[Hashable]] = {}
    for giver in members:
        blocked = set(exclusions.get(giver, ()))
        blocked.add(giver)
        allowed[giver] = [m for m in members if m not in blocked]
    return allowed


def find_matching(
    members: Sequence[Hashable],
    exclusions: Mapping[Hashable, frozenset],
    rng: random.Random,
) -> list[Pair] | None:
    """Exhaustive backtracking search, most constrained giver first.

    Returns ``None`` only when no valid derangement exists.
    """
    allowed = _allowed_receivers(members, exclusions)
    # Hall's condition for single givers and single receivers.
    if any(not candidates for candidates in allowed.values()):
        return None
    reachable = {receiver for candidates in allowed.values() for receiver in candidates}
    if len(reachable) < len(members):
        return None

    order = sorted(members, key=lambda giver: len(allowed[giver]))
    used: set[Hashable] = set()
    result: dict[Hashable, Hashable] = {}

    def dfs(i: int) -> bool:
        if i == len(order):
            return True
        giver = order[i]
        candidates = allowed[giver][:]
        shuffle(candidates, rng)
        for receiver in candidates:
            if receiver in used:
                continue
            used.add(receiver)
            result[giver] = receiver
            if dfs(i + 1):
                return True
            used.discard(receiver)
            result.pop(giver, None)
        return False

    if not dfs(0):
        return None
    return [(giver, result[giver]) for giver in members]


def assign(
    members: Sequence[Hashable],
    exclusions: Mapping[Hashable, frozenset],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    rng: random.Random | None = None,
    exhaustive_fallback: bool = False,
) -> list[Pair] | None:
    """Draw a giver -> receiver derangement that respects ``exclusions``.

    Bounded rejection sampling: shuffle the members into a candidate receiver
    list and accept the first shuffle where nobody draws themselves or an
    excluded member. Returns ``None`` once ``max_attempts`` shuffles have all
    been rejected. That is not a proof of infeasibility; a dense exclusion
    graph can hide a valid derangement from the sampler. With
    ``exhaustive_fallback`` a backtracking search settles those cases.

    Args:
        members: Distinct participant ids, at least ``MIN_MEMBERS`` of them.
        exclusions: Symmetric ``id -> excluded ids`` map.
        max_attempts: Number of shuffles to try.
        rng: Random source; pass a seeded ``random.Random`` for reproducible draws.
        exhaustive_fallback: Search exhaustively after sampling gives up.
    """
    if len(members) < MIN_MEMBERS:
        raise ValueError(f"Need at least {MIN_MEMBERS} members, got {len(members)}")
    if len(set(members)) != len(members):
        raise ValueError("Duplicate member ids")
    if max_attempts < 1:
        raise ValueError("max_attempts must be positive")

    rng = rng if rng is not None else random.Random()
    givers = list(members)

    for _ in range(max_attempts):
        receivers = givers[:]
        shuffle(receivers, rng)
        if _is_valid(givers, receivers, exclusions):
            return list(zip(givers, receivers))

    if exhaustive_fallback:
        return find_matching(givers, exclusions, rng)
    return None
