from collections import defaultdict
from collections.abc import Hashable, Iterable, Mapping
from typing import Protocol


class ExclusionPair(Protocol):
    user_id1: Hashable
    user_id2: Hashable


class SymmetricAdjacency(Mapping):
    """Read-only ``member -> excluded members`` map.

    Missing members map to an empty set, so ``b in adjacency[a]`` is a
    constant-time check for any pair of ids.
    """

    def __init__(self, neighbours: Mapping[Hashable, frozenset] | None = None) -> None:
        self._neighbours: dict[Hashable, frozenset] = dict(neighbours or {})

    def __getitem__(self, member: Hashable) -> frozenset:
        return self._neighbours.get(member, frozenset())

    def __contains__(self, member: object) -> bool:
        return member in self._neighbours

    def __iter__(self):
        return iter(self._neighbours)

    def __len__(self) -> int:
        return len(self._neighbours)

    def excludes(self, giver: Hashable, receiver: Hashable) -> bool:
        return receiver in self[giver]

    def __repr__(self) -> str:
        return f"SymmetricAdjacency({self._neighbours!r})"


def build_adjacency(rules: Iterable[ExclusionPair | tuple[Hashable, Hashable]]) -> SymmetricAdjacency:
    """Build the symmetric exclusion map from stored rules.

    Accepts ORM rows (anything with ``user_id1``/``user_id2``) or plain pairs.
    Each rule is inserted in both directions; duplicates collapse.
    """
    neighbours: dict[Hashable, set] = defaultdict(set)
    for rule in rules:
        if isinstance(rule, tuple):
            first, second = rule
        else:
            first, second = rule.user_id1, rule.user_id2
        neighbours[first].add(second)
        neighbours[second].add(first)
    return SymmetricAdjacency({member: frozenset(others) for member, others in neighbours.items()})
