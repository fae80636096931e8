"""Covisibility consistency check for loop candidates."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Sequence

# Consecutive consistent detections needed to accept a loop candidate.
COVISIBILITY_CONSISTENCY_THRESHOLD = 3


@dataclass(frozen=True)
class ConsistentGroup:
    """A candidate with its covisible keyframes, and how many detections in a row it held."""

    keyframes: frozenset[Any]
    consistency: int


def check_consistency(
    candidates: Iterable[Any],
    previous_groups: Sequence[ConsistentGroup],
    threshold: int,
) -> tuple[list[ConsistentGroup], list[Any]]:
    """Match loop candidates against the groups from the previous detection.

    Each candidate forms a group from itself and its connected keyframes. A
    group continues a previous group when they share a keyframe; its counter is
    then one more than the previous one. Each previous group is continued at
    most once. Returns the new groups and the candidates whose counter reached
    the threshold, each listed once.
    """
    current_groups: list[ConsistentGroup] = []
    enough_consistent: list[Any] = []
    continued = [False] * len(previous_groups)

    for candidate in candidates:
        group = frozenset(candidate.get_connected_keyframes()) | {candidate}

        enough = False
        consistent_for_some = False
        for pos, previous in enumerate(previous_groups):
            if group.isdisjoint(previous.keyframes):
                continue
            consistent_for_some = True
            consistency = previous.consistency + 1
            if not continued[pos]:
                current_groups.append(ConsistentGroup(group, consistency))
                continued[pos] = True
            if consistency >= threshold and not enough:
                enough_consistent.append(candidate)
                enough = True

        if not consistent_for_some:
            current_groups.append(ConsistentGroup(group, 0))

    return current_groups, enough_consistent