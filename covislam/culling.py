"""Culling rules for recently created map points and redundant keyframes."""

from __future__ import annotations

from typing import Any, Iterable

# Points found in fewer than this fraction of the frames where they were visible are dropped.
_MIN_FOUND_RATIO = 0.25
# Observations by other keyframes needed to call a point redundant.
_REDUNDANT_OBSERVATIONS = 3
# Fraction of redundant points that makes a keyframe redundant.
_REDUNDANT_FRACTION = 0.9


def cull_recent_map_points(
    recent_points: Iterable[Any], current_kf_id: int, monocular: bool
) -> list[Any]:
    """Check recently added points; return those still on probation.

    Points that fail a check get their bad flag set. Points old enough to have
    passed are dropped from the list but kept in the map.
    """
    th_obs = 2 if monocular else 3
    kept: list[Any] = []
    for mp in recent_points:
        age = current_kf_id - mp.first_kf_id
        if mp.is_bad():
            continue
        if mp.get_found_ratio() < _MIN_FOUND_RATIO:
            mp.set_bad_flag()
            continue
        if age >= 2 and mp.observations() <= th_obs:
            mp.set_bad_flag()
            continue
        if age >= 3:
            continue
        kept.append(mp)
    return kept


def is_redundant_keyframe(kf: Any, monocular: bool) -> bool:
    """True when 90% of the points kf sees are seen by three other keyframes at the same or finer scale.

    Outside the monocular case only close stereo points are considered. The
    first keyframe is never redundant.
    """
    if kf.id == 0:
        return False

    n_redundant = 0
    n_points = 0
    for i, mp in enumerate(kf.get_map_point_matches()):
        if mp is None or mp.is_bad():
            continue
        if not monocular and (kf.depth[i] > kf.th_depth or kf.depth[i] < 0):
            continue
        n_points += 1
        if mp.observations() <= _REDUNDANT_OBSERVATIONS:
            continue
        scale_level = kf.keys_un[i].octave
        n_obs = 0
        for other, idx in mp.get_observations().items():
            if other is kf:
                continue
            if other.keys_un[idx].octave <= scale_level + 1:
                n_obs += 1
                if n_obs >= _REDUNDANT_OBSERVATIONS:
                    break
        if n_obs >= _REDUNDANT_OBSERVATIONS:
            n_redundant += 1

    return n_redundant > _REDUNDANT_FRACTION * n_points