"""The map: the set of keyframes and map points built so far."""

from __future__ import annotations

import threading
from typing import Any, Iterable


class Map:
    """Thread-safe container of keyframes and map points."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._map_points: dict[Any, None] = {}
        self._keyframes: dict[Any, None] = {}
        self._reference_map_points: list[Any] = []
        self._max_kf_id = 0
        self._big_change_idx = 0
        self.keyframe_origins: list[Any] = []
        self.map_update_lock = threading.RLock()
        # Keeps points created in separate threads from getting clashing ids.
        self.point_creation_lock = threading.Lock()

    def add_keyframe(self, kf: Any) -> None:
        with self._lock:
            self._keyframes[kf] = None
            if kf.id > self._max_kf_id:
                self._max_kf_id = kf.id

    def add_map_point(self, mp: Any) -> None:
        with self._lock:
            self._map_points[mp] = None

    def erase_map_point(self, mp: Any) -> None:
        with self._lock:
            self._map_points.pop(mp, None)

    def erase_keyframe(self, kf: Any) -> None:
        with self._lock:
            self._keyframes.pop(kf, None)

    def set_reference_map_points(self, points: Iterable[Any]) -> None:
        with self._lock:
            self._reference_map_points = list(points)

    def inform_new_big_change(self) -> None:
        """Record a large change such as a loop closure or global adjustment."""
        with self._lock:
            self._big_change_idx += 1

    def get_last_big_change_idx(self) -> int:
        with self._lock:
            return self._big_change_idx

    def get_all_keyframes(self) -> list[Any]:
        with self._lock:
            return list(self._keyframes)

    def get_all_map_points(self) -> list[Any]:
        with self._lock:
            return list(self._map_points)

    def get_reference_map_points(self) -> list[Any]:
        with self._lock:
            return list(self._reference_map_points)

    def map_points_in_map(self) -> int:
        with self._lock:
            return len(self._map_points)

    def keyframes_in_map(self) -> int:
        with self._lock:
            return len(self._keyframes)

    def get_max_kf_id(self) -> int:
        with self._lock:
            return self._max_kf_id

    def clear(self) -> None:
        """Drop every keyframe and map point; the big-change counter is kept."""
        with self._lock:
            self._map_points.clear()
            self._keyframes.clear()
            self._max_kf_id = 0
            self._reference_map_points = []
            self.keyframe_origins.clear()