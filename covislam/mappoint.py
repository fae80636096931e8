"""Map points: 3D landmarks observed by keyframes."""

from __future__ import annotations

import math
import threading
from typing import Any

import numpy as np


def descriptor_distance(a: Any, b: Any) -> int:
    """Hamming distance between two binary descriptors stored as bytes."""
    xa = np.asarray(a, dtype=np.uint8).reshape(-1)
    xb = np.asarray(b, dtype=np.uint8).reshape(-1)
    if xa.shape != xb.shape:
        raise ValueError("descriptors must have the same length")
    return int(np.unpackbits(np.bitwise_xor(xa, xb)).sum())


class MapPoint:
    """A 3D point in the map together with the keyframes that observe it."""

    _next_id = 0
    global_lock = threading.Lock()

    def __init__(self, pos: Any, ref_kf: Any, map: Any) -> None:
        self._init_common(pos, map)
        self.first_kf_id = ref_kf.id
        self.first_frame = ref_kf.frame_id
        self._ref_kf = ref_kf
        self._normal = np.zeros(3)
        self._assign_id()

    @classmethod
    def from_frame(cls, pos: Any, map: Any, frame: Any, idx: int) -> "MapPoint":
        """Create a point from a frame observation at keypoint index idx."""
        point = cls.__new__(cls)
        point._init_common(pos, map)
        point.first_kf_id = -1
        point.first_frame = frame.id
        point._ref_kf = None

        ow = np.asarray(frame.get_camera_center(), dtype=float).reshape(3)
        pc = point._world_pos - ow
        dist = float(np.linalg.norm(pc))
        point._normal = pc / dist

        level = frame.keys_un[idx].octave
        point._max_distance = dist * frame.scale_factors[level]
        point._min_distance = point._max_distance / frame.scale_factors[frame.scale_levels - 1]
        point._descriptor = np.array(frame.descriptors[idx], dtype=np.uint8).copy()
        point._assign_id()
        return point

    def _init_common(self, pos: Any, map: Any) -> None:
        self._world_pos = np.array(pos, dtype=float).reshape(3)
        self._map = map
        self._observations: dict[Any, int] = {}
        self._n_obs = 0
        self._descriptor = np.zeros(0, dtype=np.uint8)
        self._visible = 1
        self._found = 1
        self._bad = False
        self._replaced: MapPoint | None = None
        self._min_distance = 0.0
        self._max_distance = 0.0
        self._lock_pos = threading.RLock()
        self._lock_features = threading.RLock()

        # Tracking
        self.track_proj_x = 0.0
        self.track_proj_y = 0.0
        self.track_proj_xr = 0.0
        self.track_in_view = False
        self.track_scale_level = 0
        self.track_view_cos = 0.0
        self.track_reference_for_frame = 0
        self.last_frame_seen = 0
        # Local mapping
        self.ba_local_for_kf = 0
        self.fuse_candidate_for_kf = 0
        # Loop closing
        self.loop_point_for_kf = 0
        self.corrected_by_kf = 0
        self.corrected_reference = 0
        self.pos_gba: np.ndarray | None = None
        self.ba_global_for_kf = 0

    def _assign_id(self) -> None:
        with self._map.point_creation_lock:
            self.id = MapPoint._next_id
            MapPoint._next_id += 1

    def __repr__(self) -> str:
        return f"MapPoint(id={self.id})"

    def set_world_pos(self, pos: Any) -> None:
        with MapPoint.global_lock, self._lock_pos:
            self._world_pos = np.array(pos, dtype=float).reshape(3)

    def get_world_pos(self) -> np.ndarray:
        with self._lock_pos:
            return self._world_pos.copy()

    def get_normal(self) -> np.ndarray:
        with self._lock_pos:
            return self._normal.copy()

    def get_reference_keyframe(self) -> Any:
        with self._lock_features:
            return self._ref_kf

    def get_observations(self) -> dict[Any, int]:
        """Keyframes observing this point mapped to the keypoint index in each."""
        with self._lock_features:
            return dict(self._observations)

    def observations(self) -> int:
        """Observation count; stereo observations count twice."""
        with self._lock_features:
            return self._n_obs

    def add_observation(self, kf: Any, idx: int) -> None:
        with self._lock_features:
            if kf in self._observations:
                return
            self._observations[kf] = idx
            self._n_obs += 2 if kf.u_right[idx] >= 0 else 1

    def erase_observation(self, kf: Any) -> None:
        bad = False
        with self._lock_features:
            if kf in self._observations:
                idx = self._observations.pop(kf)
                self._n_obs -= 2 if kf.u_right[idx] >= 0 else 1
                if self._ref_kf is kf:
                    self._ref_kf = next(iter(self._observations), None)
                # Too few observations left to keep the point.
                bad = self._n_obs <= 2
        if bad:
            self.set_bad_flag()

    def get_index_in_keyframe(self, kf: Any) -> int:
        with self._lock_features:
            return self._observations.get(kf, -1)

    def is_in_keyframe(self, kf: Any) -> bool:
        with self._lock_features:
            return kf in self._observations

    def set_bad_flag(self) -> None:
        with self._lock_features, self._lock_pos:
            self._bad = True
            obs = self._observations
            self._observations = {}
        for kf, idx in obs.items():
            kf.erase_map_point_match(idx)
        self._map.erase_map_point(self)

    def is_bad(self) -> bool:
        with self._lock_features, self._lock_pos:
            return self._bad

    def replace(self, mp: "MapPoint") -> None:
        """Merge this point into mp, handing over its observations and counters."""
        if mp.id == self.id:
            return
        with self._lock_features, self._lock_pos:
            obs = self._observations
            self._observations = {}
            self._bad = True
            n_visible = self._visible
            n_found = self._found
            self._replaced = mp

        for kf, idx in obs.items():
            if not mp.is_in_keyframe(kf):
                kf.replace_map_point_match(idx, mp)
                mp.add_observation(kf, idx)
            else:
                kf.erase_map_point_match(idx)

        mp.increase_found(n_found)
        mp.increase_visible(n_visible)
        mp.compute_distinctive_descriptors()
        self._map.erase_map_point(self)

    def get_replaced(self) -> "MapPoint | None":
        with self._lock_features, self._lock_pos:
            return self._replaced

    def increase_visible(self, n: int = 1) -> None:
        with self._lock_features:
            self._visible += n

    def increase_found(self, n: int = 1) -> None:
        with self._lock_features:
            self._found += n

    def get_found_ratio(self) -> float:
        with self._lock_features:
            return self._found / self._visible

    def get_found(self) -> int:
        with self._lock_features:
            return self._found

    def compute_distinctive_descriptors(self) -> None:
        """Keep the observed descriptor with the least median distance to the others."""
        with self._lock_features:
            if self._bad:
                return
            observations = dict(self._observations)
        if not observations:
            return

        descriptors = [
            np.asarray(kf.descriptors[idx], dtype=np.uint8)
            for kf, idx in observations.items()
            if not kf.is_bad()
        ]
        if not descriptors:
            return

        n = len(descriptors)
        distances = np.zeros((n, n), dtype=int)
        for i in range(n):
            for j in range(i + 1, n):
                d = descriptor_distance(descriptors[i], descriptors[j])
                distances[i, j] = d
                distances[j, i] = d

        median_pos = int(0.5 * (n - 1))
        best_median = math.inf
        best_idx = 0
        for i, row in enumerate(distances):
            median = int(np.sort(row)[median_pos])
            if median < best_median:
                best_median = median
                best_idx = i

        with self._lock_features:
            self._descriptor = descriptors[best_idx].copy()

    def get_descriptor(self) -> np.ndarray:
        with self._lock_features:
            return self._descriptor.copy()

    def update_normal_and_depth(self) -> None:
        """Recompute the mean viewing direction and the scale-invariance distances."""
        with self._lock_features, self._lock_pos:
            if self._bad:
                return
            observations = dict(self._observations)
            ref_kf = self._ref_kf
            pos = self._world_pos.copy()
        if not observations or ref_kf is None:
            return

        normal = np.zeros(3)
        for kf in observations:
            normali = pos - np.asarray(kf.get_camera_center(), dtype=float).reshape(3)
            normal += normali / np.linalg.norm(normali)

        pc = pos - np.asarray(ref_kf.get_camera_center(), dtype=float).reshape(3)
        dist = float(np.linalg.norm(pc))
        level = ref_kf.keys_un[observations.get(ref_kf, 0)].octave
        level_scale_factor = ref_kf.scale_factors[level]
        n_levels = ref_kf.scale_levels

        with self._lock_pos:
            self._max_distance = dist * level_scale_factor
            self._min_distance = self._max_distance / ref_kf.scale_factors[n_levels - 1]
            self._normal = normal / len(observations)

    def get_min_distance_invariance(self) -> float:
        with self._lock_pos:
            return 0.8 * self._min_distance

    def get_max_distance_invariance(self) -> float:
        with self._lock_pos:
            return 1.2 * self._max_distance

    def predict_scale(self, current_dist: float, frame: Any) -> int:
        """Predicted pyramid level at which the point appears from current_dist.

        Works with any frame or keyframe carrying log_scale_factor and scale_levels.
        """
        with self._lock_pos:
            ratio = self._max_distance / current_dist
        n_scale = math.ceil(math.log(ratio) / frame.log_scale_factor)
        if n_scale < 0:
            return 0
        if n_scale >= frame.scale_levels:
            return frame.scale_levels - 1
        return n_scale