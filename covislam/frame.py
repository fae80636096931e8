"""Camera frames, keypoints and grid-based feature lookup."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Sequence

import numpy as np

FRAME_GRID_ROWS = 48
FRAME_GRID_COLS = 64


@dataclass(frozen=True)
class KeyPoint:
    """An image keypoint: position, pyramid level and orientation."""

    x: float
    y: float
    octave: int = 0
    angle: float = -1.0


@dataclass(frozen=True)
class ImageBounds:
    """Bounds of the undistorted image."""

    min_x: float
    max_x: float
    min_y: float
    max_y: float

    def contains(self, x: float, y: float) -> bool:
        """True when (x, y) lies inside; minimum inclusive, maximum exclusive."""
        return self.min_x <= x < self.max_x and self.min_y <= y < self.max_y


def _empty_grid() -> list[list[list[int]]]:
    return [[[] for _ in range(FRAME_GRID_ROWS)] for _ in range(FRAME_GRID_COLS)]


def features_in_area(
    grid: Sequence[Sequence[Sequence[int]]],
    keys_un: Sequence[KeyPoint],
    bounds: ImageBounds,
    grid_width_inv: float,
    grid_height_inv: float,
    x: float,
    y: float,
    r: float,
) -> list[int]:
    """Indices of keypoints strictly within a square window of half-size r around (x, y).

    The grid is indexed as grid[column][row] and holds keypoint indices.
    """
    n_cols = len(grid)
    n_rows = len(grid[0]) if n_cols else 0

    min_cell_x = max(0, int(math.floor((x - bounds.min_x - r) * grid_width_inv)))
    if min_cell_x >= n_cols:
        return []
    max_cell_x = min(n_cols - 1, int(math.ceil((x - bounds.min_x + r) * grid_width_inv)))
    if max_cell_x < 0:
        return []
    min_cell_y = max(0, int(math.floor((y - bounds.min_y - r) * grid_height_inv)))
    if min_cell_y >= n_rows:
        return []
    max_cell_y = min(n_rows - 1, int(math.ceil((y - bounds.min_y + r) * grid_height_inv)))
    if max_cell_y < 0:
        return []

    found: list[int] = []
    for column in grid[min_cell_x : max_cell_x + 1]:
        for cell in column[min_cell_y : max_cell_y + 1]:
            for idx in cell:
                kp = keys_un[idx]
                if abs(kp.x - x) < r and abs(kp.y - y) < r:
                    found.append(idx)
    return found


@dataclass(eq=False)
class Frame:
    """A processed camera image with its features, calibration and pose."""

    id: int = 0
    timestamp: float = 0.0
    keys: list[KeyPoint] = field(default_factory=list)
    keys_un: list[KeyPoint] = field(default_factory=list)
    keys_right: list[KeyPoint] = field(default_factory=list)
    u_right: list[float] = field(default_factory=list)
    depth: list[float] = field(default_factory=list)
    descriptors: np.ndarray = field(default_factory=lambda: np.zeros((0, 32), dtype=np.uint8))
    descriptors_right: np.ndarray = field(
        default_factory=lambda: np.zeros((0, 32), dtype=np.uint8)
    )
    map_points: list[Any] = field(default_factory=list)
    outliers: list[bool] = field(default_factory=list)
    K: np.ndarray = field(default_factory=lambda: np.eye(3))
    dist_coef: np.ndarray = field(default_factory=lambda: np.zeros(4))
    bf: float = 0.0
    b: float = 0.0
    th_depth: float = 0.0
    bow_vec: dict[int, float] = field(default_factory=dict)
    feat_vec: dict[int, list[int]] = field(default_factory=dict)
    scale_levels: int = 1
    scale_factor: float = 1.0
    log_scale_factor: float = 0.0
    scale_factors: list[float] = field(default_factory=lambda: [1.0])
    inv_scale_factors: list[float] = field(default_factory=lambda: [1.0])
    level_sigma2: list[float] = field(default_factory=lambda: [1.0])
    inv_level_sigma2: list[float] = field(default_factory=lambda: [1.0])
    bounds: ImageBounds = field(default_factory=lambda: ImageBounds(0.0, 0.0, 0.0, 0.0))
    grid_element_width_inv: float = 0.0
    grid_element_height_inv: float = 0.0
    grid: list[list[list[int]]] = field(default_factory=_empty_grid)
    tcw: np.ndarray | None = None
    reference_kf: Any = None
    vocabulary: Any = None

    _rcw: np.ndarray | None = field(default=None, init=False, repr=False)
    _tcw_t: np.ndarray | None = field(default=None, init=False, repr=False)
    _rwc: np.ndarray | None = field(default=None, init=False, repr=False)
    _ow: np.ndarray | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.tcw is not None:
            self.set_pose(self.tcw)

    @property
    def n(self) -> int:
        """Number of keypoints."""
        return len(self.keys)

    @property
    def fx(self) -> float:
        return float(self.K[0, 0])

    @property
    def fy(self) -> float:
        return float(self.K[1, 1])

    @property
    def cx(self) -> float:
        return float(self.K[0, 2])

    @property
    def cy(self) -> float:
        return float(self.K[1, 2])

    @property
    def invfx(self) -> float:
        return 1.0 / self.fx

    @property
    def invfy(self) -> float:
        return 1.0 / self.fy

    def set_pose(self, tcw: np.ndarray) -> None:
        """Set the world-to-camera pose and derive rotation, translation and centre."""
        pose = np.array(tcw, dtype=float)
        if pose.shape != (4, 4):
            raise ValueError("pose must be a 4x4 matrix")
        self.tcw = pose
        self._rcw = pose[:3, :3].copy()
        self._tcw_t = pose[:3, 3].copy()
        self._rwc = self._rcw.T.copy()
        self._ow = -self._rwc @ self._tcw_t

    def _require_pose(self) -> None:
        if self._ow is None:
            raise ValueError("frame pose has not been set")

    def get_camera_center(self) -> np.ndarray:
        """Camera centre in world coordinates."""
        self._require_pose()
        return self._ow.copy()

    def get_rotation_inverse(self) -> np.ndarray:
        """Camera-to-world rotation."""
        self._require_pose()
        return self._rwc.copy()

    def is_in_image(self, x: float, y: float) -> bool:
        """True when (x, y) lies within the undistorted image bounds."""
        return self.bounds.contains(x, y)