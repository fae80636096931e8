"""Two-view geometry helpers: skew matrices, pose inversion, fundamental matrix, triangulation."""

from __future__ import annotations

from typing import Any

import numpy as np


def skew_symmetric(v: Any) -> np.ndarray:
    """The 3x3 matrix [v]x such that [v]x @ w equals the cross product v x w."""
    x, y, z = np.asarray(v, dtype=float).reshape(3)
    return np.array(
        [
            [0.0, -z, y],
            [z, 0.0, -x],
            [-y, x, 0.0],
        ]
    )


def invert_pose(tcw: Any) -> np.ndarray:
    """Invert a rigid world-to-camera pose, giving the 4x4 camera-to-world pose."""
    pose = np.asarray(tcw, dtype=float)
    if pose.shape not in ((4, 4), (3, 4)):
        raise ValueError("pose must be a 4x4 or 3x4 matrix")
    rcw = pose[:3, :3]
    t = pose[:3, 3]
    rwc = rcw.T
    twc = np.eye(4)
    twc[:3, :3] = rwc
    twc[:3, 3] = -rwc @ t
    return twc


def compute_f12(kf1: Any, kf2: Any) -> np.ndarray:
    """Fundamental matrix F12 such that p1^T F12 p2 = 0 for matching pixels.

    Each keyframe must provide get_rotation(), get_translation() and a
    calibration matrix K.
    """
    r1w = np.asarray(kf1.get_rotation(), dtype=float)
    t1w = np.asarray(kf1.get_translation(), dtype=float).reshape(3)
    r2w = np.asarray(kf2.get_rotation(), dtype=float)
    t2w = np.asarray(kf2.get_translation(), dtype=float).reshape(3)

    r12 = r1w @ r2w.T
    t12 = -r1w @ r2w.T @ t2w + t1w
    t12x = skew_symmetric(t12)

    k1 = np.asarray(kf1.K, dtype=float)
    k2 = np.asarray(kf2.K, dtype=float)
    return np.linalg.inv(k1).T @ t12x @ r12 @ np.linalg.inv(k2)


def _projection(tcw: Any) -> np.ndarray:
    pose = np.asarray(tcw, dtype=float)
    if pose.shape not in ((4, 4), (3, 4)):
        raise ValueError("pose must be a 4x4 or 3x4 matrix")
    return pose[:3, :4]


def triangulate_linear(xn1: Any, xn2: Any, tcw1: Any, tcw2: Any) -> np.ndarray | None:
    """Triangulate a point seen at normalised coordinates xn1 and xn2 by the linear method.

    Returns the Euclidean 3D point, or None when the solution lies at infinity.
    """
    p1 = _projection(tcw1)
    p2 = _projection(tcw2)
    a1 = np.asarray(xn1, dtype=float).reshape(-1)
    a2 = np.asarray(xn2, dtype=float).reshape(-1)
    if a1.size < 2 or a2.size < 2:
        raise ValueError("normalised coordinates need at least two components")

    a = np.vstack(
        [
            a1[0] * p1[2] - p1[0],
            a1[1] * p1[2] - p1[1],
            a2[0] * p2[2] - p2[0],
            a2[1] * p2[2] - p2[1],
        ]
    )
    _, _, vt = np.linalg.svd(a)
    x = vt[3]
    if x[3] == 0:
        return None
    return x[:3] / x[3]