import math

import numpy as np
import pytest

from covislam.frame import (
    FRAME_GRID_COLS,
    FRAME_GRID_ROWS,
    Frame,
    ImageBounds,
    KeyPoint,
    features_in_area,
)

BOUNDS = ImageBounds(0.0, 640.0, 0.0, 480.0)
W_INV = FRAME_GRID_COLS / (BOUNDS.max_x - BOUNDS.min_x)
H_INV = FRAME_GRID_ROWS / (BOUNDS.max_y - BOUNDS.min_y)


def _grid_for(keys):
    grid = [[[] for _ in range(FRAME_GRID_ROWS)] for _ in range(FRAME_GRID_COLS)]
    for idx, kp in enumerate(keys):
        cx = int((kp.x - BOUNDS.min_x) * W_INV)
        cy = int((kp.y - BOUNDS.min_y) * H_INV)
        grid[cx][cy].append(idx)
    return grid


def _rotation_z(angle):
    c, s = math.cos(angle), math.sin(angle)
    return np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]])


def _pose(rot, t):
    pose = np.eye(4)
    pose[:3, :3] = rot
    pose[:3, 3] = t
    return pose


def test_image_bounds_edges():
    assert BOUNDS.contains(0.0, 0.0)
    assert not BOUNDS.contains(640.0, 10.0)
    assert not BOUNDS.contains(10.0, 480.0)
    assert not BOUNDS.contains(-0.1, 10.0)


def test_frame_is_in_image_uses_bounds():
    frame = Frame(bounds=BOUNDS)
    assert frame.is_in_image(639.9, 479.9)
    assert not frame.is_in_image(640.0, 0.0)


def test_identity_rotation_center_is_negated_translation():
    t = np.array([1.0, -2.0, 3.0])
    frame = Frame()
    frame.set_pose(_pose(np.eye(3), t))
    assert np.allclose(frame.get_camera_center(), -t)


def test_pose_center_maps_to_camera_origin():
    rot = _rotation_z(0.7)
    t = np.array([0.5, 1.5, -2.0])
    frame = Frame()
    frame.set_pose(_pose(rot, t))
    center = frame.get_camera_center()
    assert np.allclose(rot @ center + t, np.zeros(3))
    assert np.allclose(frame.get_rotation_inverse() @ rot, np.eye(3))


def test_pose_in_constructor_is_applied():
    t = np.array([4.0, 0.0, 0.0])
    frame = Frame(tcw=_pose(np.eye(3), t))
    assert np.allclose(frame.get_camera_center(), -t)


def test_camera_center_is_a_copy():
    frame = Frame()
    frame.set_pose(_pose(np.eye(3), np.array([1.0, 1.0, 1.0])))
    c = frame.get_camera_center()
    c[:] = 100.0
    assert np.allclose(frame.get_camera_center(), [-1.0, -1.0, -1.0])


def test_set_pose_copies_input():
    pose = _pose(np.eye(3), np.array([1.0, 0.0, 0.0]))
    frame = Frame()
    frame.set_pose(pose)
    pose[0, 3] = 50.0
    assert np.allclose(frame.get_camera_center(), [-1.0, 0.0, 0.0])


def test_pose_missing_raises():
    frame = Frame()
    with pytest.raises(ValueError):
        frame.get_camera_center()
    with pytest.raises(ValueError):
        frame.get_rotation_inverse()


def test_bad_pose_shape_raises():
    with pytest.raises(ValueError):
        Frame().set_pose(np.eye(3))


def test_intrinsics_follow_calibration():
    K = np.array([[500.0, 0.0, 320.0], [0.0, 400.0, 240.0], [0.0, 0.0, 1.0]])
    frame = Frame(K=K)
    assert frame.fx == 500.0
    assert frame.cy == 240.0
    assert frame.invfy == pytest.approx(1.0 / 400.0)


def test_features_in_area_strict_window():
    keys = [
        KeyPoint(100.0, 100.0),
        KeyPoint(104.0, 100.0),
        KeyPoint(105.0, 100.0),
        KeyPoint(300.0, 300.0),
    ]
    grid = _grid_for(keys)
    found = features_in_area(grid, keys, BOUNDS, W_INV, H_INV, 100.0, 100.0, 5.0)
    assert sorted(found) == [0, 1]


def test_features_in_area_all_returned_are_within_radius():
    rng = np.random.default_rng(3)
    keys = [KeyPoint(float(x), float(y)) for x, y in rng.uniform([0, 0], [640, 480], (200, 2))]
    grid = _grid_for(keys)
    x, y, r = 320.0, 240.0, 40.0
    found = set(features_in_area(grid, keys, BOUNDS, W_INV, H_INV, x, y, r))
    expected = {i for i, kp in enumerate(keys) if abs(kp.x - x) < r and abs(kp.y - y) < r}
    assert found == expected


def test_features_in_area_outside_grid_is_empty():
    keys = [KeyPoint(10.0, 10.0)]
    grid = _grid_for(keys)
    assert features_in_area(grid, keys, BOUNDS, W_INV, H_INV, 5000.0, 10.0, 5.0) == []
    assert features_in_area(grid, keys, BOUNDS, W_INV, H_INV, -5000.0, 10.0, 5.0) == []
    assert features_in_area(grid, keys, BOUNDS, W_INV, H_INV, 10.0, 5000.0, 5.0) == []


def test_frame_keypoint_count():
    frame = Frame(keys=[KeyPoint(1.0, 2.0), KeyPoint(3.0, 4.0, octave=2)])
    assert frame.n == 2
    assert frame.keys[1].octave == 2