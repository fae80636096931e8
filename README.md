# covislam

Bookkeeping for feature-based visual SLAM: camera frames and grid-based
keypoint lookup, the map of keyframes and map points, map points with their
observations and representative descriptors, a bag-of-words keyframe database
for loop and relocalization queries, two-view geometry helpers, culling rules,
and the loop-detection step with its covisibility consistency check.

The package does no image processing. You supply frames with keypoints,
descriptors, depths and a camera pose; the package keeps the map built from
them.

## Installation

```
pip install covislam
```

The only dependency is numpy.

## Modules

- `covislam.frame`
  - `KeyPoint(x, y, octave=0, angle=-1.0)`: an image keypoint.
  - `ImageBounds(min_x, max_x, min_y, max_y)` with `contains(x, y)`
    (minimum inclusive, maximum exclusive).
  - `Frame`: a dataclass holding keypoints, descriptors, calibration `K`,
    stereo values, scale pyramid data, a 64 x 48 keypoint grid and the pose.
    Methods: `set_pose(tcw)` (4x4 only, otherwise `ValueError`),
    `get_camera_center()`, `get_rotation_inverse()` (both raise `ValueError`
    before a pose is set) and `is_in_image(x, y)`. Properties `n`, `fx`,
    `fy`, `cx`, `cy`, `invfx`, `invfy` come from `K`.
  - `features_in_area(grid, keys_un, bounds, grid_width_inv, grid_height_inv, x, y, r)`:
    indices of keypoints strictly inside the square of half-size `r`
    around `(x, y)`.
- `covislam.map`
  - `Map`: a thread-safe set of keyframes and map points.
    `add_keyframe`, `add_map_point`, `erase_keyframe`, `erase_map_point`,
    `set_reference_map_points`, `get_reference_map_points`,
    `get_all_keyframes`, `get_all_map_points`, `keyframes_in_map`,
    `map_points_in_map`, `get_max_kf_id`, `inform_new_big_change`,
    `get_last_big_change_idx` and `clear` (which keeps the big-change
    counter). Keyframes added to it need an `id` attribute.
- `covislam.mappoint`
  - `descriptor_distance(a, b)`: Hamming distance between byte descriptors;
    `ValueError` if their lengths differ.
  - `MapPoint(pos, ref_kf, map)` or `MapPoint.from_frame(pos, map, frame, idx)`.
    Observations (`add_observation`, `erase_observation`,
    `get_observations`, `observations`, where stereo observations count
    twice), the bad flag, `replace`, visibility counters, `get_found_ratio`,
    `compute_distinctive_descriptors` (keeps the descriptor with the least
    median distance to the others), `update_normal_and_depth`, the
    distance-invariance bounds and `predict_scale(current_dist, frame)`.
    A point whose observation count drops to two or fewer is marked bad.
- `covislam.geometry`
  - `skew_symmetric(v)`, `invert_pose(tcw)`, `compute_f12(kf1, kf2)`
    (keyframes need `get_rotation()`, `get_translation()` and `K`) and
    `triangulate_linear(xn1, xn2, tcw1, tcw2)`, which returns `None` for a
    point at infinity.
- `covislam.keyframe_database`
  - `KeyFrameDatabase(vocabulary)`: an inverted file over visual words.
    The vocabulary needs `len()` and `score(bow_a, bow_b)`. Methods `add`,
    `erase`, `clear`, `detect_loop_candidates(kf, min_score)` and
    `detect_relocalization_candidates(frame)`. A word outside the vocabulary
    raises `IndexError`.
- `covislam.culling`
  - `cull_recent_map_points(recent_points, current_kf_id, monocular)`:
    marks failing points bad and returns those still on probation.
  - `is_redundant_keyframe(kf, monocular)`: true when more than 90% of the
    points a keyframe sees are seen by at least three other keyframes at the
    same or a finer scale.
- `covislam.loop_consistency`
  - `ConsistentGroup(keyframes, consistency)` and
    `check_consistency(candidates, previous_groups, threshold)`, which
    returns the new groups and the candidates that reached the threshold.
    `COVISIBILITY_CONSISTENCY_THRESHOLD` is 3.
- `covislam.loop_closing`
  - `LoopClosing(map, keyframe_db, vocabulary, fix_scale)`: the keyframe
    queue (`insert_keyframe`, which never queues keyframe 0,
    `check_new_keyframes`, `keyframes_in_queue`), `detect_loop()` (raises
    `IndexError` on an empty queue), the reset handshake
    (`request_reset` blocks until `reset_if_requested` runs on another
    thread), the finish flags, and `is_running_gba` / `is_finished_gba`.

## Example

```python
import numpy as np

from covislam.frame import Frame, ImageBounds, KeyPoint
from covislam.geometry import skew_symmetric
from covislam.map import Map
from covislam.mappoint import MapPoint, descriptor_distance

frame = Frame(
    id=0,
    keys=[KeyPoint(320.0, 240.0)],
    keys_un=[KeyPoint(320.0, 240.0)],
    descriptors=np.zeros((1, 32), dtype=np.uint8),
    K=np.array([[500.0, 0.0, 320.0], [0.0, 500.0, 240.0], [0.0, 0.0, 1.0]]),
    bounds=ImageBounds(0.0, 640.0, 0.0, 480.0),
    tcw=np.eye(4),
)

world = Map()
point = MapPoint.from_frame(np.array([0.0, 0.0, 5.0]), world, frame, 0)
world.add_map_point(point)

print(world.map_points_in_map())              # 1
print(point.get_normal())                     # [0. 0. 1.]
print(point.get_max_distance_invariance())    # 6.0
print(frame.is_in_image(100.0, 100.0))        # True

print(skew_symmetric([1, 2, 3]) @ np.array([4.0, 5.0, 6.0]))   # [-3.  6. -3.]
print(descriptor_distance(b"\x0f", b"\x00"))  # 4
```

## What the package does not do

- It has no keyframe class of its own. The functions and classes that work
  with keyframes (`MapPoint`, `KeyFrameDatabase`, `compute_f12`, the culling
  functions and `LoopClosing`) accept any object that offers the attributes
  and methods they use.
- It has no local-mapping worker that takes keyframes from a queue, creates
  new map points and fuses duplicates, and `LoopClosing` computes no
  similarity transform and corrects no loop: `detect_loop` stops at choosing
  consistent candidates.
- It does no bundle adjustment or pose-graph optimisation, extracts no
  features, builds no vocabulary and draws nothing.
- It has no command-line program and stores nothing on disk.

## Running the tests

```
pip install -e .[test]
pytest
```