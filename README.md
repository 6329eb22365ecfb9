# keyframe_ba

Building blocks for keyframe-based bundle adjustment: pose and landmark
geometry, ray triangulation, and landmark selection schemes that decide which
landmarks take part in an optimization.

## Installation

```
pip install .
```

Only `numpy` is needed at run time. To run the tests:

```
pip install .[test]
pytest
```

## Contents

- `keyframe_ba.geometry`
  - `Plane`: a normal `direction` (default `(0, 0, 1)`) and a `distance`.
    The default distance is the most negative float, which marks the plane as
    unused.
  - `Landmark`: `pos`, `has_measured_depth`, `is_ground_plane` and `weight`.
    The `position` property returns `pos` as a numpy vector.
  - `pose_to_matrix(pose)`: turns a pose `(qw, qx, qy, qz, tx, ty, tz)` into
    a 4x4 homogeneous matrix.
  - `reproject(transform, intrinsics, point)`: transforms a 3D point, projects
    it with a 3x3 intrinsic matrix and returns pixel coordinates.
- `keyframe_ba.triangulator.Triangulator`
  - `triangulate_rays(poses_rays)`: least-squares point closest to rays given
    as `(pose, ray)` pairs. Each pose maps camera coordinates into the common
    frame. At least two rays are needed, otherwise `ValueError` is raised.
  - `process_track(track, poses)`: triangulates one track of `(ray, pose_id)`
    pairs, looking up each pose in `poses`.
  - `process(tracklets, poses)`: triangulates every track with more than one
    observation and returns a dict from landmark id to point.
- `keyframe_ba.landmark_helpers`: `calc_flow`, `calc_mean_flow2`,
  `choose_near_landmark_ids` (highest flow first),
  `choose_middle_landmark_ids` (random, with an optional `random.Random`),
  `choose_far_landmark_ids` (seen in the most keyframes first),
  `get_sorted_keyframes` (active keyframes, newest first) and
  `get_measurement_from_kf`.
- `keyframe_ba.cheirality.CheiralityRejectionScheme`: keeps only the
  landmarks that are in front of every camera of every active keyframe.
- `keyframe_ba.random_scheme.RandomSparsificationScheme(num_landmarks, rng=None)`:
  keeps a random subset of at most `num_landmarks` ids.
- `keyframe_ba.voxel`: `VoxelSparsificationScheme(params=None, rng=None)`
  with `VoxelParameters`. The scheme moves the landmarks into the frame of the
  newest keyframe and drops those with z outside [-20, 100]. Points farther
  than `roi_far_xyz[0]` from the keyframe path are far field. The rest is
  thinned on a voxel grid of `voxel_size_xyz`, and `roi_middle_xyz[0]` then
  splits it into near and middle field. At most `max_num_landmarks_near`,
  `max_num_landmarks_middle` and `max_num_landmarks_far` ids are kept from
  each field. `get_categorized_selection` maps each kept id to a `Category`
  (`NEAR_FIELD`, `MIDDLE_FIELD`, `FAR_FIELD`).

Every selection scheme has a `get_selection(landmarks, keyframes)` method.
It takes a mapping from landmark id to landmark and a mapping from keyframe
id to keyframe, and returns the set of landmark ids that were kept. Timing
and count messages are written at debug level through the `logging` module.

## Keyframes

The package has no keyframe class of its own. The helpers and schemes accept
any object that has the members they use:

- `timestamp` (nanoseconds), `is_active`, `cameras` (camera id to camera),
  `has_measurement(landmark_id, camera_id=None)` and
  `get_measurements(landmark_id)` (camera id to measurement). These are used
  by `landmark_helpers` and the voxel scheme. A measurement is an object with
  `u` and `v` attributes, or a sequence that starts with the image
  coordinates.
- `get_projected_landmark_position(landmark_id, landmark)`, which returns a
  mapping from camera id to the landmark's position in that camera. This is
  used by `CheiralityRejectionScheme`.
- `pose_matrix`, a 4x4 transform from the origin into the keyframe. This is
  used by `VoxelSparsificationScheme`.

## Example

```python
import numpy as np
from keyframe_ba.triangulator import Triangulator

point = np.array([1.0, 1.0, 3.0])
pose0 = np.eye(4)
pose1 = np.eye(4)
pose1[:3, 3] = [1.0, -1.0, 0.0]

ray0 = point / np.linalg.norm(point)
ray1 = point - pose1[:3, 3]
ray1 /= np.linalg.norm(ray1)

estimate = Triangulator().triangulate_rays([(pose0, ray0), (pose1, ray1)])
assert np.allclose(estimate, point, atol=1e-5)
```

## What this package does not do

The package does not run the optimization itself. There is no solver, no
keyframe storage and no keyframe selection, and no scheme combines several
selection schemes. It gives you triangulation, geometry helpers and landmark
selection, for use inside your own bundle-adjustment loop.