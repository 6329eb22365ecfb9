"""Landmark sparsification with a voxel grid, split into near, middle and far field.

Landmarks are moved into the frame of the newest keyframe. Points farther than
``roi_far_xyz[0]`` from the keyframe path are far field; the rest is thinned
out with a voxel grid and then split by ``roi_middle_xyz[0]`` into near and
middle field.

Keyframes are duck-typed. Besides the members used by
:mod:`keyframe_ba.landmark_helpers` they need:

* ``pose_matrix``: 4x4 homogeneous transform from the origin into the keyframe.
"""

from __future__ import annotations

import logging
import random
import time
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from operator import itemgetter
from typing import Any, Hashable, Mapping

import numpy as np

from keyframe_ba.landmark_helpers import (
    calc_flow,
    choose_far_landmark_ids,
    choose_middle_landmark_ids,
    choose_near_landmark_ids,
)

__all__ = ["Category", "VoxelParameters", "VoxelSparsificationScheme"]

_log = logging.getLogger(__name__)

_Z_LIMITS = (-20.0, 100.0)


class Category(Enum):
    """Distance category of a selected landmark."""

    NEAR_FIELD = "near_field"
    MIDDLE_FIELD = "middle_field"
    FAR_FIELD = "far_field"


def _triple(values, name: str) -> tuple[float, float, float]:
    result = tuple(float(v) for v in values)
    if len(result) != 3:
        raise ValueError(f"{name} needs 3 components, got {len(result)}")
    return result  # type: ignore[return-value]


@dataclass
class VoxelParameters:
    """Settings of the voxel sparsification; sizes in meters."""

    voxel_size_xyz: tuple[float, float, float] = (1.0, 1.0, 0.5)
    roi_far_xyz: tuple[float, float, float] = (50.0, 50.0, 50.0)
    roi_middle_xyz: tuple[float, float, float] = (25.0, 25.0, 25.0)
    max_num_landmarks_near: int = 300
    max_num_landmarks_middle: int = 300
    max_num_landmarks_far: int = 300

    def __post_init__(self) -> None:
        self.voxel_size_xyz = _triple(self.voxel_size_xyz, "voxel_size_xyz")
        self.roi_far_xyz = _triple(self.roi_far_xyz, "roi_far_xyz")
        self.roi_middle_xyz = _triple(self.roi_middle_xyz, "roi_middle_xyz")
        if any(v <= 0.0 for v in self.voxel_size_xyz):
            raise ValueError(f"voxel sizes must be positive, got {self.voxel_size_xyz}")
        for name in ("max_num_landmarks_near", "max_num_landmarks_middle", "max_num_landmarks_far"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must not be negative")


def _distance_to_path(point: np.ndarray, path: np.ndarray) -> float:
    if len(path) == 1:
        return float(np.linalg.norm(point - path[0]))
    starts, ends = path[:-1], path[1:]
    seg = ends - starts
    rel = point - starts
    length_sq = np.einsum("ij,ij->i", seg, seg)
    with np.errstate(divide="ignore", invalid="ignore"):
        t = np.where(length_sq > 0.0, np.einsum("ij,ij->i", rel, seg) / length_sq, 0.0)
    t = np.clip(t, 0.0, 1.0)
    closest = starts + t[:, None] * seg
    return float(np.min(np.linalg.norm(point - closest, axis=1)))


def _filter_pipe(points: np.ndarray, labels: np.ndarray, path: np.ndarray, threshold: float):
    """Split points into those closer to the path than threshold and the labels of the rest."""
    keep = np.array(
        [_distance_to_path(p.astype(float), path) < threshold for p in points], dtype=bool
    )
    removed = {int(label) for label in labels[~keep]}
    return points[keep], labels[keep], removed


def _voxelize(points: np.ndarray, labels: np.ndarray, leaf: tuple[float, float, float]):
    """Replace the points of each voxel by their centroid, labelled by the voxel's first point."""
    if len(points) == 0:
        return points, labels
    cells = np.floor(points.astype(float) / np.asarray(leaf)).astype(np.int64)
    groups: dict[tuple, list[int]] = {}
    for row, cell in enumerate(map(tuple, cells)):
        groups.setdefault(cell, []).append(row)
    order = sorted(groups, key=lambda c: (c[2], c[1], c[0]))
    centroids = np.array(
        [points[groups[c]].astype(float).mean(axis=0) for c in order], dtype=np.float32
    )
    new_labels = np.array([labels[groups[c][0]] for c in order], dtype=np.int64)
    return centroids, new_labels


class VoxelSparsificationScheme:
    """Sparsifies landmarks with a voxel grid and sorts them into distance categories."""

    def __init__(self, params: VoxelParameters | None = None, rng: random.Random | None = None) -> None:
        self.params = params if params is not None else VoxelParameters()
        self._rng = rng if rng is not None else random.Random()

    def get_selection(
        self, landmarks: Mapping[Hashable, Any], keyframes: Mapping[Hashable, Any]
    ) -> set:
        """Return the ids of all selected landmarks."""
        return set(self.get_categorized_selection(landmarks, keyframes))

    def get_categorized_selection(
        self, landmarks: Mapping[Hashable, Any], keyframes: Mapping[Hashable, Any]
    ) -> dict:
        """Return the selected landmark ids mapped to their distance category."""
        if not keyframes:
            raise ValueError("voxel selection needs at least one keyframe")
        params = self.params
        ordered_keyframes = [kf for _, kf in sorted(keyframes.items(), key=itemgetter(0))]
        recent = max(ordered_keyframes, key=lambda kf: kf.timestamp)
        cur_pose = np.asarray(recent.pose_matrix, dtype=float)

        start = time.perf_counter()
        items = sorted(landmarks.items(), key=itemgetter(0))
        ids = [lm_id for lm_id, _ in items]
        positions = np.array([np.asarray(lm.pos, dtype=float) for _, lm in items]).reshape(-1, 3)
        points = (positions @ cur_pose[:3, :3].T + cur_pose[:3, 3]).astype(np.float32)
        labels = np.arange(len(ids), dtype=np.int64)
        _log.debug("Size before voxelization = %d", len(ids))

        z = points[:, 2]
        in_range = (z >= _Z_LIMITS[0]) & (z <= _Z_LIMITS[1])
        points, labels = points[in_range], labels[in_range]

        path = np.array(
            [(cur_pose @ np.linalg.inv(np.asarray(kf.pose_matrix, dtype=float)))[:3, 3]
             for kf in ordered_keyframes]
        )

        middle_points, middle_labels, labels_far = _filter_pipe(
            points, labels, path, params.roi_far_xyz[0]
        )
        middle_points, middle_labels = _voxelize(middle_points, middle_labels, params.voxel_size_xyz)
        _, near_labels, labels_middle = _filter_pipe(
            middle_points, middle_labels, path, params.roi_middle_xyz[0]
        )
        _log.debug("Duration for voxel processing = %.0f ms", (time.perf_counter() - start) * 1e3)

        categorized: dict = {}
        ids_near = [ids[int(label)] for label in near_labels]
        flow = calc_flow(ids_near, keyframes, False)
        for lm_id in choose_near_landmark_ids(params.max_num_landmarks_near, ids_near, flow):
            categorized[lm_id] = Category.NEAR_FIELD

        ids_middle = [ids[label] for label in sorted(labels_middle)]
        for lm_id in choose_middle_landmark_ids(params.max_num_landmarks_middle, ids_middle, self._rng):
            categorized[lm_id] = Category.MIDDLE_FIELD

        ids_far = [ids[label] for label in sorted(labels_far)]
        for lm_id in choose_far_landmark_ids(params.max_num_landmarks_far, ids_far, keyframes):
            categorized[lm_id] = Category.FAR_FIELD

        counts = Counter(categorized.values())
        _log.debug(
            "After voxelization: near = %d middle = %d far = %d",
            counts[Category.NEAR_FIELD],
            counts[Category.MIDDLE_FIELD],
            counts[Category.FAR_FIELD],
        )
        return categorized