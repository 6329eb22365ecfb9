"""Triangulation of landmarks from viewing rays and camera poses."""

from __future__ import annotations

from typing import Hashable, Iterable, Mapping, Sequence

import numpy as np

__all__ = ["Triangulator"]


def _as_pose(pose) -> np.ndarray:
    matrix = np.asarray(pose, dtype=float)
    if matrix.shape not in ((4, 4), (3, 4)):
        raise ValueError(f"pose must be 4x4 or 3x4, got shape {matrix.shape}")
    return matrix


class Triangulator:
    """Reconstructs points in the coordinate system in which the poses are given."""

    def triangulate_rays(self, poses_rays: Sequence[tuple]) -> np.ndarray:
        """Intersect rays given as (pose origin<-camera, ray in camera) pairs.

        Solves the least squares problem that minimizes the distance of the point
        to every ray.
        """
        pairs = list(poses_rays)
        if len(pairs) < 2:
            raise ValueError("triangulation needs at least two rays")
        sum_rrt = np.zeros((3, 3))
        rhs = np.zeros(3)
        for pose, ray in pairs:
            matrix = _as_pose(pose)
            r = matrix[:3, :3] @ np.asarray(ray, dtype=float).ravel()
            cur_rrt = np.eye(3) - np.outer(r, r)
            sum_rrt += cur_rrt
            rhs += cur_rrt @ matrix[:3, 3]
        point, *_ = np.linalg.lstsq(sum_rrt, rhs, rcond=None)
        return point

    def process_track(
        self, track: Iterable[tuple], poses: Mapping[Hashable, object]
    ) -> np.ndarray:
        """Triangulate one track of (ray, pose id) pairs using the given poses."""
        pairs = [(poses[pose_id], ray) for ray, pose_id in track]
        return self.triangulate_rays(pairs)

    def process(
        self,
        tracklets: Mapping[Hashable, Sequence[tuple]],
        poses: Mapping[Hashable, object],
    ) -> dict:
        """Triangulate every track that has more than one observation."""
        return {
            landmark_id: self.process_track(track, poses)
            for landmark_id, track in sorted(tracklets.items())
            if len(track) > 1
        }