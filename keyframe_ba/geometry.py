"""Basic geometric types and helpers for keyframe bundle adjustment."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

__all__ = ["Plane", "Landmark", "pose_to_matrix", "reproject"]


@dataclass
class Plane:
    """Plane given by a normal direction and its distance to the origin.

    A negative distance means the plane is not used in the optimization.
    """

    direction: tuple[float, float, float] = (0.0, 0.0, 1.0)
    distance: float = -sys.float_info.max

    def __post_init__(self) -> None:
        direction = tuple(float(v) for v in self.direction)
        if len(direction) != 3:
            raise ValueError(f"plane direction needs 3 components, got {len(direction)}")
        self.direction = direction  # type: ignore[assignment]


@dataclass
class Landmark:
    """A 3d landmark with flags describing how it was observed."""

    pos: tuple[float, float, float] = field(default=(0.0, 0.0, 0.0))
    has_measured_depth: bool = False
    is_ground_plane: bool = False
    weight: float = 1.0

    def __post_init__(self) -> None:
        pos = tuple(float(v) for v in np.asarray(self.pos, dtype=float).ravel())
        if len(pos) != 3:
            raise ValueError(f"landmark position needs 3 components, got {len(pos)}")
        self.pos = pos  # type: ignore[assignment]

    @property
    def position(self) -> np.ndarray:
        """Position as a numpy vector."""
        return np.array(self.pos, dtype=float)


def pose_to_matrix(pose: Sequence[float]) -> np.ndarray:
    """Convert a pose (qw, qx, qy, qz, tx, ty, tz) to a 4x4 homogeneous matrix.

    The transform translates first and then rotates, i.e. ``x -> R x + t``.
    """
    values = np.asarray(pose, dtype=float).ravel()
    if values.size != 7:
        raise ValueError(f"pose needs 7 values, got {values.size}")
    w, x, y, z, tx, ty, tz = values
    rotation = np.array(
        [
            [1 - 2 * (y * y + z * z), 2 * (x * y - w * z), 2 * (x * z + w * y)],
            [2 * (x * y + w * z), 1 - 2 * (x * x + z * z), 2 * (y * z - w * x)],
            [2 * (x * z - w * y), 2 * (y * z + w * x), 1 - 2 * (x * x + y * y)],
        ]
    )
    matrix = np.eye(4)
    matrix[:3, :3] = rotation
    matrix[:3, 3] = (tx, ty, tz)
    return matrix


def reproject(transform, intrinsics, point) -> np.ndarray:
    """Transform a point, project it with the intrinsics and dehomogenize to pixels."""
    trf = np.asarray(transform, dtype=float)
    if trf.shape not in ((4, 4), (3, 4)):
        raise ValueError(f"transform must be 4x4 or 3x4, got shape {trf.shape}")
    k = np.asarray(intrinsics, dtype=float)
    if k.shape != (3, 3):
        raise ValueError(f"intrinsics must be 3x3, got shape {k.shape}")
    p = np.asarray(point, dtype=float).ravel()
    if p.size != 3:
        raise ValueError(f"point needs 3 components, got {p.size}")
    transformed = trf[:3, :3] @ p + trf[:3, 3]
    projected = k @ transformed
    return projected[:2] / projected[2]