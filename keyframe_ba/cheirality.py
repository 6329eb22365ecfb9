"""Landmark rejection by the cheirality constraint.

A landmark is kept only if it lies in front of the image plane of every camera
of every active keyframe.

Keyframes are duck-typed. They need these members:

* ``is_active``: whether the keyframe takes part in the optimization,
* ``get_projected_landmark_position(landmark_id, landmark)``: mapping of camera
  id to the landmark position in that camera's coordinate system.
"""

from __future__ import annotations

import logging
import time
from operator import itemgetter
from typing import Any, Hashable, Iterable, Mapping

import numpy as np

__all__ = ["CheiralityRejectionScheme"]

_log = logging.getLogger(__name__)


def _is_cheiral(landmark_id: Hashable, landmark: Any, keyframes: Iterable[Any]) -> bool:
    for keyframe in keyframes:
        projected = keyframe.get_projected_landmark_position(landmark_id, landmark)
        for position in projected.values():
            if np.asarray(position, dtype=float).ravel()[2] < 0.0:
                return False
    return True


class CheiralityRejectionScheme:
    """Rejects landmarks that lie behind the image plane of any active camera."""

    def get_selection(
        self, landmarks: Mapping[Hashable, Any], keyframes: Mapping[Hashable, Any]
    ) -> set:
        """Return the ids of the landmarks that fulfil the cheirality constraint."""
        start = time.perf_counter()
        active = [
            kf for _, kf in sorted(keyframes.items(), key=itemgetter(0)) if kf.is_active
        ]
        selected = {
            landmark_id
            for landmark_id, landmark in landmarks.items()
            if _is_cheiral(landmark_id, landmark, active)
        }
        _log.debug(
            "Duration cheirality check = %.0f ms", (time.perf_counter() - start) * 1e3
        )
        return selected