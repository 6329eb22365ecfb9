"""Helpers for choosing landmarks by optical flow, observation count and chance.

Keyframes are duck-typed. They need these members:

* ``timestamp``: timestamp in nanoseconds,
* ``is_active``: whether the keyframe takes part in the optimization,
* ``cameras``: mapping of camera id to camera,
* ``has_measurement(landmark_id, camera_id=None)``: whether the landmark is observed,
  in the given camera or in any camera,
* ``get_measurements(landmark_id)``: mapping of camera id to measurement.

A measurement is either an object with ``u`` and ``v`` attributes or a sequence
whose first two items are the image coordinates.
"""

from __future__ import annotations

import logging
import math
import random
from collections import defaultdict
from typing import Any, Hashable, Iterable, Mapping, Protocol, Sequence

__all__ = [
    "get_measurement_from_kf",
    "choose_near_landmark_ids",
    "choose_middle_landmark_ids",
    "choose_far_landmark_ids",
    "calc_flow",
    "calc_mean_flow2",
    "get_sorted_keyframes",
]

_log = logging.getLogger(__name__)

_NSEC_PER_SEC = 1e9


class _KeyframeLike(Protocol):
    timestamp: int
    is_active: bool
    cameras: Mapping[Hashable, Any]

    def has_measurement(self, landmark_id: Hashable, camera_id: Hashable = ...) -> bool:
        ...

    def get_measurements(self, landmark_id: Hashable) -> Mapping[Hashable, Any]:
        ...


def _uv(measurement: Any) -> tuple[float, float]:
    if hasattr(measurement, "u") and hasattr(measurement, "v"):
        return float(measurement.u), float(measurement.v)
    u, v = measurement[0], measurement[1]
    return float(u), float(v)


def _distance(a: Any, b: Any) -> float:
    (ua, va), (ub, vb) = _uv(a), _uv(b)
    return math.hypot(ua - ub, va - vb)


def get_measurement_from_kf(
    keyframes: Iterable[_KeyframeLike], landmark_id: Hashable
) -> tuple[dict, int]:
    """Return the measurements per camera from the first keyframe that observes the landmark.

    Keyframes are searched in the given order. The result is the mapping of
    camera id to measurement together with that keyframe's timestamp; if no
    keyframe observes the landmark, an empty mapping and timestamp 0.
    """
    measurements: dict = {}
    timestamp = 0
    for keyframe in keyframes:
        for camera_id in keyframe.cameras:
            if keyframe.has_measurement(landmark_id, camera_id):
                per_camera = keyframe.get_measurements(landmark_id)
                measurements[camera_id] = next(iter(per_camera.values()))
                timestamp = keyframe.timestamp
        if measurements:
            break
    return measurements, timestamp


def choose_near_landmark_ids(
    max_num: int, near_ids: Iterable[Hashable], flow: Mapping[Hashable, float]
) -> list:
    """Choose up to ``max_num`` ids with the highest flow, highest first.

    Ids without a flow value are ignored.
    """
    ids = [lm_id for lm_id in near_ids if lm_id in flow]
    ids.sort(key=lambda lm_id: flow[lm_id], reverse=True)
    return ids[: max(0, max_num)]


def choose_middle_landmark_ids(
    max_num: int, middle_ids: Sequence[Hashable], rng: random.Random | None = None
) -> list:
    """Choose up to ``max_num`` ids at random."""
    shuffled = list(middle_ids)
    (rng or random.Random()).shuffle(shuffled)
    return shuffled[: max(0, max_num)]


def choose_far_landmark_ids(
    max_num: int,
    far_ids: Iterable[Hashable],
    keyframes: Mapping[Hashable, _KeyframeLike],
) -> list:
    """Choose up to ``max_num`` ids observed in the most keyframes, most first."""
    ids = list(far_ids)
    counts = {
        lm_id: sum(1 for kf in keyframes.values() if kf.has_measurement(lm_id))
        for lm_id in ids
    }
    ids.sort(key=lambda lm_id: counts[lm_id], reverse=True)
    return ids[: max(0, max_num)]


def calc_flow(
    landmark_ids: Iterable[Hashable],
    keyframes: Mapping[Hashable, _KeyframeLike] | Sequence[_KeyframeLike],
    use_mean: bool = True,
) -> dict:
    """Return the largest accumulated image flow per landmark over all cameras.

    ``keyframes`` is either a sequence already sorted from oldest to newest or
    a mapping of keyframe id to keyframe, which is then sorted by timestamp.
    With ``use_mean`` the flow of each camera is divided by the number of
    consecutive observation pairs. Landmarks seen fewer than twice get 0.
    """
    if isinstance(keyframes, Mapping):
        sorted_keyframes = sorted(keyframes.values(), key=lambda kf: kf.timestamp)
    else:
        sorted_keyframes = list(keyframes)

    result = {}
    for lm_id in landmark_ids:
        last: dict = {}
        flow_sum: defaultdict = defaultdict(float)
        occurrence: defaultdict = defaultdict(int)
        for keyframe in sorted_keyframes:
            for camera_id, measurement in keyframe.get_measurements(lm_id).items():
                if camera_id in last:
                    flow_sum[camera_id] += _distance(last[camera_id], measurement)
                    occurrence[camera_id] += 1
                last[camera_id] = measurement
        if use_mean:
            for camera_id, count in occurrence.items():
                if count > 0:
                    flow_sum[camera_id] /= count
        result[lm_id] = max([0.0, *flow_sum.values()])
    return result


def calc_mean_flow2(
    landmark_ids: Iterable[Hashable], sorted_keyframes: Sequence[_KeyframeLike]
) -> dict:
    """Return the flow per second between the oldest and newest observation.

    ``sorted_keyframes`` runs from oldest to newest. For each landmark the
    largest displacement over all camera pairs is divided by the elapsed time.
    Landmarks that are not observed, or whose observations share one
    timestamp, are left out.
    """
    keyframes = list(sorted_keyframes)
    if not keyframes:
        raise ValueError("flow calculation needs at least one keyframe")
    _log.debug("Oldest ts = %s", keyframes[0].timestamp)
    _log.debug("Newest ts = %s", keyframes[-1].timestamp)

    result = {}
    for lm_id in landmark_ids:
        oldest, oldest_ts = get_measurement_from_kf(keyframes, lm_id)
        newest, newest_ts = get_measurement_from_kf(reversed(keyframes), lm_id)
        if not oldest or not newest:
            continue
        dt_sec = (newest_ts - oldest_ts) / _NSEC_PER_SEC
        if dt_sec <= 0.0:
            _log.debug("dt = %s, ts = %s", dt_sec, oldest_ts)
            continue
        result[lm_id] = max(
            _distance(last, first) / dt_sec
            for last in newest.values()
            for first in oldest.values()
        )
    return result


def get_sorted_keyframes(keyframes: Mapping[Hashable, _KeyframeLike]) -> list:
    """Return the active keyframes, newest first."""
    active = [kf for kf in keyframes.values() if kf.is_active]
    return sorted(active, key=lambda kf: kf.timestamp, reverse=True)