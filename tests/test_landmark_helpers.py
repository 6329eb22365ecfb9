import random
from dataclasses import dataclass, field

import pytest

from keyframe_ba.landmark_helpers import (
    calc_flow,
    calc_mean_flow2,
    choose_far_landmark_ids,
    choose_middle_landmark_ids,
    choose_near_landmark_ids,
    get_measurement_from_kf,
    get_sorted_keyframes,
)

SEC = 1_000_000_000


@dataclass
class FakeKeyframe:
    timestamp: int
    measurements: dict = field(default_factory=dict)  # landmark -> camera -> (u, v)
    cameras: dict = field(default_factory=lambda: {0: None})
    is_active: bool = True

    def has_measurement(self, landmark_id, camera_id=None):
        per_cam = self.measurements.get(landmark_id, {})
        if camera_id is None:
            return bool(per_cam)
        return camera_id in per_cam

    def get_measurements(self, landmark_id):
        return dict(self.measurements.get(landmark_id, {}))


def test_get_measurement_from_first_observing_keyframe():
    kfs = [
        FakeKeyframe(10, {}),
        FakeKeyframe(20, {7: {0: (1.0, 2.0)}}),
        FakeKeyframe(30, {7: {0: (9.0, 9.0)}}),
    ]
    meas, ts = get_measurement_from_kf(kfs, 7)
    assert meas == {0: (1.0, 2.0)}
    assert ts == 20
    meas_rev, ts_rev = get_measurement_from_kf(reversed(kfs), 7)
    assert meas_rev == {0: (9.0, 9.0)}
    assert ts_rev == 30


def test_get_measurement_missing_landmark():
    meas, ts = get_measurement_from_kf([FakeKeyframe(10, {1: {0: (0, 0)}})], 2)
    assert meas == {}
    assert ts == 0


def test_choose_near_sorts_by_descending_flow_and_filters():
    flow = {1: 0.5, 2: 3.0, 3: 1.0}
    assert choose_near_landmark_ids(2, [1, 2, 3, 4], flow) == [2, 3]
    assert choose_near_landmark_ids(10, [1, 2, 3, 4], flow) == [2, 3, 1]
    assert choose_near_landmark_ids(0, [1, 2, 3], flow) == []


def test_choose_middle_random_subset():
    ids = list(range(20))
    chosen = choose_middle_landmark_ids(5, ids, random.Random(3))
    assert len(chosen) == 5
    assert len(set(chosen)) == 5
    assert set(chosen) <= set(ids)
    everything = choose_middle_landmark_ids(100, ids, random.Random(3))
    assert sorted(everything) == ids
    assert ids == list(range(20))


def test_choose_middle_is_reproducible_with_seed():
    ids = list(range(30))
    first = choose_middle_landmark_ids(7, ids, random.Random(11))
    second = choose_middle_landmark_ids(7, ids, random.Random(11))
    assert len(first) == 7
    assert len(set(first)) == 7
    assert set(first) <= set(ids)
    assert first == second


def test_choose_far_by_observation_count():
    kfs = {
        0: FakeKeyframe(0, {1: {0: (0, 0)}, 3: {0: (0, 0)}}),
        1: FakeKeyframe(1, {1: {0: (0, 0)}, 2: {0: (0, 0)}, 3: {0: (0, 0)}}),
        2: FakeKeyframe(2, {1: {0: (0, 0)}}),
    }
    assert choose_far_landmark_ids(2, [2, 3, 1], kfs) == [1, 3]
    assert choose_far_landmark_ids(5, [2, 3, 1], kfs) == [1, 3, 2]


def _track_keyframes():
    return [
        FakeKeyframe(0 * SEC, {5: {0: (0.0, 0.0)}}),
        FakeKeyframe(1 * SEC, {5: {0: (3.0, 4.0)}}),
        FakeKeyframe(2 * SEC, {5: {0: (3.0, 4.0)}}),
    ]


def test_calc_flow_sum_and_mean():
    kfs = _track_keyframes()
    assert calc_flow([5], kfs, use_mean=False)[5] == pytest.approx(5.0)
    assert calc_flow([5], kfs, use_mean=True)[5] == pytest.approx(2.5)


def test_calc_flow_unobserved_landmark_is_zero():
    assert calc_flow([99], _track_keyframes(), use_mean=False) == {99: 0.0}


def test_calc_flow_mapping_is_sorted_by_timestamp():
    kfs = _track_keyframes()
    shuffled = {i: kf for i, kf in zip((2, 0, 1), reversed(kfs))}
    assert calc_flow([5], shuffled, use_mean=False) == calc_flow([5], kfs, use_mean=False)


def test_calc_flow_takes_max_over_cameras():
    cams = {0: None, 1: None}
    kfs = [
        FakeKeyframe(0, {5: {0: (0.0, 0.0), 1: (0.0, 0.0)}}, cams),
        FakeKeyframe(1, {5: {0: (3.0, 4.0), 1: (1.0, 0.0)}}, cams),
    ]
    single = [FakeKeyframe(kf.timestamp, {5: {0: kf.measurements[5][0]}}) for kf in kfs]
    assert calc_flow([5], kfs, use_mean=False) == calc_flow([5], single, use_mean=False)


def test_calc_mean_flow2_uses_oldest_and_newest():
    kfs = _track_keyframes()[:2]
    assert calc_mean_flow2([5], kfs)[5] == pytest.approx(5.0)
    # Same displacement over twice the time halves the flow.
    slow = [kfs[0], FakeKeyframe(2 * SEC, {5: {0: (3.0, 4.0)}})]
    assert calc_mean_flow2([5], slow)[5] == pytest.approx(calc_mean_flow2([5], kfs)[5] / 2)


def test_calc_mean_flow2_skips_unobserved_and_zero_dt():
    kfs = [FakeKeyframe(0, {5: {0: (0.0, 0.0)}}), FakeKeyframe(SEC, {})]
    assert calc_mean_flow2([5, 6], kfs) == {}


def test_calc_mean_flow2_empty_keyframes():
    with pytest.raises(ValueError):
        calc_mean_flow2([1], [])


def test_get_sorted_keyframes_active_newest_first():
    kfs = {
        0: FakeKeyframe(10),
        1: FakeKeyframe(30),
        2: FakeKeyframe(20, is_active=False),
        3: FakeKeyframe(5),
    }
    result = get_sorted_keyframes(kfs)
    assert [kf.timestamp for kf in result] == [30, 10, 5]
    assert all(kf.is_active for kf in result)