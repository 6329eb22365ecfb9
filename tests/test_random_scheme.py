import random

import pytest

from keyframe_ba.geometry import Landmark
from keyframe_ba.random_scheme import RandomSparsificationScheme

LANDMARKS = {
    i: Landmark(p)
    for i, p in enumerate(
        [(0.5, 3.0, 5.5), (0.0, 1.0, -20.0), (1.0, -5.0, 4.0), (2.0, 1.0, 1.5), (-2.0, -1.0, 10.0)]
    )
}


def test_more_requested_than_available_keeps_all():
    selected = RandomSparsificationScheme(6).get_selection(LANDMARKS, {})
    assert len(selected) == len(LANDMARKS)
    assert selected == set(LANDMARKS)


def test_selects_requested_number():
    selected = RandomSparsificationScheme(3).get_selection(LANDMARKS, {})
    assert len(selected) == 3
    assert selected <= set(LANDMARKS)


def test_zero_selects_nothing():
    assert RandomSparsificationScheme(0).get_selection(LANDMARKS) == set()


def test_seeded_rng_is_reproducible():
    a = RandomSparsificationScheme(2, rng=random.Random(7)).get_selection(LANDMARKS)
    b = RandomSparsificationScheme(2, rng=random.Random(7)).get_selection(LANDMARKS)
    assert a == b
    assert len(a) == 2


def test_negative_number_raises():
    with pytest.raises(ValueError):
        RandomSparsificationScheme(-1)