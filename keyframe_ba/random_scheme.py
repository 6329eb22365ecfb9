"""Landmark sparsification by random choice."""

from __future__ import annotations

import random
from typing import Any, Hashable, Mapping

__all__ = ["RandomSparsificationScheme"]


class RandomSparsificationScheme:
    """Keeps at most ``num_landmarks`` landmarks, chosen at random."""

    def __init__(self, num_landmarks: int, rng: random.Random | None = None) -> None:
        if num_landmarks < 0:
            raise ValueError(f"number of landmarks must not be negative, got {num_landmarks}")
        self.num_landmarks = num_landmarks
        self._rng = rng if rng is not None else random.Random()

    def get_selection(
        self, landmarks: Mapping[Hashable, Any], keyframes: Mapping[Hashable, Any] | None = None
    ) -> set:
        """Return a random subset of the landmark ids; the keyframes are not used."""
        ids = list(landmarks)
        self._rng.shuffle(ids)
        return set(ids[: self.num_landmarks])