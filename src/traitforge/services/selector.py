"""Cumulative-weight trait selection."""

from __future__ import annotations

from typing import List, Optional, Sequence

import numpy as np

from .exceptions import ConfigurationError
from .types import Element


class WeightedSelector:
    """Pick one element with probability proportional to its weight.

    The scan is positional: a draw ``r`` in ``[0, total)`` lands on the first
    element whose cumulative weight exceeds it, so a fixed candidate order and
    a fixed draw always yield the same element. The returned element carries
    its loader-assigned id, independent of where it sat in ``candidates``.
    """

    def __init__(
        self,
        rng: Optional[np.random.Generator] = None,
        *,
        seed: Optional[int] = None,
    ) -> None:
        self._rng = rng if rng is not None else np.random.default_rng(seed)

    def select(self, candidates: Sequence[Element], *, layer_name: Optional[str] = None) -> Element:
        if not candidates:
            raise ConfigurationError(layer_name)
        total = 0
        for element in candidates:
            if element.weight < 1:
                raise ValueError(f"element '{element.filename}' has non-positive weight {element.weight}")
            total += element.weight

        remainder = int(self._rng.integers(0, total))
        for element in candidates:
            remainder -= element.weight
            if remainder < 0:
                return element
        # Unreachable while remainder < total.
        return candidates[-1]


def spawn_generators(seed: Optional[int], count: int) -> List[np.random.Generator]:
    """Independent generators derived from one optional run seed."""

    children = np.random.SeedSequence(seed).spawn(count)
    return [np.random.default_rng(child) for child in children]
