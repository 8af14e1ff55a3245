"""Edition numbering and batch sizing."""

from __future__ import annotations

from typing import List, Optional, Sequence

import numpy as np

from ..app.models import LayerConfiguration, Network
from .exceptions import SetupError
from .types import BatchPlan


def first_edition(network: Network) -> int:
    return 0 if network == Network.SOL else 1


def build_edition_ids(
    last_edition: int,
    *,
    network: Network = Network.ETH,
    shuffle: bool = False,
    rng: Optional[np.random.Generator] = None,
) -> List[int]:
    """Edition numbers for the whole run, consumed one per accepted item."""

    ids = list(range(first_edition(network), last_edition + 1))
    if shuffle:
        generator = rng if rng is not None else np.random.default_rng()
        generator.shuffle(ids)
    return ids


def plan_batches(configurations: Sequence[LayerConfiguration]) -> List[BatchPlan]:
    """Turn cumulative ``grow_edition_size_to`` values into per-batch targets."""

    plans: List[BatchPlan] = []
    previous = 0
    for index, configuration in enumerate(configurations):
        grow_to = configuration.grow_edition_size_to
        if grow_to <= previous:
            raise SetupError(
                f"layer configuration {index} grows the edition to {grow_to}, "
                f"which is not past the previous size {previous}"
            )
        plans.append(BatchPlan(index=index, target_size=grow_to - previous, grow_to=grow_to))
        previous = grow_to
    return plans
