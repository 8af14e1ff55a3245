"""Layer catalog loading from per-layer image directories."""

from __future__ import annotations

import re
from pathlib import Path
from typing import List, Optional, Sequence

from loguru import logger

from ..app.models import LayerSpec
from .exceptions import SetupError
from .types import DNA_DELIMITER, Element, Layer

_HIDDEN_ENTRY = re.compile(r"^\.[^./]")


def _is_hidden(filename: str) -> bool:
    return bool(_HIDDEN_ENTRY.match(filename))


def _trailing_weight(filename: str, rarity_delimiter: str) -> Optional[int]:
    _, sep, tail = Path(filename).stem.rpartition(rarity_delimiter)
    if not sep:
        return None
    try:
        return int(tail)
    except ValueError:
        return None


def parse_weight(filename: str, rarity_delimiter: str = "#") -> int:
    """Rarity weight encoded in ``name<delim><weight>.ext``; defaults to 1."""

    weight = _trailing_weight(filename, rarity_delimiter)
    if weight is None:
        return 1
    if weight < 1:
        raise SetupError(f"rarity weight must be positive, got {weight} in '{filename}'")
    return weight


def clean_name(filename: str, rarity_delimiter: str = "#") -> str:
    """Trait name: the extension-less filename up to the first rarity delimiter."""

    return Path(filename).stem.split(rarity_delimiter, 1)[0]


def load_elements(directory: Path, rarity_delimiter: str = "#") -> List[Element]:
    """Build the ordered elements of one layer directory.

    Entries are sorted by name so ids are stable for an unchanged listing.
    """

    if not directory.is_dir():
        raise SetupError(f"layer directory not found: {directory}")

    filenames = sorted(
        entry.name
        for entry in directory.iterdir()
        if entry.is_file() and not _is_hidden(entry.name)
    )
    elements: List[Element] = []
    for index, filename in enumerate(filenames):
        if DNA_DELIMITER in filename:
            raise SetupError(
                f"layer name can not contain dashes, please fix: {directory / filename}"
            )
        elements.append(
            Element(
                id=index,
                name=clean_name(filename, rarity_delimiter),
                filename=filename,
                path=directory / filename,
                weight=parse_weight(filename, rarity_delimiter),
            )
        )
    return elements


def build_layers(
    layers_order: Sequence[LayerSpec],
    layers_dir: Path,
    rarity_delimiter: str = "#",
) -> List[Layer]:
    """Load every layer of one layer configuration in composition order."""

    layers: List[Layer] = []
    seen: set[str] = set()
    for index, spec in enumerate(layers_order):
        options = spec.options
        display_name = options.display_name if options.display_name is not None else spec.name
        for candidate in (spec.name, display_name):
            if DNA_DELIMITER in candidate:
                raise SetupError(
                    f"layer name can not contain dashes, please fix: {candidate}"
                )
        if display_name in seen:
            raise SetupError(f"duplicate layer name '{display_name}' in layers order")
        seen.add(display_name)

        elements = load_elements(layers_dir / spec.name, rarity_delimiter)
        if not elements:
            raise SetupError(f"layer '{spec.name}' has no elements in {layers_dir / spec.name}")
        layers.append(
            Layer(
                index=index,
                name=display_name,
                source_name=spec.name,
                elements=tuple(elements),
                blend=options.blend,
                opacity=options.opacity,
                bypass_dna=options.bypass_dna,
            )
        )
        logger.debug(
            "Loaded layer {} ({} elements, total weight {})",
            display_name,
            len(elements),
            sum(element.weight for element in elements),
        )
    return layers
