"""Shared service data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from ..app.models import BlendMode

DNA_DELIMITER = "-"
BYPASS_DNA_OPTION = "bypassDNA"


@dataclass(frozen=True)
class Element:
    """One trait value inside a layer.

    ``id`` is assigned once by the catalog loader from the element's position in
    the sorted directory listing. DNA tokens always carry this id, never the
    position of the element inside a rule-narrowed candidate list.
    """

    id: int
    name: str
    filename: str
    path: Path
    weight: int = 1


@dataclass(frozen=True)
class Layer:
    index: int
    name: str
    source_name: str
    elements: Tuple[Element, ...]
    blend: BlendMode = BlendMode.SOURCE_OVER
    opacity: float = 1.0
    bypass_dna: bool = False

    def element_by_id(self, element_id: int) -> Optional[Element]:
        for element in self.elements:
            if element.id == element_id:
                return element
        return None

    def element_by_name(self, name: str) -> Optional[Element]:
        for element in self.elements:
            if element.name == name:
                return element
        return None


class Selection(Mapping[str, Element]):
    """Read-only mapping of layer name to chosen element, in layer order."""

    def __init__(self, chosen: Mapping[str, Element]) -> None:
        self._chosen: Mapping[str, Element] = MappingProxyType(dict(chosen))

    def __getitem__(self, layer_name: str) -> Element:
        return self._chosen[layer_name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._chosen)

    def __len__(self) -> int:
        return len(self._chosen)

    def __repr__(self) -> str:
        return f"Selection({self.names()!r})"

    def names(self) -> Dict[str, str]:
        return {layer: element.name for layer, element in self._chosen.items()}

    def attributes(self) -> List[Dict[str, str]]:
        return [
            {"trait_type": layer, "value": element.name}
            for layer, element in self._chosen.items()
        ]


@dataclass(frozen=True)
class EditionRecord:
    """Everything the core knows about one accepted item."""

    edition: int
    batch_index: int
    raw_dna: str
    normalized_dna: str
    selection: Selection
    content_hash: str

    @property
    def attributes(self) -> List[Dict[str, str]]:
        return self.selection.attributes()


@dataclass(frozen=True)
class BatchPlan:
    index: int
    target_size: int
    grow_to: int


@dataclass
class GenerationResult:
    records: List[EditionRecord] = field(default_factory=list)
    metadata: List[Dict[str, Any]] = field(default_factory=list)
    duplicates: Dict[int, int] = field(default_factory=dict)

    @property
    def dna(self) -> List[str]:
        return [record.normalized_dna for record in self.records]

    @property
    def editions(self) -> List[int]:
        return [record.edition for record in self.records]
