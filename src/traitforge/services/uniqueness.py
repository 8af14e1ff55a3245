"""Run-wide record of produced DNA."""

from __future__ import annotations

from typing import Iterable, Iterator, Set

from .dna import normalize_dna


class UniquenessTracker:
    """Append-only set of normalized DNA strings for one generation run."""

    def __init__(self, seen: Iterable[str] = ()) -> None:
        self._seen: Set[str] = {normalize_dna(dna) for dna in seen}

    def is_unique(self, raw_dna: str) -> bool:
        return normalize_dna(raw_dna) not in self._seen

    def record(self, raw_dna: str) -> str:
        normalized = normalize_dna(raw_dna)
        self._seen.add(normalized)
        return normalized

    def __contains__(self, raw_dna: object) -> bool:
        return isinstance(raw_dna, str) and not self.is_unique(raw_dna)

    def __len__(self) -> int:
        return len(self._seen)

    def __iter__(self) -> Iterator[str]:
        return iter(self._seen)
