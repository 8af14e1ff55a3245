"""Shared service-layer exceptions."""

from __future__ import annotations

from typing import Optional


class GenerationFailure(Exception):
    """Expected failure during collection generation."""


class SetupError(GenerationFailure):
    """Invalid catalog or configuration detected before generation starts."""


class ConfigurationError(GenerationFailure):
    """Rule narrowing left a layer without any selectable element."""

    def __init__(self, layer_name: Optional[str] = None, *, batch_index: Optional[int] = None) -> None:
        subject = f"layer '{layer_name}'" if layer_name is not None else "a layer"
        location = f"batch {batch_index}, " if batch_index is not None else ""
        super().__init__(f"no candidate elements left for {subject} ({location}rules exclude every option)")
        self.layer_name = layer_name
        self.batch_index = batch_index


class DuplicateCollision(GenerationFailure):
    """Normalized DNA was already produced earlier in the run."""

    def __init__(self, dna: str) -> None:
        super().__init__(f"DNA exists: {dna}")
        self.dna = dna


class ToleranceExceeded(GenerationFailure):
    """Too many duplicate rejections; the batch size is not reachable."""

    def __init__(
        self,
        batch_index: int,
        target_size: int,
        failures: int,
        *,
        grow_to: Optional[int] = None,
    ) -> None:
        edition_size = grow_to if grow_to is not None else target_size
        super().__init__(
            f"You need more layers or elements to grow your edition to {edition_size} artworks! "
            f"(batch {batch_index}, {failures} duplicate rejections)"
        )
        self.batch_index = batch_index
        self.target_size = target_size
        self.grow_to = edition_size
        self.failures = failures


class DecodeMismatch(GenerationFailure):
    """A DNA token references an element the layer does not contain."""

    def __init__(self, layer_name: str, token: str) -> None:
        super().__init__(f"DNA token '{token}' does not match any element of layer '{layer_name}'")
        self.layer_name = layer_name
        self.token = token
