"""High-level orchestrator driving trait composition across layer configurations."""

from __future__ import annotations

from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Sequence, Tuple

import numpy as np
from loguru import logger

from ..app.models import GenerationConfig, LayerConfiguration
from ..app.settings import Settings
from .build import BuildWriter
from .catalog import build_layers
from .dna import decode_dna, encode_dna
from .editions import build_edition_ids, plan_batches
from .exceptions import ConfigurationError, DuplicateCollision, ToleranceExceeded
from .metadata import MetadataBuilder, content_hash
from .renderer import LayerRenderer
from .rules import RuleIndex
from .selector import WeightedSelector, spawn_generators
from .types import BatchPlan, EditionRecord, Element, GenerationResult, Layer, Selection
from .uniqueness import UniquenessTracker

EditionCallback = Callable[[EditionRecord], Awaitable[None]]


class CompositionOrchestrator:
    """Coordinates selection, uniqueness checks and the per-edition consumers.

    Each batch (one layer configuration) runs until it has produced its target
    number of unique editions. Duplicate DNA is retried; once a batch has
    rejected ``unique_dna_tolerance`` duplicates the whole run is aborted.
    Accepted editions are rendered and written one at a time.
    """

    def __init__(
        self,
        settings: Settings,
        selector: Optional[WeightedSelector] = None,
        *,
        metadata: Optional[MetadataBuilder] = None,
        renderer: Optional[LayerRenderer] = None,
        writer: Optional[BuildWriter] = None,
        shuffle_rng: Optional[np.random.Generator] = None,
    ) -> None:
        selection_rng, default_shuffle_rng = spawn_generators(settings.seed, 2)
        self._settings = settings
        self._selector = selector or WeightedSelector(selection_rng)
        self._metadata = metadata
        self._renderer = renderer
        self._writer = writer
        self._shuffle_rng = shuffle_rng if shuffle_rng is not None else default_shuffle_rng

    def prepare_batch(self, configuration: LayerConfiguration) -> Tuple[List[Layer], RuleIndex]:
        layers = build_layers(
            configuration.layers_order,
            self._settings.layers_dir,
            self._settings.rarity_delimiter,
        )
        rules = RuleIndex.build(
            layers,
            configuration.dependency_rules,
            configuration.mutually_exclusive_rules,
            strict=self._settings.strict_rules,
        )
        return layers, rules

    def compose(
        self,
        layers: Sequence[Layer],
        rules: RuleIndex,
        *,
        batch_index: Optional[int] = None,
    ) -> Tuple[Selection, str]:
        """One composition pass: a single weighted draw per layer, in order."""

        chosen: Dict[str, Element] = {}
        chosen_names: Dict[str, str] = {}
        for layer in layers:
            candidates = rules.compute_candidates(chosen_names, layer)
            if not candidates:
                raise ConfigurationError(layer.name, batch_index=batch_index)
            element = self._selector.select(candidates, layer_name=layer.name)
            chosen[layer.name] = element
            chosen_names[layer.name] = element.name
        selection = Selection(chosen)
        return selection, encode_dna(layers, selection)

    async def run(
        self,
        config: GenerationConfig,
        *,
        on_edition: Optional[EditionCallback] = None,
    ) -> GenerationResult:
        metadata = self._metadata or MetadataBuilder(config.metadata)
        plans = plan_batches(config.layer_configurations)
        edition_ids: Deque[int] = deque(
            build_edition_ids(
                config.total_editions,
                network=config.metadata.network,
                shuffle=self._settings.shuffle_layer_configurations,
                rng=self._shuffle_rng,
            )
        )
        logger.debug("Editions left to create: {}", list(edition_ids))

        tracker = UniquenessTracker()
        result = GenerationResult()
        for plan, configuration in zip(plans, config.layer_configurations):
            layers, rules = self.prepare_batch(configuration)
            logger.info(
                "Batch {}: growing edition to {} ({} layers, {} rules)",
                plan.index,
                plan.grow_to,
                len(layers),
                rules.rule_count,
            )
            await self.run_batch(
                plan,
                layers,
                rules,
                tracker=tracker,
                edition_ids=edition_ids,
                result=result,
                metadata=metadata,
                on_edition=on_edition,
            )

        if self._writer is not None:
            self._writer.write_collection(result.metadata)
        return result

    async def run_batch(
        self,
        plan: BatchPlan,
        layers: Sequence[Layer],
        rules: RuleIndex,
        *,
        tracker: UniquenessTracker,
        edition_ids: Deque[int],
        result: GenerationResult,
        metadata: MetadataBuilder,
        on_edition: Optional[EditionCallback] = None,
    ) -> None:
        tolerance = self._settings.unique_dna_tolerance
        produced = 0
        failures = 0
        while produced < plan.target_size:
            _, raw_dna = self.compose(layers, rules, batch_index=plan.index)
            try:
                normalized = self._accept(tracker, raw_dna)
            except DuplicateCollision:
                failures += 1
                result.duplicates[plan.index] = failures
                logger.warning("DNA exists! ({}/{} in batch {})", failures, tolerance, plan.index)
                if failures >= tolerance:
                    raise ToleranceExceeded(plan.index, plan.target_size, failures, grow_to=plan.grow_to)
                continue

            record = EditionRecord(
                edition=edition_ids.popleft(),
                batch_index=plan.index,
                raw_dna=raw_dna,
                normalized_dna=normalized,
                selection=decode_dna(raw_dna, layers),
                content_hash=content_hash(raw_dna),
            )
            payload = await self._deliver(record, layers, metadata)
            result.records.append(record)
            result.metadata.append(payload)
            produced += 1
            logger.info("Created edition: {}, with DNA: {}", record.edition, record.content_hash)
            logger.debug("Editions left to create: {}", list(edition_ids))
            if on_edition is not None:
                await on_edition(record)

    def _accept(self, tracker: UniquenessTracker, raw_dna: str) -> str:
        if not tracker.is_unique(raw_dna):
            raise DuplicateCollision(raw_dna)
        return tracker.record(raw_dna)

    async def _deliver(
        self,
        record: EditionRecord,
        layers: Sequence[Layer],
        metadata: MetadataBuilder,
    ) -> Dict[str, Any]:
        payload = metadata.build(record)
        if self._renderer is not None:
            rendered = await self._renderer.render(record.selection, layers)
            if self._writer is not None:
                self._writer.save_image(record.edition, rendered.image)
                if rendered.frames:
                    self._writer.save_gif(record.edition, rendered.frames)
        if self._writer is not None:
            self._writer.write_edition(payload)
        return payload
