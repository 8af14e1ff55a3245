from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import List, Sequence

import pytest
from PIL import Image

from traitforge.app.models import (
    DependencyRule,
    ExclusionRule,
    GenerationConfig,
    LayerConfiguration,
    LayerOptions,
    LayerSpec,
    MetadataOptions,
    Network,
)
from traitforge.services.build import BuildWriter
from traitforge.services.dna import decode_dna
from traitforge.services.exceptions import ConfigurationError, SetupError, ToleranceExceeded
from traitforge.services.orchestrator import CompositionOrchestrator
from traitforge.services.renderer import RenderedEdition
from traitforge.services.selector import WeightedSelector
from traitforge.services.types import EditionRecord, Layer, Selection


class CountingSelector(WeightedSelector):
    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.calls = 0

    def select(self, candidates, *, layer_name=None):
        self.calls += 1
        return super().select(candidates, layer_name=layer_name)


class DummyRenderer:
    def __init__(self) -> None:
        self.calls: List[dict[str, str]] = []

    async def render(self, selection: Selection, layers: Sequence[Layer]) -> RenderedEdition:
        assert list(selection) == [layer.name for layer in layers]
        self.calls.append(selection.names())
        return RenderedEdition(image=Image.new("RGBA", (4, 4), (255, 0, 0, 255)))


def _configuration(
    grow_to: int,
    layers: Sequence[LayerSpec | str],
    *,
    dependencies: Sequence[DependencyRule] = (),
    exclusions: Sequence[ExclusionRule] = (),
) -> LayerConfiguration:
    return LayerConfiguration(
        grow_edition_size_to=grow_to,
        layers_order=[LayerSpec(name=spec) if isinstance(spec, str) else spec for spec in layers],
        dependency_rules=list(dependencies),
        mutually_exclusive_rules=list(exclusions),
    )


def _config(*configurations: LayerConfiguration, network: Network = Network.ETH) -> GenerationConfig:
    return GenerationConfig(
        layer_configurations=list(configurations),
        metadata=MetadataOptions(name_prefix="Test", network=network),
    )


@pytest.mark.asyncio
async def test_single_combination_aborts_exactly_at_tolerance(make_layer, settings_factory) -> None:
    make_layer("Background", ["Black.png"])
    make_layer("Eyes", ["Round.png"])
    settings = settings_factory(unique_dna_tolerance=3)
    selector = CountingSelector(seed=5)
    orchestrator = CompositionOrchestrator(settings, selector)
    accepted: List[EditionRecord] = []

    async def on_edition(record: EditionRecord) -> None:
        accepted.append(record)

    with pytest.raises(ToleranceExceeded) as excinfo:
        await orchestrator.run(_config(_configuration(2, ["Background", "Eyes"])), on_edition=on_edition)

    assert excinfo.value.failures == 3
    assert excinfo.value.batch_index == 0
    assert excinfo.value.target_size == 2
    assert len(accepted) == 1
    # one accepted pass plus three rejected passes, one draw per layer each
    assert selector.calls == 4 * 2


@pytest.mark.asyncio
async def test_two_backgrounds_fill_two_editions(make_layer, settings_factory, scripted_rng) -> None:
    make_layer("Background", ["Black#1.png", "White#1.png"])
    make_layer("Eyes", ["Round.png"])
    settings = settings_factory(unique_dna_tolerance=1)
    orchestrator = CompositionOrchestrator(settings, WeightedSelector(scripted_rng([0, 0, 1, 0])))

    result = await orchestrator.run(_config(_configuration(2, ["Background", "Eyes"])))

    assert result.dna == ["0:Black#1.png-0:Round.png", "1:White#1.png-0:Round.png"]
    assert len(set(result.dna)) == 2
    assert result.duplicates == {}
    assert result.editions == [1, 2]


@pytest.mark.asyncio
async def test_duplicate_with_tolerance_one_aborts(make_layer, settings_factory, scripted_rng) -> None:
    make_layer("Background", ["Black#1.png", "White#1.png"])
    make_layer("Eyes", ["Round.png"])
    settings = settings_factory(unique_dna_tolerance=1)
    orchestrator = CompositionOrchestrator(settings, WeightedSelector(scripted_rng([0, 0, 0, 0])))

    with pytest.raises(ToleranceExceeded) as excinfo:
        await orchestrator.run(_config(_configuration(2, ["Background", "Eyes"])))
    assert excinfo.value.failures == 1


@pytest.mark.asyncio
async def test_records_round_trip_and_stay_unique(make_layer, settings_factory) -> None:
    make_layer("Background", ["Black#3.png", "White#1.png", "Blue#2.png"])
    make_layer("Eyes", ["Round.png", "Slit#4.png"])
    make_layer("Mouth", ["Grin.png", "Flat.png"])
    settings = settings_factory(unique_dna_tolerance=5000)
    orchestrator = CompositionOrchestrator(settings)
    config = _config(_configuration(12, ["Background", "Eyes", "Mouth"]))

    result = await orchestrator.run(config)

    assert len(result.records) == 12
    assert len(set(result.dna)) == 12
    layers, _ = orchestrator.prepare_batch(config.layer_configurations[0])
    for record in result.records:
        assert decode_dna(record.raw_dna, layers) == record.selection
        assert record.content_hash == hashlib.sha1(record.raw_dna.encode("utf-8")).hexdigest()
        assert [attribute["trait_type"] for attribute in record.attributes] == [
            "Background",
            "Eyes",
            "Mouth",
        ]
    assert sorted(result.editions) == list(range(1, 13))


@pytest.mark.asyncio
async def test_rules_shape_every_edition(make_layer, settings_factory) -> None:
    make_layer("Background", ["Night.png", "Day.png"])
    make_layer("Hat", ["Cap.png", "Crown#9.png"])
    settings = settings_factory(unique_dna_tolerance=1000)
    orchestrator = CompositionOrchestrator(settings)
    configuration = _configuration(
        2,
        ["Background", "Hat"],
        dependencies=[DependencyRule(layerA="Background", valueA="Night", layerB="Hat", valueB="Crown")],
        exclusions=[ExclusionRule(layerA="Background", valueA="Day", layerB="Hat", valueB="Crown")],
    )

    result = await orchestrator.run(_config(configuration))

    combos = sorted(
        (record.selection["Background"].name, record.selection["Hat"].name)
        for record in result.records
    )
    assert combos == [("Day", "Cap"), ("Night", "Crown")]


@pytest.mark.asyncio
async def test_empty_candidates_raise_immediately(make_layer, settings_factory) -> None:
    make_layer("Background", ["Night.png"])
    make_layer("Body", ["Robot.png"])
    make_layer("Hat", ["Helmet.png", "Cap.png"])
    settings = settings_factory(unique_dna_tolerance=1000)
    selector = CountingSelector(seed=3)
    orchestrator = CompositionOrchestrator(settings, selector)
    configuration = _configuration(
        1,
        ["Background", "Body", "Hat"],
        dependencies=[DependencyRule(layerA="Body", valueA="Robot", layerB="Hat", valueB="Helmet")],
        exclusions=[ExclusionRule(layerA="Background", valueA="Night", layerB="Hat", valueB="Helmet")],
    )

    with pytest.raises(ConfigurationError) as excinfo:
        await orchestrator.run(_config(configuration))

    assert excinfo.value.layer_name == "Hat"
    assert excinfo.value.batch_index == 0
    assert selector.calls == 2


@pytest.mark.asyncio
async def test_bypassed_layer_does_not_count_towards_uniqueness(make_layer, settings_factory) -> None:
    make_layer("Background", ["Black.png", "White.png", "Blue.png"])
    make_layer("Eyes", ["Round.png"])
    settings = settings_factory(unique_dna_tolerance=25)
    orchestrator = CompositionOrchestrator(settings)
    background = LayerSpec(name="Background", options=LayerOptions(bypass_dna=True))

    with pytest.raises(ToleranceExceeded) as excinfo:
        await orchestrator.run(_config(_configuration(2, [background, "Eyes"])))
    assert excinfo.value.failures == 25


@pytest.mark.asyncio
async def test_uniqueness_spans_batches(make_layer, settings_factory) -> None:
    make_layer("Background", ["Black.png"])
    make_layer("Eyes", ["Round.png"])
    settings = settings_factory(unique_dna_tolerance=4)
    orchestrator = CompositionOrchestrator(settings)
    config = _config(
        _configuration(1, ["Background", "Eyes"]),
        _configuration(2, ["Background", "Eyes"]),
    )

    with pytest.raises(ToleranceExceeded) as excinfo:
        await orchestrator.run(config)
    assert excinfo.value.batch_index == 1
    assert excinfo.value.target_size == 1
    assert excinfo.value.failures == 4
    assert excinfo.value.grow_to == 2
    assert "grow your edition to 2 artworks" in str(excinfo.value)


@pytest.mark.asyncio
async def test_batches_consume_editions_in_order(make_layer, settings_factory) -> None:
    make_layer("Background", ["Black.png", "White.png"])
    make_layer("Eyes", ["Round.png"])
    make_layer("Hat", ["Cap.png", "Crown.png"])
    settings = settings_factory(unique_dna_tolerance=1000)
    orchestrator = CompositionOrchestrator(settings)
    config = _config(
        _configuration(2, ["Background", "Eyes"]),
        _configuration(5, ["Background", "Eyes", "Hat"]),
    )

    result = await orchestrator.run(config)

    assert result.editions == [1, 2, 3, 4, 5]
    assert [record.batch_index for record in result.records] == [0, 0, 1, 1, 1]
    assert [len(record.selection) for record in result.records] == [2, 2, 3, 3, 3]


@pytest.mark.asyncio
async def test_shuffled_sol_editions(make_layer, settings_factory) -> None:
    make_layer("Background", ["A.png", "B.png", "C.png", "D.png"])
    settings = settings_factory(unique_dna_tolerance=1000, shuffle_layer_configurations=True)
    orchestrator = CompositionOrchestrator(settings)

    result = await orchestrator.run(
        _config(_configuration(4, ["Background"]), network=Network.SOL)
    )

    assert len(result.editions) == 4
    assert set(result.editions) <= {0, 1, 2, 3, 4}
    assert len(set(result.editions)) == 4
    assert all("properties" in payload for payload in result.metadata)


@pytest.mark.asyncio
async def test_accepted_editions_are_rendered_and_written(
    tmp_path: Path, make_layer, settings_factory
) -> None:
    make_layer("Background", ["Black.png", "White.png"])
    make_layer("Eyes", ["Round.png", "Slit.png"])
    settings = settings_factory(unique_dna_tolerance=1000)
    writer = BuildWriter(tmp_path / "build")
    writer.setup()
    renderer = DummyRenderer()
    orchestrator = CompositionOrchestrator(settings, renderer=renderer, writer=writer)

    result = await orchestrator.run(_config(_configuration(3, ["Background", "Eyes"])))

    assert len(renderer.calls) == 3
    for record in result.records:
        assert (writer.images_dir / f"{record.edition}.png").exists()
        payload = json.loads((writer.json_dir / f"{record.edition}.json").read_text())
        assert payload["dna"] == record.content_hash
        assert payload["name"] == f"Test #{record.edition}"
    collection = json.loads((writer.json_dir / "_metadata.json").read_text())
    assert [entry["edition"] for entry in collection] == result.editions


@pytest.mark.asyncio
async def test_missing_rule_value_fails_setup_in_strict_mode(make_layer, settings_factory) -> None:
    make_layer("Background", ["Night.png"])
    make_layer("Hat", ["Cap.png"])
    orchestrator = CompositionOrchestrator(settings_factory())
    configuration = _configuration(
        1,
        ["Background", "Hat"],
        dependencies=[DependencyRule(layerA="Background", valueA="Night", layerB="Hat", valueB="Tiara")],
    )
    with pytest.raises(SetupError):
        await orchestrator.run(_config(configuration))


@pytest.mark.asyncio
async def test_missing_rule_value_degrades_in_lenient_mode(make_layer, settings_factory) -> None:
    make_layer("Background", ["Night.png"])
    make_layer("Hat", ["Cap.png"])
    orchestrator = CompositionOrchestrator(settings_factory(strict_rules=False))
    configuration = _configuration(
        1,
        ["Background", "Hat"],
        dependencies=[DependencyRule(layerA="Background", valueA="Night", layerB="Hat", valueB="Tiara")],
    )
    with pytest.raises(ConfigurationError):
        await orchestrator.run(_config(configuration))
