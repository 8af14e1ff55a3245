"""
CLI entry point to generate a collection through the composition orchestrator.

Example:
    python -m traitforge.generate --config traitforge.json --layers-dir layers --seed 7
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from .app.models import load_generation_config
from .app.settings import Settings, get_settings
from .services.build import BuildWriter
from .services.exceptions import GenerationFailure
from .services.metadata import MetadataBuilder
from .services.orchestrator import CompositionOrchestrator
from .services.renderer import LayerRenderer
from .services.selector import WeightedSelector, spawn_generators
from .services.types import GenerationResult


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate a trait collection from layer images.")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Generation config JSON (defaults to settings).",
    )
    parser.add_argument(
        "--layers-dir",
        type=Path,
        default=None,
        help="Directory holding one folder per layer.",
    )
    parser.add_argument(
        "--build-dir",
        type=Path,
        default=None,
        help="Output directory for images and metadata (wiped first).",
    )
    parser.add_argument("--seed", type=int, default=None, help="Seed for reproducible runs.")
    parser.add_argument(
        "--tolerance",
        type=int,
        default=None,
        help="Duplicate DNA rejections allowed per batch before aborting.",
    )
    parser.add_argument(
        "--shuffle",
        action="store_true",
        help="Shuffle edition numbers across layer configurations.",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    return parser.parse_args(argv)


def _configure_logging(debug: bool) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if debug else "INFO")


async def _run(
    *,
    config_path: Optional[Path] = None,
    layers_dir: Optional[Path] = None,
    build_dir: Optional[Path] = None,
    seed: Optional[int] = None,
    tolerance: Optional[int] = None,
    shuffle: bool = False,
    debug: bool = False,
) -> GenerationResult:
    settings_kwargs: dict[str, object] = {}
    if config_path is not None:
        settings_kwargs["config_path"] = config_path
    if layers_dir is not None:
        settings_kwargs["layers_dir"] = layers_dir
    if build_dir is not None:
        settings_kwargs["build_dir"] = build_dir
    if seed is not None:
        settings_kwargs["seed"] = seed
    if tolerance is not None:
        settings_kwargs["unique_dna_tolerance"] = tolerance
    if shuffle:
        settings_kwargs["shuffle_layer_configurations"] = True
    if debug:
        settings_kwargs["debug_logs"] = True

    settings = Settings(**settings_kwargs) if settings_kwargs else get_settings()
    settings.ensure_directories()
    _configure_logging(settings.debug_logs)
    config = load_generation_config(settings.config_path)

    selection_rng, shuffle_rng, render_rng = spawn_generators(settings.seed, 3)
    writer = BuildWriter(settings.build_dir, gif=config.gif)
    writer.setup()
    renderer = LayerRenderer(
        config.format,
        background=config.background,
        text=config.text,
        gif=config.gif,
        rng=render_rng,
    )
    orchestrator = CompositionOrchestrator(
        settings,
        WeightedSelector(selection_rng),
        metadata=MetadataBuilder(config.metadata),
        renderer=renderer,
        writer=writer,
        shuffle_rng=shuffle_rng,
    )
    result = await orchestrator.run(config)

    print(f"editions      : {len(result.records)}")
    print(f"build_dir     : {writer.build_dir}")
    print(f"duplicates    : {sum(result.duplicates.values())}")
    return result


def main(argv: Optional[list[str]] = None) -> int:
    args = _parse_args(argv)
    try:
        asyncio.run(
            _run(
                config_path=args.config,
                layers_dir=args.layers_dir,
                build_dir=args.build_dir,
                seed=args.seed,
                tolerance=args.tolerance,
                shuffle=args.shuffle,
                debug=args.debug,
            )
        )
    except GenerationFailure as exc:
        logger.error("generation failed: {}", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
