from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from ..services.exceptions import SetupError


class BlendMode(str, Enum):
    SOURCE_OVER = "source-over"
    MULTIPLY = "multiply"
    SCREEN = "screen"
    DARKEN = "darken"
    LIGHTEN = "lighten"
    DIFFERENCE = "difference"
    LIGHTER = "lighter"


class Network(str, Enum):
    ETH = "eth"
    SOL = "sol"


class TextBaseline(str, Enum):
    TOP = "top"
    HANGING = "hanging"
    MIDDLE = "middle"
    ALPHABETIC = "alphabetic"
    IDEOGRAPHIC = "ideographic"
    BOTTOM = "bottom"


class TextAlign(str, Enum):
    LEFT = "left"
    RIGHT = "right"
    CENTER = "center"
    START = "start"
    END = "end"


class _ConfigModel(BaseModel):
    # Accept both the snake_case field names and the camelCase keys used by
    # existing layer configuration files.
    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class LayerOptions(_ConfigModel):
    display_name: Optional[str] = Field(
        default=None, alias="displayName", min_length=1, max_length=128
    )
    blend: BlendMode = Field(default=BlendMode.SOURCE_OVER)
    opacity: float = Field(default=1.0, ge=0.0, le=1.0)
    bypass_dna: bool = Field(default=False, alias="bypassDNA")


class LayerSpec(_ConfigModel):
    name: str = Field(..., min_length=1, max_length=128)
    options: LayerOptions = Field(default_factory=LayerOptions)


class RuleSpec(_ConfigModel):
    """`source_layer == source_value` conditions the `target_layer` candidates."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid", frozen=True)

    source_layer: str = Field(..., alias="layerA", min_length=1)
    source_value: str = Field(..., alias="valueA", min_length=1)
    target_layer: str = Field(..., alias="layerB", min_length=1)
    target_value: str = Field(..., alias="valueB", min_length=1)


class DependencyRule(RuleSpec):
    """Forces the target layer onto `target_value` while the condition holds."""


class ExclusionRule(RuleSpec):
    """Forbids `target_value` on the target layer while the condition holds."""


class LayerConfiguration(_ConfigModel):
    grow_edition_size_to: int = Field(..., ge=1, alias="growEditionSizeTo")
    layers_order: list[LayerSpec] = Field(..., min_length=1, alias="layersOrder")
    dependency_rules: list[DependencyRule] = Field(
        default_factory=list, alias="dependencyRules"
    )
    mutually_exclusive_rules: list[ExclusionRule] = Field(
        default_factory=list, alias="mutuallyExclusiveRules"
    )


class FormatOptions(_ConfigModel):
    width: int = Field(default=512, ge=1, le=8192)
    height: int = Field(default=512, ge=1, le=8192)
    smoothing: bool = Field(default=False)


class BackgroundOptions(_ConfigModel):
    generate: bool = Field(default=True)
    brightness: str = Field(default="80%", max_length=8)
    static: bool = Field(default=False)
    default: str = Field(default="#000000", max_length=32)


class TextOptions(_ConfigModel):
    only: bool = Field(default=False)
    color: str = Field(default="#ffffff", max_length=32)
    size: int = Field(default=20, ge=1, le=512)
    x_gap: int = Field(default=40, ge=0, alias="xGap")
    y_gap: int = Field(default=40, ge=0, alias="yGap")
    spacer: str = Field(default=" => ", max_length=16)
    weight: str = Field(default="regular", max_length=32)
    family: str = Field(default="Courier", max_length=64)
    baseline: TextBaseline = Field(default=TextBaseline.TOP)
    align: TextAlign = Field(default=TextAlign.LEFT)
    font_path: Optional[Path] = Field(default=None, alias="fontPath")


class GifOptions(_ConfigModel):
    export: bool = Field(default=False)
    repeat: int = Field(default=0, ge=-1)
    # Accepted for existing configs; frames are written with Pillow defaults.
    quality: int = Field(default=100, ge=1, le=100)
    delay: int = Field(default=500, ge=1)


class SolanaCreator(_ConfigModel):
    address: str = Field(..., min_length=1)
    share: int = Field(..., ge=0, le=100)


class SolanaMetadata(_ConfigModel):
    symbol: str = Field(default="YC", max_length=16)
    seller_fee_basis_points: int = Field(default=1000, ge=0, le=10_000)
    external_url: str = Field(default="https://www.youtube.com/c/hashlipsnft")
    creators: list[SolanaCreator] = Field(default_factory=list)


class MetadataOptions(_ConfigModel):
    name_prefix: str = Field(default="Your Collection", alias="namePrefix")
    description: str = Field(default="Remember to replace this description")
    base_uri: str = Field(default="ipfs://NewUriToReplace", alias="baseUri")
    network: Network = Field(default=Network.ETH)
    extra_metadata: dict[str, Any] = Field(default_factory=dict, alias="extraMetadata")
    solana: SolanaMetadata = Field(default_factory=SolanaMetadata)


class GenerationConfig(_ConfigModel):
    layer_configurations: list[LayerConfiguration] = Field(
        ..., min_length=1, alias="layerConfigurations"
    )
    format: FormatOptions = Field(default_factory=FormatOptions)
    background: BackgroundOptions = Field(default_factory=BackgroundOptions)
    text: TextOptions = Field(default_factory=TextOptions)
    gif: GifOptions = Field(default_factory=GifOptions)
    metadata: MetadataOptions = Field(default_factory=MetadataOptions)

    @model_validator(mode="after")
    def _check_growth(self) -> "GenerationConfig":
        previous = 0
        for index, configuration in enumerate(self.layer_configurations):
            if configuration.grow_edition_size_to <= previous:
                raise ValueError(
                    f"layer configuration {index} must grow the edition size past {previous}"
                )
            previous = configuration.grow_edition_size_to
        return self

    @property
    def total_editions(self) -> int:
        return self.layer_configurations[-1].grow_edition_size_to


def load_generation_config(path: Path) -> GenerationConfig:
    """Read and validate a JSON generation config."""

    try:
        payload = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise SetupError(f"cannot read generation config {path}: {exc}") from exc
    try:
        return GenerationConfig.model_validate_json(payload)
    except ValidationError as exc:
        raise SetupError(f"invalid generation config {path}: {exc}") from exc
