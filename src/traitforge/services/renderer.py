"""Pillow compositor turning an accepted selection into an image."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

import numpy as np
from loguru import logger
from PIL import Image, ImageColor, ImageDraw, ImageFont

from ..app.models import (
    BackgroundOptions,
    BlendMode,
    FormatOptions,
    GifOptions,
    TextAlign,
    TextBaseline,
    TextOptions,
)
from .types import Layer, Selection

_HORIZONTAL_ANCHORS = {
    TextAlign.LEFT: "l",
    TextAlign.START: "l",
    TextAlign.CENTER: "m",
    TextAlign.RIGHT: "r",
    TextAlign.END: "r",
}
_VERTICAL_ANCHORS = {
    TextBaseline.TOP: "t",
    TextBaseline.HANGING: "a",
    TextBaseline.MIDDLE: "m",
    TextBaseline.ALPHABETIC: "s",
    TextBaseline.IDEOGRAPHIC: "d",
    TextBaseline.BOTTOM: "b",
}


@dataclass
class RenderedEdition:
    image: Image.Image
    frames: List[Image.Image] = field(default_factory=list)


def _blend_colors(source: np.ndarray, backdrop: np.ndarray, mode: BlendMode) -> np.ndarray:
    if mode == BlendMode.MULTIPLY:
        return source * backdrop
    if mode == BlendMode.SCREEN:
        return source + backdrop - source * backdrop
    if mode == BlendMode.DARKEN:
        return np.minimum(source, backdrop)
    if mode == BlendMode.LIGHTEN:
        return np.maximum(source, backdrop)
    if mode == BlendMode.DIFFERENCE:
        return np.abs(source - backdrop)
    return source


def composite(
    canvas: np.ndarray,
    layer: np.ndarray,
    *,
    blend: BlendMode = BlendMode.SOURCE_OVER,
    opacity: float = 1.0,
) -> np.ndarray:
    """Draw ``layer`` over ``canvas``; both are float RGBA arrays in [0, 1]."""

    src_rgb = layer[..., :3]
    src_alpha = layer[..., 3:4] * float(opacity)
    dst_rgb = canvas[..., :3]
    dst_alpha = canvas[..., 3:4]

    if blend == BlendMode.LIGHTER:
        out_alpha = np.clip(src_alpha + dst_alpha, 0.0, 1.0)
        premultiplied = src_rgb * src_alpha + dst_rgb * dst_alpha
    else:
        mixed = (1.0 - dst_alpha) * src_rgb + dst_alpha * _blend_colors(src_rgb, dst_rgb, blend)
        out_alpha = src_alpha + dst_alpha * (1.0 - src_alpha)
        premultiplied = mixed * src_alpha + dst_rgb * dst_alpha * (1.0 - src_alpha)

    safe_alpha = np.where(out_alpha > 0.0, out_alpha, 1.0)
    out_rgb = np.clip(premultiplied / safe_alpha, 0.0, 1.0)
    return np.concatenate([out_rgb, out_alpha], axis=-1).astype(np.float32)


def _to_array(image: Image.Image) -> np.ndarray:
    return np.asarray(image.convert("RGBA"), dtype=np.float32) / 255.0


def _to_image(canvas: np.ndarray) -> Image.Image:
    data = np.clip(canvas * 255.0 + 0.5, 0, 255).astype(np.uint8)
    return Image.fromarray(data)


class LayerRenderer:
    """Composites the selected layer images in order onto a fixed-size canvas."""

    def __init__(
        self,
        image_format: FormatOptions,
        *,
        background: Optional[BackgroundOptions] = None,
        text: Optional[TextOptions] = None,
        gif: Optional[GifOptions] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        self._format = image_format
        self._background = background or BackgroundOptions(generate=False)
        self._text = text or TextOptions()
        self._gif = gif or GifOptions()
        self._rng = rng if rng is not None else np.random.default_rng()
        self._font: Optional[ImageFont.ImageFont | ImageFont.FreeTypeFont] = None

    @property
    def size(self) -> tuple[int, int]:
        return (self._format.width, self._format.height)

    async def render(self, selection: Selection, layers: Sequence[Layer]) -> RenderedEdition:
        if self._text.only:
            sources: List[Optional[Image.Image]] = [None] * len(layers)
        else:
            # All images of one edition load together; editions never overlap.
            sources = list(
                await asyncio.gather(
                    *(
                        asyncio.to_thread(self._load_image, selection[layer.name].path)
                        for layer in layers
                    )
                )
            )
        return self._compose(selection, layers, sources)

    def background_color(self) -> str:
        if self._background.static:
            return self._background.default
        hue = int(self._rng.integers(0, 360))
        return f"hsl({hue}, 100%, {self._background.brightness})"

    def _load_image(self, path: Path) -> Image.Image:
        resample = Image.Resampling.LANCZOS if self._format.smoothing else Image.Resampling.NEAREST
        with Image.open(path) as source:
            image = source.convert("RGBA")
        if image.size != self.size:
            image = image.resize(self.size, resample=resample)
        return image

    def _compose(
        self,
        selection: Selection,
        layers: Sequence[Layer],
        sources: Sequence[Optional[Image.Image]],
    ) -> RenderedEdition:
        width, height = self.size
        canvas = np.zeros((height, width, 4), dtype=np.float32)
        if self._background.generate:
            color = self.background_color()
            fill = Image.new("RGBA", self.size, ImageColor.getcolor(color, "RGBA"))
            canvas = _to_array(fill)
            logger.debug("Filled background with {}", color)

        frames: List[Image.Image] = []
        for position, (layer, source) in enumerate(zip(layers, sources)):
            if source is None:
                source = self._text_layer(
                    f"{layer.name}{self._text.spacer}{selection[layer.name].name}", position
                )
            canvas = composite(canvas, _to_array(source), blend=layer.blend, opacity=layer.opacity)
            if self._gif.export:
                frames.append(_to_image(canvas))
        return RenderedEdition(image=_to_image(canvas), frames=frames)

    def _text_layer(self, line: str, position: int) -> Image.Image:
        overlay = Image.new("RGBA", self.size, (0, 0, 0, 0))
        draw = ImageDraw.Draw(overlay)
        font = self._load_font()
        anchor = None
        if isinstance(font, ImageFont.FreeTypeFont):
            anchor = _HORIZONTAL_ANCHORS[self._text.align] + _VERTICAL_ANCHORS[self._text.baseline]
        draw.text(
            (self._text.x_gap, self._text.y_gap * (position + 1)),
            line,
            fill=self._text.color,
            font=font,
            anchor=anchor,
        )
        return overlay

    def _load_font(self) -> ImageFont.ImageFont | ImageFont.FreeTypeFont:
        if self._font is None:
            if self._text.font_path is not None:
                self._font = ImageFont.truetype(str(self._text.font_path), self._text.size)
            else:
                try:
                    self._font = ImageFont.truetype(self._text.family, self._text.size)
                except OSError:
                    logger.debug("Font family {} not found, using the default font", self._text.family)
                    self._font = ImageFont.load_default(size=self._text.size)
        return self._font


def save_gif(frames: Sequence[Image.Image], path: Path, gif: GifOptions) -> None:
    """Write layer-by-layer frames as an animated GIF."""

    if not frames:
        raise ValueError("no frames to write")
    options: dict[str, object] = {
        "save_all": True,
        "append_images": list(frames[1:]),
        "duration": gif.delay,
    }
    if gif.repeat >= 0:
        options["loop"] = gif.repeat
    frames[0].save(path, format="GIF", **options)
