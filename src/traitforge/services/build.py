"""Build directory layout and artifact persistence."""

from __future__ import annotations

import json
import shutil
from pathlib import Path
from typing import Any, Dict, Sequence

from loguru import logger
from PIL import Image

from ..app.models import GifOptions
from .renderer import save_gif


class BuildWriter:
    """Writes images and metadata JSON below ``build_dir``."""

    def __init__(self, build_dir: Path, *, gif: GifOptions | None = None) -> None:
        self._build_dir = Path(build_dir)
        self._gif = gif or GifOptions()

    @property
    def build_dir(self) -> Path:
        return self._build_dir

    @property
    def json_dir(self) -> Path:
        return self._build_dir / "json"

    @property
    def images_dir(self) -> Path:
        return self._build_dir / "images"

    @property
    def gifs_dir(self) -> Path:
        return self._build_dir / "gifs"

    def setup(self) -> None:
        """Start from an empty build directory."""

        if self._build_dir.exists():
            shutil.rmtree(self._build_dir)
        self.json_dir.mkdir(parents=True)
        self.images_dir.mkdir(parents=True)
        if self._gif.export:
            self.gifs_dir.mkdir(parents=True)

    def save_image(self, edition: int, image: Image.Image) -> Path:
        path = self.images_dir / f"{edition}.png"
        image.save(path, format="PNG")
        return path

    def save_gif(self, edition: int, frames: Sequence[Image.Image]) -> Path:
        path = self.gifs_dir / f"{edition}.gif"
        path.parent.mkdir(parents=True, exist_ok=True)
        save_gif(frames, path, self._gif)
        return path

    def write_edition(self, metadata: Dict[str, Any]) -> Path:
        edition = metadata["edition"]
        logger.debug("Writing metadata for {}: {}", edition, json.dumps(metadata))
        path = self.json_dir / f"{edition}.json"
        path.write_text(json.dumps(metadata, indent=2), encoding="utf-8")
        return path

    def write_collection(self, metadata_list: Sequence[Dict[str, Any]]) -> Path:
        path = self.json_dir / "_metadata.json"
        path.write_text(json.dumps(list(metadata_list), indent=2), encoding="utf-8")
        return path
