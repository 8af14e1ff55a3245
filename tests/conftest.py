from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, Iterable, List, Sequence

import pytest
from PIL import Image

from traitforge.app.settings import Settings

LayerFactory = Callable[[str, Iterable[str]], Path]


class ScriptedRng:
    """Stands in for ``numpy.random.Generator`` with predetermined draws."""

    def __init__(self, draws: Sequence[int]) -> None:
        self._draws: List[int] = list(draws)
        self.calls: List[tuple[int, int]] = []

    def integers(self, low: int, high: int) -> int:
        self.calls.append((low, high))
        value = self._draws.pop(0) if self._draws else 0
        assert low <= value < high, f"scripted draw {value} outside [{low}, {high})"
        return value


def _color_for(name: str) -> tuple[int, int, int, int]:
    seed = sum(ord(char) for char in name)
    return (seed * 37 % 256, seed * 61 % 256, seed * 89 % 256, 255)


@pytest.fixture
def layers_dir(tmp_path: Path) -> Path:
    path = tmp_path / "layers"
    path.mkdir()
    return path


@pytest.fixture
def make_layer(layers_dir: Path) -> LayerFactory:
    """Create ``layers/<name>/`` holding one small PNG per filename."""

    def _make(name: str, filenames: Iterable[str]) -> Path:
        directory = layers_dir / name
        directory.mkdir(parents=True, exist_ok=True)
        for filename in filenames:
            Image.new("RGBA", (8, 8), _color_for(filename)).save(directory / filename, format="PNG")
        return directory

    return _make


@pytest.fixture
def settings_factory(tmp_path: Path, layers_dir: Path) -> Callable[..., Settings]:
    def _settings(**overrides: object) -> Settings:
        values: Dict[str, object] = {
            "layers_dir": layers_dir,
            "build_dir": tmp_path / "build",
            "config_path": tmp_path / "traitforge.json",
            "seed": 1234,
        }
        values.update(overrides)
        return Settings(**values)

    return _settings


@pytest.fixture
def scripted_rng() -> type[ScriptedRng]:
    return ScriptedRng
