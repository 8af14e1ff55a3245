from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..services.types import DNA_DELIMITER


def _default_layers_dir() -> Path:
    return Path.cwd() / "layers"


def _default_build_dir() -> Path:
    return Path.cwd() / "build"


def _default_config_path() -> Path:
    return Path.cwd() / "traitforge.json"


class Settings(BaseSettings):
    """Runtime configuration for a traitforge generation run."""

    model_config = SettingsConfigDict(
        env_prefix="TRAITFORGE_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    layers_dir: Path = Field(default_factory=_default_layers_dir)
    build_dir: Path = Field(default_factory=_default_build_dir)
    config_path: Path = Field(default_factory=_default_config_path)
    rarity_delimiter: str = Field(
        default="#",
        min_length=1,
        max_length=4,
        description="Separator between a trait name and its rarity weight in file names.",
    )
    unique_dna_tolerance: int = Field(
        default=10_000,
        ge=1,
        description="Duplicate DNA rejections allowed per batch before the run aborts.",
    )
    shuffle_layer_configurations: bool = Field(
        default=False,
        description="Shuffle edition numbers across all layer configurations.",
    )
    strict_rules: bool = Field(
        default=True,
        description="Fail setup when a rule names a trait value missing from its layer.",
    )
    debug_logs: bool = Field(default=False)
    seed: Optional[int] = Field(
        default=None,
        ge=0,
        description="Seed for trait selection; unseeded runs draw fresh entropy.",
    )

    @model_validator(mode="after")
    def _check_delimiters(self) -> "Settings":
        if DNA_DELIMITER in self.rarity_delimiter:
            raise ValueError(
                f"rarity delimiter may not contain the DNA delimiter '{DNA_DELIMITER}'"
            )
        return self

    def ensure_directories(self) -> None:
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        self.build_dir.mkdir(parents=True, exist_ok=True)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    settings = Settings()
    settings.ensure_directories()
    return settings
