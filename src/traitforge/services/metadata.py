"""Token metadata assembly for accepted editions."""

from __future__ import annotations

import hashlib
import time
from typing import Any, Callable, Dict, Optional

from ..app.models import MetadataOptions, Network
from .types import EditionRecord

COMPILER = "traitforge"


def content_hash(raw_dna: str) -> str:
    """SHA-1 hex digest identifying a raw DNA string."""

    return hashlib.sha1(raw_dna.encode("utf-8")).hexdigest()


def _epoch_millis() -> int:
    return int(time.time() * 1000)


class MetadataBuilder:
    """Builds the JSON metadata document of one edition from its record."""

    def __init__(
        self,
        options: MetadataOptions,
        *,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self._options = options
        self._clock = clock or _epoch_millis

    @property
    def network(self) -> Network:
        return self._options.network

    def build(self, record: EditionRecord) -> Dict[str, Any]:
        options = self._options
        edition = record.edition
        payload: Dict[str, Any] = {
            "name": f"{options.name_prefix} #{edition}",
            "description": options.description,
            "image": f"{options.base_uri}/{edition}.png",
            "dna": record.content_hash,
            "edition": edition,
            "date": self._clock(),
            **options.extra_metadata,
            "attributes": record.attributes,
            "compiler": COMPILER,
        }
        if options.network == Network.SOL:
            return self._solana_payload(payload, edition)
        return payload

    def _solana_payload(self, base: Dict[str, Any], edition: int) -> Dict[str, Any]:
        solana = self._options.solana
        return {
            "name": base["name"],
            "symbol": solana.symbol,
            "description": base["description"],
            "seller_fee_basis_points": solana.seller_fee_basis_points,
            "image": f"{edition}.png",
            "external_url": solana.external_url,
            "edition": edition,
            **self._options.extra_metadata,
            "attributes": base["attributes"],
            "properties": {
                "files": [{"uri": f"{edition}.png", "type": "image/png"}],
                "category": "image",
                "creators": [creator.model_dump() for creator in solana.creators],
            },
        }
