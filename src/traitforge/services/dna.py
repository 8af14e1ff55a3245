"""DNA encoding, decoding and normalisation.

A DNA string holds one ``{id}:{filename}`` token per layer, in layer order,
joined with ``-``. Layers flagged ``bypassDNA`` append ``?bypassDNA=true`` to
their token; those tokens are still decoded but are dropped from the
normalized form used for uniqueness checks.
"""

from __future__ import annotations

from typing import Dict, Mapping, Sequence

from .exceptions import DecodeMismatch
from .types import BYPASS_DNA_OPTION, DNA_DELIMITER, Element, Layer, Selection

_BYPASS_SUFFIX = f"?{BYPASS_DNA_OPTION}=true"


def encode_token(element: Element, layer: Layer) -> str:
    token = f"{element.id}:{element.filename}"
    if layer.bypass_dna:
        token += _BYPASS_SUFFIX
    return token


def encode_dna(layers: Sequence[Layer], selection: Mapping[str, Element]) -> str:
    return DNA_DELIMITER.join(encode_token(selection[layer.name], layer) for layer in layers)


def strip_options(token: str) -> str:
    head, _, _ = token.partition("?")
    return head


def parse_options(token: str) -> Dict[str, str]:
    _, sep, query = token.partition("?")
    if not sep:
        return {}
    options: Dict[str, str] = {}
    for setting in query.split("&"):
        if not setting:
            continue
        key, _, value = setting.partition("=")
        options[key] = value
    return options


def token_element_id(token: str) -> int:
    head = strip_options(token)
    return int(head.split(":", 1)[0])


def decode_dna(dna: str, layers: Sequence[Layer]) -> Selection:
    tokens = dna.split(DNA_DELIMITER)
    if len(tokens) != len(layers):
        raise DecodeMismatch(
            layers[len(tokens)].name if len(tokens) < len(layers) else "<extra>",
            dna,
        )
    chosen: Dict[str, Element] = {}
    for layer, token in zip(layers, tokens):
        try:
            element_id = token_element_id(token)
        except ValueError as exc:
            raise DecodeMismatch(layer.name, token) from exc
        element = layer.element_by_id(element_id)
        if element is None:
            raise DecodeMismatch(layer.name, token)
        chosen[layer.name] = element
    return Selection(chosen)


def is_bypassed(token: str) -> bool:
    return parse_options(token).get(BYPASS_DNA_OPTION) == "true"


def normalize_dna(dna: str) -> str:
    kept = [token for token in dna.split(DNA_DELIMITER) if not is_bypassed(token)]
    return DNA_DELIMITER.join(kept)
