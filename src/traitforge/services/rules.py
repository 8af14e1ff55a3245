"""Dependency and mutual-exclusion rule evaluation."""

from __future__ import annotations

from collections import defaultdict
from typing import Dict, List, Mapping, Sequence, Tuple

from loguru import logger

from ..app.models import DependencyRule, ExclusionRule, RuleSpec
from .exceptions import SetupError
from .types import Element, Layer

RuleKey = Tuple[str, str, str]


class RuleIndex:
    """Rules of one layer configuration, keyed by (source layer, source value, target layer).

    A rule may only condition a layer that comes later in composition order
    than its source layer, so every lookup during a pass reads choices that
    were already made.
    """

    def __init__(
        self,
        dependencies: Mapping[RuleKey, Tuple[str, ...]],
        exclusions: Mapping[RuleKey, Tuple[str, ...]],
    ) -> None:
        self._dependencies = dict(dependencies)
        self._exclusions = dict(exclusions)

    @classmethod
    def build(
        cls,
        layers: Sequence[Layer],
        dependency_rules: Sequence[DependencyRule] = (),
        exclusion_rules: Sequence[ExclusionRule] = (),
        *,
        strict: bool = True,
    ) -> "RuleIndex":
        by_name = {layer.name: layer for layer in layers}
        by_source = {layer.source_name: layer for layer in layers}

        def resolve(name: str, rule: RuleSpec) -> Layer:
            layer = by_name.get(name) or by_source.get(name)
            if layer is None:
                raise SetupError(f"rule {_describe(rule)} references unknown layer '{name}'")
            return layer

        def check_value(layer: Layer, value: str, rule: RuleSpec) -> None:
            if layer.element_by_name(value) is not None:
                return
            message = f"rule {_describe(rule)} references missing trait '{value}' in layer '{layer.name}'"
            if strict:
                raise SetupError(message)
            logger.warning("{}; the reference is ignored", message)

        def index(rules: Sequence[RuleSpec]) -> Dict[RuleKey, Tuple[str, ...]]:
            grouped: Dict[RuleKey, List[str]] = defaultdict(list)
            for rule in rules:
                source = resolve(rule.source_layer, rule)
                target = resolve(rule.target_layer, rule)
                if source.index >= target.index:
                    raise SetupError(
                        f"rule {_describe(rule)} must reference a layer that comes before "
                        f"'{target.name}' in the layers order"
                    )
                check_value(source, rule.source_value, rule)
                check_value(target, rule.target_value, rule)
                key = (source.name, rule.source_value, target.name)
                if rule.target_value not in grouped[key]:
                    grouped[key].append(rule.target_value)
            return {key: tuple(values) for key, values in grouped.items()}

        return cls(index(dependency_rules), index(exclusion_rules))

    @property
    def rule_count(self) -> int:
        return sum(len(values) for values in self._dependencies.values()) + sum(
            len(values) for values in self._exclusions.values()
        )

    def forced_values(self, selected: Mapping[str, str], layer: Layer) -> Tuple[bool, set[str]]:
        return _collect(self._dependencies, selected, layer.name)

    def excluded_values(self, selected: Mapping[str, str], layer: Layer) -> Tuple[bool, set[str]]:
        return _collect(self._exclusions, selected, layer.name)

    def compute_candidates(
        self,
        selected: Mapping[str, str],
        layer: Layer,
        all_elements: Sequence[Element] | None = None,
    ) -> Tuple[Element, ...]:
        """Elements of ``layer`` still allowed given the trait values chosen so far.

        Dependency rules narrow the candidates to the union of their targets
        (targets missing from the layer are dropped); exclusion rules then
        remove their targets from that result. The returned tuple keeps the
        catalog order and may be empty.
        """

        candidates: Sequence[Element] = tuple(all_elements) if all_elements is not None else layer.elements

        fired, forced = self.forced_values(selected, layer)
        if fired:
            candidates = [element for element in candidates if element.name in forced]

        fired, excluded = self.excluded_values(selected, layer)
        if fired:
            candidates = [element for element in candidates if element.name not in excluded]

        return tuple(candidates)


def _collect(
    table: Mapping[RuleKey, Tuple[str, ...]],
    selected: Mapping[str, str],
    target_layer: str,
) -> Tuple[bool, set[str]]:
    fired = False
    values: set[str] = set()
    for source_layer, source_value in selected.items():
        matched = table.get((source_layer, source_value, target_layer))
        if matched is not None:
            fired = True
            values.update(matched)
    return fired, values


def _describe(rule: RuleSpec) -> str:
    kind = "exclusion" if isinstance(rule, ExclusionRule) else "dependency"
    return (
        f"{kind} {rule.source_layer}={rule.source_value} -> "
        f"{rule.target_layer}={rule.target_value}"
    )
