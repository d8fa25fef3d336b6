"""
Push-down / residual split of search predicates.

Each source advertises which (field, op) pairs its query language can
evaluate. Supported predicates are sent to the source; everything else is
evaluated locally on the fetched batch. The split is a pure function of its
inputs, which cursor replay relies on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, FrozenSet, Iterable, List, Sequence, Tuple

from .models import AgentRecord, FilterSpec, Predicate, PredicateOp

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceCapabilities:
    """The (field, op) pairs a source evaluates server-side."""
    supported: FrozenSet[Tuple[str, PredicateOp]] = frozenset()

    def supports(self, predicate: Predicate) -> bool:
        return (predicate.field, predicate.op) in self.supported

    def with_support(self, *pairs: Tuple[str, PredicateOp]) -> SourceCapabilities:
        return SourceCapabilities(self.supported | frozenset(pairs))

    def without_support(self, *pairs: Tuple[str, PredicateOp]) -> SourceCapabilities:
        return SourceCapabilities(self.supported - frozenset(pairs))


@lru_cache(maxsize=None)
def load_default_capabilities() -> SourceCapabilities:
    """Capability table of a stock agent0 subgraph.

    Substring and contains-any predicates stay residual; a source that can
    evaluate them has to opt in with SourceCapabilities.with_support().
    """
    eq = PredicateOp.EQ
    return SourceCapabilities(frozenset({
        ("active", eq),
        ("x402support", eq),
        ("mcp", eq),
        ("a2a", eq),
        ("did", eq),
        ("ens", eq),
        ("name", eq),
        ("owner", eq),
        ("owner", PredicateOp.IN),
        ("operators", PredicateOp.ARRAY_CONTAINS),
        ("supportedTrusts", PredicateOp.ARRAY_CONTAINS),
        ("a2aSkills", PredicateOp.ARRAY_CONTAINS),
        ("mcpTools", PredicateOp.ARRAY_CONTAINS),
        ("mcpPrompts", PredicateOp.ARRAY_CONTAINS),
        ("mcpResources", PredicateOp.ARRAY_CONTAINS),
    }))


def split_filters(
    filters: FilterSpec,
    capabilities: SourceCapabilities,
) -> Tuple[FilterSpec, FilterSpec]:
    """Partition predicates into (push_down, residual), preserving order."""
    push_down: List[Predicate] = []
    residual: List[Predicate] = []
    for predicate in filters:
        if capabilities.supports(predicate):
            push_down.append(predicate)
        else:
            residual.append(predicate)
    return tuple(push_down), tuple(residual)


def _fold(value: Any) -> Any:
    return value.casefold() if isinstance(value, str) else value


def _as_sequence(value: Any) -> Sequence[Any]:
    if value is None:
        return ()
    if isinstance(value, (list, tuple)):
        return value
    return (value,)


def matches(record: AgentRecord, predicate: Predicate) -> bool:
    """Evaluate a single predicate against a record."""
    value = getattr(record, predicate.field, None)
    op = predicate.op

    if op is PredicateOp.EQ:
        return value == predicate.value
    if op is PredicateOp.EQ_NOCASE:
        return value is not None and _fold(value) == _fold(predicate.value)
    if op is PredicateOp.CONTAINS:
        return isinstance(value, str) and _fold(predicate.value) in value.casefold()
    if op is PredicateOp.IN:
        return value in predicate.value
    if op is PredicateOp.ARRAY_CONTAINS:
        present = set(_as_sequence(value))
        return all(item in present for item in predicate.value)
    if op is PredicateOp.ARRAY_CONTAINS_ANY:
        present = set(_as_sequence(value))
        return any(item in present for item in predicate.value)
    raise ValueError(f"Unknown predicate op: {op}")


def apply_residual(records: Iterable[AgentRecord], residual: FilterSpec) -> List[AgentRecord]:
    """Keep the records that satisfy every residual predicate."""
    if not residual:
        return list(records)
    return [record for record in records if all(matches(record, p) for p in residual)]
