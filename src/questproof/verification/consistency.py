"""Stats consistency between an original verification and a re-fetch."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any


@dataclass
class ConsistencyReport:
    score: float
    compared: int
    warnings: list[str] = field(default_factory=list)


def flatten(data: Mapping[str, Any], prefix: str = "") -> dict[str, Any]:
    """{'a': {'b': 1}} -> {'a.b': 1}. Lists are treated as leaves."""
    leaves: dict[str, Any] = {}
    for key, value in data.items():
        path = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, Mapping):
            leaves.update(flatten(value, path))
        else:
            leaves[path] = value
    return leaves


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _numeric_similarity(old: float, new: float) -> float:
    change = abs(new - old) / max(abs(old), 1.0)
    return max(0.0, 1.0 - change)


def compare_stats(
    original: Mapping[str, Any],
    fresh: Mapping[str, Any],
    cumulative_fields: Iterable[str] = (),
) -> ConsistencyReport:
    """Mean per-leaf similarity in [0, 1] over the original's leaves.

    Numeric leaves score by relative change. Cumulative counters that go
    down score 0. Categorical leaves score 1 when equal and 0.5 when
    changed. Leaves missing from the fresh stats score 0.
    """
    cumulative = frozenset(cumulative_fields)
    before = flatten(original)
    after = flatten(fresh)
    if not before:
        return ConsistencyReport(score=1.0, compared=0)

    warnings: list[str] = []
    total = 0.0
    for path, old in before.items():
        if path not in after:
            warnings.append(f"{path} missing from fresh stats")
            continue
        new = after[path]
        if _is_number(old) and _is_number(new):
            if path in cumulative and new < old:
                warnings.append(f"{path} decreased from {old} to {new}")
                continue
            total += _numeric_similarity(float(old), float(new))
        elif old == new:
            total += 1.0
        else:
            total += 0.5

    return ConsistencyReport(score=round(total / len(before), 4), compared=len(before), warnings=warnings)
