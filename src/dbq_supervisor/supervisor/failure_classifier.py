"""Deterministic classification of job completions for restart policy."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import NamedTuple

from dbq_supervisor.supervisor.models import CompletionResult, Failure


class CompletionKind(str, Enum):
    """How the supervisor should react to one poll result."""

    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    RETRYABLE_FAILURE = "retryable_failure"
    ANOMALY = "anomaly"


class FailureKey(NamedTuple):
    """Identity used to collapse shard-level duplicates for display."""

    node: str | None
    index: str | None
    reason: str


@dataclass(slots=True, frozen=True)
class CompletionClassification:
    """Normalized classification result."""

    kind: CompletionKind
    summary: frozenset[FailureKey] = frozenset()

    @property
    def is_terminal(self) -> bool:
        return self.kind in {CompletionKind.SUCCESS, CompletionKind.ANOMALY}


def classify_completion(
    *,
    completed: bool,
    result: CompletionResult | None,
) -> CompletionClassification:
    """Classify one status poll into in-progress, success, failure or anomaly."""

    if not completed:
        return CompletionClassification(kind=CompletionKind.IN_PROGRESS)
    if result is None:
        return CompletionClassification(kind=CompletionKind.ANOMALY)
    if result.failures:
        return CompletionClassification(
            kind=CompletionKind.RETRYABLE_FAILURE,
            summary=summarize_failures(result.failures),
        )
    return CompletionClassification(kind=CompletionKind.SUCCESS)


def summarize_failures(failures: tuple[Failure, ...] | list[Failure]) -> frozenset[FailureKey]:
    return frozenset(
        FailureKey(node=failure.node, index=failure.index, reason=failure.reason.reason)
        for failure in failures
    )


def render_failure_summary(summary: frozenset[FailureKey]) -> list[str]:
    """Operator-facing lines, one per distinct failure."""

    ordered = sorted(summary, key=lambda key: (key.node or "", key.index or "", key.reason))
    return [
        f"  node={key.node or '-'} index={key.index or '-'} reason={key.reason}" for key in ordered
    ]
