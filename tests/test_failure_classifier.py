from __future__ import annotations

import allure

from dbq_supervisor.supervisor.failure_classifier import (
    CompletionKind,
    FailureKey,
    classify_completion,
    render_failure_summary,
)
from dbq_supervisor.supervisor.models import CompletionResult, ProgressSnapshot
from support import failure

pytestmark = [
    allure.epic("Job Supervision"),
    allure.feature("Failure Classification"),
]


def _result(*failures) -> CompletionResult:
    return CompletionResult(status=ProgressSnapshot(total=10, deleted=10), failures=failures)


def test_not_completed_is_in_progress_even_with_result() -> None:
    classified = classify_completion(completed=False, result=_result())
    assert classified.kind == CompletionKind.IN_PROGRESS
    assert not classified.is_terminal


def test_completed_without_result_is_anomaly() -> None:
    classified = classify_completion(completed=True, result=None)
    assert classified.kind == CompletionKind.ANOMALY
    assert classified.is_terminal


def test_completed_with_empty_failures_is_success() -> None:
    classified = classify_completion(completed=True, result=_result())
    assert classified.kind == CompletionKind.SUCCESS
    assert classified.summary == frozenset()


def test_failures_are_deduplicated_by_node_index_and_reason() -> None:
    classified = classify_completion(
        completed=True,
        result=_result(
            failure("n1", "i1", "r1", shard=0),
            failure("n1", "i1", "r1", shard=3),
            failure("n2", "i2", "r2"),
        ),
    )
    assert classified.kind == CompletionKind.RETRYABLE_FAILURE
    assert len(classified.summary) == 2
    assert classified.summary == {
        FailureKey(node="n1", index="i1", reason="r1"),
        FailureKey(node="n2", index="i2", reason="r2"),
    }


def test_render_failure_summary_is_stable_and_fills_missing_fields() -> None:
    lines = render_failure_summary(
        frozenset(
            {
                FailureKey(node="n2", index="i2", reason="queue full"),
                FailureKey(node=None, index="i1", reason="mapping conflict"),
            },
        ),
    )
    assert lines == [
        "  node=- index=i1 reason=mapping conflict",
        "  node=n2 index=i2 reason=queue full",
    ]
