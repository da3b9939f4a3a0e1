"""Domain models for delete-by-query supervision."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class ConflictPolicy(str, Enum):
    """What the remote does when a document changed under the job."""

    ABORT = "abort"
    PROCEED = "proceed"


@dataclass(slots=True, frozen=True)
class JobOptions:
    """Submission options forwarded to the remote as query parameters."""

    requests_per_second: float | None = None
    scroll_size: int | None = None
    conflicts: ConflictPolicy = ConflictPolicy.PROCEED

    def to_params(self) -> dict[str, str]:
        params = {
            "wait_for_completion": "false",
            "conflicts": self.conflicts.value,
        }
        if self.requests_per_second is not None:
            params["requests_per_second"] = _format_number(self.requests_per_second)
        if self.scroll_size is not None:
            params["scroll_size"] = str(self.scroll_size)
        return params


@dataclass(slots=True, frozen=True)
class Job:
    """One submitted remote job."""

    task_id: str
    submitted_at: datetime
    cancellable: bool = True


@dataclass(slots=True, frozen=True)
class RetryCounts:
    bulk: int = 0
    search: int = 0


@dataclass(slots=True, frozen=True)
class ProgressSnapshot:
    """Point-in-time status counters reported by the remote."""

    total: int = 0
    updated: int = 0
    created: int = 0
    deleted: int = 0
    batches: int = 0
    version_conflicts: int = 0
    noops: int = 0
    retries: RetryCounts = field(default_factory=RetryCounts)
    throttled_millis: int = 0
    requests_per_second: float = 0.0
    throttled_until_millis: int = 0


@dataclass(slots=True, frozen=True)
class FailureReason:
    reason: str
    type: str | None = None


@dataclass(slots=True, frozen=True)
class Failure:
    """One failure entry from a completed job."""

    reason: FailureReason
    index: str | None = None
    node: str | None = None
    shard: int | None = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)


@dataclass(slots=True, frozen=True)
class CompletionResult:
    """Final result attached to a completed job."""

    status: ProgressSnapshot
    took: int = 0
    timed_out: bool = False
    throttled: str = ""
    throttled_until: str = ""
    failures: tuple[Failure, ...] = ()

    @property
    def deleted(self) -> int:
        return self.status.deleted


@dataclass(slots=True, frozen=True)
class StatusSnapshot:
    """Decoded answer to one status poll."""

    completed: bool
    progress: ProgressSnapshot
    result: CompletionResult | None = None
    description: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)


@dataclass(slots=True, frozen=True)
class CancelAcknowledgement:
    """Remote answer to a cancel request."""

    task_id: str
    already_finished: bool
    payload: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)


def utc_now() -> datetime:
    """Current UTC timestamp."""

    return datetime.now(tz=UTC)


def read_submission(payload: object) -> str:
    """Extract the task id from a submission response."""

    if not isinstance(payload, dict):
        raise TypeError("submission response must be a JSON object")
    task_id = payload.get("task")
    if not isinstance(task_id, str) or not task_id.strip():
        raise ValueError("submission response.task must be a non-empty string")
    return task_id


def read_status(payload: object) -> StatusSnapshot:
    """Decode a task status response into a snapshot."""

    if not isinstance(payload, dict):
        raise TypeError("task response must be a JSON object")
    completed = payload.get("completed")
    if not isinstance(completed, bool):
        raise TypeError("task response.completed must be a boolean")
    task = payload.get("task")
    if not isinstance(task, dict):
        raise TypeError("task response.task must be an object")
    status = task.get("status", {})
    if not isinstance(status, dict):
        raise TypeError("task response.task.status must be an object")

    result = None
    response = payload.get("response")
    if response is not None:
        result = _read_completion(response)

    description = task.get("description")
    return StatusSnapshot(
        completed=completed,
        progress=_read_progress(status),
        result=result,
        description=description if isinstance(description, str) else None,
        raw=payload,
    )


def _read_completion(raw: object) -> CompletionResult:
    if not isinstance(raw, dict):
        raise TypeError("task response.response must be an object")
    raw_failures = raw.get("failures", [])
    if not isinstance(raw_failures, list):
        raise TypeError("task response.response.failures must be an array")
    return CompletionResult(
        status=_read_progress(raw),
        took=_int(raw.get("took")),
        timed_out=bool(raw.get("timed_out", False)),
        throttled=str(raw.get("throttled", "")),
        throttled_until=str(raw.get("throttled_until", "")),
        failures=tuple(_read_failure(item) for item in raw_failures),
    )


def _read_progress(raw: dict[str, Any]) -> ProgressSnapshot:
    retries = raw.get("retries")
    if not isinstance(retries, dict):
        retries = {}
    return ProgressSnapshot(
        total=_int(raw.get("total")),
        updated=_int(raw.get("updated")),
        created=_int(raw.get("created")),
        deleted=_int(raw.get("deleted")),
        batches=_int(raw.get("batches")),
        version_conflicts=_int(raw.get("version_conflicts")),
        noops=_int(raw.get("noops")),
        retries=RetryCounts(bulk=_int(retries.get("bulk")), search=_int(retries.get("search"))),
        throttled_millis=_int(raw.get("throttled_millis")),
        requests_per_second=_float(raw.get("requests_per_second")),
        throttled_until_millis=_int(raw.get("throttled_until_millis")),
    )


def _read_failure(raw: object) -> Failure:
    if not isinstance(raw, dict):
        return Failure(reason=FailureReason(reason=str(raw)), raw={"value": raw})
    # Search failures carry "reason", bulk failures carry "cause".
    reason_raw = raw.get("reason", raw.get("cause"))
    if isinstance(reason_raw, dict):
        reason = FailureReason(
            reason=str(reason_raw.get("reason", "")),
            type=reason_raw.get("type") if isinstance(reason_raw.get("type"), str) else None,
        )
    else:
        reason = FailureReason(reason="" if reason_raw is None else str(reason_raw))
    index = raw.get("index")
    node = raw.get("node")
    shard = raw.get("shard")
    return Failure(
        reason=reason,
        index=index if isinstance(index, str) else None,
        node=node if isinstance(node, str) else None,
        shard=shard if isinstance(shard, int) and not isinstance(shard, bool) else None,
        raw=raw,
    )


def _int(value: object) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    return 0


def _float(value: object) -> float:
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, int | float):
        return float(value)
    return 0.0


def _format_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return str(value)
