"""Fakes shared by supervisor tests."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from dbq_supervisor.supervisor.models import (
    CancelAcknowledgement,
    CompletionResult,
    Failure,
    FailureReason,
    Job,
    JobOptions,
    ProgressSnapshot,
    StatusSnapshot,
)

SUBMITTED_AT = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def make_job(task_id: str = "node-1:100") -> Job:
    return Job(task_id=task_id, submitted_at=SUBMITTED_AT)


def in_progress(*, total: int, deleted: int) -> StatusSnapshot:
    return StatusSnapshot(
        completed=False,
        progress=ProgressSnapshot(total=total, deleted=deleted),
        raw={"completed": False},
    )


def completed(
    *,
    deleted: int,
    total: int | None = None,
    failures: tuple[Failure, ...] = (),
) -> StatusSnapshot:
    status = ProgressSnapshot(total=deleted if total is None else total, deleted=deleted)
    return StatusSnapshot(
        completed=True,
        progress=status,
        result=CompletionResult(status=status, failures=failures),
        raw={"completed": True},
    )


def completed_without_result(*, deleted: int = 0) -> StatusSnapshot:
    return StatusSnapshot(
        completed=True,
        progress=ProgressSnapshot(total=deleted, deleted=deleted),
        result=None,
        raw={"completed": True, "task": {"status": {"deleted": deleted}}},
    )


def failure(node: str, index: str, reason: str, *, shard: int = 0) -> Failure:
    return Failure(
        reason=FailureReason(reason=reason, type="es_rejected_execution_exception"),
        index=index,
        node=node,
        shard=shard,
        raw={"node": node, "index": index, "shard": shard, "reason": {"reason": reason}},
    )


class RecordingSleep:
    """Async sleep replacement that records requested durations."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        await asyncio.sleep(0)


class InterruptingSleep(RecordingSleep):
    """Records sleeps and runs ``hook`` when the ``on_call``-th sleep starts."""

    def __init__(self, on_call: int) -> None:
        super().__init__()
        self.on_call = on_call
        self.hook: Callable[[], None] | None = None

    async def __call__(self, seconds: float) -> None:
        if len(self.calls) + 1 == self.on_call and self.hook is not None:
            self.hook()
        await super().__call__(seconds)


class RecordingSink:
    """Progress sink that keeps every update for assertions."""

    def __init__(self) -> None:
        self.lengths: list[int] = []
        self.positions: list[int] = []
        self.messages: list[str] = []
        self.lines: list[str] = []
        self.ticks = 0
        self.started = False
        self.finished = False

    def start(self) -> None:
        self.started = True

    def set_length(self, length: int) -> None:
        self.lengths.append(length)

    def set_position(self, position: int) -> None:
        self.positions.append(position)

    def set_message(self, message: str) -> None:
        self.messages.append(message)

    def println(self, line: str) -> None:
        self.lines.append(line)

    def tick(self) -> None:
        self.ticks += 1

    def finish(self) -> None:
        self.finished = True


class ScriptedClient:
    """Remote job client fed with scripted submit/poll/cancel results.

    Poll results are consumed in order across jobs. With ``block_when_exhausted``
    a poll past the end of the script waits forever instead of failing.
    ``resubmit_error`` is raised by every submit after the first one, and
    ``cancel_gate`` holds cancel requests until it is set.
    """

    def __init__(
        self,
        *,
        polls: list[StatusSnapshot | Exception] | None = None,
        submit_error: Exception | None = None,
        resubmit_error: Exception | None = None,
        cancel_result: CancelAcknowledgement | Exception | None = None,
        block_when_exhausted: bool = False,
        cancel_gate: asyncio.Event | None = None,
    ) -> None:
        self.polls = list(polls or [])
        self.submit_error = submit_error
        self.resubmit_error = resubmit_error
        self.cancel_result = cancel_result
        self.block_when_exhausted = block_when_exhausted
        self.cancel_gate = cancel_gate
        self.submitted: list[tuple[Any, str, JobOptions]] = []
        self.jobs: list[Job] = []
        self.polled: list[Job] = []
        self.cancelled: list[Job] = []
        self.closed = False
        self._never = asyncio.Event()

    async def submit(self, query: Any, index_pattern: str, options: JobOptions) -> Job:
        self.submitted.append((query, index_pattern, options))
        if self.submit_error is not None:
            raise self.submit_error
        if self.resubmit_error is not None and self.jobs:
            raise self.resubmit_error
        job = make_job(f"node-1:{100 + len(self.jobs)}")
        self.jobs.append(job)
        return job

    async def poll(self, job: Job) -> StatusSnapshot:
        self.polled.append(job)
        if not self.polls:
            if self.block_when_exhausted:
                await self._never.wait()
            raise AssertionError("poll script exhausted")
        item = self.polls.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def cancel(self, job: Job) -> CancelAcknowledgement:
        self.cancelled.append(job)
        if self.cancel_gate is not None:
            await self.cancel_gate.wait()
        if isinstance(self.cancel_result, Exception):
            raise self.cancel_result
        if self.cancel_result is not None:
            return self.cancel_result
        return CancelAcknowledgement(task_id=job.task_id, already_finished=False)

    async def aclose(self) -> None:
        self.closed = True

    async def __aenter__(self) -> ScriptedClient:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()


async def wait_until(predicate: Callable[[], bool], *, attempts: int = 200) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition was not reached")
