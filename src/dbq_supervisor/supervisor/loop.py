"""State machine that drives one delete-by-query job to completion."""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from dbq_supervisor.http.client import PollError
from dbq_supervisor.supervisor.backoff import BackoffController, BackoffEdge
from dbq_supervisor.supervisor.cancellation import CurrentJobRef
from dbq_supervisor.supervisor.failure_classifier import (
    CompletionKind,
    classify_completion,
    render_failure_summary,
)
from dbq_supervisor.supervisor.models import Job, JobOptions, StatusSnapshot
from dbq_supervisor.supervisor.progress import (
    NullProgressSink,
    ProgressAggregator,
    ProgressSink,
    apply_update,
)

logger = logging.getLogger(__name__)


class LoopState(str, Enum):
    """Supervision states."""

    IDLE = "idle"
    SUBMITTING = "submitting"
    POLLING = "polling"
    PAUSING = "pausing"
    SUCCEEDED = "succeeded"
    ANOMALY = "anomaly"


TERMINAL_STATES = frozenset({LoopState.SUCCEEDED, LoopState.ANOMALY})


class JobClient(Protocol):
    async def submit(self, query: Any, index_pattern: str, options: JobOptions) -> Job: ...

    async def poll(self, job: Job) -> StatusSnapshot: ...


@dataclass(slots=True)
class LoopOutcome:
    """Final state and counters of one supervision run."""

    state: LoopState
    deleted_total: int
    restarts: int
    poll_errors: int
    jobs: list[Job] = field(default_factory=list)
    history: list[LoopState] = field(default_factory=list)


class OrchestrationLoop:
    """Submits, polls and restarts a remote job until it finishes cleanly.

    Only submission failures escape ``run``; everything observed after a job
    is accepted is either retried in place or resolved by resubmitting.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        client: JobClient,
        query: Any,
        index_pattern: str,
        options: JobOptions,
        backoff: BackoffController,
        job_ref: CurrentJobRef,
        aggregator: ProgressAggregator | None = None,
        sink: ProgressSink | None = None,
    ) -> None:
        self.client = client
        self.query = query
        self.index_pattern = index_pattern
        self.options = options
        self.backoff = backoff
        self.job_ref = job_ref
        self.aggregator = aggregator or ProgressAggregator()
        self.sink = sink or NullProgressSink()
        self.state = LoopState.IDLE
        self.history: list[LoopState] = []
        self.jobs: list[Job] = []
        self.restarts = 0
        self.poll_errors = 0
        self._job: Job | None = None
        self._handlers: dict[LoopState, Callable[[], Awaitable[LoopState]]] = {
            LoopState.IDLE: self._on_idle,
            LoopState.SUBMITTING: self._on_submitting,
            LoopState.POLLING: self._on_polling,
            LoopState.PAUSING: self._on_pausing,
        }

    async def run(self) -> LoopOutcome:
        self._enter(LoopState.IDLE)
        while self.state not in TERMINAL_STATES:
            next_state = await self._handlers[self.state]()
            self._enter(next_state)

        if self.state is LoopState.SUCCEEDED:
            self.sink.set_message("Task completed without failures.")
        self.sink.finish()
        return LoopOutcome(
            state=self.state,
            deleted_total=self.aggregator.deleted_total,
            restarts=self.restarts,
            poll_errors=self.poll_errors,
            jobs=list(self.jobs),
            history=list(self.history),
        )

    def _enter(self, state: LoopState) -> None:
        if self.history:
            logger.debug("Loop transition %s -> %s", self.state.value, state.value)
        self.state = state
        self.history.append(state)

    async def _on_idle(self) -> LoopState:
        return LoopState.SUBMITTING

    async def _on_submitting(self) -> LoopState:
        job = await self.client.submit(self.query, self.index_pattern, self.options)
        self._job = job
        self.jobs.append(job)
        self.job_ref.publish(job)
        self.sink.println(f"Task ID: {job.task_id}")
        self.sink.set_message("Waiting for task...")
        await self.backoff.wait(BackoffEdge.AFTER_SUBMIT)
        return LoopState.POLLING

    async def _on_polling(self) -> LoopState:
        job = self._require_job()
        try:
            snapshot = await self.client.poll(job)
        except PollError as error:
            self.poll_errors += 1
            logger.info("Unable to get task %s: %s", job.task_id, error)
            self.sink.println(f"Unable to get task: {error}")
            await self.backoff.wait(BackoffEdge.POLL_ERROR)
            return LoopState.POLLING

        apply_update(self.sink, self.aggregator.observe(snapshot.progress))

        classification = classify_completion(completed=snapshot.completed, result=snapshot.result)
        if classification.kind is CompletionKind.IN_PROGRESS:
            await self.backoff.wait(BackoffEdge.STEADY_POLL)
            return LoopState.POLLING

        if classification.kind is CompletionKind.ANOMALY:
            logger.error("Task %s completed without a result payload", job.task_id)
            self.sink.println(
                "No 'response' field in completed task response: \n"
                + json.dumps(snapshot.raw, indent=2, sort_keys=True),
            )
            self.sink.set_message("Task completed without a result.")
            return LoopState.ANOMALY

        result = snapshot.result
        if result is None:
            raise RuntimeError("Completed classification must carry a result payload.")
        apply_update(self.sink, self.aggregator.fold_on_completion(result))

        if classification.kind is CompletionKind.SUCCESS:
            logger.info(
                "Task %s completed, deleted=%s total=%s",
                job.task_id,
                result.deleted,
                self.aggregator.deleted_total,
            )
            return LoopState.SUCCEEDED

        logger.info(
            "Task %s completed with %s failures (%s distinct)",
            job.task_id,
            len(result.failures),
            len(classification.summary),
        )
        self.sink.println(
            "Failure detected: \n"
            + json.dumps([failure.raw for failure in result.failures], indent=2, sort_keys=True),
        )
        self.sink.println("Distinct failures:")
        for line in render_failure_summary(classification.summary):
            self.sink.println(line)
        return LoopState.PAUSING

    async def _on_pausing(self) -> LoopState:
        pause = self.backoff.delay_for(BackoffEdge.RESTART_PAUSE)
        self.sink.set_message(f"Error, will retry in {pause:g}s")
        await self.backoff.wait(BackoffEdge.RESTART_PAUSE)
        self.restarts += 1
        self._job = None
        logger.info("Restarting delete-by-query (restart #%s)", self.restarts)
        return LoopState.SUBMITTING

    def _require_job(self) -> Job:
        if self._job is None:
            raise RuntimeError("Polling requires a submitted job.")
        return self._job
