"""Operator-requested cancellation of the active remote job."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Protocol

from dbq_supervisor.http.client import CancellationError
from dbq_supervisor.supervisor.models import CancelAcknowledgement, Job
from dbq_supervisor.supervisor.progress import NullProgressSink, ProgressSink

logger = logging.getLogger(__name__)


class CancelClient(Protocol):
    async def cancel(self, job: Job) -> CancelAcknowledgement: ...


class CurrentJobRef:
    """Single-slot cell holding the job currently believed active.

    Latest value wins. The supervision loop is the only writer and the
    cancellation coordinator the only reader.
    """

    def __init__(self) -> None:
        self._job: Job | None = None
        self._published = asyncio.Event()

    @property
    def latest(self) -> Job | None:
        return self._job

    def publish(self, job: Job) -> None:
        self._job = job
        self._published.set()

    async def wait(self) -> Job:
        """Return the latest job, waiting for the first publish if needed."""

        await self._published.wait()
        if self._job is None:
            raise RuntimeError("Job reference signalled without a published job.")
        return self._job


@dataclass(slots=True)
class CancellationOutcome:
    """Result of the single cancel attempt."""

    job: Job
    acknowledgement: CancelAcknowledgement | None = None
    error: CancellationError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class CancellationCoordinator:
    """Waits for an interrupt, then cancels the latest published job exactly once."""

    def __init__(
        self,
        *,
        client: CancelClient,
        job_ref: CurrentJobRef,
        sink: ProgressSink | None = None,
    ) -> None:
        self.client = client
        self.job_ref = job_ref
        self.sink = sink or NullProgressSink()
        self._requested = asyncio.Event()
        self._signal_name: str | None = None

    @property
    def requested(self) -> bool:
        return self._requested.is_set()

    def request(self, signal_name: str = "SIGINT") -> None:
        """One-shot trigger. Safe to call from a signal handler callback."""

        if self._requested.is_set():
            logger.info("Cancellation already requested, ignoring %s", signal_name)
            return
        self._signal_name = signal_name
        self._requested.set()

    async def run(self) -> CancellationOutcome:
        await self._requested.wait()
        logger.info("Received %s, waiting for an active job to cancel", self._signal_name)
        self.sink.set_message("Cancelling...")
        job = await self.job_ref.wait()

        try:
            acknowledgement = await self.client.cancel(job)
        except CancellationError as error:
            logger.error("Cancel request for task %s failed: %s", job.task_id, error)
            self.sink.println(f"Unable to cancel task {job.task_id}: {error}")
            return CancellationOutcome(job=job, error=error)

        if acknowledgement.already_finished:
            self.sink.println(f"Task {job.task_id} had already finished.")
        else:
            self.sink.println(f"Task {job.task_id} cancelled.")
        if acknowledgement.payload:
            self.sink.println(json.dumps(acknowledgement.payload, indent=2, sort_keys=True))
        logger.info("Cancel acknowledged for task %s", job.task_id)
        return CancellationOutcome(job=job, acknowledgement=acknowledgement)
