"""Controllers wiring the supervision loop, ticker and cancellation together."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from collections.abc import Callable, Iterator
from dataclasses import dataclass, replace
from typing import Any

from dbq_supervisor.config import Settings, throttle_from_value
from dbq_supervisor.http.client import RemoteJobClient
from dbq_supervisor.supervisor.backoff import BackoffController, SleepFn
from dbq_supervisor.supervisor.cancellation import (
    CancellationCoordinator,
    CancellationOutcome,
    CurrentJobRef,
)
from dbq_supervisor.supervisor.loop import LoopOutcome, LoopState, OrchestrationLoop
from dbq_supervisor.supervisor.progress import DEFAULT_TICK_SECONDS, ProgressSink, run_ticker
from dbq_supervisor.supervisor.rendering import RichProgressSink

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_CANCEL_FAILED = 3
EXIT_ANOMALY = 4

ClientFactory = Callable[[Settings], RemoteJobClient]
SinkFactory = Callable[[], ProgressSink]


@dataclass(slots=True)
class DeleteByQueryCommand:
    """CLI input for one supervised delete-by-query run.

    ``None`` fields fall back to environment settings.
    """

    query: Any
    url: str | None = None
    index_pattern: str | None = None
    requests_per_second: float | None = None
    scroll_size: int | None = None
    restart_pause_seconds: float | None = None
    abort_on_conflict: bool | None = None
    request_timeout_seconds: float | None = None


@dataclass(slots=True)
class SupervisorRunResult:
    """Closing report to render in CLI."""

    lines: list[str]
    exit_code: int
    loop_outcome: LoopOutcome | None = None
    cancellation: CancellationOutcome | None = None


class SupervisorCliController:
    """Runs one supervised job from CLI input to exit code."""

    def __init__(
        self,
        *,
        client_factory: ClientFactory | None = None,
        sink_factory: SinkFactory | None = None,
        sleep: SleepFn | None = None,
        tick_seconds: float = DEFAULT_TICK_SECONDS,
    ) -> None:
        self.client_factory = client_factory or _default_client
        self.sink_factory = sink_factory or RichProgressSink
        self.sleep = sleep or asyncio.sleep
        self.tick_seconds = tick_seconds

    def run(self, command: DeleteByQueryCommand) -> SupervisorRunResult:
        settings = resolve_settings(command)
        return asyncio.run(self.run_async(settings=settings, query=command.query))

    async def run_async(self, *, settings: Settings, query: Any) -> SupervisorRunResult:
        job_ref = CurrentJobRef()
        sink = self.sink_factory()
        async with self.client_factory(settings) as client:
            loop = OrchestrationLoop(
                client=client,
                query=query,
                index_pattern=settings.job.index_pattern,
                options=settings.job.to_options(),
                backoff=BackoffController(
                    warmup_seconds=settings.backoff.warmup_seconds,
                    poll_interval_seconds=settings.backoff.poll_interval_seconds,
                    poll_error_seconds=settings.backoff.poll_error_seconds,
                    restart_pause_seconds=settings.backoff.restart_pause_seconds,
                    sleep=self.sleep,
                ),
                job_ref=job_ref,
                sink=sink,
            )
            coordinator = CancellationCoordinator(client=client, job_ref=job_ref, sink=sink)
            sink.start()
            try:
                with _signal_handlers(coordinator):
                    return await supervise(
                        loop=loop,
                        coordinator=coordinator,
                        sink=sink,
                        tick_seconds=self.tick_seconds,
                    )
            finally:
                sink.finish()


async def supervise(
    *,
    loop: OrchestrationLoop,
    coordinator: CancellationCoordinator,
    sink: ProgressSink,
    tick_seconds: float = DEFAULT_TICK_SECONDS,
) -> SupervisorRunResult:
    """Race the loop against the cancellation path and map the winner to an exit code."""

    ticker = asyncio.create_task(run_ticker(sink, tick_seconds), name="dbq-ticker")
    loop_task = asyncio.create_task(loop.run(), name="dbq-loop")
    cancel_task = asyncio.create_task(coordinator.run(), name="dbq-cancel")
    try:
        done, _ = await asyncio.wait(
            {loop_task, cancel_task},
            return_when=asyncio.FIRST_COMPLETED,
        )
        if cancel_task not in done and coordinator.requested and loop.job_ref.latest is not None:
            # Interrupt arrived while the loop was finishing; let the cancel resolve.
            await asyncio.wait({cancel_task})
            done = {cancel_task}

        if cancel_task in done:
            await _cancel_and_wait(loop_task)
            if not loop_task.cancelled() and loop_task.exception() is not None:
                logger.warning(
                    "Supervision loop stopped with an error while cancelling: %s",
                    loop_task.exception(),
                )
            return _cancelled_result(cancel_task.result(), loop)

        await _cancel_and_wait(cancel_task)
        return _loop_result(loop_task.result())
    finally:
        await _cancel_and_wait(ticker)
        await _cancel_and_wait(loop_task)
        await _cancel_and_wait(cancel_task)


def resolve_settings(command: DeleteByQueryCommand) -> Settings:
    """Merge CLI overrides onto environment settings and validate."""

    settings = Settings.from_env()
    remote = settings.remote
    job = settings.job
    backoff = settings.backoff
    if command.url is not None:
        remote = replace(remote, url=command.url)
    if command.request_timeout_seconds is not None:
        remote = replace(remote, request_timeout_seconds=command.request_timeout_seconds)
    if command.index_pattern is not None:
        job = replace(job, index_pattern=command.index_pattern)
    if command.requests_per_second is not None:
        job = replace(job, requests_per_second=throttle_from_value(command.requests_per_second))
    if command.scroll_size is not None:
        job = replace(job, scroll_size=command.scroll_size)
    if command.abort_on_conflict is not None:
        job = replace(job, abort_on_conflict=command.abort_on_conflict)
    if command.restart_pause_seconds is not None:
        backoff = replace(backoff, restart_pause_seconds=command.restart_pause_seconds)
    settings = replace(settings, remote=remote, job=job, backoff=backoff)
    settings.validate()
    return settings


def _loop_result(outcome: LoopOutcome) -> SupervisorRunResult:
    lines = []
    if outcome.restarts:
        lines.append(f"Restarts: {outcome.restarts}")
    if outcome.state is LoopState.ANOMALY:
        lines.append(
            "Task completed without a result payload; "
            f"{outcome.deleted_total} documents confirmed deleted.",
        )
        return SupervisorRunResult(lines=lines, exit_code=EXIT_ANOMALY, loop_outcome=outcome)
    lines.append(f"Deleted {outcome.deleted_total} documents in total.")
    return SupervisorRunResult(lines=lines, exit_code=EXIT_OK, loop_outcome=outcome)


def _cancelled_result(
    outcome: CancellationOutcome,
    loop: OrchestrationLoop,
) -> SupervisorRunResult:
    deleted = loop.aggregator.position
    if not outcome.ok:
        return SupervisorRunResult(
            lines=[
                f"Cancellation of task {outcome.job.task_id} failed: {outcome.error}",
                "The remote job may still be running.",
            ],
            exit_code=EXIT_CANCEL_FAILED,
            cancellation=outcome,
        )
    return SupervisorRunResult(
        lines=[
            f"Cancelled task {outcome.job.task_id}.",
            f"Deleted {deleted} documents before cancellation.",
        ],
        exit_code=EXIT_OK,
        cancellation=outcome,
    )


async def _cancel_and_wait(task: asyncio.Task[Any]) -> None:
    if task.done():
        return
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task


@contextlib.contextmanager
def _signal_handlers(coordinator: CancellationCoordinator) -> Iterator[None]:
    loop = asyncio.get_running_loop()
    installed: list[signal.Signals] = []
    previous: dict[signal.Signals, Any] = {}

    def _threadsafe_handler(signum: int, _: object | None) -> None:
        try:
            name = signal.Signals(signum).name
        except ValueError:
            name = str(signum)
        loop.call_soon_threadsafe(coordinator.request, name)

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, coordinator.request, sig.name)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            try:
                previous[sig] = signal.signal(sig, _threadsafe_handler)
            except ValueError:
                # Signal handlers can only be installed in main thread.
                logger.debug("Cannot install %s handler outside main thread", sig.name)
    try:
        yield
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)
        for sig, handler in previous.items():
            with contextlib.suppress(ValueError):
                signal.signal(sig, handler)


def _default_client(settings: Settings) -> RemoteJobClient:
    return RemoteJobClient(
        settings.remote.url,
        timeout_seconds=settings.remote.request_timeout_seconds,
        max_retries=settings.remote.max_connect_retries,
    )
