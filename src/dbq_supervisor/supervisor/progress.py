"""Progress aggregation across job restarts and the rendering sink interface."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Protocol

from dbq_supervisor.supervisor.models import CompletionResult, ProgressSnapshot

DEFAULT_TICK_SECONDS = 0.1


@dataclass(slots=True, frozen=True)
class ProgressUpdate:
    """Values a rendering sink needs after one aggregation step."""

    position: int
    length: int | None
    message: str | None = None


class ProgressSink(Protocol):
    """Receives position, length, message and text line updates."""

    def start(self) -> None: ...

    def set_length(self, length: int) -> None: ...

    def set_position(self, position: int) -> None: ...

    def set_message(self, message: str) -> None: ...

    def println(self, line: str) -> None: ...

    def tick(self) -> None: ...

    def finish(self) -> None: ...


class NullProgressSink:
    """Sink that drops every update."""

    def start(self) -> None:
        return None

    def set_length(self, length: int) -> None:
        return None

    def set_position(self, position: int) -> None:
        return None

    def set_message(self, message: str) -> None:
        return None

    def println(self, line: str) -> None:
        return None

    def tick(self) -> None:
        return None

    def finish(self) -> None:
        return None


class ProgressAggregator:
    """Folds per-job progress into a running total across restarts.

    ``deleted_total`` only moves when a job completes. The displayed length is
    never lowered: the remote may under-report ``total`` before the job is
    fully scheduled, and a restarted job only reports what is left.
    """

    def __init__(self) -> None:
        self.deleted_total = 0
        self.current_deleted = 0
        self.current_total = 0
        self.length: int | None = None

    @property
    def position(self) -> int:
        return self.deleted_total + self.current_deleted

    def observe(self, snapshot: ProgressSnapshot) -> ProgressUpdate:
        self.current_deleted = _floor(snapshot.deleted)
        self.current_total = max(self.current_total, _floor(snapshot.total))
        candidate = self.deleted_total + self.current_total
        if self.length is None or candidate > self.length:
            self.length = candidate
        return ProgressUpdate(position=self.position, length=self.length, message="Deleting...")

    def fold_on_completion(self, result: CompletionResult) -> ProgressUpdate:
        self.deleted_total += _floor(result.deleted)
        self.current_deleted = 0
        self.current_total = 0
        if self.length is not None and self.deleted_total > self.length:
            self.length = self.deleted_total
        return ProgressUpdate(position=self.position, length=self.length)


def apply_update(sink: ProgressSink, update: ProgressUpdate) -> None:
    if update.length is not None:
        sink.set_length(update.length)
    sink.set_position(update.position)
    if update.message is not None:
        sink.set_message(update.message)


async def run_ticker(sink: ProgressSink, interval_seconds: float = DEFAULT_TICK_SECONDS) -> None:
    """Keep the indicator alive while no request is in flight. Runs until cancelled."""

    while True:
        sink.tick()
        await asyncio.sleep(interval_seconds)


def _floor(value: int) -> int:
    return value if value > 0 else 0
