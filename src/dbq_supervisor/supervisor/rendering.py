"""Terminal progress indicator backed by rich."""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)


class RichProgressSink:
    """Renders supervision progress as ``[elapsed] bar pos/len message``."""

    def __init__(self, console: Console | None = None) -> None:
        self._progress = Progress(
            TextColumn("["),
            TimeElapsedColumn(),
            TextColumn("]"),
            BarColumn(bar_width=40, complete_style="cyan", finished_style="blue"),
            MofNCompleteColumn(),
            TextColumn("{task.description}"),
            console=console,
            auto_refresh=False,
        )
        self._task: TaskID = self._progress.add_task("", total=None, start=True)
        self._started = False

    @property
    def console(self) -> Console:
        return self._progress.console

    def start(self) -> None:
        if not self._started:
            self._progress.start()
            self._started = True

    def set_length(self, length: int) -> None:
        self._progress.update(self._task, total=length)

    def set_position(self, position: int) -> None:
        self._progress.update(self._task, completed=position)

    def set_message(self, message: str) -> None:
        self._progress.update(self._task, description=escape(message))

    def println(self, line: str) -> None:
        self._progress.console.print(line, markup=False, highlight=False)

    def tick(self) -> None:
        if self._started:
            self._progress.refresh()

    def finish(self) -> None:
        if self._started:
            self._progress.refresh()
            self._progress.stop()
            self._started = False

    def __enter__(self) -> RichProgressSink:
        self.start()
        return self

    def __exit__(self, *_: object) -> None:
        self.finish()
