"""CLI entrypoint for dbq-supervisor."""

import json
import logging

import rich_click as click

from dbq_supervisor import __version__
from dbq_supervisor.http.client import SubmissionError
from dbq_supervisor.supervisor.controllers import (
    DeleteByQueryCommand,
    SupervisorCliController,
)

click.rich_click.USE_MARKDOWN = True
SUPERVISOR_CONTROLLER = SupervisorCliController()


@click.command()
@click.version_option(version=__version__, prog_name="dbq-supervisor")
@click.option(
    "-u",
    "--url",
    default=None,
    help="Remote cluster base URL. Defaults to DBQ_SUPERVISOR_URL or http://localhost:9200.",
)
@click.option(
    "-r",
    "--requests-per-second",
    type=click.FloatRange(min=0),
    default=None,
    help="Throttle applied by the remote. `0` disables throttling. Defaults to 100.",
)
@click.option(
    "-i",
    "--index",
    "index_pattern",
    default=None,
    help="Index pattern the deletion is scoped to. Defaults to `*`.",
)
@click.option(
    "-s",
    "--scroll-size",
    type=click.IntRange(min=1),
    default=None,
    help="Documents per internal batch on the remote.",
)
@click.option(
    "-p",
    "--restart-pause-seconds",
    type=click.FloatRange(min=0),
    default=None,
    help="Pause before resubmitting after a job finished with failures. Defaults to 300.",
)
@click.option(
    "--abort-on-conflict/--proceed-on-conflict",
    default=None,
    help="Abort the job on version conflicts instead of counting them. Defaults to proceed.",
)
@click.option(
    "--request-timeout-seconds",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Timeout applied to every remote request. Defaults to 60.",
)
@click.option("-v", "--verbose", is_flag=True, default=False, help="Enable debug logging.")
@click.argument("query")
def dbq_supervisor(  # noqa: PLR0913
    url: str | None,
    requests_per_second: float | None,
    index_pattern: str | None,
    scroll_size: int | None,
    restart_pause_seconds: float | None,
    abort_on_conflict: bool | None,
    request_timeout_seconds: float | None,
    verbose: bool,
    query: str,
) -> None:
    """Run a delete-by-query on the remote cluster and see it through.

    QUERY is the JSON filter, for example
    `{"range":{"lastIndexingDate":{"lte":"now-3y"}}}`.

    The job is restarted after a pause when it finishes with failures.
    Ctrl-C cancels the remote job before exiting.
    """

    _configure_logging(verbose=verbose)
    try:
        parsed_query = json.loads(query)
    except json.JSONDecodeError as error:
        raise click.BadParameter(f"not valid JSON: {error}", param_hint="QUERY") from error

    try:
        result = SUPERVISOR_CONTROLLER.run(
            DeleteByQueryCommand(
                query=parsed_query,
                url=url,
                index_pattern=index_pattern,
                requests_per_second=requests_per_second,
                scroll_size=scroll_size,
                restart_pause_seconds=restart_pause_seconds,
                abort_on_conflict=abort_on_conflict,
                request_timeout_seconds=request_timeout_seconds,
            ),
        )
    except (SubmissionError, ValueError) as error:
        raise click.ClickException(str(error)) from error

    _emit_lines(result.lines)
    if result.exit_code:
        raise SystemExit(result.exit_code)


def _configure_logging(*, verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # Request lines from httpx would drown the progress indicator.
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    dbq_supervisor()
