"""Async client for the remote delete-by-query and task APIs."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from dbq_supervisor import __version__
from dbq_supervisor.supervisor.models import (
    CancelAcknowledgement,
    Job,
    JobOptions,
    StatusSnapshot,
    read_status,
    read_submission,
    utc_now,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 60.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_USER_AGENT = f"dbq-supervisor/{__version__}"


class RemoteJobError(RuntimeError):
    """Base class for remote job API failures."""


class SubmissionError(RemoteJobError):
    """Job could not be submitted. Fatal for the whole run."""


class PollError(RemoteJobError):
    """Status poll failed. Transient from the supervisor's point of view."""

    def __init__(self, message: str, *, not_found: bool = False) -> None:
        super().__init__(message)
        self.not_found = not_found


class CancellationError(RemoteJobError):
    """Cancel request was not accepted by the remote."""


class RemoteJobClient:
    """Issues submit, poll and cancel requests against one remote cluster."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        user_agent: str = DEFAULT_USER_AGENT,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        base_headers = {"User-Agent": user_agent, "Accept": "application/json"}
        if headers:
            base_headers.update(headers)
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_seconds),
            headers=base_headers,
            transport=transport or httpx.AsyncHTTPTransport(retries=max_retries),
        )

    async def submit(
        self,
        query: Any,
        index_pattern: str,
        options: JobOptions,
    ) -> Job:
        """Start a delete-by-query job and return its handle."""

        path = f"/{quote(index_pattern, safe='*,-_.')}/_delete_by_query"
        try:
            response = await self._client.post(
                path,
                params=options.to_params(),
                json={"query": query},
            )
            response.raise_for_status()
            task_id = read_submission(response.json())
        except httpx.HTTPStatusError as error:
            raise SubmissionError(
                f"Remote rejected delete-by-query on {index_pattern!r}: "
                f"HTTP {error.response.status_code} {_body_excerpt(error.response)}",
            ) from error
        except httpx.HTTPError as error:
            raise SubmissionError(f"Unable to submit delete-by-query: {error}") from error
        except (TypeError, ValueError) as error:
            raise SubmissionError(f"Malformed submission response: {error}") from error

        logger.info("Submitted delete-by-query task %s on %s", task_id, index_pattern)
        return Job(task_id=task_id, submitted_at=utc_now())

    async def poll(self, job: Job) -> StatusSnapshot:
        """Fetch the current status of a job."""

        try:
            response = await self._client.get(f"/_tasks/{job.task_id}")
            response.raise_for_status()
            return read_status(response.json())
        except httpx.HTTPStatusError as error:
            status_code = error.response.status_code
            raise PollError(
                f"HTTP {status_code} for task {job.task_id}",
                not_found=status_code == httpx.codes.NOT_FOUND,
            ) from error
        except httpx.TimeoutException as error:
            raise PollError(f"Timeout polling task {job.task_id}") from error
        except httpx.HTTPError as error:
            raise PollError(f"HTTP error polling task {job.task_id}: {error}") from error
        except (TypeError, ValueError) as error:
            raise PollError(f"Malformed task response for {job.task_id}: {error}") from error

    async def cancel(self, job: Job) -> CancelAcknowledgement:
        """Ask the remote to cancel a job.

        A job the remote no longer knows about, or one that finished before the
        request arrived, is acknowledged with ``already_finished=True``.
        """

        try:
            response = await self._client.post(f"/_tasks/{job.task_id}/_cancel")
        except httpx.HTTPError as error:
            raise CancellationError(f"Unable to cancel task {job.task_id}: {error}") from error

        payload = _json_object(response)
        if response.status_code == httpx.codes.NOT_FOUND:
            logger.info("Task %s unknown to remote on cancel, treating as finished", job.task_id)
            return CancelAcknowledgement(
                task_id=job.task_id,
                already_finished=True,
                payload=payload,
            )
        if not response.is_success:
            raise CancellationError(
                f"Remote refused to cancel task {job.task_id}: "
                f"HTTP {response.status_code} {_body_excerpt(response)}",
            )
        already_finished = bool(payload.get("node_failures") or payload.get("task_failures"))
        return CancelAcknowledgement(
            task_id=job.task_id,
            already_finished=already_finished,
            payload=payload,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> RemoteJobClient:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()


def _json_object(response: httpx.Response) -> dict[str, Any]:
    try:
        payload = response.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


def _body_excerpt(response: httpx.Response, limit: int = 300) -> str:
    text = response.text.strip()
    if len(text) > limit:
        return text[:limit] + "..."
    return text
