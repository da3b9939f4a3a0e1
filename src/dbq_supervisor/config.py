"""Runtime configuration for delete-by-query supervision."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from urllib.parse import urlparse

from dbq_supervisor.supervisor.models import ConflictPolicy, JobOptions

DEFAULT_URL = "http://localhost:9200"


@dataclass(slots=True)
class RemoteSettings:
    """Remote cluster access settings."""

    url: str = DEFAULT_URL
    request_timeout_seconds: float = 60.0
    max_connect_retries: int = 3


@dataclass(slots=True)
class JobSettings:
    """What to delete and how fast."""

    index_pattern: str = "*"
    requests_per_second: float | None = 100.0
    scroll_size: int | None = None
    abort_on_conflict: bool = False

    def to_options(self) -> JobOptions:
        return JobOptions(
            requests_per_second=self.requests_per_second,
            scroll_size=self.scroll_size,
            conflicts=ConflictPolicy.ABORT if self.abort_on_conflict else ConflictPolicy.PROCEED,
        )


@dataclass(slots=True)
class BackoffSettings:
    """Fixed waits between loop steps."""

    warmup_seconds: float = 2.0
    poll_interval_seconds: float = 10.0
    poll_error_seconds: float = 5.0
    restart_pause_seconds: float = 300.0


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    remote: RemoteSettings = field(default_factory=RemoteSettings)
    job: JobSettings = field(default_factory=JobSettings)
    backoff: BackoffSettings = field(default_factory=BackoffSettings)

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment with defaults for a local cluster."""

        return cls(
            remote=RemoteSettings(
                url=os.getenv("DBQ_SUPERVISOR_URL", DEFAULT_URL),
                request_timeout_seconds=float(
                    os.getenv("DBQ_SUPERVISOR_REQUEST_TIMEOUT_SECONDS", "60"),
                ),
                max_connect_retries=int(os.getenv("DBQ_SUPERVISOR_MAX_CONNECT_RETRIES", "3")),
            ),
            job=JobSettings(
                index_pattern=os.getenv("DBQ_SUPERVISOR_INDEX", "*"),
                requests_per_second=_env_throttle("DBQ_SUPERVISOR_REQUESTS_PER_SECOND", 100.0),
                scroll_size=_env_optional_int("DBQ_SUPERVISOR_SCROLL_SIZE"),
                abort_on_conflict=_env_bool("DBQ_SUPERVISOR_ABORT_ON_CONFLICT", default=False),
            ),
            backoff=BackoffSettings(
                warmup_seconds=float(os.getenv("DBQ_SUPERVISOR_WARMUP_SECONDS", "2")),
                poll_interval_seconds=float(
                    os.getenv("DBQ_SUPERVISOR_POLL_INTERVAL_SECONDS", "10"),
                ),
                poll_error_seconds=float(os.getenv("DBQ_SUPERVISOR_POLL_ERROR_SECONDS", "5")),
                restart_pause_seconds=float(
                    os.getenv("DBQ_SUPERVISOR_RESTART_PAUSE_SECONDS", "300"),
                ),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error on unusable values."""

        _validate_url(self.remote.url)
        if self.remote.request_timeout_seconds <= 0:
            raise ValueError("DBQ_SUPERVISOR_REQUEST_TIMEOUT_SECONDS must be > 0.")
        if self.remote.max_connect_retries < 0:
            raise ValueError("DBQ_SUPERVISOR_MAX_CONNECT_RETRIES must be >= 0.")
        if not self.job.index_pattern.strip():
            raise ValueError("Index pattern must not be empty.")
        if self.job.index_pattern.strip().startswith("_"):
            raise ValueError(
                f"Invalid index pattern: {self.job.index_pattern!r}. "
                "Names starting with '_' address remote APIs, not indices.",
            )
        if self.job.requests_per_second is not None and self.job.requests_per_second <= 0:
            raise ValueError("Requests per second must be positive; pass 0 to disable throttling.")
        if self.job.scroll_size is not None and self.job.scroll_size <= 0:
            raise ValueError("Scroll size must be a positive integer.")
        for name, value in (
            ("DBQ_SUPERVISOR_WARMUP_SECONDS", self.backoff.warmup_seconds),
            ("DBQ_SUPERVISOR_POLL_INTERVAL_SECONDS", self.backoff.poll_interval_seconds),
            ("DBQ_SUPERVISOR_POLL_ERROR_SECONDS", self.backoff.poll_error_seconds),
            ("DBQ_SUPERVISOR_RESTART_PAUSE_SECONDS", self.backoff.restart_pause_seconds),
        ):
            if value < 0:
                raise ValueError(f"{name} must be >= 0.")


def throttle_from_value(value: float) -> float | None:
    """Map the CLI/env throttle to a request value; 0 disables throttling."""

    if value == 0:
        return None
    return value


def _validate_url(value: str) -> None:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(
            f"Invalid remote URL: {value!r}. Expected an absolute URL with http:// or https:// scheme.",
        )


def _env_throttle(name: str, default: float) -> float | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return throttle_from_value(float(raw))
    except ValueError as error:
        raise ValueError(f"Invalid numeric value for {name}: {raw!r}") from error


def _env_optional_int(name: str) -> int | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {raw!r}") from error


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
