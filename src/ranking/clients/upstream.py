"""HTTP clients for the collaborator services the ranking engine reads from.

Every call is bounded by ``upstream_timeout_seconds``. Transport errors,
timeouts, error statuses and malformed payloads all raise
``UpstreamUnavailableError``; callers decide whether that is fatal.
"""

from __future__ import annotations

from typing import Any, TypeVar

import httpx
import structlog
from pydantic import BaseModel, ValidationError

from ranking.clients.schemas import Competition, Placement, ProjectOwner, Submission
from ranking.config import Settings, get_settings
from ranking.exceptions import UpstreamUnavailableError

logger = structlog.get_logger()

ModelT = TypeVar("ModelT", bound=BaseModel)


async def _fetch_list(
    url: str,
    key: str,
    model: type[ModelT],
    service: str,
    timeout: float,
    params: dict[str, Any] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[ModelT]:
    """GET ``url`` and parse ``body[key]`` as a list of ``model``."""
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.get(url, params=params)
            response.raise_for_status()
            body = response.json()
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        logger.warning("upstream_request_failed", service=service, url=url, error=str(exc))
        raise UpstreamUnavailableError(service, str(exc)) from exc
    except ValueError as exc:
        logger.warning("upstream_invalid_json", service=service, url=url)
        raise UpstreamUnavailableError(service, "invalid json") from exc

    if not isinstance(body, dict):
        raise UpstreamUnavailableError(service, "unexpected payload")

    try:
        return [model.model_validate(item) for item in body.get(key) or []]
    except ValidationError as exc:
        logger.warning("upstream_invalid_payload", service=service, errors=exc.error_count())
        raise UpstreamUnavailableError(service, "invalid payload") from exc


class SubmissionLedgerClient:
    """Reads submissions and placements from the submission tracking service."""

    def __init__(self, base_url: str, timeout: float = 10.0, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def list_all_submissions(self) -> list[Submission]:
        return await _fetch_list(
            f"{self.base_url}/internal/submissions", "submissions", Submission, "submissions", self.timeout,
            transport=self.transport,
        )

    async def list_all_placements(self) -> list[Placement]:
        return await _fetch_list(
            f"{self.base_url}/internal/placements", "placements", Placement, "placements", self.timeout,
            transport=self.transport,
        )


class CompetitionDirectoryClient:
    """Reads competition titles from the competition directory."""

    def __init__(self, base_url: str, timeout: float = 10.0, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def list_all_competitions(self) -> list[Competition]:
        return await _fetch_list(
            f"{self.base_url}/internal/competitions", "competitions", Competition, "competitions", self.timeout,
            transport=self.transport,
        )


class ProjectDirectoryClient:
    """Resolves project owners matching format/genre filters."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        limit: int = 1000,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.limit = limit
        self.transport = transport

    async def list_owner_ids(self, format: str | None = None, genre: str | None = None) -> set[str]:  # noqa: A002
        params: dict[str, Any] = {"limit": self.limit, "offset": 0}
        if format:
            params["format"] = format
        if genre:
            params["genre"] = genre
        projects = await _fetch_list(
            f"{self.base_url}/internal/projects", "projects", ProjectOwner, "projects", self.timeout,
            params=params, transport=self.transport,
        )
        return {p.owner_user_id for p in projects}


# ── Construction ──


def build_submission_ledger(settings: Settings) -> SubmissionLedgerClient:
    return SubmissionLedgerClient(settings.submission_tracking_url, settings.upstream_timeout_seconds)


def build_competition_directory(settings: Settings) -> CompetitionDirectoryClient:
    return CompetitionDirectoryClient(settings.competition_directory_url, settings.upstream_timeout_seconds)


def build_project_directory(settings: Settings) -> ProjectDirectoryClient:
    return ProjectDirectoryClient(
        settings.profile_service_url, settings.upstream_timeout_seconds, settings.project_filter_limit,
    )


# ── FastAPI dependencies (overridden in tests) ──


def get_submission_ledger() -> SubmissionLedgerClient:
    return build_submission_ledger(get_settings())


def get_competition_directory() -> CompetitionDirectoryClient:
    return build_competition_directory(get_settings())


def get_project_directory() -> ProjectDirectoryClient:
    return build_project_directory(get_settings())
