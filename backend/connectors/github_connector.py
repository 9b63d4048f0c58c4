"""GitHub REST connector: retrying fetches, repository listing, README and releases."""

import asyncio
import base64
import binascii
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from config import Settings
from models import ProjectRelease, RepositorySummary

logger = logging.getLogger("showcase")

MAX_RETRIES = 2
RETRY_BACKOFF = 0.5  # seconds, multiplied by the attempt number
RETRYABLE_STATUSES = frozenset({403, 429, 500, 502, 503, 504})


class FetchStatus(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    FAILED = "failed"


@dataclass(frozen=True)
class FetchResult:
    status: FetchStatus
    data: object = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is FetchStatus.OK


class RepositoryListingError(RuntimeError):
    """The first listing page could not be fetched in strict (CI) mode."""


@dataclass
class RepositoryListing:
    repositories: list[RepositorySummary] = field(default_factory=list)
    complete: bool = True
    warning: str | None = None


def build_headers(token: str = "") -> dict:
    headers = {
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": "2022-11-28",
    }
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def build_client(settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        headers=build_headers(settings.token),
        timeout=15,
        follow_redirects=True,
        transport=transport,
    )


def normalize_repository_key(name: str) -> str:
    return re.sub(r"[^a-z0-9]", "", name.lower())


def is_excluded_repository(name: str, settings: Settings) -> bool:
    return normalize_repository_key(name) in settings.excluded_keys


async def fetch_github_json(
    client: httpx.AsyncClient,
    url: str,
    params: dict | None = None,
    retries: int = MAX_RETRIES,
) -> FetchResult:
    """GET ``url`` and parse JSON, retrying rate limits, 5xx and network errors.

    404 is reported as NOT_FOUND straight away. Retryable failures back off
    linearly (0.5s, 1.0s, ...) and end as FAILED once the budget is spent.
    """
    error = None
    for attempt in range(retries + 1):
        if attempt:
            await asyncio.sleep(RETRY_BACKOFF * attempt)
        try:
            resp = await client.get(url, params=params)
        except httpx.HTTPError as e:
            error = f"{type(e).__name__}: {e}"
            continue

        if resp.status_code == 404:
            return FetchResult(FetchStatus.NOT_FOUND)
        if resp.is_success:
            try:
                return FetchResult(FetchStatus.OK, resp.json())
            except ValueError as e:
                error = f"invalid JSON: {e}"
                continue
        error = f"HTTP {resp.status_code}"
        if resp.status_code not in RETRYABLE_STATUSES:
            break

    logger.warning("github fetch failed url=%s error=%s", url, error)
    return FetchResult(FetchStatus.FAILED, error=error)


def _repo_url(settings: Settings, repo_name: str, suffix: str = "") -> str:
    return f"{settings.api_base}/repos/{quote(settings.owner, safe='')}/{quote(repo_name, safe='')}{suffix}"


def parse_repository(raw) -> RepositorySummary | None:
    try:
        return RepositorySummary.model_validate(raw)
    except ValidationError as e:
        logger.warning("skipping malformed repository payload: %s", e.errors()[:1])
        return None


async def fetch_public_repos(client: httpx.AsyncClient, settings: Settings) -> RepositoryListing:
    """Collect every public, non-excluded repository of the configured owner.

    Pages are requested one at a time and pagination stops at the first
    short or empty page.
    """
    url = f"{settings.api_base}/users/{quote(settings.owner, safe='')}/repos"
    listing = RepositoryListing()

    for page in range(1, settings.max_pages + 1):
        result = await fetch_github_json(client, url, params={
            "type": "public",
            "sort": "updated",
            "direction": "desc",
            "per_page": settings.page_size,
            "page": page,
        })

        if not result.ok or not isinstance(result.data, list):
            reason = result.error or result.status.value
            if page == 1:
                message = f"could not list repositories for {settings.owner}: {reason}"
                if settings.strict:
                    raise RepositoryListingError(message)
                logger.warning("%s; continuing without upstream data", message)
                return RepositoryListing(complete=False, warning=message)
            listing.warning = f"listing stopped at page {page}: {reason}"
            logger.warning("%s", listing.warning)
            break

        page_repos = result.data
        if not page_repos:
            break

        for raw in page_repos:
            repo = parse_repository(raw)
            if repo is None or repo.private or is_excluded_repository(repo.name, settings):
                continue
            listing.repositories.append(repo)

        if len(page_repos) < settings.page_size:
            break

    logger.info("listed %d public repositories for %s", len(listing.repositories), settings.owner)
    return listing


async def fetch_repository(client: httpx.AsyncClient, settings: Settings, repo_name: str) -> RepositorySummary | None:
    result = await fetch_github_json(client, _repo_url(settings, repo_name))
    if not result.ok:
        return None
    return parse_repository(result.data)


def decode_readme(payload) -> str:
    """README text from the contents API payload; empty when missing or undecodable."""
    if not isinstance(payload, dict):
        return ""
    content = payload.get("content")
    if not isinstance(content, str) or not content or payload.get("encoding") != "base64":
        return ""
    try:
        raw = base64.b64decode(content.replace("\n", ""))
    except (binascii.Error, ValueError):
        logger.warning("README content is not valid base64")
        return ""
    return raw.decode("utf-8", errors="replace")


async def fetch_readme(client: httpx.AsyncClient, settings: Settings, repo_name: str) -> str:
    result = await fetch_github_json(client, _repo_url(settings, repo_name, "/readme"))
    if not result.ok:
        return ""
    return decode_readme(result.data)


async def fetch_latest_release(client: httpx.AsyncClient, settings: Settings, repo_name: str) -> ProjectRelease | None:
    """Latest published release, or None when there is none (or it is unreachable)."""
    result = await fetch_github_json(client, _repo_url(settings, repo_name, "/releases/latest"))
    if not result.ok:
        return None
    return ProjectRelease.from_api(result.data)
