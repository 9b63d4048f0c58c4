"""Project index: builds, caches and serves the showcase project list."""

import asyncio
import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from urllib.parse import quote, unquote

import httpx

from cache import ProjectCache
from concurrency import map_bounded
from config import Settings
from connectors.github_connector import (
    RepositoryListingError,
    build_client,
    fetch_latest_release,
    fetch_public_repos,
    fetch_readme,
    fetch_repository,
    is_excluded_repository,
)
from markdown_images import extract_project_images, strip_project_images
from models import Project, ProjectDetail, ProjectRelease, RepositorySummary
from ranking import parse_timestamp, rank_repositories
from releases import classify_release_assets

logger = logging.getLogger("showcase")

DESCRIPTION_PLACEHOLDER = "No description provided yet."
DEFAULT_TAG = "Public Repo"
DEFAULT_VERSION = "Public Repository"
MAX_TOPIC_TAGS = 3

_MALFORMED_ESCAPE_RE = re.compile(r"%(?![0-9A-Fa-f]{2})")


def _now() -> float:
    return time.monotonic()


class UpstreamUnavailableError(RuntimeError):
    """The repository listing could not be fetched and no fallback applies yet."""


# ---------------------------------------------------------------------------
# Slugs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SlugResult:
    name: str
    warning: str | None = None


def to_project_slug(repo_name: str) -> str:
    return quote(repo_name, safe="")


def from_project_slug(slug: str) -> SlugResult:
    """Decode a project slug; undecodable input is used verbatim with a warning."""
    if _MALFORMED_ESCAPE_RE.search(slug):
        return SlugResult(slug, warning="malformed percent-escape in slug")
    try:
        return SlugResult(unquote(slug, errors="strict"))
    except UnicodeDecodeError:
        return SlugResult(slug, warning="slug is not valid UTF-8 once decoded")


# ---------------------------------------------------------------------------
# Repository -> Project
# ---------------------------------------------------------------------------

def normalize_tag(value: str) -> str:
    """'machine-learning' -> 'Machine Learning'."""
    parts = [p for p in re.split(r"[\s_-]+", value) if p]
    return " ".join(p[:1].upper() + p[1:] for p in parts)


def build_tags(repo: RepositorySummary) -> list[str]:
    candidates = []
    if repo.language:
        candidates.append(repo.language.strip())
    candidates.extend(normalize_tag(t) for t in repo.topics[:MAX_TOPIC_TAGS])
    tags = list(dict.fromkeys(t for t in candidates if t))
    return tags or [DEFAULT_TAG]


def format_version_date(value: str) -> str:
    ms = parse_timestamp(value)
    if not ms:
        return DEFAULT_VERSION
    date = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    return f"Updated {date:%b} {date.day}, {date.year}"


def to_project(repo: RepositorySummary, release: ProjectRelease | None = None) -> Project:
    if release is not None:
        version = release.tag_name
    else:
        version = format_version_date(repo.pushed_at or repo.updated_at)
    return Project(
        id=repo.id,
        title=repo.name,
        repo_name=repo.name,
        description=(repo.description or "").strip() or DESCRIPTION_PLACEHOLDER,
        version=version,
        tags=build_tags(repo),
        link=repo.html_url,
        bug_link=f"{repo.html_url}/issues",
    )


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class ProjectIndexService:
    """Owns the upstream client, the release memo and the project-list build.

    One instance per process. The project list is built lazily and the build
    is shared by concurrent callers. Callers await it through a shield, so a
    cancelled caller never cancels the build for everyone else. A resolved
    build is reused until it is older than the cache freshness window or
    invalidate() is called; a failed or cancelled build is dropped so the
    next call starts a new one.
    """

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None,
                 cache: ProjectCache | None = None):
        self.settings = settings
        self.client = client or build_client(settings)
        self.cache = cache or ProjectCache(settings.cache_path, settings.freshness_seconds)
        self._releases: dict[str, ProjectRelease | None] = {}
        self._build: asyncio.Future | None = None
        self._built_at: float | None = None
        self._last_success: list[Project] | None = None
        self.last_warning: str | None = None

    async def close(self):
        await self.client.aclose()

    def invalidate(self):
        self._build = None

    async def get_latest_release(self, repo_name: str) -> ProjectRelease | None:
        if repo_name not in self._releases:
            self._releases[repo_name] = await fetch_latest_release(self.client, self.settings, repo_name)
        return self._releases[repo_name]

    async def _build_projects(self) -> list[Project]:
        self._releases.clear()
        listing = await fetch_public_repos(self.client, self.settings)
        if not listing.complete:
            raise UpstreamUnavailableError(listing.warning or "repository listing unavailable")

        ranked = rank_repositories(listing.repositories)

        async def resolve(repo: RepositorySummary) -> Project:
            return to_project(repo, await self.get_latest_release(repo.name))

        projects = await map_bounded(ranked, self.settings.release_concurrency, resolve)

        written = self.cache.write(projects)
        self.last_warning = written.warning or listing.warning
        self._last_success = projects
        self._built_at = _now()
        logger.info("built project index: %d projects", len(projects))
        return projects

    def _forget_failed_build(self, build: asyncio.Future):
        if self._build is not build:
            return
        if build.cancelled() or build.exception() is not None:
            self._build = None

    def _build_expired(self) -> bool:
        return (
            self._build is not None
            and self._build.done()
            and self._built_at is not None
            and _now() - self._built_at > self.cache.freshness_seconds
        )

    async def get_all_public_projects(self) -> list[Project]:
        """Current project list: hot cache, shared build, then fallbacks."""
        hot = self.cache.read_fresh()
        if hot is not None and hot.projects:
            return list(hot.projects)

        if self._build_expired():
            self._build = None
        if self._build is None:
            self._built_at = None
            self._build = asyncio.ensure_future(self._build_projects())
            self._build.add_done_callback(self._forget_failed_build)
        build = self._build

        try:
            projects = await asyncio.shield(build)
        except RepositoryListingError:
            if self._build is build:
                self._build = None
            raise
        except Exception as e:
            if self._build is build:
                self._build = None
            return self._fallback(e)

        return list(projects)

    def _fallback(self, error: Exception) -> list[Project]:
        stale = self.cache.read()
        if stale is not None:
            logger.warning("project build failed (%s); serving cached projects", error)
            self.last_warning = f"served stale cache: {error}"
            return list(stale.projects)
        if self._last_success is not None:
            logger.warning("project build failed (%s); serving last in-memory result", error)
            self.last_warning = f"served last successful build: {error}"
            return list(self._last_success)
        if isinstance(error, UpstreamUnavailableError):
            logger.warning("no project data available: %s", error)
            self.last_warning = str(error)
            return []
        raise error

    async def get_project_detail(self, slug: str) -> ProjectDetail | None:
        decoded = from_project_slug(slug)
        if decoded.warning:
            logger.warning("slug %r: %s", slug, decoded.warning)

        repo = await fetch_repository(self.client, self.settings, decoded.name)
        if repo is None or repo.private or is_excluded_repository(repo.name, self.settings):
            return None

        readme = await fetch_readme(self.client, self.settings, repo.name)
        branch = repo.default_branch or "main"
        release = await self.get_latest_release(repo.name)

        return ProjectDetail(
            repository=repo,
            readme=readme,
            branch=branch,
            release=release,
            downloads=classify_release_assets(release.assets) if release else None,
            images=extract_project_images(readme, self.settings.owner, repo.name, branch),
            readme_without_images=strip_project_images(readme),
        )
