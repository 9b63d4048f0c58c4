"""Pydantic models for GitHub payloads, derived projects and API responses."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class Platform(str, Enum):
    WINDOWS = "windows"
    MACOS = "macos"
    LINUX = "linux"
    ANDROID = "android"


class RepositorySummary(BaseModel):
    """Subset of the GitHub repository payload the showcase relies on."""

    model_config = ConfigDict(extra="ignore")

    id: int
    name: str = Field(..., min_length=1)
    html_url: str = Field(..., min_length=1)
    description: str | None = None
    language: str | None = None
    topics: list[str] = Field(default_factory=list)
    stargazers_count: int = 0
    forks_count: int = 0
    open_issues_count: int = 0
    updated_at: str = ""
    pushed_at: str = ""
    homepage: str | None = None
    default_branch: str = "main"
    private: bool = False

    @field_validator("topics", mode="before")
    @classmethod
    def normalize_topics(cls, v):
        if v is None:
            return []
        return [t for t in v if isinstance(t, str) and t.strip()]

    @field_validator("stargazers_count", "forks_count", "open_issues_count", mode="before")
    @classmethod
    def default_counts(cls, v):
        return 0 if v is None else v

    @field_validator("updated_at", "pushed_at", mode="before")
    @classmethod
    def default_timestamps(cls, v):
        return v or ""

    @field_validator("default_branch", mode="before")
    @classmethod
    def default_branch_name(cls, v):
        return v or "main"

    @field_validator("private", mode="before")
    @classmethod
    def default_private(cls, v):
        return bool(v)


class Project(BaseModel):
    """Display-ready representation of a repository (serialized camelCase)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: int
    title: str
    repo_name: str
    description: str
    version: str
    tags: list[str]
    link: str
    bug_link: str


class ReleaseAsset(BaseModel):
    id: int
    name: str
    browser_download_url: str
    size: int = 0

    @classmethod
    def from_api(cls, data: dict) -> "ReleaseAsset | None":
        """Build an asset from the raw payload, or None if it is not downloadable.

        Assets still uploading (or failed) and assets without a direct
        download URL are dropped. A missing ``state`` counts as uploaded.
        """
        if not isinstance(data, dict):
            return None
        state = data.get("state") or "uploaded"
        url = (data.get("browser_download_url") or "").strip()
        name = (data.get("name") or "").strip()
        if state != "uploaded" or not url or not name:
            return None
        try:
            return cls(
                id=int(data.get("id") or 0),
                name=name,
                browser_download_url=url,
                size=int(data.get("size") or 0),
            )
        except (TypeError, ValueError):
            return None


class ProjectRelease(BaseModel):
    tag_name: str
    name: str
    html_url: str = ""
    published_at: str | None = None
    assets: list[ReleaseAsset] = Field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict) -> "ProjectRelease | None":
        if not isinstance(data, dict):
            return None
        tag = (data.get("tag_name") or "").strip()
        if not tag:
            return None
        assets = [a for a in (ReleaseAsset.from_api(raw) for raw in data.get("assets") or []) if a]
        return cls(
            tag_name=tag,
            name=(data.get("name") or "").strip() or tag,
            html_url=data.get("html_url") or "",
            published_at=data.get("published_at") or None,
            assets=assets,
        )


class ReleaseDownloads(BaseModel):
    platforms: dict[Platform, ReleaseAsset] = Field(default_factory=dict)
    primary: ReleaseAsset | None = None
    advanced: list[ReleaseAsset] = Field(default_factory=list)


class ProjectDetail(BaseModel):
    repository: RepositorySummary
    readme: str
    branch: str
    release: ProjectRelease | None = None
    downloads: ReleaseDownloads | None = None
    images: list[str] = Field(default_factory=list)
    readme_without_images: str = ""


class CachePayload(BaseModel):
    """On-disk shape of the project cache: ``{updatedAt, projects}``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    updated_at: int
    projects: list[Project]


class MarkdownImagesRequest(BaseModel):
    markdown: str = Field(..., max_length=500_000)
    repo_name: str = Field(..., min_length=1, max_length=100)
    branch: str = Field(default="main", min_length=1, max_length=255)


class MarkdownImagesResponse(BaseModel):
    images: list[str]
    markdown: str
