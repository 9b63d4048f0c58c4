"""Environment-driven settings for the showcase index."""

import os
from dataclasses import dataclass, field

DEFAULT_OWNER = "Robertg761"
GH_API = "https://api.github.com"

# Repository keys hidden from the showcase (see normalize_repository_key).
EXCLUDED_REPOSITORY_KEYS = frozenset({"rgtools"})

_CACHE_PATH = os.path.join(os.path.dirname(__file__), "data", "projects-cache.json")
_TRUTHY = {"1", "true", "yes", "on"}


def _env(name: str) -> str:
    return (os.environ.get(name) or "").strip()


@dataclass(frozen=True)
class Settings:
    owner: str = DEFAULT_OWNER
    token: str = ""
    api_base: str = GH_API
    cache_path: str = _CACHE_PATH
    # Strict mode: a failed first listing page aborts the build instead of
    # falling back to cached data.
    strict: bool = False
    excluded_keys: frozenset = field(default=EXCLUDED_REPOSITORY_KEYS)
    page_size: int = 100
    max_pages: int = 10
    release_concurrency: int = 5
    freshness_seconds: int = 300

    @classmethod
    def from_env(cls) -> "Settings":
        strict = _env("CI").lower() in _TRUTHY or _env("VERIFY_BUILD").lower() in _TRUTHY
        return cls(
            owner=_env("GITHUB_OWNER") or DEFAULT_OWNER,
            token=_env("GITHUB_TOKEN"),
            api_base=(_env("GITHUB_API_BASE") or GH_API).rstrip("/"),
            cache_path=_env("PROJECT_CACHE_PATH") or _CACHE_PATH,
            strict=strict,
        )
