"""Upstream data connectors."""

from .github_connector import (
    FetchResult,
    FetchStatus,
    RepositoryListing,
    RepositoryListingError,
    build_client,
    fetch_github_json,
    fetch_latest_release,
    fetch_public_repos,
    fetch_readme,
    fetch_repository,
    is_excluded_repository,
    normalize_repository_key,
)

__all__ = [
    "FetchResult", "FetchStatus", "RepositoryListing", "RepositoryListingError",
    "build_client", "fetch_github_json", "fetch_latest_release", "fetch_public_repos",
    "fetch_readme", "fetch_repository", "is_excluded_repository", "normalize_repository_key",
]
