import asyncio

import pytest

import project_index
from cache import ProjectCache
from connectors.github_connector import RepositoryListingError
from models import Platform, Project, RepositorySummary
from project_index import (
    ProjectIndexService,
    build_tags,
    format_version_date,
    from_project_slug,
    normalize_tag,
    to_project,
    to_project_slug,
)
from conftest import readme_payload, release_payload, repo_payload

LIST_PATH = "/users/octo/repos"


def run(coro):
    return asyncio.run(coro)


def make_service(github, settings):
    return ProjectIndexService(settings, client=github.client(settings))


def cached_project(name="cached"):
    return Project(
        id=7, title=name, repo_name=name, description="from cache", version="v0",
        tags=["Go"], link=f"https://github.com/octo/{name}",
        bug_link=f"https://github.com/octo/{name}/issues",
    )


# ---------------------------------------------------------------------------
# Repository -> Project mapping
# ---------------------------------------------------------------------------

def test_normalize_tag():
    assert normalize_tag("machine-learning") == "Machine Learning"
    assert normalize_tag("cli_tool") == "Cli Tool"
    assert normalize_tag("  ") == ""


def test_tags_language_first_then_three_topics_deduplicated():
    repo = RepositorySummary.model_validate(repo_payload(
        "w", language="Rust", topics=["rust", "command-line", "cli", "tui"],
    ))
    assert build_tags(repo) == ["Rust", "Command Line", "Cli"]

    dup = RepositorySummary.model_validate(repo_payload("w", language="Rust", topics=["Rust", "rust"]))
    assert build_tags(dup) == ["Rust"]


def test_tags_fall_back_to_default():
    repo = RepositorySummary.model_validate(repo_payload("w", language=None, topics=[]))
    assert build_tags(repo) == ["Public Repo"]


def test_version_label():
    assert format_version_date("2024-03-05T10:00:00Z") == "Updated Mar 5, 2024"
    assert format_version_date("nonsense") == "Public Repository"


def test_to_project_fields():
    repo = RepositorySummary.model_validate(repo_payload("widget", description="  ", pushed_at="2023-12-25T00:00:00Z"))
    p = to_project(repo)
    assert p.title == p.repo_name == "widget"
    assert p.description == "No description provided yet."
    assert p.version == "Updated Dec 25, 2023"
    assert p.bug_link == "https://github.com/octo/widget/issues"


def test_release_tag_becomes_version():
    from models import ProjectRelease

    repo = RepositorySummary.model_validate(repo_payload("widget"))
    release = ProjectRelease.from_api(release_payload("v3.1.0"))
    assert to_project(repo, release).version == "v3.1.0"


def test_slug_round_trip_and_fallback():
    assert to_project_slug("my repo") == "my%20repo"
    assert from_project_slug("my%20repo").name == "my repo"
    assert from_project_slug("my%20repo").warning is None

    bad = from_project_slug("100%")
    assert bad.name == "100%"
    assert bad.warning

    invalid_utf8 = from_project_slug("%E0%A4")
    assert invalid_utf8.name == "%E0%A4"
    assert invalid_utf8.warning


# ---------------------------------------------------------------------------
# Index build, cache and fallbacks
# ---------------------------------------------------------------------------

def test_build_ranks_resolves_releases_and_writes_cache(github, settings):
    github.route(LIST_PATH, [
        repo_payload("small", stargazers_count=1),
        repo_payload("big", stargazers_count=50),
        repo_payload("hidden", private=True),
    ])
    github.route("/repos/octo/big/releases/latest", release_payload("v2.0.0"))

    service = make_service(github, settings)
    projects = run(service.get_all_public_projects())

    assert [p.repo_name for p in projects] == ["big", "small"]
    assert projects[0].version == "v2.0.0"
    assert projects[1].version.startswith("Updated ")

    payload = ProjectCache(settings.cache_path).read_fresh()
    assert [p.repo_name for p in payload.projects] == ["big", "small"]


def test_hot_cache_skips_network(github, settings):
    ProjectCache(settings.cache_path).write([cached_project()])
    service = make_service(github, settings)
    projects = run(service.get_all_public_projects())
    assert [p.repo_name for p in projects] == ["cached"]
    assert github.requests == []


def test_empty_hot_cache_triggers_rebuild(github, settings):
    ProjectCache(settings.cache_path).write([])
    github.route(LIST_PATH, [repo_payload("widget")])
    service = make_service(github, settings)
    assert [p.repo_name for p in run(service.get_all_public_projects())] == ["widget"]


def test_concurrent_callers_share_one_build(github, settings, monkeypatch):
    github.route(LIST_PATH, [repo_payload("widget")])
    service = make_service(github, settings)
    monkeypatch.setattr(service.cache, "read_fresh", lambda: None)

    async def go():
        return await asyncio.gather(*(service.get_all_public_projects() for _ in range(5)))

    results = run(go())
    assert all([p.repo_name for p in r] == ["widget"] for r in results)
    assert len(github.calls(LIST_PATH)) == 1


def test_resolved_build_is_memoized_until_invalidated(github, settings, monkeypatch):
    github.route(LIST_PATH, [repo_payload("widget")])
    service = make_service(github, settings)
    monkeypatch.setattr(service.cache, "read_fresh", lambda: None)

    async def go():
        await service.get_all_public_projects()
        await service.get_all_public_projects()
        service.invalidate()
        await service.get_all_public_projects()

    run(go())
    assert len(github.calls(LIST_PATH)) == 2


def slow_listing(monkeypatch, delay=0.05):
    real = project_index.fetch_public_repos

    async def listing(client, settings):
        await asyncio.sleep(delay)
        return await real(client, settings)

    monkeypatch.setattr(project_index, "fetch_public_repos", listing)


def test_cancelled_caller_does_not_cancel_shared_build(github, settings, monkeypatch):
    github.route(LIST_PATH, [repo_payload("widget")])
    service = make_service(github, settings)
    monkeypatch.setattr(service.cache, "read_fresh", lambda: None)
    slow_listing(monkeypatch)

    async def go():
        impatient = asyncio.ensure_future(service.get_all_public_projects())
        patient = asyncio.ensure_future(service.get_all_public_projects())
        await asyncio.sleep(0.01)
        impatient.cancel()
        projects = await patient
        later = await service.get_all_public_projects()
        return impatient, projects, later

    impatient, projects, later = run(go())
    assert impatient.cancelled()
    assert [p.repo_name for p in projects] == ["widget"]
    assert [p.repo_name for p in later] == ["widget"]
    assert len(github.calls(LIST_PATH)) == 1


def test_cancelled_build_is_dropped_and_retried(github, settings, monkeypatch):
    github.route(LIST_PATH, [repo_payload("widget")])
    service = make_service(github, settings)
    monkeypatch.setattr(service.cache, "read_fresh", lambda: None)
    slow_listing(monkeypatch)

    async def go():
        caller = asyncio.ensure_future(service.get_all_public_projects())
        await asyncio.sleep(0.01)
        service._build.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller
        return await service.get_all_public_projects()

    projects = run(go())
    assert [p.repo_name for p in projects] == ["widget"]
    assert len(github.calls(LIST_PATH)) == 1


def test_resolved_build_expires_with_freshness_window(github, settings, monkeypatch):
    github.route(LIST_PATH, [repo_payload("widget")])
    service = make_service(github, settings)
    monkeypatch.setattr(service.cache, "read_fresh", lambda: None)
    clock = [1000.0]
    monkeypatch.setattr(project_index, "_now", lambda: clock[0])

    async def go():
        await service.get_all_public_projects()
        clock[0] += settings.freshness_seconds - 1
        await service.get_all_public_projects()
        clock[0] += 2
        await service.get_all_public_projects()

    run(go())
    assert len(github.calls(LIST_PATH)) == 2


def test_release_lookups_memoized_within_build(github, settings):
    github.route(LIST_PATH, [repo_payload("widget")])
    github.route("/repos/octo/widget/releases/latest", release_payload("v1.0.0"))
    github.route("/repos/octo/widget", repo_payload("widget"))
    service = make_service(github, settings)

    async def go():
        await service.get_all_public_projects()
        await service.get_project_detail("widget")

    run(go())
    assert len(github.calls("/repos/octo/widget/releases/latest")) == 1


def test_listing_failure_without_cache_returns_empty(github, settings):
    github.route(LIST_PATH, 500)
    service = make_service(github, settings)
    assert run(service.get_all_public_projects()) == []
    assert service.last_warning


def test_listing_failure_serves_stale_cache(github, settings, monkeypatch):
    import cache as cache_module

    monkeypatch.setattr(cache_module, "now_ms", lambda: 1_000)
    ProjectCache(settings.cache_path).write([cached_project()])
    monkeypatch.setattr(cache_module, "now_ms", lambda: 10_000_000)

    github.route(LIST_PATH, 500)
    service = make_service(github, settings)
    projects = run(service.get_all_public_projects())
    assert [p.repo_name for p in projects] == ["cached"]
    # a failed listing never overwrites the cache
    assert ProjectCache(settings.cache_path).read().updated_at == 1_000


def test_failure_falls_back_to_last_success(github, settings, monkeypatch):
    github.route(LIST_PATH, [repo_payload("widget")], 500)
    service = make_service(github, settings)
    monkeypatch.setattr(service.cache, "read_fresh", lambda: None)

    async def go():
        first = await service.get_all_public_projects()
        service.cache.invalidate()
        service.invalidate()
        second = await service.get_all_public_projects()
        return first, second

    first, second = run(go())
    assert [p.repo_name for p in first] == ["widget"]
    assert [p.repo_name for p in second] == ["widget"]


def test_unexpected_failure_propagates_without_fallbacks(github, settings, monkeypatch):
    github.route(LIST_PATH, [repo_payload("widget")])
    service = make_service(github, settings)

    async def boom(repo_name):
        raise RuntimeError("release lookup exploded")

    monkeypatch.setattr(service, "get_latest_release", boom)
    with pytest.raises(RuntimeError, match="exploded"):
        run(service.get_all_public_projects())
    # the failed build is cleared so a later call can retry
    assert service._build is None


def test_strict_listing_failure_is_fatal_even_with_cache(github, strict_settings, monkeypatch):
    import cache as cache_module

    monkeypatch.setattr(cache_module, "now_ms", lambda: 1_000)
    ProjectCache(strict_settings.cache_path).write([cached_project()])
    monkeypatch.setattr(cache_module, "now_ms", lambda: 10_000_000)

    github.route(LIST_PATH, 503)
    service = make_service(github, strict_settings)
    with pytest.raises(RepositoryListingError):
        run(service.get_all_public_projects())


def test_cache_write_failure_is_swallowed(github, tmp_path):
    from config import Settings

    blocker = tmp_path / "blocker"
    blocker.write_text("x")
    settings = Settings(owner="octo", cache_path=str(blocker / "projects.json"))
    github.route(LIST_PATH, [repo_payload("widget")])
    service = make_service(github, settings)

    projects = run(service.get_all_public_projects())
    assert [p.repo_name for p in projects] == ["widget"]
    assert "cache write failed" in service.last_warning


# ---------------------------------------------------------------------------
# Project detail
# ---------------------------------------------------------------------------

def test_project_detail_bundle(github, settings):
    readme = "# Widget\n![CI](https://github.com/octo/widget/actions/workflows/ci.yml/badge.svg)\n![Shot](docs/shot.png)\n"
    github.route("/repos/octo/my widget", repo_payload("my widget", default_branch="develop"))
    github.route("/repos/octo/my widget/readme", readme_payload(readme))
    github.route("/repos/octo/my widget/releases/latest", release_payload(
        "v1.2.0", ["App-Setup.exe", "App.dmg", "App.sha256"],
    ))
    service = make_service(github, settings)

    detail = run(service.get_project_detail("my%20widget"))
    assert detail.repository.name == "my widget"
    assert detail.branch == "develop"
    assert detail.readme == readme
    assert detail.release.tag_name == "v1.2.0"
    assert set(detail.downloads.platforms) == {Platform.WINDOWS, Platform.MACOS}
    assert detail.images == ["https://raw.githubusercontent.com/octo/my%20widget/develop/docs/shot.png"]
    assert "![" not in detail.readme_without_images


def test_project_detail_without_readme_or_release(github, settings):
    github.route("/repos/octo/widget", repo_payload("widget"))
    service = make_service(github, settings)
    detail = run(service.get_project_detail("widget"))
    assert detail.readme == ""
    assert detail.release is None
    assert detail.downloads is None
    assert detail.images == []


@pytest.mark.parametrize("payload", [
    repo_payload("secret", private=True),
    repo_payload("rgtools"),
])
def test_project_detail_hides_private_and_excluded(github, settings, payload):
    github.route(f"/repos/octo/{payload['name']}", payload)
    service = make_service(github, settings)
    assert run(service.get_project_detail(payload["name"])) is None


def test_project_detail_unknown_repo(github, settings):
    service = make_service(github, settings)
    assert run(service.get_project_detail("missing")) is None
