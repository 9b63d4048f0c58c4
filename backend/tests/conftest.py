"""
Shared pytest fixtures: settings pointed at a temp cache and a fake GitHub API
served through httpx.MockTransport.
"""

import base64

import httpx
import pytest

import connectors.github_connector as github_connector
from config import Settings
from connectors.github_connector import build_client

API = "https://api.github.com"
OWNER = "octo"


def repo_payload(name, **overrides):
    payload = {
        "id": sum(map(ord, name)),
        "name": name,
        "html_url": f"https://github.com/{OWNER}/{name}",
        "description": f"{name} description",
        "language": "Python",
        "topics": [],
        "stargazers_count": 0,
        "forks_count": 0,
        "open_issues_count": 0,
        "updated_at": "2024-01-01T00:00:00Z",
        "pushed_at": "2024-01-01T00:00:00Z",
        "homepage": None,
        "default_branch": "main",
        "private": False,
    }
    payload.update(overrides)
    return payload


def release_payload(tag="v1.0.0", assets=()):
    return {
        "tag_name": tag,
        "name": f"Release {tag}",
        "html_url": f"https://github.com/{OWNER}/repo/releases/tag/{tag}",
        "published_at": "2024-02-01T00:00:00Z",
        "assets": [
            {
                "id": i + 1,
                "name": name,
                "state": "uploaded",
                "size": 1000 + i,
                "browser_download_url": f"https://github.com/{OWNER}/repo/releases/download/{tag}/{name}",
            }
            for i, name in enumerate(assets)
        ],
    }


def readme_payload(text):
    encoded = base64.b64encode(text.encode("utf-8")).decode("ascii")
    # The contents API wraps base64 at 60 columns.
    wrapped = "\n".join(encoded[i:i + 60] for i in range(0, len(encoded), 60))
    return {"content": wrapped, "encoding": "base64"}


class FakeGitHub:
    """Routes request paths to canned responses and records every request.

    A route value may be a JSON-able object (200), an int status code, an
    httpx.Response, an exception instance, or a list of those consumed in
    order (the last entry repeats).
    """

    def __init__(self):
        self.routes = {}
        self.requests = []

    def route(self, path, *responses):
        self.routes[path] = list(responses)
        return self

    def calls(self, path):
        return [r for r in self.requests if r.url.path == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get(request.url.path)
        if not queue:
            return httpx.Response(404, json={"message": "Not Found"})
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        if isinstance(item, httpx.Response):
            return item
        if isinstance(item, int):
            return httpx.Response(item, json={"message": "error"})
        return httpx.Response(200, json=item)

    def client(self, settings):
        return build_client(settings, transport=httpx.MockTransport(self.handler))


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    monkeypatch.setattr(github_connector, "RETRY_BACKOFF", 0)


@pytest.fixture
def settings(tmp_path):
    return Settings(owner=OWNER, cache_path=str(tmp_path / "cache" / "projects.json"))


@pytest.fixture
def strict_settings(tmp_path):
    return Settings(owner=OWNER, cache_path=str(tmp_path / "cache" / "projects.json"), strict=True)


@pytest.fixture
def github():
    return FakeGitHub()
