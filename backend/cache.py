"""JSON file cache for the computed project list, with a freshness window."""

import contextlib
import json
import logging
import os
import tempfile
import time
from dataclasses import dataclass

from pydantic import ValidationError

from models import CachePayload, Project

logger = logging.getLogger("showcase")

DEFAULT_FRESHNESS = 300  # 5 minutes


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class CacheWriteResult:
    ok: bool
    warning: str | None = None


class ProjectCache:
    """Whole-file cache at ``path``: ``{"updatedAt": epoch-ms, "projects": [...]}``.

    Readers see either a complete payload or nothing; anything that does not
    parse to the expected shape is treated as a missing cache.
    """

    def __init__(self, path: str, freshness_seconds: int = DEFAULT_FRESHNESS):
        self.path = path
        self.freshness_seconds = freshness_seconds

    def read(self, max_age: float | None = None) -> CachePayload | None:
        """Return the cached payload, or None if absent, invalid, or older than max_age seconds."""
        if not os.path.exists(self.path):
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                payload = CachePayload.model_validate(json.load(f))
        except (json.JSONDecodeError, UnicodeDecodeError, ValidationError, OSError) as e:
            logger.warning("project cache unreadable path=%s error=%s", self.path, e)
            return None

        if max_age is not None and now_ms() - payload.updated_at > max_age * 1000:
            return None
        return payload

    def read_fresh(self) -> CachePayload | None:
        return self.read(max_age=self.freshness_seconds)

    def write(self, projects: list[Project]) -> CacheWriteResult:
        """Overwrite the cache file. Failures are logged and reported, never raised."""
        payload = CachePayload(updated_at=now_ms(), projects=projects)
        directory = os.path.dirname(os.path.abspath(self.path))
        tmp_path = None
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload.model_dump_json(by_alias=True))
            os.replace(tmp_path, self.path)
        except OSError as e:
            if tmp_path:
                with contextlib.suppress(OSError):
                    os.remove(tmp_path)
            logger.warning("project cache write failed path=%s error=%s", self.path, e)
            return CacheWriteResult(ok=False, warning=f"cache write failed: {e}")
        return CacheWriteResult(ok=True)

    def invalidate(self):
        if os.path.exists(self.path):
            os.remove(self.path)
