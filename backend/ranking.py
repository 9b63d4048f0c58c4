"""Listing order for the showcase: popularity blended with recent activity.

    starsScore   = log1p(stars) / log1p(maxStars)
    recencyScore = (activity - minActivity) / max(1, maxActivity - minActivity)
    score        = 0.55 * starsScore + 0.45 * recencyScore

activity is max(pushed_at, updated_at) in epoch milliseconds.
"""

import math
from datetime import datetime, timezone
from functools import cmp_to_key

from models import RepositorySummary

STAR_WEIGHT = 0.55
RECENCY_WEIGHT = 0.45
SCORE_EPSILON = 1e-9


def parse_timestamp(value: str | None) -> int:
    """ISO-8601 timestamp to epoch ms; unparsable or empty values map to 0."""
    if not value:
        return 0
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return 0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


def activity_timestamp(repo: RepositorySummary) -> int:
    return max(parse_timestamp(repo.pushed_at), parse_timestamp(repo.updated_at))


def _compare(a: dict, b: dict) -> int:
    diff = b["score"] - a["score"]
    if abs(diff) > SCORE_EPSILON:
        return 1 if diff > 0 else -1
    if a["stars"] != b["stars"]:
        return -1 if a["stars"] > b["stars"] else 1
    if a["activity"] != b["activity"]:
        return -1 if a["activity"] > b["activity"] else 1
    name_a, name_b = a["repo"].name, b["repo"].name
    return (name_a > name_b) - (name_a < name_b)


def score_repositories(repos: list[RepositorySummary]) -> list[dict]:
    """Per-repo scoring breakdown relative to the whole candidate set."""
    stars = [max(r.stargazers_count, 0) for r in repos]
    activities = [activity_timestamp(r) for r in repos]
    max_stars = max([1] + stars)
    min_activity = min(activities, default=0)
    activity_range = max(1, max(activities, default=0) - min_activity)

    scored = []
    for repo, star_count, activity in zip(repos, stars, activities):
        stars_score = math.log1p(star_count) / math.log1p(max_stars)
        recency_score = (activity - min_activity) / activity_range
        scored.append({
            "repo": repo,
            "stars": star_count,
            "activity": activity,
            "stars_score": stars_score,
            "recency_score": recency_score,
            "score": STAR_WEIGHT * stars_score + RECENCY_WEIGHT * recency_score,
        })
    return scored


def rank_repositories(repos: list[RepositorySummary]) -> list[RepositorySummary]:
    """Return repos best-first. Sets of zero or one are returned unchanged."""
    if len(repos) <= 1:
        return repos
    scored = score_repositories(repos)
    scored.sort(key=cmp_to_key(_compare))
    return [entry["repo"] for entry in scored]
