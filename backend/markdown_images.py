"""README image extraction for project galleries.

Scanning is regex based; callers only depend on extract_image_references(),
so it can be replaced by a markdown AST walk without touching them.
"""

import re
from dataclasses import dataclass
from urllib.parse import quote

RAW_CONTENT_BASE = "https://raw.githubusercontent.com"

_MARKDOWN_IMAGE_RE = re.compile(r"!\[.*?\]\(([^)]+)\)")
_HTML_IMAGE_SRC_RE = re.compile(r"<img[^>]+src=[\"']([^\"']+)[\"']", re.IGNORECASE)
_HTML_IMAGE_TAG_RE = re.compile(r"<img[^>]*>", re.IGNORECASE)

# Badges, CI status, coverage, sponsorship and license shields. Real
# screenshots are almost never SVG, status badges almost always are.
IGNORED_IMAGE_PATTERNS = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"shields\.io",
        r"badge",
        r"travis-ci",
        r"circleci",
        r"sonarcloud",
        r"codecov",
        r"coveralls",
        r"appveyor",
        r"opencollective",
        r"ko-fi",
        r"buymeacoffee",
        r"sponsor",
        r"license",
        r"actions/workflows",
        r"github\.com/.*/badges/",
        r"github\.com/.*/actions/",
        r"\.svg",
    )
)


@dataclass(frozen=True)
class ImageReference:
    kind: str  # "markdown" or "html"
    url: str
    offset: int


def extract_image_references(text: str) -> list[ImageReference]:
    """All image references: markdown syntax first, then <img> tags, each in document order."""
    refs = [
        ImageReference("markdown", m.group(1).strip(), m.start())
        for m in _MARKDOWN_IMAGE_RE.finditer(text)
    ]
    refs.extend(
        ImageReference("html", m.group(1).strip(), m.start())
        for m in _HTML_IMAGE_SRC_RE.finditer(text)
    )
    return refs


def is_ignored_image(url: str) -> bool:
    return any(p.search(url) for p in IGNORED_IMAGE_PATTERNS)


def raw_content_base(owner: str, repo_name: str, branch: str) -> str:
    return "/".join([
        RAW_CONTENT_BASE,
        quote(owner, safe=""),
        quote(repo_name, safe=""),
        quote(branch, safe=""),
    ])


def resolve_image_url(url: str, owner: str, repo_name: str, branch: str) -> str:
    if url.startswith("http") or url.startswith("data:"):
        return url
    if url.startswith("//"):
        return f"https:{url}"

    without_prefix = re.sub(r"^\.?/", "", url)
    path, _, query = without_prefix.partition("?")
    encoded = "/".join(quote(segment, safe="") for segment in path.split("/") if segment)
    resolved = f"{raw_content_base(owner, repo_name, branch)}/{encoded}"
    return f"{resolved}?{query}" if query else resolved


def extract_project_images(markdown: str, owner: str, repo_name: str, branch: str) -> list[str]:
    """Gallery-worthy image URLs from a README, deduplicated and absolute."""
    seen = dict.fromkeys(ref.url for ref in extract_image_references(markdown))
    return [
        resolve_image_url(url, owner, repo_name, branch)
        for url in seen
        if url and not is_ignored_image(url)
    ]


def strip_project_images(markdown: str) -> str:
    """Remove every image so the gallery does not render them twice."""
    return _HTML_IMAGE_TAG_RE.sub("", _MARKDOWN_IMAGE_RE.sub("", markdown))
