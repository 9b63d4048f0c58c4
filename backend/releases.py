"""Release asset classification: noise filtering, platform buckets, best picks."""

import re

from models import Platform, ReleaseAsset, ReleaseDownloads

PLATFORM_ORDER = (Platform.WINDOWS, Platform.MACOS, Platform.LINUX, Platform.ANDROID)

# Checksums, signatures, certificates, debug symbols, blockmaps, updater manifests.
_NOISE_RE = re.compile(
    r"(\.(sha1|sha256|sha512|md5|sig|asc|minisig|p7s|pem|crt|cer|pdb|dsym|dbg|sym|blockmap)$"
    r"|(^|[^a-z0-9])(sha\d*sums?|checksums?)([^a-z0-9]|$)"
    r"|debug[-_ ]?symbols"
    r"|\.dsym\.(zip|tar\.gz)$"
    r"|^latest(-[a-z0-9]+)?\.ya?ml$)",
    re.IGNORECASE,
)

# Platform-exclusive installer extensions, longest first within each platform.
_PLATFORM_EXTENSIONS = {
    Platform.WINDOWS: (".appxbundle", ".msixbundle", ".msix", ".appx", ".msi", ".exe"),
    Platform.MACOS: (".app.zip", ".dmg", ".pkg"),
    Platform.LINUX: (".appimage", ".flatpak", ".snap", ".deb", ".rpm"),
    Platform.ANDROID: (".apk", ".aab"),
}

_PLATFORM_KEYWORDS = {
    Platform.WINDOWS: re.compile(r"(?<![a-z0-9])(win|win32|win64|windows)(?![a-z])", re.IGNORECASE),
    Platform.MACOS: re.compile(r"(?<![a-z0-9])(mac|macos|osx|darwin|apple)(?![a-z])", re.IGNORECASE),
    Platform.LINUX: re.compile(r"(?<![a-z0-9])(linux|ubuntu|debian|fedora)(?![a-z])", re.IGNORECASE),
    Platform.ANDROID: re.compile(r"(?<![a-z0-9])(android)(?![a-z])", re.IGNORECASE),
}

# Generic archives, scored when the asset falls back to a keyword match.
_ARCHIVE_SCORES = (
    (".tar.gz", 75), (".tgz", 75), (".tar.xz", 72), (".tar.bz2", 70),
    (".zip", 80), (".7z", 72),
)

_EXTENSION_SCORES = {
    Platform.WINDOWS: (
        (".msi", 120), (".msixbundle", 112), (".msix", 112), (".appxbundle", 108),
        (".appx", 108), (".exe", 110), (".zip", 85), (".7z", 75),
    ),
    Platform.MACOS: ((".dmg", 125), (".pkg", 120), (".app.zip", 100), (".zip", 85)),
    Platform.LINUX: (
        (".appimage", 125), (".deb", 120), (".rpm", 120), (".flatpak", 110),
        (".snap", 105), (".tar.gz", 85), (".tgz", 85), (".tar.xz", 82),
    ),
    Platform.ANDROID: ((".apk", 125), (".aab", 90), (".zip", 70)),
}

_WINDOWS_INSTALLER_RE = re.compile(r"(setup|installer|install)", re.IGNORECASE)
_PORTABLE_RE = re.compile(r"portable", re.IGNORECASE)
_UNIVERSAL_RE = re.compile(r"universal", re.IGNORECASE)


def is_noise_asset(name: str) -> bool:
    return bool(_NOISE_RE.search(name.strip()))


def classify_platform(name: str) -> Platform | None:
    """Extension first (extensions never overlap), then keywords in platform order."""
    lowered = name.strip().lower()
    for platform in PLATFORM_ORDER:
        if lowered.endswith(_PLATFORM_EXTENSIONS[platform]):
            return platform
    for platform in PLATFORM_ORDER:
        if _PLATFORM_KEYWORDS[platform].search(lowered):
            return platform
    return None


def score_asset(name: str, platform: Platform) -> int:
    lowered = name.strip().lower()
    score = 0
    for ext, value in _EXTENSION_SCORES[platform]:
        if lowered.endswith(ext):
            score = value
            break
    else:
        for ext, value in _ARCHIVE_SCORES:
            if lowered.endswith(ext):
                score = value - 10
                break
    if not score:
        return 0

    if platform is Platform.WINDOWS and lowered.endswith(".exe"):
        if _WINDOWS_INSTALLER_RE.search(lowered):
            score += 15
        elif _PORTABLE_RE.search(lowered):
            score -= 5
    if platform is Platform.MACOS and _UNIVERSAL_RE.search(lowered):
        score += 5
    return score


def _rank_key(asset: ReleaseAsset, platform: Platform):
    # Highest score, then largest file, then name ascending.
    return (-score_asset(asset.name, platform), -asset.size, asset.name)


def _best(assets: list[ReleaseAsset], platform: Platform) -> ReleaseAsset | None:
    if not assets:
        return None
    return min(assets, key=lambda a: _rank_key(a, platform))


def installable_assets(assets: list[ReleaseAsset]) -> list[ReleaseAsset]:
    return [a for a in assets if not is_noise_asset(a.name)]


def classify_release_assets(assets: list[ReleaseAsset]) -> ReleaseDownloads:
    """Group installable assets per platform and pick the download to feature.

    ``primary`` scores every installable asset against the windows table so
    repos with unmapped assets still get a default download. ``advanced``
    lists whatever was not chosen as a platform pick, in release order.
    """
    candidates = installable_assets(assets)

    buckets: dict[Platform, list[ReleaseAsset]] = {}
    for asset in candidates:
        platform = classify_platform(asset.name)
        if platform is not None:
            buckets.setdefault(platform, []).append(asset)

    platforms = {}
    for platform in PLATFORM_ORDER:
        best = _best(buckets.get(platform, []), platform)
        if best is not None:
            platforms[platform] = best

    claimed = {id(a) for a in platforms.values()}
    return ReleaseDownloads(
        platforms=platforms,
        primary=_best(candidates, Platform.WINDOWS),
        advanced=[a for a in candidates if id(a) not in claimed],
    )
