from __future__ import annotations

import re
import time
from datetime import datetime, timezone
from importlib import metadata
from typing import Any, Dict, Optional

from src.core.settings import AppSettings, get_app_settings

PACKAGE_NAME = "assessment-dashboard-api"
DEFAULT_VERSION = "1.0.0"

_SEMVER_RE = re.compile(
    r"^(\d+)\.(\d+)\.(\d+)"
    r"(?:-([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)


# PUBLIC_INTERFACE
def read_package_version() -> str:
    """Installed distribution version, or 1.0.0 when running from a source checkout."""
    try:
        return metadata.version(PACKAGE_NAME)
    except metadata.PackageNotFoundError:
        return DEFAULT_VERSION


# PUBLIC_INTERFACE
def parse_semantic_version(version: str) -> Dict[str, Any]:
    """
    Parse MAJOR.MINOR.PATCH[-prerelease][+build].

    Raises:
        ValueError: when the string is not a semantic version.
    """
    match = _SEMVER_RE.match(version or "")
    if not match:
        raise ValueError(f"Invalid semantic version: {version}")
    return {
        "major": int(match.group(1)),
        "minor": int(match.group(2)),
        "patch": int(match.group(3)),
        "prerelease": match.group(4),
        "build": match.group(5),
        "full": version,
    }


# PUBLIC_INTERFACE
def get_build_info(settings: Optional[AppSettings] = None) -> Dict[str, Any]:
    settings = settings or get_app_settings()
    timestamp = settings.BUILD_TIMESTAMP or str(int(time.time() * 1000))
    commit = settings.BUILD_COMMIT_SHA or "unknown"
    try:
        millis = int(timestamp)
    except ValueError:
        millis = int(time.time() * 1000)
    return {
        "timestamp": timestamp,
        "commit": commit[:7],
        "commit_full": commit,
        "branch": settings.BUILD_BRANCH or "unknown",
        "tag": settings.BUILD_TAG or "",
        "date": datetime.fromtimestamp(millis / 1000, tz=timezone.utc).isoformat(),
    }


# PUBLIC_INTERFACE
def get_version_info(settings: Optional[AppSettings] = None) -> Dict[str, Any]:
    """Complete version payload served by /api/version."""
    settings = settings or get_app_settings()
    package_version = read_package_version()
    app_version = settings.APP_VERSION or package_version
    semantic = parse_semantic_version(app_version)
    build = get_build_info(settings)
    return {
        "app": app_version,
        "package": package_version,
        "semantic": semantic,
        "build": build,
        "environment": settings.ENVIRONMENT,
        "version": app_version,
        "short_commit": build["commit"],
        "build_date": build["date"],
    }


# PUBLIC_INTERFACE
def version_string(
    fmt: str = "standard",
    include_commit: bool = True,
    include_branch: bool = False,
    include_date: bool = False,
    settings: Optional[AppSettings] = None,
) -> str:
    """Display string: standard '1.2.3', compact '1.2.3+abc1234', full '1.2.3 +abc1234 (main) [date]'."""
    info = get_version_info(settings)
    version = info["version"]
    commit = info["short_commit"]
    if fmt == "full":
        parts = [version]
        if include_commit and commit != "unknown":
            parts.append(f"+{commit}")
        if include_branch and info["build"]["branch"] != "unknown":
            parts.append(f"({info['build']['branch']})")
        if include_date:
            parts.append(f"[{info['build_date']}]")
        return " ".join(parts)
    if fmt == "compact":
        return f"{version}+{commit}" if include_commit and commit != "unknown" else version
    return version
