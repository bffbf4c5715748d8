"""
SemVer 2.0 parsing and ordering, plus release tag normalization.
"""

from __future__ import annotations

import re
from typing import Optional, Tuple

_SEMVER_RE = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-((?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?"
    r"(?:\+([0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?$"
)


def normalize_tag(tag: str) -> str:
    """Strip a single leading lowercase 'v' from a release tag."""
    return tag[1:] if tag.startswith("v") else tag


def parse_semver(version: str) -> Optional[Tuple[int, int, int, Tuple[str, ...], str]]:
    match = _SEMVER_RE.match(version)
    if not match:
        return None
    major, minor, patch, pre, build = match.groups()
    prerelease = tuple(pre.split(".")) if pre else ()
    return int(major), int(minor), int(patch), prerelease, build or ""


def is_valid_semver(version: str) -> bool:
    return parse_semver(version) is not None


def semver_key(version: str) -> tuple:
    """
    Sort key following SemVer precedence.

    A pre-release sorts before its release, numeric identifiers compare
    numerically and below alphanumeric ones, build metadata is ignored. The
    raw string is the final tie-break so the order is total. Strings that
    are not SemVer sort before every valid version.
    """
    parsed = parse_semver(version)
    if parsed is None:
        return (0, version)
    major, minor, patch, prerelease, _ = parsed
    identifiers = tuple(
        (0, int(part), "") if part.isdigit() else (1, 0, part) for part in prerelease
    )
    return (1, major, minor, patch, 0 if prerelease else 1, identifiers, version)
