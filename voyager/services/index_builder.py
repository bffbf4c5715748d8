"""
Build the VPM index document from fetched lock state.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict

from voyager.domain.errors import EmptyPackage
from voyager.domain.models import LockRecord, Manifest
from voyager.domain.versions import semver_key

logger = logging.getLogger(__name__)


def build_index(manifest: Manifest, lock: LockRecord, allow_empty: bool = False) -> Dict[str, Any]:
    """
    Project the lock into an index document.

    Packages are ordered by id and versions by SemVer precedence, so the
    same lock always yields the same document. A configured package with no
    stored versions raises EmptyPackage unless ``allow_empty`` is set.
    """
    packages: Dict[str, Dict[str, Any]] = {}
    empty = []
    for package in sorted(manifest.packages, key=lambda p: p.id):
        state = lock.packages.get(package.id)
        records = state.versions if state is not None else {}
        if not records:
            empty.append(package.id)
        versions = {
            version: records[version].metadata.to_wire()
            for version in sorted(records, key=semver_key)
        }
        packages[package.id] = versions

    if empty:
        if not allow_empty:
            raise EmptyPackage(empty)
        for package_id in empty:
            logger.warning(f"{package_id} has no versions; writing it without any")

    return {
        "id": manifest.vpm.id,
        "name": manifest.vpm.name,
        "author": manifest.vpm.author,
        "url": manifest.vpm.url,
        "packages": packages,
    }


def serialize_index(document: Dict[str, Any]) -> bytes:
    return (json.dumps(document, indent=2, ensure_ascii=False) + "\n").encode("utf-8")


def iter_index_urls(document: Dict[str, Any]):
    """
    Yield ``(package_id, version, url)`` for every version in an index.

    Accepts both the flat ``packages.<id>.<version>`` layout and the VCC
    listing layout with versions nested under a ``versions`` key.
    """
    packages = document.get("packages")
    if not isinstance(packages, dict):
        raise ValueError("index has no 'packages' object")
    for package_id, entry in packages.items():
        if not isinstance(entry, dict):
            raise ValueError(f"package '{package_id}' is not an object")
        versions = entry.get("versions") if isinstance(entry.get("versions"), dict) else entry
        for version, metadata in versions.items():
            if not isinstance(metadata, dict) or not isinstance(metadata.get("url"), str):
                raise ValueError(f"{package_id} {version} has no download url")
            yield package_id, version, metadata["url"]
