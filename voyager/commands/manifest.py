"""
Commands that create, edit and inspect the manifest.

Edits made through these commands are intentional, so after writing the
manifest they re-baseline the lock to the new hash.
"""
from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from voyager.domain.errors import (
    ManifestExistsError,
    ManifestValidationError,
    PackageNotFoundError,
)
from voyager.domain.models import FetchState, LockRecord, Manifest, PackageEntry, PackageRecord, VpmInfo
from voyager.domain.validation import (
    parse_repository,
    validate_manifest,
    validate_package_id_prefix,
    validate_reverse_domain,
)
from voyager.domain.versions import semver_key
from voyager.services import ledger
from voyager.services.importer.release_source import ReleaseSource
from voyager.storage.base import WorkspaceStore

logger = logging.getLogger(__name__)


async def _load_consistent(store: WorkspaceStore) -> Tuple[Manifest, LockRecord]:
    store.recover()
    manifest = await store.load_manifest()
    lock = await store.load_lock()
    ledger.ensure_consistent(manifest, lock)
    return manifest, lock if lock is not None else LockRecord()


async def _commit(store: WorkspaceStore, manifest: Manifest, lock: LockRecord) -> None:
    """Save the manifest, then re-baseline the lock; if the lock write fails, 'voy lock' re-baselines it."""
    validate_manifest(manifest)
    await store.save_manifest(manifest)
    ledger.accept(manifest, lock)
    await store.save_lock(lock)


async def init_manifest(
    store: WorkspaceStore,
    vpm_id: str,
    name: str,
    author: str,
    url: str,
    force: bool = False,
) -> Manifest:
    store.recover()
    path = store.paths.manifest_path
    if path.exists() and not force:
        raise ManifestExistsError(f"{path} already exists")

    manifest = Manifest(vpm=VpmInfo(id=vpm_id, name=name, author=author, url=url))
    await _commit(store, manifest, LockRecord())
    logger.info(f"Created {path}")
    return manifest


def infer_package_id(vpm_id: str, repository: str) -> str:
    _, name = parse_repository(repository)
    return f"{vpm_id}.{name.lower().replace('-', '_')}"


async def add_package(
    store: WorkspaceStore,
    repository: str,
    package_id: Optional[str] = None,
    source: Optional[ReleaseSource] = None,
) -> PackageEntry:
    manifest, lock = await _load_consistent(store)

    try:
        parse_repository(repository)
        if package_id is None:
            package_id = infer_package_id(manifest.vpm.id, repository)
        validate_reverse_domain(package_id)
        validate_package_id_prefix(package_id, manifest.vpm.id)
    except ValueError as e:
        raise ManifestValidationError(str(e)) from e

    if manifest.find_package(package_id) is not None:
        raise ManifestValidationError(f"package '{package_id}' already exists in {store.paths.manifest_path}")

    if source is not None:
        await source.verify_repository(repository)

    entry = PackageEntry(id=package_id, repository=repository)
    manifest.packages.append(entry)
    await _commit(store, manifest, lock)
    return entry


async def remove_package(store: WorkspaceStore, package_id: str) -> PackageEntry:
    manifest, lock = await _load_consistent(store)
    entry = manifest.find_package(package_id)
    if entry is None:
        raise PackageNotFoundError(f"package '{package_id}' is not in {store.paths.manifest_path}")

    manifest.packages = [p for p in manifest.packages if p.id != package_id]
    lock.packages.pop(package_id, None)
    await _commit(store, manifest, lock)
    return entry


async def list_packages(store: WorkspaceStore) -> List[Tuple[PackageEntry, int]]:
    """Configured packages with their stored version counts."""
    manifest, lock = await _load_consistent(store)
    result = []
    for package in manifest.packages:
        state = lock.packages.get(package.id)
        result.append((package, len(state.versions) if state else 0))
    return result


async def package_versions(store: WorkspaceStore, package_id: str) -> Tuple[PackageEntry, List[PackageRecord]]:
    """
    Stored versions of one package, newest first.
    """
    manifest, lock = await _load_consistent(store)
    entry = manifest.find_package(package_id)
    if entry is None:
        raise PackageNotFoundError(f"package '{package_id}' is not in {store.paths.manifest_path}")
    state = lock.packages.get(package_id) or FetchState(repository=entry.repository)
    return entry, sorted(state.versions.values(), key=lambda r: semver_key(r.version), reverse=True)
