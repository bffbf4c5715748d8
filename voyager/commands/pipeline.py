"""
The fetch, generate, validate and lock commands.

Each command recovers interrupted writes, reads the persisted files fresh,
and only commits once its work has succeeded.
"""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import httpx

from voyager.core.config import FetchSettings, GenerateSettings, ValidateSettings
from voyager.domain.errors import LockMissingError, StaleLockError
from voyager.domain.models import FetchReport, LockRecord, ValidationReport
from voyager.services import ledger
from voyager.services.importer.package_fetcher import PackageFetcher
from voyager.services.importer.release_source import ReleaseSource
from voyager.services.index_builder import build_index, serialize_index
from voyager.services.ledger import LockStatus
from voyager.services.retry import Sleep
from voyager.services.url_validator import UrlValidator
from voyager.storage.base import WorkspaceStore

logger = logging.getLogger(__name__)


async def run_fetch(
    store: WorkspaceStore,
    source: ReleaseSource,
    settings: FetchSettings,
    accept_manifest: bool = False,
    sleep: Sleep = asyncio.sleep,
) -> FetchReport:
    store.recover()
    manifest = await store.load_manifest()
    lock = await store.load_lock()
    ledger.ensure_consistent(manifest, lock, accept=accept_manifest)
    if lock is None:
        lock = LockRecord()

    fetcher = PackageFetcher(source, settings, sleep=sleep)
    report = await fetcher.fetch(manifest, lock)

    ledger.accept(manifest, lock)
    await store.save_lock(lock)
    return report


async def run_generate(
    store: WorkspaceStore,
    settings: GenerateSettings,
    accept_manifest: bool = False,
) -> Path:
    output_path = settings.output_path
    store.recover(output_path.parent)
    manifest = await store.load_manifest()
    lock = await store.load_lock()
    if lock is None:
        raise LockMissingError(f"lock file not found: {store.paths.lock_path}")
    ledger.ensure_consistent(manifest, lock, accept=accept_manifest)

    document = build_index(manifest, lock, allow_empty=settings.allow_empty)
    await store.save_index(serialize_index(document), output_path)
    logger.info(f"Wrote {output_path}")
    return output_path


async def run_validate(
    store: WorkspaceStore,
    client: httpx.AsyncClient,
    index_path: Path,
    settings: ValidateSettings,
    sleep: Sleep = asyncio.sleep,
) -> ValidationReport:
    document = await store.load_index(index_path)
    validator = UrlValidator(client, settings, sleep=sleep)
    return await validator.validate(document)


async def run_lock(
    store: WorkspaceStore,
    check_only: bool = False,
    source: Optional[ReleaseSource] = None,
) -> LockStatus:
    """
    Compare the manifest against the lock, or re-baseline the lock.

    With ``source`` given, every repository is verified before accepting,
    and the manifest is read again afterwards so an edit made meanwhile is
    not silently accepted.
    """
    store.recover()
    manifest = await store.load_manifest()
    lock = await store.load_lock()
    status = ledger.check(manifest, lock)
    expected_hash = ledger.compute_hash(manifest)

    if check_only:
        if status is not LockStatus.CONSISTENT:
            raise StaleLockError(lock.manifest_hash if lock else None, expected_hash)
        return status

    if status is LockStatus.CONSISTENT:
        return status

    if source is not None:
        for package in manifest.packages:
            await source.verify_repository(package.repository)
        manifest = await store.load_manifest()
        if ledger.compute_hash(manifest) != expected_hash:
            raise StaleLockError(expected_hash, ledger.compute_hash(manifest))

    if lock is None:
        lock = LockRecord()
    ledger.accept(manifest, lock)
    await store.save_lock(lock)
    return status
