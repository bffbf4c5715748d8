"""
Fetch release metadata for every manifest package into the lock.

Work fans out per package and, inside a package, per release. Every remote
request goes through one shared semaphore, so no more than
``max_concurrent`` requests are in flight however many packages and
releases there are. Tasks never touch the lock; each returns its own
outcome and the outcomes are merged once everything has finished.
"""
from __future__ import annotations

import asyncio
import hashlib
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Set, Tuple, TypeVar

from pydantic import ValidationError

from voyager.core.config import FetchSettings
from voyager.domain.errors import (
    TERMINAL_ITEM_ERRORS,
    AssetMissing,
    DuplicateVersion,
    FetchItemError,
    InvalidMetadata,
)
from voyager.domain.models import (
    FetchFailure,
    FetchReport,
    FetchState,
    LockRecord,
    Manifest,
    PackageEntry,
    PackageFetchSummary,
    PackageMetadata,
    PackageRecord,
    Release,
)
from voyager.domain.validation import validate_package_metadata
from voyager.domain.versions import normalize_tag, semver_key
from voyager.services.importer.release_source import ReleaseSource
from voyager.services.retry import Sleep, run_with_retry

logger = logging.getLogger(__name__)

T = TypeVar("T")

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def content_hash(raw: bytes) -> str:
    return "sha256:" + hashlib.sha256(raw).hexdigest()


def parse_metadata(raw: bytes, package_id: str, tag: str) -> PackageMetadata:
    """Strictly parse a package.json asset."""
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise InvalidMetadata(f"package.json is not UTF-8: {e}", package_id=package_id, tag=tag) from e
    try:
        return PackageMetadata.model_validate_json(text)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}" for err in e.errors()
        )
        raise InvalidMetadata(f"package.json is invalid: {problems}", package_id=package_id, tag=tag) from e


def _published(release: Release) -> datetime:
    published = release.published_at
    if published is None:
        return _OLDEST
    if published.tzinfo is None:
        return published.replace(tzinfo=timezone.utc)
    return published


def select_candidates(releases: List[Release], state: FetchState) -> Tuple[List[Release], List[Release]]:
    """
    Pick the releases that still need fetching.

    Releases already checked, or whose version is already stored, are left
    out. When several remaining releases normalize to the same version the
    most recently published one wins and listing order breaks ties; the
    others are returned as duplicates.
    """
    checked = set(state.last_checked_releases)
    pending = [
        r for r in releases
        if r.tag not in checked and normalize_tag(r.tag) not in state.versions
    ]

    winners: Dict[str, Release] = {}
    for release in pending:
        version = normalize_tag(release.tag)
        current = winners.get(version)
        if current is None or _published(release) > _published(current):
            winners[version] = release

    chosen = {id(r) for r in winners.values()}
    candidates = [r for r in pending if id(r) in chosen]
    duplicates = [r for r in pending if id(r) not in chosen]
    return candidates, duplicates


def reconcile_states(manifest: Manifest, lock: LockRecord, wipe: bool = False) -> Dict[str, FetchState]:
    """
    Copy the lock's fetch state into manifest order.

    Packages no longer in the manifest are dropped and packages whose
    repository changed start over. ``wipe`` starts every package over.
    """
    states: Dict[str, FetchState] = {}
    for package in manifest.packages:
        existing = None if wipe else lock.packages.get(package.id)
        if existing is not None and existing.repository != package.repository:
            logger.info(
                f"Repository for {package.id} changed from {existing.repository} to "
                f"{package.repository}; discarding its fetched versions"
            )
            existing = None
        if existing is None:
            states[package.id] = FetchState(repository=package.repository)
        else:
            states[package.id] = existing.model_copy(deep=True)

    for package_id in lock.packages:
        if package_id not in states:
            logger.info(f"Dropping {package_id} from the lock; it is no longer in the manifest")
    if wipe:
        logger.info("Discarded all previously fetched state")
    return states


class PackageOutcome:
    """Result of one package task, kept separate from every other task."""

    def __init__(self, package_id: str):
        self.package_id = package_id
        self.records: List[PackageRecord] = []
        self.checked_tags: Set[str] = set()
        self.failures: List[FetchFailure] = []
        self.skipped: List[FetchFailure] = []


def _as_failure(package_id: str, error: FetchItemError, tag: Optional[str] = None) -> FetchFailure:
    return FetchFailure(
        package_id=package_id,
        tag=tag if tag is not None else error.tag,
        kind=error.kind,
        message=error.message,
    )


class PackageFetcher:
    def __init__(self, source: ReleaseSource, settings: FetchSettings, sleep: Sleep = asyncio.sleep):
        self._source = source
        self._settings = settings
        self._sleep = sleep
        self._semaphore = asyncio.Semaphore(settings.max_concurrent)

    async def _limited(self, call: Callable[[], Awaitable[T]]) -> T:
        async with self._semaphore:
            return await call()

    async def _request(self, call: Callable[[], Awaitable[T]], label: str) -> T:
        # The semaphore is held per attempt, never while backing off.
        return await run_with_retry(
            lambda: self._limited(call),
            max_retries=self._settings.max_retries,
            is_retryable=lambda e: isinstance(e, FetchItemError) and e.retryable,
            sleep=self._sleep,
            label=label,
        )

    async def fetch(self, manifest: Manifest, lock: LockRecord) -> FetchReport:
        """
        Fetch every package and merge the results into ``lock.packages``.

        Per-release failures end up in the returned report; they never abort
        other releases or packages.
        """
        states = reconcile_states(manifest, lock, wipe=self._settings.wipe)

        if manifest.packages:
            logger.info(
                f"Fetching {len(manifest.packages)} packages "
                f"(max {self._settings.max_concurrent} concurrent requests)"
            )
        outcomes = await asyncio.gather(
            *(self._fetch_package(package, states[package.id]) for package in manifest.packages)
        )

        report = FetchReport()
        for package, outcome in zip(manifest.packages, outcomes):
            state = states[package.id]
            existing = len(state.versions)
            for record in outcome.records:
                state.versions[record.version] = record
            state.versions = dict(sorted(state.versions.items(), key=lambda item: semver_key(item[0])))
            state.last_checked_releases = sorted(set(state.last_checked_releases) | outcome.checked_tags)

            report.failures.extend(outcome.failures)
            report.skipped.extend(outcome.skipped)
            report.packages.append(
                PackageFetchSummary(
                    package_id=package.id,
                    existing=existing,
                    new=len(outcome.records),
                    failed=len(outcome.failures),
                )
            )
            if not state.versions:
                report.empty_packages.append(package.id)
            logger.info(
                f"{package.id}: {existing} existing, {len(outcome.records)} new, "
                f"{len(outcome.failures)} failed"
            )

        lock.packages = states
        return report

    async def _fetch_package(self, package: PackageEntry, state: FetchState) -> PackageOutcome:
        outcome = PackageOutcome(package.id)
        try:
            releases = await self._request(
                lambda: self._source.list_releases(package.repository),
                label=f"Listing releases of {package.repository}",
            )
        except FetchItemError as e:
            logger.warning(f"{package.id}: {e.message}")
            outcome.failures.append(_as_failure(package.id, e))
            return outcome

        candidates, duplicates = select_candidates(releases, state)
        for release in duplicates:
            message = f"another release of version {normalize_tag(release.tag)} was published later"
            logger.info(f"{package.id}: skipping {release.tag}; {message}")
            outcome.skipped.append(
                _as_failure(package.id, DuplicateVersion(message, package_id=package.id), tag=release.tag)
            )

        logger.debug(f"{package.id}: {len(candidates)} releases to fetch")
        results = await asyncio.gather(*(self._fetch_release_outcome(package, r) for r in candidates))

        for release, result in zip(candidates, results):
            if isinstance(result, PackageRecord):
                outcome.records.append(result)
                outcome.checked_tags.add(release.tag)
                continue
            logger.warning(f"{package.id} {release.tag}: {result.kind}: {result.message}")
            outcome.failures.append(_as_failure(package.id, result, tag=release.tag))
            if isinstance(result, TERMINAL_ITEM_ERRORS):
                outcome.checked_tags.add(release.tag)
        return outcome

    async def _fetch_release_outcome(self, package: PackageEntry, release: Release) -> PackageRecord | FetchItemError:
        try:
            return await self._fetch_release(package, release)
        except FetchItemError as e:
            return e

    async def _fetch_release(self, package: PackageEntry, release: Release) -> PackageRecord:
        asset_name = self._settings.asset_name
        asset = release.find_asset(asset_name)
        if asset is None:
            raise AssetMissing(
                f"release has no '{asset_name}' asset", package_id=package.id, tag=release.tag
            )

        raw = await self._request(
            lambda: self._source.download_asset(asset),
            label=f"Downloading {asset_name} of {package.id} {release.tag}",
        )
        metadata = parse_metadata(raw, package.id, release.tag)
        validate_package_metadata(package.id, release.tag, metadata)
        return PackageRecord(
            name=metadata.name,
            version=metadata.version,
            tag=release.tag,
            url=metadata.url,
            asset_url=asset.download_url,
            hash=content_hash(raw),
            metadata=metadata,
        )
