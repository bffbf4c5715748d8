import asyncio
import json
from datetime import datetime, timezone
from typing import Dict, List, Optional, Union

import pytest

from voyager.core.config import WorkspacePaths
from voyager.domain.errors import AssetDownloadError, ReleaseListError, RepositoryNotFound
from voyager.domain.models import Release, ReleaseAsset
from voyager.services.importer.release_source import ReleaseSource
from voyager.storage.json_store import JsonWorkspaceStore

VPM_ID = "com.example.vpm"
TOOL_ID = "com.example.vpm.tool"
OTHER_ID = "com.example.vpm.other"

MANIFEST_TOML = f"""
# Example listing
[vpm]
id = "{VPM_ID}"
name = "Example VPM"
author = "Example Author"
url = "https://example.com/index.json"

[[packages]]
id = "{TOOL_ID}"
repository = "owner/tool"
"""

TWO_PACKAGE_TOML = MANIFEST_TOML + f"""
[[packages]]
id = "{OTHER_ID}"
repository = "owner/other"
"""


def package_json(package_id: str, version: str, **overrides) -> dict:
    data = {
        "name": package_id,
        "version": version,
        "displayName": "Example Tool",
        "description": "A tool",
        "unity": "2022.3",
        "author": {"name": "Example Author", "email": "dev@example.com"},
        "url": f"https://downloads.example.com/{package_id}-{version}.zip",
    }
    data.update(overrides)
    return data


async def no_sleep(delay: float) -> None:
    return None


AssetOutcome = Union[bytes, Exception]


class FakeReleaseSource(ReleaseSource):
    """In-memory release source that records how many requests overlap."""

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.releases: Dict[str, List[Release]] = {}
        self.assets: Dict[str, List[AssetOutcome]] = {}
        self.unreachable: set = set()
        self.downloads: List[str] = []
        self.list_calls: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def add_release(
        self,
        repository: str,
        tag: str,
        payload: Optional[Union[dict, bytes]] = None,
        asset_name: str = "package.json",
        published_at: Optional[datetime] = None,
        outcomes: Optional[List[AssetOutcome]] = None,
    ) -> Release:
        url = f"https://github.com/{repository}/releases/download/{tag}/{asset_name}"
        assets = []
        if payload is not None or outcomes is not None:
            assets.append(ReleaseAsset(name=asset_name, download_url=url))
            if outcomes is None:
                raw = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
                outcomes = [raw]
            self.assets[url] = list(outcomes)
        release = Release(
            tag=tag,
            published_at=published_at or datetime(2024, 1, 1, tzinfo=timezone.utc),
            assets=assets,
        )
        self.releases.setdefault(repository, []).append(release)
        return release

    async def _track(self):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1

    async def list_releases(self, repository: str) -> List[Release]:
        self.list_calls.append(repository)
        await self._track()
        if repository in self.unreachable:
            raise ReleaseListError(f"cannot reach {repository}", retryable=True)
        return list(self.releases.get(repository, []))

    async def download_asset(self, asset: ReleaseAsset) -> bytes:
        self.downloads.append(asset.download_url)
        await self._track()
        outcomes = self.assets[asset.download_url]
        outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def verify_repository(self, repository: str) -> None:
        if repository not in self.releases:
            raise RepositoryNotFound(f"repository '{repository}' not found")


def flaky(times: int, then: bytes) -> List[AssetOutcome]:
    return [AssetDownloadError("connection reset", retryable=True) for _ in range(times)] + [then]


@pytest.fixture
def source():
    return FakeReleaseSource()


@pytest.fixture
def workspace(tmp_path):
    manifest_path = tmp_path / "voyager.toml"
    manifest_path.write_text(MANIFEST_TOML, encoding="utf-8")
    return JsonWorkspaceStore(WorkspacePaths(manifest_path=manifest_path))
