from pathlib import Path
from typing import Optional

import httpx

from voyager import __version__
from voyager.core.config import WorkspacePaths
from voyager.services.importer.github_source import GitHubReleaseSource
from voyager.services.importer.release_source import ReleaseSource
from voyager.storage.base import WorkspaceStore
from voyager.storage.json_store import JsonWorkspaceStore

HTTP_TIMEOUT_SECONDS = 30.0
USER_AGENT = f"voyager/{__version__}"


def build_http_client(timeout: float = HTTP_TIMEOUT_SECONDS) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        follow_redirects=True,
        timeout=timeout,
        headers={"User-Agent": USER_AGENT},
    )


def build_release_source(client: httpx.AsyncClient, token: Optional[str] = None) -> ReleaseSource:
    return GitHubReleaseSource(client, token=token)


def build_store(manifest_path: Path) -> WorkspaceStore:
    return JsonWorkspaceStore(WorkspacePaths(manifest_path=manifest_path))
