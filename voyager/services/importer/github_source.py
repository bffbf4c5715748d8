"""
Release listings and asset downloads from the GitHub REST API.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional

import httpx
from pydantic import ValidationError

from voyager.domain.errors import AssetDownloadError, ReleaseListError, RepositoryNotFound
from voyager.domain.models import Release, ReleaseAsset
from voyager.domain.validation import parse_repository
from voyager.services.importer.release_source import ReleaseSource
from voyager.services.retry import Sleep

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
RELEASES_PER_PAGE = 100
# Minimum remaining API calls before waiting for the rate limit window to reset.
RATE_LIMIT_BUFFER = 10


def is_retryable_status(status_code: int) -> bool:
    return status_code >= 500 or status_code == 429


class GitHubReleaseSource(ReleaseSource):
    def __init__(
        self,
        client: httpx.AsyncClient,
        token: Optional[str] = None,
        api_url: str = GITHUB_API_URL,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self._client = client
        self._token = token
        self._api_url = api_url.rstrip("/")
        self._sleep = sleep
        self._clock = clock
        self._rate_limit_remaining: Optional[int] = None
        self._rate_limit_reset: Optional[int] = None

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _update_rate_limit(self, response: httpx.Response) -> None:
        remaining = response.headers.get("x-ratelimit-remaining")
        reset = response.headers.get("x-ratelimit-reset")
        if remaining is not None and remaining.isdigit():
            self._rate_limit_remaining = int(remaining)
        if reset is not None and reset.isdigit():
            self._rate_limit_reset = int(reset)

    async def _wait_for_rate_limit(self) -> None:
        remaining = self._rate_limit_remaining
        reset = self._rate_limit_reset
        if remaining is None or reset is None or remaining > RATE_LIMIT_BUFFER:
            return
        wait = reset - self._clock() + 1
        if wait > 0:
            logger.info(f"GitHub rate limit low ({remaining} left), waiting {wait:.0f}s for reset")
            await self._sleep(wait)
            self._rate_limit_remaining = None

    async def _api_get(self, path: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        await self._wait_for_rate_limit()
        response = await self._client.get(f"{self._api_url}{path}", params=params, headers=self._headers())
        self._update_rate_limit(response)
        return response

    async def list_releases(self, repository: str) -> List[Release]:
        owner, name = parse_repository(repository)
        releases: List[Release] = []
        page = 1
        while True:
            logger.debug(f"Fetching releases page {page} for {repository}")
            try:
                response = await self._api_get(
                    f"/repos/{owner}/{name}/releases",
                    params={"per_page": RELEASES_PER_PAGE, "page": page},
                )
            except httpx.HTTPError as e:
                raise ReleaseListError(
                    f"failed to list releases for '{repository}': {e}", retryable=True
                ) from e

            if response.status_code == 404:
                raise ReleaseListError(f"repository '{repository}' not found or not accessible")
            if response.status_code == 403 and self._rate_limit_remaining == 0:
                raise ReleaseListError(f"GitHub rate limit exceeded listing '{repository}'", retryable=True)
            if response.is_error:
                raise ReleaseListError(
                    f"failed to list releases for '{repository}': HTTP {response.status_code}",
                    retryable=is_retryable_status(response.status_code),
                )

            try:
                items = response.json()
            except ValueError as e:
                raise ReleaseListError(f"GitHub returned invalid JSON for '{repository}': {e}") from e
            if not isinstance(items, list):
                raise ReleaseListError(f"GitHub returned an unexpected release listing for '{repository}'")

            for item in items:
                try:
                    if item.get("draft"):
                        continue
                    releases.append(self._parse_release(item))
                except (KeyError, TypeError, AttributeError, ValidationError) as e:
                    raise ReleaseListError(
                        f"GitHub returned a malformed release for '{repository}': {e}"
                    ) from e

            if len(items) < RELEASES_PER_PAGE:
                break
            page += 1

        logger.debug(f"Found {len(releases)} releases for {repository}")
        return releases

    @staticmethod
    def _parse_release(item: Dict[str, Any]) -> Release:
        assets = [
            ReleaseAsset(
                name=asset["name"],
                download_url=asset["browser_download_url"],
                size=asset.get("size"),
            )
            for asset in item.get("assets") or []
            if asset.get("name") and asset.get("browser_download_url")
        ]
        return Release(tag=item["tag_name"], published_at=item.get("published_at"), assets=assets)

    async def download_asset(self, asset: ReleaseAsset) -> bytes:
        headers = {"Accept": "application/octet-stream"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        try:
            response = await self._client.get(asset.download_url, headers=headers)
        except httpx.HTTPError as e:
            raise AssetDownloadError(f"failed to download {asset.download_url}: {e}", retryable=True) from e
        if response.is_error:
            raise AssetDownloadError(
                f"failed to download {asset.download_url}: HTTP {response.status_code}",
                retryable=is_retryable_status(response.status_code),
            )
        return response.content

    async def verify_repository(self, repository: str) -> None:
        owner, name = parse_repository(repository)
        try:
            response = await self._api_get(f"/repos/{owner}/{name}")
        except httpx.HTTPError as e:
            raise RepositoryNotFound(f"could not reach GitHub to verify '{repository}': {e}") from e
        if response.status_code == 404:
            raise RepositoryNotFound(f"repository '{repository}' not found or not accessible")
        if response.is_error:
            raise RepositoryNotFound(
                f"could not verify repository '{repository}': HTTP {response.status_code}"
            )
