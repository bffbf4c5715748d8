"""
Check that every download URL in an index document is reachable.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx

from voyager.core.config import ValidateSettings
from voyager.domain.errors import IndexFormatError
from voyager.domain.models import UrlCheckResult, ValidationReport
from voyager.services.index_builder import iter_index_urls
from voyager.services.retry import Sleep, run_with_retry

logger = logging.getLogger(__name__)

# Servers that refuse HEAD are asked again with a one-byte ranged GET.
HEAD_FALLBACK_STATUSES = {403, 405, 501}


class _RetryableCheck(Exception):
    def __init__(self, detail: str, status: Optional[int] = None):
        super().__init__(detail)
        self.detail = detail
        self.status = status


class _UnusableUrl(Exception):
    pass


class UrlValidator:
    def __init__(self, client: httpx.AsyncClient, settings: ValidateSettings, sleep: Sleep = asyncio.sleep):
        self._client = client
        self._settings = settings
        self._sleep = sleep
        self._semaphore = asyncio.Semaphore(settings.max_concurrent)

    async def validate(self, document: Dict[str, Any]) -> ValidationReport:
        try:
            targets = list(iter_index_urls(document))
        except ValueError as e:
            raise IndexFormatError(f"invalid index document: {e}") from e

        logger.info(f"Checking {len(targets)} URLs")
        results = await asyncio.gather(*(self._check(*target) for target in targets))
        return ValidationReport(results=list(results))

    async def _check(self, package_id: str, version: str, url: str) -> UrlCheckResult:
        try:
            status = await run_with_retry(
                lambda: self._probe(url),
                max_retries=self._settings.max_retries,
                is_retryable=lambda e: isinstance(e, _RetryableCheck),
                sleep=self._sleep,
                label=f"Checking {url}",
            )
        except _RetryableCheck as e:
            logger.warning(f"{package_id} {version}: {url} unreachable: {e.detail}")
            return UrlCheckResult(
                package_id=package_id, version=version, url=url,
                reachable=False, status=e.status, detail=e.detail,
            )
        except _UnusableUrl as e:
            logger.warning(f"{package_id} {version}: {e}")
            return UrlCheckResult(
                package_id=package_id, version=version, url=url,
                reachable=False, detail=str(e),
            )

        reachable = 200 <= status < 300
        if not reachable:
            logger.warning(f"{package_id} {version}: {url} returned HTTP {status}")
        return UrlCheckResult(
            package_id=package_id, version=version, url=url,
            reachable=reachable, status=status,
            detail=None if reachable else f"HTTP {status}",
        )

    async def _probe(self, url: str) -> int:
        """Return the final status code, raising _RetryableCheck for transient failures."""
        async with self._semaphore:
            status, detail = await self._request("HEAD", url)
            if status in HEAD_FALLBACK_STATUSES:
                logger.debug(f"HEAD {url} returned {status}; retrying with a ranged GET")
                status, detail = await self._request("GET", url, {"Range": "bytes=0-0"})
        if status is None or status == 429 or status >= 500:
            raise _RetryableCheck(detail or f"HTTP {status}", status)
        return status

    async def _request(
        self, method: str, url: str, headers: Optional[Dict[str, str]] = None
    ) -> Tuple[Optional[int], Optional[str]]:
        try:
            request = self._client.build_request(method, url, headers=headers, timeout=self._settings.timeout)
        except httpx.InvalidURL as e:
            raise _UnusableUrl(f"invalid URL: {e}") from e
        try:
            # Only the status matters; the body is never read.
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as e:
            return None, f"{type(e).__name__}: {e}"
        await response.aclose()
        return response.status_code, None


def summarize(report: ValidationReport) -> List[str]:
    lines = [f"Checked {report.total} URLs, {len(report.failures)} unreachable"]
    for result in report.failures:
        lines.append(f"  {result.package_id} {result.version}: {result.url} ({result.detail})")
    return lines
