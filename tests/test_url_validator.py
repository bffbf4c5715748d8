import asyncio

import httpx
import pytest

from voyager.core.config import ValidateSettings
from voyager.domain.errors import IndexFormatError
from voyager.services.url_validator import UrlValidator

from conftest import TOOL_ID, no_sleep


def _index(*urls):
    return {
        "id": "com.example.vpm",
        "packages": {TOOL_ID: {f"1.{i}.0": {"url": url} for i, url in enumerate(urls)}},
    }


def _validate(handler, document, **settings):
    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True) as client:
            validator = UrlValidator(client, ValidateSettings(**settings), sleep=no_sleep)
            return await validator.validate(document)

    return asyncio.run(run())


def test_reachable_and_missing_urls():
    def handler(request):
        if request.url.path == "/ok.zip":
            return httpx.Response(200)
        return httpx.Response(404)

    report = _validate(handler, _index("https://cdn.example/ok.zip", "https://cdn.example/missing.zip"))

    assert report.total == 2
    assert [r.url for r in report.failures] == ["https://cdn.example/missing.zip"]
    assert report.failures[0].status == 404
    assert not report.ok


def test_head_not_allowed_falls_back_to_ranged_get():
    seen = []

    def handler(request):
        seen.append((request.method, request.headers.get("range")))
        if request.method == "HEAD":
            return httpx.Response(405)
        return httpx.Response(206)

    report = _validate(handler, _index("https://cdn.example/pkg.zip"))

    assert report.ok
    assert seen == [("HEAD", None), ("GET", "bytes=0-0")]


def test_redirect_to_success_counts_as_reachable():
    def handler(request):
        if request.url.host == "github.com":
            return httpx.Response(302, headers={"location": "https://objects.example/pkg.zip"})
        return httpx.Response(200)

    report = _validate(handler, _index("https://github.com/owner/tool/releases/download/v1/pkg.zip"))
    assert report.ok


def test_server_errors_are_retried_then_reported():
    calls = []

    def handler(request):
        calls.append(request.method)
        if len(calls) < 3:
            return httpx.Response(503)
        return httpx.Response(200)

    assert _validate(handler, _index("https://cdn.example/pkg.zip"), max_retries=3).ok

    calls.clear()
    report = _validate(lambda request: httpx.Response(500), _index("https://cdn.example/pkg.zip"), max_retries=1)
    assert report.failures[0].status == 500


def test_client_errors_are_not_retried():
    calls = []

    def handler(request):
        calls.append(request.method)
        return httpx.Response(410)

    report = _validate(handler, _index("https://cdn.example/pkg.zip"), max_retries=5)
    assert not report.ok
    assert calls == ["HEAD"]


def test_transport_errors_are_unreachable():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    report = _validate(handler, _index("https://cdn.example/pkg.zip"), max_retries=1)
    assert not report.ok
    assert report.failures[0].status is None
    assert "ConnectError" in report.failures[0].detail


def test_malformed_index_is_fatal():
    with pytest.raises(IndexFormatError):
        _validate(lambda request: httpx.Response(200), {"id": "x"})


def test_unparseable_url_does_not_stop_other_checks():
    calls = []

    def handler(request):
        calls.append(str(request.url))
        return httpx.Response(200)

    report = _validate(
        handler,
        _index("https://cdn.example/ok.zip", "http://[::1/x.zip", "https://cdn.example/other.zip"),
        max_retries=3,
    )

    assert report.total == 3
    assert [r.url for r in report.failures] == ["http://[::1/x.zip"]
    assert report.failures[0].status is None
    assert report.failures[0].detail.startswith("invalid URL")
    assert sorted(calls) == ["https://cdn.example/ok.zip", "https://cdn.example/other.zip"]
