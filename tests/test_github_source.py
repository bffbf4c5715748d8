import asyncio

import httpx
import pytest

from voyager.domain.errors import AssetDownloadError, ReleaseListError, RepositoryNotFound
from voyager.domain.models import ReleaseAsset
from voyager.services.importer.github_source import RELEASES_PER_PAGE, GitHubReleaseSource


def _release(tag, draft=False, assets=("package.json",)):
    return {
        "tag_name": tag,
        "draft": draft,
        "published_at": "2024-03-01T12:00:00Z",
        "assets": [
            {"name": name, "browser_download_url": f"https://github.com/o/r/releases/download/{tag}/{name}"}
            for name in assets
        ],
    }


def _run(handler, coro_factory, **kwargs):
    sleeps = []

    async def fake_sleep(delay):
        sleeps.append(delay)

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            source = GitHubReleaseSource(client, sleep=fake_sleep, **kwargs)
            return await coro_factory(source)

    return asyncio.run(run()), sleeps


def test_list_releases_paginates_and_skips_drafts():
    pages = {
        "1": [_release(f"v1.{i}.0") for i in range(RELEASES_PER_PAGE)],
        "2": [_release("v2.0.0"), _release("v3.0.0", draft=True)],
    }
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json=pages[request.url.params["page"]])

    releases, _ = _run(handler, lambda s: s.list_releases("owner/repo"), token="secret")

    assert len(releases) == RELEASES_PER_PAGE + 1
    assert releases[-1].tag == "v2.0.0"
    assert releases[-1].find_asset("package.json").download_url.endswith("/v2.0.0/package.json")
    assert releases[0].published_at.year == 2024
    assert [r.url.path for r in requests] == ["/repos/owner/repo/releases"] * 2
    assert requests[0].url.params["per_page"] == str(RELEASES_PER_PAGE)
    assert requests[0].headers["authorization"] == "Bearer secret"


def test_list_releases_errors():
    with pytest.raises(ReleaseListError) as excinfo:
        _run(lambda request: httpx.Response(404), lambda s: s.list_releases("owner/repo"))
    assert not excinfo.value.retryable

    with pytest.raises(ReleaseListError) as excinfo:
        _run(lambda request: httpx.Response(502), lambda s: s.list_releases("owner/repo"))
    assert excinfo.value.retryable


@pytest.mark.parametrize(
    "item",
    [
        {"tag_name": "v1.0.0", "published_at": "yesterday"},
        {"published_at": "2024-03-01T12:00:00Z"},
        {"tag_name": "v1.0.0", "assets": ["package.json"]},
        "v1.0.0",
    ],
)
def test_malformed_release_is_a_listing_error(item):
    with pytest.raises(ReleaseListError) as excinfo:
        _run(lambda request: httpx.Response(200, json=[item]), lambda s: s.list_releases("owner/tool"))
    assert "malformed release" in str(excinfo.value)
    assert not excinfo.value.retryable


def test_low_rate_limit_waits_for_reset():
    def handler(request):
        page = request.url.params["page"]
        items = [_release(f"v{i}.0.0") for i in range(RELEASES_PER_PAGE)] if page == "1" else []
        return httpx.Response(
            200,
            json=items,
            headers={"X-RateLimit-Remaining": "3", "X-RateLimit-Reset": "1100"},
        )

    _, sleeps = _run(handler, lambda s: s.list_releases("owner/repo"), clock=lambda: 1000.0)
    assert sleeps == [101.0]


def test_download_asset_errors_carry_retryability():
    asset = ReleaseAsset(name="package.json", download_url="https://github.com/o/r/releases/download/v1/package.json")

    content, _ = _run(lambda request: httpx.Response(200, content=b"{}"), lambda s: s.download_asset(asset))
    assert content == b"{}"

    with pytest.raises(AssetDownloadError) as excinfo:
        _run(lambda request: httpx.Response(429), lambda s: s.download_asset(asset))
    assert excinfo.value.retryable

    with pytest.raises(AssetDownloadError) as excinfo:
        _run(lambda request: httpx.Response(403), lambda s: s.download_asset(asset))
    assert not excinfo.value.retryable


def test_verify_repository():
    def handler(request):
        if request.url.path == "/repos/owner/exists":
            return httpx.Response(200, json={"full_name": "owner/exists"})
        return httpx.Response(404)

    _run(handler, lambda s: s.verify_repository("owner/exists"))
    with pytest.raises(RepositoryNotFound):
        _run(handler, lambda s: s.verify_repository("owner/missing"))
