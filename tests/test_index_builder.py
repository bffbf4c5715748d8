import json

import pytest

from voyager.domain.errors import EmptyPackage
from voyager.domain.models import FetchState, LockRecord, PackageMetadata, PackageRecord
from voyager.services.index_builder import build_index, iter_index_urls, serialize_index
from voyager.storage.manifest_file import parse_manifest

from conftest import OTHER_ID, TOOL_ID, TWO_PACKAGE_TOML, package_json


def _record(package_id, version):
    metadata = PackageMetadata.model_validate(package_json(package_id, version))
    return PackageRecord(
        name=package_id,
        version=version,
        tag=f"v{version}",
        url=metadata.url,
        asset_url=f"https://github.com/owner/x/releases/download/v{version}/package.json",
        hash="sha256:" + "a" * 64,
        metadata=metadata,
    )


def _lock(**versions_by_package):
    lock = LockRecord()
    for package_id, versions in versions_by_package.items():
        lock.packages[package_id] = FetchState(
            repository="owner/x",
            versions={v: _record(package_id, v) for v in versions},
        )
    return lock


def test_packages_and_versions_are_sorted():
    manifest = parse_manifest(TWO_PACKAGE_TOML)
    lock = _lock(**{
        TOOL_ID: ["1.10.0", "1.2.0", "1.0.0-beta", "1.0.0"],
        OTHER_ID: ["0.1.0"],
    })

    document = build_index(manifest, lock)

    assert document["id"] == "com.example.vpm"
    assert document["url"] == "https://example.com/index.json"
    assert list(document["packages"]) == [OTHER_ID, TOOL_ID]
    assert list(document["packages"][TOOL_ID]) == ["1.0.0-beta", "1.0.0", "1.2.0", "1.10.0"]
    entry = document["packages"][TOOL_ID]["1.2.0"]
    assert entry["displayName"] == "Example Tool"
    assert entry["author"] == {"name": "Example Author", "email": "dev@example.com"}


def test_serialization_is_byte_identical_for_same_state():
    manifest = parse_manifest(TWO_PACKAGE_TOML)
    first = serialize_index(build_index(manifest, _lock(**{TOOL_ID: ["1.0.0", "0.9.0"], OTHER_ID: ["2.0.0"]})))
    second = serialize_index(build_index(manifest, _lock(**{OTHER_ID: ["2.0.0"], TOOL_ID: ["0.9.0", "1.0.0"]})))
    assert first == second
    assert first.endswith(b"\n")
    json.loads(first)


def test_empty_package_fails_unless_allowed():
    manifest = parse_manifest(TWO_PACKAGE_TOML)
    lock = _lock(**{TOOL_ID: ["1.0.0"]})

    with pytest.raises(EmptyPackage) as excinfo:
        build_index(manifest, lock)
    assert excinfo.value.package_ids == [OTHER_ID]

    document = build_index(manifest, lock, allow_empty=True)
    assert document["packages"][OTHER_ID] == {}


def test_iter_index_urls_reads_both_layouts():
    flat = {"packages": {TOOL_ID: {"1.0.0": {"url": "https://a.example/1.zip"}}}}
    nested = {"packages": {TOOL_ID: {"versions": {"1.0.0": {"url": "https://a.example/1.zip"}}}}}
    expected = [(TOOL_ID, "1.0.0", "https://a.example/1.zip")]
    assert list(iter_index_urls(flat)) == expected
    assert list(iter_index_urls(nested)) == expected

    with pytest.raises(ValueError):
        list(iter_index_urls({"packages": {TOOL_ID: {"1.0.0": {}}}}))
