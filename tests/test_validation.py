import pytest

from voyager.domain.errors import InvalidMetadata, ManifestValidationError, MetadataMismatch
from voyager.domain.models import Manifest, PackageEntry, PackageMetadata, VpmInfo
from voyager.domain.validation import (
    parse_repository,
    validate_dependency_range,
    validate_manifest,
    validate_package_metadata,
    validate_reverse_domain,
    validate_url,
)
from voyager.domain.versions import is_valid_semver, normalize_tag, semver_key

from conftest import TOOL_ID, VPM_ID, package_json


def _manifest(*packages, **vpm):
    fields = {"id": VPM_ID, "name": "Example", "author": "Me", "url": "https://example.com/index.json"}
    fields.update(vpm)
    return Manifest(vpm=VpmInfo(**fields), packages=[PackageEntry(id=i, repository=r) for i, r in packages])


@pytest.mark.parametrize("value", ["com.example", "com.my-org.my_package", "com.example123.pkg456"])
def test_reverse_domain_accepts(value):
    validate_reverse_domain(value)


@pytest.mark.parametrize("value", ["", "example", "com..example", ".com.example", "com.example.", "com.ex@mple"])
def test_reverse_domain_rejects(value):
    with pytest.raises(ValueError):
        validate_reverse_domain(value)


@pytest.mark.parametrize("url", ["", "example.com", "ftp://example.com", "https://"])
def test_url_rejects(url):
    with pytest.raises(ValueError):
        validate_url(url)


def test_parse_repository():
    assert parse_repository("my-org/My.Repo_1") == ("my-org", "My.Repo_1")
    for bad in ["owner", "owner/repo/extra", "-owner/repo", "owner-/repo", "a" * 40 + "/repo", "owner/re po"]:
        with pytest.raises(ValueError):
            parse_repository(bad)


def test_manifest_reports_every_problem():
    manifest = _manifest(
        (TOOL_ID, "owner/tool"),
        (TOOL_ID, "owner/tool"),
        ("org.other.pkg", "owner/other"),
        ("com.example.vpm.bad", "not-a-repo"),
        url="ftp://example.com",
    )
    with pytest.raises(ManifestValidationError) as excinfo:
        validate_manifest(manifest)

    problems = "\n".join(excinfo.value.problems)
    assert "duplicate package id" in problems
    assert "must start with VPM ID prefix" in problems
    assert "owner/repo" in problems
    assert "vpm.url" in problems


def test_manifest_prefix_needs_dot_separator():
    with pytest.raises(ManifestValidationError):
        validate_manifest(_manifest(("com.example.vpmother.pkg", "owner/tool")))


def test_normalize_tag_strips_only_lowercase_v():
    assert normalize_tag("v1.0.0") == "1.0.0"
    assert normalize_tag("1.0.0") == "1.0.0"
    assert normalize_tag("V1.0.0") == "V1.0.0"
    assert normalize_tag("v1.2.3-beta.1+build.5") == "1.2.3-beta.1+build.5"


def test_semver_ordering():
    versions = ["1.0.0", "1.0.0-rc.1", "0.9.10", "1.0.0-alpha", "1.0.0-alpha.1", "0.9.2", "1.0.0-alpha.beta", "10.0.0"]
    assert sorted(versions, key=semver_key) == [
        "0.9.2",
        "0.9.10",
        "1.0.0-alpha",
        "1.0.0-alpha.1",
        "1.0.0-alpha.beta",
        "1.0.0-rc.1",
        "1.0.0",
        "10.0.0",
    ]
    assert not is_valid_semver("1.0")
    assert not is_valid_semver("01.0.0")


def test_vpm_dependency_ranges():
    for value in ["^1.2.0", ">=1.0.0 <2.0.0", "1.x", "~1.2.3 || ^2.0.0", "1.0.0 - 2.0.0", "*"]:
        validate_dependency_range(value)
    for value in ["", "banana", ">=1.0.0 ||"]:
        with pytest.raises(ValueError):
            validate_dependency_range(value)


def test_metadata_name_and_version_must_match():
    metadata = PackageMetadata.model_validate(package_json(TOOL_ID, "1.0.0"))
    validate_package_metadata(TOOL_ID, "v1.0.0", metadata)

    with pytest.raises(MetadataMismatch):
        validate_package_metadata(TOOL_ID, "v1.0.1", metadata)
    with pytest.raises(MetadataMismatch):
        validate_package_metadata("com.example.vpm.else", "v1.0.0", metadata)


@pytest.mark.parametrize(
    "overrides",
    [
        {"version": "1.0"},
        {"displayName": "  "},
        {"author": {"name": "", "email": "dev@example.com"}},
        {"author": {"name": "Dev"}},
        {"unity": "2022"},
        {"unity": None, "unityRelease": "22f1"},
        {"unityRelease": "latest"},
        {"url": "https://example.com/package.tar.gz"},
        {"dependencies": {"com.unity.mathematics": "latest"}},
        {"vpmDependencies": {"com.vrchat.base": "whatever"}},
        {"zipSHA256": "abc"},
    ],
)
def test_metadata_rules(overrides):
    overrides = dict(overrides)
    version = overrides.pop("version", "1.0.0")
    data = package_json(TOOL_ID, version, **overrides)
    data = {k: v for k, v in data.items() if v is not None}
    metadata = PackageMetadata.model_validate(data)
    with pytest.raises(InvalidMetadata):
        validate_package_metadata(TOOL_ID, version, metadata)


def test_author_shorthand_string():
    metadata = PackageMetadata.model_validate(
        package_json(TOOL_ID, "1.0.0", author="Jane Doe <jane@example.com> (https://jane.example.com)")
    )
    assert metadata.author.name == "Jane Doe"
    assert metadata.author.email == "jane@example.com"
    assert metadata.author.url == "https://jane.example.com"


def test_metadata_keeps_unknown_keys():
    metadata = PackageMetadata.model_validate(package_json(TOOL_ID, "1.0.0", customField={"a": 1}))
    wire = metadata.to_wire()
    assert wire["customField"] == {"a": 1}
    assert wire["displayName"] == "Example Tool"
    assert "unityRelease" not in wire
