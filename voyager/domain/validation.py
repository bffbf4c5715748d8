"""
Validation rules for manifests and upstream package metadata.

The small ``validate_*`` helpers raise ValueError with a readable message;
the two top-level checks turn those into the voyager error types.
"""

from __future__ import annotations

import re
from typing import List, Tuple
from urllib.parse import urlparse

from voyager.domain.errors import InvalidMetadata, ManifestValidationError, MetadataMismatch
from voyager.domain.models import Manifest, PackageMetadata
from voyager.domain.versions import is_valid_semver, normalize_tag

_ID_PART_RE = re.compile(r"^[A-Za-z0-9_-]+$")
_OWNER_RE = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9-]{0,37}[A-Za-z0-9])?$")
_REPO_RE = re.compile(r"^[A-Za-z0-9._-]+$")
_UNITY_RE = re.compile(r"^\d{4}\.\d+$")
_UNITY_RELEASE_RE = re.compile(r"^\d+[abfp]\d+$")
_SHA256_RE = re.compile(r"^[0-9a-fA-F]{64}$")
_RANGE_TERM_RE = re.compile(
    r"^(?:[<>]=?|=|\^|~)?v?(?:\d+|[xX*])(?:\.(?:\d+|[xX*])){0,2}"
    r"(?:-[0-9A-Za-z.-]+)?(?:\+[0-9A-Za-z.-]+)?$"
)


def validate_reverse_domain(value: str) -> None:
    parts = value.split(".")
    if len(parts) < 2 or not all(_ID_PART_RE.match(part) for part in parts):
        raise ValueError(f"'{value}' is not a reverse-domain identifier")


def validate_package_id_prefix(package_id: str, vpm_id: str) -> None:
    if not package_id.startswith(f"{vpm_id}."):
        raise ValueError(f"'{package_id}' must start with VPM ID prefix '{vpm_id}.'")


def validate_url(url: str) -> None:
    if not url:
        raise ValueError("URL is empty")
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        raise ValueError(f"'{url}' must start with http:// or https://")
    if not parsed.hostname:
        raise ValueError(f"'{url}' must include a host")


def validate_zip_url(url: str) -> None:
    validate_url(url)
    if not urlparse(url).path.lower().endswith(".zip"):
        raise ValueError(f"'{url}' does not point to a .zip file")


def parse_repository(repository: str) -> Tuple[str, str]:
    """Split 'owner/repo', enforcing GitHub naming rules."""
    owner, sep, name = repository.partition("/")
    if not sep or "/" in name:
        raise ValueError(f"repository '{repository}' must be in 'owner/repo' form")
    if not _OWNER_RE.match(owner):
        raise ValueError(f"repository owner '{owner}' is not a valid GitHub user or organization name")
    if not _REPO_RE.match(name) or name in (".", ".."):
        raise ValueError(f"repository name '{name}' is not a valid GitHub repository name")
    return owner, name


def validate_unity_version(value: str) -> None:
    if not _UNITY_RE.match(value):
        raise ValueError(f"'{value}' is not a Unity version like '2022.3'")


def validate_unity_release(value: str) -> None:
    if not _UNITY_RELEASE_RE.match(value):
        raise ValueError(f"'{value}' is not a Unity release like '22f1'")


def validate_dependency_range(value: str) -> None:
    """Accept npm-style version ranges as used in vpmDependencies."""
    if not value.strip():
        raise ValueError("range is empty")
    for alternative in value.split("||"):
        terms = alternative.split()
        if not terms:
            raise ValueError(f"'{value}' has an empty alternative")
        # hyphen ranges: "1.0.0 - 2.0.0"
        if len(terms) == 3 and terms[1] == "-":
            terms = [terms[0], terms[2]]
        for term in terms:
            if not _RANGE_TERM_RE.match(term):
                raise ValueError(f"'{term}' is not a valid version range term")


def is_sha256_hex(value: str) -> bool:
    return bool(_SHA256_RE.match(value))


def validate_manifest(manifest: Manifest) -> None:
    """Check every manifest invariant, reporting all problems at once."""
    problems: List[str] = []
    vpm = manifest.vpm

    for field in ("id", "name", "author", "url"):
        if not getattr(vpm, field).strip():
            problems.append(f"vpm.{field} must not be empty")
    if vpm.id.strip():
        try:
            validate_reverse_domain(vpm.id)
        except ValueError as e:
            problems.append(f"vpm.id: {e}")
    if vpm.url.strip():
        try:
            validate_url(vpm.url)
        except ValueError as e:
            problems.append(f"vpm.url: {e}")

    seen = set()
    for package in manifest.packages:
        if package.id in seen:
            problems.append(f"duplicate package id '{package.id}'")
            continue
        seen.add(package.id)
        for check in (
            lambda: validate_reverse_domain(package.id),
            lambda: validate_package_id_prefix(package.id, vpm.id),
            lambda: parse_repository(package.repository),
        ):
            try:
                check()
            except ValueError as e:
                problems.append(f"package '{package.id}': {e}")

    if problems:
        raise ManifestValidationError(problems)


def validate_package_metadata(package_id: str, tag: str, metadata: PackageMetadata) -> None:
    """
    Check a release's package.json against the manifest entry and the VPM
    schema rules.

    Raises MetadataMismatch when name or version disagree with the package
    id and release tag, InvalidMetadata for any other rule.
    """
    expected_version = normalize_tag(tag)
    if metadata.name != package_id:
        raise MetadataMismatch(
            f"package.json name '{metadata.name}' does not match package id '{package_id}'",
            package_id=package_id,
            tag=tag,
        )
    if metadata.version != expected_version:
        raise MetadataMismatch(
            f"package.json version '{metadata.version}' does not match release tag '{tag}' "
            f"(expected '{expected_version}')",
            package_id=package_id,
            tag=tag,
        )

    def invalid(message: str) -> InvalidMetadata:
        return InvalidMetadata(f"package.json {message}", package_id=package_id, tag=tag)

    if not is_valid_semver(metadata.version):
        raise invalid(f"version '{metadata.version}' is not valid SemVer")
    if not metadata.display_name.strip():
        raise invalid("is missing required field 'displayName'")
    if not metadata.author.name.strip():
        raise invalid("is missing required field 'author.name'")
    if not metadata.author.email.strip():
        raise invalid("is missing required field 'author.email'")

    if metadata.unity:
        try:
            validate_unity_version(metadata.unity)
        except ValueError as e:
            raise invalid(f"field 'unity' is invalid: {e}")
    if metadata.unity_release:
        if not metadata.unity:
            raise invalid("field 'unityRelease' requires field 'unity'")
        try:
            validate_unity_release(metadata.unity_release)
        except ValueError as e:
            raise invalid(f"field 'unityRelease' is invalid: {e}")

    try:
        validate_zip_url(metadata.url)
    except ValueError as e:
        raise invalid(f"field 'url' is invalid: {e}")

    for name, version in (metadata.dependencies or {}).items():
        try:
            validate_reverse_domain(name)
        except ValueError as e:
            raise invalid(f"field 'dependencies' has an invalid package name: {e}")
        if not is_valid_semver(version):
            raise invalid(f"field 'dependencies' has invalid version '{version}' for '{name}'")

    for name, version_range in (metadata.vpm_dependencies or {}).items():
        try:
            validate_reverse_domain(name)
            validate_dependency_range(version_range)
        except ValueError as e:
            raise invalid(f"field 'vpmDependencies' is invalid for '{name}': {e}")

    if metadata.zip_sha256 and not is_sha256_hex(metadata.zip_sha256):
        raise invalid("field 'zipSHA256' must be a 64-character hex string")
