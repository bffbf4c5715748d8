"""
Pydantic models for voyager.

This module defines the data models used throughout the application:
- the manifest (voyager.toml) describing the VPM listing and its packages
- upstream package.json metadata published with each GitHub release
- the lock file (voyager.lock) holding fetched state per package
- release listings returned by a release source
- fetch and URL validation reports

All models use Pydantic for validation, serialization, and type safety.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


LOCK_FORMAT_VERSION = 1


# ---------------------------------------------------------------------------
# Manifest Models
# ---------------------------------------------------------------------------


class VpmInfo(BaseModel):
    """Identity of the VPM listing, copied into the generated index."""

    id: str = Field(description="Reverse-domain identifier of the listing (e.g. 'com.example.vpm').")
    name: str = Field(description="Human readable listing name.")
    author: str = Field(description="Listing author shown by VPM clients.")
    url: str = Field(description="Public URL where the generated index.json is hosted.")


class PackageEntry(BaseModel):
    id: str = Field(description="Package id; must start with '{vpm.id}.'.")
    repository: str = Field(description="GitHub repository in 'owner/repo' form.")


class Manifest(BaseModel):
    """
    The human-edited manifest.

    Package order is significant: it is part of the manifest hash and is the
    order packages are reconciled into the lock.
    """

    vpm: VpmInfo
    packages: List[PackageEntry] = Field(default_factory=list)

    def find_package(self, package_id: str) -> Optional[PackageEntry]:
        for package in self.packages:
            if package.id == package_id:
                return package
        return None


# ---------------------------------------------------------------------------
# Upstream Package Metadata Models
# ---------------------------------------------------------------------------


class PackageAuthor(BaseModel):
    """
    Package author. Upstream files may use either an object or the npm
    shorthand string "Name <email> (url)".
    """

    name: str = ""
    email: str = ""
    url: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _parse_shorthand(cls, data: Any) -> Any:
        if isinstance(data, str):
            return parse_author_string(data)
        return data


def _extract_bracketed(text: str, open_char: str, close_char: str) -> tuple[str, str]:
    start = text.find(open_char)
    if start < 0:
        return "", text
    end = text.find(close_char, start + 1)
    if end < 0:
        return "", text
    value = text[start + 1:end].strip()
    return value, text[:start] + " " + text[end + 1:]


def parse_author_string(raw: str) -> Dict[str, Any]:
    trimmed = raw.strip()
    if not trimmed:
        return {"name": "", "email": ""}
    email, remainder = _extract_bracketed(trimmed, "<", ">")
    url, remainder = _extract_bracketed(remainder, "(", ")")
    name = " ".join(remainder.split())
    return {"name": name or trimmed, "email": email, "url": url or None}


class PackageMetadata(BaseModel):
    """
    Contents of a release's package.json (the VPM package manifest).

    Keys are camelCase on the wire. Unknown keys are kept so they survive
    into the generated index unchanged.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str
    version: str
    display_name: str = Field(alias="displayName")
    description: Optional[str] = None
    unity: Optional[str] = None
    unity_release: Optional[str] = Field(default=None, alias="unityRelease")
    dependencies: Optional[Dict[str, str]] = None
    keywords: Optional[List[str]] = None
    author: PackageAuthor
    vpm_dependencies: Optional[Dict[str, str]] = Field(default=None, alias="vpmDependencies")
    url: str
    license: Optional[str] = None
    zip_sha256: Optional[str] = Field(default=None, alias="zipSHA256")
    legacy_folders: Optional[Dict[str, str]] = Field(default=None, alias="legacyFolders")
    legacy_files: Optional[Dict[str, str]] = Field(default=None, alias="legacyFiles")
    legacy_packages: Optional[List[str]] = Field(default=None, alias="legacyPackages")
    documentation_url: Optional[str] = Field(default=None, alias="documentationUrl")
    changelog_url: Optional[str] = Field(default=None, alias="changelogUrl")
    licenses_url: Optional[str] = Field(default=None, alias="licensesUrl")
    samples: Optional[List[Dict[str, Any]]] = None
    hide_in_editor: Optional[bool] = Field(default=None, alias="hideInEditor")
    package_type: Optional[str] = Field(default=None, alias="type")

    def to_wire(self) -> Dict[str, Any]:
        """Serialize with upstream key names, omitting unset optional fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Lock Models
# ---------------------------------------------------------------------------


class PackageRecord(BaseModel):
    """One validated release of a package, as stored in the lock."""

    name: str = Field(description="Package id; equals the manifest package id.")
    version: str = Field(description="SemVer version; equals the normalized release tag.")
    tag: str = Field(description="Release tag the metadata was published under.")
    url: str = Field(description="Download URL of the package zip, from the metadata.")
    asset_url: str = Field(description="URL the metadata asset was downloaded from.")
    hash: str = Field(description="'sha256:<hex>' of the raw metadata asset bytes.")
    metadata: PackageMetadata


class FetchState(BaseModel):
    repository: str
    last_checked_releases: List[str] = Field(
        default_factory=list,
        description="Tags that reached a final outcome and are not downloaded again.",
    )
    versions: Dict[str, PackageRecord] = Field(default_factory=dict)


class LockRecord(BaseModel):
    """Persisted companion of the manifest (voyager.lock)."""

    version: int = Field(default=LOCK_FORMAT_VERSION, description="Lock file format version.")
    manifest_hash: Optional[str] = Field(
        default=None,
        description="'sha256:<hex>' of the manifest this lock was last accepted against.",
    )
    packages: Dict[str, FetchState] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Release Source Models
# ---------------------------------------------------------------------------


class ReleaseAsset(BaseModel):
    name: str
    download_url: str
    size: Optional[int] = None


class Release(BaseModel):
    tag: str
    published_at: Optional[datetime] = None
    assets: List[ReleaseAsset] = Field(default_factory=list)

    def find_asset(self, name: str) -> Optional[ReleaseAsset]:
        for asset in self.assets:
            if asset.name == name:
                return asset
        return None


# ---------------------------------------------------------------------------
# Report Models
# ---------------------------------------------------------------------------


class FetchFailure(BaseModel):
    package_id: str
    tag: Optional[str] = None
    kind: str
    message: str


class PackageFetchSummary(BaseModel):
    package_id: str
    existing: int = 0
    new: int = 0
    failed: int = 0


class FetchReport(BaseModel):
    """Outcome of a fetch run, gathered after all tasks complete."""

    packages: List[PackageFetchSummary] = Field(default_factory=list)
    failures: List[FetchFailure] = Field(default_factory=list)
    skipped: List[FetchFailure] = Field(
        default_factory=list,
        description="Releases passed over on purpose, e.g. duplicate normalized versions.",
    )
    empty_packages: List[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures and not self.empty_packages


class UrlCheckResult(BaseModel):
    package_id: str
    version: str
    url: str
    reachable: bool
    status: Optional[int] = None
    detail: Optional[str] = None


class ValidationReport(BaseModel):
    results: List[UrlCheckResult] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def failures(self) -> List[UrlCheckResult]:
        return [r for r in self.results if not r.reachable]

    @property
    def ok(self) -> bool:
        return not self.failures
