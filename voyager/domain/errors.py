"""
Exception types raised by voyager.

Fatal errors derive from VoyagerError and abort a command before anything is
committed; the CLI maps them to sysexits-style exit codes. Per-item errors
derive from FetchItemError and are collected into fetch reports instead of
aborting sibling work.
"""

from __future__ import annotations

from typing import Optional

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_DATAERR = 65
EXIT_UNAVAILABLE = 69
EXIT_IOERR = 74
EXIT_CONFIG = 78


class VoyagerError(Exception):
    """Base class for errors that stop a command."""

    exit_code: int = EXIT_FAILURE
    hint: Optional[str] = None


# ---------------------------------------------------------------------------
# Fatal errors
# ---------------------------------------------------------------------------


class ManifestNotFoundError(VoyagerError):
    exit_code = EXIT_CONFIG
    hint = "run 'voy init' to create a manifest"


class ManifestExistsError(VoyagerError):
    exit_code = EXIT_CONFIG
    hint = "pass --force to overwrite it"


class PackageNotFoundError(VoyagerError):
    exit_code = EXIT_CONFIG
    hint = "run 'voy list' to see configured packages"


class ManifestValidationError(VoyagerError):
    """The manifest failed parsing or one of its invariants."""

    exit_code = EXIT_CONFIG

    def __init__(self, problems: list[str] | str):
        if isinstance(problems, str):
            problems = [problems]
        self.problems = list(problems)
        super().__init__("invalid manifest: " + "; ".join(self.problems))


class StaleLockError(VoyagerError):
    """The lock was baselined against a different manifest."""

    exit_code = EXIT_CONFIG
    hint = "run 'voy lock' to accept manifest changes"

    def __init__(self, expected: Optional[str], actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"manifest has changed since the lock was written (lock: {expected}, manifest: {actual})"
        )


class LockFormatError(VoyagerError):
    exit_code = EXIT_DATAERR
    hint = "delete the lock file and run 'voy fetch' to rebuild it"


class LockMissingError(VoyagerError):
    exit_code = EXIT_CONFIG
    hint = "run 'voy fetch' first"


class EmptyPackage(VoyagerError):
    """A configured package has no stored versions."""

    exit_code = EXIT_CONFIG
    hint = "run 'voy fetch', or pass --allow-empty"

    def __init__(self, package_ids: list[str]):
        self.package_ids = list(package_ids)
        super().__init__(f"packages without any version: {', '.join(self.package_ids)}")


class IndexFormatError(VoyagerError):
    exit_code = EXIT_DATAERR


class StorageError(VoyagerError):
    exit_code = EXIT_IOERR


class RepositoryNotFound(VoyagerError):
    exit_code = EXIT_UNAVAILABLE


# ---------------------------------------------------------------------------
# Per-item errors
# ---------------------------------------------------------------------------


class FetchItemError(VoyagerError):
    """
    A failure scoped to one package or one release.

    ``retryable`` marks transient transport failures; everything else is a
    deterministic outcome that retrying cannot change.
    """

    retryable: bool = False

    def __init__(
        self,
        message: str,
        package_id: Optional[str] = None,
        tag: Optional[str] = None,
        retryable: Optional[bool] = None,
    ):
        super().__init__(message)
        self.message = message
        self.package_id = package_id
        self.tag = tag
        if retryable is not None:
            self.retryable = retryable

    @property
    def kind(self) -> str:
        return type(self).__name__


class AssetMissing(FetchItemError):
    pass


class AssetDownloadError(FetchItemError):
    pass


class InvalidMetadata(FetchItemError):
    pass


class MetadataMismatch(FetchItemError):
    pass


class ReleaseListError(FetchItemError):
    pass


class DuplicateVersion(FetchItemError):
    pass


# Outcomes that will not change on a later run, so the tag is remembered.
TERMINAL_ITEM_ERRORS = (AssetMissing, InvalidMetadata, MetadataMismatch)
