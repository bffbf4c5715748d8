"""
Manifest drift detection.

The lock remembers the hash of the manifest it was last accepted against.
Comparing that against a fresh hash tells whether the manifest was edited
behind the lock's back.
"""

from __future__ import annotations

import hashlib
import json
import logging
from enum import Enum
from typing import Optional

from voyager.domain.errors import StaleLockError
from voyager.domain.models import LockRecord, Manifest

logger = logging.getLogger(__name__)

HASH_PREFIX = "sha256:"


class LockStatus(str, Enum):
    CONSISTENT = "consistent"
    STALE = "stale"
    UNLOCKED = "unlocked"


def canonical_bytes(manifest: Manifest) -> bytes:
    """
    Serialize the manifest's content independent of TOML formatting.

    Comments, whitespace and table key order never reach the model; keys are
    sorted here so only values and package order affect the result.
    """
    data = manifest.model_dump(mode="json")
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def compute_hash(manifest: Manifest) -> str:
    return HASH_PREFIX + hashlib.sha256(canonical_bytes(manifest)).hexdigest()


def check(manifest: Manifest, lock: Optional[LockRecord]) -> LockStatus:
    if lock is None or lock.manifest_hash is None:
        return LockStatus.UNLOCKED
    if lock.manifest_hash == compute_hash(manifest):
        return LockStatus.CONSISTENT
    return LockStatus.STALE


def ensure_consistent(manifest: Manifest, lock: Optional[LockRecord], accept: bool = False) -> LockStatus:
    """
    Raise StaleLockError if the lock is stale, unless ``accept`` overrides it.
    """
    status = check(manifest, lock)
    if status is LockStatus.STALE:
        actual = compute_hash(manifest)
        if not accept:
            raise StaleLockError(lock.manifest_hash, actual)
        logger.warning(f"Accepting manifest changes (lock: {lock.manifest_hash}, manifest: {actual})")
    return status


def accept(manifest: Manifest, lock: LockRecord) -> str:
    """Stamp the lock with the manifest's current hash."""
    manifest_hash = compute_hash(manifest)
    if lock.manifest_hash != manifest_hash:
        logger.info(f"Lock baselined at {manifest_hash}")
    lock.manifest_hash = manifest_hash
    return manifest_hash
