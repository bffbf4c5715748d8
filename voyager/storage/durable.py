"""
Crash-safe file writes.

A target file F is never written in place. The new content is staged in
``F.txn`` beside it, flushed to disk, and moved over F with a single
``os.replace``. A ``*.txn`` file found at start-up is therefore an
interrupted write and is discarded by ``recover``; F still holds its last
committed content.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List

import aiofiles

from voyager.domain.errors import StorageError

logger = logging.getLogger(__name__)

TXN_SUFFIX = ".txn"


def txn_path(target: Path) -> Path:
    return target.with_name(target.name + TXN_SUFFIX)


def _fsync_directory(directory: Path) -> None:
    # Directory handles cannot be opened for fsync on Windows.
    if os.name == "nt":
        return
    fd = os.open(directory, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


async def write_atomic(target: Path, data: bytes) -> None:
    """
    Stage ``data`` in ``target.txn`` and commit it over ``target``.

    Raises StorageError if staging or the commit fails; in that case the
    staged file is removed and ``target`` is left untouched.
    """
    target = Path(target)
    staged = txn_path(target)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(staged, "wb") as f:
            await f.write(data)
            await f.flush()
            os.fsync(f.fileno())
        os.replace(staged, target)
    except OSError as e:
        try:
            staged.unlink(missing_ok=True)
        except OSError as cleanup_error:
            logger.warning(f"Could not remove staged file {staged}: {cleanup_error}")
        raise StorageError(f"failed to write {target}: {e}") from e

    try:
        _fsync_directory(target.parent)
    except OSError as e:
        logger.warning(f"Committed {target} but could not sync its directory: {e}")
    logger.debug(f"Committed {target} ({len(data)} bytes)")


async def read_bytes(path: Path) -> bytes:
    try:
        async with aiofiles.open(path, "rb") as f:
            return await f.read()
    except FileNotFoundError:
        raise
    except OSError as e:
        raise StorageError(f"failed to read {path}: {e}") from e


def recover(directory: Path) -> List[Path]:
    """
    Delete interrupted writes left in ``directory``.

    Returns the removed marker paths. The committed targets are not touched.
    """
    directory = Path(directory)
    if not directory.is_dir():
        return []
    removed: List[Path] = []
    try:
        for marker in sorted(directory.glob(f"*{TXN_SUFFIX}")):
            if not marker.is_file():
                continue
            marker.unlink()
            removed.append(marker)
            logger.warning(f"Discarded interrupted write {marker}")
    except OSError as e:
        raise StorageError(f"failed to recover {directory}: {e}") from e
    return removed
