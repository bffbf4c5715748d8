import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from voyager.core.config import WorkspacePaths
from voyager.domain.errors import (
    IndexFormatError,
    LockFormatError,
    ManifestNotFoundError,
    StorageError,
)
from voyager.domain.models import LOCK_FORMAT_VERSION, LockRecord, Manifest
from voyager.storage.base import WorkspaceStore
from voyager.storage.durable import read_bytes, recover, write_atomic
from voyager.storage.manifest_file import dump_manifest, parse_manifest

logger = logging.getLogger(__name__)


class JsonWorkspaceStore(WorkspaceStore):
    def __init__(self, paths: WorkspacePaths):
        self._paths = paths

    @property
    def paths(self) -> WorkspacePaths:
        return self._paths

    def recover(self, *extra_dirs: Path) -> List[Path]:
        directories = {self._paths.root.resolve()}
        directories.update(Path(d).resolve() for d in extra_dirs)
        removed: List[Path] = []
        for directory in sorted(directories):
            removed.extend(recover(directory))
        return removed

    async def load_manifest(self) -> Manifest:
        path = self._paths.manifest_path
        try:
            raw = await read_bytes(path)
        except FileNotFoundError:
            raise ManifestNotFoundError(f"manifest not found: {path}")
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise StorageError(f"{path} is not UTF-8: {e}") from e
        return parse_manifest(text)

    async def save_manifest(self, manifest: Manifest) -> None:
        await write_atomic(self._paths.manifest_path, dump_manifest(manifest).encode("utf-8"))

    async def load_lock(self) -> Optional[LockRecord]:
        path = self._paths.lock_path
        try:
            raw = await read_bytes(path)
        except FileNotFoundError:
            logger.debug(f"No lock file at {path}")
            return None

        try:
            data = json.loads(raw)
        except ValueError as e:
            raise LockFormatError(f"{path} is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise LockFormatError(f"{path} must contain a JSON object")

        version = data.get("version", LOCK_FORMAT_VERSION)
        if version != LOCK_FORMAT_VERSION:
            raise LockFormatError(
                f"{path} has lock format version {version}, expected {LOCK_FORMAT_VERSION}"
            )
        try:
            return LockRecord.model_validate(data)
        except ValidationError as e:
            raise LockFormatError(f"{path} does not match the lock schema: {e}") from e

    async def save_lock(self, lock: LockRecord) -> None:
        content = lock.model_dump_json(indent=2, by_alias=True, exclude_none=True) + "\n"
        await write_atomic(self._paths.lock_path, content.encode("utf-8"))

    async def save_index(self, content: bytes, path: Path) -> None:
        await write_atomic(path, content)

    async def load_index(self, path: Path) -> Dict[str, Any]:
        try:
            raw = await read_bytes(path)
        except FileNotFoundError:
            raise IndexFormatError(f"index not found: {path}")
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise IndexFormatError(f"{path} is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise IndexFormatError(f"{path} must contain a JSON object")
        return data
