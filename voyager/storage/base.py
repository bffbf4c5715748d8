from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

from voyager.core.config import WorkspacePaths
from voyager.domain.models import LockRecord, Manifest


class WorkspaceStore(ABC):
    """
    Abstract base class for the files a voyager workspace persists.
    """

    @property
    @abstractmethod
    def paths(self) -> WorkspacePaths:
        """Manifest and lock locations."""
        pass

    @abstractmethod
    def recover(self, *extra_dirs: Path) -> List[Path]:
        """Discard interrupted writes; returns the markers removed."""
        pass

    @abstractmethod
    async def load_manifest(self) -> Manifest:
        """Read and validate the manifest."""
        pass

    @abstractmethod
    async def save_manifest(self, manifest: Manifest) -> None:
        """Commit the manifest."""
        pass

    @abstractmethod
    async def load_lock(self) -> Optional[LockRecord]:
        """Read the lock file; None when it does not exist."""
        pass

    @abstractmethod
    async def save_lock(self, lock: LockRecord) -> None:
        """Commit the lock file."""
        pass

    @abstractmethod
    async def save_index(self, content: bytes, path: Path) -> None:
        """Commit a serialized index document."""
        pass

    @abstractmethod
    async def load_index(self, path: Path) -> Dict[str, Any]:
        """Read an index document as plain JSON data."""
        pass
