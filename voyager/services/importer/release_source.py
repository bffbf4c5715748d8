from abc import ABC, abstractmethod
from typing import List

from voyager.domain.models import Release, ReleaseAsset


class ReleaseSource(ABC):
    """
    Abstract base class for a host that publishes package releases.
    """

    @abstractmethod
    async def list_releases(self, repository: str) -> List[Release]:
        """List published releases; raises ReleaseListError."""
        pass

    @abstractmethod
    async def download_asset(self, asset: ReleaseAsset) -> bytes:
        """Download one release asset; raises AssetDownloadError."""
        pass

    @abstractmethod
    async def verify_repository(self, repository: str) -> None:
        """Raise RepositoryNotFound unless the repository is reachable."""
        pass
