import logging
from functools import lru_cache
from pathlib import Path

from app.core.config import settings
from app.storage.base import AssetStorage, StorageError

logger = logging.getLogger(__name__)


class LocalAssetStorage(AssetStorage):
    """Files under storage_base_path, served by the API at storage_public_url."""

    def __init__(self, base_path: str, public_base_url: str) -> None:
        self.base_path = Path(base_path)
        self.public_base_url = public_base_url.rstrip("/")

    def _full_path(self, path: str) -> Path:
        full = (self.base_path / path).resolve()
        if self.base_path.resolve() not in full.parents:
            raise StorageError(f"Path escapes storage root: {path}")
        return full

    def save(self, path: str, content: bytes, content_type: str) -> None:
        full = self._full_path(path)
        try:
            full.parent.mkdir(parents=True, exist_ok=True)
            full.write_bytes(content)
        except OSError as e:
            raise StorageError(f"Failed to store {path}: {e}") from e
        logger.info("asset_stored", extra={"path": path})

    def public_url(self, path: str) -> str:
        return f"{self.public_base_url}/{path.lstrip('/')}"


@lru_cache(maxsize=1)
def get_storage() -> AssetStorage:
    return LocalAssetStorage(settings.storage_base_path, settings.storage_public_url)
