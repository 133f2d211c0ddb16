"""
Object storage for images embedded in render requests.
Placid needs a public URL for every image layer, so uploads return one.
"""
import base64
import binascii
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

_DATA_URL_RE = re.compile(r"^data:(image/(png|jpeg|jpg));base64,(.+)$", re.IGNORECASE | re.DOTALL)
_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_-]")


class StorageError(Exception):
    pass


@dataclass
class StoredAsset:
    path: str
    public_url: str


def sanitize_name(value: str) -> str:
    return _UNSAFE_NAME_CHARS.sub("_", value).lower()


def parse_data_url(data_url: str) -> tuple[str, str, bytes]:
    """Return (mime, ext, content) for a base64 PNG/JPEG data URL."""
    match = _DATA_URL_RE.match(data_url.strip())
    if not match:
        raise StorageError("Invalid image DataURL. Expected base64 PNG/JPEG.")
    mime = match.group(1).lower()
    subtype = match.group(2).lower()
    try:
        content = base64.b64decode(match.group(3), validate=True)
    except (binascii.Error, ValueError) as e:
        raise StorageError(f"Invalid base64 payload: {e}") from e
    return mime, subtype, content


class AssetStorage(ABC):
    @abstractmethod
    def save(self, path: str, content: bytes, content_type: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def public_url(self, path: str) -> str:
        raise NotImplementedError

    def upload_data_url(self, data_url: str, session_id: str, field_name: str) -> StoredAsset:
        """Store an embedded image under sessions/<session>/<field>-<ms>.<ext>."""
        mime, ext, content = parse_data_url(data_url)
        file_name = f"{sanitize_name(field_name)}-{int(time.time() * 1000)}.{ext}"
        path = f"sessions/{sanitize_name(session_id)}/{file_name}"
        self.save(path, content, mime)
        return StoredAsset(path=path, public_url=self.public_url(path))

    def resolve_public_url(self, path_or_url: str) -> str:
        """Absolute and data URLs pass through; storage paths become public URLs."""
        if not path_or_url:
            return ""
        if re.match(r"^https?://", path_or_url, re.IGNORECASE) or path_or_url.startswith("data:"):
            return path_or_url
        return self.public_url(path_or_url.lstrip("/"))
