"""
Image storage for carrier-pushed documents

Images are content-addressed: the URL is derived from the SHA-256 of the
decoded bytes, so the same image always yields the same URL. The webhook
pipeline relies on that to build dedup keys before anything is written.
"""
import hashlib
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from shipsarthi.core.settings import settings
from shipsarthi.logging_config import get_logger

logger = get_logger(__name__)

# Leading bytes -> (extension, mime type)
_SIGNATURES = (
    (b"\xff\xd8\xff", ("jpg", "image/jpeg")),
    (b"\x89PNG\r\n\x1a\n", ("png", "image/png")),
    (b"GIF8", ("gif", "image/gif")),
    (b"%PDF", ("pdf", "application/pdf")),
)


def sniff_image_type(data: bytes):
    """(extension, mime type) from magic bytes; JPEG when unrecognised."""
    for signature, result in _SIGNATURES:
        if data.startswith(signature):
            return result
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "webp", "image/webp"
    return "jpg", "image/jpeg"


class ImageStore(ABC):
    @abstractmethod
    def url_for(self, folder: str, data: bytes) -> str:
        """URL the image will have once stored. Pure, no I/O."""
        ...

    @abstractmethod
    def save(self, folder: str, data: bytes) -> str:
        """Store the image (idempotent) and return its URL."""
        ...


class LocalImageStore(ImageStore):
    """Writes images under DOCUMENT_STORAGE_DIR, served from DOCUMENT_BASE_URL."""

    def __init__(self, root_dir: Optional[str] = None, base_url: Optional[str] = None):
        self.root_dir = Path(root_dir or settings.DOCUMENT_STORAGE_DIR)
        self.base_url = (base_url or settings.DOCUMENT_BASE_URL).rstrip("/")

    def _relative_path(self, folder: str, data: bytes) -> str:
        digest = hashlib.sha256(data).hexdigest()
        extension, _ = sniff_image_type(data)
        return f"{folder.strip('/')}/{digest}.{extension}"

    def url_for(self, folder: str, data: bytes) -> str:
        return f"{self.base_url}/{self._relative_path(folder, data)}"

    def save(self, folder: str, data: bytes) -> str:
        relative = self._relative_path(folder, data)
        target = self.root_dir / relative
        if not target.exists():
            target.parent.mkdir(parents=True, exist_ok=True)
            tmp = target.with_suffix(target.suffix + ".tmp")
            tmp.write_bytes(data)
            tmp.replace(target)
            logger.info(f"Stored image {relative} ({len(data)} bytes)")
        return f"{self.base_url}/{relative}"
