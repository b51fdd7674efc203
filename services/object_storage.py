"""
Object Storage

Filesystem-backed object store for captured face images, with HMAC-signed,
time-limited retrieval URLs.

Access isolation: every object path must start with the owning principal's
id as its first segment. Signed URLs are bound to the exact path and expiry.
"""

import asyncio
import hashlib
import hmac
import logging
import time
from pathlib import Path
from typing import Optional
from urllib.parse import quote, urlencode

from config import STORAGE_DIR, STORAGE_SIGNING_SECRET, PUBLIC_BASE_URL

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when an object cannot be stored, located or signed"""
    pass


CONTENT_TYPE_SUFFIXES = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}


class LocalObjectStorage:
    """
    Object storage rooted at a local directory.

    Attributes:
        root_dir: Base directory for all objects
        base_url: Public URL prefix of the storage route
    """

    def __init__(
        self,
        root_dir: Path = None,
        signing_secret: str = None,
        base_url: str = None
    ):
        self.root_dir = Path(root_dir or STORAGE_DIR)
        self.root_dir.mkdir(parents=True, exist_ok=True)
        self._secret = (signing_secret or STORAGE_SIGNING_SECRET).encode()
        self.base_url = (base_url or f"{PUBLIC_BASE_URL}/api/v1/storage").rstrip("/")

    def _resolve(self, path: str) -> Path:
        """Map an object path to a file, rejecting traversal and un-namespaced paths"""
        parts = path.split("/")
        if len(parts) < 2 or any(p in ("..", ".", "") for p in parts):
            raise StorageError(f"Invalid object path: {path!r}")
        return self.root_dir.joinpath(*parts)

    def _sign(self, path: str, expires: int) -> str:
        message = f"{path}:{expires}".encode()
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    async def put(self, path: str, data: bytes, content_type: str) -> str:
        """
        Store an object.

        Args:
            path: "<principal>/<file name>"
            data: Object bytes
            content_type: MIME type (must match the file suffix)

        Returns:
            The stored path
        """
        target = self._resolve(path)
        expected_suffix = CONTENT_TYPE_SUFFIXES.get(content_type)
        if expected_suffix is None or target.suffix != expected_suffix:
            raise StorageError(f"Content type {content_type} does not match {path}")

        def _write():
            target.parent.mkdir(parents=True, exist_ok=True)
            if target.exists():
                raise StorageError(f"Object already exists: {path}")
            target.write_bytes(data)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}") from e

        logger.info(f"Stored object {path} ({len(data)} bytes)")
        return path

    async def create_time_limited_url(self, path: str, ttl_seconds: int) -> str:
        """
        Create a signed retrieval URL valid for ttl_seconds.

        Raises:
            StorageError: If the object does not exist
        """
        target = self._resolve(path)
        if not await asyncio.to_thread(target.is_file):
            raise StorageError(f"Object not found: {path}")

        expires = int(time.time()) + int(ttl_seconds)
        query = urlencode({"expires": expires, "signature": self._sign(path, expires)})
        return f"{self.base_url}/{quote(path)}?{query}"

    def verify(self, path: str, expires: int, signature: str, now: float = None) -> bool:
        """Check a signed URL's signature and expiry"""
        now = time.time() if now is None else now
        if expires < now:
            return False
        return hmac.compare_digest(self._sign(path, expires), signature)

    def open_path(self, path: str) -> Optional[Path]:
        """File backing an object, or None if absent"""
        try:
            target = self._resolve(path)
        except StorageError:
            return None
        return target if target.is_file() else None


# Singleton instance for reuse
_storage_instance: Optional[LocalObjectStorage] = None


def get_object_storage() -> LocalObjectStorage:
    """
    Get singleton instance of LocalObjectStorage
    """
    global _storage_instance
    if _storage_instance is None:
        _storage_instance = LocalObjectStorage()
    return _storage_instance
