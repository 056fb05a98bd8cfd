"""
StemVault Blob Store Adapter
Key/value object storage behind a small async interface

Stored objects are addressed by a relative storage path such as
``projects/<project>/commits/<commit>/<sha256>.wav``. Implementations raise
``StorageUnavailableError`` when the backend fails and ``BlobNotFoundError``
when a path holds no object.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from typing import Dict, Optional, Tuple

from ..core.config import get_settings
from ..core.errors import BlobNotFoundError, StorageUnavailableError

logger = logging.getLogger(__name__)


def validate_storage_path(path: str) -> str:
    """Reject absolute paths and parent-directory segments"""
    candidate = PurePosixPath(path)
    if not path or candidate.is_absolute() or ".." in candidate.parts:
        raise ValueError(f"Invalid storage path: {path!r}")
    return str(candidate)


class BlobStore(ABC):
    """
    Abstract base class for blob storage backends.

    All backends (local disk, in-memory, object storage) implement this
    interface so the dedup index and clone exporter stay storage-agnostic.
    """

    def __init__(self, bucket: str):
        self.bucket = bucket

    @abstractmethod
    async def put(self, path: str, data: bytes, content_type: Optional[str] = None) -> None:
        """
        Store bytes at a path.

        Args:
            path: Relative storage path
            data: Raw bytes to persist
            content_type: Media type recorded with the object
        """

    @abstractmethod
    async def get(self, path: str) -> bytes:
        """
        Fetch the bytes stored at a path.

        Raises:
            BlobNotFoundError: Nothing stored at path
        """

    @abstractmethod
    async def delete(self, path: str) -> None:
        """Delete the object at a path (missing objects are ignored)"""

    @abstractmethod
    def public_url(self, path: str) -> str:
        """Public URL for an object"""


class LocalBlobStore(BlobStore):
    """
    Blob store on the local filesystem.

    Objects live under ``<base_path>/<bucket>/<path>``; blocking file I/O runs
    in worker threads.
    """

    def __init__(self, base_path: str, bucket: str, public_base_url: str = "/blobs"):
        super().__init__(bucket)
        self.base_path = Path(base_path).expanduser().absolute()
        self.public_base_url = public_base_url.rstrip("/")
        (self.base_path / bucket).mkdir(parents=True, exist_ok=True)

    def _get_path(self, path: str) -> Path:
        return self.base_path / self.bucket / validate_storage_path(path)

    async def put(self, path: str, data: bytes, content_type: Optional[str] = None) -> None:
        dest_path = self._get_path(path)

        def _write() -> None:
            dest_path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = dest_path.with_name(dest_path.name + ".part")
            tmp_path.write_bytes(data)
            tmp_path.replace(dest_path)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise StorageUnavailableError(f"Failed to store {path}: {e}", path=path)

    async def get(self, path: str) -> bytes:
        src_path = self._get_path(path)
        try:
            return await asyncio.to_thread(src_path.read_bytes)
        except FileNotFoundError:
            raise BlobNotFoundError(f"Blob not found: {path}", path=path)
        except OSError as e:
            raise StorageUnavailableError(f"Failed to read {path}: {e}", path=path)

    async def delete(self, path: str) -> None:
        target = self._get_path(path)
        try:
            await asyncio.to_thread(target.unlink, True)
        except OSError as e:
            raise StorageUnavailableError(f"Failed to delete {path}: {e}", path=path)

    def public_url(self, path: str) -> str:
        return f"{self.public_base_url}/{self.bucket}/{validate_storage_path(path)}"


class MemoryBlobStore(BlobStore):
    """Blob store held in process memory (development and tests)"""

    def __init__(self, bucket: str = "audio-commits"):
        super().__init__(bucket)
        self.objects: Dict[str, Tuple[bytes, Optional[str]]] = {}
        self.put_count = 0
        self._lock = asyncio.Lock()

    async def put(self, path: str, data: bytes, content_type: Optional[str] = None) -> None:
        key = validate_storage_path(path)
        async with self._lock:
            self.objects[key] = (bytes(data), content_type)
            self.put_count += 1

    async def get(self, path: str) -> bytes:
        key = validate_storage_path(path)
        try:
            return self.objects[key][0]
        except KeyError:
            raise BlobNotFoundError(f"Blob not found: {path}", path=path)

    async def delete(self, path: str) -> None:
        key = validate_storage_path(path)
        async with self._lock:
            self.objects.pop(key, None)

    def public_url(self, path: str) -> str:
        return f"memory://{self.bucket}/{validate_storage_path(path)}"


def create_blob_store(backend: Optional[str] = None) -> BlobStore:
    """
    Build the configured blob store.

    Args:
        backend: Override for BLOB_STORE_BACKEND ('local' or 'memory')
    """
    storage = get_settings().get_storage_config()
    backend = (backend or storage["backend"]).lower()

    if backend == "local":
        logger.info(f"Using local blob store at {storage['path']}")
        return LocalBlobStore(storage["path"], storage["bucket"], storage["public_base_url"])
    if backend == "memory":
        logger.warning("Using in-memory blob store; content is lost on restart")
        return MemoryBlobStore(storage["bucket"])

    raise ValueError(f"Unknown blob store backend: {backend}")
