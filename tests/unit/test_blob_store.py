"""
Unit tests for blob store adapters
Tests local and in-memory backends behind the BlobStore interface
"""
import pytest

from stemvault.core.errors import BlobNotFoundError, StorageUnavailableError
from stemvault.services.blob_store import (
    LocalBlobStore,
    MemoryBlobStore,
    create_blob_store,
    validate_storage_path,
)

PATH = "projects/p1/commits/c1/abc123.wav"


@pytest.mark.unit
class TestStoragePaths:
    """Test storage path validation"""

    def test_relative_paths_are_accepted(self):
        assert validate_storage_path(PATH) == PATH

    @pytest.mark.parametrize("path", ["", "/etc/passwd", "projects/../../secret", "../up"])
    def test_escaping_paths_are_rejected(self, path):
        with pytest.raises(ValueError):
            validate_storage_path(path)


@pytest.mark.unit
class TestLocalBlobStore:
    """Test filesystem-backed storage"""

    @pytest.fixture
    def store(self, tmp_path):
        return LocalBlobStore(str(tmp_path), "audio-commits", "https://cdn.example.com/blobs/")

    async def test_put_get_delete(self, store, tmp_path):
        await store.put(PATH, b"wave bytes", "audio/wav")

        assert (tmp_path / "audio-commits" / PATH).read_bytes() == b"wave bytes"
        assert await store.get(PATH) == b"wave bytes"
        assert not list(tmp_path.rglob("*.part"))

        await store.delete(PATH)
        with pytest.raises(BlobNotFoundError):
            await store.get(PATH)

    async def test_delete_missing_object_is_ignored(self, store):
        await store.delete("projects/none/nothing.wav")

    async def test_public_url(self, store):
        assert store.public_url(PATH) == f"https://cdn.example.com/blobs/audio-commits/{PATH}"

    async def test_write_failure_is_storage_unavailable(self, store, tmp_path):
        # A regular file where a directory is needed makes the write fail
        (tmp_path / "audio-commits" / "projects").write_bytes(b"")

        with pytest.raises(StorageUnavailableError) as exc_info:
            await store.put(PATH, b"wave bytes")
        assert exc_info.value.retryable


@pytest.mark.unit
class TestMemoryBlobStore:
    """Test in-memory storage"""

    async def test_put_counts_writes(self):
        store = MemoryBlobStore()
        await store.put(PATH, b"one")
        await store.put("projects/p1/other.wav", b"two")

        assert store.put_count == 2
        assert await store.get(PATH) == b"one"
        assert store.public_url(PATH) == f"memory://audio-commits/{PATH}"

    async def test_missing_object(self):
        store = MemoryBlobStore()
        with pytest.raises(BlobNotFoundError) as exc_info:
            await store.get(PATH)

        assert isinstance(exc_info.value, StorageUnavailableError)
        assert not exc_info.value.retryable


@pytest.mark.unit
def test_create_blob_store_backends(tmp_path):
    assert isinstance(create_blob_store("memory"), MemoryBlobStore)
    assert isinstance(create_blob_store("local"), LocalBlobStore)

    with pytest.raises(ValueError):
        create_blob_store("s3-but-not-really")
