"""
Unit tests for the stem deduplication index
Tests content hashing, store-vs-reuse decisions and reference counting
"""
import hashlib
import mimetypes
import uuid
from unittest.mock import AsyncMock, patch

import pytest

from stemvault.core.errors import NotFoundError, StorageUnavailableError
from stemvault.database.repositories import BlobRecordRepository
from stemvault.services.dedup_index import (
    AudioPayload,
    StemDeduplicationIndex,
    compute_content_hash,
    resolve_format,
)

KICK = b"RIFF....WAVEfmt kick drum take"


@pytest.fixture
def dedup_index(db_session, blob_store):
    return StemDeduplicationIndex(db_session, blob_store)


@pytest.fixture
def namespace():
    return f"projects/{uuid.uuid4()}/commits/{uuid.uuid4()}"


@pytest.mark.unit
class TestContentAddressing:
    """Test hashing and format resolution"""

    def test_content_hash_is_sha256_of_exact_bytes(self):
        assert compute_content_hash(KICK) == hashlib.sha256(KICK).hexdigest()
        assert compute_content_hash(KICK) != compute_content_hash(KICK + b"\x00")
        assert len(compute_content_hash(b"")) == 64

    def test_format_from_filename_extension(self):
        assert resolve_format("Kick Take 3.WAV", "audio/mpeg") == "wav"
        assert resolve_format("bass.flac", None) == "flac"

    def test_format_falls_back_to_media_type(self):
        expected = mimetypes.guess_extension("application/json").lstrip(".")
        assert resolve_format("no_extension", "application/json; charset=utf-8") == expected

    def test_format_defaults_to_bin(self):
        assert resolve_format(None, None) == "bin"
        assert resolve_format("noext", "application/x-unknown-stemvault") == "bin"


@pytest.mark.unit
class TestIngest:
    """Test store-vs-reuse on ingest"""

    async def test_novel_content_is_stored_once(self, dedup_index, blob_store, namespace, actor_id):
        result = await dedup_index.ingest(
            AudioPayload(data=KICK, filename="kick.wav", content_type="audio/wav"),
            namespace=namespace,
            duration=2.5,
            uploaded_by=actor_id
        )
        await dedup_index.session.commit()

        assert result.is_ok()
        record = result.unwrap()
        content_hash = compute_content_hash(KICK)

        assert record.content_hash == content_hash
        assert record.reference_count == 1
        assert record.size_bytes == len(KICK)
        assert record.format == "wav"
        assert record.storage_path == f"{namespace}/{content_hash}.wav"
        assert record.storage_url == blob_store.public_url(record.storage_path)
        assert record.uploaded_by == actor_id
        assert blob_store.put_count == 1
        assert blob_store.objects[record.storage_path][0] == KICK

    async def test_duplicate_content_reuses_record(self, dedup_index, blob_store, namespace):
        first = await dedup_index.ingest(AudioPayload(data=KICK, filename="kick.wav"), namespace=namespace)
        first_id = first.unwrap().id
        await dedup_index.session.commit()

        second = await dedup_index.ingest(
            AudioPayload(data=KICK, filename="kick_copy.aiff"),
            namespace=f"projects/{uuid.uuid4()}/commits/{uuid.uuid4()}"
        )
        await dedup_index.session.commit()

        assert second.is_ok()
        assert second.unwrap().id == first_id
        assert second.unwrap().reference_count == 2
        assert blob_store.put_count == 1

        records = await BlobRecordRepository(dedup_index.session).count()
        assert records == 1

    async def test_storage_failure_is_reported_not_raised(self, dedup_index, blob_store, namespace):
        with patch.object(
            blob_store, "put", AsyncMock(side_effect=StorageUnavailableError("bucket unreachable"))
        ):
            result = await dedup_index.ingest(AudioPayload(data=KICK), namespace=namespace)

        assert result.is_err()
        assert result.code == "StorageUnavailable"
        assert "bucket unreachable" in result.error
        assert await BlobRecordRepository(dedup_index.session).get_by_hash(compute_content_hash(KICK)) is None

    async def test_lost_insert_race_falls_back_to_reuse(self, dedup_index, blob_store, namespace):
        winner = await dedup_index.ingest(AudioPayload(data=KICK, filename="kick.wav"), namespace=namespace)
        winner_id = winner.unwrap().id
        await dedup_index.session.commit()

        real_increment = dedup_index.blob_repo.increment_reference
        calls = []

        async def miss_then_hit(content_hash):
            # First lookup happens before the other writer's record is visible
            calls.append(content_hash)
            if len(calls) == 1:
                return None
            return await real_increment(content_hash)

        loser_namespace = f"projects/{uuid.uuid4()}/commits/{uuid.uuid4()}"
        with patch.object(dedup_index.blob_repo, "increment_reference", side_effect=miss_then_hit):
            result = await dedup_index.ingest(
                AudioPayload(data=KICK, filename="kick.wav"), namespace=loser_namespace
            )
        await dedup_index.session.commit()

        assert result.is_ok()
        assert result.unwrap().id == winner_id
        assert result.unwrap().reference_count == 2
        assert len(calls) == 2

        # Bytes uploaded by the losing writer are discarded
        assert not any(path.startswith(loser_namespace) for path in blob_store.objects)


@pytest.mark.unit
class TestUncommittedUploads:
    """Test cleanup of bytes whose records never committed"""

    async def test_rollback_discards_new_bytes(self, dedup_index, blob_store, namespace):
        result = await dedup_index.ingest(AudioPayload(data=KICK, filename="kick.wav"), namespace=namespace)
        storage_path = result.unwrap().storage_path
        assert storage_path in blob_store.objects

        await dedup_index.session.rollback()
        await dedup_index.discard_uncommitted()

        assert storage_path not in blob_store.objects
        assert await BlobRecordRepository(dedup_index.session).get_by_hash(compute_content_hash(KICK)) is None

    async def test_committed_bytes_are_kept(self, dedup_index, blob_store, namespace):
        result = await dedup_index.ingest(AudioPayload(data=KICK, filename="kick.wav"), namespace=namespace)
        await dedup_index.session.commit()
        dedup_index.mark_committed()

        await dedup_index.discard_uncommitted()

        assert result.unwrap().storage_path in blob_store.objects

    async def test_reused_bytes_are_never_discarded(self, dedup_index, blob_store, namespace):
        first = await dedup_index.ingest(AudioPayload(data=KICK, filename="kick.wav"), namespace=namespace)
        await dedup_index.session.commit()
        dedup_index.mark_committed()

        await dedup_index.ingest(AudioPayload(data=KICK, filename="kick.wav"), namespace=namespace)
        await dedup_index.session.rollback()
        await dedup_index.discard_uncommitted()

        assert first.unwrap().storage_path in blob_store.objects


@pytest.mark.unit
class TestRelease:
    """Test the saturating decrement path"""

    async def test_release_decrements_then_reclaims(self, dedup_index, blob_store, namespace):
        first = await dedup_index.ingest(AudioPayload(data=KICK, filename="kick.wav"), namespace=namespace)
        blob_id = first.unwrap().id
        storage_path = first.unwrap().storage_path
        await dedup_index.session.commit()
        await dedup_index.ingest(AudioPayload(data=KICK, filename="kick.wav"), namespace=namespace)
        await dedup_index.session.commit()

        assert await dedup_index.release(blob_id) == 1
        assert storage_path in blob_store.objects

        assert await dedup_index.release(blob_id) == 0
        assert storage_path not in blob_store.objects
        assert await BlobRecordRepository(dedup_index.session).get(blob_id) is None

    async def test_release_keeps_blob_still_used_by_stems(
        self, dedup_index, commit_engine, blob_store, repository, main_branch, actor_id, make_stem
    ):
        result = await commit_engine.create_commit(
            repository.id, main_branch.id, actor_id, "Keep me", [make_stem("Kick", 0, KICK)]
        )
        blob_id = result.stems[0].audio_file_id
        record = await BlobRecordRepository(dedup_index.session).get(blob_id)

        assert await dedup_index.release(blob_id) == 0
        assert record.storage_path in blob_store.objects
        assert await BlobRecordRepository(dedup_index.session).get(blob_id) is not None

    async def test_release_unknown_blob(self, dedup_index):
        with pytest.raises(NotFoundError):
            await dedup_index.release(uuid.uuid4())
