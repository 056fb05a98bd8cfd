"""
StemVault Testing Configuration
Pytest fixtures and test setup
"""
import os
import tempfile
import uuid
from pathlib import Path
from typing import Optional

import pytest

# Keep settings-created directories out of the working tree
_TEST_ROOT = Path(tempfile.mkdtemp(prefix="stemvault_tests_"))
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TEST_ROOT / 'stemvault.db'}")
os.environ.setdefault("BLOB_STORE_BACKEND", "memory")
os.environ.setdefault("BLOB_STORE_PATH", str(_TEST_ROOT / "blobs"))
os.environ.setdefault("TEMP_PATH", str(_TEST_ROOT / "temp"))
os.environ.setdefault("LOG_FILE_PATH", str(_TEST_ROOT / "logs" / "stemvault.log"))
os.environ.setdefault("HEAD_CAS_BACKOFF_BASE_MS", "1")
os.environ.setdefault("HEAD_CAS_BACKOFF_MAX_MS", "5")

from stemvault.core.config import get_settings  # noqa: E402
from stemvault.database.connection import DatabaseManager  # noqa: E402
from stemvault.database.schemas import RepositoryCreate, StemDescriptor  # noqa: E402
from stemvault.services.blob_store import MemoryBlobStore  # noqa: E402
from stemvault.services.branch_manager import BranchManager  # noqa: E402
from stemvault.services.commit_engine import CommitGraphEngine, StemUpload  # noqa: E402
from stemvault.services.dedup_index import AudioPayload  # noqa: E402


@pytest.fixture
def test_settings(tmp_path):
    """Settings with a per-test temp directory and fast CAS backoff"""
    return get_settings().model_copy(update={
        "TEMP_PATH": str(tmp_path / "temp"),
        "HEAD_CAS_BACKOFF_BASE_MS": 1,
        "HEAD_CAS_BACKOFF_MAX_MS": 5,
    })


@pytest.fixture
async def db_manager(tmp_path):
    """Fresh SQLite database with every table created"""
    manager = DatabaseManager()
    await manager.initialize(f"sqlite+aiosqlite:///{tmp_path / 'stemvault.db'}")
    await manager.create_all()
    yield manager
    await manager.close()


@pytest.fixture
async def db_session(db_manager):
    """Database session for a single test"""
    async with db_manager.get_session() as session:
        yield session


@pytest.fixture
def blob_store():
    """In-memory blob store that counts writes"""
    return MemoryBlobStore()


@pytest.fixture
def actor_id():
    return uuid.uuid4()


@pytest.fixture
async def repository(db_session, actor_id):
    """Initialized repository with an empty 'main' branch"""
    manager = BranchManager(db_session)
    return await manager.initialize_repository(
        RepositoryCreate(project_id=uuid.uuid4(), project_name="Night Drive"),
        actor_id
    )


@pytest.fixture
def main_branch(repository):
    return repository.branches[0]


@pytest.fixture
def commit_engine(db_session, blob_store, test_settings):
    return CommitGraphEngine(db_session, blob_store, settings=test_settings)


@pytest.fixture
def make_stem():
    """Factory for stem uploads"""

    def _make_stem(
        track_name: str,
        track_index: int,
        data: Optional[bytes] = None,
        stem_type: str = "audio",
        filename: str = "take.wav",
        content_type: str = "audio/wav",
        **extra
    ) -> StemUpload:
        descriptor = StemDescriptor(
            track_name=track_name,
            track_index=track_index,
            stem_type=stem_type,
            **extra
        )
        payload = None
        if data is not None:
            payload = AudioPayload(data=data, filename=filename, content_type=content_type)
        return StemUpload(descriptor=descriptor, payload=payload)

    return _make_stem


def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: mark test as unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as integration test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )
