"""
StemVault Snapshot/Clone Exporter
Rebuilds a branch's full history into a single downloadable zip archive
"""

import asyncio
import re
import tempfile
import threading
import time
import uuid
import zipfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import StemVaultSettings, get_settings
from ..core.errors import (
    ArchiveIncomplete,
    ExportTimeoutError,
    NotFoundError,
    StorageUnavailableError,
)
from ..core.logging import performance_logger, storage_logger
from ..database.models import BlobRecord, Branch, Commit, Repository
from ..database.repositories import (
    BranchRepository,
    CommitRepository,
    RepositoryRepository,
)
from ..database.schemas import (
    ArchiveManifest,
    ManifestBranch,
    ManifestCommit,
    ManifestFile,
    ManifestRepository,
    ManifestStem,
)
from .authorization import AllowAllAuthorizer, Authorizer, Permission
from .blob_store import BlobStore

MANIFEST_NAME = "project.json"
STEMS_DIR = "stems"


def archive_entry_name(content_hash: str, file_format: str) -> str:
    """Archive path for a blob, keyed by content hash rather than commit"""
    return f"{STEMS_DIR}/{content_hash}.{file_format}"


def archive_filename(project_name: str, branch_name: str) -> str:
    """Download filename ``{project}_{branch}.zip`` with unsafe characters replaced"""
    stem = f"{project_name}_{branch_name}"
    return re.sub(r"[^A-Za-z0-9.-]+", "_", stem).strip("_") + ".zip"


def write_archive_entry(
    archive: zipfile.ZipFile,
    entry_name: str,
    data: bytes,
    chunk_size: int,
    stop: threading.Event
) -> bool:
    """
    Write one archive entry in chunks, giving up early once ``stop`` is set.

    Returns True when the whole entry was written. The entry handle is always
    closed before returning, so the archive itself can be closed afterwards.
    """
    view = memoryview(data)
    with archive.open(entry_name, "w", force_zip64=len(data) > zipfile.ZIP64_LIMIT) as dest:
        for offset in range(0, len(view), chunk_size):
            if stop.is_set():
                return False
            dest.write(view[offset:offset + chunk_size])
    return True


@dataclass
class CloneArchive:
    """A finished archive on disk, deleted once streamed or discarded"""
    path: Path
    filename: str
    manifest: ArchiveManifest
    missing_files: List[str] = field(default_factory=list)
    chunk_size: int = 64 * 1024

    @property
    def is_complete(self) -> bool:
        return not self.missing_files

    @property
    def status(self) -> str:
        return "complete" if self.is_complete else ArchiveIncomplete.code

    @property
    def size_bytes(self) -> int:
        return self.path.stat().st_size

    def incomplete_error(self) -> Optional[ArchiveIncomplete]:
        """Annotation describing missing blobs, or None for a complete archive"""
        if self.is_complete:
            return None
        return ArchiveIncomplete(
            f"{len(self.missing_files)} referenced file(s) could not be retrieved",
            missing_files=list(self.missing_files)
        )

    async def iter_chunks(self) -> AsyncIterator[bytes]:
        """Stream the archive bytes, removing the file afterwards"""
        try:
            with open(self.path, "rb") as f:
                while True:
                    chunk = await asyncio.to_thread(f.read, self.chunk_size)
                    if not chunk:
                        break
                    yield chunk
        finally:
            self.discard()

    def discard(self) -> None:
        self.path.unlink(missing_ok=True)


@dataclass
class _ArchiveFile:
    entry_name: str
    storage_path: str
    record: ManifestFile


class CloneExporter:
    """
    Walks a branch's commits oldest to newest and writes ``project.json``
    plus every unique referenced blob into one compressed archive.

    Each unique content hash is fetched from the blob store and written
    exactly once no matter how many stems reference it. A blob that cannot
    be fetched is logged and left out of the archive but still listed in the
    manifest, which is then marked ``ArchiveIncomplete``. The whole export
    runs under a deadline; on timeout the partial archive is deleted.
    """

    def __init__(
        self,
        session: AsyncSession,
        blob_store: BlobStore,
        authorizer: Optional[Authorizer] = None,
        settings: Optional[StemVaultSettings] = None
    ):
        self.session = session
        self.blob_store = blob_store
        self.authorizer = authorizer or AllowAllAuthorizer()
        self.settings = settings or get_settings()

        self.repository_repo = RepositoryRepository(session)
        self.branch_repo = BranchRepository(session)
        self.commit_repo = CommitRepository(session)

    async def export(
        self,
        repository_id: uuid.UUID,
        actor_id: uuid.UUID,
        branch_id: Optional[uuid.UUID] = None,
        timeout: Optional[float] = None
    ) -> CloneArchive:
        """
        Export a branch (default: the repository's default branch).

        Raises:
            UnauthorizedError: Actor may not read the repository
            NotFoundError: Repository or branch missing
            ExportTimeoutError: Deadline exceeded; nothing is returned
        """
        await self.authorizer.authorize(actor_id, repository_id, Permission.READ, branch_id)

        repository = await self.repository_repo.get_or_404(repository_id)
        branch = await self._resolve_branch(repository_id, repository.default_branch, branch_id)

        export_config = self.settings.get_export_config()
        timeout = timeout if timeout is not None else export_config["timeout_seconds"]
        temp_dir = Path(export_config["temp_path"])
        temp_dir.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            dir=temp_dir, prefix="clone_", suffix=".zip", delete=False
        ) as tmp:
            archive_path = Path(tmp.name)

        started = time.perf_counter()
        finished = False
        try:
            manifest = await asyncio.wait_for(
                self._build_archive(archive_path, repository, branch, actor_id),
                timeout=timeout
            )
            finished = True
        except asyncio.TimeoutError:
            raise self._timeout_error(repository_id, branch, timeout)
        except Exception as e:
            if time.perf_counter() - started >= timeout:
                raise self._timeout_error(repository_id, branch, timeout) from e
            raise
        finally:
            if not finished:
                archive_path.unlink(missing_ok=True)

        archive = CloneArchive(
            path=archive_path,
            filename=archive_filename(repository.project_name, branch.name),
            manifest=manifest,
            missing_files=list(manifest.missing_files),
            chunk_size=export_config["chunk_size"]
        )

        performance_logger.log_export(
            repository_id=str(repository_id),
            branch_id=str(branch.id),
            commits=len(manifest.commits),
            files=len(manifest.files),
            missing_files=len(manifest.missing_files),
            archive_bytes=archive.size_bytes,
            duration_ms=(time.perf_counter() - started) * 1000
        )
        return archive

    def _timeout_error(self, repository_id: uuid.UUID, branch: Branch, timeout: float) -> ExportTimeoutError:
        return ExportTimeoutError(
            f"Clone export of branch {branch.id} exceeded {timeout}s",
            repository_id=str(repository_id),
            branch_id=str(branch.id)
        )

    async def _resolve_branch(
        self,
        repository_id: uuid.UUID,
        default_branch: str,
        branch_id: Optional[uuid.UUID]
    ) -> Branch:
        if branch_id is not None:
            return await self.branch_repo.get_in_repository(branch_id, repository_id)

        branch = await self.branch_repo.get_by_name(repository_id, default_branch)
        if branch is None:
            raise NotFoundError(
                f"Default branch '{default_branch}' not found in repository {repository_id}"
            )
        return branch

    async def _build_archive(
        self,
        archive_path: Path,
        repository: Repository,
        branch: Branch,
        actor_id: uuid.UUID
    ) -> ArchiveManifest:
        commits = await self.commit_repo.get_branch_commits_chronological(branch.id)

        files: Dict[str, _ArchiveFile] = {}
        manifest_commits = [self._manifest_commit(commit, files) for commit in commits]
        missing_files: List[str] = []

        with zipfile.ZipFile(
            archive_path,
            "w",
            compression=zipfile.ZIP_DEFLATED,
            compresslevel=self.settings.ARCHIVE_COMPRESSION_LEVEL
        ) as archive:
            for content_hash, entry in files.items():
                try:
                    data = await self.blob_store.get(entry.storage_path)
                except StorageUnavailableError as e:
                    storage_logger.log_blob_download_failed(content_hash, entry.storage_path, e.message)
                    missing_files.append(entry.entry_name)
                    continue

                await self._write_entry(archive, entry.entry_name, data)

            manifest = ArchiveManifest(
                project={"id": repository.project_id, "name": repository.project_name},
                repository=ManifestRepository(id=repository.id, default_branch=repository.default_branch),
                branch=ManifestBranch(id=branch.id, name=branch.name, head_commit_id=branch.head_commit_id),
                exported_at=datetime.now(timezone.utc),
                exported_by=actor_id,
                commits=manifest_commits,
                files=[entry.record for entry in files.values()],
                missing_files=missing_files,
                status="complete" if not missing_files else ArchiveIncomplete.code
            )
            await self._write_entry(
                archive, MANIFEST_NAME, manifest.model_dump_json(indent=2).encode("utf-8")
            )

        return manifest

    async def _write_entry(self, archive: zipfile.ZipFile, entry_name: str, data: bytes) -> None:
        """Write an entry off the event loop; on cancellation stop the writer and wait for it"""
        stop = threading.Event()
        write = asyncio.ensure_future(asyncio.to_thread(
            write_archive_entry, archive, entry_name, data, self.settings.ARCHIVE_CHUNK_SIZE, stop
        ))
        try:
            await asyncio.shield(write)
        except asyncio.CancelledError:
            # The archive cannot be closed while the entry handle is open
            stop.set()
            await write
            raise

    def _manifest_commit(self, commit: Commit, files: Dict[str, _ArchiveFile]) -> ManifestCommit:
        """Describe one commit, registering its blobs in first-seen order"""
        stems = []
        for stem in commit.stems:
            blob: Optional[BlobRecord] = stem.audio_file
            audio_entry = None
            if blob is not None:
                audio_entry = archive_entry_name(blob.content_hash, blob.format)
                if blob.content_hash not in files:
                    files[blob.content_hash] = _ArchiveFile(
                        entry_name=audio_entry,
                        storage_path=blob.storage_path,
                        record=ManifestFile(
                            path=audio_entry,
                            content_hash=blob.content_hash,
                            size_bytes=blob.size_bytes,
                            format=blob.format,
                            mime_type=blob.mime_type
                        )
                    )

            stems.append(ManifestStem(
                track_name=stem.track_name,
                track_index=stem.track_index,
                track_color=stem.track_color,
                stem_type=stem.stem_type,
                duration=stem.duration,
                fx_settings=stem.fx_settings,
                midi_data=stem.midi_data,
                content_hash=blob.content_hash if blob is not None else None,
                audio_file=audio_entry
            ))

        return ManifestCommit(
            id=commit.id,
            parent_commit_id=commit.parent_commit_id,
            message=commit.message,
            author_id=commit.author_id,
            created_at=commit.created_at,
            depth=commit.depth,
            stems=stems
        )
