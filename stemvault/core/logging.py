"""
StemVault Logging Configuration
Structured logging setup with file rotation and version-control event loggers
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any, Optional

import structlog
from pythonjsonlogger import jsonlogger

from .config import get_settings


def setup_logging() -> logging.Logger:
    """Set up structured logging for StemVault"""
    settings = get_settings()

    # Create logs directory
    log_dir = Path(settings.LOG_FILE_PATH).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    # Configure standard library logging
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper()),
        format=settings.LOG_FORMAT,
        handlers=[]  # Will be set below
    )

    # Create root logger
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    # Console handler with colored output for development
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)

    if settings.is_development:
        # Colored console formatter for development
        console_formatter = logging.Formatter(
            '\033[92m%(asctime)s\033[0m - '
            '\033[94m%(name)s\033[0m - '
            '\033[%(levelno)s;1m%(levelname)s\033[0m - '
            '%(message)s',
            datefmt='%H:%M:%S'
        )
    else:
        # JSON formatter for production
        console_formatter = jsonlogger.JsonFormatter(
            '%(asctime)s %(name)s %(levelname)s %(message)s'
        )

    console_handler.setFormatter(console_formatter)
    root_logger.addHandler(console_handler)

    # File handler with rotation
    file_handler = logging.handlers.RotatingFileHandler(
        settings.LOG_FILE_PATH,
        maxBytes=settings.LOG_MAX_SIZE,
        backupCount=settings.LOG_BACKUP_COUNT,
        encoding='utf-8'
    )
    file_handler.setLevel(logging.DEBUG)

    file_formatter = jsonlogger.JsonFormatter(
        '%(asctime)s %(name)s %(levelname)s %(pathname)s %(lineno)d %(funcName)s %(message)s'
    )
    file_handler.setFormatter(file_formatter)
    root_logger.addHandler(file_handler)

    # Configure structlog for structured logging
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if not settings.is_development
            else structlog.dev.ConsoleRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Adjust third-party library log levels
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("fastapi").setLevel(logging.INFO)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logging.getLogger("stemvault.vcs").setLevel(logging.INFO)
    logging.getLogger("stemvault.storage").setLevel(logging.DEBUG)

    logger = logging.getLogger("stemvault")
    logger.info(f"Logging configured - Level: {settings.LOG_LEVEL}")

    return logger


class VersionControlLogger:
    """Specialized logger for commit graph and branch operations"""

    def __init__(self):
        self.logger = structlog.get_logger("stemvault.vcs")

    def log_repository_initialized(
        self,
        repository_id: str,
        project_id: str,
        default_branch: str
    ) -> None:
        """Log creation of a repository and its default branch"""
        self.logger.info(
            "Repository initialized",
            repository_id=repository_id,
            project_id=project_id,
            default_branch=default_branch
        )

    def log_commit_created(
        self,
        commit_id: str,
        branch_id: str,
        parent_commit_id: Optional[str],
        stems_attached: int,
        stems_failed: int,
        duration_ms: float
    ) -> None:
        """Log a landed commit with its fan-out outcome"""
        self.logger.info(
            "Commit created",
            commit_id=commit_id,
            branch_id=branch_id,
            parent_commit_id=parent_commit_id,
            stems_attached=stems_attached,
            stems_failed=stems_failed,
            duration_ms=duration_ms
        )

    def log_stem_ingest_failed(
        self,
        commit_id: str,
        stem_index: int,
        track_name: str,
        error_code: str,
        error: str
    ) -> None:
        """Log a single stem that could not be attached"""
        self.logger.warning(
            "Stem ingest failed",
            commit_id=commit_id,
            stem_index=stem_index,
            track_name=track_name,
            error_code=error_code,
            error=error
        )

    def log_head_cas_retry(
        self,
        branch_id: str,
        expected_head: Optional[str],
        attempt: int,
        delay_ms: float
    ) -> None:
        """Log a lost compare-and-set on a branch head"""
        self.logger.warning(
            "Branch head moved concurrently, retrying",
            branch_id=branch_id,
            expected_head=expected_head,
            attempt=attempt,
            delay_ms=delay_ms
        )

    def log_branch_created(
        self,
        branch_id: str,
        repository_id: str,
        name: str,
        source_commit_id: Optional[str]
    ) -> None:
        """Log branch creation"""
        self.logger.info(
            "Branch created",
            branch_id=branch_id,
            repository_id=repository_id,
            name=name,
            source_commit_id=source_commit_id
        )


class StorageLogger:
    """Specialized logger for blob store and dedup index operations"""

    def __init__(self):
        self.logger = structlog.get_logger("stemvault.storage")

    def log_blob_stored(
        self,
        content_hash: str,
        storage_path: str,
        size_bytes: int
    ) -> None:
        """Log upload of novel content"""
        self.logger.info(
            "Blob stored",
            content_hash=content_hash,
            storage_path=storage_path,
            size_bytes=size_bytes
        )

    def log_blob_reused(
        self,
        content_hash: str,
        blob_id: str,
        reference_count: int
    ) -> None:
        """Log dedup hit"""
        self.logger.debug(
            "Blob reused",
            content_hash=content_hash,
            blob_id=blob_id,
            reference_count=reference_count
        )

    def log_blob_released(
        self,
        blob_id: str,
        reference_count: int,
        reclaimed: bool
    ) -> None:
        """Log a reference count decrement"""
        self.logger.info(
            "Blob reference released",
            blob_id=blob_id,
            reference_count=reference_count,
            reclaimed=reclaimed
        )

    def log_blob_download_failed(
        self,
        content_hash: str,
        storage_path: str,
        error: str
    ) -> None:
        """Log a blob that could not be fetched for export"""
        self.logger.error(
            "Blob download failed",
            content_hash=content_hash,
            storage_path=storage_path,
            error=error
        )


class PerformanceLogger:
    """Logger for performance monitoring"""

    def __init__(self):
        self.logger = structlog.get_logger("stemvault.performance")

    def log_export(
        self,
        repository_id: str,
        branch_id: str,
        commits: int,
        files: int,
        missing_files: int,
        archive_bytes: int,
        duration_ms: float
    ) -> None:
        """Log clone export timing and size"""
        self.logger.info(
            "Clone export completed",
            repository_id=repository_id,
            branch_id=branch_id,
            commits=commits,
            files=files,
            missing_files=missing_files,
            archive_bytes=archive_bytes,
            duration_ms=duration_ms
        )

    def log_health_check_failed(self, component: str, error: Any) -> None:
        """Log a failed dependency health check"""
        self.logger.error(
            "Health check failed",
            component=component,
            error=str(error)
        )


# Create global logger instances
vcs_logger = VersionControlLogger()
storage_logger = StorageLogger()
performance_logger = PerformanceLogger()

# Export for convenience
__all__ = [
    "setup_logging",
    "VersionControlLogger",
    "StorageLogger",
    "PerformanceLogger",
    "vcs_logger",
    "storage_logger",
    "performance_logger"
]
