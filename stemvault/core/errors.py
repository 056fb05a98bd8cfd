"""
StemVault Error Taxonomy
Exceptions raised by the version-control engine, each with a stable code
"""

from typing import Any, Dict, List, Optional


class VersionControlError(Exception):
    """Base error for all engine failures"""
    code: str = "InternalError"
    status_code: int = 500
    retryable: bool = False

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for API responses"""
        payload: Dict[str, Any] = {
            "success": False,
            "error": self.code,
            "detail": self.message,
        }
        if self.retryable:
            payload["retryable"] = True
        return payload


class NotFoundError(VersionControlError):
    """Referenced entity is missing or does not belong to the stated parent"""
    code = "NotFound"
    status_code = 404


class ConflictError(VersionControlError):
    """Uniqueness or concurrent-update conflict"""
    code = "Conflict"
    status_code = 409


class UnauthorizedError(VersionControlError):
    """Actor lacks access to the repository or branch"""
    code = "Unauthorized"
    status_code = 403


class InvalidRequestError(VersionControlError):
    """Structurally invalid input"""
    code = "InvalidRequest"
    status_code = 400


class RepositoryError(VersionControlError):
    """Unexpected data-access failure"""
    code = "RepositoryError"
    status_code = 500


class StorageUnavailableError(VersionControlError):
    """Blob store unreachable or failed the operation"""
    code = "StorageUnavailable"
    status_code = 503
    retryable = True


class BlobNotFoundError(StorageUnavailableError):
    """Blob store has no object at the requested path"""
    code = "BlobNotFound"
    status_code = 404
    retryable = False


class ExportTimeoutError(VersionControlError):
    """Clone export exceeded its deadline; the partial archive was discarded"""
    code = "ExportTimeout"
    status_code = 504
    retryable = True


class PartialStemFailure(VersionControlError):
    """One or more stems of a commit did not land"""
    code = "PartialStemFailure"
    status_code = 207

    def __init__(self, message: str, failures: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.failures = failures or []


class ArchiveIncomplete(VersionControlError):
    """Clone export finished but some referenced blobs are missing"""
    code = "ArchiveIncomplete"
    status_code = 200

    def __init__(self, message: str, missing_files: Optional[List[str]] = None):
        super().__init__(message)
        self.missing_files = missing_files or []


__all__ = [
    "VersionControlError",
    "NotFoundError",
    "ConflictError",
    "UnauthorizedError",
    "InvalidRequestError",
    "RepositoryError",
    "StorageUnavailableError",
    "BlobNotFoundError",
    "ExportTimeoutError",
    "PartialStemFailure",
    "ArchiveIncomplete",
]
