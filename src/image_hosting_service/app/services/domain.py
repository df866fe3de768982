from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class AttemptOutcome(str, Enum):
    COMPLETED = "completed"
    REJECTED = "rejected"
    FAILED = "failed"


class StorageFailurePolicy(str, Enum):
    FAIL = "fail"
    DEGRADE = "degrade"


@dataclass(frozen=True)
class StoredObject:
    file_name: str
    url: str
    file_id: str | None = None
    externally_hosted: bool = True


@dataclass(frozen=True)
class RemoteFile:
    file_id: str
    file_name: str
    uploaded_at: datetime


@dataclass(frozen=True)
class RemoteFilePage:
    files: list[RemoteFile]
    next_file_name: str | None = None


@dataclass(frozen=True)
class ImageDimensions:
    width: int
    height: int
    format: str | None = None


@dataclass
class ReconciliationReport:
    scanned: int = 0
    orphaned: int = 0
    deleted: int = 0
    failed: int = 0
    failed_keys: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class IssuedApiKey:
    """An API key as returned on creation; ``raw_key`` is never stored."""

    id: Any
    name: str
    prefix: str
    raw_key: str
    created_at: datetime


class ImageHostingError(Exception):
    """Base exception for all service errors.

    ``code`` is a stable machine readable identifier, ``details`` carries
    optional context for the caller.
    """

    code = "error"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class AuthenticationError(ImageHostingError):
    code = "authentication_failed"


class MissingCredentialError(AuthenticationError):
    code = "missing_credential"


class InvalidCredentialError(AuthenticationError):
    code = "invalid_credential"


class AuthorizationError(ImageHostingError):
    code = "forbidden"


class ValidationError(ImageHostingError):
    code = "validation_failed"


class QuotaExceededError(ValidationError):
    code = "quota_exceeded"


class NotFoundError(ImageHostingError):
    code = "not_found"


class ConflictError(ImageHostingError):
    code = "conflict"


class StorageError(ImageHostingError):
    code = "storage_failed"


class StorageBackendError(StorageError):
    """Raised by the storage adapter when the backend rejects a request."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message, {"status_code": status_code} if status_code else None)
        self.status_code = status_code


class PersistenceError(ImageHostingError):
    """Metadata write failed after the object was stored.

    ``storage_cleaned_up`` tells the caller whether the stored object was
    removed again; when it is False the object is left for reconciliation.
    """

    code = "persistence_failed"

    def __init__(self, message: str, storage_key: str, storage_cleaned_up: bool):
        super().__init__(
            message,
            {"storage_key": storage_key, "storage_cleaned_up": storage_cleaned_up},
        )
        self.storage_key = storage_key
        self.storage_cleaned_up = storage_cleaned_up
