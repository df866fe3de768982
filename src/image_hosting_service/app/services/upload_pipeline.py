import asyncio
import uuid
from pathlib import PurePosixPath
from typing import Any

from loguru import logger

from ..core.config import Settings
from ..models import Asset, Identity
from ..schemas.asset import UploadOptions
from .asset_store import AssetStore
from .domain import (
    AttemptOutcome,
    PersistenceError,
    QuotaExceededError,
    StorageError,
    StorageFailurePolicy,
    StoredObject,
    ValidationError,
)
from .event_log import EventLog
from .image_inspection import ImageInspector
from .local_storage import LocalFileStorage
from .storage_adapter import B2StorageAdapter

CONTENT_TYPE_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/gif": ".gif",
    "image/svg+xml": ".svg",
    "image/tiff": ".tiff",
    "image/avif": ".avif",
    "image/bmp": ".bmp",
}
KNOWN_EXTENSIONS = {
    ".jpg",
    ".jpeg",
    ".png",
    ".webp",
    ".gif",
    ".svg",
    ".tif",
    ".tiff",
    ".avif",
    ".bmp",
}


def derive_storage_key(
    identity_id: Any, filename: str, content_type: str, folder: str = ""
) -> str:
    """Build ``<identity id>/[<folder>/]<random hex><ext>`` for a new object."""
    extension = PurePosixPath(filename or "").suffix.lower()
    if extension not in KNOWN_EXTENSIONS:
        extension = CONTENT_TYPE_EXTENSIONS.get(content_type, "")

    parts = [str(identity_id)]
    if folder:
        parts.append(folder)
    parts.append(f"{uuid.uuid4().hex}{extension}")
    return "/".join(parts)


def _clean_filename(filename: str | None) -> str:
    name = PurePosixPath((filename or "").replace("\\", "/")).name.strip()
    return name[:255] or "upload"


def _normalize_content_type(content_type: str | None) -> str:
    return (content_type or "").split(";", 1)[0].strip().lower()


class UploadPipeline:
    """Validates, stores and records one uploaded image.

    Nothing durable happens before the object storage write. A metadata
    failure after a successful write triggers a compensating delete.
    """

    def __init__(
        self,
        storage: B2StorageAdapter | None = None,
        asset_store: AssetStore | None = None,
        event_log: EventLog | None = None,
        inspector: ImageInspector | None = None,
        local_storage: LocalFileStorage | None = None,
        settings: Settings | None = None,
        failure_policy: StorageFailurePolicy | None = None,
    ):
        from ..core.config import get_settings

        self.settings = settings or get_settings()
        self.storage = storage or B2StorageAdapter(self.settings)
        self.event_log = event_log or EventLog(self.settings)
        self.local_storage = local_storage or LocalFileStorage(self.settings)
        self.asset_store = asset_store or AssetStore(
            self.storage, self.local_storage, self.event_log, self.settings
        )
        self.inspector = inspector or ImageInspector()
        self.failure_policy = failure_policy or StorageFailurePolicy(
            self.settings.STORAGE_FAILURE_POLICY
        )

    async def submit(
        self,
        identity: Identity,
        file_data: bytes,
        filename: str | None,
        content_type: str | None,
        options: UploadOptions | None = None,
    ) -> Asset:
        options = options or UploadOptions()
        filename = _clean_filename(filename)
        content_type = _normalize_content_type(content_type)

        try:
            self.validate(identity, file_data, content_type)
        except ValidationError as e:
            logger.info(f"Upload of {filename} rejected: {e.message}")
            await self.event_log.warn(
                f"Upload rejected: {e.message}",
                identity.id,
                outcome=AttemptOutcome.REJECTED.value,
                reason=e.code,
                filename=filename,
                content_type=content_type,
                file_size=len(file_data),
            )
            raise

        dimensions = await self.inspector.inspect(file_data)
        width = dimensions.width if dimensions else options.width
        height = dimensions.height if dimensions else options.height

        key = derive_storage_key(identity.id, filename, content_type, options.folder)
        stored = await self._store(identity, file_data, key, content_type)

        try:
            asset = await asyncio.wait_for(
                self.asset_store.create_asset(
                    identity.id,
                    storage_key=key,
                    original_filename=filename,
                    title=options.title,
                    description=options.description,
                    alt_text=options.alt_text,
                    content_type=content_type,
                    file_size=len(file_data),
                    width=width,
                    height=height,
                    visibility=options.privacy,
                    tags=options.tags,
                    folder=options.folder,
                    storage_file_id=stored.file_id,
                    storage_file_name=stored.file_name
                    if stored.externally_hosted
                    else None,
                    url=stored.url,
                    externally_hosted=stored.externally_hosted,
                ),
                timeout=self.settings.PERSISTENCE_TIMEOUT_SECONDS,
            )
        except QuotaExceededError as e:
            # another upload from the same identity used up the quota first
            cleaned_up = await self._discard(stored)
            logger.info(f"Upload of {filename} rejected at commit: {e.message}")
            await self.event_log.warn(
                f"Upload rejected: {e.message}",
                identity.id,
                outcome=AttemptOutcome.REJECTED.value,
                reason=e.code,
                storage_key=key,
                storage_cleaned_up=cleaned_up,
            )
            raise
        except Exception as e:
            reason = "timed out" if isinstance(e, asyncio.TimeoutError) else str(e)
            logger.error(f"Failed to save metadata for {key}: {reason}")

            cleaned_up = await self._discard(stored)
            await self.event_log.error(
                "Upload failed: image metadata could not be saved",
                identity.id,
                outcome=AttemptOutcome.FAILED.value,
                reason=reason,
                storage_key=key,
                storage_cleaned_up=cleaned_up,
            )
            raise PersistenceError(
                f"Failed to save image metadata: {reason}",
                storage_key=key,
                storage_cleaned_up=cleaned_up,
            ) from e

        identity.storage_used += asset.file_size

        logger.info(f"Uploaded {filename} as {key} ({asset.file_size} bytes)")
        await self.event_log.info(
            "Image uploaded",
            identity.id,
            outcome=AttemptOutcome.COMPLETED.value,
            asset_id=str(asset.id),
            storage_key=key,
            file_size=asset.file_size,
            content_type=content_type,
            externally_hosted=stored.externally_hosted,
        )
        return asset

    def validate(self, identity: Identity, file_data: bytes, content_type: str) -> None:
        if content_type not in self.settings.ALLOWED_CONTENT_TYPES:
            raise ValidationError(
                f"Unsupported content type: {content_type or 'unknown'}",
                {"allowed": self.settings.ALLOWED_CONTENT_TYPES},
            )

        size = len(file_data)
        if size == 0:
            raise ValidationError("Uploaded file is empty")
        if size > self.settings.MAX_UPLOAD_SIZE:
            raise ValidationError(
                f"File size exceeds maximum of {self.settings.MAX_UPLOAD_SIZE} bytes",
                {"max_size": self.settings.MAX_UPLOAD_SIZE, "size": size},
            )

        if identity.storage_used + size > identity.storage_limit:
            raise QuotaExceededError(
                "Storage quota exceeded",
                {
                    "storage_used": identity.storage_used,
                    "storage_limit": identity.storage_limit,
                    "size": size,
                },
            )

    async def _store(
        self, identity: Identity, file_data: bytes, key: str, content_type: str
    ) -> StoredObject:
        try:
            return await asyncio.wait_for(
                self.storage.upload(file_data, key, content_type),
                timeout=self.settings.STORAGE_TIMEOUT_SECONDS,
            )
        except Exception as e:
            reason = "timed out" if isinstance(e, asyncio.TimeoutError) else str(e)
            logger.error(f"Object storage upload failed for {key}: {reason}")

            if self.failure_policy is StorageFailurePolicy.DEGRADE:
                return await self._store_locally(identity, file_data, key, reason)

            await self.event_log.error(
                "Upload failed: object storage error",
                identity.id,
                outcome=AttemptOutcome.FAILED.value,
                reason=reason,
                storage_key=key,
            )
            raise StorageError(f"Failed to store image: {reason}") from e

    async def _store_locally(
        self, identity: Identity, file_data: bytes, key: str, reason: str
    ) -> StoredObject:
        try:
            stored = await self.local_storage.save(file_data, key)
        except StorageError as e:
            await self.event_log.error(
                "Upload failed: object storage and local fallback both failed",
                identity.id,
                outcome=AttemptOutcome.FAILED.value,
                reason=e.message,
                storage_key=key,
            )
            raise

        await self.event_log.warn(
            "Object storage unavailable, image stored locally",
            identity.id,
            reason=reason,
            storage_key=key,
        )
        return stored

    async def _discard(self, stored: StoredObject) -> bool:
        if stored.externally_hosted:
            return await self.storage.delete(stored.file_id, stored.file_name)
        return await self.local_storage.delete(stored.file_name)
