from uuid import UUID

import pydantic
from fastapi import APIRouter, Depends, Query, Request
from loguru import logger
from starlette.datastructures import UploadFile

from ..core.config import Settings
from ..core.dependencies import (
    get_asset_store,
    get_current_identity,
    get_event_log,
    get_settings_dependency,
    get_upload_pipeline,
)
from ..models import Identity
from ..schemas import (
    AssetListResponse,
    AssetResponse,
    AssetUpdateRequest,
    DeleteResponse,
    FolderListResponse,
    FolderSummary,
    UploadOptions,
    UploadResponse,
)
from ..services.asset_store import AssetStore
from ..services.domain import AttemptOutcome, ValidationError
from ..services.event_log import EventLog
from ..services.upload_pipeline import UploadPipeline

router = APIRouter()

IMAGE_FIELD = "image"


def _parse_upload_options(fields: dict) -> UploadOptions:
    try:
        return UploadOptions.model_validate(fields)
    except pydantic.ValidationError as e:
        errors = [
            {
                "field": ".".join(str(part) for part in error["loc"]),
                "message": error["msg"],
            }
            for error in e.errors()
        ]
        raise ValidationError("Invalid upload options", {"errors": errors}) from e


def _split_upload_form(form) -> tuple[UploadFile, UploadOptions]:
    upload = None
    fields = {}
    for name in form.keys():
        values = form.getlist(name)
        if name == IMAGE_FIELD:
            upload = values[0]
            continue
        if any(isinstance(value, UploadFile) for value in values):
            raise ValidationError(f"Unexpected file field: {name}")
        fields[name] = values if len(values) > 1 else values[0]

    if not isinstance(upload, UploadFile):
        raise ValidationError("No image file provided")

    return upload, _parse_upload_options(fields)


@router.post("/images/upload", response_model=UploadResponse)
async def upload_image(
    request: Request,
    identity: Identity = Depends(get_current_identity),
    pipeline: UploadPipeline = Depends(get_upload_pipeline),
    settings: Settings = Depends(get_settings_dependency),
    event_log: EventLog = Depends(get_event_log),
):
    """
    Upload an image and publish it under a delivery URL.

    Multipart fields: ``image`` (file) plus optional ``privacy``, ``title``,
    ``description``, ``altText``, ``tags``, ``folder``, ``width``, ``height``.
    Unknown fields are rejected.

    Returns:
        UploadResponse with the created image

    Raises:
        ValidationError: For missing, disallowed or oversized files
        StorageError: When object storage rejects the upload
        PersistenceError: When the image record could not be saved
    """
    async with request.form() as form:
        try:
            upload, options = _split_upload_form(form)
        except ValidationError as e:
            logger.info(f"Upload request rejected: {e.message}")
            await event_log.warn(
                f"Upload rejected: {e.message}",
                identity.id,
                outcome=AttemptOutcome.REJECTED.value,
                reason=e.code,
                **e.details,
            )
            raise

        logger.info(f"Received image upload request: {upload.filename}")

        # one byte past the limit is enough to detect oversize payloads
        file_data = await upload.read(settings.MAX_UPLOAD_SIZE + 1)
        filename = upload.filename
        content_type = upload.content_type

    asset = await pipeline.submit(identity, file_data, filename, content_type, options)

    return UploadResponse(image=AssetResponse.model_validate(asset))


@router.get("/images", response_model=AssetListResponse)
async def list_images(
    folder: str | None = Query(None),
    search: str | None = Query(None),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    identity: Identity = Depends(get_current_identity),
    asset_store: AssetStore = Depends(get_asset_store),
):
    assets, total_count = await asset_store.list_owned(
        identity, folder=folder, search=search, limit=limit, offset=offset
    )

    return AssetListResponse(
        images=[AssetResponse.model_validate(asset) for asset in assets],
        total_count=total_count,
        limit=limit,
        offset=offset,
    )


@router.get("/images/{image_id}", response_model=AssetResponse)
async def get_image(
    image_id: UUID,
    identity: Identity = Depends(get_current_identity),
    asset_store: AssetStore = Depends(get_asset_store),
):
    asset = await asset_store.get_owned(identity, image_id)
    return AssetResponse.model_validate(asset)


@router.patch("/images/{image_id}", response_model=AssetResponse)
async def update_image(
    image_id: UUID,
    update: AssetUpdateRequest,
    identity: Identity = Depends(get_current_identity),
    asset_store: AssetStore = Depends(get_asset_store),
):
    asset = await asset_store.update_asset(identity, image_id, update.changes())
    return AssetResponse.model_validate(asset)


@router.delete("/images/{image_id}", response_model=DeleteResponse)
async def delete_image(
    image_id: UUID,
    identity: Identity = Depends(get_current_identity),
    asset_store: AssetStore = Depends(get_asset_store),
):
    """
    Delete an image owned by the caller.

    The stored object is removed first on a best-effort basis; the record is
    removed regardless. ``storage_deleted`` reports whether the object went.
    """
    storage_deleted = await asset_store.delete_asset(identity, image_id)

    message = (
        "Image deleted"
        if storage_deleted
        else "Image deleted; stored file could not be removed"
    )
    return DeleteResponse(message=message, storage_deleted=storage_deleted)


@router.get("/folders", response_model=FolderListResponse)
async def list_folders(
    identity: Identity = Depends(get_current_identity),
    asset_store: AssetStore = Depends(get_asset_store),
):
    folders = await asset_store.list_folders(identity)
    return FolderListResponse(folders=[FolderSummary(**folder) for folder in folders])
