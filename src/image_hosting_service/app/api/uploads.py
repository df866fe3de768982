from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse
from fastapi.security import HTTPAuthorizationCredentials

from ..core.dependencies import (
    bearer_scheme,
    get_asset_store,
    get_auth_gate,
    get_local_storage,
)
from ..models import Visibility
from ..services.asset_store import AssetStore
from ..services.auth_gate import AuthGate
from ..services.domain import NotFoundError, StorageError
from ..services.local_storage import LocalFileStorage

router = APIRouter()


@router.get("/uploads/{storage_key:path}")
async def serve_local_upload(
    storage_key: str,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    asset_store: AssetStore = Depends(get_asset_store),
    auth_gate: AuthGate = Depends(get_auth_gate),
    local_storage: LocalFileStorage = Depends(get_local_storage),
):
    """
    Serve an image kept by the local storage fallback.

    Public images are served to anyone, private images only to their owner.
    """
    asset = await asset_store.get_locally_hosted(storage_key)

    if asset.visibility != Visibility.PUBLIC:
        identity = await auth_gate.authenticate(
            credentials.credentials if credentials else None
        )
        if asset.owner_id != identity.id:
            raise NotFoundError(f"File {storage_key} not found")

    try:
        path = local_storage.path_for(storage_key)
    except StorageError as e:
        raise NotFoundError(f"File {storage_key} not found") from e
    if not path.is_file():
        raise NotFoundError(f"File {storage_key} not found")

    return FileResponse(path, media_type=asset.content_type)
