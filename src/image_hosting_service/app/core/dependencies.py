from functools import lru_cache

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..core.config import Settings, get_settings
from ..models import Identity
from ..services.asset_store import AssetStore
from ..services.auth_gate import AuthGate
from ..services.domain import AuthorizationError
from ..services.event_log import EventLog
from ..services.identity_service import IdentityService
from ..services.image_inspection import ImageInspector
from ..services.local_storage import LocalFileStorage
from ..services.reconciliation import OrphanReconciler
from ..services.storage_adapter import B2StorageAdapter
from ..services.upload_pipeline import UploadPipeline

bearer_scheme = HTTPBearer(auto_error=False)


@lru_cache()
def get_settings_dependency() -> Settings:
    return get_settings()


@lru_cache()
def get_storage_adapter() -> B2StorageAdapter:
    return B2StorageAdapter(get_settings())


@lru_cache()
def get_local_storage() -> LocalFileStorage:
    return LocalFileStorage(get_settings())


@lru_cache()
def get_event_log() -> EventLog:
    return EventLog(get_settings())


@lru_cache()
def get_image_inspector() -> ImageInspector:
    return ImageInspector()


@lru_cache()
def get_auth_gate() -> AuthGate:
    return AuthGate(get_settings())


def get_asset_store() -> AssetStore:
    return AssetStore(
        storage=get_storage_adapter(),
        local_storage=get_local_storage(),
        event_log=get_event_log(),
        settings=get_settings(),
    )


def get_upload_pipeline() -> UploadPipeline:
    return UploadPipeline(
        storage=get_storage_adapter(),
        asset_store=get_asset_store(),
        event_log=get_event_log(),
        inspector=get_image_inspector(),
        local_storage=get_local_storage(),
        settings=get_settings(),
    )


def get_identity_service() -> IdentityService:
    return IdentityService(event_log=get_event_log(), settings=get_settings())


def get_reconciler() -> OrphanReconciler:
    return OrphanReconciler(
        storage=get_storage_adapter(),
        asset_store=get_asset_store(),
        event_log=get_event_log(),
        settings=get_settings(),
    )


async def get_current_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    auth_gate: AuthGate = Depends(get_auth_gate),
) -> Identity:
    return await auth_gate.authenticate(
        credentials.credentials if credentials else None
    )


async def require_admin(
    identity: Identity = Depends(get_current_identity),
) -> Identity:
    if not identity.is_admin:
        raise AuthorizationError("Administrator access required")
    return identity
