from .asset_store import AssetStore
from .auth_gate import AuthGate
from .event_log import EventLog
from .identity_service import IdentityService
from .image_inspection import ImageInspector
from .local_storage import LocalFileStorage
from .reconciliation import OrphanReconciler
from .storage_adapter import B2StorageAdapter
from .upload_pipeline import UploadPipeline

__all__ = [
    "AssetStore",
    "AuthGate",
    "B2StorageAdapter",
    "EventLog",
    "IdentityService",
    "ImageInspector",
    "LocalFileStorage",
    "OrphanReconciler",
    "UploadPipeline",
]
