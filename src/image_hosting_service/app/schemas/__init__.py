from .admin import (
    EventLogItem,
    EventLogListResponse,
    PurgeResponse,
    ReconciliationResponse,
    SystemStatsResponse,
)
from .asset import (
    AssetListResponse,
    AssetResponse,
    AssetUpdateRequest,
    DeleteResponse,
    FolderListResponse,
    FolderSummary,
    UploadOptions,
    UploadResponse,
)
from .auth import (
    ApiKeyCreatedResponse,
    ApiKeyCreateRequest,
    ApiKeyInfo,
    ApiKeyListResponse,
    IdentityResponse,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    RegisterResponse,
    TokenResponse,
    VerifyEmailRequest,
)

__all__ = [
    "AssetListResponse",
    "AssetResponse",
    "AssetUpdateRequest",
    "DeleteResponse",
    "FolderListResponse",
    "FolderSummary",
    "UploadOptions",
    "UploadResponse",
    "ApiKeyCreatedResponse",
    "ApiKeyCreateRequest",
    "ApiKeyInfo",
    "ApiKeyListResponse",
    "IdentityResponse",
    "LoginRequest",
    "MessageResponse",
    "RegisterRequest",
    "RegisterResponse",
    "TokenResponse",
    "VerifyEmailRequest",
    "EventLogItem",
    "EventLogListResponse",
    "PurgeResponse",
    "ReconciliationResponse",
    "SystemStatsResponse",
]
