from uuid import UUID

from fastapi import APIRouter, Depends

from ..core.dependencies import get_current_identity, get_identity_service
from ..models import Identity
from ..schemas import (
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
from ..services.identity_service import IdentityService

router = APIRouter()


@router.post("/auth/register", response_model=RegisterResponse, status_code=201)
async def register(
    request: RegisterRequest,
    identity_service: IdentityService = Depends(get_identity_service),
):
    identity = await identity_service.register(request.email, request.password)

    if identity.email_verified:
        return RegisterResponse(
            message="Registration successful", requires_verification=False
        )
    return RegisterResponse(
        message="Registration successful, check your email to verify your account",
        requires_verification=True,
    )


@router.post("/auth/verify-email", response_model=MessageResponse)
async def verify_email(
    request: VerifyEmailRequest,
    identity_service: IdentityService = Depends(get_identity_service),
):
    await identity_service.verify_email(request.token)
    return MessageResponse(message="Email address verified")


@router.post("/auth/login", response_model=TokenResponse)
async def login(
    request: LoginRequest,
    identity_service: IdentityService = Depends(get_identity_service),
):
    token, expires_at, identity = await identity_service.login(
        request.email, request.password
    )
    return TokenResponse(
        token=token,
        expires_at=expires_at,
        user=IdentityResponse.model_validate(identity),
    )


@router.get("/auth/user", response_model=IdentityResponse)
async def current_user(identity: Identity = Depends(get_current_identity)):
    return IdentityResponse.model_validate(identity)


@router.get("/api-keys", response_model=ApiKeyListResponse)
async def list_api_keys(
    identity: Identity = Depends(get_current_identity),
    identity_service: IdentityService = Depends(get_identity_service),
):
    api_keys = await identity_service.list_api_keys(identity)
    return ApiKeyListResponse(
        api_keys=[ApiKeyInfo.model_validate(api_key) for api_key in api_keys]
    )


@router.post("/api-keys", response_model=ApiKeyCreatedResponse, status_code=201)
async def create_api_key(
    request: ApiKeyCreateRequest,
    identity: Identity = Depends(get_current_identity),
    identity_service: IdentityService = Depends(get_identity_service),
):
    """Create an API key. The raw key is only returned by this call."""
    issued = await identity_service.create_api_key(identity, request.name)
    return ApiKeyCreatedResponse(
        id=issued.id,
        name=issued.name,
        prefix=issued.prefix,
        key=issued.raw_key,
        created_at=issued.created_at,
    )


@router.delete("/api-keys/{key_id}", response_model=MessageResponse)
async def revoke_api_key(
    key_id: UUID,
    identity: Identity = Depends(get_current_identity),
    identity_service: IdentityService = Depends(get_identity_service),
):
    await identity_service.revoke_api_key(identity, key_id)
    return MessageResponse(message="API key revoked")
