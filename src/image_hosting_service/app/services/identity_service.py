import asyncio
from datetime import datetime
from typing import Any

from loguru import logger
from tortoise.exceptions import IntegrityError

from ..core.config import Settings
from ..core.security import (
    create_access_token,
    generate_api_key,
    generate_verification_token,
    hash_api_key,
    hash_password,
    verify_password,
)
from ..models import ApiKey, Identity
from .domain import (
    AuthorizationError,
    ConflictError,
    InvalidCredentialError,
    IssuedApiKey,
    NotFoundError,
    ValidationError,
)
from .event_log import EventLog

DISPLAY_PREFIX_LENGTH = 8


class LoggingNotifier:
    """Stand-in for transactional mail; writes the verification link to the log."""

    def __init__(self, settings: Settings):
        self.settings = settings

    async def send_verification(self, identity: Identity, token: str) -> None:
        link = f"{self.settings.PUBLIC_BASE_URL.rstrip('/')}/verify-email?token={token}"
        logger.info(f"Verification link for {identity.email}: {link}")


class IdentityService:
    def __init__(
        self,
        event_log: EventLog | None = None,
        notifier: Any = None,
        settings: Settings | None = None,
    ):
        from ..core.config import get_settings

        self.settings = settings or get_settings()
        self.event_log = event_log or EventLog(self.settings)
        self.notifier = notifier or LoggingNotifier(self.settings)

    async def register(self, email: str, password: str) -> Identity:
        if await Identity.filter(email=email).exists():
            raise ConflictError("Email address is already registered")

        requires_verification = self.settings.REQUIRE_EMAIL_VERIFICATION
        token = generate_verification_token() if requires_verification else None
        password_hash = await asyncio.to_thread(hash_password, password)

        try:
            identity = await Identity.create(
                email=email,
                password_hash=password_hash,
                email_verified=not requires_verification,
                verification_token=token,
                storage_limit=self.settings.DEFAULT_STORAGE_LIMIT,
            )
        except IntegrityError as e:
            raise ConflictError("Email address is already registered") from e

        if token:
            await self.notifier.send_verification(identity, token)

        logger.info(f"Registered identity {identity.id}")
        await self.event_log.info("Identity registered", identity.id)
        return identity

    async def verify_email(self, token: str) -> Identity:
        identity = await Identity.get_or_none(verification_token=token)
        if identity is None:
            raise ValidationError("Invalid or expired verification token")

        identity.email_verified = True
        identity.verification_token = None
        await identity.save()

        await self.event_log.info("Email address verified", identity.id)
        return identity

    async def login(self, email: str, password: str) -> tuple[str, datetime, Identity]:
        identity = await Identity.get_or_none(email=email)
        password_ok = identity is not None and await asyncio.to_thread(
            verify_password, password, identity.password_hash
        )
        if not password_ok:
            raise InvalidCredentialError("Invalid email or password")

        if not identity.is_active:
            raise AuthorizationError("Account is suspended")
        if self.settings.REQUIRE_EMAIL_VERIFICATION and not identity.email_verified:
            raise AuthorizationError("Email address has not been verified")

        token, expires_at = create_access_token(
            self.settings, identity_id=str(identity.id), email=identity.email
        )
        return token, expires_at, identity

    async def create_api_key(self, identity: Identity, name: str) -> IssuedApiKey:
        raw_key = generate_api_key(self.settings.API_KEY_PREFIX)
        prefix = raw_key[: len(self.settings.API_KEY_PREFIX) + DISPLAY_PREFIX_LENGTH]

        api_key = await ApiKey.create(
            owner_id=identity.id,
            name=name,
            prefix=prefix,
            key_hash=hash_api_key(raw_key),
        )

        await self.event_log.info(
            "API key created", identity.id, api_key_id=str(api_key.id), name=name
        )
        return IssuedApiKey(
            id=api_key.id,
            name=api_key.name,
            prefix=prefix,
            raw_key=raw_key,
            created_at=api_key.created_at,
        )

    async def list_api_keys(self, identity: Identity) -> list[ApiKey]:
        return await ApiKey.filter(owner_id=identity.id).order_by("-created_at")

    async def revoke_api_key(self, identity: Identity, key_id: Any) -> None:
        api_key = await ApiKey.get_or_none(id=key_id, owner_id=identity.id)
        if api_key is None:
            raise NotFoundError(f"API key {key_id} not found")

        api_key.is_active = False
        await api_key.save()

        await self.event_log.info(
            "API key revoked", identity.id, api_key_id=str(api_key.id)
        )
