import uuid

import jwt
from loguru import logger
from tortoise import timezone
from tortoise.expressions import F

from ..core.config import Settings
from ..core.security import decode_access_token, hash_api_key
from ..models import ApiKey, Identity
from .domain import AuthorizationError, InvalidCredentialError, MissingCredentialError


class AuthGate:
    """Resolves a bearer credential to an active identity.

    Credentials starting with the API key prefix are looked up by digest;
    anything else is treated as a signed session token. Failures leave no
    trace besides the raised error.
    """

    def __init__(self, settings: Settings | None = None):
        from ..core.config import get_settings

        self.settings = settings or get_settings()

    async def authenticate(self, credential: str | None) -> Identity:
        credential = (credential or "").strip()
        if not credential:
            raise MissingCredentialError("Authentication required")

        if credential.startswith(self.settings.API_KEY_PREFIX):
            identity = await self._identity_from_api_key(credential)
        else:
            identity = await self._identity_from_token(credential)

        if not identity.is_active:
            raise AuthorizationError("Account is suspended")

        return identity

    async def _identity_from_token(self, token: str) -> Identity:
        try:
            claims = decode_access_token(self.settings, token)
        except jwt.ExpiredSignatureError as e:
            raise InvalidCredentialError("Token has expired") from e
        except jwt.InvalidTokenError as e:
            raise InvalidCredentialError("Invalid token") from e

        try:
            identity_id = uuid.UUID(str(claims["sub"]))
        except ValueError as e:
            raise InvalidCredentialError("Invalid token subject") from e

        identity = await Identity.get_or_none(id=identity_id)
        if identity is None:
            raise InvalidCredentialError("Unknown identity")
        return identity

    async def _identity_from_api_key(self, raw_key: str) -> Identity:
        api_key = (
            await ApiKey.filter(key_hash=hash_api_key(raw_key), is_active=True)
            .select_related("owner")
            .first()
        )
        if api_key is None:
            raise InvalidCredentialError("Invalid API key")

        await ApiKey.filter(id=api_key.id).update(
            request_count=F("request_count") + 1, last_used_at=timezone.now()
        )
        logger.debug(f"Authenticated with API key {api_key.prefix}")
        return api_key.owner
