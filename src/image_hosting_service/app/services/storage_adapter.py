import asyncio
import hashlib
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable
from urllib.parse import quote

import httpx
from loguru import logger

from ..core.config import Settings
from .domain import RemoteFile, RemoteFilePage, StorageBackendError, StoredObject


@dataclass(frozen=True)
class AccountAuthorization:
    authorization_token: str
    api_url: str
    download_url: str
    expires_at: float


@dataclass(frozen=True)
class UploadTarget:
    upload_url: str
    authorization_token: str


class B2StorageAdapter:
    """Client for a B2-compatible object storage backend.

    The account authorization and upload endpoint are cached on the instance
    and refreshed lazily. Refreshes are serialized by a lock and re-checked
    after acquiring it, so concurrent callers authorize at most once.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        from ..core.config import get_settings

        self.settings = settings or get_settings()
        self._http_client = http_client
        self._clock = clock
        self._authorization: AccountAuthorization | None = None
        self._upload_target: UploadTarget | None = None
        self._refresh_lock = asyncio.Lock()

        if not self.settings.b2_configured:
            logger.warning(
                "Object storage configuration is incomplete, uploads will fail"
            )

    @property
    def http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=self.settings.STORAGE_TIMEOUT_SECONDS
            )
        return self._http_client

    async def close(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    def invalidate(self) -> None:
        self._authorization = None
        self._upload_target = None

    def _authorization_valid(self) -> bool:
        return (
            self._authorization is not None
            and self._clock() < self._authorization.expires_at
        )

    async def _ensure_authorized(self) -> AccountAuthorization:
        if self._authorization_valid():
            return self._authorization

        async with self._refresh_lock:
            if not self._authorization_valid():
                self._authorization = await self._authorize_account()
                self._upload_target = None
            return self._authorization

    async def _authorize_account(self) -> AccountAuthorization:
        if not self.settings.b2_configured:
            raise StorageBackendError("Object storage is not configured")

        url = f"{self.settings.B2_ENDPOINT}/b2api/v2/b2_authorize_account"

        try:
            response = await self.http_client.get(
                url, auth=(self.settings.B2_KEY_ID, self.settings.B2_APPLICATION_KEY)
            )
        except httpx.RequestError as e:
            raise StorageBackendError(f"Network error during authorization: {e}") from e

        if response.status_code != 200:
            raise StorageBackendError(
                f"Authorization failed: HTTP {response.status_code}: {response.text}",
                response.status_code,
            )

        data = response.json()
        logger.info("Object storage authorization refreshed")

        return AccountAuthorization(
            authorization_token=data["authorizationToken"],
            api_url=data["apiUrl"],
            download_url=data["downloadUrl"],
            expires_at=self._clock() + self.settings.B2_AUTH_TTL_SECONDS,
        )

    async def _ensure_upload_target(self) -> UploadTarget:
        authorization = await self._ensure_authorized()
        if self._upload_target is not None:
            return self._upload_target

        async with self._refresh_lock:
            if self._upload_target is None:
                response = await self._call_api(
                    authorization,
                    "b2_get_upload_url",
                    {"bucketId": self.settings.B2_BUCKET_ID},
                )
                if response.status_code != 200:
                    if response.status_code == 401:
                        self.invalidate()
                    raise StorageBackendError(
                        f"Failed to get upload URL: HTTP {response.status_code}: "
                        f"{response.text}",
                        response.status_code,
                    )
                data = response.json()
                self._upload_target = UploadTarget(
                    upload_url=data["uploadUrl"],
                    authorization_token=data["authorizationToken"],
                )
            return self._upload_target

    async def _call_api(
        self, authorization: AccountAuthorization, operation: str, payload: dict
    ) -> httpx.Response:
        url = f"{authorization.api_url}/b2api/v2/{operation}"
        try:
            return await self.http_client.post(
                url,
                json=payload,
                headers={"Authorization": authorization.authorization_token},
            )
        except httpx.RequestError as e:
            raise StorageBackendError(f"Network error calling {operation}: {e}") from e

    async def upload(self, data: bytes, key: str, content_type: str) -> StoredObject:
        target = await self._ensure_upload_target()

        headers = {
            "Authorization": target.authorization_token,
            "X-Bz-File-Name": quote(key, safe="/"),
            "Content-Type": content_type,
            "X-Bz-Content-Sha1": hashlib.sha1(data).hexdigest(),
        }

        logger.info(f"Uploading {key} ({len(data)} bytes) to object storage")

        try:
            response = await self.http_client.post(
                target.upload_url, content=data, headers=headers
            )
        except httpx.TimeoutException as e:
            self._upload_target = None
            raise StorageBackendError(f"Upload timed out: {e}") from e
        except httpx.RequestError as e:
            self._upload_target = None
            raise StorageBackendError(f"Network error during upload: {e}") from e

        if response.status_code != 200:
            if response.status_code == 401:
                self.invalidate()
            else:
                # upload URLs go stale on busy or failing pods
                self._upload_target = None
            raise StorageBackendError(
                f"Upload failed: HTTP {response.status_code}: {response.text}",
                response.status_code,
            )

        payload = response.json()
        file_name = payload["fileName"]

        return StoredObject(
            file_id=payload["fileId"],
            file_name=file_name,
            url=self.file_url(file_name),
            externally_hosted=True,
        )

    async def delete(self, file_id: str, key: str) -> bool:
        try:
            authorization = await self._ensure_authorized()
            response = await self._call_api(
                authorization,
                "b2_delete_file_version",
                {"fileId": file_id, "fileName": key},
            )
        except Exception as e:
            logger.error(f"Failed to delete {key} from object storage: {e}")
            return False

        if response.status_code == 200:
            logger.info(f"Deleted {key} from object storage")
            return True

        if response.status_code == 401:
            self.invalidate()
        logger.error(
            f"Failed to delete {key} from object storage: "
            f"HTTP {response.status_code}: {response.text}"
        )
        return False

    async def list_files(
        self,
        prefix: str | None = None,
        start_file_name: str | None = None,
        max_count: int = 1000,
    ) -> RemoteFilePage:
        authorization = await self._ensure_authorized()

        payload = {"bucketId": self.settings.B2_BUCKET_ID, "maxFileCount": max_count}
        if prefix:
            payload["prefix"] = prefix
        if start_file_name:
            payload["startFileName"] = start_file_name

        response = await self._call_api(authorization, "b2_list_file_names", payload)
        if response.status_code != 200:
            if response.status_code == 401:
                self.invalidate()
            raise StorageBackendError(
                f"Failed to list files: HTTP {response.status_code}: {response.text}",
                response.status_code,
            )

        data = response.json()
        files = [
            RemoteFile(
                file_id=item["fileId"],
                file_name=item["fileName"],
                uploaded_at=datetime.fromtimestamp(
                    item["uploadTimestamp"] / 1000, tz=timezone.utc
                ),
            )
            for item in data.get("files", [])
        ]
        return RemoteFilePage(files=files, next_file_name=data.get("nextFileName"))

    def file_url(self, key: str) -> str:
        quoted_key = quote(key, safe="/")
        if self.settings.CDN_BASE_URL:
            return f"{self.settings.CDN_BASE_URL.rstrip('/')}/{quoted_key}"

        download_url = (
            self._authorization.download_url
            if self._authorization
            else self.settings.B2_ENDPOINT
        )
        return f"{download_url}/file/{self.settings.B2_BUCKET_NAME}/{quoted_key}"

    async def test_connection(self) -> bool:
        try:
            await self._ensure_authorized()
            return True
        except StorageBackendError as e:
            logger.error(f"Object storage connection test failed: {e}")
            return False
