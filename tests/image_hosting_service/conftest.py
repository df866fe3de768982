import asyncio
import json
import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, Mock
from urllib.parse import unquote

import httpx
import pytest
from fastapi import FastAPI
from tortoise import Tortoise

from src.image_hosting_service.app.api import admin, auth, images, public, uploads
from src.image_hosting_service.app.api.errors import register_exception_handlers
from src.image_hosting_service.app.core.config import Settings
from src.image_hosting_service.app.core.dependencies import (
    get_asset_store,
    get_auth_gate,
    get_event_log,
    get_identity_service,
    get_local_storage,
    get_reconciler,
    get_settings_dependency,
    get_upload_pipeline,
)
from src.image_hosting_service.app.core.security import create_access_token
from src.image_hosting_service.app.db.database import MODELS_MODULE
from src.image_hosting_service.app.models import Identity
from src.image_hosting_service.app.services.asset_store import AssetStore
from src.image_hosting_service.app.services.auth_gate import AuthGate
from src.image_hosting_service.app.services.event_log import EventLog
from src.image_hosting_service.app.services.identity_service import IdentityService
from src.image_hosting_service.app.services.image_inspection import ImageInspector
from src.image_hosting_service.app.services.local_storage import LocalFileStorage
from src.image_hosting_service.app.services.reconciliation import OrphanReconciler
from src.image_hosting_service.app.services.storage_adapter import B2StorageAdapter
from src.image_hosting_service.app.services.upload_pipeline import UploadPipeline
from tests.shared_fixtures import SharedImageFixtures

B2_ENDPOINT = "https://b2.test"
B2_API_URL = "https://api.b2.test"
B2_DOWNLOAD_URL = "https://f000.b2.test"
B2_UPLOAD_URL = "https://pod.b2.test/upload"


class FakeB2Backend:
    """In-memory stand-in for the B2 native API, served through MockTransport."""

    def __init__(self):
        self.files: dict[str, dict] = {}
        self.requests: list[httpx.Request] = []
        self.authorize_calls = 0
        self.upload_url_calls = 0
        self.auth_status = 200
        self.upload_statuses: list[int] = []
        self.delete_status = 200
        self.upload_delay = 0.0
        self._counter = 0

    def add_file(self, file_name: str, uploaded_at: datetime) -> str:
        self._counter += 1
        file_id = f"file-{self._counter}"
        self.files[file_name] = {
            "fileId": file_id,
            "fileName": file_name,
            "uploadTimestamp": int(uploaded_at.timestamp() * 1000),
            "data": b"",
        }
        return file_id

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        # let concurrent callers interleave
        await asyncio.sleep(0)

        path = request.url.path
        if path.endswith("/b2_authorize_account"):
            return self._authorize()
        if str(request.url) == B2_UPLOAD_URL:
            return await self._upload(request)

        if request.headers.get("Authorization") != "account-token":
            return httpx.Response(401, json={"code": "bad_auth_token"})

        payload = json.loads(request.content or b"{}")
        if path.endswith("/b2_get_upload_url"):
            self.upload_url_calls += 1
            return httpx.Response(
                200,
                json={
                    "bucketId": payload["bucketId"],
                    "uploadUrl": B2_UPLOAD_URL,
                    "authorizationToken": "upload-token",
                },
            )
        if path.endswith("/b2_delete_file_version"):
            return self._delete(payload)
        if path.endswith("/b2_list_file_names"):
            return self._list(payload)
        return httpx.Response(404, json={"code": "not_found"})

    def _authorize(self) -> httpx.Response:
        self.authorize_calls += 1
        if self.auth_status != 200:
            return httpx.Response(self.auth_status, json={"code": "unauthorized"})
        return httpx.Response(
            200,
            json={
                "authorizationToken": "account-token",
                "apiUrl": B2_API_URL,
                "downloadUrl": B2_DOWNLOAD_URL,
            },
        )

    async def _upload(self, request: httpx.Request) -> httpx.Response:
        if self.upload_delay:
            await asyncio.sleep(self.upload_delay)
        if self.upload_statuses:
            status = self.upload_statuses.pop(0)
            if status != 200:
                return httpx.Response(status, json={"code": "upload_failed"})
        if request.headers.get("Authorization") != "upload-token":
            return httpx.Response(401, json={"code": "bad_auth_token"})

        file_name = unquote(request.headers["X-Bz-File-Name"])
        self._counter += 1
        file_id = f"file-{self._counter}"
        self.files[file_name] = {
            "fileId": file_id,
            "fileName": file_name,
            "uploadTimestamp": int(datetime.now(timezone.utc).timestamp() * 1000),
            "data": request.content,
        }
        return httpx.Response(
            200,
            json={
                "fileId": file_id,
                "fileName": file_name,
                "contentLength": len(request.content),
                "contentSha1": request.headers["X-Bz-Content-Sha1"],
            },
        )

    def _delete(self, payload: dict) -> httpx.Response:
        if self.delete_status != 200:
            return httpx.Response(self.delete_status, json={"code": "internal_error"})
        stored = self.files.get(payload["fileName"])
        if stored is None or stored["fileId"] != payload["fileId"]:
            return httpx.Response(400, json={"code": "file_not_present"})
        del self.files[payload["fileName"]]
        return httpx.Response(
            200, json={"fileId": payload["fileId"], "fileName": payload["fileName"]}
        )

    def _list(self, payload: dict) -> httpx.Response:
        names = sorted(self.files)
        start = payload.get("startFileName")
        if start:
            names = [name for name in names if name >= start]
        prefix = payload.get("prefix")
        if prefix:
            names = [name for name in names if name.startswith(prefix)]

        max_count = payload.get("maxFileCount", 1000)
        page, rest = names[:max_count], names[max_count:]
        files = [
            {key: value for key, value in self.files[name].items() if key != "data"}
            for name in page
        ]
        return httpx.Response(
            200, json={"files": files, "nextFileName": rest[0] if rest else None}
        )


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        PUBLIC_BASE_URL="http://testserver",
        DATABASE_URL="sqlite://:memory:",
        JWT_SECRET="test-secret",
        B2_KEY_ID="test-key-id",
        B2_APPLICATION_KEY="test-application-key",
        B2_BUCKET_ID="bucket-id",
        B2_BUCKET_NAME="test-bucket",
        B2_ENDPOINT=B2_ENDPOINT,
        LOCAL_STORAGE_DIR=str(tmp_path / "uploads"),
        LOG_FILE=str(tmp_path / "logs" / "test.log"),
        STORAGE_TIMEOUT_SECONDS=5.0,
        PERSISTENCE_TIMEOUT_SECONDS=5.0,
    )


@pytest.fixture
async def db():
    await Tortoise.init(
        db_url="sqlite://:memory:",
        modules={"models": [MODELS_MODULE]},
    )
    await Tortoise.generate_schemas()
    yield
    await Tortoise.close_connections()


@pytest.fixture
def fake_b2():
    return FakeB2Backend()


@pytest.fixture
async def storage_adapter(test_settings, fake_b2):
    client = httpx.AsyncClient(transport=httpx.MockTransport(fake_b2.handler))
    adapter = B2StorageAdapter(test_settings, http_client=client)
    yield adapter
    await adapter.close()


@pytest.fixture
def local_storage(test_settings):
    return LocalFileStorage(test_settings)


@pytest.fixture
def event_log(test_settings):
    return EventLog(test_settings)


@pytest.fixture
def asset_store(storage_adapter, local_storage, event_log, test_settings):
    return AssetStore(storage_adapter, local_storage, event_log, test_settings)


@pytest.fixture
def upload_pipeline(
    storage_adapter, asset_store, event_log, local_storage, test_settings
):
    return UploadPipeline(
        storage=storage_adapter,
        asset_store=asset_store,
        event_log=event_log,
        inspector=ImageInspector(),
        local_storage=local_storage,
        settings=test_settings,
    )


@pytest.fixture
def identity_service(event_log, test_settings):
    return IdentityService(event_log=event_log, settings=test_settings)


@pytest.fixture
def reconciler(storage_adapter, asset_store, event_log, test_settings):
    return OrphanReconciler(
        storage=storage_adapter,
        asset_store=asset_store,
        event_log=event_log,
        settings=test_settings,
    )


@pytest.fixture
async def identity(db):
    return await Identity.create(
        email="owner@example.com",
        password_hash="not-used",
        email_verified=True,
    )


@pytest.fixture
async def other_identity(db):
    return await Identity.create(
        email="other@example.com",
        password_hash="not-used",
        email_verified=True,
    )


@pytest.fixture
def auth_headers_for(test_settings):
    def _headers(identity: Identity) -> dict:
        token, _ = create_access_token(
            test_settings, identity_id=str(identity.id), email=identity.email
        )
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def auth_headers(identity, auth_headers_for):
    return auth_headers_for(identity)


@pytest.fixture
def sample_jpeg():
    return SharedImageFixtures.small_jpeg()


@pytest.fixture
def test_app(
    test_settings,
    upload_pipeline,
    asset_store,
    event_log,
    local_storage,
    identity_service,
    reconciler,
):
    app = FastAPI()
    register_exception_handlers(app)

    app.dependency_overrides[get_settings_dependency] = lambda: test_settings
    app.dependency_overrides[get_auth_gate] = lambda: AuthGate(test_settings)
    app.dependency_overrides[get_upload_pipeline] = lambda: upload_pipeline
    app.dependency_overrides[get_asset_store] = lambda: asset_store
    app.dependency_overrides[get_event_log] = lambda: event_log
    app.dependency_overrides[get_local_storage] = lambda: local_storage
    app.dependency_overrides[get_identity_service] = lambda: identity_service
    app.dependency_overrides[get_reconciler] = lambda: reconciler

    app.include_router(images.router, prefix="/api/v1")
    app.include_router(public.router, prefix="/api/v1/public")
    app.include_router(auth.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1/admin")
    app.include_router(uploads.router)
    return app


@pytest.fixture
async def api_client(db, test_app):
    transport = httpx.ASGITransport(app=test_app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def mock_asset_store():
    mock = Mock(spec=AssetStore)
    mock.create_asset = AsyncMock()
    mock.get_owned = AsyncMock()
    mock.list_owned = AsyncMock(return_value=([], 0))
    mock.list_public = AsyncMock(return_value=([], 0))
    mock.delete_asset = AsyncMock(return_value=True)
    return mock


@pytest.fixture
def mock_event_log():
    mock = Mock(spec=EventLog)
    mock.record = AsyncMock()
    mock.info = AsyncMock()
    mock.warn = AsyncMock()
    mock.error = AsyncMock()
    return mock


@pytest.fixture
def mock_storage():
    mock = Mock(spec=B2StorageAdapter)
    mock.upload = AsyncMock()
    mock.delete = AsyncMock(return_value=True)
    mock.list_files = AsyncMock()
    return mock


@pytest.fixture
def make_identity():
    def _make(**overrides) -> Mock:
        identity = Mock(spec=Identity)
        identity.id = overrides.get("id", uuid.uuid4())
        identity.email = overrides.get("email", "user@example.com")
        identity.storage_used = overrides.get("storage_used", 0)
        identity.storage_limit = overrides.get("storage_limit", 1024 * 1024 * 1024)
        identity.is_active = overrides.get("is_active", True)
        identity.is_admin = overrides.get("is_admin", False)
        return identity

    return _make
