from datetime import datetime, timedelta, timezone

import pytest
from tortoise import timezone as tortoise_timezone

from src.image_hosting_service.app.models import EventLevel, EventLogEntry, Identity


@pytest.fixture
async def admin_headers(db, auth_headers_for):
    admin = await Identity.create(
        email="admin@example.com",
        password_hash="not-used",
        email_verified=True,
        is_admin=True,
    )
    return auth_headers_for(admin)


class TestAdminAccess:
    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/v1/admin/events"),
            ("GET", "/api/v1/admin/stats"),
            ("POST", "/api/v1/admin/maintenance/purge-events"),
            ("POST", "/api/v1/admin/maintenance/reconcile"),
        ],
    )
    async def test_non_admin_is_forbidden(self, api_client, auth_headers, method, path):
        response = await api_client.request(method, path, headers=auth_headers)

        assert response.status_code == 403
        assert response.json()["code"] == "forbidden"

    async def test_anonymous_is_unauthorized(self, api_client):
        response = await api_client.get("/api/v1/admin/stats")

        assert response.status_code == 401


class TestAdminEndpoints:
    async def test_events(self, api_client, admin_headers, event_log, identity):
        await event_log.info("Image uploaded", identity.id)
        await event_log.error("Upload failed: object storage error", identity.id)
        await event_log.warn("Unrelated")

        response = await api_client.get(
            "/api/v1/admin/events",
            params={"level": "error", "identity_id": str(identity.id)},
            headers=admin_headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["total_count"] == 1
        assert body["events"][0]["message"] == "Upload failed: object storage error"
        assert body["events"][0]["identity_id"] == str(identity.id)

    async def test_stats(
        self, api_client, admin_headers, auth_headers, sample_jpeg, event_log
    ):
        data, filename = sample_jpeg
        await api_client.post(
            "/api/v1/images/upload",
            files={"image": (filename, data, "image/jpeg")},
            headers=auth_headers,
        )

        response = await api_client.get("/api/v1/admin/stats", headers=admin_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["total_identities"] == 2
        assert body["total_assets"] == 1
        assert body["public_assets"] == 1
        assert body["total_bytes"] == len(data)
        assert body["events_last_24h"]["info"] >= 1

    async def test_purge_events(self, api_client, admin_headers, event_log):
        entry = await EventLogEntry.create(level=EventLevel.INFO, message="old")
        await EventLogEntry.filter(id=entry.id).update(
            created_at=tortoise_timezone.now() - timedelta(days=10)
        )
        await EventLogEntry.create(level=EventLevel.INFO, message="recent")

        response = await api_client.post(
            "/api/v1/admin/maintenance/purge-events",
            params={"retention_days": 5},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json() == {"deleted": 1, "retention_days": 5}
        assert [e.message for e in await EventLogEntry.all()] == ["recent"]

    async def test_reconcile(self, api_client, admin_headers, fake_b2):
        fake_b2.add_file(
            "orphan/old.jpg", datetime.now(timezone.utc) - timedelta(days=3)
        )

        response = await api_client.post(
            "/api/v1/admin/maintenance/reconcile", headers=admin_headers
        )

        assert response.status_code == 200
        assert response.json() == {
            "scanned": 1,
            "orphaned": 1,
            "deleted": 1,
            "failed": 0,
            "failed_keys": [],
        }
        assert fake_b2.files == {}
