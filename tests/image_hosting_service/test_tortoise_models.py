import pytest
from tortoise.exceptions import IntegrityError

from src.image_hosting_service.app.models import (
    ApiKey,
    Asset,
    EventLevel,
    EventLogEntry,
    Identity,
    IdentityStatus,
    Visibility,
)


@pytest.fixture
async def sample_asset(identity):
    return await Asset.create(
        owner=identity,
        storage_key=f"{identity.id}/photo.jpg",
        original_filename="photo.jpg",
        content_type="image/jpeg",
        file_size=1024,
        url="https://cdn.test/photo.jpg",
    )


class TestIdentityModel:
    async def test_defaults(self, db):
        identity = await Identity.create(email="new@example.com")

        assert identity.status == IdentityStatus.ACTIVE
        assert identity.is_active is True
        assert identity.is_admin is False
        assert identity.email_verified is False
        assert identity.plan == "free"
        assert identity.storage_used == 0
        assert identity.storage_limit == 1024 * 1024 * 1024
        assert identity.created_at is not None

    @pytest.mark.parametrize(
        "used,limit,remaining", [(0, 100, 100), (40, 100, 60), (150, 100, 0)]
    )
    async def test_storage_remaining(self, db, used, limit, remaining):
        identity = await Identity.create(
            email="new@example.com", storage_used=used, storage_limit=limit
        )

        assert identity.storage_remaining == remaining

    async def test_suspended_is_inactive(self, identity):
        identity.status = IdentityStatus.SUSPENDED
        await identity.save()

        await identity.refresh_from_db()
        assert identity.is_active is False

    async def test_email_is_unique(self, identity):
        with pytest.raises(IntegrityError):
            await Identity.create(email=identity.email)


class TestAssetModel:
    async def test_defaults(self, sample_asset):
        assert sample_asset.visibility == Visibility.PUBLIC
        assert sample_asset.tags == []
        assert sample_asset.folder == ""
        assert sample_asset.externally_hosted is True
        assert sample_asset.view_count == 0
        assert sample_asset.width is None
        assert sample_asset.updated_at is not None

    async def test_storage_key_is_unique(self, sample_asset, identity):
        with pytest.raises(IntegrityError):
            await Asset.create(
                owner=identity,
                storage_key=sample_asset.storage_key,
                original_filename="copy.jpg",
                content_type="image/jpeg",
                file_size=1,
                url="https://cdn.test/copy.jpg",
            )

    async def test_tags_round_trip(self, sample_asset):
        sample_asset.tags = ["sunset", "beach"]
        await sample_asset.save()

        stored = await Asset.get(id=sample_asset.id)
        assert stored.tags == ["sunset", "beach"]

    async def test_owner_relation(self, sample_asset, identity):
        assets = await identity.assets.all()

        assert [a.id for a in assets] == [sample_asset.id]


class TestCascades:
    async def test_identity_delete_removes_assets_and_keys(
        self, sample_asset, identity
    ):
        await ApiKey.create(
            owner=identity, name="ci", prefix="iv_abcdefgh", key_hash="0" * 64
        )
        await EventLogEntry.create(
            level=EventLevel.INFO, message="Image uploaded", identity=identity
        )

        await identity.delete()

        assert await Asset.all().count() == 0
        assert await ApiKey.all().count() == 0
        entry = await EventLogEntry.get(message="Image uploaded")
        assert entry.identity_id is None
