from typing import Any

from loguru import logger
from tortoise.expressions import F, Q
from tortoise.functions import Count
from tortoise.transactions import in_transaction

from ..core.config import Settings
from ..models import Asset, Identity, Visibility
from .domain import NotFoundError, QuotaExceededError, ValidationError
from .event_log import EventLog
from .local_storage import LocalFileStorage
from .storage_adapter import B2StorageAdapter

EDITABLE_FIELDS = {"title", "description", "alt_text", "tags", "visibility", "folder"}
NON_NULLABLE_FIELDS = {"tags", "visibility", "folder"}


def _clamp_page(limit: int, offset: int) -> tuple[int, int]:
    return min(max(limit, 1), 100), max(offset, 0)


def _search_filter(search: str) -> Q:
    return (
        Q(title__icontains=search)
        | Q(description__icontains=search)
        | Q(original_filename__icontains=search)
    )


class AssetStore:
    """Asset records scoped by owning identity.

    Deleting an asset removes the stored object first on a best-effort basis;
    the row is always removed afterwards.
    """

    def __init__(
        self,
        storage: B2StorageAdapter | None = None,
        local_storage: LocalFileStorage | None = None,
        event_log: EventLog | None = None,
        settings: Settings | None = None,
    ):
        from ..core.config import get_settings

        self.settings = settings or get_settings()
        self.storage = storage or B2StorageAdapter(self.settings)
        self.local_storage = local_storage or LocalFileStorage(self.settings)
        self.event_log = event_log or EventLog(self.settings)

    async def create_asset(self, owner_id: Any, **fields) -> Asset:
        """Insert the asset row and charge its size to the owner's quota.

        The charge is re-checked against the limit inside the transaction, so
        concurrent uploads cannot push ``storage_used`` past ``storage_limit``.
        Raises ``QuotaExceededError`` with nothing written when they would.
        """
        async with in_transaction():
            asset = await Asset.create(owner_id=owner_id, **fields)
            await Identity.filter(id=owner_id).update(
                storage_used=F("storage_used") + asset.file_size
            )
            owner = await Identity.get(id=owner_id)
            if owner.storage_used > owner.storage_limit:
                raise QuotaExceededError(
                    "Storage quota exceeded",
                    {
                        "storage_used": owner.storage_used - asset.file_size,
                        "storage_limit": owner.storage_limit,
                        "size": asset.file_size,
                    },
                )
        return asset

    async def get_owned(self, identity: Identity, asset_id: Any) -> Asset:
        asset = await Asset.get_or_none(id=asset_id, owner_id=identity.id)
        if asset is None:
            raise NotFoundError(f"Image {asset_id} not found")
        return asset

    async def list_owned(
        self,
        identity: Identity,
        folder: str | None = None,
        search: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Asset], int]:
        limit, offset = _clamp_page(limit, offset)

        query = Asset.filter(owner_id=identity.id)
        if folder is not None:
            query = query.filter(folder=folder.strip("/"))
        if search:
            query = query.filter(_search_filter(search))

        total_count = await query.count()
        assets = await query.order_by("-created_at").offset(offset).limit(limit)
        return assets, total_count

    async def list_public(
        self, search: str | None = None, limit: int = 50, offset: int = 0
    ) -> tuple[list[Asset], int]:
        limit, offset = _clamp_page(limit, offset)

        query = Asset.filter(visibility=Visibility.PUBLIC)
        if search:
            query = query.filter(_search_filter(search))

        total_count = await query.count()
        assets = await query.order_by("-created_at").offset(offset).limit(limit)
        return assets, total_count

    async def get_public(self, asset_id: Any) -> Asset:
        asset = await Asset.get_or_none(id=asset_id, visibility=Visibility.PUBLIC)
        if asset is None:
            raise NotFoundError(f"Image {asset_id} not found")
        return asset

    async def get_locally_hosted(self, storage_key: str) -> Asset:
        asset = await Asset.get_or_none(
            storage_key=storage_key, externally_hosted=False
        )
        if asset is None:
            raise NotFoundError(f"File {storage_key} not found")
        return asset

    async def update_asset(
        self, identity: Identity, asset_id: Any, changes: dict[str, Any]
    ) -> Asset:
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(
                "Fields cannot be updated", {"fields": sorted(unknown)}
            )
        for name in NON_NULLABLE_FIELDS:
            if name in changes and changes[name] is None:
                raise ValidationError(f"{name} may not be null")

        asset = await self.get_owned(identity, asset_id)
        if not changes:
            return asset

        for name, value in changes.items():
            setattr(asset, name, value)
        await asset.save()

        logger.info(f"Updated image {asset.id}: {', '.join(sorted(changes))}")
        return asset

    async def delete_asset(self, identity: Identity, asset_id: Any) -> bool:
        asset = await self.get_owned(identity, asset_id)
        key = asset.storage_key

        if asset.externally_hosted:
            storage_deleted = await self.storage.delete(
                asset.storage_file_id, asset.storage_file_name or key
            )
        else:
            storage_deleted = await self.local_storage.delete(key)

        if not storage_deleted:
            logger.warning(f"Storage delete failed for {key}, removing record anyway")
            await self.event_log.warn(
                "Storage delete failed during image deletion",
                identity.id,
                storage_key=key,
                asset_id=str(asset.id),
            )

        async with in_transaction():
            await asset.delete()
            await Identity.filter(
                id=identity.id, storage_used__gte=asset.file_size
            ).update(storage_used=F("storage_used") - asset.file_size)

        await self.event_log.info(
            "Image deleted",
            identity.id,
            storage_key=key,
            asset_id=str(asset.id),
            storage_deleted=storage_deleted,
        )
        return storage_deleted

    async def increment_views(self, asset_id: Any) -> None:
        await Asset.filter(id=asset_id).update(view_count=F("view_count") + 1)

    async def increment_downloads(self, asset_id: Any) -> None:
        await Asset.filter(id=asset_id).update(download_count=F("download_count") + 1)

    async def list_folders(self, identity: Identity) -> list[dict[str, Any]]:
        rows = (
            await Asset.filter(owner_id=identity.id)
            .exclude(folder="")
            .annotate(count=Count("id"))
            .group_by("folder")
            .order_by("folder")
            .values("folder", "count")
        )
        return [{"name": row["folder"], "count": row["count"]} for row in rows]

    async def existing_keys(self, keys: list[str]) -> set[str]:
        if not keys:
            return set()
        return set(
            await Asset.filter(storage_key__in=keys).values_list(
                "storage_key", flat=True
            )
        )

    async def usage_totals(self) -> dict[str, int]:
        total_assets = await Asset.all().count()
        public_assets = await Asset.filter(visibility=Visibility.PUBLIC).count()
        sizes = await Asset.all().values_list("file_size", flat=True)

        return {
            "total_assets": total_assets,
            "public_assets": public_assets,
            "total_bytes": sum(sizes),
        }
