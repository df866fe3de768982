from uuid import UUID

from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse
from loguru import logger

from ..core.dependencies import get_asset_store
from ..schemas import AssetListResponse, AssetResponse
from ..services.asset_store import AssetStore

router = APIRouter()


@router.get("/images", response_model=AssetListResponse)
async def list_public_images(
    search: str | None = Query(None),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    asset_store: AssetStore = Depends(get_asset_store),
):
    """
    List images with public visibility.

    Args:
        search: Case-insensitive match on title, description or filename
        limit: Maximum number of images to return (1-100)
        offset: Number of images to skip

    Returns:
        AssetListResponse with the matching public images
    """
    assets, total_count = await asset_store.list_public(
        search=search, limit=limit, offset=offset
    )

    return AssetListResponse(
        images=[AssetResponse.model_validate(asset) for asset in assets],
        total_count=total_count,
        limit=limit,
        offset=offset,
    )


@router.get("/images/{image_id}", response_model=AssetResponse)
async def get_public_image(
    image_id: UUID,
    asset_store: AssetStore = Depends(get_asset_store),
):
    asset = await asset_store.get_public(image_id)
    await asset_store.increment_views(asset.id)
    asset.view_count += 1

    return AssetResponse.model_validate(asset)


@router.get("/images/{image_id}/download")
async def download_public_image(
    image_id: UUID,
    asset_store: AssetStore = Depends(get_asset_store),
):
    """Count a download and redirect to the delivery URL."""
    asset = await asset_store.get_public(image_id)
    await asset_store.increment_downloads(asset.id)

    logger.info(f"Redirecting download of image {asset.id}")
    return RedirectResponse(url=asset.url, status_code=302)
