import asyncio
import shutil
import uuid
from pathlib import Path
from urllib.parse import quote

import aiofiles
from loguru import logger

from ..core.config import Settings
from .domain import StorageError, StoredObject


class LocalFileStorage:
    """Fallback storage that keeps objects on local disk under ``/uploads``.

    Only used when the storage failure policy is ``degrade``.
    """

    def __init__(self, settings: Settings | None = None):
        from ..core.config import get_settings

        self.settings = settings or get_settings()
        self.root = Path(self.settings.absolute_local_storage_dir)
        self._ensure_directories()

    def _ensure_directories(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        (self.root / ".tmp").mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if not path.is_relative_to(self.root.resolve()):
            raise StorageError(f"Storage key escapes the storage root: {key}")
        return path

    def file_url(self, key: str) -> str:
        base_url = self.settings.PUBLIC_BASE_URL.rstrip("/")
        return f"{base_url}/uploads/{quote(key, safe='/')}"

    async def save(self, data: bytes, key: str) -> StoredObject:
        storage_path = self.path_for(key)
        temp_path = self.root / ".tmp" / f"{uuid.uuid4().hex}_temp"

        logger.info(f"Saving {key} ({len(data)} bytes) to local storage")

        try:
            storage_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(temp_path, "wb") as f:
                await f.write(data)

            await asyncio.to_thread(shutil.move, str(temp_path), str(storage_path))

            return StoredObject(
                file_name=key,
                url=self.file_url(key),
                file_id=None,
                externally_hosted=False,
            )

        except OSError as e:
            await self._safe_delete_file(temp_path)
            await self._safe_delete_file(storage_path)
            raise StorageError(f"Failed to save {key} locally: {str(e)}") from e

    async def delete(self, key: str) -> bool:
        try:
            path = self.path_for(key)
        except StorageError:
            return False
        return await self._safe_delete_file(path)

    async def _safe_delete_file(self, file_path: Path) -> bool:
        try:
            if file_path.exists():
                file_path.unlink()
                return True
            return False
        except OSError as e:
            logger.warning(f"Failed to delete local file {file_path}: {e}")
            return False
