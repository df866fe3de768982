import asyncio
import io

from loguru import logger
from PIL import Image, UnidentifiedImageError

from .domain import ImageDimensions


class ImageInspector:
    """Reads pixel dimensions from uploaded bytes.

    Formats Pillow cannot decode (SVG, some AVIF builds) yield ``None``; the
    upload then relies on client supplied dimensions, if any.
    """

    async def inspect(self, data: bytes) -> ImageDimensions | None:
        def _read_header():
            with Image.open(io.BytesIO(data)) as img:
                return ImageDimensions(
                    width=img.width,
                    height=img.height,
                    format=img.format,
                )

        try:
            return await asyncio.to_thread(_read_header)
        except (
            UnidentifiedImageError,
            Image.DecompressionBombError,
            OSError,
            ValueError,
        ) as e:
            logger.debug(f"Could not read image dimensions: {e}")
            return None
