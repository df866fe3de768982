import io

import pytest
from PIL import Image

from src.image_hosting_service.app.services.image_inspection import ImageInspector
from tests.shared_fixtures import SharedImageFixtures


@pytest.fixture
def inspector():
    return ImageInspector()


class TestImageInspector:
    @pytest.mark.parametrize(
        "image_format,size",
        [
            ("JPEG", (64, 48)),
            ("PNG", (10, 20)),
            ("GIF", (5, 5)),
            ("BMP", (3, 7)),
            ("WEBP", (16, 9)),
        ],
    )
    async def test_reads_dimensions(self, inspector, image_format, size):
        buffer = io.BytesIO()
        Image.new("RGB", size, color="green").save(buffer, format=image_format)

        dimensions = await inspector.inspect(buffer.getvalue())

        assert dimensions is not None
        assert (dimensions.width, dimensions.height) == size
        assert dimensions.format == image_format

    async def test_svg_yields_none(self, inspector):
        assert await inspector.inspect(SharedImageFixtures.svg_bytes()) is None

    async def test_garbage_yields_none(self, inspector):
        assert await inspector.inspect(b"definitely not an image") is None

    async def test_empty_input_yields_none(self, inspector):
        assert await inspector.inspect(b"") is None

    async def test_decompression_bomb_yields_none(self, inspector):
        data = SharedImageFixtures.oversized_png_header()

        assert await inspector.inspect(data) is None
