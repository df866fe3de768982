import io
import struct
import zlib

from PIL import Image


class SharedImageFixtures:
    @classmethod
    def jpeg_bytes(cls, width: int = 32, height: int = 32) -> bytes:
        image = Image.new("RGB", (width, height))
        for x in range(width):
            for y in range(height):
                image.putpixel((x, y), ((x * 8) % 256, (y * 8) % 256, 128))
        buffer = io.BytesIO()
        image.save(buffer, format="JPEG", quality=90)
        return buffer.getvalue()

    @classmethod
    def png_bytes(cls, width: int = 10, height: int = 10) -> bytes:
        image = Image.new("RGB", (width, height), color=(0, 128, 255))
        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
        return buffer.getvalue()

    @classmethod
    def svg_bytes(cls) -> bytes:
        return (
            b'<svg xmlns="http://www.w3.org/2000/svg" width="10" height="10">'
            b'<rect width="10" height="10" fill="red"/></svg>'
        )

    @classmethod
    def oversized_png_header(cls, width: int = 20000, height: int = 10000) -> bytes:
        """PNG signature and header claiming more pixels than Pillow will open."""

        def chunk(kind: bytes, data: bytes) -> bytes:
            crc = zlib.crc32(kind + data) & 0xFFFFFFFF
            return struct.pack(">I", len(data)) + kind + data + struct.pack(">I", crc)

        header = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
        return (
            b"\x89PNG\r\n\x1a\n" + chunk(b"IHDR", header) + chunk(b"IEND", b"")
        )

    @classmethod
    def small_jpeg(cls) -> tuple[bytes, str]:
        """A JPEG of roughly two kilobytes."""
        return cls.jpeg_bytes(32, 32), "small.jpg"
