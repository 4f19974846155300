"""Shared fixtures: small in-memory images and codecs with controllable behaviour."""

import io
import threading

import pytest
from PIL import Image

from rtpc.codec import PillowCodec
from rtpc.settings import SourceImage


def _png_bytes(im: Image.Image) -> bytes:
    buf = io.BytesIO()
    im.save(buf, format="PNG")
    return buf.getvalue()


def make_rgba_image(width: int = 40, height: int = 20) -> Image.Image:
    """Red image whose left half is fully transparent."""
    im = Image.new("RGBA", (width, height), (255, 0, 0, 255))
    for x in range(width // 2):
        for y in range(height):
            im.putpixel((x, y), (0, 0, 0, 0))
    return im


def make_rgb_image(width: int = 40, height: int = 20) -> Image.Image:
    """Horizontal gradient so encoders have something to work with."""
    im = Image.new("RGB", (width, height))
    for x in range(width):
        for y in range(height):
            im.putpixel((x, y), (x * 255 // max(1, width - 1), 128, 64))
    return im


@pytest.fixture
def codec() -> PillowCodec:
    return PillowCodec()


@pytest.fixture
def rgba_image() -> Image.Image:
    return make_rgba_image()


@pytest.fixture
def rgb_image() -> Image.Image:
    return make_rgb_image()


@pytest.fixture
def rgba_png_bytes(rgba_image: Image.Image) -> bytes:
    return _png_bytes(rgba_image)


@pytest.fixture
def rgb_png_bytes(rgb_image: Image.Image) -> bytes:
    return _png_bytes(rgb_image)


@pytest.fixture
def opaque_source() -> SourceImage:
    return SourceImage(
        name="photo.jpg",
        mime_type="image/jpeg",
        byte_size=50_000,
        width=192,
        height=108,
        has_transparency=False,
    )


class LimitedCodec(PillowCodec):
    """Pillow codec that pretends some formats are missing on this platform."""

    def __init__(self, missing: set[str]) -> None:
        super().__init__()
        self.missing = missing

    def supports(self, fmt):
        return fmt not in self.missing and super().supports(fmt)


class FailingCodec(PillowCodec):
    """Pillow codec whose encoder always blows up."""

    def encode_raster(self, pixels, fmt, quality=None):
        raise OSError("encoder exploded")


class RecordingCodec(PillowCodec):
    """Pillow codec that remembers the arguments of each encode."""

    def __init__(self) -> None:
        super().__init__()
        self.calls: list[tuple[str, object]] = []
        self.flattened = 0

    def encode_raster(self, pixels, fmt, quality=None):
        self.calls.append((fmt, quality))
        return super().encode_raster(pixels, fmt, quality)

    def flatten(self, pixels, background):
        self.flattened += 1
        return super().flatten(pixels, background)


class GatedCodec(PillowCodec):
    """The first encode blocks until `gate` is set; later encodes run straight through."""

    def __init__(self) -> None:
        super().__init__()
        self.gate = threading.Event()
        self.first_started = threading.Event()
        self._calls = 0
        self._lock = threading.Lock()

    def encode_raster(self, pixels, fmt, quality=None):
        with self._lock:
            self._calls += 1
            first = self._calls == 1
        if first:
            self.first_started.set()
            assert self.gate.wait(timeout=5)
        return super().encode_raster(pixels, fmt, quality)
