from __future__ import annotations

import io
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from PIL import Image, ImageOps, features

from .settings import OutputFormat


@dataclass(frozen=True)
class DecodedRaster:
    pixels: Any
    width: int
    height: int
    has_transparency: bool
    mime_type: Optional[str] = None


class Codec(Protocol):
    """
    Pixel-level capability the engine delegates to.

    The engine only decides parameters; anything that touches pixels
    goes through one of these methods.
    """

    def supports(self, fmt: OutputFormat) -> bool: ...

    def decode_raster(self, data: bytes) -> DecodedRaster: ...

    def encode_raster(self, pixels: Any, fmt: OutputFormat, quality: Optional[int] = None) -> bytes: ...

    def resize(self, pixels: Any, width: int, height: int) -> Any: ...

    def has_alpha(self, pixels: Any) -> bool: ...

    def flatten(self, pixels: Any, background: tuple[int, int, int]) -> Any: ...


class PillowCodec:
    """Codec backed by Pillow."""

    # Pillow encoder name per output format.
    _PIL_FORMAT = {
        "jpeg": "JPEG",
        "png": "PNG",
        "webp": "WEBP",
        "gif": "GIF",
        "bmp": "BMP",
    }

    def __init__(
        self,
        jpeg_progressive: bool = True,
        jpeg_optimize: bool = True,
        png_compress_level: int = 9,
        webp_method: int = 4,
    ) -> None:
        self.jpeg_progressive = jpeg_progressive
        self.jpeg_optimize = jpeg_optimize
        self.png_compress_level = png_compress_level
        self.webp_method = webp_method

    def supports(self, fmt: OutputFormat) -> bool:
        if fmt not in self._PIL_FORMAT:
            return False
        if fmt == "webp":
            # WebP depends on libwebp being compiled in.
            return bool(features.check("webp"))
        return True

    def decode_raster(self, data: bytes) -> DecodedRaster:
        with Image.open(io.BytesIO(data)) as im:
            im.load()
            mime = Image.MIME.get(im.format or "")
            # Browsers apply EXIF orientation on load; do the same.
            out = ImageOps.exif_transpose(im)
        return DecodedRaster(
            pixels=out,
            width=out.width,
            height=out.height,
            has_transparency=self.has_alpha(out),
            mime_type=mime,
        )

    def encode_raster(self, pixels: Image.Image, fmt: OutputFormat, quality: Optional[int] = None) -> bytes:
        pil_format = self._PIL_FORMAT[fmt]
        im = self._normalize_mode(pixels, fmt)

        buf = io.BytesIO()
        # Pillow chooses the encoder by format=..., there is no filename here
        im.save(buf, format=pil_format, **self._build_save_kwargs(fmt, quality))
        return buf.getvalue()

    def resize(self, pixels: Image.Image, width: int, height: int) -> Image.Image:
        if pixels.size == (width, height):
            return pixels
        im = pixels
        # Palette images resample badly; go through RGB(A) first.
        if im.mode == "P":
            im = im.convert("RGBA" if self.has_alpha(im) else "RGB")
        return im.resize((width, height), Image.Resampling.LANCZOS)

    def has_alpha(self, pixels: Image.Image) -> bool:
        if pixels.mode in ("RGBA", "LA", "PA"):
            return True
        if pixels.mode == "P" and "transparency" in pixels.info:
            return True
        return False

    def flatten(self, pixels: Image.Image, background: tuple[int, int, int]) -> Image.Image:
        # Ensure we are in RGBA so alpha exists
        rgba = pixels.convert("RGBA")
        bg = Image.new("RGBA", rgba.size, background + (255,))
        comp = Image.alpha_composite(bg, rgba)
        return comp.convert("RGB")

    def _normalize_mode(self, im: Image.Image, fmt: OutputFormat) -> Image.Image:
        if fmt in ("jpeg", "bmp"):
            if im.mode not in ("RGB", "L"):
                # Any alpha has already been flattened by the engine.
                return im.convert("RGB")
            return im
        if fmt == "webp":
            if im.mode not in ("RGB", "RGBA"):
                return im.convert("RGBA" if self.has_alpha(im) else "RGB")
            return im
        if fmt == "png" and im.mode in ("CMYK", "YCbCr", "LAB", "HSV"):
            return im.convert("RGB")
        return im

    def _build_save_kwargs(self, fmt: OutputFormat, quality: Optional[int]) -> dict:
        kwargs: dict = {}

        if fmt == "jpeg":
            if quality is not None:
                kwargs["quality"] = int(quality)
            kwargs["optimize"] = bool(self.jpeg_optimize)
            kwargs["progressive"] = bool(self.jpeg_progressive)

        elif fmt == "png":
            kwargs["compress_level"] = int(self.png_compress_level)
            kwargs["optimize"] = True

        elif fmt == "webp":
            if quality is not None:
                kwargs["quality"] = int(quality)
            kwargs["method"] = int(self.webp_method)

        elif fmt == "gif":
            kwargs["optimize"] = True

        return kwargs
