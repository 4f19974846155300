from __future__ import annotations

import logging
from typing import Any

from .codec import Codec
from .formats import capability
from .results import EncodeResult
from .settings import OPAQUE_BACKGROUND, ConversionSettings

logger = logging.getLogger(__name__)


class EncodeError(Exception):
    kind = "encode_error"

    def __init__(self, message: str, field: str = "format") -> None:
        super().__init__(message)
        self.field = field


class UnsupportedByPlatform(EncodeError):
    """The codec on this runtime cannot produce the requested format."""
    kind = "unsupported_by_platform"


class EncodeFailed(EncodeError):
    kind = "encode_failed"


def encode(
    raster: Any,
    settings: ConversionSettings,
    codec: Codec,
    src_bytes: int = 0,
) -> EncodeResult:
    """
    Encode `raster` with already-validated settings.

    Nothing is retried: a failure is the caller's to report.
    """
    fmt = settings.format
    caps = capability(fmt)

    if settings.width is None or settings.height is None:
        # validate_settings() always fills these; reaching here is a caller bug.
        raise ValueError("encode() needs validated settings with width and height")

    if not codec.supports(fmt):
        raise UnsupportedByPlatform(f"{fmt} output is not supported on this platform", field="format")

    try:
        im = codec.resize(raster, settings.width, settings.height)

        # Formats without alpha get a white background instead of black.
        if caps.requires_opaque_background and codec.has_alpha(im):
            im = codec.flatten(im, OPAQUE_BACKGROUND)

        quality = settings.quality if caps.supports_quality else None
        data = codec.encode_raster(im, fmt, quality)
    except (OSError, ValueError, KeyError) as exc:
        logger.error("encode to %s failed: %s", fmt, exc)
        raise EncodeFailed(f"Could not encode {fmt}: {exc}", field="format") from exc

    result = EncodeResult(
        data=data,
        format=fmt,
        width=settings.width,
        height=settings.height,
        src_bytes=src_bytes,
    )
    logger.info(
        "encoded %s %dx%d q=%s: %d bytes",
        fmt, result.width, result.height, quality, result.byte_size,
    )
    return result
