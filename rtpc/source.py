from __future__ import annotations

import logging
import mimetypes
from pathlib import Path
from typing import Any

from PIL import UnidentifiedImageError

from .codec import Codec
from .settings import SourceImage

logger = logging.getLogger(__name__)


class UnsupportedSource(ValueError):
    kind = "unsupported_source"

    def __init__(self, message: str, field: str = "file") -> None:
        super().__init__(message)
        self.field = field


def load_source(name: str, data: bytes, codec: Codec) -> tuple[SourceImage, Any]:
    """
    Decode an uploaded file into (metadata, raster).

    The MIME type is guessed from the file name first, like a browser does,
    and falls back to what the decoder detected.
    """
    guessed, _ = mimetypes.guess_type(name)
    if guessed is not None and not guessed.startswith("image/"):
        raise UnsupportedSource(f"{name} is not an image ({guessed})")

    try:
        decoded = codec.decode_raster(data)
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise UnsupportedSource(f"Could not read {name} as an image: {exc}") from exc

    mime = guessed or decoded.mime_type or "application/octet-stream"

    source = SourceImage(
        name=name,
        mime_type=mime,
        byte_size=len(data),
        width=decoded.width,
        height=decoded.height,
        has_transparency=decoded.has_transparency,
    )
    logger.info(
        "loaded %s (%s, %d bytes, %dx%d, alpha=%s)",
        source.name, source.mime_type, source.byte_size, source.width, source.height, source.has_transparency,
    )
    return source, decoded.pixels


def open_source(path: Path, codec: Codec) -> tuple[SourceImage, Any]:
    path = Path(path)
    return load_source(path.name, path.read_bytes(), codec)
