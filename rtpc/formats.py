from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .settings import OUTPUT_FORMATS, OutputFormat


@dataclass(frozen=True)
class FormatCapability:
    supports_quality: bool
    supports_transparency: bool
    # Alpha must be composited onto an opaque background before encoding.
    requires_opaque_background: bool


FORMAT_CAPABILITIES: dict[OutputFormat, FormatCapability] = {
    "jpeg": FormatCapability(supports_quality=True, supports_transparency=False, requires_opaque_background=True),
    "png": FormatCapability(supports_quality=False, supports_transparency=True, requires_opaque_background=False),
    "webp": FormatCapability(supports_quality=True, supports_transparency=True, requires_opaque_background=False),
    # GIF transparency is binary (one palette entry), but it is still transparency.
    "gif": FormatCapability(supports_quality=False, supports_transparency=True, requires_opaque_background=False),
    "bmp": FormatCapability(supports_quality=False, supports_transparency=False, requires_opaque_background=True),
}

FORMAT_TO_EXT: dict[OutputFormat, str] = {
    "jpeg": ".jpg",
    "png": ".png",
    "webp": ".webp",
    "gif": ".gif",
    "bmp": ".bmp",
}

FORMAT_TO_MIME: dict[OutputFormat, str] = {
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
    "gif": "image/gif",
    "bmp": "image/bmp",
}

# Non-canonical MIME types seen in the wild.
_MIME_ALIASES: dict[str, OutputFormat] = {
    "image/jpg": "jpeg",
    "image/pjpeg": "jpeg",
    "image/x-png": "png",
    "image/x-ms-bmp": "bmp",
    "image/x-bmp": "bmp",
}


def capability(fmt: str) -> FormatCapability:
    try:
        return FORMAT_CAPABILITIES[fmt]  # type: ignore[index]
    except KeyError:
        raise ValueError(f"Unknown output format: {fmt!r} (expected one of {', '.join(OUTPUT_FORMATS)})") from None


def is_output_format(value: object) -> bool:
    return isinstance(value, str) and value in FORMAT_CAPABILITIES


def format_from_mime(mime_type: Optional[str]) -> Optional[OutputFormat]:
    """Map a MIME type to one of our formats, or None if it is not one of them."""
    if not mime_type:
        return None
    mime = mime_type.strip().lower()
    for fmt, canonical in FORMAT_TO_MIME.items():
        if mime == canonical:
            return fmt
    return _MIME_ALIASES.get(mime)
