from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from .formats import FORMAT_TO_EXT
from .settings import OutputFormat


@dataclass(frozen=True)
class EncodeResult:
    """
    Output of one encode.

    The caller owns the bytes; the engine keeps no reference after returning.
    """
    data: bytes = field(repr=False)
    format: OutputFormat
    width: int
    height: int
    src_bytes: int = 0

    @property
    def byte_size(self) -> int:
        return len(self.data)

    @property
    def saved_bytes(self) -> int:
        return max(0, self.src_bytes - self.byte_size)

    @property
    def saved_percent(self) -> float:
        if self.src_bytes <= 0:
            return 0.0
        return (self.saved_bytes / self.src_bytes) * 100.0

    def output_name(self, source_name: str) -> str:
        # photo.png -> photo_converted.webp
        stem = Path(source_name).stem or "image"
        return f"{stem}_converted{FORMAT_TO_EXT[self.format]}"
