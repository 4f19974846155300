from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional, get_args


# Closed set of formats the converter can write.
OutputFormat = Literal["jpeg", "png", "webp", "gif", "bmp"]
OUTPUT_FORMATS: tuple[OutputFormat, ...] = get_args(OutputFormat)

# High-level intent the user picks when asking for a recommendation.
OptimizationGoal = Literal["web", "storage", "quality"]
OPTIMIZATION_GOALS: tuple[OptimizationGoal, ...] = get_args(OptimizationGoal)

QUALITY_MIN = 1
QUALITY_MAX = 100
DEFAULT_QUALITY = 85
DEFAULT_FORMAT: OutputFormat = "jpeg"

# Background used when flattening alpha for formats without transparency.
OPAQUE_BACKGROUND: tuple[int, int, int] = (255, 255, 255)


@dataclass(frozen=True)
class SourceImage:
    """
    Metadata of the loaded source image.

    Immutable: loading a new file replaces the whole object.
    """
    name: str
    mime_type: str
    byte_size: int
    width: int
    height: int
    has_transparency: bool

    @property
    def aspect_ratio(self) -> float:
        if self.height <= 0:
            return 0.0
        return self.width / self.height


@dataclass(frozen=True)
class ConversionSettings:
    """
    The knobs handed to the encoder.

    quality is None when the format has no quality parameter.
    width/height may be None on a candidate (e.g. an advisor answer);
    validate_settings() fills them from the current session size.
    """
    format: OutputFormat = DEFAULT_FORMAT
    quality: Optional[int] = DEFAULT_QUALITY
    width: Optional[int] = None
    height: Optional[int] = None


@dataclass(frozen=True)
class Recommendation:
    format: OutputFormat
    quality: Optional[int]
    reasoning: str
    # Only an advisor may suggest dimensions.
    width: Optional[int] = None
    height: Optional[int] = None
    origin: Literal["policy", "advisor"] = "policy"

    def as_candidate(self) -> ConversionSettings:
        return ConversionSettings(
            format=self.format,
            quality=self.quality,
            width=self.width,
            height=self.height,
        )
