from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from typing import List, Optional

from .dimensions import Dimensions
from .formats import capability
from .settings import DEFAULT_QUALITY, QUALITY_MAX, QUALITY_MIN, ConversionSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Correction:
    """One adjustment the validator made to a candidate."""
    field: str
    original: object
    corrected: object
    reason: str


def validate_settings(
    candidate: ConversionSettings,
    current_size: Dimensions,
    corrections: Optional[List[Correction]] = None,
) -> ConversionSettings:
    """
    Turn any candidate into settings the encoder can use.

    Never rejects data: out-of-range values are corrected, not refused.
    Rules, in order:
      1. quality clamped to 1..100 when the format has a quality knob
         (missing or non-finite becomes the default), otherwise dropped
         to None
      2. width/height clamped to >= 1
      3. missing width/height taken from current_size (the session's
         current size, which may differ from the source after a resize)

    If a list is passed as `corrections`, every change is appended to it.
    The only error is an unknown format (ValueError).
    """
    applied: List[Correction] = []
    caps = capability(candidate.format)

    # 1) Quality
    quality = candidate.quality
    if caps.supports_quality:
        if quality is None:
            quality = DEFAULT_QUALITY
            applied.append(Correction("quality", None, quality, "missing"))
        elif not math.isfinite(quality):
            # nan/inf carry no usable value; same as missing
            applied.append(Correction("quality", quality, DEFAULT_QUALITY, "not_finite"))
            quality = DEFAULT_QUALITY
        else:
            clamped = min(QUALITY_MAX, max(QUALITY_MIN, int(round(quality))))
            if clamped != quality:
                applied.append(Correction("quality", quality, clamped, "out_of_range"))
            quality = clamped
    elif quality is not None:
        applied.append(Correction("quality", quality, None, "not_applicable"))
        quality = None

    # 2) + 3) Dimensions
    width = _fix_dimension("width", candidate.width, current_size.width, applied)
    height = _fix_dimension("height", candidate.height, current_size.height, applied)

    out = replace(candidate, quality=quality, width=width, height=height)

    for c in applied:
        logger.debug("corrected %s: %r -> %r (%s)", c.field, c.original, c.corrected, c.reason)
    if corrections is not None:
        corrections.extend(applied)

    return out


def _fix_dimension(name: str, value: Optional[int], current: int, applied: List[Correction]) -> int:
    if value is None:
        fallback = max(1, int(current))
        applied.append(Correction(name, None, fallback, "missing"))
        return fallback
    if value < 1:
        applied.append(Correction(name, value, 1, "below_minimum"))
        return 1
    return int(value)
