from __future__ import annotations

import logging
import math
from typing import Literal, NamedTuple

logger = logging.getLogger(__name__)

Dimension = Literal["width", "height"]


class Dimensions(NamedTuple):
    width: int
    height: int


class InvalidDimension(ValueError):
    """A width/height edit that must be rejected; the caller keeps its prior state."""

    kind = "invalid_dimension"

    def __init__(self, field: str, value: object) -> None:
        super().__init__(f"{field} must be a whole number >= 1, got {value!r}")
        self.field = field
        self.value = value


def _round_half_away(x: float) -> int:
    # Inputs are positive here, but keep the sign handling honest.
    if x >= 0:
        return int(math.floor(x + 0.5))
    return -int(math.floor(-x + 0.5))


def parse_dimension(text: str, field: Dimension) -> int:
    """
    Convert user text from a numeric input into a dimension.

    Accepts a leading integer like "960" or " 960 ". Rejects empty,
    non-numeric and non-positive input with InvalidDimension.
    """
    t = str(text).strip()
    try:
        value = int(t)
    except ValueError:
        raise InvalidDimension(field, text) from None
    if value < 1:
        raise InvalidDimension(field, text)
    return value


def resolve_dimensions(
    dimension: Dimension,
    value: int,
    source_ratio: float,
    lock_enabled: bool,
    current: Dimensions,
) -> Dimensions:
    """
    Apply an edit to one dimension and return the new (width, height).

    With the lock on, the other side is recomputed from the *source* ratio
    (width / height), never from the current, already-rounded pair.
    """
    if dimension not in ("width", "height"):
        raise ValueError(f"Unknown dimension: {dimension!r}")

    # bool is an int subclass; True is not a width.
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise InvalidDimension(dimension, value)

    width, height = current

    ratio_ok = isinstance(source_ratio, (int, float)) and math.isfinite(source_ratio) and source_ratio > 0

    if lock_enabled and ratio_ok:
        if dimension == "width":
            width = value
            height = max(1, _round_half_away(value / source_ratio))
        else:
            height = value
            width = max(1, _round_half_away(value * source_ratio))
    else:
        if dimension == "width":
            width = value
        else:
            height = value

    result = Dimensions(max(1, int(width)), max(1, int(height)))
    logger.debug("resolve %s=%d lock=%s -> %dx%d", dimension, value, lock_enabled, result.width, result.height)
    return result
