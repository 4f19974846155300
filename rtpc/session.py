from __future__ import annotations

import logging
import threading
from dataclasses import replace
from typing import Any, Callable, List, Optional

from .advisor import Advisor, AdvisorOutcome, recommend_with_fallback
from .codec import Codec
from .config import Config
from .dimensions import Dimension, Dimensions, resolve_dimensions
from .engine import EncodeError, encode
from .results import EncodeResult
from .settings import (
    DEFAULT_FORMAT,
    DEFAULT_QUALITY,
    ConversionSettings,
    OptimizationGoal,
    OutputFormat,
    Recommendation,
    SourceImage,
)
from .validate import Correction, validate_settings

logger = logging.getLogger(__name__)

# Called with (sequence, result, error); exactly one of result/error is set.
EncodeCallback = Callable[[int, Optional[EncodeResult], Optional[EncodeError]], None]


class ConversionSession:
    """
    State for one loaded source image.

    Owns the current settings and the aspect lock; every component it calls
    is a plain function over explicit inputs. Each change bumps a sequence
    number and only the result for the latest sequence is kept, so a slow
    encode started before a newer edit can never overwrite the newer preview.
    """

    def __init__(
        self,
        source: SourceImage,
        raster: Any,
        codec: Codec,
        advisor: Optional[Advisor] = None,
        config: Optional[Config] = None,
    ) -> None:
        self.source = source
        self.raster = raster
        self.codec = codec
        self.advisor = advisor
        self.config = config or Config()

        self.aspect_lock = True
        # Corrections applied since the last delivered encode.
        self.corrections: List[Correction] = []
        # Corrections behind latest_result.
        self.result_corrections: List[Correction] = []
        self.settings = validate_settings(
            ConversionSettings(format=DEFAULT_FORMAT, quality=DEFAULT_QUALITY),
            Dimensions(source.width, source.height),
        )
        # Last quality the user picked, restored when switching back to a lossy format.
        self._remembered_quality = DEFAULT_QUALITY

        self._lock = threading.Lock()
        self._seq = 0
        self._latest_result: Optional[EncodeResult] = None
        self._latest_error: Optional[EncodeError] = None

    # ---------------- state ----------------
    @property
    def size(self) -> Dimensions:
        return Dimensions(self.settings.width or 1, self.settings.height or 1)

    @property
    def sequence(self) -> int:
        with self._lock:
            return self._seq

    @property
    def latest_result(self) -> Optional[EncodeResult]:
        with self._lock:
            return self._latest_result

    @property
    def latest_error(self) -> Optional[EncodeError]:
        with self._lock:
            return self._latest_error

    def _validated(self, candidate: ConversionSettings) -> ConversionSettings:
        corrections: List[Correction] = []
        out = validate_settings(candidate, self.size, corrections)
        self.corrections.extend(corrections)
        return out

    def _next_sequence(self) -> int:
        with self._lock:
            self._seq += 1
            return self._seq

    def _commit(self, candidate: ConversionSettings) -> ConversionSettings:
        self.settings = self._validated(candidate)
        self._next_sequence()
        return self.settings

    # ---------------- edits ----------------
    def edit_dimension(self, dimension: Dimension, value: int) -> ConversionSettings:
        """Raises InvalidDimension and leaves the settings untouched on bad input."""
        new = resolve_dimensions(
            dimension,
            value,
            self.source.aspect_ratio,
            self.aspect_lock,
            self.size,
        )
        return self._commit(replace(self.settings, width=new.width, height=new.height))

    def set_format(self, fmt: OutputFormat) -> ConversionSettings:
        quality = self.settings.quality
        if quality is None:
            quality = self._remembered_quality
        else:
            self._remembered_quality = quality
        return self._commit(replace(self.settings, format=fmt, quality=quality))

    def set_quality(self, quality: int) -> ConversionSettings:
        self._remembered_quality = quality
        return self._commit(replace(self.settings, quality=quality))

    def set_aspect_lock(self, enabled: bool) -> None:
        self.aspect_lock = bool(enabled)

    # ---------------- recommendations ----------------
    def recommend(self, goal: OptimizationGoal) -> AdvisorOutcome:
        """Ask for settings for `goal`. Does not change the session."""
        return recommend_with_fallback(
            self.source,
            goal,
            advisor=self.advisor,
            timeout=self.config.advisor_timeout,
        )

    def apply_recommendation(self, rec: Recommendation) -> ConversionSettings:
        if rec.width is not None or rec.height is not None:
            logger.info("recommendation resizes to %sx%s", rec.width, rec.height)
        return self._commit(rec.as_candidate())

    def optimize(self, goal: OptimizationGoal) -> AdvisorOutcome:
        outcome = self.recommend(goal)
        self.apply_recommendation(outcome.recommendation)
        return outcome

    # ---------------- encoding ----------------
    def encode(self) -> EncodeResult:
        """Encode the current settings on the calling thread."""
        seq = self._next_sequence()
        settings = self.settings
        pending = list(self.corrections)
        try:
            result = encode(self.raster, settings, self.codec, src_bytes=self.source.byte_size)
        except EncodeError as exc:
            self._deliver(seq, None, exc)
            raise
        self._deliver(seq, result, None, pending)
        return result

    def submit_encode(self, callback: Optional[EncodeCallback] = None) -> threading.Thread:
        """
        Encode the current settings on a worker thread.

        The callback only fires if no newer edit or encode request happened
        in the meantime.
        Returns the started thread so callers (and tests) can join it.
        """
        seq = self._next_sequence()
        settings = self.settings
        pending = list(self.corrections)

        def _work() -> None:
            try:
                result = encode(self.raster, settings, self.codec, src_bytes=self.source.byte_size)
            except EncodeError as exc:
                if self._deliver(seq, None, exc) and callback:
                    callback(seq, None, exc)
                return
            if self._deliver(seq, result, None, pending) and callback:
                callback(seq, result, None)

        t = threading.Thread(target=_work, name=f"rtpc-encode-{seq}", daemon=True)
        t.start()
        return t

    def _deliver(
        self,
        seq: int,
        result: Optional[EncodeResult],
        error: Optional[EncodeError],
        corrections: Optional[List[Correction]] = None,
    ) -> bool:
        with self._lock:
            if seq != self._seq:
                logger.warning("dropping stale encode #%d (latest is #%d)", seq, self._seq)
                return False
            self._latest_result = result
            self._latest_error = error
            if result is not None:
                self.result_corrections = corrections or []
                self.corrections = []
            return True
