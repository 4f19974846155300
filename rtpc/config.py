from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_ADVISOR_TIMEOUT = 10.0


@dataclass(frozen=True)
class Config:
    """
    Runtime configuration.

    Read from the environment by from_env(); CLI flags override it.
    The advisor is disabled when advisor_url is empty.
    """
    advisor_url: Optional[str] = None
    advisor_api_key: Optional[str] = None
    advisor_timeout: float = DEFAULT_ADVISOR_TIMEOUT
    log_level: str = "WARNING"

    @property
    def advisor_enabled(self) -> bool:
        return bool(self.advisor_url)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Config":
        env = os.environ if environ is None else environ

        return cls(
            advisor_url=env.get("RTPC_ADVISOR_URL") or None,
            advisor_api_key=env.get("RTPC_ADVISOR_API_KEY") or None,
            advisor_timeout=_parse_timeout(env.get("RTPC_ADVISOR_TIMEOUT")),
            log_level=(env.get("RTPC_LOG_LEVEL") or "WARNING").upper(),
        )


def _parse_timeout(raw: Optional[str]) -> float:
    if not raw:
        return DEFAULT_ADVISOR_TIMEOUT
    try:
        value = float(raw)
    except ValueError:
        logger.warning("ignoring RTPC_ADVISOR_TIMEOUT=%r (not a number)", raw)
        return DEFAULT_ADVISOR_TIMEOUT
    if not math.isfinite(value) or value <= 0:
        logger.warning("ignoring RTPC_ADVISOR_TIMEOUT=%r (must be > 0)", raw)
        return DEFAULT_ADVISOR_TIMEOUT
    return value
