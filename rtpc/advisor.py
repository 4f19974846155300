"""
Optional external recommender ("advisor").

The advisor is anything that turns an AdvisorRequest into a Recommendation.
HttpAdvisor talks to a hosted service over HTTP; tests plug in fakes.
Whatever the advisor answers is checked against AdvisorResponse and
rejected (not clamped) when it is out of bounds. Callers use
recommend_with_fallback(), which never fails: on any advisor error it
returns the deterministic policy recommendation instead.
"""
from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from typing import Any, Literal, Optional, Protocol

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .config import DEFAULT_ADVISOR_TIMEOUT
from .policy import normalize_goal, recommend_for_source
from .settings import OptimizationGoal, Recommendation, SourceImage

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────
# Errors
# ─────────────────────────────────────────────────────────────


class AdvisorError(Exception):
    kind = "advisor_error"

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class AdvisorTimeout(AdvisorError):
    kind = "timeout"


class MalformedResponse(AdvisorError):
    kind = "malformed_response"


class AdvisorUnavailable(AdvisorError):
    kind = "unavailable"


# ─────────────────────────────────────────────────────────────
# Wire schemas
# ─────────────────────────────────────────────────────────────


class AdvisorRequest(BaseModel):
    """What the advisor gets to see about the source image."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    file_name: str = Field(alias="fileName")
    file_type: str = Field(alias="fileType", description="MIME type of the source")
    file_size: int = Field(alias="fileSize", ge=0)
    optimization_goal: Literal["web", "storage", "quality"] = Field(alias="optimizationGoal")

    @classmethod
    def from_source(cls, source: SourceImage, goal: OptimizationGoal) -> "AdvisorRequest":
        return cls(
            file_name=source.name,
            file_type=source.mime_type,
            file_size=source.byte_size,
            optimization_goal=goal,
        )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class AdvisorResponse(BaseModel):
    """Accepted shape of an advisor answer. Anything else is malformed."""

    # No coercion: "80" or true is not a quality.
    model_config = ConfigDict(strict=True)

    format: Literal["jpeg", "png", "webp"]
    quality: int = Field(ge=1, le=100)
    width: Optional[int] = Field(default=None, ge=1)
    height: Optional[int] = Field(default=None, ge=1)
    reasoning: str = Field(min_length=1)

    def to_recommendation(self) -> Recommendation:
        return Recommendation(
            format=self.format,
            quality=self.quality,
            reasoning=self.reasoning,
            width=self.width,
            height=self.height,
            origin="advisor",
        )


def parse_advisor_payload(payload: object) -> Recommendation:
    """
    Validate a decoded JSON answer.

    Accepts either the bare response object or the {"data": ...} /
    {"error": ...} envelope returned by the hosted service.
    """
    if isinstance(payload, dict):
        if payload.get("error"):
            raise AdvisorUnavailable(f"advisor reported an error: {payload['error']}")
        if "data" in payload:
            payload = payload["data"]

    if not isinstance(payload, dict):
        raise MalformedResponse("advisor response is not a JSON object", field="body")

    try:
        response = AdvisorResponse.model_validate(payload)
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ())) or "body"
        raise MalformedResponse(f"advisor response rejected: {field}: {first.get('msg')}", field=field) from exc

    return response.to_recommendation()


# ─────────────────────────────────────────────────────────────
# Advisors
# ─────────────────────────────────────────────────────────────


class Advisor(Protocol):
    def recommend(self, request: AdvisorRequest) -> Recommendation: ...


class HttpAdvisor:
    """
    Advisor reached with one JSON POST per request.

    No retries: a failed call is reported as an AdvisorError and the caller
    falls back to the policy.
    """

    def __init__(
        self,
        endpoint: str,
        api_key: Optional[str] = None,
        timeout: float = DEFAULT_ADVISOR_TIMEOUT,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.endpoint = endpoint
        self.api_key = api_key
        self.timeout = timeout
        self._client = client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        self._client.close()

    def recommend(self, request: AdvisorRequest) -> Recommendation:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            response = self._client.post(
                self.endpoint,
                json=request.to_wire(),
                headers=headers,
                timeout=self.timeout,
            )
            _ = response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise AdvisorTimeout(f"advisor timed out after {self.timeout:.1f}s") from exc
        except httpx.HTTPError as exc:
            raise AdvisorUnavailable(f"advisor request failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise MalformedResponse("advisor response is not valid JSON", field="body") from exc

        return parse_advisor_payload(payload)


# ─────────────────────────────────────────────────────────────
# Fallback
# ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class AdvisorOutcome:
    recommendation: Recommendation
    # Set when the advisor was asked but its answer could not be used.
    fallback_reason: Optional[str] = None
    error_kind: Optional[str] = None

    @property
    def used_fallback(self) -> bool:
        return self.error_kind is not None


def call_advisor(advisor: Advisor, request: AdvisorRequest, timeout: float) -> Recommendation:
    """
    Make exactly one advisor call and wait at most `timeout` seconds.

    The wait is bounded even for advisors that ignore timeouts themselves;
    a late answer is dropped.
    """
    box: "queue.Queue[tuple[str, Any]]" = queue.Queue(maxsize=1)

    def _run() -> None:
        try:
            box.put(("ok", advisor.recommend(request)))
        except Exception as exc:  # handed back to the waiting thread
            box.put(("error", exc))

    worker = threading.Thread(target=_run, name="rtpc-advisor", daemon=True)
    worker.start()

    try:
        status, value = box.get(timeout=timeout)
    except queue.Empty:
        raise AdvisorTimeout(f"advisor did not answer within {timeout:.1f}s") from None

    if status == "error":
        if isinstance(value, AdvisorError):
            raise value
        raise AdvisorUnavailable(f"advisor failed: {value!r}") from value
    if not isinstance(value, Recommendation):
        raise MalformedResponse(f"advisor returned {type(value).__name__}, not a Recommendation", field="body")
    return value


def recommend_with_fallback(
    source: SourceImage,
    goal: OptimizationGoal,
    advisor: Optional[Advisor] = None,
    timeout: float = DEFAULT_ADVISOR_TIMEOUT,
) -> AdvisorOutcome:
    """Ask the advisor if there is one; use the goal policy otherwise or on any advisor error."""
    goal = normalize_goal(goal)

    if advisor is None:
        return AdvisorOutcome(recommendation=recommend_for_source(source, goal))

    request = AdvisorRequest.from_source(source, goal)
    try:
        rec = call_advisor(advisor, request, timeout)
    except AdvisorError as exc:
        logger.warning("advisor %s (%s), using goal policy instead", exc.kind, exc)
        return AdvisorOutcome(
            recommendation=recommend_for_source(source, goal),
            fallback_reason=str(exc),
            error_kind=exc.kind,
        )

    logger.info("advisor recommendation for %s (%s): %s q=%s", source.name, goal, rec.format, rec.quality)
    return AdvisorOutcome(recommendation=rec)
