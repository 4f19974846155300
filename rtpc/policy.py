from __future__ import annotations

import logging
from typing import Optional

from .formats import format_from_mime
from .settings import OPTIMIZATION_GOALS, OptimizationGoal, Recommendation, SourceImage

logger = logging.getLogger(__name__)


# Quality tier per goal for lossy targets.
GOAL_QUALITY: dict[OptimizationGoal, int] = {
    "web": 80,
    "storage": 72,
    "quality": 92,
}


def normalize_goal(goal: str) -> OptimizationGoal:
    """Lower-case `goal` and check it is one we know; ValueError otherwise."""
    normalized = str(goal).strip().lower()
    if normalized not in OPTIMIZATION_GOALS:
        raise ValueError(f"Unknown optimization goal: {goal}")
    return normalized  # type: ignore[return-value]


def recommend_for_goal(
    source_format: Optional[str],
    goal: OptimizationGoal,
    has_transparency: bool,
) -> Recommendation:
    """
    Deterministic recommendation for (source format, goal, transparency).

    Rules are checked top to bottom and the first match wins. Every
    combination of goal and transparency is covered, for any source
    format (including unknown ones).
    """
    goal = normalize_goal(goal)

    # GIF sources: WebP wins everywhere except when the user wants
    # maximum fidelity and the image has transparency (PNG below).
    if source_format == "gif" and not (goal == "quality" and has_transparency):
        return Recommendation(
            format="webp",
            quality=GOAL_QUALITY[goal],
            reasoning=(
                "Switched from GIF to WebP: smaller than GIF at similar visual quality, "
                f"with {GOAL_QUALITY[goal]}% quality for the '{goal}' goal."
            ),
        )

    if goal == "web":
        return Recommendation(
            format="webp",
            quality=GOAL_QUALITY["web"],
            reasoning="WebP at 80% quality gives the best web performance balance between size and detail.",
        )

    if goal == "storage":
        if has_transparency:
            return Recommendation(
                format="png",
                quality=None,
                reasoning="PNG keeps the image's transparency preserved, lossless, while still compressing well.",
            )
        return Recommendation(
            format="jpeg",
            quality=GOAL_QUALITY["storage"],
            reasoning="JPEG at 72% quality maximizes space savings for an image without transparency.",
        )

    # goal == "quality"
    if has_transparency:
        return Recommendation(
            format="png",
            quality=None,
            reasoning="PNG keeps lossless fidelity and the alpha channel intact.",
        )
    return Recommendation(
        format="webp",
        quality=GOAL_QUALITY["quality"],
        reasoning="WebP at 92% quality is high-fidelity, near-lossless, and still smaller than PNG.",
    )


def recommend_for_source(source: SourceImage, goal: OptimizationGoal) -> Recommendation:
    rec = recommend_for_goal(format_from_mime(source.mime_type), goal, source.has_transparency)
    logger.info("policy recommendation for %s (%s): %s q=%s", source.name, goal, rec.format, rec.quality)
    return rec
