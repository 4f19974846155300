"""Tests for the goal policy recommender."""

import itertools

import pytest

from rtpc.formats import capability
from rtpc.policy import normalize_goal, recommend_for_goal, recommend_for_source
from rtpc.settings import OPTIMIZATION_GOALS, OUTPUT_FORMATS, SourceImage


def test_transparent_png_for_storage_stays_png():
    rec = recommend_for_goal("png", "storage", True)
    assert rec.format == "png"
    assert rec.quality is None
    assert "transparency" in rec.reasoning


def test_jpeg_for_web_becomes_webp_80():
    rec = recommend_for_goal("jpeg", "web", False)
    assert (rec.format, rec.quality) == ("webp", 80)
    assert "web performance balance" in rec.reasoning


def test_opaque_gif_for_quality_becomes_webp():
    rec = recommend_for_goal("gif", "quality", False)
    assert rec.format == "webp"
    assert "smaller than GIF" in rec.reasoning


def test_transparent_gif_for_quality_keeps_lossless_png():
    rec = recommend_for_goal("gif", "quality", True)
    assert (rec.format, rec.quality) == ("png", None)
    assert "lossless fidelity" in rec.reasoning


@pytest.mark.parametrize("goal, quality", [("web", 80), ("storage", 72), ("quality", 92)])
def test_gif_override_keeps_goal_quality_tier(goal: str, quality: int):
    rec = recommend_for_goal("gif", goal, False)
    assert (rec.format, rec.quality) == ("webp", quality)


def test_transparent_gif_for_storage_still_becomes_webp():
    # WebP keeps the alpha channel, so the GIF rule wins over PNG here.
    rec = recommend_for_goal("gif", "storage", True)
    assert rec.format == "webp"


@pytest.mark.parametrize(
    "goal, transparent, fmt, quality, phrase",
    [
        ("web", False, "webp", 80, "web performance balance"),
        ("web", True, "webp", 80, "web performance balance"),
        ("storage", True, "png", None, "transparency preserved, lossless"),
        ("storage", False, "jpeg", 72, "space savings"),
        ("quality", True, "png", None, "lossless fidelity"),
        ("quality", False, "webp", 92, "high-fidelity, near-lossless"),
    ],
)
def test_rule_table(goal, transparent, fmt, quality, phrase):
    rec = recommend_for_goal("jpeg", goal, transparent)
    assert (rec.format, rec.quality) == (fmt, quality)
    assert phrase in rec.reasoning
    assert rec.origin == "policy"


def test_every_combination_yields_one_recommendation():
    sources = list(OUTPUT_FORMATS) + [None, "tiff"]

    for source_format, goal, transparent in itertools.product(sources, OPTIMIZATION_GOALS, (True, False)):
        rec = recommend_for_goal(source_format, goal, transparent)

        assert rec.format in OUTPUT_FORMATS
        assert rec.reasoning.strip()
        # Quality is set exactly when the chosen format has a quality knob.
        assert (rec.quality is not None) == capability(rec.format).supports_quality
        # Never recommend a format that would lose the alpha channel.
        if transparent:
            assert capability(rec.format).supports_transparency


def test_goal_is_case_insensitive():
    assert recommend_for_goal("jpeg", "WEB", False).format == "webp"  # type: ignore[arg-type]


def test_unknown_goal():
    with pytest.raises(ValueError, match="goal"):
        recommend_for_goal("jpeg", "speed", False)  # type: ignore[arg-type]


def test_recommend_for_source_reads_mime_type():
    gif = SourceImage("anim.gif", "image/gif", 1000, 10, 10, has_transparency=False)
    assert recommend_for_source(gif, "storage").format == "webp"

    png = SourceImage("logo.png", "image/png", 1000, 10, 10, has_transparency=True)
    assert recommend_for_source(png, "storage").format == "png"


def test_normalize_goal():
    assert normalize_goal(" Storage ") == "storage"
    with pytest.raises(ValueError, match="goal"):
        normalize_goal("fast")
