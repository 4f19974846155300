"""Tests for the conversion session: edits, recommendations and last-request-wins encoding."""

import pytest
from PIL import Image

from rtpc.advisor import AdvisorTimeout, parse_advisor_payload
from rtpc.dimensions import InvalidDimension
from rtpc.engine import UnsupportedByPlatform
from rtpc.session import ConversionSession
from rtpc.settings import ConversionSettings, SourceImage

from conftest import GatedCodec, LimitedCodec


class CannedAdvisor:
    def __init__(self, answer=None, error=None):
        self.answer = answer
        self.error = error

    def recommend(self, request):
        if self.error is not None:
            raise self.error
        return self.answer


@pytest.fixture
def raster():
    return Image.new("RGB", (192, 108), (10, 120, 200))


@pytest.fixture
def session(opaque_source, raster, codec):
    return ConversionSession(opaque_source, raster, codec)


def test_starts_from_source_size_as_jpeg(session):
    assert session.settings == ConversionSettings("jpeg", 85, 192, 108)
    assert session.aspect_lock


def test_locked_width_edit(session):
    session.edit_dimension("width", 96)
    assert (session.settings.width, session.settings.height) == (96, 54)


def test_locked_height_edit(session):
    session.edit_dimension("height", 54)
    assert (session.settings.width, session.settings.height) == (96, 54)


def test_repeated_edits_do_not_drift(session):
    session.edit_dimension("width", 100)  # 56.25 -> 56
    assert session.settings.height == 56
    session.edit_dimension("width", 192)
    assert session.settings.height == 108


def test_unlocked_edit(session):
    session.set_aspect_lock(False)
    session.edit_dimension("width", 50)
    assert (session.settings.width, session.settings.height) == (50, 108)


def test_invalid_edit_keeps_state(session):
    before = session.settings
    seq = session.sequence

    with pytest.raises(InvalidDimension):
        session.edit_dimension("width", 0)

    assert session.settings == before
    assert session.sequence == seq


def test_format_switch_remembers_quality(session):
    session.set_quality(60)
    session.set_format("png")
    assert session.settings.quality is None

    session.set_format("jpeg")
    assert session.settings.quality == 60


def test_quality_is_clamped_and_recorded(session):
    session.set_quality(150)
    assert session.settings.quality == 100
    assert [c.field for c in session.corrections] == ["quality"]


def test_corrections_accumulate_until_an_encode(session):
    """Every edit since the last encode stays on record, not only the latest one."""
    session.set_quality(150)
    session.edit_dimension("width", 48)
    assert [c.field for c in session.corrections] == ["quality"]

    session.encode()

    assert session.corrections == []
    assert [(c.field, c.original, c.corrected) for c in session.result_corrections] == [("quality", 150, 100)]

    # The next encode only carries what changed after the previous one.
    session.set_quality(80)
    session.encode()
    assert session.result_corrections == []


def test_unknown_format_leaves_settings(session):
    before = session.settings
    with pytest.raises(ValueError):
        session.set_format("tiff")  # type: ignore[arg-type]
    assert session.settings == before


def test_optimize_with_policy(session):
    outcome = session.optimize("web")

    assert not outcome.used_fallback
    assert (session.settings.format, session.settings.quality) == ("webp", 80)
    # A recommendation without dimensions keeps the current size.
    assert (session.settings.width, session.settings.height) == (192, 108)


def test_optimize_keeps_user_resize(session):
    session.edit_dimension("width", 96)
    session.optimize("storage")
    assert (session.settings.width, session.settings.height) == (96, 54)


def test_recommend_does_not_change_settings(session):
    before = session.settings
    session.recommend("storage")
    assert session.settings == before


def test_advisor_dimensions_are_applied(opaque_source, raster, codec):
    answer = parse_advisor_payload({"format": "jpeg", "quality": 70, "width": 64, "reasoning": "smaller"})
    session = ConversionSession(opaque_source, raster, codec, advisor=CannedAdvisor(answer=answer))

    outcome = session.optimize("storage")

    assert outcome.recommendation.origin == "advisor"
    assert session.settings == ConversionSettings("jpeg", 70, 64, 108)


def test_advisor_failure_falls_back(opaque_source, raster, codec):
    session = ConversionSession(opaque_source, raster, codec, advisor=CannedAdvisor(error=AdvisorTimeout("slow")))

    outcome = session.optimize("storage")

    assert outcome.error_kind == "timeout"
    assert (session.settings.format, session.settings.quality) == ("jpeg", 72)


def test_encode_stores_latest_result(session):
    session.edit_dimension("width", 48)
    result = session.encode()

    assert (result.width, result.height) == (48, 27)
    assert session.latest_result is result
    assert result.src_bytes == 50_000


def test_encode_error_is_surfaced(opaque_source, raster):
    session = ConversionSession(opaque_source, raster, LimitedCodec(missing={"bmp"}))
    session.set_format("bmp")

    with pytest.raises(UnsupportedByPlatform):
        session.encode()
    assert isinstance(session.latest_error, UnsupportedByPlatform)
    assert session.latest_result is None


def test_background_encode_delivers_result(session):
    delivered = []
    t = session.submit_encode(lambda seq, result, error: delivered.append((seq, result, error)))
    t.join(timeout=5)

    assert len(delivered) == 1
    seq, result, error = delivered[0]
    assert seq == session.sequence
    assert error is None
    assert session.latest_result is result


def test_stale_encode_is_discarded(opaque_source, raster):
    codec = GatedCodec()
    session = ConversionSession(opaque_source, raster, codec)
    delivered = []

    def on_done(seq, result, error):
        delivered.append((seq, result))

    # First request blocks inside the encoder...
    slow = session.submit_encode(on_done)
    assert codec.first_started.wait(timeout=5)

    # ...while the user keeps editing and a newer request finishes first.
    session.edit_dimension("width", 96)
    fast = session.submit_encode(on_done)
    fast.join(timeout=5)

    codec.gate.set()
    slow.join(timeout=5)

    assert len(delivered) == 1
    seq, result = delivered[0]
    assert seq == session.sequence
    assert (result.width, result.height) == (96, 54)
    assert session.latest_result is result


def test_sequence_increases_with_every_change(session):
    seqs = [session.sequence]
    session.set_quality(70)
    seqs.append(session.sequence)
    session.edit_dimension("height", 20)
    seqs.append(session.sequence)
    session.encode()
    seqs.append(session.sequence)

    assert seqs == sorted(set(seqs))


def test_transparent_source_session(codec, rgba_image):
    source = SourceImage("logo.png", "image/png", 2_000, 40, 20, has_transparency=True)
    session = ConversionSession(source, rgba_image, codec)

    session.optimize("quality")
    assert (session.settings.format, session.settings.quality) == ("png", None)
    assert session.encode().format == "png"
