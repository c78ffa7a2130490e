import pytest

from transpane.models import CaptureTarget, NormalizedRect, TextRegion, TranslatedFrame

from conftest import make_image


def test_pixel_rect_flips_vertical_axis():
    rect = NormalizedRect(0.1, 0.0, 0.5, 0.25).to_pixel_rect(200, 100)
    assert (rect.x(), rect.y(), rect.width(), rect.height()) == pytest.approx((20, 75, 100, 25))


def test_pixel_rect_round_trip():
    original = NormalizedRect(0.25, 0.5, 0.5, 0.25)
    rect = original.to_pixel_rect(800, 600)
    back = NormalizedRect.from_pixel_rect(rect.x(), rect.y(), rect.width(), rect.height(), 800, 600)
    assert back.x == pytest.approx(original.x)
    assert back.y == pytest.approx(original.y)
    assert back.width == pytest.approx(original.width)
    assert back.height == pytest.approx(original.height)


def test_from_pixel_rect_clamps_to_image():
    rect = NormalizedRect.from_pixel_rect(-10, -10, 60, 60, 100, 100)
    assert (rect.x, rect.width) == pytest.approx((0.0, 0.5))
    assert (rect.y, rect.height) == pytest.approx((0.5, 0.5))


def test_overlap_fraction_is_relative_to_self():
    small = NormalizedRect(0.0, 0.0, 0.2, 0.2)
    large = NormalizedRect(0.0, 0.0, 0.8, 0.8)
    assert small.overlap_fraction(large) == pytest.approx(1.0)
    assert large.overlap_fraction(small) == pytest.approx(0.0625)


def test_disjoint_rects_do_not_intersect():
    a = NormalizedRect(0.0, 0.0, 0.2, 0.2)
    b = NormalizedRect(0.5, 0.5, 0.2, 0.2)
    assert a.intersection(b) is None
    assert a.overlap_fraction(b) == 0.0


@pytest.mark.parametrize("rect,valid", [
    (NormalizedRect(0.1, 0.1, 0.5, 0.5), True),
    (NormalizedRect(0.0, 0.0, 1.0, 1.0), True),
    (NormalizedRect(0.1, 0.1, 0.0, 0.5), False),
    (NormalizedRect(0.1, 0.1, 0.5, -0.1), False),
])
def test_validity(rect, valid):
    assert rect.is_valid is valid


def test_with_translation_keeps_identity():
    region = TextRegion("你好", NormalizedRect(0.1, 0.1, 0.2, 0.2), 0.9)
    translated = region.with_translation("Hello")
    assert translated.id == region.id
    assert translated.has_translation
    assert not region.has_translation


def test_translated_frame_summary():
    box = NormalizedRect(0.1, 0.1, 0.2, 0.2)
    frame = TranslatedFrame(
        image=make_image(),
        regions=[TextRegion("你好", box, 0.9, "Hello"), TextRegion("世界", box, 0.9)],
        capture_time=0.0,
        processing_duration=0.25,
    )
    assert frame.size == (400, 200)
    assert frame.translated_region_count == 1
    assert frame.performance_description == "250ms, 2 regions"
    assert frame.effective_fps == pytest.approx(4.0)


def test_capture_target_full_screen():
    assert CaptureTarget().is_full_screen
    assert not CaptureTarget(10, 10, 100, 50).is_full_screen
