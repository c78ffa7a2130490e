import pytest

from transpane.detector import TextDetector, best_candidate, merge_regions
from transpane.exceptions import RecognitionError
from transpane.models import NormalizedRect, TextRegion
from transpane.recognition import Candidate, Observation

from conftest import CENTER_BOX, ScriptedRecognizer, draw_glyph_block, make_image, observation


def region(text, box):
    return TextRegion(text=text, bounding_box=box, confidence=0.9)


@pytest.fixture
def glyph_image():
    image = make_image()
    draw_glyph_block(image, CENTER_BOX)
    return image


def test_best_candidate_prefers_confidence_then_length():
    assert best_candidate([Candidate("你", 0.6), Candidate("你好", 0.5)]).text == "你"
    assert best_candidate([Candidate("你", 0.8), Candidate("你好", 0.8)]).text == "你好"
    assert best_candidate([]) is None


def test_merge_drops_mostly_overlapping_secondary():
    primary = [region("你好", NormalizedRect(0.1, 0.1, 0.4, 0.2))]
    secondary = [
        region("你好", NormalizedRect(0.12, 0.1, 0.4, 0.2)),
        region("再见", NormalizedRect(0.6, 0.6, 0.2, 0.1)),
    ]
    merged = merge_regions(primary, secondary)
    assert [r.text for r in merged] == ["你好", "再见"]
    assert merged[0] is primary[0]


def test_merge_measures_overlap_against_secondary_area():
    # Small secondary fully inside a big primary is a duplicate
    primary = [region("大", NormalizedRect(0.0, 0.0, 0.8, 0.8))]
    assert merge_regions(primary, [region("小", NormalizedRect(0.1, 0.1, 0.1, 0.1))]) == primary
    # Big secondary covering a small primary is kept
    primary = [region("小", NormalizedRect(0.1, 0.1, 0.1, 0.1))]
    assert len(merge_regions(primary, [region("大", NormalizedRect(0.0, 0.0, 0.8, 0.8))])) == 2


def test_merge_does_not_compare_secondaries_with_each_other():
    box = NormalizedRect(0.5, 0.5, 0.2, 0.2)
    merged = merge_regions([], [region("a", box), region("b", box)])
    assert len(merged) == 2


def test_prepare_image_upscales(glyph_image):
    detector = TextDetector(ScriptedRecognizer(), upscale_factor=2.0)
    prepared = detector.prepare_image(glyph_image)
    assert (prepared.width(), prepared.height()) == (800, 400)


@pytest.mark.asyncio
@pytest.mark.parametrize("parallel", [True, False])
async def test_both_passes_merge_into_one_region(glyph_image, parallel):
    recognizer = ScriptedRecognizer(
        normal=[observation("你好世界", 0.95)],
        inverted=[observation("你好世界", 0.9, NormalizedRect(0.21, 0.2, 0.6, 0.6))],
    )
    detector = TextDetector(recognizer, parallel_passes=parallel)

    regions = await detector.detect(glyph_image)

    assert len(regions) == 1
    assert regions[0].text == "你好世界"
    assert regions[0].confidence == pytest.approx(0.95)
    assert sorted(recognizer.calls) == ["inverted", "normal"]


@pytest.mark.asyncio
async def test_inverted_pass_adds_light_on_dark_text(glyph_image):
    recognizer = ScriptedRecognizer(
        normal=[observation("标题")],
        inverted=[observation("菜单", 0.8, NormalizedRect(0.0, 0.85, 0.3, 0.1))],
    )
    regions = await TextDetector(recognizer).detect(glyph_image)
    assert sorted(r.text for r in regions) == ["标题", "菜单"]


@pytest.mark.asyncio
async def test_inverted_pass_failure_is_tolerated(glyph_image):
    recognizer = ScriptedRecognizer(normal=[observation("你好世界")], fail_inverted=True)
    regions = await TextDetector(recognizer).detect(glyph_image)
    assert [r.text for r in regions] == ["你好世界"]


@pytest.mark.asyncio
async def test_primary_pass_failure_raises(glyph_image):
    recognizer = ScriptedRecognizer(fail_normal=True)
    with pytest.raises(RecognitionError, match="recognizer crashed"):
        await TextDetector(recognizer).detect(glyph_image)


@pytest.mark.asyncio
async def test_minimum_confidence_and_degenerate_boxes(glyph_image):
    recognizer = ScriptedRecognizer(normal=[
        observation("低", 0.2, NormalizedRect(0.0, 0.0, 0.2, 0.2)),
        observation("空", 0.9, NormalizedRect(0.5, 0.5, 0.0, 0.1)),
        observation("好", 0.9, NormalizedRect(0.5, 0.0, 0.2, 0.2)),
        Observation(bounding_box=NormalizedRect(0.7, 0.7, 0.1, 0.1), candidates=[]),
    ])
    regions = await TextDetector(recognizer, minimum_confidence=0.5).detect(glyph_image)
    assert [r.text for r in regions] == ["好"]


@pytest.mark.asyncio
async def test_uses_best_alternative(glyph_image):
    recognizer = ScriptedRecognizer(normal=[
        observation("你好", 0.6, CENTER_BOX, ("你好吗", 0.6), ("你", 0.3)),
    ])
    regions = await TextDetector(recognizer).detect(glyph_image)
    assert regions[0].text == "你好吗"
