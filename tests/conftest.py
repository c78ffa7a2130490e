"""Shared fixtures: offscreen Qt application, image factories and fake collaborators."""
import asyncio
import logging
import os
import time

import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from PyQt6.QtCore import QRect
from PyQt6.QtGui import QColor, QImage, QPainter
from PyQt6.QtWidgets import QApplication

from transpane.capture import FrameSource
from transpane.detector import TextDetector
from transpane.exceptions import CaptureError, TranslationError, TranslatorUnavailableError
from transpane.models import CapturedFrame, NormalizedRect
from transpane.pipeline import TranslationPipeline
from transpane.recognition import Candidate, Observation, Recognizer
from transpane.translation_service import Translator

logging.getLogger("transpane").setLevel(logging.DEBUG)

CENTER_BOX = NormalizedRect(0.2, 0.2, 0.6, 0.6)


@pytest.fixture(scope="session", autouse=True)
def qapp():
    """One QApplication for the whole session (fonts and painting need it)."""
    app = QApplication.instance() or QApplication([])
    yield app


def make_image(width=400, height=200, color=QColor(255, 255, 255)) -> QImage:
    image = QImage(width, height, QImage.Format.Format_RGB32)
    image.fill(color)
    return image


def draw_glyph_block(image: QImage, box: NormalizedRect, color=QColor(0, 0, 0)) -> QRect:
    """Paint a solid block in the middle half of ``box`` to stand in for glyph strokes"""
    rect = box.to_pixel_rect(image.width(), image.height())
    inner = QRect(int(rect.x() + rect.width() / 4), int(rect.y() + rect.height() / 4),
                  int(rect.width() / 2), int(rect.height() / 2))
    painter = QPainter(image)
    painter.fillRect(inner, color)
    painter.end()
    return inner


def image_bytes(image: QImage) -> bytes:
    return bytes(image.constBits().asstring(image.sizeInBytes()))


def is_light(image: QImage) -> bool:
    return image.pixelColor(0, 0).lightness() > 127


class ScriptedRecognizer(Recognizer):
    """Returns fixed observations, telling the normal and inverted passes apart by brightness"""

    def __init__(self, normal=None, inverted=None, fail_normal=False, fail_inverted=False):
        self.normal = normal or []
        self.inverted = inverted or []
        self.fail_normal = fail_normal
        self.fail_inverted = fail_inverted
        self.calls = []

    def recognize(self, image, language_hints=("ch_sim", "en")):
        light = is_light(image)
        self.calls.append("normal" if light else "inverted")
        if light:
            if self.fail_normal:
                raise RuntimeError("recognizer crashed")
            return list(self.normal)
        if self.fail_inverted:
            raise RuntimeError("inverted pass failed")
        return list(self.inverted)


def observation(text, confidence=0.95, box=CENTER_BOX, *alternatives):
    candidates = [Candidate(text, confidence)] + [Candidate(t, c) for t, c in alternatives]
    return Observation(bounding_box=box, candidates=candidates)


class DictTranslator(Translator):
    """Maps source strings through a dict; records every batch call"""

    def __init__(self, mapping=None, fail_prepare=False, fail_batches=0, delay=0.0, prepare_delay=0.0):
        self.mapping = mapping or {}
        self.fail_prepare = fail_prepare
        self.fail_batches = fail_batches
        self.delay = delay
        self.prepare_delay = prepare_delay
        self.batches = []
        self.prepare_calls = 0

    def prepare(self):
        self.prepare_calls += 1
        if self.prepare_delay:
            time.sleep(self.prepare_delay)
        if self.fail_prepare:
            raise TranslatorUnavailableError("language pair unavailable")

    def translate_batch(self, texts):
        self.batches.append(list(texts))
        if self.delay:
            time.sleep(self.delay)
        if self.fail_batches > 0:
            self.fail_batches -= 1
            raise TranslationError("translation service offline")
        return [self.mapping.get(t, f"<{t}>") for t in texts]


class FailingSource(FrameSource):
    """Yields the given frames, then breaks with a capture error"""

    def __init__(self, images, fail_on_start=False):
        self.images = images
        self.fail_on_start = fail_on_start
        self.stopped = False

    async def start(self, target=None, frame_rate=1.0):
        if self.fail_on_start:
            raise CaptureError("window not found")
        return self._frames()

    async def _frames(self):
        for image in self.images:
            yield CapturedFrame(image=image, capture_time=time.time())
            await asyncio.sleep(0.01)
        raise CaptureError("stream interrupted")

    async def stop(self):
        self.stopped = True


@pytest.fixture
def hello_recognizer():
    return ScriptedRecognizer(normal=[observation("你好世界")], inverted=[observation("你好世界", 0.9)])


@pytest.fixture
def hello_translator():
    return DictTranslator({"你好世界": "Hello World"})


@pytest.fixture
def make_pipeline():
    def factory(recognizer, **kwargs):
        parallel = kwargs.pop("parallel_passes", True)
        return TranslationPipeline(TextDetector(recognizer, parallel_passes=parallel), **kwargs)
    return factory


async def collect(stream, count=None, timeout=5.0):
    """Read ``count`` frames (or until the stream ends) with a timeout per frame"""
    frames = []
    while count is None or len(frames) < count:
        try:
            frames.append(await asyncio.wait_for(stream.__anext__(), timeout))
        except StopAsyncIteration:
            break
    return frames


async def wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)
