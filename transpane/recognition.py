import logging
import threading
import time
from dataclasses import dataclass, field
from typing import List, Sequence

import cv2
from PyQt6.QtGui import QImage

from .exceptions import RecognitionError
from .imaging import qimage_to_array
from .models import NormalizedRect

logger = logging.getLogger(__name__)

try:
    import easyocr
except ImportError:
    easyocr = None

DEFAULT_LANGUAGE_HINTS = ("ch_sim", "en")


@dataclass(frozen=True)
class Candidate:
    """One text hypothesis for an observed region"""
    text: str
    confidence: float


@dataclass(frozen=True)
class Observation:
    """A region reported by the recognition primitive with its hypotheses"""
    bounding_box: NormalizedRect
    candidates: List[Candidate] = field(default_factory=list)


class Recognizer:
    """Interface of the text recognition primitive"""

    def recognize(self, image: QImage, language_hints: Sequence[str] = DEFAULT_LANGUAGE_HINTS) -> List[Observation]:
        raise NotImplementedError


class EasyOCRRecognizer(Recognizer):
    """Recognition backed by an EasyOCR reader, created lazily per language set"""

    def __init__(self, gpu: bool = None):
        self.gpu = gpu
        self.reader = None
        self._current_langs = None
        self._lock = threading.Lock()

    def _get_reader(self, langs: List[str]):
        # Check if we need to re-initialize
        if self.reader is not None and self._current_langs == langs:
            return self.reader
        if easyocr is None:
            raise RecognitionError("EasyOCR is not installed")

        try:
            logger.info(f"Initializing EasyOCR with {langs}...")
            start_time = time.time()
            kwargs = {} if self.gpu is None else {"gpu": self.gpu}
            self.reader = easyocr.Reader(langs, **kwargs)
            self._current_langs = langs
            logger.info(f"EasyOCR initialized in {time.time() - start_time:.2f}s")
        except Exception as e:
            logger.error(f"Failed to initialize EasyOCR: {e}")
            raise RecognitionError(f"OCR init error: {e}") from e
        return self.reader

    def recognize(self, image: QImage, language_hints: Sequence[str] = DEFAULT_LANGUAGE_HINTS) -> List[Observation]:
        if image.isNull():
            raise RecognitionError("Cannot recognize text in a null image")

        with self._lock:
            reader = self._get_reader(list(language_hints))

        width, height = image.width(), image.height()
        try:
            # EasyOCR reads 3-channel arrays as BGR
            bgr = cv2.cvtColor(qimage_to_array(image), cv2.COLOR_RGB2BGR)
            results = reader.readtext(bgr, detail=1, paragraph=False)
        except Exception as e:
            raise RecognitionError(str(e)) from e

        observations = []
        for (bbox, text, prob) in results:
            # bbox is [[x0, y0], [x1, y1], [x2, y2], [x3, y3]] in pixels, origin top-left
            x = min(p[0] for p in bbox)
            y = min(p[1] for p in bbox)
            w = max(p[0] for p in bbox) - x
            h = max(p[1] for p in bbox) - y
            box = NormalizedRect.from_pixel_rect(x, y, w, h, width, height)
            observations.append(Observation(box, [Candidate(text, float(prob))]))

        logger.debug(f"EasyOCR returned {len(observations)} observations")
        return observations
