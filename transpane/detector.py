import asyncio
import logging
import time
from typing import List, Optional, Sequence

from PyQt6.QtGui import QImage

from .exceptions import RecognitionError
from .imaging import invert, preprocess_for_recognition, upscale
from .models import TextRegion
from .recognition import DEFAULT_LANGUAGE_HINTS, Candidate, Observation, Recognizer

logger = logging.getLogger(__name__)

OVERLAP_THRESHOLD = 0.5


def best_candidate(candidates: Sequence[Candidate]) -> Optional[Candidate]:
    """Highest confidence wins; on a tie the longer string wins"""
    if not candidates:
        return None
    return max(candidates, key=lambda c: (c.confidence, len(c.text)))


def merge_regions(primary: List[TextRegion], secondary: List[TextRegion],
                  threshold: float = OVERLAP_THRESHOLD) -> List[TextRegion]:
    """Add secondary regions that do not duplicate a primary one.

    A secondary region is a duplicate when its intersection with any primary
    region covers more than ``threshold`` of the secondary region's own area.
    Only primary regions are compared against, so the first pass's boxes win.
    """
    merged = list(primary)
    for region in secondary:
        duplicate = any(
            region.bounding_box.overlap_fraction(p.bounding_box) > threshold
            for p in primary
        )
        if not duplicate:
            merged.append(region)
    return merged


class TextDetector:
    """Two-pass text detection over a preprocessed, upscaled frame.

    Pass one runs on the prepared image, pass two on its inverse to pick up
    light-on-dark text. A failing second pass only costs its own regions.
    """

    def __init__(self, recognizer: Recognizer, minimum_confidence: float = 0.0,
                 language_hints: Sequence[str] = DEFAULT_LANGUAGE_HINTS,
                 upscale_factor: float = 2.0, contrast: float = 1.08,
                 sharpness: float = 0.4, parallel_passes: bool = True):
        self.recognizer = recognizer
        self.minimum_confidence = minimum_confidence
        self.language_hints = tuple(language_hints)
        self.upscale_factor = upscale_factor
        self.contrast = contrast
        self.sharpness = sharpness
        self.parallel_passes = parallel_passes

    def prepare_image(self, image: QImage) -> QImage:
        processed = preprocess_for_recognition(image, self.contrast, self.sharpness)
        # Boxes come back normalized, so no rescaling is needed after this
        return upscale(processed, self.upscale_factor)

    def regions_from_observations(self, observations: List[Observation]) -> List[TextRegion]:
        regions = []
        for observation in observations:
            candidate = best_candidate(observation.candidates)
            if candidate is None:
                continue
            if candidate.confidence < self.minimum_confidence:
                continue
            if not observation.bounding_box.is_valid:
                logger.debug(f"Dropping degenerate box for '{candidate.text[:30]}'")
                continue
            regions.append(TextRegion(
                text=candidate.text,
                bounding_box=observation.bounding_box,
                confidence=candidate.confidence,
            ))
        return regions

    def _run_pass(self, image: QImage) -> List[TextRegion]:
        observations = self.recognizer.recognize(image, self.language_hints)
        return self.regions_from_observations(observations)

    async def detect(self, image: QImage) -> List[TextRegion]:
        """Detect text regions; order of the result carries no meaning"""
        loop = asyncio.get_running_loop()
        start = time.time()

        prepared = await loop.run_in_executor(None, self.prepare_image, image)
        inverted = await loop.run_in_executor(None, invert, prepared)

        if self.parallel_passes:
            primary_result, secondary_result = await asyncio.gather(
                loop.run_in_executor(None, self._run_pass, prepared),
                loop.run_in_executor(None, self._run_pass, inverted),
                return_exceptions=True,
            )
        else:
            try:
                primary_result = await loop.run_in_executor(None, self._run_pass, prepared)
            except Exception as e:
                primary_result = e
            try:
                secondary_result = await loop.run_in_executor(None, self._run_pass, inverted)
            except Exception as e:
                secondary_result = e

        if isinstance(primary_result, BaseException):
            if isinstance(primary_result, (RecognitionError, asyncio.CancelledError)):
                raise primary_result
            raise RecognitionError(str(primary_result)) from primary_result

        if isinstance(secondary_result, asyncio.CancelledError):
            raise secondary_result
        if isinstance(secondary_result, BaseException):
            logger.debug(f"Inverted pass failed, ignoring: {secondary_result}")
            secondary_result = []

        regions = merge_regions(primary_result, secondary_result)
        logger.debug(
            f"Detection: {len(primary_result)} primary, {len(secondary_result)} inverted, "
            f"{len(regions)} merged in {time.time() - start:.2f}s"
        )
        return regions
