import time
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Tuple

from PyQt6.QtCore import QRect, QRectF
from PyQt6.QtGui import QImage


class PipelineState(Enum):
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


@dataclass(frozen=True)
class NormalizedRect:
    """Rectangle in normalized image coordinates (0.0-1.0).

    Origin is at the bottom-left corner, matching the convention of the
    recognition primitives, and is independent of the image pixel size.
    """
    x: float
    y: float
    width: float
    height: float

    @property
    def max_x(self) -> float:
        return self.x + self.width

    @property
    def max_y(self) -> float:
        return self.y + self.height

    @property
    def area(self) -> float:
        return max(0.0, self.width) * max(0.0, self.height)

    @property
    def is_valid(self) -> bool:
        return 0.0 < self.width <= 1.0 and 0.0 < self.height <= 1.0

    def intersection(self, other: "NormalizedRect") -> Optional["NormalizedRect"]:
        left = max(self.x, other.x)
        bottom = max(self.y, other.y)
        right = min(self.max_x, other.max_x)
        top = min(self.max_y, other.max_y)
        if right <= left or top <= bottom:
            return None
        return NormalizedRect(left, bottom, right - left, top - bottom)

    def overlap_fraction(self, other: "NormalizedRect") -> float:
        """Intersection area with ``other`` as a fraction of this rect's area"""
        if self.area <= 0:
            return 0.0
        inter = self.intersection(other)
        if inter is None:
            return 0.0
        return inter.area / self.area

    def to_pixel_rect(self, width: int, height: int) -> QRectF:
        """Absolute rect for an image of the given size, origin top-left.

        The vertical axis is flipped: detection space grows upwards, drawing
        space grows downwards.
        """
        px = self.x * width
        pw = self.width * width
        ph = self.height * height
        py = (1.0 - self.y - self.height) * height
        return QRectF(px, py, pw, ph)

    @classmethod
    def from_pixel_rect(cls, x: float, y: float, w: float, h: float,
                        image_width: int, image_height: int) -> "NormalizedRect":
        """Inverse of to_pixel_rect for a top-left origin pixel rect"""
        if image_width <= 0 or image_height <= 0:
            return cls(0.0, 0.0, 0.0, 0.0)
        left = min(max(x / image_width, 0.0), 1.0)
        right = min(max((x + w) / image_width, 0.0), 1.0)
        top = min(max(y / image_height, 0.0), 1.0)
        bottom = min(max((y + h) / image_height, 0.0), 1.0)
        return cls(left, 1.0 - bottom, right - left, bottom - top)


@dataclass(frozen=True)
class TextRegion:
    """A piece of text detected in one frame"""
    text: str
    bounding_box: NormalizedRect
    confidence: float
    translation: Optional[str] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex, compare=False)

    @property
    def stripped_text(self) -> str:
        return self.text.strip()

    @property
    def has_translation(self) -> bool:
        return bool(self.translation)

    def with_translation(self, translation: Optional[str]) -> "TextRegion":
        return replace(self, translation=translation)

    def absolute_bounding_box(self, width: int, height: int) -> QRectF:
        return self.bounding_box.to_pixel_rect(width, height)


@dataclass(frozen=True)
class CaptureTarget:
    """Screen area to capture; an empty target means the whole screen"""
    x: int = 0
    y: int = 0
    width: int = 0
    height: int = 0
    name: str = ""

    @property
    def is_full_screen(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def to_qrect(self) -> QRect:
        return QRect(self.x, self.y, self.width, self.height)


@dataclass(frozen=True)
class CapturedFrame:
    """One image delivered by a frame source"""
    image: QImage
    content_rect: QRect = None
    capture_time: float = field(default_factory=time.time)

    @property
    def size(self) -> Tuple[int, int]:
        return self.image.width(), self.image.height()


@dataclass(frozen=True)
class TranslatedFrame:
    """Output of processing one captured frame. Immutable once emitted."""
    image: QImage
    regions: Tuple[TextRegion, ...]
    capture_time: float
    processing_duration: float
    id: str = field(default_factory=lambda: uuid.uuid4().hex, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "regions", tuple(self.regions))

    @property
    def size(self) -> Tuple[int, int]:
        return self.image.width(), self.image.height()

    @property
    def translated_region_count(self) -> int:
        return sum(1 for r in self.regions if r.translation is not None)

    @property
    def performance_description(self) -> str:
        return "%.0fms, %d regions" % (self.processing_duration * 1000, len(self.regions))

    @property
    def effective_fps(self) -> float:
        if self.processing_duration <= 0:
            return 0.0
        return 1.0 / self.processing_duration


@dataclass(frozen=True)
class PipelineStats:
    frame_count: int = 0
    average_processing_time: float = 0.0
    failed_frame_count: int = 0
    dropped_frame_count: int = 0
    last_frame_error: Optional[str] = None
