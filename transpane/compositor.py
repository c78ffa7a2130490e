import logging
from typing import List, Tuple

from PyQt6.QtCore import QRectF, Qt
from PyQt6.QtGui import QColor, QFont, QImage, QPainter

from .exceptions import RenderingError
from .imaging import LUMA_WEIGHTS
from .models import TextRegion

logger = logging.getLogger(__name__)

SAMPLE_INSET = 2
BACKGROUND_MARGIN = 2
FONT_HEIGHT_RATIO = 0.8
AVERAGE_CHAR_WIDTH = 0.6
MIN_FONT_SIZE = 8.0


def sample_background(image: QImage, rect: QRectF) -> QColor:
    """Average colour at the four edge midpoints of ``rect``, inset slightly.

    Edges rather than the centre so the original glyph strokes are not
    sampled. Falls back to white when no point is inside the image.
    """
    points = [
        (rect.left() + SAMPLE_INSET, rect.center().y()),
        (rect.right() - SAMPLE_INSET, rect.center().y()),
        (rect.center().x(), rect.top() + SAMPLE_INSET),
        (rect.center().x(), rect.bottom() - SAMPLE_INSET),
    ]

    total_r = total_g = total_b = 0
    count = 0
    for px, py in points:
        x, y = int(px), int(py)
        if x < 0 or y < 0 or x >= image.width() or y >= image.height():
            continue
        color = image.pixelColor(x, y)
        total_r += color.red()
        total_g += color.green()
        total_b += color.blue()
        count += 1

    if count == 0:
        return QColor(255, 255, 255)
    return QColor(round(total_r / count), round(total_g / count), round(total_b / count))


def relative_luminance(color: QColor) -> float:
    r, g, b = LUMA_WEIGHTS
    return r * color.redF() + g * color.greenF() + b * color.blueF()


def contrasting_color(background: QColor) -> QColor:
    """Black on light backgrounds, white on dark ones"""
    if relative_luminance(background) > 0.5:
        return QColor(0, 0, 0)
    return QColor(255, 255, 255)


def font_size_for(rect: QRectF, text: str, padding_ratio: float = 0.1) -> float:
    """Size proportional to the box height, shrunk to fit the width, floored"""
    base_size = rect.height() * FONT_HEIGHT_RATIO
    target_width = rect.width() * (1.0 - 2 * padding_ratio)
    estimated_width = len(text) * base_size * AVERAGE_CHAR_WIDTH

    if text and estimated_width > target_width:
        scale = target_width / estimated_width
        return max(base_size * scale, MIN_FONT_SIZE)
    return max(base_size, MIN_FONT_SIZE)


class OverlayCompositor:
    """Draws translated text over a copy of the source frame"""

    def __init__(self, padding_ratio: float = 0.1, font_family: str = "Sans Serif"):
        self.padding_ratio = padding_ratio
        self.font_family = font_family

    def render(self, regions: List[TextRegion], image: QImage) -> QImage:
        if image is None or image.isNull():
            raise RenderingError("Failed to process the input image.")

        drawable = [r for r in regions if r.translation]
        if not drawable:
            # Nothing to draw: identical pixels, identical format
            return image.copy()

        source = image.convertToFormat(QImage.Format.Format_RGB32)
        output = source.copy()
        width, height = output.width(), output.height()

        painter = QPainter()
        if not painter.begin(output):
            raise RenderingError("Failed to create graphics context.")
        try:
            painter.setRenderHint(QPainter.RenderHint.Antialiasing)
            painter.setRenderHint(QPainter.RenderHint.TextAntialiasing)
            for region in drawable:
                self._draw_region(painter, source, region, width, height)
        finally:
            painter.end()

        logger.debug(f"Rendered {len(drawable)} translated regions on {width}x{height} frame")
        return output

    def _draw_region(self, painter: QPainter, source: QImage, region: TextRegion,
                     width: int, height: int):
        box = region.absolute_bounding_box(width, height)
        # Sample from the untouched source so earlier overlays do not bleed in
        background = sample_background(source, box)

        painter.setPen(Qt.PenStyle.NoPen)
        painter.setBrush(background)
        painter.drawRect(box.adjusted(-BACKGROUND_MARGIN, -BACKGROUND_MARGIN,
                                      BACKGROUND_MARGIN, BACKGROUND_MARGIN))

        font = QFont(self.font_family)
        font.setWeight(QFont.Weight.Medium)
        font.setPixelSize(max(1, int(round(font_size_for(box, region.translation, self.padding_ratio)))))
        painter.setFont(font)
        painter.setPen(contrasting_color(background))
        painter.drawText(box, Qt.AlignmentFlag.AlignCenter, region.translation)

    def text_color_for(self, region: TextRegion, image: QImage) -> Tuple[QColor, QColor]:
        """Background and text colour the compositor would use for ``region``"""
        box = region.absolute_bounding_box(image.width(), image.height())
        background = sample_background(image, box)
        return background, contrasting_color(background)
