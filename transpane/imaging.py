"""QImage helpers shared by the detector, the compositor and the capture sources."""

import logging

import cv2
import numpy as np
from PyQt6.QtCore import QBuffer, QIODevice, Qt
from PyQt6.QtGui import QImage

logger = logging.getLogger(__name__)

# ITU-R BT.601 weights, the same ones cv2.COLOR_RGB2GRAY applies
LUMA_WEIGHTS = (0.299, 0.587, 0.114)


def qimage_to_array(image: QImage) -> np.ndarray:
    """Copy a QImage into an (h, w, 3) uint8 RGB array"""
    rgb = image.convertToFormat(QImage.Format.Format_RGB888)
    width, height = rgb.width(), rgb.height()
    ptr = rgb.constBits()
    ptr.setsize(rgb.sizeInBytes())
    # Rows may be padded to 32-bit boundaries
    rows = np.frombuffer(ptr, dtype=np.uint8).reshape(height, rgb.bytesPerLine())
    return rows[:, :width * 3].reshape(height, width, 3).copy()


def array_to_qimage(array: np.ndarray) -> QImage:
    """Build a detached RGB888 QImage from an (h, w, 3) array"""
    data = np.ascontiguousarray(array, dtype=np.uint8)
    height, width = data.shape[:2]
    image = QImage(data.tobytes(), width, height, width * 3, QImage.Format.Format_RGB888)
    return image.copy()


def luminance(array: np.ndarray) -> np.ndarray:
    """Luma plane of an RGB array as float32"""
    return cv2.cvtColor(array.astype(np.float32), cv2.COLOR_RGB2GRAY)


def boost_contrast(array: np.ndarray, contrast: float = 1.08) -> np.ndarray:
    """Scale every channel away from mid-grey by ``contrast``"""
    # dst = saturate(array * contrast + 127.5 * (1 - contrast))
    return cv2.addWeighted(array, contrast, array, 0.0, 127.5 * (1.0 - contrast))


def sharpen_luminance(array: np.ndarray, sharpness: float = 0.4) -> np.ndarray:
    """Unsharp mask on the luminance only, leaving hue untouched"""
    if sharpness <= 0:
        return array
    luma = luminance(array)
    blurred = cv2.blur(luma, (3, 3), borderType=cv2.BORDER_REPLICATE)
    detail = cv2.addWeighted(luma, sharpness, blurred, -sharpness, 0.0)
    data = array.astype(np.float32) + detail[..., np.newaxis]
    return np.clip(data + 0.5, 0, 255).astype(np.uint8)


def preprocess_for_recognition(image: QImage, contrast: float = 1.08,
                               sharpness: float = 0.4) -> QImage:
    """Mild contrast boost and luminance sharpening.

    No binarization: thresholding breaks the thin strokes of complex glyphs.
    """
    if image.isNull():
        return image
    array = qimage_to_array(image)
    array = boost_contrast(array, contrast)
    array = sharpen_luminance(array, sharpness)
    return array_to_qimage(array)


def upscale(image: QImage, factor: float = 2.0) -> QImage:
    if image.isNull() or factor == 1.0:
        return image
    width = max(1, int(round(image.width() * factor)))
    height = max(1, int(round(image.height() * factor)))
    return image.scaled(width, height, Qt.AspectRatioMode.IgnoreAspectRatio,
                        Qt.TransformationMode.SmoothTransformation)


def invert(image: QImage) -> QImage:
    inverted = image.copy()
    inverted.invertPixels()
    return inverted


def load_image(data) -> QImage:
    """Decode image bytes (PNG, JPG, ...) or read an image file path"""
    if isinstance(data, (bytes, bytearray)):
        image = QImage.fromData(bytes(data))
    else:
        image = QImage(str(data))
    if image.isNull():
        logger.warning("Failed to decode image")
    return image


def encode_png(image: QImage) -> bytes:
    buffer = QBuffer()
    buffer.open(QIODevice.OpenModeFlag.WriteOnly)
    image.save(buffer, "PNG")
    return bytes(buffer.buffer())
