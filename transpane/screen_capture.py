import asyncio
import logging
import os
import shutil
import subprocess
import tempfile
import time
from typing import AsyncIterator, Optional

from PyQt6.QtCore import QRect
from PyQt6.QtGui import QGuiApplication, QImage

from .capture import FrameSource, clamp_frame_rate
from .exceptions import CaptureError, CaptureUnavailableError
from .models import CapturedFrame, CaptureTarget

logger = logging.getLogger(__name__)

WAYLAND_TOOLS = ("spectacle", "gnome-screenshot", "grim")


def screenshot_available() -> bool:
    """Check if at least one screenshot method is likely available"""
    if os.environ.get("XDG_SESSION_TYPE") == "wayland":
        if any(shutil.which(tool) for tool in WAYLAND_TOOLS):
            return True
    # PyQt fallback needs a running GUI application
    return QGuiApplication.instance() is not None


class ScreenCapture:
    """Grab the screen using multiple backends for Wayland/X11 compatibility"""

    @staticmethod
    def capture_screen() -> Optional[QImage]:
        is_wayland = os.environ.get("XDG_SESSION_TYPE") == "wayland"
        desktop = os.environ.get("XDG_CURRENT_DESKTOP", "").lower()

        if is_wayland:
            logger.debug(f"Wayland detected, desktop: {desktop}")
            if "kde" in desktop:
                image = ScreenCapture._capture_tool(["spectacle", "-b", "-n", "-f", "-o"])
                if image is not None:
                    return image
            if "gnome" in desktop:
                image = ScreenCapture._capture_tool(["gnome-screenshot", "-f"])
                if image is not None:
                    return image
            image = ScreenCapture._capture_grim()
            if image is not None:
                return image

        # Works on X11, usually returns black on Wayland
        return ScreenCapture._capture_pyqt()

    @staticmethod
    def capture(target: Optional[CaptureTarget] = None) -> Optional[QImage]:
        """Capture the screen, cropped to ``target`` when one is given"""
        image = ScreenCapture.capture_screen()
        if image is None or target is None or target.is_full_screen:
            return image

        rect = target.to_qrect().intersected(image.rect())
        if rect.isEmpty():
            logger.warning(f"Requested region {target.x},{target.y} {target.width}x{target.height} "
                           "is outside screen bounds")
            return None
        return image.copy(rect)

    @staticmethod
    def _capture_pyqt() -> Optional[QImage]:
        screen = QGuiApplication.primaryScreen()
        if screen is None:
            return None
        pixmap = screen.grabWindow(0)
        if pixmap.isNull():
            return None
        image = pixmap.toImage()
        if ScreenCapture.is_image_empty(image):
            logger.debug("PyQt capture returned empty/black image")
            return None
        return image

    @staticmethod
    def _capture_tool(command) -> Optional[QImage]:
        """Run a screenshot CLI that writes to a file given as the last argument"""
        if shutil.which(command[0]) is None:
            return None
        with tempfile.TemporaryDirectory() as tmp_dir:
            tmp_path = os.path.join(tmp_dir, "capture.png")
            try:
                result = subprocess.run(command + [tmp_path], capture_output=True, timeout=5)
            except (OSError, subprocess.TimeoutExpired) as e:
                logger.debug(f"{command[0]} capture error: {e}")
                return None
            if result.returncode != 0 or not os.path.exists(tmp_path):
                return None
            image = QImage(tmp_path)

        if image.isNull() or ScreenCapture.is_image_empty(image):
            return None
        logger.debug(f"Captured screen via {command[0]}")
        return image

    @staticmethod
    def _capture_grim() -> Optional[QImage]:
        if shutil.which("grim") is None:
            return None
        try:
            result = subprocess.run(["grim", "-"], capture_output=True, timeout=5)
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.debug(f"grim capture error: {e}")
            return None
        if result.returncode != 0:
            return None
        image = QImage.fromData(result.stdout)
        return None if image.isNull() else image

    @staticmethod
    def is_image_empty(image: QImage) -> bool:
        """Completely uniform images often mean a failed Wayland capture"""
        if image is None or image.isNull():
            return True
        w, h = image.width(), image.height()
        if w < 2 or h < 2:
            return True

        points = [
            image.pixelColor(0, 0),
            image.pixelColor(w - 1, 0),
            image.pixelColor(0, h - 1),
            image.pixelColor(w - 1, h - 1),
            image.pixelColor(w // 2, h // 2),
        ]
        first = points[0]
        return all(p == first for p in points)


class ScreenCaptureSource(FrameSource):
    """Periodic screen capture as an async frame stream"""

    def __init__(self, max_consecutive_failures: int = 10):
        self.max_consecutive_failures = max_consecutive_failures
        self.frame_rate = 1.0
        self._running = False

    async def start(self, target: Optional[CaptureTarget] = None,
                    frame_rate: float = 1.0) -> AsyncIterator[CapturedFrame]:
        if not screenshot_available():
            raise CaptureUnavailableError("No screenshot backend is available")
        if self._running:
            await self.stop()
        self.frame_rate = clamp_frame_rate(frame_rate)
        self._running = True
        logger.info(f"Screen capture started at {self.frame_rate:.2f} fps"
                    + (f" for region {target.name or target.to_qrect()}" if target and not target.is_full_screen else ""))
        return self._frames(target, 1.0 / self.frame_rate)

    async def _frames(self, target, interval):
        loop = asyncio.get_running_loop()
        failures = 0
        while self._running:
            started = loop.time()
            image = await loop.run_in_executor(None, ScreenCapture.capture, target)
            if not self._running:
                return

            if image is None:
                failures += 1
                logger.warning(f"Screen capture failed ({failures}/{self.max_consecutive_failures})")
                if failures >= self.max_consecutive_failures:
                    raise CaptureError("Screen capture keeps failing")
            else:
                failures = 0
                yield CapturedFrame(image=image, content_rect=QRect(0, 0, image.width(), image.height()),
                                    capture_time=time.time())

            remaining = interval - (loop.time() - started)
            await asyncio.sleep(max(remaining, 0.001))

    async def stop(self):
        if self._running:
            logger.info("Screen capture stopped")
        self._running = False
