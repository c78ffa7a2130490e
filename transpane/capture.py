import asyncio
import logging
import time
from collections import deque
from typing import AsyncIterator, List, Optional, Sequence, Union

from PyQt6.QtCore import QRect
from PyQt6.QtGui import QImage

from .exceptions import CaptureUnavailableError
from .imaging import load_image
from .models import CapturedFrame, CaptureTarget

logger = logging.getLogger(__name__)

MIN_FRAME_RATE = 0.1
MAX_FRAME_RATE = 30.0


def clamp_frame_rate(frame_rate: float) -> float:
    return max(MIN_FRAME_RATE, min(float(frame_rate), MAX_FRAME_RATE))


class FrameSource:
    """Interface of the capture collaborator"""

    async def start(self, target: Optional[CaptureTarget] = None,
                    frame_rate: float = 1.0) -> AsyncIterator[CapturedFrame]:
        raise NotImplementedError

    async def stop(self):
        raise NotImplementedError


class FrameChannel:
    """Bounded hand-off between a frame source and the processing loop.

    When full, the oldest queued frame is dropped: a stale frame's
    translation is worth less than a fresh one.
    """

    def __init__(self, capacity: int = 2):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self.dropped = 0
        self._frames = deque()
        self._ready = asyncio.Event()
        self._closed = False
        self._error: Optional[BaseException] = None

    def put(self, frame: CapturedFrame) -> bool:
        """Queue a frame; returns True if an older frame had to be dropped"""
        if self._closed:
            return False
        dropped = False
        if len(self._frames) >= self.capacity:
            self._frames.popleft()
            self.dropped += 1
            dropped = True
            logger.debug("Frame channel full; dropped oldest frame (total dropped: %d)", self.dropped)
        self._frames.append(frame)
        self._ready.set()
        return dropped

    def close(self, error: BaseException = None):
        """No more frames. Queued frames are still handed out, then ``error`` is raised."""
        self._closed = True
        self._error = error
        self._ready.set()

    async def get(self) -> Optional[CapturedFrame]:
        """Next frame, or None once closed and drained"""
        while not self._frames:
            if self._closed:
                if self._error is not None:
                    raise self._error
                return None
            self._ready.clear()
            await self._ready.wait()
        return self._frames.popleft()

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self):
        return len(self._frames)


class ImageSequenceSource(FrameSource):
    """Replays a fixed list of images (QImage, bytes or file paths) at the frame rate"""

    def __init__(self, images: Sequence[Union[QImage, bytes, str]], repeat: bool = False):
        self.images: List[QImage] = [img if isinstance(img, QImage) else load_image(img) for img in images]
        self.repeat = repeat
        self._running = False
        self.start_count = 0

    async def start(self, target: Optional[CaptureTarget] = None,
                    frame_rate: float = 1.0) -> AsyncIterator[CapturedFrame]:
        if not self.images or any(img.isNull() for img in self.images):
            raise CaptureUnavailableError("No valid images to replay")
        self._running = True
        self.start_count += 1
        return self._frames(target, 1.0 / clamp_frame_rate(frame_rate))

    async def _frames(self, target, interval):
        while self._running:
            for image in self.images:
                if not self._running:
                    return
                if target is not None and not target.is_full_screen:
                    image = image.copy(target.to_qrect())
                yield CapturedFrame(image=image, content_rect=QRect(0, 0, image.width(), image.height()),
                                    capture_time=time.time())
                await asyncio.sleep(interval)
            if not self.repeat:
                return

    async def stop(self):
        self._running = False
