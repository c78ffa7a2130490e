"""Frame translation pipeline: capture -> detect -> filter -> translate -> composite.

One processing task per running pipeline takes frames strictly one at a time,
so translated frames come out in capture order. Failures inside a frame only
skip that frame; failures while starting move the pipeline into ERROR.
"""

import asyncio
import logging
import time
from collections import deque
from typing import Optional

from .capture import FrameChannel, FrameSource
from .compositor import OverlayCompositor
from .config import PipelineConfig
from .detector import TextDetector
from .events import Signal
from .exceptions import (
    AlreadyRunningError,
    CaptureError,
    CaptureUnavailableError,
    FrameProcessingError,
    PipelineError,
    RecognitionStageError,
    RenderingStageError,
    SetupError,
    TranslationStageError,
    TranslatorUnavailableError,
)
from .models import CapturedFrame, CaptureTarget, PipelineState, PipelineStats, TranslatedFrame
from .recognition import EasyOCRRecognizer, Recognizer
from .text_filter import TextFilter
from .translation_cache import TranslationBatcher, TranslationCache
from .translation_service import Translator

logger = logging.getLogger(__name__)

_END = object()


class FrameStream:
    """Async iterator over the translated frames of one pipeline run.

    Closing it with ``aclose()`` stops the run that produced it.
    """

    def __init__(self, pipeline: "TranslationPipeline"):
        self._pipeline = pipeline
        self._queue = asyncio.Queue()
        self._finished = False

    def _push(self, frame: TranslatedFrame):
        if not self._finished:
            self._queue.put_nowait(frame)

    def _finish(self):
        if not self._finished:
            self._finished = True
            self._queue.put_nowait(_END)

    @property
    def finished(self) -> bool:
        return self._finished

    def __aiter__(self):
        return self

    async def __anext__(self) -> TranslatedFrame:
        item = await self._queue.get()
        if item is _END:
            # Keep the end marker for any later reader
            self._queue.put_nowait(_END)
            raise StopAsyncIteration
        return item

    async def aclose(self):
        await self._pipeline._close_stream(self)


class TranslationPipeline:
    """Owns pipeline lifecycle and drives frames through every stage"""

    def __init__(self, detector: TextDetector, text_filter: TextFilter = None,
                 batcher: TranslationBatcher = None, compositor: OverlayCompositor = None,
                 frame_buffer: int = 2, stats_window: int = 30):
        self.detector = detector
        self.text_filter = text_filter or TextFilter()
        self.batcher = batcher or TranslationBatcher()
        self.compositor = compositor or OverlayCompositor()
        self.frame_buffer = frame_buffer

        self.state_changed = Signal("state_changed")
        self.frame_ready = Signal("frame_ready")
        self.stats_updated = Signal("stats_updated")
        self.frame_failed = Signal("frame_failed")

        self._state = PipelineState.IDLE
        self.last_error: Optional[str] = None
        self.current_frame: Optional[TranslatedFrame] = None
        self.is_processing = False

        self._source: Optional[FrameSource] = None
        self._translator: Optional[Translator] = None
        self._frame_rate = 1.0
        self._target: Optional[CaptureTarget] = None
        self._pump_task: Optional[asyncio.Task] = None
        self._loop_task: Optional[asyncio.Task] = None
        self._stream: Optional[FrameStream] = None

        self._durations = deque(maxlen=stats_window)
        self.frame_count = 0
        self.failed_frame_count = 0
        self.dropped_frame_count = 0
        self.last_frame_error: Optional[str] = None

    @classmethod
    def from_config(cls, config: PipelineConfig, recognizer: Recognizer = None) -> "TranslationPipeline":
        detector = TextDetector(
            recognizer if recognizer is not None else EasyOCRRecognizer(),
            minimum_confidence=config.detector_min_confidence,
            upscale_factor=config.upscale_factor,
            contrast=config.contrast,
            sharpness=config.sharpness,
            parallel_passes=config.parallel_passes,
        )
        cache = TranslationCache(capacity=config.cache_capacity, policy=config.cache_policy)
        return cls(
            detector,
            text_filter=TextFilter(config.filter_min_confidence),
            batcher=TranslationBatcher(cache),
            compositor=OverlayCompositor(padding_ratio=config.padding_ratio),
            frame_buffer=config.frame_buffer,
            stats_window=config.stats_window,
        )

    # State and statistics

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def average_processing_time(self) -> float:
        if not self._durations:
            return 0.0
        return sum(self._durations) / len(self._durations)

    @property
    def stats(self) -> PipelineStats:
        return PipelineStats(
            frame_count=self.frame_count,
            average_processing_time=self.average_processing_time,
            failed_frame_count=self.failed_frame_count,
            dropped_frame_count=self.dropped_frame_count,
            last_frame_error=self.last_frame_error,
        )

    def _set_state(self, state: PipelineState, message: str = None):
        if state is PipelineState.ERROR:
            self.last_error = message
            logger.error(f"Pipeline error: {message}")
        else:
            logger.info(f"Pipeline state: {self._state.value} -> {state.value}")
        self._state = state
        self.state_changed.emit(state, message)

    def _reset_stats(self):
        self._durations.clear()
        self.frame_count = 0
        self.failed_frame_count = 0
        self.dropped_frame_count = 0
        self.last_frame_error = None
        self.current_frame = None

    def clear_cache(self):
        self.batcher.cache.clear()

    # Lifecycle

    async def start(self, source: FrameSource, translator: Translator, frame_rate: float = 1.0,
                    target: CaptureTarget = None) -> FrameStream:
        """Prepare the translator, open the frame source and begin processing.

        Returns immediately with the live output stream. Raises
        AlreadyRunningError unless idle, or a SetupError (leaving the
        pipeline in ERROR) when the translator or the source is unavailable.
        """
        if self._state is not PipelineState.IDLE:
            raise AlreadyRunningError(self._state)

        self._source = source
        self._translator = translator
        self._frame_rate = frame_rate
        self._target = target

        self._set_state(PipelineState.STARTING)
        self._reset_stats()
        loop = asyncio.get_running_loop()

        try:
            await loop.run_in_executor(None, translator.prepare)
        except Exception as e:
            self._set_state(PipelineState.ERROR, f"Translation unavailable: {e}")
            if isinstance(e, SetupError):
                raise
            raise TranslatorUnavailableError(str(e)) from e

        try:
            frames = await source.start(target, frame_rate)
        except Exception as e:
            self._set_state(PipelineState.ERROR, f"Capture failed: {e}")
            if isinstance(e, SetupError):
                raise
            raise CaptureUnavailableError(str(e)) from e

        channel = FrameChannel(self.frame_buffer)
        stream = FrameStream(self)
        self._stream = stream

        self._set_state(PipelineState.RUNNING)
        self._pump_task = loop.create_task(self._pump(frames, channel))
        self._loop_task = loop.create_task(self._run(channel, stream, translator))
        return stream

    async def stop(self):
        """Cancel processing and release the source. No-op unless running."""
        if self._state is not PipelineState.RUNNING:
            return

        self._set_state(PipelineState.STOPPING)
        current = asyncio.current_task()
        tasks = [t for t in (self._pump_task, self._loop_task) if t is not None and t is not current]
        self._pump_task = None
        self._loop_task = None

        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        await self._release()
        self.is_processing = False
        self._set_state(PipelineState.IDLE)

    async def restart(self, frame_rate: float = None, target: CaptureTarget = None,
                      source: FrameSource = None, translator: Translator = None) -> FrameStream:
        """Stop if running, leave ERROR, then start again.

        Arguments left as None reuse the ones of the last start; pass an empty
        CaptureTarget to go back to full screen. Raises PipelineError while
        STARTING or STOPPING, or if the pipeline was never started.
        """
        source = source if source is not None else self._source
        translator = translator if translator is not None else self._translator
        if source is None or translator is None:
            raise PipelineError("Pipeline was never started")

        if self._state is PipelineState.RUNNING:
            await self.stop()
        elif self._state is PipelineState.ERROR:
            self.last_error = None
            self._set_state(PipelineState.IDLE)
        elif self._state is not PipelineState.IDLE:
            raise PipelineError(f"Cannot restart while {self._state.value}")

        return await self.start(
            source,
            translator,
            frame_rate if frame_rate is not None else self._frame_rate,
            target if target is not None else self._target,
        )

    async def _release(self):
        try:
            await self._source.stop()
        except Exception as e:
            logger.warning(f"Error while stopping frame source: {e}")
        if self._stream is not None:
            self._stream._finish()

    async def _close_stream(self, stream: FrameStream):
        if stream is self._stream and self._state is PipelineState.RUNNING:
            await self.stop()
        stream._finish()

    # Processing

    async def _pump(self, frames, channel: FrameChannel):
        """Move frames from the source into the bounded channel"""
        try:
            async for frame in frames:
                if channel.put(frame):
                    self.dropped_frame_count += 1
        except Exception as e:
            logger.error(f"Frame source failed: {e}")
            channel.close(e if isinstance(e, CaptureError) else CaptureError(str(e)))
        else:
            logger.info("Frame source finished")
            channel.close()

    async def _run(self, channel: FrameChannel, stream: FrameStream, translator: Translator):
        error = None
        try:
            while self._state is PipelineState.RUNNING:
                frame = await channel.get()
                if frame is None or self._state is not PipelineState.RUNNING:
                    break

                self.is_processing = True
                try:
                    translated = await self.process_frame(frame, translator)
                except FrameProcessingError as e:
                    self._record_failure(e)
                    continue
                except Exception as e:
                    self._record_failure(FrameProcessingError(e))
                    continue
                finally:
                    self.is_processing = False

                # A stop during processing must not emit the frame
                if self._state is not PipelineState.RUNNING:
                    break
                self._record_success(translated)
                stream._push(translated)
                self.frame_ready.emit(translated)
        except CaptureError as e:
            error = e

        if self._state is PipelineState.RUNNING:
            self._loop_task = None
            if self._pump_task is not None:
                await asyncio.gather(self._pump_task, return_exceptions=True)
                self._pump_task = None
            await self._release()
            if self._state is not PipelineState.RUNNING:
                # stop() took over while the source was being released
                return
            if error is not None:
                self._set_state(PipelineState.ERROR, f"Frame stream terminated: {error}")
            else:
                self._set_state(PipelineState.IDLE)

    async def process_frame(self, frame: CapturedFrame, translator: Translator = None) -> TranslatedFrame:
        """Run one frame through detection, filtering, translation and compositing"""
        translator = translator if translator is not None else self._translator
        if translator is None:
            raise PipelineError("No translator available")

        loop = asyncio.get_running_loop()
        workflow_start = time.perf_counter()

        try:
            regions = await self.detector.detect(frame.image)
        except Exception as e:
            raise RecognitionStageError(e) from e
        detect_time = time.perf_counter() - workflow_start

        candidates = self.text_filter.filter(regions)

        translate_start = time.perf_counter()
        try:
            translated = await self.batcher.translate(candidates, translator)
        except Exception as e:
            raise TranslationStageError(e) from e
        translate_time = time.perf_counter() - translate_start

        render_start = time.perf_counter()
        try:
            image = await loop.run_in_executor(None, self.compositor.render, translated, frame.image)
        except Exception as e:
            raise RenderingStageError(e) from e
        render_time = time.perf_counter() - render_start

        duration = time.perf_counter() - workflow_start
        logger.info(f"Workflow stats: Detect: {detect_time:.2f}s ({len(regions)} regions), "
                    f"Translate: {translate_time:.2f}s ({len(translated)} kept), "
                    f"Render: {render_time:.2f}s, Total: {duration:.2f}s")

        return TranslatedFrame(
            image=image,
            regions=tuple(translated),
            capture_time=frame.capture_time,
            processing_duration=duration,
        )

    def _record_success(self, frame: TranslatedFrame):
        self.current_frame = frame
        self.frame_count += 1
        self._durations.append(frame.processing_duration)
        self.stats_updated.emit(self.stats)

    def _record_failure(self, error: FrameProcessingError):
        self.failed_frame_count += 1
        self.last_frame_error = str(error)
        logger.warning(f"Pipeline error processing frame: {error}")
        self.frame_failed.emit(error)
        self.stats_updated.emit(self.stats)
