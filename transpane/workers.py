import asyncio
import logging

from PyQt6.QtCore import QThread, pyqtSignal

from .capture import FrameSource
from .exceptions import PipelineError
from .models import CaptureTarget, PipelineState, PipelineStats
from .pipeline import TranslationPipeline
from .translation_service import Translator

logger = logging.getLogger(__name__)


class PipelineWorker(QThread):
    """Runs a TranslationPipeline on its own asyncio loop in a worker thread.

    Core events are re-emitted as Qt signals so widgets receive them on the
    GUI thread through queued connections.
    """

    frame_ready = pyqtSignal(object)  # TranslatedFrame
    state_changed = pyqtSignal(str, str)  # state value, error message or ""
    stats_updated = pyqtSignal(object)  # PipelineStats
    status_update = pyqtSignal(str)  # Status message for the UI

    def __init__(self, pipeline: TranslationPipeline, source: FrameSource, translator: Translator,
                 frame_rate: float = 1.0, target: CaptureTarget = None):
        super().__init__()
        self.pipeline = pipeline
        self.source = source
        self.translator = translator
        self.frame_rate = frame_rate
        self.target = target
        self._loop = None

        pipeline.state_changed.connect(self._on_state_changed)
        pipeline.stats_updated.connect(self._on_stats_updated)
        pipeline.frame_failed.connect(self._on_frame_failed)

    def set_config(self, frame_rate: float, target: CaptureTarget = None):
        self.frame_rate = frame_rate
        self.target = target

    @property
    def running(self) -> bool:
        return self.pipeline.state in (PipelineState.STARTING, PipelineState.RUNNING)

    def start_translation(self):
        if self.isRunning():
            logger.warning("Translation worker already running")
            return
        self.start()

    def stop_translation(self):
        """Stop translation process"""
        loop = self._loop
        if loop is not None and loop.is_running():
            asyncio.run_coroutine_threadsafe(self.pipeline.stop(), loop)
        # Never block on ourselves
        if QThread.currentThread() != self:
            self.wait(5000)

    def run(self):
        try:
            asyncio.run(self._main())
        except PipelineError as e:
            logger.error(f"Translation worker error: {e}")
            self.status_update.emit(f"Error: {e}")
        logger.info("Translation worker thread stopped")

    async def _main(self):
        self._loop = asyncio.get_running_loop()
        try:
            self.status_update.emit("Starting translation...")
            if self.pipeline.state is PipelineState.ERROR:
                # set_config values replace those of the failed start
                stream = await self.pipeline.restart(
                    self.frame_rate, self.target if self.target is not None else CaptureTarget(),
                    self.source, self.translator,
                )
            else:
                stream = await self.pipeline.start(self.source, self.translator, self.frame_rate, self.target)

            async for frame in stream:
                self.frame_ready.emit(frame)
        finally:
            # Cover a loop that is torn down while still running
            await self.pipeline.stop()
            self._loop = None

    def _on_state_changed(self, state: PipelineState, message: str):
        self.state_changed.emit(state.value, message or "")
        if state is PipelineState.ERROR:
            self.status_update.emit(f"Error: {message}")
        elif state is PipelineState.RUNNING:
            self.status_update.emit("Translating...")
        elif state is PipelineState.IDLE:
            self.status_update.emit("Ready")

    def _on_stats_updated(self, stats: PipelineStats):
        self.stats_updated.emit(stats)

    def _on_frame_failed(self, error: Exception):
        self.status_update.emit(f"Skipped frame: {error}")
