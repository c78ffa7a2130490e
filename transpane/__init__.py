"""Frame translation pipeline: detect, filter, translate and re-draw text in screen captures."""

from .exceptions import (
    AlreadyRunningError,
    CaptureUnavailableError,
    FrameProcessingError,
    PipelineError,
    TranslatorUnavailableError,
)
from .models import NormalizedRect, PipelineState, PipelineStats, TextRegion, TranslatedFrame
from .pipeline import FrameStream, TranslationPipeline

__version__ = "0.1.0"
