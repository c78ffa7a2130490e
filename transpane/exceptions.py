"""Error taxonomy for the frame translation pipeline.

Setup errors are raised from ``start()`` and move the pipeline into the
error state. Frame processing errors are contained by the processing loop:
the frame is skipped and the failure recorded, the pipeline keeps running.
"""


class TranspaneError(Exception):
    """Base class for all transpane errors"""


# Primitive failures, raised by the external collaborators

class CaptureError(TranspaneError):
    """The frame source could not deliver frames"""


class RecognitionError(TranspaneError):
    """A text recognition pass failed"""


class TranslationError(TranspaneError):
    """The translation primitive failed for a batch"""


class RenderingError(TranspaneError):
    """The overlay could not be composited"""


# Pipeline level errors

class PipelineError(TranspaneError):
    """Lifecycle misuse or failure of the orchestrator"""


class AlreadyRunningError(PipelineError):
    def __init__(self, state=None):
        message = "Pipeline is already running."
        if state is not None:
            message = f"Pipeline is not idle (state: {state.value})."
        super().__init__(message)
        self.state = state


class SetupError(PipelineError):
    """Fatal to start(); drives the pipeline into the error state"""


class CaptureUnavailableError(SetupError):
    pass


class TranslatorUnavailableError(SetupError):
    pass


class FrameProcessingError(PipelineError):
    """A single frame failed in one stage. Never fatal to the pipeline."""

    stage = "frame"

    def __init__(self, cause: Exception):
        super().__init__(f"{self.stage.capitalize()} failed: {cause}")
        self.cause = cause


class RecognitionStageError(FrameProcessingError):
    stage = "recognition"


class TranslationStageError(FrameProcessingError):
    stage = "translation"


class RenderingStageError(FrameProcessingError):
    stage = "rendering"
