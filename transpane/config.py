import logging
from dataclasses import asdict, dataclass, fields

from PyQt6.QtCore import QSettings

from .models import CaptureTarget

logger = logging.getLogger(__name__)

ORGANIZATION = "Transpane"
APPLICATION = "WindowTranslator"


def default_settings() -> QSettings:
    return QSettings(ORGANIZATION, APPLICATION)


def _coerce(value, default):
    """QSettings hands back strings on most backends; convert to the default's type"""
    if value is None:
        return default
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        return str(value).lower() == "true"
    try:
        return type(default)(value)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring invalid setting value {value!r}; using {default!r}")
        return default


@dataclass
class PipelineConfig:
    """Tunables of the frame translation pipeline"""
    frame_rate: float = 1.0
    detector_min_confidence: float = 0.0
    filter_min_confidence: float = 0.5
    cache_capacity: int = 1000
    cache_policy: str = "lru"
    upscale_factor: float = 2.0
    contrast: float = 1.08
    sharpness: float = 0.4
    parallel_passes: bool = True
    frame_buffer: int = 2
    stats_window: int = 30
    model_name: str = "Helsinki-NLP/opus-mt-zh-en"
    padding_ratio: float = 0.1
    capture_x: int = 0
    capture_y: int = 0
    capture_width: int = 0
    capture_height: int = 0
    debug_mode: bool = False

    @property
    def capture_target(self) -> CaptureTarget:
        return CaptureTarget(self.capture_x, self.capture_y, self.capture_width, self.capture_height)

    @classmethod
    def load(cls, settings: QSettings = None) -> "PipelineConfig":
        settings = settings if settings is not None else default_settings()
        defaults = cls()
        values = {}
        for f in fields(cls):
            default = getattr(defaults, f.name)
            values[f.name] = _coerce(settings.value(f.name, default), default)
        return cls(**values)

    def save(self, settings: QSettings = None):
        settings = settings if settings is not None else default_settings()
        for name, value in asdict(self).items():
            if isinstance(value, bool):
                value = "true" if value else "false"
            settings.setValue(name, value)
        settings.sync()

    @staticmethod
    def reset(settings: QSettings = None) -> "PipelineConfig":
        settings = settings if settings is not None else default_settings()
        settings.clear()
        settings.sync()
        return PipelineConfig()
