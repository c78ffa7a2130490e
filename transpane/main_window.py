import logging

from PyQt6.QtCore import Qt, pyqtSlot
from PyQt6.QtGui import QKeySequence, QPixmap, QShortcut
from PyQt6.QtWidgets import (
    QCheckBox, QDoubleSpinBox, QFormLayout, QGroupBox, QHBoxLayout, QLabel,
    QMainWindow, QPushButton, QSpinBox, QVBoxLayout, QWidget
)

from .config import PipelineConfig, default_settings
from .logging_config import set_debug
from .models import PipelineState, PipelineStats, TranslatedFrame
from .pipeline import TranslationPipeline
from .screen_capture import ScreenCaptureSource
from .translation_service import TransformersTranslator
from .workers import PipelineWorker

logger = logging.getLogger(__name__)


class TranslatedWindow(QMainWindow):
    """Shows the translated copy of the captured screen area"""

    def __init__(self, settings=None, pipeline: TranslationPipeline = None,
                 source=None, translator=None):
        super().__init__()
        self.settings = settings if settings is not None else default_settings()
        self.config = PipelineConfig.load(self.settings)
        set_debug(self.config.debug_mode)

        self.pipeline = pipeline or TranslationPipeline.from_config(self.config)
        self.translator = translator or TransformersTranslator(self.config.model_name)
        self.worker = PipelineWorker(self.pipeline, source or ScreenCaptureSource(), self.translator)
        self.last_frame = None

        self.setup_ui()
        self.connect_signals()
        self.load_settings()

    def setup_ui(self):
        self.setWindowTitle("Transpane - Translated Window")
        self.setMinimumSize(640, 480)

        central_widget = QWidget()
        self.setCentralWidget(central_widget)
        layout = QVBoxLayout(central_widget)

        self.frame_label = QLabel("No frame yet")
        self.frame_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self.frame_label.setMinimumHeight(300)
        self.frame_label.setStyleSheet("background-color: #222; color: #aaa;")
        layout.addWidget(self.frame_label, 1)

        # Capture settings
        capture_group = QGroupBox("Capture")
        capture_layout = QFormLayout(capture_group)

        self.frame_rate_spin = QDoubleSpinBox()
        self.frame_rate_spin.setRange(0.1, 5.0)
        self.frame_rate_spin.setSingleStep(0.5)
        self.frame_rate_spin.setSuffix(" fps")
        capture_layout.addRow("Frame Rate:", self.frame_rate_spin)

        region_layout = QHBoxLayout()
        self.region_spins = []
        for label in ("x", "y", "w", "h"):
            spin = QSpinBox()
            spin.setRange(0, 10000)
            spin.setPrefix(f"{label}: ")
            region_layout.addWidget(spin)
            self.region_spins.append(spin)
        capture_layout.addRow("Region (0 size = full screen):", region_layout)

        self.debug_mode_checkbox = QCheckBox("Debug logging")
        capture_layout.addRow(self.debug_mode_checkbox)
        layout.addWidget(capture_group)

        # Control buttons
        controls_layout = QHBoxLayout()
        self.start_button = QPushButton("Start (Ctrl+S)")
        self.stop_button = QPushButton("Stop (Ctrl+T)")
        self.restart_button = QPushButton("Restart")
        self.stop_button.setEnabled(False)
        self.restart_button.setEnabled(False)
        controls_layout.addWidget(self.start_button)
        controls_layout.addWidget(self.stop_button)
        controls_layout.addWidget(self.restart_button)
        controls_layout.addStretch()

        self.stats_label = QLabel("")
        controls_layout.addWidget(self.stats_label)
        self.status_label = QLabel("Ready")
        controls_layout.addWidget(self.status_label)
        layout.addLayout(controls_layout)

    def connect_signals(self):
        self.start_button.clicked.connect(self.start_translation)
        self.stop_button.clicked.connect(self.stop_translation)
        self.restart_button.clicked.connect(self.restart_translation)

        self.worker.frame_ready.connect(self.on_frame_ready)
        self.worker.state_changed.connect(self.on_state_changed)
        self.worker.stats_updated.connect(self.on_stats_updated)
        self.worker.status_update.connect(self.status_label.setText)

        QShortcut(QKeySequence("Ctrl+S"), self, self.start_translation)
        QShortcut(QKeySequence("Ctrl+T"), self, self.stop_translation)

    def _config_from_ui(self) -> PipelineConfig:
        config = self.config
        config.frame_rate = self.frame_rate_spin.value()
        config.capture_x, config.capture_y, config.capture_width, config.capture_height = (
            spin.value() for spin in self.region_spins
        )
        config.debug_mode = self.debug_mode_checkbox.isChecked()
        return config

    def start_translation(self):
        """Start translation process"""
        if self.worker.isRunning():
            return
        config = self._config_from_ui()
        set_debug(config.debug_mode)
        self.worker.set_config(config.frame_rate, config.capture_target)
        self.worker.start_translation()

        self.start_button.setEnabled(False)
        self.stop_button.setEnabled(True)
        self.status_label.setText("Starting...")

    def stop_translation(self):
        """Stop translation process"""
        self.worker.stop_translation()
        self.start_button.setEnabled(True)
        self.stop_button.setEnabled(False)

    def restart_translation(self):
        """Retry after an error, or restart a running pipeline"""
        self.stop_translation()
        self.start_translation()

    @pyqtSlot(object)
    def on_frame_ready(self, frame: TranslatedFrame):
        self.last_frame = frame
        pixmap = QPixmap.fromImage(frame.image)
        self.frame_label.setPixmap(pixmap.scaled(
            self.frame_label.size(),
            Qt.AspectRatioMode.KeepAspectRatio,
            Qt.TransformationMode.SmoothTransformation,
        ))

    @pyqtSlot(str, str)
    def on_state_changed(self, state: str, message: str):
        running = state in (PipelineState.STARTING.value, PipelineState.RUNNING.value)
        self.start_button.setEnabled(not running)
        self.stop_button.setEnabled(running)
        self.restart_button.setEnabled(state in (PipelineState.ERROR.value, PipelineState.RUNNING.value))
        if state == PipelineState.ERROR.value:
            self.status_label.setText(f"Error: {message} (press Restart to retry)")

    @pyqtSlot(object)
    def on_stats_updated(self, stats: PipelineStats):
        text = f"{stats.frame_count} frames, avg {stats.average_processing_time * 1000:.0f}ms"
        if stats.failed_frame_count:
            text += f", {stats.failed_frame_count} skipped"
        self.stats_label.setText(text)

    def load_settings(self):
        """Load application settings"""
        self.config = PipelineConfig.load(self.settings)
        self.frame_rate_spin.setValue(self.config.frame_rate)
        for spin, value in zip(self.region_spins, (self.config.capture_x, self.config.capture_y,
                                                   self.config.capture_width, self.config.capture_height)):
            spin.setValue(value)
        self.debug_mode_checkbox.setChecked(self.config.debug_mode)

    def save_settings(self):
        """Save application settings"""
        self._config_from_ui().save(self.settings)

    def closeEvent(self, event):
        """Handle application close"""
        self.stop_translation()
        self.save_settings()
        event.accept()
