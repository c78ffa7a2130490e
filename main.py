#!/usr/bin/env python3
"""
Transpane - Live translated copy of a foreign-language window
A PyQt6 frame translation pipeline (Simplified Chinese -> English)
"""

import sys
from PyQt6.QtWidgets import QApplication
from transpane.logging_config import setup_logger
from transpane.main_window import TranslatedWindow
from transpane.screen_capture import screenshot_available


def main():
    """Main application entry point"""
    app = QApplication(sys.argv)
    logger = setup_logger()

    # Check for required dependencies
    if not screenshot_available():
        logger.warning("Screenshot dependencies not available")

    window = TranslatedWindow()
    window.show()

    sys.exit(app.exec())


if __name__ == "__main__":
    main()
