"""Application bootstrap for the annotation canvas."""

from __future__ import annotations

import logging
import sys
from typing import List, Optional

from PyQt6.QtWidgets import QApplication

from . import __version__
from .ui.main_window import MainWindow

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout),
    ]
)

logger = logging.getLogger(__name__)


def create_application(argv: List[str]) -> QApplication:
    app = QApplication(argv)
    app.setApplicationName("Annotation Canvas")
    app.setApplicationVersion(__version__)
    return app


def run(argv: Optional[List[str]] = None) -> int:
    """
    Run the annotation canvas application.

    The first positional argument, if any, is an image to open right away.

    Returns:
        Exit code
    """
    argv = list(sys.argv if argv is None else argv)
    logger.info(f"Starting Annotation Canvas {__version__}")

    try:
        app = create_application(argv)
        window = MainWindow()
        window.show()

        # Qt options such as -style are not images
        images = [arg for arg in app.arguments()[1:] if not arg.startswith("-")]
        if images:
            window.load_image(images[0])

        return app.exec()

    except Exception as e:
        logger.error(f"Application error: {e}", exc_info=True)
        return 1


def main() -> None:
    """Main entry point for the application."""
    sys.exit(run())


if __name__ == "__main__":
    main()
