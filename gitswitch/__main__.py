"""Main entry point for direct module execution."""

import logging
import sys

from .cli import cli
from .config import Settings
from .exceptions import GitswitchError
from .ui_common import print_error

logger = logging.getLogger(__name__)


def setup_logging(settings: Settings) -> None:
    """Log everything to the log file and warnings to stderr."""
    settings.log_dir.mkdir(parents=True, exist_ok=True)
    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.WARNING)
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(settings.log_file),
            stderr_handler,
        ]
    )


def main() -> None:
    """Main entry point."""
    try:
        setup_logging(Settings.from_env())
        logger.debug("Starting gitswitch")
        cli()
    except GitswitchError as e:
        print_error(str(e))
        sys.exit(1)
    except Exception as e:
        logger.error("Fatal error", exc_info=True)
        print_error(f"Unexpected error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
