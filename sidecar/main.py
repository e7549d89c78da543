import sys
import logging
from typing import List, Optional

# Basic console logger for messages BEFORE full setup is complete.
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)-8s - [launcher] - %(message)s',
    stream=sys.stdout
)
log = logging.getLogger("launcher")

from sidecar.errors import LauncherError
from sidecar.local.config import LauncherSettings
from sidecar.local.launch import select_strategy
from sidecar.log import resolve_level, setup_logging


def run(argv: Optional[List[str]] = None) -> int:
    """
    Loads settings, configures logging, and runs the selected launch strategy.

    :param argv: Command-line arguments. Only '--verbose' is recognised.
    :return: The exit code for the container.
    """
    args = list(sys.argv[1:] if argv is None else argv)

    try:
        config = LauncherSettings()
    except LauncherError as e:
        log.critical(f"Invalid configuration: {e}")
        return e.exit_code

    console_level = logging.DEBUG if "--verbose" in args else resolve_level(config.LOG_LEVEL)
    setup_logging(console_level, config)

    strategy = select_strategy(config)
    log.info(f"Launching in {strategy.name} mode.")
    try:
        return strategy.launch()
    except LauncherError as e:
        log.critical(f"Launcher failed to start: {e}")
        return e.exit_code


def main() -> None:
    """The main entry point for the container."""
    exit_code = run()
    logging.shutdown()
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
