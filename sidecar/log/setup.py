import sys
import logging
from typing import TYPE_CHECKING, Optional

from sidecar import settings as default_settings
from sidecar.log.handler import LokiHandler

if TYPE_CHECKING:
    from sidecar.local.config import LauncherSettings

# Parent of every logger that relays child process output.
WORKER_OUTPUT_LOGGER = "proc"


class MainFormatter(logging.Formatter):
    """A custom formatter to handle regular logs and raw worker output."""

    def __init__(self, fmt: str = default_settings.LOG_FORMAT):
        super().__init__(fmt)

    def format(self, record):
        # Worker output relayed through 'proc.*' loggers is printed as-is.
        if record.name.startswith('proc.'):
            return record.getMessage()
        return super().format(record)


def resolve_level(level_name: str) -> int:
    """Maps a level name such as 'info' to its logging constant, defaulting to INFO."""
    level = logging.getLevelName(str(level_name).strip().upper())
    return level if isinstance(level, int) else logging.INFO


def setup_logging(console_level: int = logging.INFO, config: Optional["LauncherSettings"] = None) -> None:
    """
    Configures the root logger for the launcher.
    This sets up handlers for the console, the relayed worker output and optionally Loki,
    clearing any previously configured handlers to prevent duplication.

    :param console_level: The logging level for the console output (e.g., logging.INFO).
    :param config: The launcher settings. Loki is only configured when given and enabled.
    """
    root_logger = logging.getLogger()
    # Set root level to lowest to capture all messages for handler filtering
    root_logger.setLevel(logging.DEBUG)

    # Clear any existing handlers to prevent re-adding them on re-runs
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    # --- Console Handler ---
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(MainFormatter())
    root_logger.addHandler(console_handler)

    # --- Worker Output Handler ---
    # Relayed worker lines are printed regardless of the console level.
    proc_logger = logging.getLogger(WORKER_OUTPUT_LOGGER)
    proc_logger.setLevel(logging.DEBUG)
    proc_logger.propagate = False
    for handler in list(proc_logger.handlers):
        proc_logger.removeHandler(handler)
        handler.close()
    worker_handler = logging.StreamHandler(sys.stdout)
    worker_handler.setLevel(logging.DEBUG)
    worker_handler.setFormatter(MainFormatter())
    proc_logger.addHandler(worker_handler)

    # --- Loki Handler (conditional) ---
    if config is not None and config.LOKI_ENABLED:
        try:
            loki_handler = LokiHandler(
                url=config.LOKI_URL,
                org_id=config.LOKI_ORG_ID,
                job=config.LOKI_JOB_NAME,
                flush_interval=config.LOG_BUFFER_FLUSH_INTERVAL,
                batch_size=config.LOKI_BATCH_SIZE,
            )
            loki_handler.setLevel(logging.INFO)  # Avoid spamming Loki with DEBUG logs
            loki_handler.setFormatter(MainFormatter())
            root_logger.addHandler(loki_handler)
            proc_logger.addHandler(loki_handler)
            root_logger.info(f"Grafana Loki logging handler initialized for {config.LOKI_URL}.")
        except Exception as e:
            root_logger.error(f"Failed to initialize Grafana Loki logging handler: {e}")
