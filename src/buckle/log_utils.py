import logging
import os

from rich.console import Console
from rich.logging import RichHandler

from buckle.constants import (
    DEFAULT_LOG_LEVEL,
    LOG_DATE_FORMAT,
    LOG_LEVEL_ENV_VAR,
    LOGGER_NAME,
)

logger = logging.getLogger(LOGGER_NAME)


def set_log_level(level_name: str) -> None:
    """
    Set the log level for the buckle logger and all attached handlers.

    If `level_name` is not a valid logging level name (e.g., "DEBUG", "INFO"), a warning is
    logged and the current configuration is left unchanged.

    Parameters:
        level_name (str): Case-insensitive name of the desired logging level.
    """
    level = getattr(logging, level_name.upper(), None)
    if not isinstance(level, int):
        logger.warning(f"Invalid log level name: {level_name}. Using current level.")
        return

    logger.setLevel(level)
    for handler in logger.handlers:
        handler.setLevel(level)

    logger.debug(f"Log level set to {logging.getLevelName(level)}")


def _initialize_logger() -> None:
    """
    Initialize the buckle logger with a RichHandler writing to stderr.

    Existing handlers are removed and propagation to the root logger is disabled. The
    console is bound to stderr so that the launched binary owns stdout. The initial level
    comes from the environment variable named by LOG_LEVEL_ENV_VAR, defaulting to INFO.
    """
    logger.propagate = False

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    console_handler = RichHandler(
        console=Console(stderr=True),
        rich_tracebacks=True,
        show_time=False,
        show_level=True,
        show_path=False,
        # release names and patterns contain square brackets
        markup=False,
        log_time_format=LOG_DATE_FORMAT,
    )
    console_handler.setFormatter(logging.Formatter("%(message)s"))

    level_name = os.environ.get(LOG_LEVEL_ENV_VAR, DEFAULT_LOG_LEVEL).upper()
    resolved = getattr(logging, level_name, None)
    if not isinstance(resolved, int):
        logger.warning(f"Invalid {LOG_LEVEL_ENV_VAR}={level_name}; defaulting to INFO.")
        resolved = logging.INFO

    logger.addHandler(console_handler)
    logger.setLevel(resolved)
    console_handler.setLevel(resolved)


# Initialize the logger when the module is imported
_initialize_logger()
