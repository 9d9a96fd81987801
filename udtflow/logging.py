import logging
import sys
from typing import Any, Dict

DEFAULT_LOG_LEVEL = logging.INFO
DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Map string log levels to logging constants
LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}

# Modules that log every partition and state transition
# These will be set to WARNING by default unless verbose mode is enabled
TECHNICAL_MODULES = [
    "udtflow.core.planner",
    "udtflow.core.dispatcher",
    "udtflow.core.catalog",
    "udtflow.core.registry",
    "udtflow.udtfs.manager",
]


def get_logger(name: str) -> logging.Logger:
    """Return a logger with the specified name.

    Args:
        name: The name for the logger, typically __name__

    Returns:
        Logger instance
    """
    logger = logging.getLogger(name)

    # Only add a handler if it doesn't have one already
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(DEFAULT_FORMAT)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

        # Don't propagate to root logger to avoid duplicate logging
        logger.propagate = False

    return logger


def configure_logging(
    verbose: bool = False,
    quiet: bool = False,
) -> None:
    """Configure logging settings based on command line flags.

    Args:
        verbose: Whether to enable verbose mode (shows all debug logs)
        quiet: Whether to enable quiet mode (only shows warnings and errors)
    """
    if quiet:
        root_level = logging.WARNING
    elif verbose:
        root_level = logging.DEBUG
    else:
        root_level = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)

    # Clear existing handlers to avoid duplicate logs
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    formatter = logging.Formatter(DEFAULT_FORMAT)
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    for module_name in TECHNICAL_MODULES:
        module_logger = logging.getLogger(module_name)

        if verbose:
            module_logger.setLevel(logging.DEBUG)
        else:
            module_logger.setLevel(logging.WARNING)

        if not module_logger.handlers:
            module_logger.addHandler(handler)
            module_logger.propagate = False


def apply_log_level(level_name: str) -> None:
    """Set the root logger level from a profile string such as ``"debug"``.

    Unknown names are ignored with a warning.
    """
    level = LOG_LEVELS.get(level_name.lower())
    if level is None:
        logging.getLogger(__name__).warning(f"Unknown log level: {level_name}")
        return
    logging.getLogger().setLevel(level)
    if level <= logging.DEBUG:
        for module_name in TECHNICAL_MODULES:
            logging.getLogger(module_name).setLevel(logging.DEBUG)


def get_logging_status() -> Dict[str, Any]:
    """Get the current logging status of all udtflow modules.

    Returns:
        Dictionary with logging status information
    """
    root_logger = logging.getLogger()
    root_level = logging.getLevelName(root_logger.level)

    modules = {}

    for name in logging.root.manager.loggerDict:
        if not name.startswith("udtflow"):
            continue
        logger = logging.getLogger(name)
        modules[name] = {
            "level": logging.getLevelName(logger.level),
            "propagate": logger.propagate,
            "has_handlers": bool(logger.handlers),
        }

    return {"root_level": root_level, "modules": modules}
