"""Environment variable utilities for udtflow projects.

A project root is a directory holding a ``profiles`` or ``python_udtfs``
folder. Its ``.env`` file, if any, is loaded so ``UDTFLOW_*`` overrides
can live next to the project.
"""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from udtflow.logging import get_logger

logger = get_logger(__name__)

PROJECT_MARKERS = ("profiles", "python_udtfs")


def find_project_root(start_path: Optional[str] = None) -> Optional[Path]:
    """Find the project root by searching upwards for a marker directory.

    Args:
        start_path: Path to start searching from (defaults to current directory)

    Returns:
        Path to the project root, or None if not found
    """
    if start_path is None:
        start_path = os.getcwd()

    current = Path(start_path).resolve()

    for parent in [current, *current.parents]:
        for marker in PROJECT_MARKERS:
            if (parent / marker).is_dir():
                logger.debug(f"Found udtflow project root at: {parent}")
                return parent

    logger.debug("No udtflow project root found")
    return None


def load_dotenv_file(project_root: Path) -> bool:
    """Load the .env file from the project root if it exists.

    Args:
        project_root: Path to the project root directory

    Returns:
        True if a .env file was loaded, False otherwise
    """
    env_file = project_root / ".env"

    if not env_file.exists():
        logger.debug(f"No .env file found at: {env_file}")
        return False

    loaded = load_dotenv(env_file, override=True)
    if loaded:
        logger.debug(f"Loaded environment variables from: {env_file}")
    else:
        logger.debug(f"No variables loaded from .env file: {env_file}")
    return loaded


def setup_environment(start_path: Optional[str] = None) -> bool:
    """Load the .env file of the enclosing project, if any.

    Args:
        start_path: Path to start searching from (defaults to current directory)

    Returns:
        True if a .env file was found and loaded, False otherwise
    """
    project_root = find_project_root(start_path)

    if project_root is None:
        logger.debug("No udtflow project found, skipping .env file loading")
        return False

    return load_dotenv_file(project_root)


def get_env_var(name: str, default: Optional[str] = None) -> Optional[str]:
    """Get an environment variable with optional default."""
    return os.environ.get(name, default)
