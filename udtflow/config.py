"""Profile-based runtime configuration.

Profiles live in ``profiles/<name>.yml`` under the project root::

    runtime:
      parallel: true
      max_workers: 8
      validate_output: true
      platform_revision: "2"
      log_level: info
      udtf_dir: python_udtfs

Environment variables (``UDTFLOW_PARALLEL``, ``UDTFLOW_MAX_WORKERS``,
``UDTFLOW_VALIDATE_OUTPUT``, ``UDTFLOW_PLATFORM_REVISION``,
``UDTFLOW_LOG_LEVEL``) override profile values.
"""

import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, FrozenSet, List, Optional

import yaml

from udtflow.core.capabilities import (
    LATEST_REVISION,
    Capability,
    resolve_capabilities,
)
from udtflow.exceptions import ConfigurationError
from udtflow.logging import LOG_LEVELS, get_logger

logger = get_logger(__name__)

DEFAULT_PROFILE = "dev"
ENV_PREFIX = "UDTFLOW_"


@dataclass
class RuntimeConfig:
    """Settings for a ``TableFunctionRuntime``."""

    parallel: bool = False
    max_workers: int = 4
    validate_output: bool = True
    platform_revision: str = LATEST_REVISION
    features: Optional[List[str]] = None
    log_level: str = "info"
    udtf_dir: str = "python_udtfs"
    profile: str = field(default=DEFAULT_PROFILE, compare=False)

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Check value ranges.

        Raises:
            ConfigurationError: If a value is out of range
        """
        if not isinstance(self.max_workers, int) or self.max_workers < 1:
            raise ConfigurationError(
                f"max_workers must be a positive integer, got {self.max_workers!r}"
            )
        if self.log_level.lower() not in LOG_LEVELS:
            raise ConfigurationError(f"Unknown log level '{self.log_level}'")
        resolve_capabilities(self.platform_revision, self.features)

    @property
    def capabilities(self) -> FrozenSet[Capability]:
        return resolve_capabilities(self.platform_revision, self.features)

    @classmethod
    def from_dict(cls, config: Dict[str, Any], profile: str = DEFAULT_PROFILE):
        """Create a RuntimeConfig from a ``runtime`` mapping.

        Raises:
            ConfigurationError: If the mapping has unknown keys or bad values
        """
        if not isinstance(config, dict):
            raise ConfigurationError(
                f"Profile '{profile}' runtime section must be a mapping"
            )

        known = {f.name for f in fields(cls)} - {"profile"}
        unknown = sorted(set(config) - known)
        if unknown:
            raise ConfigurationError(
                f"Profile '{profile}' has unknown runtime settings: {unknown}"
            )

        values = dict(config)
        try:
            if "parallel" in values:
                values["parallel"] = _to_bool(values["parallel"])
            if "validate_output" in values:
                values["validate_output"] = _to_bool(values["validate_output"])
            if "max_workers" in values:
                values["max_workers"] = int(values["max_workers"])
            if "platform_revision" in values:
                values["platform_revision"] = str(values["platform_revision"])
            if "features" in values and values["features"] is not None:
                values["features"] = [str(f) for f in values["features"]]
            for name in ("log_level", "udtf_dir"):
                if name in values:
                    values[name] = str(values[name])
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                f"Invalid setting in profile '{profile}': {e}"
            ) from e

        return cls(profile=profile, **values)


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"not a boolean: {value!r}")


def read_profile(project_dir: str, profile: str = DEFAULT_PROFILE) -> Dict[str, Any]:
    """Read the ``runtime`` section of a profile file.

    Returns an empty dictionary when the profile does not exist.

    Raises:
        ConfigurationError: If the file is not valid YAML
    """
    for extension in ("yml", "yaml"):
        path = os.path.join(project_dir, "profiles", f"{profile}.{extension}")
        if os.path.exists(path):
            break
    else:
        logger.debug(f"No profile '{profile}' found in {project_dir}, using defaults")
        return {}

    try:
        with open(path, "r", encoding="utf-8") as f:
            content = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in profile {path}: {e}") from e

    if not isinstance(content, dict):
        raise ConfigurationError(f"Profile {path} must contain a mapping")

    logger.debug(f"Loaded profile '{profile}' from {path}")
    return content.get("runtime") or {}


def env_overrides() -> Dict[str, Any]:
    """Collect ``UDTFLOW_*`` overrides from the environment."""
    overrides: Dict[str, Any] = {}
    for name in ("parallel", "max_workers", "validate_output", "platform_revision"):
        value = os.environ.get(f"{ENV_PREFIX}{name.upper()}")
        if value is not None:
            overrides[name] = value
    log_level = os.environ.get(f"{ENV_PREFIX}LOG_LEVEL")
    if log_level is not None:
        overrides["log_level"] = log_level
    return overrides


def load_config(
    project_dir: Optional[str] = None, profile: str = DEFAULT_PROFILE
) -> RuntimeConfig:
    """Load runtime configuration for ``profile``.

    Args:
        project_dir: Project root (default: current working directory)
        profile: Profile name

    Returns:
        RuntimeConfig with environment overrides applied
    """
    project_dir = project_dir or os.getcwd()
    settings = read_profile(project_dir, profile)
    if not isinstance(settings, dict):
        raise ConfigurationError(
            f"Profile '{profile}' runtime section must be a mapping"
        )
    overrides = env_overrides()
    if overrides:
        logger.debug(f"Applying environment overrides: {sorted(overrides)}")
    return RuntimeConfig.from_dict({**settings, **overrides}, profile=profile)
