"""Manager for discovering and registering Python table functions.

This module scans a project's UDTF directory for handlers decorated with
``@udtf`` and registers them with a ``TableFunctionRuntime``.
"""

import glob
import importlib.util
import inspect
import os
from typing import Any, Dict, List, Optional

from udtflow.exceptions import UDTFlowError
from udtflow.logging import get_logger

logger = get_logger(__name__)


class UDTFDiscoveryError(UDTFlowError):
    """Raised when UDTF discovery fails in strict mode."""


class PythonUDTFManager:
    """Manages discovery and registration of Python UDTFs.

    Handlers are keyed by their table function name (the ``name`` given to
    ``@udtf`` or the handler's own name), which is how calls refer to them.
    """

    def __init__(self, project_dir: Optional[str] = None):
        """Initialize a PythonUDTFManager.

        Args:
            project_dir: Path to project directory (default: current working directory)
        """
        self.project_dir = project_dir or os.getcwd()
        self.udtfs: Dict[str, Any] = {}
        self.udtf_info: Dict[str, Dict[str, Any]] = {}
        self.discovery_errors: Dict[str, str] = {}

    def discover_udtfs(
        self, udtf_dir: str = "python_udtfs", strict: bool = False
    ) -> Dict[str, Any]:
        """Discover UDTFs in the project structure.

        Args:
            udtf_dir: Path to the UDTF directory relative to project_dir
            strict: Raise instead of recording errors

        Returns:
            Dictionary of UDTF name to handler

        Raises:
            UDTFDiscoveryError: In strict mode, if the directory is missing or
                a module fails to import
        """
        self.udtfs = {}
        self.udtf_info = {}
        self.discovery_errors = {}
        directory = os.path.join(self.project_dir, udtf_dir)

        if not os.path.isdir(directory):
            message = f"UDTF directory not found: {directory}"
            self.discovery_errors["directory_not_found"] = message
            if strict:
                raise UDTFDiscoveryError(message)
            logger.warning(message)
            return self.udtfs

        for py_file in sorted(glob.glob(f"{directory}/**/*.py", recursive=True)):
            self._load_module(py_file, strict)

        logger.info(f"Discovered {len(self.udtfs)} UDTF(s) in {directory}")
        return self.udtfs

    def _load_module(self, py_file: str, strict: bool) -> None:
        module_path = os.path.relpath(py_file, self.project_dir)
        module_name = os.path.splitext(module_path)[0].replace(os.path.sep, ".")

        try:
            spec = importlib.util.spec_from_file_location(module_name, py_file)
            if spec is None or spec.loader is None:
                raise ImportError(f"Failed to load spec for {py_file}")
            module = importlib.util.module_from_spec(spec)
            spec.loader.exec_module(module)
        except Exception as e:
            message = f"Error loading UDTFs from {py_file}: {e}"
            self.discovery_errors[module_name] = message
            if strict:
                raise UDTFDiscoveryError(message) from e
            logger.error(message)
            return

        for attr_name, handler in inspect.getmembers(module):
            if not getattr(handler, "_is_udtflow_udtf", False):
                continue
            # Skip handlers imported from another module
            if getattr(handler, "__module__", module_name) != module.__name__:
                continue

            udtf_name = handler._udtf_name.lower()
            if udtf_name in self.udtfs:
                logger.warning(
                    f"UDTF {udtf_name} in {module_name} replaces the one from "
                    f"{self.udtf_info[udtf_name]['module']}"
                )

            self.udtfs[udtf_name] = handler
            self.udtf_info[udtf_name] = {
                "module": module_name,
                "name": udtf_name,
                "original_name": attr_name,
                "type": handler._udtf_kind,
                "stateful": inspect.isclass(handler),
                "docstring": inspect.getdoc(handler) or "",
                "file_path": py_file,
                "signature": handler._signature,
                "returns": handler._returns,
                "param_info": handler._param_info,
            }
            logger.debug(f"Discovered UDTF: {udtf_name} ({handler._udtf_kind})")

    def get_udtf(self, udtf_name: str) -> Optional[Any]:
        return self.udtfs.get(udtf_name.lower())

    def get_udtf_info(self, udtf_name: str) -> Optional[Dict[str, Any]]:
        """Get information about a UDTF.

        Args:
            udtf_name: Name of the UDTF

        Returns:
            Dictionary of UDTF information or None if not found
        """
        return self.udtf_info.get(udtf_name.lower())

    def list_udtfs(self) -> List[Dict[str, Any]]:
        """List all discovered UDTFs with their information."""
        return [self.udtf_info[name] for name in sorted(self.udtfs)]

    def register_with_runtime(
        self, runtime: Any, udtf_names: Optional[List[str]] = None
    ) -> List[str]:
        """Register discovered UDTFs with a runtime.

        Args:
            runtime: ``TableFunctionRuntime`` instance
            udtf_names: Optional list of names to register. If None, registers all.

        Returns:
            Names that were registered
        """
        registered = []
        names_to_register = udtf_names or sorted(self.udtfs)

        for name in names_to_register:
            handler = self.get_udtf(name)
            if handler is None:
                logger.warning(f"UDTF {name} not found, skipping registration")
                continue
            try:
                runtime.register(handler, name=name)
            except UDTFlowError as e:
                logger.error(f"Failed to register UDTF {name}: {e}")
                continue
            registered.append(name.lower())
            logger.debug(f"Registered UDTF {name} with runtime")

        return registered
