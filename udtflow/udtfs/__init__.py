"""Python UDTF declaration and discovery."""

from .decorators import udtf
from .manager import PythonUDTFManager, UDTFDiscoveryError

__all__ = ["udtf", "PythonUDTFManager", "UDTFDiscoveryError"]
