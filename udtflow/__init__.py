"""udtflow - run Python table functions (UDTFs) locally."""

__version__ = "0.1.0"
__package_name__ = "udtflow"

# Initialize logging with default configuration
from udtflow.logging import configure_logging

configure_logging()

from udtflow.config import RuntimeConfig, load_config
from udtflow.core.capabilities import Capability
from udtflow.core.planner import lit, table
from udtflow.core.relation import Relation
from udtflow.core.row import Row
from udtflow.core.runtime import TableFunctionRuntime
from udtflow.exceptions import (
    HandlerRowError,
    HandlerSetupError,
    HandlerTeardownError,
    InvalidPartitionKeyError,
    NotFoundError,
    SchemaMismatchError,
    UDTFlowError,
)
from udtflow.udtfs.decorators import udtf

__all__ = [
    "Capability",
    "HandlerRowError",
    "HandlerSetupError",
    "HandlerTeardownError",
    "InvalidPartitionKeyError",
    "NotFoundError",
    "Relation",
    "Row",
    "RuntimeConfig",
    "SchemaMismatchError",
    "TableFunctionRuntime",
    "UDTFlowError",
    "lit",
    "load_config",
    "table",
    "udtf",
]
