"""Exception hierarchy for the udtflow runtime."""

from typing import Any, List, Optional, Tuple


class UDTFlowError(Exception):
    """Base exception for udtflow errors."""


class ConfigurationError(UDTFlowError):
    """Raised when a profile or environment override cannot be applied."""


class NotFoundError(UDTFlowError):
    """Raised when a table function name is not defined."""

    def __init__(self, name: str, available: Optional[List[str]] = None):
        self.name = name
        self.available = available or []
        message = f"Table function '{name}' is not defined"
        if self.available:
            message += f" (available: {', '.join(self.available)})"
        super().__init__(message)


class FunctionExistsError(UDTFlowError):
    """Raised when defining a name that exists and replacement is disabled."""


class InvalidDefinitionError(UDTFlowError):
    """Raised when a table function definition is malformed."""


class SchemaDefinitionError(InvalidDefinitionError):
    """Raised when a parameter or output schema cannot be parsed."""


class UnsupportedFeatureError(UDTFlowError):
    """Raised when a call needs a capability the runtime does not enable."""


class InvalidArgumentError(UDTFlowError):
    """Raised when call arguments do not match the function parameters."""


class InvalidPartitionKeyError(InvalidArgumentError):
    """Raised when a partition key column is missing or cannot be grouped."""

    def __init__(
        self,
        column: str,
        available: Optional[List[str]] = None,
        reason: Optional[str] = None,
    ):
        self.column = column
        self.available = available or []
        self.reason = reason
        if reason is not None:
            message = f"Cannot partition by column '{column}': {reason}"
        else:
            message = (
                f"Partition column '{column}' not found in input columns: "
                f"{self.available}"
            )
        super().__init__(message)


class TableNotFoundError(UDTFlowError):
    """Raised when a table reference cannot be resolved in the catalog."""


class InvocationCancelledError(UDTFlowError):
    """Raised when an invocation is cancelled before all partitions finish."""


class HandlerError(UDTFlowError):
    """Base class for failures raised by user handler code.

    The original exception is chained as ``__cause__``.
    """

    phase = "handler"

    def __init__(
        self,
        function_name: str,
        partition_ordinal: int,
        partition_key: Optional[Tuple[Any, ...]],
        error: BaseException,
    ):
        self.function_name = function_name
        self.partition_ordinal = partition_ordinal
        self.partition_key = partition_key
        self.error = error
        super().__init__(self._format_message())

    def _location(self) -> str:
        location = f"partition {self.partition_ordinal}"
        if self.partition_key is not None:
            location += f" (key={self.partition_key!r})"
        return location

    def _format_message(self) -> str:
        return (
            f"{self.phase} of '{self.function_name}' failed in "
            f"{self._location()}: {self.error}"
        )


class HandlerSetupError(HandlerError):
    """Raised when a handler's constructor fails."""

    phase = "Setup"


class HandlerRowError(HandlerError):
    """Raised when the per-row step fails for one input row."""

    phase = "Row processing"

    def __init__(
        self,
        function_name: str,
        partition_ordinal: int,
        partition_key: Optional[Tuple[Any, ...]],
        row_ordinal: int,
        error: BaseException,
    ):
        self.row_ordinal = row_ordinal
        super().__init__(function_name, partition_ordinal, partition_key, error)

    def _location(self) -> str:
        return f"row {self.row_ordinal} of {super()._location()}"


class HandlerTeardownError(HandlerError):
    """Raised when a handler's ``terminate`` step fails."""

    phase = "Teardown"


class SchemaMismatchError(UDTFlowError):
    """Raised when a produced row disagrees with the declared output schema."""

    def __init__(
        self,
        message: str,
        function_name: Optional[str] = None,
        phase: Optional[str] = None,
        row: Any = None,
    ):
        self.function_name = function_name
        self.phase = phase
        self.row = row
        super().__init__(message)
