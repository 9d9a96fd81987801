"""Row dispatcher: runs one handler instance per partition.

Each partition moves through the states

    CREATED -> INITIALIZED -> PROCESSING -> TERMINATING -> DONE

or ends in FAILED. Rows of a partition are processed strictly in order and
every row produced by a step is consumed before the next step starts.
"""

import threading
import time
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence, Tuple

from udtflow.core.planner import Partition
from udtflow.core.registry import FunctionDefinition
from udtflow.core.schema import accepts, normalize_value
from udtflow.core.stats import ExecutionStats
from udtflow.exceptions import (
    HandlerRowError,
    HandlerSetupError,
    HandlerTeardownError,
    InvocationCancelledError,
    SchemaMismatchError,
    UDTFlowError,
)
from udtflow.logging import get_logger

logger = get_logger(__name__)


class PartitionState(Enum):
    CREATED = "created"
    INITIALIZED = "initialized"
    PROCESSING = "processing"
    TERMINATING = "terminating"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS = {
    PartitionState.CREATED: {PartitionState.INITIALIZED, PartitionState.FAILED},
    PartitionState.INITIALIZED: {PartitionState.PROCESSING, PartitionState.FAILED},
    PartitionState.PROCESSING: {PartitionState.TERMINATING, PartitionState.FAILED},
    PartitionState.TERMINATING: {PartitionState.DONE, PartitionState.FAILED},
    PartitionState.DONE: set(),
    PartitionState.FAILED: set(),
}


@dataclass
class PartitionResult:
    """Rows produced by one partition, or the error that stopped it."""

    partition: Partition
    rows: List[Tuple[Any, ...]] = field(default_factory=list)
    state: PartitionState = PartitionState.CREATED
    error: Optional[UDTFlowError] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class OutputValidator:
    """Checks produced rows against a function's output schema."""

    def __init__(self, definition: FunctionDefinition, enabled: bool = True):
        self.definition = definition
        self.enabled = enabled

    def validate(self, row: Any, phase: str, row_ordinal: Optional[int]) -> Tuple:
        """Return ``row`` as a plain tuple.

        Raises:
            SchemaMismatchError: If the row shape or a value type disagrees
                with the declared schema
        """
        where = phase if row_ordinal is None else f"{phase} (row {row_ordinal})"
        if not isinstance(row, (tuple, list)):
            raise SchemaMismatchError(
                f"'{self.definition.name}' produced {type(row).__name__} {row!r} "
                f"in {where}; rows must be tuples",
                function_name=self.definition.name,
                phase=phase,
                row=row,
            )

        values = tuple(row)
        columns = self.definition.output_schema
        if len(values) != len(columns):
            raise SchemaMismatchError(
                f"'{self.definition.name}' produced a row with {len(values)} "
                f"value(s) in {where} but declares {len(columns)} column(s)",
                function_name=self.definition.name,
                phase=phase,
                row=row,
            )
        if not self.enabled:
            return values

        checked = []
        for column, value in zip(columns, values):
            if not accepts(column.data_type, value):
                raise SchemaMismatchError(
                    f"Column '{column.name}' of '{self.definition.name}' expects "
                    f"{column.data_type.value}, got {type(value).__name__} "
                    f"{value!r} in {where}",
                    function_name=self.definition.name,
                    phase=phase,
                    row=row,
                )
            checked.append(normalize_value(column.data_type, value))
        return tuple(checked)


class HandlerSlot:
    """Owns the handler instance of a single partition.

    The slot is created for one partition and discarded once the partition
    reaches a terminal state; no other partition can see its instance.
    """

    def __init__(
        self,
        definition: FunctionDefinition,
        partition: Partition,
        validator: OutputValidator,
    ):
        self.definition = definition
        self.partition = partition
        self.validator = validator
        self.state = PartitionState.CREATED
        self.instance: Any = None

    def _transition(self, new_state: PartitionState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Invalid partition state transition {self.state.value} -> "
                f"{new_state.value}"
            )
        logger.debug(
            f"{self.definition.name} partition {self.partition.ordinal}: "
            f"{self.state.value} -> {new_state.value}"
        )
        self.state = new_state

    def fail(self) -> None:
        if self.state not in (PartitionState.DONE, PartitionState.FAILED):
            self._transition(PartitionState.FAILED)
        self.instance = None

    def setup(self) -> None:
        if self.definition.has_lifecycle:
            try:
                self.instance = self.definition.handler()
            except Exception as e:
                raise HandlerSetupError(
                    self.definition.name,
                    self.partition.ordinal,
                    self.partition.key,
                    e,
                ) from e
        self._transition(PartitionState.INITIALIZED)

    def start_processing(self) -> None:
        self._transition(PartitionState.PROCESSING)

    def _step(self) -> Callable:
        if self.definition.has_lifecycle:
            return self.instance.eval
        return self.definition.handler

    def process(
        self,
        row_ordinal: int,
        arguments: Sequence[Any],
        emit: Callable[[Tuple], None],
    ) -> None:
        """Run the per-row step and emit every row it produces."""

        def row_error(error: Exception) -> HandlerRowError:
            return HandlerRowError(
                self.definition.name,
                self.partition.ordinal,
                self.partition.key,
                row_ordinal,
                error,
            )

        try:
            produced = self._step()(*arguments)
        except Exception as e:
            raise row_error(e) from e
        self._drain(produced, "eval", row_ordinal, emit, row_error)

    def teardown(self, emit: Callable[[Tuple], None]) -> None:
        self._transition(PartitionState.TERMINATING)
        terminate = getattr(self.instance, "terminate", None)
        if self.definition.has_lifecycle and terminate is not None:

            def teardown_error(error: Exception) -> HandlerTeardownError:
                return HandlerTeardownError(
                    self.definition.name,
                    self.partition.ordinal,
                    self.partition.key,
                    error,
                )

            try:
                produced = terminate()
            except Exception as e:
                raise teardown_error(e) from e
            self._drain(produced, "terminate", None, emit, teardown_error)

        self._transition(PartitionState.DONE)
        self.instance = None

    def _drain(
        self,
        produced: Any,
        phase: str,
        row_ordinal: Optional[int],
        emit: Callable[[Tuple], None],
        wrap_error: Callable[[Exception], UDTFlowError],
    ) -> None:
        """Consume a step's output eagerly, validating each row."""
        if produced is None:
            return
        if not isinstance(produced, Iterable) or isinstance(produced, (str, bytes)):
            raise SchemaMismatchError(
                f"'{self.definition.name}' {phase} must yield rows or return an "
                f"iterable of rows, got {type(produced).__name__}",
                function_name=self.definition.name,
                phase=phase,
                row=produced,
            )

        iterator = iter(produced)
        while True:
            try:
                item = next(iterator)
            except StopIteration:
                return
            except Exception as e:
                raise wrap_error(e) from e
            emit(self.validator.validate(item, phase, row_ordinal))


class PartitionExecutionContext:
    """Context for executing a partition with consistent logging."""

    def __init__(self, function_name: str, partition: Partition):
        self.function_name = function_name
        self.partition = partition
        self.start_time: float = 0.0

    def __enter__(self):
        self.start_time = time.time()
        logger.debug(
            f"Starting {self.function_name} partition {self.partition.ordinal} "
            f"(key={self.partition.key!r}, rows={len(self.partition)})"
        )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = time.time() - self.start_time
        if exc_type is None:
            logger.debug(
                f"{self.function_name} partition {self.partition.ordinal} "
                f"completed in {duration:.3f}s"
            )
        elif issubclass(exc_type, InvocationCancelledError):
            logger.info(
                f"{self.function_name} partition {self.partition.ordinal} "
                f"cancelled after {duration:.3f}s"
            )
        else:
            logger.error(
                f"{self.function_name} partition {self.partition.ordinal} "
                f"failed after {duration:.3f}s: {exc_val}"
            )
        # Don't suppress the exception
        return False


class RowDispatcher:
    """Runs partitions through their handler lifecycle.

    Args:
        parallel: Dispatch partitions to a thread pool
        max_workers: Size of the thread pool
        validate_output: Check produced values against the declared types;
            row arity is always checked
        stats: Shared statistics collector
    """

    def __init__(
        self,
        parallel: bool = False,
        max_workers: int = 4,
        validate_output: bool = True,
        stats: Optional[ExecutionStats] = None,
    ):
        if max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {max_workers}")
        self.parallel = parallel
        self.max_workers = max_workers
        self.validate_output = validate_output
        self.stats = stats or ExecutionStats()

    def dispatch(
        self,
        definition: FunctionDefinition,
        partitions: Sequence[Partition],
        cancel_event: Optional[threading.Event] = None,
    ) -> List[PartitionResult]:
        """Run every partition and return results in partition order.

        Waits until every dispatched partition has reached DONE or FAILED.
        """
        if not self.parallel or len(partitions) <= 1:
            return [
                self.run_partition(definition, partition, cancel_event)
                for partition in partitions
            ]

        logger.debug(
            f"Dispatching {len(partitions)} partitions of {definition.name} "
            f"to {self.max_workers} workers"
        )
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [
                executor.submit(self.run_partition, definition, partition, cancel_event)
                for partition in partitions
            ]
            return [future.result() for future in futures]

    def run_partition(
        self,
        definition: FunctionDefinition,
        partition: Partition,
        cancel_event: Optional[threading.Event] = None,
    ) -> PartitionResult:
        """Drive one partition from CREATED to a terminal state."""
        result = PartitionResult(partition)
        validator = OutputValidator(definition, self.validate_output)
        slot = HandlerSlot(definition, partition, validator)

        try:
            self._check_cancelled(definition, partition, cancel_event)
            with PartitionExecutionContext(definition.name, partition):
                slot.setup()
                slot.start_processing()
                for row_ordinal, arguments in enumerate(partition.iter_arguments()):
                    if row_ordinal:
                        self._check_cancelled(definition, partition, cancel_event)
                    slot.process(row_ordinal, arguments, result.rows.append)
                slot.teardown(result.rows.append)
        except (
            HandlerSetupError,
            HandlerRowError,
            HandlerTeardownError,
            SchemaMismatchError,
            InvocationCancelledError,
        ) as e:
            slot.fail()
            result.error = e
            # Partial output of a failed partition is never returned
            result.rows = []

        result.state = slot.state
        self.stats.record_partition(
            rows_in=len(partition),
            rows_out=len(result.rows),
            error=result.error,
        )
        return result

    def _check_cancelled(
        self,
        definition: FunctionDefinition,
        partition: Partition,
        cancel_event: Optional[threading.Event],
    ) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise InvocationCancelledError(
                f"Invocation of '{definition.name}' cancelled at partition "
                f"{partition.ordinal}"
            )

