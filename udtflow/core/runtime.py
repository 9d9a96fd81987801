"""Table function runtime: registry, planner, dispatcher and assembler."""

import threading
import time
from typing import Any, List, Optional, Sequence

from udtflow.config import RuntimeConfig, load_config
from udtflow.core.assembler import OutputAssembler
from udtflow.core.capabilities import Capability
from udtflow.core.catalog import TableCatalog
from udtflow.core.dispatcher import RowDispatcher
from udtflow.core.planner import (
    CallSite,
    InvocationPlanner,
    Literal,
    PartitionKeyItem,
    ScalarCall,
    TableCall,
    TableLike,
)
from udtflow.core.registry import FunctionDefinition, FunctionRegistry
from udtflow.core.relation import Relation
from udtflow.core.schema import SchemaLike
from udtflow.core.stats import ExecutionStats
from udtflow.exceptions import InvalidArgumentError
from udtflow.logging import apply_log_level, get_logger

logger = get_logger(__name__)


class TableFunctionRuntime:
    """Defines and invokes Python table functions.

    Example:
        runtime = TableFunctionRuntime()
        runtime.register(generate_range)
        runtime.call("generate_range", 1, 5).rows

        runtime.register_table("simple_data", df)
        runtime.call_table("count_rows", "simple_data", partition_by=["id"])
    """

    def __init__(
        self,
        config: Optional[RuntimeConfig] = None,
        catalog: Optional[TableCatalog] = None,
    ):
        self.config = config or RuntimeConfig()
        self.capabilities = self.config.capabilities
        self.catalog = catalog or TableCatalog()
        self.stats = ExecutionStats()
        self.registry = FunctionRegistry(self.capabilities)
        self.planner = InvocationPlanner(self.catalog, self.capabilities)
        self.dispatcher = RowDispatcher(
            parallel=self.config.parallel,
            max_workers=self.config.max_workers,
            validate_output=self.config.validate_output,
            stats=self.stats,
        )
        self.assembler = OutputAssembler()
        logger.debug(
            f"TableFunctionRuntime initialized: parallel={self.config.parallel}, "
            f"capabilities={sorted(c.value for c in self.capabilities)}"
        )

    @classmethod
    def from_profile(
        cls, project_dir: Optional[str] = None, profile: str = "dev"
    ) -> "TableFunctionRuntime":
        config = load_config(project_dir, profile)
        apply_log_level(config.log_level)
        return cls(config)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def close(self) -> None:
        self.catalog.close()

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities

    # Definitions

    def define(
        self,
        name: str,
        params: Optional[SchemaLike],
        output_schema: SchemaLike,
        handler: Any,
        description: Optional[str] = None,
        replace: bool = True,
    ) -> FunctionDefinition:
        return self.registry.define(
            name, params, output_schema, handler, description, replace
        )

    def register(
        self, handler: Any, name: Optional[str] = None, replace: bool = True
    ) -> FunctionDefinition:
        """Define a function from a handler decorated with ``@udtf``."""
        return self.registry.define_from(handler, name=name, replace=replace)

    def resolve(self, name: str) -> FunctionDefinition:
        return self.registry.resolve(name)

    def drop(self, name: str) -> None:
        self.registry.drop(name)

    def list_functions(self) -> List[FunctionDefinition]:
        return self.registry.list_functions()

    # Tables

    def register_table(self, name: str, data: Any) -> None:
        self.catalog.register(name, data)

    def load_csv(self, name: str, path: str) -> None:
        self.catalog.load_csv(name, path)

    # Invocation

    def call(
        self, name: str, *args: Any, cancel_event: Optional[threading.Event] = None
    ) -> Relation:
        """Invoke a scalar-argument table function: ``name(arg1, ...)``."""
        return self.invoke(name, ScalarCall(tuple(args)), cancel_event)

    def call_table(
        self,
        name: str,
        table: TableLike,
        *args: Any,
        partition_by: Optional[Sequence[PartitionKeyItem]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Relation:
        """Invoke a table-argument function.

        ``name(TABLE(table), arg1, ...) PARTITION BY (partition_by)``

        Args:
            name: Function name
            table: Catalog table name, ``TableRef``, DataFrame, pyarrow
                Table or Relation
            *args: Scalar arguments in declared order
            partition_by: Column names and/or constants (``lit(1)``);
                omitted means a single partition with every row
            cancel_event: Set to abandon partitions not yet finished
        """
        call_site = TableCall(table, tuple(args), partition_by)
        return self.invoke(name, call_site, cancel_event)

    def invoke(
        self,
        name: str,
        call_site: CallSite,
        cancel_event: Optional[threading.Event] = None,
    ) -> Relation:
        """Resolve ``name`` and run one invocation of it."""
        start_time = time.time()
        try:
            definition = self.registry.resolve(name)
        except Exception as e:
            self.stats.record_invocation(time.time() - start_time, e)
            raise
        return self.invoke_definition(definition, call_site, cancel_event, start_time)

    def invoke_definition(
        self,
        definition: FunctionDefinition,
        call_site: CallSite,
        cancel_event: Optional[threading.Event] = None,
        start_time: Optional[float] = None,
    ) -> Relation:
        """Plan, dispatch and assemble one invocation of a resolved definition.

        The definition is used as given, so a later redefinition of the same
        name does not affect this invocation.
        """
        if start_time is None:
            start_time = time.time()
        error: Optional[BaseException] = None
        try:
            partitions = self.planner.plan(definition, call_site)
            results = self.dispatcher.dispatch(definition, partitions, cancel_event)
            return self.assembler.assemble(definition, results)
        except Exception as e:
            error = e
            raise
        finally:
            self.stats.record_invocation(time.time() - start_time, error)

    def lateral(
        self,
        outer: TableLike,
        name: str,
        args: Sequence[Any],
        alias: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Relation:
        """Lateral join: ``outer, LATERAL name(outer.col, ...) alias``.

        Each outer row invokes the function once with its projected columns
        as scalar arguments. String arguments name outer columns; other
        values (or ``lit(...)``) are passed as constants.
        """
        outer_relation = self.planner.resolve_table(outer)
        definition = self.registry.resolve(name)

        projections = []
        for arg in args:
            if isinstance(arg, str):
                try:
                    projections.append(outer_relation.column_index(arg))
                except KeyError:
                    raise InvalidArgumentError(
                        f"Lateral argument '{arg}' is not a column of the outer "
                        f"relation {outer_relation.columns}"
                    ) from None
            elif isinstance(arg, Literal):
                projections.append(arg)
            else:
                projections.append(Literal(arg))

        outputs = []
        for row in outer_relation.rows:
            call_args = tuple(
                item.value if isinstance(item, Literal) else row[item]
                for item in projections
            )
            outputs.append(
                self.invoke_definition(definition, ScalarCall(call_args), cancel_event)
            )

        return self.assembler.lateral(
            outer_relation, definition, outputs, alias=alias
        )

    def get_stats(self):
        return self.stats.get_summary()

    def reset_stats(self) -> None:
        self.stats = ExecutionStats()
        self.dispatcher.stats = self.stats
