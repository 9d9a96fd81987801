"""Invocation planner: turns a call site into partitions."""

from dataclasses import dataclass, field
from typing import (
    Any,
    Dict,
    FrozenSet,
    Iterator,
    List,
    Optional,
    Sequence,
    Tuple,
    Union,
)

import pandas as pd
import pyarrow as pa

from udtflow.core.capabilities import Capability, resolve_capabilities
from udtflow.core.catalog import TableCatalog
from udtflow.core.registry import FunctionDefinition
from udtflow.core.relation import Relation
from udtflow.core.row import Row
from udtflow.core.schema import accepts, normalize_value
from udtflow.exceptions import (
    InvalidArgumentError,
    InvalidPartitionKeyError,
    TableNotFoundError,
    UnsupportedFeatureError,
)
from udtflow.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Literal:
    """A constant partition key expression, as in ``PARTITION BY (1)``."""

    value: Any


def lit(value: Any) -> Literal:
    return Literal(value)


@dataclass(frozen=True)
class TableRef:
    """Reference to a table registered in the catalog."""

    name: str


def table(name: str) -> TableRef:
    return TableRef(name)


TableLike = Union[str, TableRef, Relation, pd.DataFrame, pa.Table]
PartitionKeyItem = Union[str, Literal, Any]


@dataclass
class ScalarCall:
    """``name(arg1, arg2, ...)``"""

    args: Tuple[Any, ...] = ()


@dataclass
class TableCall:
    """``name(TABLE(t), arg1, ...) [PARTITION BY (k1, ...)]``"""

    table: TableLike
    args: Tuple[Any, ...] = ()
    partition_by: Optional[Sequence[PartitionKeyItem]] = None


CallSite = Union[ScalarCall, TableCall]


@dataclass
class Partition:
    """A group of input rows consumed by exactly one handler instance.

    Scalar-mode partitions hold no table rows; their single input is the
    scalar argument tuple.
    """

    ordinal: int
    key: Optional[Tuple[Any, ...]]
    rows: List[Row] = field(default_factory=list)
    scalar_args: Tuple[Any, ...] = ()
    table_index: Optional[int] = None

    @property
    def scalar(self) -> bool:
        return self.table_index is None

    def __len__(self) -> int:
        return 1 if self.scalar else len(self.rows)

    def iter_arguments(self) -> Iterator[Tuple[Any, ...]]:
        """Yield the positional arguments of each per-row step call."""
        if self.scalar:
            yield self.scalar_args
            return
        before = self.scalar_args[: self.table_index]
        after = self.scalar_args[self.table_index :]
        for row in self.rows:
            yield before + (row,) + after


def _freeze(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    if isinstance(value, dict):
        return tuple((key, _freeze(item)) for key, item in value.items())
    if isinstance(value, (set, frozenset)):
        return frozenset(_freeze(item) for item in value)
    return value


def _key_value(column: str, value: Any) -> Any:
    """Return ``value`` in a form usable as a grouping key.

    LIST and STRUCT values become tuples.

    Raises:
        InvalidPartitionKeyError: If the value cannot be compared by equality
    """
    frozen = _freeze(value)
    try:
        hash(frozen)
    except TypeError:
        raise InvalidPartitionKeyError(
            column,
            reason=f"values of type {type(value).__name__} cannot be grouped",
        ) from None
    return frozen


class InvocationPlanner:
    """Resolves arguments and partitions the input of one invocation."""

    def __init__(
        self,
        catalog: Optional[TableCatalog] = None,
        capabilities: Optional[FrozenSet[Capability]] = None,
    ):
        self.catalog = catalog
        self.capabilities = (
            capabilities if capabilities is not None else resolve_capabilities()
        )

    def plan(self, definition: FunctionDefinition, call: CallSite) -> List[Partition]:
        """Produce the partitions for ``call``.

        Raises:
            InvalidArgumentError: If arguments do not match the parameters
            InvalidPartitionKeyError: If a partition column does not exist
            TableNotFoundError: If a named table does not exist
            UnsupportedFeatureError: If table arguments are disabled
        """
        if isinstance(call, ScalarCall):
            return self._plan_scalar(definition, call)
        if isinstance(call, TableCall):
            return self._plan_table(definition, call)
        raise InvalidArgumentError(f"Unsupported call site: {call!r}")

    def _plan_scalar(
        self, definition: FunctionDefinition, call: ScalarCall
    ) -> List[Partition]:
        if definition.has_table_argument:
            raise InvalidArgumentError(
                f"Table function '{definition.name}' requires a TABLE argument"
            )
        args = self._check_scalar_args(definition, call.args)
        logger.debug(f"Planned scalar call {definition.name}{args}")
        return [Partition(ordinal=0, key=None, scalar_args=args)]

    def _plan_table(
        self, definition: FunctionDefinition, call: TableCall
    ) -> List[Partition]:
        if Capability.TABLE_ARGUMENT_FUNCTIONS not in self.capabilities:
            raise UnsupportedFeatureError(
                "Table-argument functions with partitioning are not enabled"
            )
        if not definition.has_table_argument:
            raise InvalidArgumentError(
                f"Table function '{definition.name}' does not take a TABLE argument"
            )

        args = self._check_scalar_args(definition, call.args)
        relation = self.resolve_table(call.table)
        key_positions = self._resolve_partition_key(relation, call.partition_by)
        partitions = self._group_rows(relation, key_positions)

        table_index = definition.table_parameter_index
        for partition in partitions:
            partition.scalar_args = args
            partition.table_index = table_index

        logger.debug(
            f"Planned {definition.name} over {len(relation)} rows into "
            f"{len(partitions)} partition(s)"
        )
        return partitions

    def resolve_table(self, table_arg: TableLike) -> Relation:
        """Materialise a table argument as a relation."""
        if isinstance(table_arg, Relation):
            return table_arg
        if isinstance(table_arg, pd.DataFrame):
            return Relation.from_pandas(table_arg)
        if isinstance(table_arg, pa.Table):
            return Relation.from_arrow(table_arg)
        if isinstance(table_arg, TableRef):
            table_arg = table_arg.name
        if isinstance(table_arg, str):
            if self.catalog is None:
                raise TableNotFoundError(
                    f"Cannot resolve table '{table_arg}' without a catalog"
                )
            return self.catalog.scan(table_arg)
        raise InvalidArgumentError(
            f"Unsupported table argument of type {type(table_arg).__name__}"
        )

    def _check_scalar_args(
        self, definition: FunctionDefinition, args: Sequence[Any]
    ) -> Tuple[Any, ...]:
        params = definition.scalar_params
        if len(args) != len(params):
            raise InvalidArgumentError(
                f"Table function '{definition.name}' expects {len(params)} scalar "
                f"argument(s), got {len(args)}"
            )

        checked = []
        for param, value in zip(params, args):
            if not accepts(param.data_type, value):
                raise InvalidArgumentError(
                    f"Argument '{param.name}' of '{definition.name}' expects "
                    f"{param.data_type.value}, got {type(value).__name__} {value!r}"
                )
            checked.append(normalize_value(param.data_type, value))
        return tuple(checked)

    def _resolve_partition_key(
        self,
        relation: Relation,
        partition_by: Optional[Sequence[PartitionKeyItem]],
    ) -> List[Union[int, Literal]]:
        """Map each key item to a column position or a constant.

        No ``PARTITION BY`` is the same as partitioning by a constant: every
        row gets the empty key.
        """
        if partition_by is None:
            return []
        if isinstance(partition_by, (str, Literal)):
            partition_by = [partition_by]

        resolved: List[Union[int, Literal]] = []
        for item in partition_by:
            if isinstance(item, str):
                try:
                    resolved.append(relation.column_index(item))
                except KeyError:
                    raise InvalidPartitionKeyError(item, relation.columns) from None
            elif isinstance(item, Literal):
                resolved.append(item)
            else:
                resolved.append(Literal(item))
        return resolved

    def _group_rows(
        self, relation: Relation, key_positions: List[Union[int, Literal]]
    ) -> List[Partition]:
        """Group rows by key, ordering partitions by first appearance."""
        constant_only = all(isinstance(item, Literal) for item in key_positions)
        constant_key = tuple(
            item.value for item in key_positions if isinstance(item, Literal)
        )

        if constant_only:
            rows = list(relation.iter_rows())
            return [Partition(ordinal=0, key=constant_key, rows=rows)]

        groups: Dict[Tuple[Any, ...], List[Row]] = {}
        for row in relation.iter_rows():
            key = tuple(
                item.value
                if isinstance(item, Literal)
                else _key_value(relation.columns[item], row[item])
                for item in key_positions
            )
            groups.setdefault(key, []).append(row)

        return [
            Partition(ordinal=ordinal, key=key, rows=rows)
            for ordinal, (key, rows) in enumerate(groups.items())
        ]
