"""Output assembler: merges partition results into one relation."""

from typing import Any, List, Optional, Sequence, Tuple

from udtflow.core.dispatcher import PartitionResult
from udtflow.core.registry import FunctionDefinition
from udtflow.core.relation import Relation
from udtflow.logging import get_logger

logger = get_logger(__name__)


class OutputAssembler:
    """Concatenates partition outputs and builds lateral join results."""

    def assemble(
        self, definition: FunctionDefinition, results: Sequence[PartitionResult]
    ) -> Relation:
        """Concatenate partition outputs in partition order.

        Rows keep their production order within each partition. The order
        across partitions follows partition ordinals, which callers should
        treat as unspecified.

        Raises:
            UDTFlowError: The error of the first failed partition, if any
        """
        self.raise_for_failures(definition, results)

        rows: List[Tuple[Any, ...]] = []
        for result in results:
            rows.extend(result.rows)
        logger.debug(
            f"Assembled {len(rows)} rows of {definition.name} from "
            f"{len(results)} partition(s)"
        )
        return Relation(definition.column_names, rows)

    def raise_for_failures(
        self, definition: FunctionDefinition, results: Sequence[PartitionResult]
    ) -> None:
        failures = [result for result in results if result.failed]
        if not failures:
            return

        first = failures[0]
        for other in failures[1:]:
            logger.warning(
                f"Additional failure in {definition.name} partition "
                f"{other.partition.ordinal}: {other.error}"
            )
        raise first.error

    def lateral(
        self,
        outer: Relation,
        definition: FunctionDefinition,
        per_outer_output: Sequence[Relation],
        alias: Optional[str] = None,
    ) -> Relation:
        """Pair each outer row with every row its invocation produced.

        Outer rows whose invocation produced nothing are dropped (inner
        join). Function columns that collide with outer column names are
        prefixed with ``<alias>_``, with a numeric suffix added while the
        prefixed name is still taken.
        """
        if len(per_outer_output) != len(outer):
            raise ValueError(
                f"Expected {len(outer)} lateral outputs, got {len(per_outer_output)}"
            )

        prefix = alias or definition.name
        taken = {column.lower() for column in outer.columns}
        function_columns = []
        for column in definition.column_names:
            name = column
            if name.lower() in taken:
                name = f"{prefix}_{column}"
                suffix = 1
                while name.lower() in taken:
                    name = f"{prefix}_{column}_{suffix}"
                    suffix += 1
            taken.add(name.lower())
            function_columns.append(name)

        rows: List[Tuple[Any, ...]] = []
        for outer_row, produced in zip(outer.rows, per_outer_output):
            for inner_row in produced.rows:
                rows.append(tuple(outer_row) + tuple(inner_row))

        logger.debug(
            f"Lateral {definition.name}: {len(outer)} outer rows -> {len(rows)} rows"
        )
        return Relation(list(outer.columns) + function_columns, rows)
