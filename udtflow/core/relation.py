"""In-memory result relation."""

from typing import Any, Dict, Iterator, List, Sequence, Tuple

import pandas as pd
import pyarrow as pa

from udtflow.core.row import Row


class Relation:
    """Ordered column names plus a list of row tuples.

    Both table function inputs (after a catalog scan) and invocation
    results are carried as relations.
    """

    def __init__(self, columns: Sequence[str], rows: Sequence[Sequence[Any]] = ()):
        self.columns: List[str] = list(columns)
        self.rows: List[Tuple[Any, ...]] = [tuple(row) for row in rows]

    @classmethod
    def from_pandas(cls, df: pd.DataFrame) -> "Relation":
        """Build a relation from a DataFrame, converting NaN to ``None``."""
        clean = df.astype(object).where(pd.notna(df), None)
        return cls(
            [str(column) for column in df.columns],
            clean.itertuples(index=False, name=None),
        )

    @classmethod
    def from_arrow(cls, table: pa.Table) -> "Relation":
        columns = table.column_names
        data = table.to_pydict()
        return cls(columns, zip(*(data[name] for name in columns)))

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[Tuple[Any, ...]]:
        return iter(self.rows)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Relation):
            return NotImplemented
        return self.columns == other.columns and self.rows == other.rows

    def __repr__(self) -> str:
        return f"Relation(columns={self.columns!r}, rows={len(self.rows)})"

    def column_index(self, name: str) -> int:
        """Case-insensitive column position lookup.

        Raises:
            KeyError: If the column does not exist
        """
        lowered = name.lower()
        for index, column in enumerate(self.columns):
            if column.lower() == lowered:
                return index
        raise KeyError(name)

    def iter_rows(self) -> Iterator[Row]:
        """Yield rows as ``Row`` objects carrying the column names."""
        for values in self.rows:
            yield Row(self.columns, values)

    def as_dicts(self) -> List[Dict[str, Any]]:
        return [dict(zip(self.columns, row)) for row in self.rows]

    def to_pandas(self) -> pd.DataFrame:
        return pd.DataFrame.from_records(self.rows, columns=self.columns)

    def to_arrow(self) -> pa.Table:
        data = {
            column: [row[index] for row in self.rows]
            for index, column in enumerate(self.columns)
        }
        return pa.table(data)
