"""Table catalog backed by an in-memory DuckDB connection."""

import os
import threading
from typing import Any, Dict, List, Optional

import duckdb
import pandas as pd
import pyarrow as pa

from udtflow.core.relation import Relation
from udtflow.exceptions import TableNotFoundError
from udtflow.logging import get_logger

logger = get_logger(__name__)

MEMORY_DATABASE = ":memory:"


def _quote_identifier(name: str) -> str:
    return '"{}"'.format(name.replace('"', '""'))


class TableCatalog:
    """Named input tables for table-argument invocations.

    Tables are registered from pandas DataFrames, pyarrow tables, relations
    or CSV files and scanned back in their natural row order.
    """

    def __init__(self, database_path: Optional[str] = None):
        self.database_path = database_path or MEMORY_DATABASE
        self._connection: Optional[duckdb.DuckDBPyConnection] = duckdb.connect(
            self.database_path
        )
        # DuckDB connections are not safe for concurrent use from threads
        self._lock = threading.RLock()
        self._views: Dict[str, Any] = {}
        logger.debug(f"TableCatalog initialized: path={self.database_path}")

    @property
    def connection(self) -> duckdb.DuckDBPyConnection:
        if self._connection is None:
            raise TableNotFoundError("Table catalog has been closed")
        return self._connection

    def register(self, name: str, data: Any) -> None:
        """Register ``data`` under ``name``, replacing any previous table.

        Args:
            name: Table name
            data: pandas DataFrame, pyarrow Table or Relation

        Raises:
            TypeError: If the data type is not supported
        """
        if isinstance(data, Relation):
            data = data.to_arrow()
        elif not isinstance(data, (pd.DataFrame, pa.Table)):
            raise TypeError(
                f"Cannot register {type(data).__name__} as table '{name}'; "
                "expected DataFrame, pyarrow Table or Relation"
            )

        with self._lock:
            self.connection.register(name, data)
            # Keep a reference so the registered view stays valid
            self._views[name.lower()] = data
        logger.debug(f"Registered table {name} with {len(data)} rows")

    def load_csv(self, name: str, path: str) -> None:
        """Load a CSV file into a table called ``name``.

        Raises:
            FileNotFoundError: If the file does not exist
        """
        if not os.path.exists(path):
            raise FileNotFoundError(f"CSV file not found: {path}")

        with self._lock:
            self.connection.execute(
                f"CREATE OR REPLACE TABLE {_quote_identifier(name)} AS "
                "SELECT * FROM read_csv_auto(?)",
                [path],
            )
        logger.debug(f"Loaded table {name} from {path}")

    def drop(self, name: str) -> None:
        if not self.table_exists(name):
            raise TableNotFoundError(f"Table '{name}' not found")
        with self._lock:
            if self._views.pop(name.lower(), None) is not None:
                self.connection.unregister(name)
            else:
                self.connection.execute(f"DROP TABLE {_quote_identifier(name)}")

    def table_exists(self, name: str) -> bool:
        if name.lower() in self._views:
            return True
        with self._lock:
            try:
                self.connection.execute(
                    f"SELECT * FROM {_quote_identifier(name)} LIMIT 0"
                )
            except duckdb.CatalogException:
                return False
        return True

    def list_tables(self) -> List[str]:
        with self._lock:
            result = self.connection.execute(
                "SELECT table_name FROM information_schema.tables"
            ).fetchall()
        names = {view: view for view in self._views}
        names.update({row[0].lower(): row[0] for row in result})
        return sorted(names.values(), key=str.lower)

    def get_table_schema(self, name: str) -> Dict[str, str]:
        """Return a mapping of column name to DuckDB type for ``name``.

        Raises:
            TableNotFoundError: If the table does not exist
        """
        if not self.table_exists(name):
            raise TableNotFoundError(f"Table '{name}' not found")
        with self._lock:
            result = self.connection.execute(
                f"DESCRIBE SELECT * FROM {_quote_identifier(name)}"
            ).fetchall()
        return {row[0]: row[1] for row in result}

    def scan(self, name: str) -> Relation:
        """Read every row of ``name`` in natural order.

        Raises:
            TableNotFoundError: If the table does not exist
        """
        if not self.table_exists(name):
            raise TableNotFoundError(
                f"Table '{name}' not found (available: {self.list_tables()})"
            )
        with self._lock:
            cursor = self.connection.execute(
                f"SELECT * FROM {_quote_identifier(name)}"
            )
            columns = [column[0] for column in cursor.description]
            rows = cursor.fetchall()
        logger.debug(f"Scanned table {name}: {len(rows)} rows")
        return Relation(columns, rows)

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None
            self._views.clear()
