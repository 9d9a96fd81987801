"""Column types, parameter specs and output schemas for table functions.

Schemas can be declared in several forms, all normalised to a tuple of
``ColumnSpec`` (or ``ParamSpec``) objects:

* a mapping ``{"n": "INT", "square": "INT"}``
* a sequence of ``(name, type)`` pairs
* a declaration string ``"n INT, square INT"`` or ``"n: int, square: int"``
"""

import datetime
import decimal
import numbers
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, List, Mapping, Sequence, Tuple, Union

from udtflow.exceptions import SchemaDefinitionError


class DataType(Enum):
    """Scalar column types understood by the runtime."""

    INTEGER = "INTEGER"
    FLOAT = "FLOAT"
    STRING = "STRING"
    BOOLEAN = "BOOLEAN"
    DATE = "DATE"
    TIMESTAMP = "TIMESTAMP"
    ANY = "ANY"
    TABLE = "TABLE"


TYPE_ALIASES = {
    "INT": DataType.INTEGER,
    "INTEGER": DataType.INTEGER,
    "BIGINT": DataType.INTEGER,
    "SMALLINT": DataType.INTEGER,
    "TINYINT": DataType.INTEGER,
    "LONG": DataType.INTEGER,
    "HUGEINT": DataType.INTEGER,
    "FLOAT": DataType.FLOAT,
    "DOUBLE": DataType.FLOAT,
    "REAL": DataType.FLOAT,
    "DECIMAL": DataType.FLOAT,
    "NUMERIC": DataType.FLOAT,
    "NUMBER": DataType.FLOAT,
    "STRING": DataType.STRING,
    "VARCHAR": DataType.STRING,
    "TEXT": DataType.STRING,
    "CHAR": DataType.STRING,
    "BOOLEAN": DataType.BOOLEAN,
    "BOOL": DataType.BOOLEAN,
    "DATE": DataType.DATE,
    "TIMESTAMP": DataType.TIMESTAMP,
    "DATETIME": DataType.TIMESTAMP,
    "ANY": DataType.ANY,
    "VARIANT": DataType.ANY,
    "TABLE": DataType.TABLE,
}


def parse_type(type_name: Union[str, DataType]) -> DataType:
    """Resolve a type name such as ``"varchar(20)"`` to a ``DataType``.

    Raises:
        SchemaDefinitionError: If the type name is unknown
    """
    if isinstance(type_name, DataType):
        return type_name
    if not isinstance(type_name, str) or not type_name.strip():
        raise SchemaDefinitionError(f"Invalid type name: {type_name!r}")

    # Drop precision/length arguments: DECIMAL(10, 2) -> DECIMAL
    base = type_name.strip().upper().split("(", 1)[0].strip()
    if base not in TYPE_ALIASES:
        raise SchemaDefinitionError(f"Unknown type: {type_name!r}")
    return TYPE_ALIASES[base]


@dataclass(frozen=True)
class ColumnSpec:
    """One output column of a table function."""

    name: str
    data_type: DataType

    def __str__(self) -> str:
        return f"{self.name} {self.data_type.value}"


@dataclass(frozen=True)
class ParamSpec:
    """One declared parameter of a table function."""

    name: str
    data_type: DataType

    @property
    def is_table(self) -> bool:
        return self.data_type is DataType.TABLE

    def __str__(self) -> str:
        return f"{self.name} {self.data_type.value}"


SchemaLike = Union[str, Mapping[str, Any], Sequence[Any]]


def _split_declaration(declaration: str) -> List[str]:
    """Split ``"a INT, b DECIMAL(10, 2)"`` on top-level commas."""
    items = []
    depth = 0
    current = []
    for char in declaration:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        if char == "," and depth == 0:
            items.append("".join(current))
            current = []
        else:
            current.append(char)
    items.append("".join(current))
    return [item.strip() for item in items if item.strip()]


def _parse_declaration_item(item: str) -> Tuple[str, str]:
    if ":" in item:
        name, type_name = item.split(":", 1)
    else:
        parts = item.split(None, 1)
        if len(parts) != 2:
            raise SchemaDefinitionError(
                f"Column declaration '{item}' must be '<name> <type>'"
            )
        name, type_name = parts
    return name.strip(), type_name.strip()


def _schema_pairs(schema: SchemaLike) -> List[Tuple[str, Any]]:
    if isinstance(schema, str):
        return [_parse_declaration_item(item) for item in _split_declaration(schema)]
    if isinstance(schema, Mapping):
        return list(schema.items())

    pairs = []
    for entry in schema:
        if isinstance(entry, (ColumnSpec, ParamSpec)):
            pairs.append((entry.name, entry.data_type))
        elif isinstance(entry, (tuple, list)) and len(entry) == 2:
            pairs.append((entry[0], entry[1]))
        else:
            raise SchemaDefinitionError(
                f"Schema entry {entry!r} must be a (name, type) pair"
            )
    return pairs


def _check_names(names: Iterable[str], what: str) -> None:
    seen = set()
    for name in names:
        if not isinstance(name, str) or not name:
            raise SchemaDefinitionError(f"Invalid {what} name: {name!r}")
        key = name.lower()
        if key in seen:
            raise SchemaDefinitionError(f"Duplicate {what} name: '{name}'")
        seen.add(key)


def parse_output_schema(schema: SchemaLike) -> Tuple[ColumnSpec, ...]:
    """Normalise an output schema declaration.

    Raises:
        SchemaDefinitionError: If the schema is empty, has duplicate columns,
            uses an unknown type or declares a TABLE column
    """
    if schema is None:
        raise SchemaDefinitionError("An output schema is required")

    columns = tuple(
        ColumnSpec(name, parse_type(type_name))
        for name, type_name in _schema_pairs(schema)
    )
    if not columns:
        raise SchemaDefinitionError("Output schema must declare at least one column")
    _check_names((column.name for column in columns), "column")
    for column in columns:
        if column.data_type is DataType.TABLE:
            raise SchemaDefinitionError(
                f"Output column '{column.name}' cannot have type TABLE"
            )
    return columns


def parse_params(params: Union[SchemaLike, None]) -> Tuple[ParamSpec, ...]:
    """Normalise a parameter declaration.

    Besides the schema forms, a plain list of type names is accepted, in
    which case parameters are named ``arg0``, ``arg1`` and so on.
    """
    if not params:
        return ()

    if not isinstance(params, (str, Mapping)) and all(
        isinstance(entry, (str, DataType)) for entry in params
    ):
        pairs = [(f"arg{index}", entry) for index, entry in enumerate(params)]
    else:
        pairs = _schema_pairs(params)

    specs = tuple(ParamSpec(name, parse_type(type_name)) for name, type_name in pairs)
    _check_names((spec.name for spec in specs), "parameter")
    if sum(1 for spec in specs if spec.is_table) > 1:
        raise SchemaDefinitionError("At most one TABLE parameter is allowed")
    return specs


def format_schema(columns: Sequence[Union[ColumnSpec, ParamSpec]]) -> str:
    return ", ".join(str(column) for column in columns)


def accepts(data_type: DataType, value: Any) -> bool:
    """Check whether ``value`` is a valid instance of ``data_type``.

    NULL (``None``) is valid for every type.
    """
    if value is None or data_type is DataType.ANY:
        return True
    if data_type is DataType.INTEGER:
        return isinstance(value, numbers.Integral) and not isinstance(value, bool)
    if data_type is DataType.FLOAT:
        return isinstance(value, (numbers.Real, decimal.Decimal)) and not isinstance(
            value, bool
        )
    if data_type is DataType.STRING:
        return isinstance(value, str)
    if data_type is DataType.BOOLEAN:
        return isinstance(value, bool)
    if data_type is DataType.DATE:
        return isinstance(value, datetime.date) and not isinstance(
            value, datetime.datetime
        )
    if data_type is DataType.TIMESTAMP:
        return isinstance(value, datetime.datetime)
    return False


def normalize_value(data_type: DataType, value: Any) -> Any:
    """Convert an accepted value to its canonical Python representation."""
    if value is None:
        return None
    if data_type is DataType.INTEGER:
        return int(value)
    if data_type is DataType.FLOAT and not isinstance(value, decimal.Decimal):
        return float(value)
    return value


def coerce_text(data_type: DataType, text: str) -> Any:
    """Convert a command line string to a value of ``data_type``.

    Raises:
        ValueError: If the text cannot be converted
    """
    if data_type is DataType.INTEGER:
        return int(text)
    if data_type is DataType.FLOAT:
        return float(text)
    if data_type is DataType.BOOLEAN:
        lowered = text.strip().lower()
        if lowered in ("true", "t", "yes", "1"):
            return True
        if lowered in ("false", "f", "no", "0"):
            return False
        raise ValueError(f"Not a boolean: {text!r}")
    if data_type is DataType.DATE:
        return datetime.date.fromisoformat(text)
    if data_type is DataType.TIMESTAMP:
        return datetime.datetime.fromisoformat(text)
    return text
